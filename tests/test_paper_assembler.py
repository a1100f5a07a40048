import json
import random

import pytest
from langchain_core.documents import Document

from conftest import ScriptedBackend
from generation.backends import BackendError
from generation.fallback import FALLBACK_ANSWER, FALLBACK_OPTIONS, is_fallback_mcq
from generation.paper_assembler import PaperAssembler, PaperPreconditionError, resolve_question_counts
from generation.question_generator import QuestionGenerator
from generation.retriever import ChunkSampler
from models.schemas import (
    MCQ_LETTERS,
    Archetype,
    Difficulty,
    ExamContext,
    MarksPerQuestion,
    PaperSpec,
    QuestionCounts,
    Weightage,
)
from storage.question_store import QuestionStore

STANDARD_SPEC = PaperSpec(
    total_marks=100,
    weightage=Weightage(mcq=20, short=40, long=40),
    marks_per_question=MarksPerQuestion(mcq=1, short=5, long=10),
)


def answer_for(prompt: str) -> str:
    """A well-formed question of whichever type the prompt asks for"""
    if '"type": "multiple_choice"' in prompt:
        return json.dumps({
            "type": "multiple_choice",
            "text": "Which organelle performs photosynthesis?",
            "options": ["Nucleus", "Chloroplast", "Ribosome", "Vacuole"],
            "answer": "B",
            "marks": 3,
            "difficulty": "easy",
        })
    kind = "long_answer" if '"type": "long_answer"' in prompt else "short_answer"
    return json.dumps({
        "type": kind,
        "text": "Explain how light energy is converted during photosynthesis.",
        "answer": "Chlorophyll absorbs light and drives the production of glucose.",
        "marks": 99,
        "difficulty": "hard",
    })


class FlakyBackend(ScriptedBackend):
    """Fails on the given 1-based call numbers and answers correctly otherwise"""

    def __init__(self, failing_calls):
        super().__init__(default=answer_for)
        self.failing_calls = set(failing_calls)

    def generate(self, prompt):
        if len(self.prompts) + 1 in self.failing_calls:
            self.prompts.append(prompt)
            raise BackendError("429 Too Many Requests")
        return super().generate(prompt)


@pytest.fixture
def filled_collection(gateway):
    collection_id = gateway.create_collection("biology.pdf")
    gateway.upsert_documents(
        collection_id,
        [
            Document(id=f"p_{i}", page_content=f"Chunk {i}: chloroplasts capture light energy.", metadata={"idx": i})
            for i in range(10)
        ],
    )
    return collection_id


@pytest.fixture
def store():
    return QuestionStore()


def _assembler(gateway, store, backend):
    generator = QuestionGenerator(backend, max_retries=1, sleep=lambda _: None)
    return PaperAssembler(gateway, generator, store, sampler=ChunkSampler(gateway, rng=random.Random(7)))


def _context():
    return ExamContext(exam_id="exam-1", subject="Biology", grade="7", difficulty=Difficulty.MEDIUM)


def test_counts_from_weightage():
    counts = resolve_question_counts(STANDARD_SPEC)

    assert (counts.mcq_count, counts.short_count, counts.long_count) == (20, 8, 4)


def test_counts_round_half_up_per_archetype():
    spec = PaperSpec(
        total_marks=50,
        weightage=Weightage(mcq=25, short=25, long=50),
        marks_per_question=MarksPerQuestion(mcq=1, short=5, long=10),
    )

    counts = resolve_question_counts(spec)

    # 12.5 -> 13, 2.5 -> 3, 2.5 -> 3
    assert (counts.mcq_count, counts.short_count, counts.long_count) == (13, 3, 3)


def test_explicit_counts_win():
    spec = STANDARD_SPEC.model_copy(update={"question_counts": QuestionCounts(mcq_count=2, short_count=0, long_count=1)})

    assert resolve_question_counts(spec).total == 3


def test_counts_are_deterministic():
    assert resolve_question_counts(STANDARD_SPEC) == resolve_question_counts(STANDARD_SPEC)


def test_paper_is_complete_and_ordered(gateway, store, filled_collection):
    paper = _assembler(gateway, store, ScriptedBackend(default=answer_for)).assemble(
        STANDARD_SPEC, filled_collection, _context()
    )

    assert len(paper) == 32
    assert [q.order for q in paper] == list(range(1, 33))
    assert [q.archetype for q in paper] == [Archetype.MCQ] * 20 + [Archetype.SHORT] * 8 + [Archetype.LONG] * 4
    assert not any(q.is_fallback for q in paper)
    assert sum(q.marks for q in paper) == 100
    assert all(q.exam_id == "exam-1" and q.id for q in paper)


def test_marks_come_from_the_paper_spec(gateway, store, filled_collection):
    paper = _assembler(gateway, store, ScriptedBackend(default=answer_for)).assemble(
        STANDARD_SPEC, filled_collection, _context()
    )

    assert {q.marks for q in paper if q.archetype == Archetype.MCQ} == {1}
    assert {q.marks for q in paper if q.archetype == Archetype.SHORT} == {5}
    assert {q.marks for q in paper if q.archetype == Archetype.LONG} == {10}


def test_every_mcq_is_valid_or_fallback(gateway, store, filled_collection):
    backend = FlakyBackend(failing_calls=range(1, 33, 3))

    paper = _assembler(gateway, store, backend).assemble(STANDARD_SPEC, filled_collection, _context())

    for question in (q for q in paper if q.archetype == Archetype.MCQ):
        assert len(question.options) == 4
        assert question.correct_answer in MCQ_LETTERS
        assert is_fallback_mcq(question) == question.is_fallback


def test_failed_slots_fall_back_in_place(gateway, store, filled_collection):
    # Call 2 is MCQ 2, call 22 is short question 2, call 32 is long question 4
    backend = FlakyBackend(failing_calls={2, 22, 32})

    paper = _assembler(gateway, store, backend).assemble(STANDARD_SPEC, filled_collection, _context())

    assert len(paper) == 32
    assert [q.order for q in paper if q.is_fallback] == [2, 22, 32]
    assert paper[1].text == "MCQ 2 (1 mark): Write a suitable question for the syllabus topic."
    assert paper[1].options == FALLBACK_OPTIONS
    assert paper[1].correct_answer == FALLBACK_ANSWER
    assert paper[21].text == "Short Q2 (5 marks): Provide a brief explanation on a key concept from the syllabus."
    assert paper[31].text == "Long Q4 (10 marks): Discuss in detail with examples from the syllabus."


def test_total_backend_outage_still_yields_full_paper(gateway, store, filled_collection):
    paper = _assembler(gateway, store, ScriptedBackend()).assemble(STANDARD_SPEC, filled_collection, _context())

    assert len(paper) == 32
    assert all(q.is_fallback for q in paper)
    assert all(q.difficulty == Difficulty.MEDIUM for q in paper)
    assert sum(q.marks for q in paper) == 100


def test_missing_collection_id_fails_before_generation(gateway, store):
    backend = ScriptedBackend(default=answer_for)

    with pytest.raises(PaperPreconditionError, match="Please select a study material/book"):
        _assembler(gateway, store, backend).assemble(STANDARD_SPEC, None, _context())

    assert backend.prompts == []
    assert store.list_for_exam("exam-1") == []


def test_unknown_collection_fails_before_generation(gateway, store):
    backend = ScriptedBackend(default=answer_for)

    with pytest.raises(PaperPreconditionError):
        _assembler(gateway, store, backend).assemble(STANDARD_SPEC, "no-such-collection", _context())

    assert backend.prompts == []
    assert store.list_for_exam("exam-1") == []


def test_empty_collection_fails_before_generation(gateway, store):
    collection_id = gateway.create_collection("empty.pdf")

    with pytest.raises(PaperPreconditionError):
        _assembler(gateway, store, ScriptedBackend(default=answer_for)).assemble(
            STANDARD_SPEC, collection_id, _context()
        )

    assert store.list_for_exam("exam-1") == []


def test_generation_is_grounded_in_collection_chunks(gateway, store, filled_collection):
    backend = ScriptedBackend(default=answer_for)
    spec = STANDARD_SPEC.model_copy(update={"question_counts": QuestionCounts(mcq_count=3, short_count=1, long_count=1)})

    _assembler(gateway, store, backend).assemble(spec, filled_collection, _context())

    assert len(backend.prompts) == 5
    assert all("chloroplasts capture light energy" in prompt for prompt in backend.prompts)


def test_regenerate_replaces_fallback(gateway, store, filled_collection):
    assembler = _assembler(gateway, store, ScriptedBackend())
    paper = assembler.assemble(STANDARD_SPEC, filled_collection, _context())
    target = paper[0]

    assembler.generator.backend = ScriptedBackend(default=answer_for)
    updated = assembler.regenerate(target.id)

    assert updated.id == target.id
    assert updated.order == target.order
    assert updated.marks == 1
    assert not updated.is_fallback
    assert updated.correct_answer == "B"
    assert store.get(target.id).text == "Which organelle performs photosynthesis?"


def test_failed_regeneration_stores_fallback(gateway, store, filled_collection):
    assembler = _assembler(gateway, store, ScriptedBackend(default=answer_for))
    paper = assembler.assemble(STANDARD_SPEC, filled_collection, _context())
    short = paper[25]

    assembler.generator.backend = ScriptedBackend()
    replaced = assembler.regenerate(short.id)

    assert replaced.is_fallback
    assert replaced.text == "Regenerated question: Write a detailed answer."
    assert (replaced.id, replaced.order, replaced.marks, replaced.archetype) == (
        short.id, short.order, short.marks, short.archetype,
    )
    assert replaced.difficulty == Difficulty.MEDIUM
    assert store.get(short.id) == replaced
    assert len(store.list_for_exam("exam-1")) == 32


def test_failed_mcq_regeneration_uses_lettered_options(gateway, store, filled_collection):
    assembler = _assembler(gateway, store, ScriptedBackend(default=answer_for))
    mcq = assembler.assemble(STANDARD_SPEC, filled_collection, _context())[0]

    assembler.generator.backend = ScriptedBackend()
    replaced = assembler.regenerate(mcq.id)

    assert replaced.is_fallback
    assert is_fallback_mcq(replaced)
    assert replaced.marks == 1


def test_regenerate_unknown_question(gateway, store):
    assert _assembler(gateway, store, ScriptedBackend()).regenerate("missing") is None
