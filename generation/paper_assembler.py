"""
Question paper assembly

Turns a PaperSpec into an exact number of questions per archetype, one
generation call per question, and falls back to a templated question for
any slot whose generation fails. A paper is always fully sized.
"""

import logging
import math
from typing import List, Optional

from generation.fallback import fallback_question, regeneration_fallback
from generation.question_generator import GenerationResult, QuestionGenerator
from generation.retriever import ChunkSampler
from models.schemas import (
    ARCHETYPE_ORDER,
    Archetype,
    Difficulty,
    ExamContext,
    GenerationRequest,
    PaperSpec,
    QuestionCounts,
    QuestionSetEntry,
)
from storage.question_store import QuestionStore

logger = logging.getLogger(__name__)


class PaperPreconditionError(Exception):
    """The paper cannot be assembled at all (no usable study material)"""


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def resolve_question_counts(spec: PaperSpec) -> QuestionCounts:
    """
    Explicit counts if given, else round(total * pct / 100 / marks) per archetype.

    Rounding is per archetype and not reconciled against total_marks.
    """
    if spec.question_counts is not None:
        return spec.question_counts

    counts = {
        f"{archetype.value}_count": _round_half_up(
            spec.total_marks
            * spec.weightage.for_archetype(archetype)
            / 100
            / spec.marks_per_question.for_archetype(archetype)
        )
        for archetype in ARCHETYPE_ORDER
    }
    return QuestionCounts(**counts)


class PaperAssembler:
    """Builds and stores the question set of one exam"""

    def __init__(self, gateway, generator: QuestionGenerator, store: QuestionStore, sampler: Optional[ChunkSampler] = None):
        self.gateway = gateway
        self.generator = generator
        self.store = store
        self.sampler = sampler or ChunkSampler(gateway)

    def assemble(self, spec: PaperSpec, collection_id: Optional[str], context: ExamContext) -> List[QuestionSetEntry]:
        if not collection_id:
            raise PaperPreconditionError("No vector collection provided. Please select a study material/book.")

        counts = resolve_question_counts(spec)
        logger.info(
            f"Assembling paper for exam {context.exam_id}: "
            f"{counts.mcq_count} MCQ, {counts.short_count} short, {counts.long_count} long"
        )

        validation = self.gateway.validate(collection_id)
        if not validation.valid:
            raise PaperPreconditionError(
                f"Study material collection {collection_id} is not usable "
                f"({'; '.join(validation.issues)}). Please select a study material/book."
            )

        try:
            pool = self.sampler.load_pool(collection_id)
        except Exception as e:
            raise PaperPreconditionError(
                f"Could not read study material collection {collection_id}: {e}. Please select a study material/book."
            ) from e

        entries: List[QuestionSetEntry] = []
        fallbacks = 0
        for archetype in ARCHETYPE_ORDER:
            marks = spec.marks_per_question.for_archetype(archetype)
            for number in range(1, counts.for_archetype(archetype) + 1):
                order = len(entries) + 1
                chunk = pool.draw()
                request = GenerationRequest(
                    chunk_text=chunk.page_content,
                    archetype=archetype,
                    subject_hint=context.subject,
                    grade_hint=context.grade,
                    target_marks=marks,
                    target_difficulty=context.difficulty,
                )
                result = self.generator.generate(request)
                if result.ok:
                    entries.append(self._entry_from_result(result, order, marks))
                else:
                    fallbacks += 1
                    logger.warning(
                        f"Using fallback for {archetype.value} question {number}: {result.failure.message}"
                    )
                    entries.append(fallback_question(archetype, number, marks, order))

        saved = self.store.append(context.exam_id, entries)
        logger.info(
            f"✓ Assembled {len(saved)} questions for exam {context.exam_id} "
            f"({fallbacks} fallback, {sum(e.marks for e in saved)} marks of {spec.total_marks})"
        )
        return saved

    def regenerate(self, question_id: str) -> Optional[QuestionSetEntry]:
        """
        Redo one stored question with the same archetype and marks.

        A failed regeneration stores a templated fallback in its place;
        order, marks and id are kept.
        """
        existing = self.store.get(question_id)
        if existing is None:
            logger.warning(f"Question {question_id} not found")
            return None

        result = self.generator.regenerate(
            existing.archetype,
            existing.marks,
            existing.difficulty,
            previous_text=existing.text,
        )
        if not result.ok:
            logger.warning(f"Using fallback for regenerated question {question_id}: {result.failure.message}")
            return self.store.save(regeneration_fallback(existing))

        question = result.question
        updated = existing.model_copy(
            update={
                "text": question.text,
                "options": question.options if existing.archetype == Archetype.MCQ else existing.options,
                "correct_answer": question.correct_answer,
                "difficulty": Difficulty(question.difficulty),
                "explanation": question.explanation,
                "is_fallback": False,
            }
        )
        return self.store.save(updated)

    def _entry_from_result(self, result: GenerationResult, order: int, marks: int) -> QuestionSetEntry:
        question = result.question
        return QuestionSetEntry(
            order=order,
            archetype=question.archetype,
            text=question.text,
            options=question.options,
            correct_answer=question.correct_answer,
            marks=marks,
            difficulty=Difficulty(question.difficulty),
            explanation=question.explanation,
        )
