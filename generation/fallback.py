"""Deterministic template questions used when generation fails"""

from models.schemas import Archetype, Difficulty, QuestionSetEntry

FALLBACK_OPTIONS = ["Option A", "Option B", "Option C", "Option D"]
FALLBACK_ANSWER = "A"


def _mark_label(marks: int) -> str:
    return f"{marks} mark" if marks == 1 else f"{marks} marks"


def fallback_question(archetype: Archetype, number: int, marks: int, order: int) -> QuestionSetEntry:
    """
    Templated question for slot ``number`` (1-based within its archetype).

    Same shape as a generated entry, flagged with ``is_fallback``.
    """
    label = _mark_label(marks)
    if archetype == Archetype.MCQ:
        return QuestionSetEntry(
            order=order,
            archetype=archetype,
            text=f"MCQ {number} ({label}): Write a suitable question for the syllabus topic.",
            options=list(FALLBACK_OPTIONS),
            correct_answer=FALLBACK_ANSWER,
            marks=marks,
            difficulty=Difficulty.MEDIUM,
            is_fallback=True,
        )
    if archetype == Archetype.SHORT:
        text = f"Short Q{number} ({label}): Provide a brief explanation on a key concept from the syllabus."
    else:
        text = f"Long Q{number} ({label}): Discuss in detail with examples from the syllabus."
    return QuestionSetEntry(
        order=order,
        archetype=archetype,
        text=text,
        marks=marks,
        difficulty=Difficulty.MEDIUM,
        is_fallback=True,
    )


def regeneration_fallback(entry: QuestionSetEntry) -> QuestionSetEntry:
    """Templated replacement for a stored question whose regeneration failed"""
    if entry.archetype == Archetype.MCQ:
        changes = {
            "text": "Regenerated question: Choose the correct option.",
            "options": list(FALLBACK_OPTIONS),
            "correct_answer": FALLBACK_ANSWER,
        }
    else:
        changes = {
            "text": "Regenerated question: Write a detailed answer.",
            "options": None,
            "correct_answer": None,
        }
    return entry.model_copy(
        update={**changes, "difficulty": Difficulty.MEDIUM, "explanation": None, "is_fallback": True}
    )


def is_fallback_mcq(entry: QuestionSetEntry) -> bool:
    """True for an MCQ built by ``fallback_question``"""
    return (
        entry.archetype == Archetype.MCQ
        and entry.options == FALLBACK_OPTIONS
        and entry.correct_answer == FALLBACK_ANSWER
    )
