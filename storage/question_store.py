"""Question set persistence (append-only per exam)"""

import logging
import threading
import uuid
from typing import Dict, List, Optional

from models.schemas import QuestionSetEntry, QuestionUpdate

logger = logging.getLogger(__name__)


class QuestionStore:
    """
    In-memory question storage keyed by exam.

    ``append`` writes a whole question set at once; earlier sets for the same
    exam are kept.
    """

    def __init__(self):
        self._questions: Dict[str, QuestionSetEntry] = {}
        self._lock = threading.Lock()

    def append(self, exam_id: str, entries: List[QuestionSetEntry]) -> List[QuestionSetEntry]:
        saved = [
            entry.model_copy(update={"id": str(uuid.uuid4()), "exam_id": exam_id})
            for entry in entries
        ]
        with self._lock:
            for entry in saved:
                self._questions[entry.id] = entry
        logger.info(f"✓ Saved {len(saved)} questions for exam {exam_id}")
        return saved

    def list_for_exam(self, exam_id: str) -> List[QuestionSetEntry]:
        with self._lock:
            entries = [q for q in self._questions.values() if q.exam_id == exam_id]
        return sorted(entries, key=lambda q: q.order)

    def get(self, question_id: str) -> Optional[QuestionSetEntry]:
        with self._lock:
            return self._questions.get(question_id)

    def save(self, entry: QuestionSetEntry) -> QuestionSetEntry:
        if not entry.id:
            raise ValueError("Cannot save a question without an id")
        with self._lock:
            self._questions[entry.id] = entry
        return entry

    def update(self, question_id: str, update: QuestionUpdate) -> Optional[QuestionSetEntry]:
        """Apply a validated partial edit; None if the question does not exist"""
        existing = self.get(question_id)
        if existing is None:
            return None
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        return self.save(existing.model_copy(update=changes))
