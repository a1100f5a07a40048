"""Pydantic models for data validation"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

MCQ_LETTERS = ("A", "B", "C", "D")


class Archetype(str, Enum):
    """The three kinds of question a paper is built from"""
    MCQ = "mcq"
    SHORT = "short"
    LONG = "long"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_ANSWER = "short_answer"
    LONG_ANSWER = "long_answer"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


ARCHETYPE_TO_TYPE = {
    Archetype.MCQ: QuestionType.MULTIPLE_CHOICE,
    Archetype.SHORT: QuestionType.SHORT_ANSWER,
    Archetype.LONG: QuestionType.LONG_ANSWER,
}

TYPE_TO_ARCHETYPE = {value: key for key, value in ARCHETYPE_TO_TYPE.items()}

# Order in which a paper is assembled
ARCHETYPE_ORDER = (Archetype.MCQ, Archetype.SHORT, Archetype.LONG)


# ---------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------

class GenerationRequest(BaseModel):
    """One question to generate from one chunk of source text"""
    chunk_text: str
    archetype: Archetype
    subject_hint: Optional[str] = None
    grade_hint: Optional[str] = None
    target_marks: Optional[int] = None
    target_difficulty: Optional[Difficulty] = None


class GeneratedQuestion(BaseModel):
    """A question parsed from model output; validated separately before use"""
    archetype: Archetype
    text: str
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    marks: float
    difficulty: str
    explanation: Optional[str] = None

    @property
    def question_type(self) -> QuestionType:
        return ARCHETYPE_TO_TYPE[self.archetype]


# ---------------------------------------------------------------------
# Paper layout
# ---------------------------------------------------------------------

class Weightage(BaseModel):
    """Percentage split of total marks across archetypes"""
    mcq: float = Field(ge=0, le=100)
    short: float = Field(ge=0, le=100)
    long: float = Field(ge=0, le=100)

    def for_archetype(self, archetype: Archetype) -> float:
        return getattr(self, archetype.value)


class MarksPerQuestion(BaseModel):
    mcq: int = Field(1, gt=0)
    short: int = Field(5, gt=0)
    long: int = Field(10, gt=0)

    def for_archetype(self, archetype: Archetype) -> int:
        return getattr(self, archetype.value)


class QuestionCounts(BaseModel):
    mcq_count: int = Field(ge=0)
    short_count: int = Field(ge=0)
    long_count: int = Field(ge=0)

    def for_archetype(self, archetype: Archetype) -> int:
        return getattr(self, f"{archetype.value}_count")

    @property
    def total(self) -> int:
        return self.mcq_count + self.short_count + self.long_count


class PaperSpec(BaseModel):
    """Marks and weightage constraints for one question paper"""
    total_marks: int = Field(gt=0)
    weightage: Weightage
    marks_per_question: MarksPerQuestion = Field(default_factory=MarksPerQuestion)
    question_counts: Optional[QuestionCounts] = None


class ExamContext(BaseModel):
    """The exam a paper is assembled for"""
    exam_id: str
    subject: Optional[str] = None
    grade: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM


class QuestionSetEntry(BaseModel):
    """One persisted question of an exam's question set"""
    id: Optional[str] = None
    exam_id: Optional[str] = None
    order: int = Field(ge=1)
    archetype: Archetype
    text: str
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None
    marks: int = Field(gt=0)
    difficulty: Difficulty = Difficulty.MEDIUM
    explanation: Optional[str] = None
    is_fallback: bool = False
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())

    @property
    def question_type(self) -> QuestionType:
        return ARCHETYPE_TO_TYPE[self.archetype]


class QuestionUpdate(BaseModel):
    """Partial edit of a persisted question"""
    text: Optional[str] = Field(None, min_length=1)
    marks: Optional[int] = Field(None, gt=0)
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None

    @field_validator("options")
    @classmethod
    def _four_options(cls, value):
        if value is not None and len(value) != len(MCQ_LETTERS):
            raise ValueError("options must contain exactly 4 entries")
        return value


# ---------------------------------------------------------------------
# Ingestion and collections
# ---------------------------------------------------------------------

class IngestStatus(str, Enum):
    RECEIVED = "received"
    TEXT_EXTRACTED = "text_extracted"
    CHUNKED = "chunked"
    BATCH_UPSERTING = "batch_upserting"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


class IngestResult(BaseModel):
    """Outcome of one ingestion run; never raised, always returned"""
    segments: int = 0
    status: IngestStatus
    error: Optional[str] = None
    details: Optional[str] = None
    collection_id: Optional[str] = None
    total_chunks: int = 0
    successful_batches: int = 0
    failed_batches: int = 0
    memory_usage: Dict[str, float] = Field(default_factory=dict)


class UploadJob(BaseModel):
    """An uploaded study material handed over by the upload transport"""
    file_bytes: bytes
    filename: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    teacher_id: Optional[str] = None
    class_name: Optional[str] = None
    subject: Optional[str] = None

    def ingest_metadata(self) -> Dict[str, str]:
        metadata = {
            "class": self.class_name,
            "subject": self.subject,
            "teacherId": self.teacher_id,
        }
        return {key: value for key, value in metadata.items() if value is not None}


class CollectionStats(BaseModel):
    exists: bool
    count: int = 0
    metadata: Optional[Dict] = None


class CollectionValidation(BaseModel):
    valid: bool
    issues: List[str] = Field(default_factory=list)
    recommendations: Optional[List[str]] = None
