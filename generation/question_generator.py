"""LLM-based question generation grounded in one chunk of study material"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from pydantic import ValidationError

from generation.backends import BackendError
from models.schemas import (
    ARCHETYPE_TO_TYPE,
    MCQ_LETTERS,
    Archetype,
    Difficulty,
    GeneratedQuestion,
    GenerationRequest,
    QuestionType,
)

logger = logging.getLogger(__name__)

DEFAULT_MARKS = {Archetype.MCQ: 1, Archetype.SHORT: 5, Archetype.LONG: 10}

_WHITESPACE = re.compile(r"\s+")
_LETTER_ANSWER = re.compile(r"(?:option\s*)?\(?([A-Da-d])\)?[.:)]?", re.IGNORECASE)


class FailureKind(str, Enum):
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    MALFORMED_OUTPUT = "malformed_output"
    SCHEMA_INVALID = "schema_invalid"
    EXHAUSTED = "exhausted"


@dataclass
class GenerationFailure:
    kind: FailureKind
    message: str
    attempts: List["GenerationFailure"] = field(default_factory=list)

    @property
    def last_kind(self) -> FailureKind:
        return self.attempts[-1].kind if self.attempts else self.kind


@dataclass
class GenerationResult:
    """Either a validated question or the reason there is none"""
    question: Optional[GeneratedQuestion] = None
    failure: Optional[GenerationFailure] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.question is not None


class QuestionGenerationError(Exception):
    """Raised by ``generate_question`` once every attempt has failed"""

    def __init__(self, failure: GenerationFailure):
        super().__init__(failure.message)
        self.failure = failure


class _AttemptFailed(Exception):
    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind


# ---------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------

def clean_text(value) -> str:
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def extract_json_object(raw: str) -> dict:
    """Parse the first balanced {...} object found in ``raw``"""
    start = raw.find("{") if raw else -1
    if start < 0:
        raise _AttemptFailed(FailureKind.MALFORMED_OUTPUT, "No JSON object found in model response")

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(raw)):
        char = raw[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(raw[start:index + 1])
                except json.JSONDecodeError as e:
                    raise _AttemptFailed(FailureKind.MALFORMED_OUTPUT, f"Invalid JSON: {e}") from e
                if not isinstance(parsed, dict):
                    raise _AttemptFailed(FailureKind.MALFORMED_OUTPUT, "JSON is not an object")
                return parsed

    raise _AttemptFailed(FailureKind.MALFORMED_OUTPUT, "Unbalanced JSON object in model response")


def normalize_question_type(value) -> Optional[QuestionType]:
    if not value:
        return None
    normalized = re.sub(r"[\s\-]+", "_", str(value).lower())
    if "multiple" in normalized or "choice" in normalized or normalized == "mcq":
        return QuestionType.MULTIPLE_CHOICE
    if "long" in normalized or "essay" in normalized:
        return QuestionType.LONG_ANSWER
    return QuestionType.SHORT_ANSWER


def normalize_difficulty(value, default: Difficulty = Difficulty.MEDIUM) -> str:
    if not value:
        return default.value
    normalized = str(value).strip().lower()
    if normalized in ("hard", "difficult"):
        return Difficulty.HARD.value
    if normalized in ("easy", "simple"):
        return Difficulty.EASY.value
    if normalized in ("medium", "moderate"):
        return Difficulty.MEDIUM.value
    return normalized


def _normalize_options(raw_options) -> Optional[List[str]]:
    if raw_options is None:
        return None
    if isinstance(raw_options, dict):
        return [clean_text(raw_options[key]) for key in sorted(raw_options)]
    if isinstance(raw_options, list):
        options = []
        for option in raw_options:
            if isinstance(option, dict):
                option = option.get("text", "")
            options.append(clean_text(option))
        return options
    raise _AttemptFailed(FailureKind.SCHEMA_INVALID, "options must be a list")


def _normalize_mcq_answer(answer: str, options: Optional[List[str]]) -> str:
    match = _LETTER_ANSWER.fullmatch(answer)
    if match:
        return match.group(1).upper()
    for letter, option in zip(MCQ_LETTERS, options or []):
        if answer and answer.lower() == option.lower():
            return letter
    return answer


def validate_question(question: GeneratedQuestion) -> List[str]:
    """Every reason ``question`` is unacceptable; empty when it is fine"""
    problems = []
    if len(question.text.strip()) < 10:
        problems.append("Question text too short")
    if question.marks <= 0:
        problems.append("Invalid marks")
    if question.difficulty not in {d.value for d in Difficulty}:
        problems.append(f"Invalid difficulty level: {question.difficulty}")

    if question.archetype == Archetype.MCQ:
        if not question.options or len(question.options) != 4:
            problems.append("MCQ must have exactly 4 options")
        if question.correct_answer not in MCQ_LETTERS:
            problems.append("MCQ must have valid answer (A, B, C, or D)")
    elif not question.correct_answer or len(question.correct_answer.strip()) < 5:
        problems.append("Answer too short for non-MCQ question")
    return problems


# ---------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------

_OUTPUT_FORMATS = {
    Archetype.MCQ: (
        "Generate a multiple choice question with exactly 4 options (A, B, C, D).\n\n"
        "OUTPUT FORMAT (JSON only):\n"
        "{{\n"
        '  "type": "multiple_choice",\n'
        '  "text": "Question text here",\n'
        '  "options": ["Option A", "Option B", "Option C", "Option D"],\n'
        '  "answer": "Correct option letter (A, B, C, or D)",\n'
        '  "marks": {marks},\n'
        '  "difficulty": "{difficulty}",\n'
        '  "explanation": "Brief explanation of why this is the correct answer"\n'
        "}}"
    ),
    Archetype.SHORT: (
        "Generate a short answer question that requires a brief, focused response.\n\n"
        "OUTPUT FORMAT (JSON only):\n"
        "{{\n"
        '  "type": "short_answer",\n'
        '  "text": "Question text here",\n'
        '  "answer": "Expected short answer",\n'
        '  "marks": {marks},\n'
        '  "difficulty": "{difficulty}",\n'
        '  "explanation": "Brief explanation of the expected answer"\n'
        "}}"
    ),
    Archetype.LONG: (
        "Generate a long answer question that requires detailed explanation and analysis.\n\n"
        "OUTPUT FORMAT (JSON only):\n"
        "{{\n"
        '  "type": "long_answer",\n'
        '  "text": "Question text here",\n'
        '  "answer": "Expected detailed answer with key points",\n'
        '  "marks": {marks},\n'
        '  "difficulty": "{difficulty}",\n'
        '  "explanation": "Detailed explanation of the expected answer and evaluation criteria"\n'
        "}}"
    ),
}


class QuestionGenerator:
    """Generates one validated question per call, retrying on failure"""

    def __init__(
        self,
        backend,
        max_retries: int = 3,
        backoff_s: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.backend = backend
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self.sleep = sleep

    def build_prompt(self, request: GenerationRequest) -> str:
        """Build an archetype-specific prompt grounded in the request's chunk"""
        marks = request.target_marks or DEFAULT_MARKS[request.archetype]
        difficulty = (request.target_difficulty or Difficulty.MEDIUM).value

        base = f"""You are an expert educational content generator. Generate a {request.archetype.value} question based on the provided textbook content.

CONTENT TO BASE QUESTION ON:
{request.chunk_text}

REQUIREMENTS:
- Question Type: {request.archetype.value.upper()}
- Subject: {request.subject_hint or 'General'}
- Grade Level: {request.grade_hint or 'General'}
- Marks: {marks}
- Difficulty: {difficulty}
- Base the question ONLY on the provided content; do not use outside knowledge
- Ensure the question is clear, unambiguous, and educationally appropriate

"""
        return base + _OUTPUT_FORMATS[request.archetype].format(marks=marks, difficulty=difficulty)

    def build_regeneration_prompt(
        self,
        archetype: Archetype,
        marks: int,
        difficulty: Difficulty = Difficulty.MEDIUM,
        previous_text: Optional[str] = None,
    ) -> str:
        """Prompt for redoing a question when no source chunk is at hand"""
        previous = f"\nDo NOT repeat this question: {previous_text}\n" if previous_text else ""
        return (
            f"Regenerate a {ARCHETYPE_TO_TYPE[archetype].value} exam question worth {marks} marks.\n"
            f"{previous}\n"
            + _OUTPUT_FORMATS[archetype].format(marks=marks, difficulty=difficulty.value)
        )

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate a question for ``request``; never raises"""
        prompt = self.build_prompt(request)
        logger.debug(f"Generating {request.archetype.value} question with prompt length: {len(prompt)}")
        return self._run(
            prompt,
            request.archetype,
            request.target_marks or DEFAULT_MARKS[request.archetype],
            request.target_difficulty or Difficulty.MEDIUM,
        )

    def generate_question(self, request: GenerationRequest) -> GeneratedQuestion:
        """Like ``generate`` but raises QuestionGenerationError on exhaustion"""
        result = self.generate(request)
        if not result.ok:
            raise QuestionGenerationError(result.failure)
        return result.question

    def regenerate(
        self,
        archetype: Archetype,
        marks: int,
        difficulty: Difficulty = Difficulty.MEDIUM,
        previous_text: Optional[str] = None,
    ) -> GenerationResult:
        prompt = self.build_regeneration_prompt(archetype, marks, difficulty, previous_text)
        return self._run(prompt, archetype, marks, difficulty)

    def _run(self, prompt: str, archetype: Archetype, default_marks: int, difficulty: Difficulty) -> GenerationResult:
        failures: List[GenerationFailure] = []

        for attempt in range(1, self.max_retries + 1):
            try:
                raw = self.backend.generate(prompt)
                question = self.parse_response(raw, archetype, default_marks, difficulty)
                problems = validate_question(question)
                if problems:
                    raise _AttemptFailed(FailureKind.SCHEMA_INVALID, "; ".join(problems))
            except _AttemptFailed as e:
                failures.append(GenerationFailure(e.kind, str(e)))
                logger.warning(f"Attempt {attempt}/{self.max_retries} failed ({e.kind.value}): {e}")
            except BackendError as e:
                failures.append(GenerationFailure(FailureKind.PROVIDER_UNAVAILABLE, str(e)))
                logger.error(f"Attempt {attempt}/{self.max_retries} failed: {e}")
            except ValidationError as e:
                failures.append(GenerationFailure(FailureKind.SCHEMA_INVALID, str(e)))
                logger.warning(f"Attempt {attempt}/{self.max_retries} produced an invalid question: {e}")
            except Exception as e:
                failures.append(GenerationFailure(FailureKind.MALFORMED_OUTPUT, str(e)))
                logger.exception(f"Attempt {attempt}/{self.max_retries} failed while reading the response")
            else:
                logger.debug(f"✓ Generated {archetype.value} question on attempt {attempt}")
                return GenerationResult(question=question, attempts=attempt)

            if attempt < self.max_retries:
                self.sleep(self.backoff_s * attempt)

        last = failures[-1]
        return GenerationResult(
            failure=GenerationFailure(
                FailureKind.EXHAUSTED,
                f"Failed to generate question after {self.max_retries} attempts: {last.message}",
                attempts=failures,
            ),
            attempts=len(failures),
        )

    def parse_response(
        self,
        raw: str,
        archetype: Archetype,
        default_marks: int,
        difficulty: Difficulty = Difficulty.MEDIUM,
    ) -> GeneratedQuestion:
        """Extract and normalize a question from raw model output"""
        data = extract_json_object(raw)

        # Some models wrap a single question in {"questions": [...]}
        if isinstance(data.get("questions"), list) and data["questions"]:
            data = data["questions"][0]
            if not isinstance(data, dict):
                raise _AttemptFailed(FailureKind.MALFORMED_OUTPUT, "questions[0] is not an object")

        expected = ARCHETYPE_TO_TYPE[archetype]
        returned = normalize_question_type(data.get("type"))
        if returned is not None and returned != expected:
            raise _AttemptFailed(
                FailureKind.SCHEMA_INVALID,
                f"Expected {expected.value} question, got {returned.value}",
            )

        try:
            marks = float(data.get("marks") or default_marks)
        except (TypeError, ValueError):
            marks = default_marks

        options = _normalize_options(data.get("options", data.get("choices")))
        answer = clean_text(data.get("answer", data.get("correct_answer")))
        if archetype == Archetype.MCQ:
            answer = _normalize_mcq_answer(answer, options)

        explanation = clean_text(data.get("explanation")) or None
        return GeneratedQuestion(
            archetype=archetype,
            text=clean_text(data.get("text") or data.get("question") or data.get("prompt")),
            options=options if archetype == Archetype.MCQ else None,
            correct_answer=answer or None,
            marks=marks,
            difficulty=normalize_difficulty(data.get("difficulty"), difficulty),
            explanation=explanation,
        )
