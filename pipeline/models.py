"""
Data records shared across the extraction, generation and repair stages.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from config import OPTION_LETTERS, QUESTION_TYPES

_TYPE_LOOKUP = {t.lower(): t for t in QUESTION_TYPES}


def normalize_question_type(value: Any) -> str:
    """Map 'mcq', 'Mcq', 'subjective'... onto the canonical type names."""
    key = str(value or "").strip().lower()
    if key not in _TYPE_LOOKUP:
        raise ValueError(f"Unknown question type: {value!r}")
    return _TYPE_LOOKUP[key]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def coerce_options(options: Any) -> Optional[List[str]]:
    """Options as a list of strings. {"A": .., "B": ..} maps are read in key order."""
    if options is None:
        return None
    if isinstance(options, dict):
        options = [options[k] for k in sorted(options)]
    elif isinstance(options, str):
        options = [options]
    return [str(opt) for opt in options] or None


def coerce_answer(answer: Any) -> Optional[str]:
    """["A", "C"] -> "A,C"; everything else as text."""
    if isinstance(answer, list):
        return ",".join(str(a) for a in answer)
    return _as_optional_str(answer)


@dataclass
class ExtractedQuestion:
    """One question, either read off a page or generated for a topic."""
    question_type: str
    question_statement: str
    page_number: int = 0
    question_number: Optional[str] = None
    options: Optional[List[str]] = None
    answer: Optional[str] = None
    solution: Optional[str] = None
    is_continuation: bool = False
    spans_multiple_pages: bool = False
    continuation_from_page: Optional[int] = None
    has_image: bool = False
    image_description: Optional[str] = None
    confidence_score: float = 1.0
    topic_id: Optional[str] = None
    difficulty_level: Optional[str] = None
    shared_description: Optional[str] = None
    table_content: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], page_number: Optional[int] = None) -> "ExtractedQuestion":
        """
        Build a record from a loosely-shaped model reply.

        Unknown keys are ignored. `has_diagram` / `diagram_description` are
        accepted for `has_image` / `image_description`. When `page_number` is
        given it replaces whatever the reply said.

        Raises:
            ValueError: if the question type is missing or unknown.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Question record must be an object, got {type(data).__name__}")

        confidence = data.get("confidence_score")
        try:
            confidence = float(confidence) if confidence not in (None, "") else 1.0
        except (TypeError, ValueError):
            confidence = 1.0

        return cls(
            question_type=normalize_question_type(data.get("question_type")),
            question_statement=str(data.get("question_statement") or ""),
            page_number=page_number if page_number is not None else (_as_optional_int(data.get("page_number")) or 0),
            question_number=_as_optional_str(data.get("question_number")),
            options=coerce_options(data.get("options")),
            answer=coerce_answer(data.get("answer")),
            solution=_as_optional_str(data.get("solution")),
            is_continuation=_as_bool(data.get("is_continuation", False)),
            spans_multiple_pages=_as_bool(data.get("spans_multiple_pages", False)),
            continuation_from_page=_as_optional_int(data.get("continuation_from_page")),
            has_image=_as_bool(data.get("has_image", data.get("has_diagram", False))),
            image_description=_as_optional_str(
                data.get("image_description") or data.get("diagram_description")
            ),
            confidence_score=confidence,
            topic_id=_as_optional_str(data.get("topic_id")),
            difficulty_level=_as_optional_str(data.get("difficulty_level")),
            shared_description=_as_optional_str(data.get("shared_description")),
            table_content=_as_optional_str(data.get("table_content")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def option_letters(self) -> List[str]:
        return list(OPTION_LETTERS[:len(self.options or [])])

    def format_options(self, separator: str = "\n") -> str:
        """Options as 'A: ...' lines, empty string when there are none."""
        return separator.join(
            f"{letter}: {text}" for letter, text in zip(OPTION_LETTERS, self.options or [])
        )


@dataclass
class PageStructure:
    """First-pass findings for one page."""
    shared_description: Optional[str] = None
    has_multi_page_question: bool = False
    question_numbers: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "PageStructure":
        if not isinstance(data, dict):
            return cls()
        description = data.get("sharedDescription")
        if isinstance(description, str):
            description = description.strip() or None
            if description and description.lower() in ("null", "none"):
                description = None
        else:
            description = None
        numbers = data.get("questionNumbers") or []
        if not isinstance(numbers, list):
            numbers = [numbers]
        return cls(
            shared_description=description,
            has_multi_page_question=_as_bool(data.get("hasMultiPageQuestion", False)),
            question_numbers=[str(n) for n in numbers],
        )


@dataclass
class Topic:
    """Syllabus topic a question is generated for."""
    id: str
    name: str
    notes: Optional[str] = None
    weightage: float = 0.02

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Topic":
        weightage = data.get("weightage")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            notes=data.get("notes"),
            weightage=float(weightage) if weightage not in (None, "") else 0.02,
        )


@dataclass
class SolvedAnswer:
    """The model's independent solution to a question."""
    correct_answer: str
    solution: str = ""
    reasoning: str = ""


ACCEPTED = "accepted"
FIXED = "fixed"
REJECTED = "rejected"


@dataclass
class FixOutcome:
    """Result of one Solve -> Validate -> Fix run."""
    status: str
    question: Optional[ExtractedQuestion] = None
    issues: List[str] = field(default_factory=list)
    reason: str = ""
    solved: Optional[SolvedAnswer] = None

    @property
    def is_valid(self) -> bool:
        return self.status != REJECTED


@dataclass
class DocumentExtraction:
    """Complete two-pass extraction results for one document."""
    questions: List[ExtractedQuestion] = field(default_factory=list)
    shared_descriptions: Dict[int, str] = field(default_factory=dict)
    multi_page_pages: List[int] = field(default_factory=list)
    question_numbers: Dict[int, List[str]] = field(default_factory=dict)
    structure_failures: Dict[int, str] = field(default_factory=dict)
    extraction_failures: Dict[int, str] = field(default_factory=dict)
    empty_pages: List[int] = field(default_factory=list)
    pages_processed: int = 0

    @property
    def failed_pages(self) -> List[int]:
        return sorted(self.extraction_failures)

    def questions_on_page(self, page_number: int) -> List[ExtractedQuestion]:
        return [q for q in self.questions if q.page_number == page_number]
