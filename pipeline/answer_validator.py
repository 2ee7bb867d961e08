"""
Answer format checks per question type. No model calls.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from config import (
    MSQ_MAX_CORRECT,
    NAT_PATTERN,
    OPTION_LETTERS,
    SUBJECTIVE_MIN_ANSWER_LENGTH,
)

_NAT_RE = re.compile(rf"^{NAT_PATTERN}$")


@dataclass
class ValidationResult:
    """Result of validation check."""
    is_valid: bool
    message: str = ""

    def __bool__(self) -> bool:
        return self.is_valid


def letter_to_index(letter: str) -> int:
    """'A' -> 0, 'B' -> 1, ... (-1 for anything else)."""
    letter = letter.strip().upper()
    if len(letter) != 1 or letter not in OPTION_LETTERS:
        return -1
    return OPTION_LETTERS.index(letter)


def parse_answer_letters(answer: Optional[str]) -> List[str]:
    """Split 'a, C' into ['A', 'C']. Empty entries are kept out."""
    if not answer:
        return []
    return [part.strip().upper() for part in answer.split(",") if part.strip()]


def validate_mcq_answer(options: Optional[Sequence[str]], answer: Optional[str]) -> ValidationResult:
    if not options:
        return ValidationResult(False, "No options provided for MCQ")
    if not answer or not answer.strip():
        return ValidationResult(False, "No answer provided")

    clean = answer.strip().upper()
    if len(clean) != 1 or clean not in OPTION_LETTERS:
        return ValidationResult(False, f'Answer "{answer}" is not a valid option (A, B, C, D, E)')

    index = letter_to_index(clean)
    if index >= len(options):
        return ValidationResult(
            False,
            f'Answer "{answer}" refers to option {index + 1} but only {len(options)} options provided',
        )
    return ValidationResult(True, "Valid MCQ answer")


def validate_msq_answer(options: Optional[Sequence[str]], answer: Optional[str]) -> ValidationResult:
    if not options:
        return ValidationResult(False, "No options provided for MSQ")
    if not answer or not answer.strip():
        return ValidationResult(False, "No answer provided")

    letters = [part.strip().upper() for part in answer.split(",")]
    for letter in letters:
        index = letter_to_index(letter)
        if index == -1:
            return ValidationResult(False, f'Answer option "{letter}" is not valid (A, B, C, D, E)')
        if index >= len(options):
            return ValidationResult(
                False,
                f'Answer option "{letter}" refers to option {index + 1} but only {len(options)} options provided',
            )

    if len(set(letters)) != len(letters):
        return ValidationResult(False, f'Answer "{answer}" repeats an option')
    if not 1 <= len(letters) <= MSQ_MAX_CORRECT:
        return ValidationResult(False, f"MSQ should have 1-{MSQ_MAX_CORRECT} correct options")
    return ValidationResult(True, "Valid MSQ answer")


def validate_nat_answer(answer: Optional[str]) -> ValidationResult:
    if not answer or not answer.strip():
        return ValidationResult(False, "No answer provided")
    if not _NAT_RE.match(answer.strip()):
        return ValidationResult(False, f'NAT answer "{answer}" is not a valid number')
    return ValidationResult(True, "Valid NAT answer")


def validate_subjective_answer(answer: Optional[str]) -> ValidationResult:
    if not answer or not answer.strip():
        return ValidationResult(False, "No answer provided")
    if len(answer.strip()) < SUBJECTIVE_MIN_ANSWER_LENGTH:
        return ValidationResult(
            False,
            f"Subjective answer is too short (minimum {SUBJECTIVE_MIN_ANSWER_LENGTH} characters)",
        )
    return ValidationResult(True, "Answer present")


def validate_question_answer(question) -> ValidationResult:
    """Dispatch on question_type. Accepts an ExtractedQuestion."""
    answer = question.answer
    if not answer or not answer.strip():
        return ValidationResult(False, "No answer provided")

    if question.question_type == "MCQ":
        return validate_mcq_answer(question.options, answer)
    if question.question_type == "MSQ":
        return validate_msq_answer(question.options, answer)
    if question.question_type == "NAT":
        return validate_nat_answer(answer)
    if question.question_type == "Subjective":
        return validate_subjective_answer(answer)
    return ValidationResult(False, "Unknown question type")


def parse_number(value: Optional[str]) -> Optional[float]:
    """Leading numeric value of an answer, like JavaScript's parseFloat."""
    if value is None:
        return None
    match = re.match(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)", str(value))
    if not match:
        return None
    return float(match.group(1))
