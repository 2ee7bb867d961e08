"""
Practice question generation from topic notes and previous-year questions.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from config import (
    MCQ_FIX_LETTERS,
    MCQ_OPTION_COUNT,
    PYQ_SAMPLE_SIZE,
    PYQ_SOLVE_BATCH,
    RECENT_CONTEXT_CHARS,
    RECENT_CONTEXT_WINDOW,
)
from pipeline.answer_validator import ValidationResult, validate_question_answer
from pipeline.models import ExtractedQuestion, Topic, normalize_question_type
from utils.gemini_client import FIX_CONFIG, GENERATION_CONFIG, GeminiClient
from utils.json_utils import parse_json_response

logger = logging.getLogger(__name__)


QUESTION_TYPE_INSTRUCTIONS = {
    "MCQ": (
        "Generate Multiple Choice Questions with exactly 4 options (A, B, C, D). "
        "Only ONE option should be correct. Ensure equal distribution of correct "
        "answers across options A, B, C, D over multiple questions."
    ),
    "MSQ": (
        "Generate Multiple Select Questions with 4-5 options. MORE THAN ONE option "
        "can be correct. Include partial marking scenarios."
    ),
    "NAT": (
        "Generate Numerical Answer Type questions where the answer is a number "
        "(integer or decimal). No options needed."
    ),
    "Subjective": (
        "Generate descriptive questions that require detailed explanations, proofs, "
        "or derivations. No options needed."
    ),
}


GENERATION_PROMPT = """You are an expert question generator for {exam_name} - {course_name} entrance examination.

TOPIC: {topic_name}
WEIGHTAGE: {weightage:.1f}% of total syllabus
QUESTION TYPE: {question_type}

TOPIC NOTES (Use these concepts in solutions):
{topic_notes}

PREVIOUS YEAR QUESTIONS FROM THIS TOPIC:
{pyq_context}

EXISTING QUESTIONS ALREADY GENERATED FOR THIS TOPIC ({existing_count} questions):
{existing_context}

RECENTLY GENERATED QUESTIONS (Don't repeat):
{recent_context}

INSTRUCTIONS:
1. {type_instructions}
2. Analyze the PYQ patterns and generate questions of SIMILAR or HIGHER difficulty
3. Use the PYQs as reference for difficulty and style only - NEVER copy them
4. CRITICAL: DO NOT repeat any of the existing questions shown above - generate completely NEW and UNIQUE questions
5. Use different problem scenarios, numerical values, and contexts from existing questions
6. For MCQ: The answer must be EXACTLY one of A, B, C, D and that option must hold the correct value
7. For MSQ: Can have 1, 2, 3, or 4 correct options. ENSURE every correct answer is present among the options
8. Use LaTeX for mathematical expressions: $ for inline, $$ for display
9. Make distractors (wrong options) plausible but clearly incorrect
10. VERIFY that the answer matches the options before returning the response

ANSWER FORMAT:
- For MCQ: a single letter like "A"
- For MSQ: one or more letters like "A", "B,C", "A,C,D"
- For NAT: a plain number like "12.5"
- For Subjective: the key points of a complete answer

Generate {count} high-quality {question_type} question(s) for this topic.

RESPONSE FORMAT (JSON only):
[
  {{
    "question_statement": "Complete question with LaTeX math formatting",
    "question_type": "{question_type}",
    "options": {options_example},
    "answer": "Correct answer in the format above",
    "solution": "Detailed step-by-step solution using concepts from topic notes",
    "topic_id": "{topic_id}",
    "difficulty_level": "Medium"
  }}
]

CRITICAL: Return ONLY valid JSON. Use double backslashes (\\\\) for LaTeX commands.
"""


PYQ_SOLUTIONS_PROMPT = """You are an expert solution generator for competitive exam questions.

TOPIC NOTES (Base your solutions on these concepts):
{topic_notes}

PREVIOUS YEAR QUESTIONS TO SOLVE:
{pyq_context}

INSTRUCTIONS:
1. Generate accurate answers and detailed solutions for each PYQ, in the same order
2. For MCQ/MSQ: Identify the correct option(s) and explain why others are wrong
3. For NAT: Provide the exact numerical answer
4. For Subjective: Provide comprehensive step-by-step solutions
5. Use LaTeX for mathematical expressions: $ for inline, $$ for display

RESPONSE FORMAT (JSON only):
[
  {{
    "answer": "for MCQ: 'A', for MSQ: 'A,C', for NAT: numerical value, for Subjective: key result",
    "solution": "Detailed step-by-step solution with LaTeX formatting"
  }}
]

CRITICAL: Return ONLY valid JSON. Use double backslashes (\\\\) for LaTeX commands.
"""


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def check_mcq_shape(question: ExtractedQuestion) -> ValidationResult:
    """Generated MCQs carry exactly four options and an answer in A-D."""
    if len(question.options or []) != MCQ_OPTION_COUNT:
        return ValidationResult(False, f"MCQ must have exactly {MCQ_OPTION_COUNT} options")
    if (question.answer or "").strip().upper() not in tuple(MCQ_FIX_LETTERS):
        return ValidationResult(False, f'Answer "{question.answer}" is not one of A, B, C, D')
    return ValidationResult(True, "Valid MCQ shape")


def format_pyq_context(pyqs: Sequence[Any], limit: int = PYQ_SAMPLE_SIZE) -> str:
    """Numbered PYQ list. Accepts dicts or ExtractedQuestion records."""
    blocks = []
    for index, pyq in enumerate(list(pyqs)[:limit], start=1):
        block = f"PYQ {index}: {_field(pyq, 'question_statement', '')}"
        options = _field(pyq, "options")
        if options:
            block += f"\nOptions: {', '.join(str(o) for o in options)}"
        blocks.append(block)
    return "\n\n".join(blocks)


def format_recent_context(recently_generated: Sequence[str]) -> str:
    recent = list(recently_generated)[-RECENT_CONTEXT_WINDOW:]
    return "\n\n".join(
        f"Recent {index}: {text[:RECENT_CONTEXT_CHARS]}..."
        for index, text in enumerate(recent, start=1)
    )


class QuestionGenerator:
    """Generates new questions for a topic in one Gemini call per request."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def build_prompt(
        self,
        topic: Topic,
        exam_name: str,
        course_name: str,
        question_type: str,
        pyqs: Sequence[Any] = (),
        existing_questions_context: str = "",
        recently_generated: Sequence[str] = (),
        count: int = 1,
    ) -> str:
        question_type = normalize_question_type(question_type)
        existing_count = len(existing_questions_context.split("\n\n")) if existing_questions_context else 0
        if question_type in ("MCQ", "MSQ"):
            options_example = '["Option A", "Option B", "Option C", "Option D"]'
        else:
            options_example = "null"

        return GENERATION_PROMPT.format(
            exam_name=exam_name,
            course_name=course_name,
            topic_name=topic.name,
            weightage=(topic.weightage or 0.02) * 100,
            question_type=question_type,
            topic_notes=topic.notes or "No specific notes available",
            pyq_context=format_pyq_context(pyqs) or "No PYQs available for this topic",
            existing_count=existing_count,
            existing_context=existing_questions_context or "No existing questions generated yet for this topic",
            recent_context=format_recent_context(recently_generated) or "No recent questions",
            type_instructions=QUESTION_TYPE_INSTRUCTIONS[question_type],
            count=count,
            options_example=options_example,
            topic_id=topic.id,
        )

    def generate(
        self,
        topic: Topic,
        exam_name: str,
        course_name: str,
        question_type: str,
        pyqs: Sequence[Any] = (),
        existing_questions_context: str = "",
        recently_generated: Sequence[str] = (),
        count: int = 1,
    ) -> List[ExtractedQuestion]:
        """
        Generate `count` new questions of `question_type` for `topic`.

        Records whose answer does not fit their own options (or type) are
        dropped. A reply without usable JSON gives [].

        Raises:
            PoolExhaustedError, or any non-rate-limit error from the client.
        """
        question_type = normalize_question_type(question_type)
        prompt = self.build_prompt(
            topic, exam_name, course_name, question_type,
            pyqs, existing_questions_context, recently_generated, count,
        )

        reply = self.client.call(
            prompt,
            operation=f"question generation (topic {topic.name})",
            generation_config=GENERATION_CONFIG,
        )

        data = parse_json_response(reply)
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            logger.warning("No valid JSON found for topic %s", topic.name)
            return []

        questions = []
        for i, item in enumerate(data):
            if isinstance(item, dict):
                item = dict(item)
                item.setdefault("question_type", question_type)
                item.setdefault("topic_id", topic.id)
            try:
                question = ExtractedQuestion.from_dict(item)
            except ValueError as e:
                logger.warning("Topic %s: skipping generated record %d: %s", topic.name, i + 1, e)
                continue

            question.confidence_score = 1.0
            check = validate_question_answer(question)
            if check.is_valid and question.question_type == "MCQ":
                check = check_mcq_shape(question)
            if not check.is_valid:
                logger.warning(
                    "Topic %s: dropping generated question %d: %s", topic.name, i + 1, check.message
                )
                continue
            questions.append(question)

        return questions

    def solve_pyqs(self, pyqs: Sequence[Any], topic_notes: Optional[str] = None) -> List[Dict[str, str]]:
        """
        Produce answers and solutions for up to PYQ_SOLVE_BATCH previous-year questions.

        Returns a list of {"answer", "solution"} dicts in PYQ order, [] when the
        reply cannot be parsed.
        """
        batch = list(pyqs)[:PYQ_SOLVE_BATCH]
        if not batch:
            return []

        blocks = []
        for index, pyq in enumerate(batch, start=1):
            block = f"PYQ {index}:\nQuestion: {_field(pyq, 'question_statement', '')}"
            options = _field(pyq, "options")
            if options:
                block += f"\nOptions: {', '.join(str(o) for o in options)}"
            block += f"\nType: {_field(pyq, 'question_type', 'Unknown')}"
            block += f"\nYear: {_field(pyq, 'year') or 'Unknown'}"
            blocks.append(block)

        prompt = PYQ_SOLUTIONS_PROMPT.format(
            topic_notes=topic_notes or "Use standard concepts for this topic",
            pyq_context="\n\n".join(blocks),
        )
        reply = self.client.call(prompt, operation="PYQ solutions", generation_config=FIX_CONFIG)

        data = parse_json_response(reply)
        if not isinstance(data, list):
            logger.warning("No valid JSON found for PYQ solutions")
            return []

        return [
            {"answer": str(item.get("answer", "")), "solution": str(item.get("solution", ""))}
            for item in data
            if isinstance(item, dict)
        ]
