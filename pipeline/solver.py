"""
Solve -> Validate -> Fix loop for single questions.

The model solves each question from its statement and options alone; the
stated answer is then checked against that independent solution. A
question with issues gets exactly one repair call and is re-checked.

For MCQ repairs the correct option letter is drawn uniformly from A-D before
prompting and the model is told to put the solved answer there, so correct
letters stay evenly spread over a batch.
"""

import logging
import random
from dataclasses import replace
from typing import Iterable, List, Optional

from config import (
    MCQ_FIX_LETTERS,
    MCQ_OPTION_COUNT,
    MIN_SOLUTION_LENGTH,
    MIN_STATEMENT_LENGTH,
    MSQ_MAX_OPTIONS,
    MSQ_MIN_OPTIONS,
    NAT_TOLERANCE,
    QUESTION_TYPES,
    SUBJECTIVE_MIN_ANSWER_LENGTH,
    VALIDATION_DELAY,
)
from pipeline.answer_validator import (
    letter_to_index,
    parse_answer_letters,
    parse_number,
    validate_question_answer,
)
from pipeline.models import (
    ACCEPTED,
    FIXED,
    REJECTED,
    ExtractedQuestion,
    FixOutcome,
    SolvedAnswer,
    coerce_answer,
    coerce_options,
)
from utils.gemini_client import EXTRACTION_CONFIG, FIX_CONFIG, GeminiClient
from utils.json_utils import MalformedOutputError, require_json
from utils.throttle import Throttle

logger = logging.getLogger(__name__)


SOLVE_PROMPT = """You are an expert problem solver for competitive exams. Solve this {question_type} question step by step.

QUESTION: {question_statement}
{options_block}
QUESTION TYPE: {question_type}

INSTRUCTIONS:
1. Read and understand the question completely
2. Solve it step by step using proper mathematical/scientific methods
3. For MCQ: Identify which single option (A, B, C, or D) is correct
4. For MSQ: Identify which options (can be 1, 2, 3, or 4) are correct
5. For NAT: Calculate the exact numerical answer
6. For Subjective: Provide the key result/conclusion
7. Provide detailed reasoning and solution steps
8. Use LaTeX for mathematical expressions

RESPONSE FORMAT (JSON only):
{{
  "correctAnswer": "For MCQ: 'A', 'B', 'C', or 'D'. For MSQ: 'A', 'B,C', 'A,C,D', etc. For NAT: numerical value. For Subjective: key result",
  "solution": "Detailed step-by-step solution with LaTeX formatting",
  "reasoning": "Brief explanation of why this is the correct answer"
}}

CRITICAL: Return ONLY valid JSON. Use double backslashes (\\\\) for LaTeX commands.
"""


FIX_REQUIREMENTS = {
    "MCQ": """1. CRITICAL: The correct answer MUST be option {letter} (position {position})
2. Create 4 high-quality options where option {letter} contains the solved answer
3. Make all options plausible and competitive exam quality""",
    "MSQ": """1. Create 4-5 high-quality options
2. Ensure the solved answer options are correct
3. Make other options plausible but incorrect""",
    "NAT": """1. Ensure the question leads to the solved numerical answer
2. Adjust question statement if needed to match the solved answer
3. No options needed for NAT questions""",
    "Subjective": """1. Ensure the question is clear and complete
2. Provide comprehensive answer based on solved solution
3. No options needed for Subjective questions""",
}


FIX_PROMPT = """You are an expert question corrector for competitive exams. Fix this {question_type} question based on the solved answer and identified issues.

ORIGINAL QUESTION: {question_statement}
{options_block}
ORIGINAL ANSWER: {answer}
ORIGINAL SOLUTION: {solution}

SOLVED CORRECT ANSWER: {solved_answer}
SOLVED SOLUTION: {solved_solution}
SOLVED REASONING: {solved_reasoning}

IDENTIFIED ISSUES: {issues}

FIXING REQUIREMENTS:
{requirements}

QUALITY STANDARDS:
- Keep question statement as close to original as possible unless it has errors
- All options should be at similar difficulty level
- Avoid obviously wrong options - make them plausible
- Use proper mathematical notation and LaTeX formatting
- Ensure solution explains the reasoning clearly
- Make distractors based on common mistakes or alternative approaches

RESPONSE FORMAT (JSON only):
{{
  "question_statement": "Fixed question statement (only if needed)",
  "options": {options_example},
  "answer": "{answer_example}",
  "solution": "Comprehensive solution based on solved reasoning"
}}

CRITICAL: Return ONLY valid JSON. Use double backslashes (\\\\) for LaTeX commands.
{answer_rule}"""


def _options_block(question: ExtractedQuestion, label: str) -> str:
    if not question.options:
        return ""
    return f"{label}: {question.format_options()}"


def find_issues(question: ExtractedQuestion, solved: SolvedAnswer) -> List[str]:
    """
    Compare a question against an independent solution.

    Returns a list of human-readable issues; empty means the question is
    consistent. Pure function, no model calls.
    """
    issues = []

    if len((question.question_statement or "").strip()) < MIN_STATEMENT_LENGTH:
        issues.append("Question statement is too short or empty")

    solved_answer = (solved.correct_answer or "").strip()
    stated = question.answer or ""
    options = question.options or []

    if question.question_type == "MCQ":
        if len(options) != MCQ_OPTION_COUNT:
            issues.append(f"MCQ must have exactly {MCQ_OPTION_COUNT} options")
        else:
            correct_option = solved_answer.upper()
            if correct_option not in MCQ_FIX_LETTERS or len(correct_option) != 1:
                issues.append("Solved answer is not a valid MCQ option (A, B, C, D)")
            if stated.strip().upper() != correct_option:
                issues.append(f'Current answer "{question.answer}" doesn\'t match solved answer "{correct_option}"')

    elif question.question_type == "MSQ":
        if not MSQ_MIN_OPTIONS <= len(options) <= MSQ_MAX_OPTIONS:
            issues.append(f"MSQ must have {MSQ_MIN_OPTIONS}-{MSQ_MAX_OPTIONS} options")
        else:
            solved_letters = parse_answer_letters(solved_answer)
            for letter in solved_letters:
                index = letter_to_index(letter)
                if index == -1 or index >= len(options):
                    issues.append(f'Invalid MSQ option "{letter}" in solved answer')
            if sorted(set(parse_answer_letters(stated))) != sorted(set(solved_letters)):
                issues.append(f'Current answer "{question.answer}" doesn\'t match solved answer "{solved_answer}"')

    elif question.question_type == "NAT":
        solved_value = parse_number(solved_answer)
        if solved_value is None:
            issues.append("NAT question solved answer is not numerical")
        current_value = parse_number(stated)
        if current_value is None or solved_value is None or abs(current_value - solved_value) > NAT_TOLERANCE:
            issues.append(f'Current answer "{question.answer}" doesn\'t match solved answer "{solved_answer}"')

    elif question.question_type == "Subjective":
        if not solved_answer:
            issues.append("Solver produced no answer")
        if len(stated.strip()) < SUBJECTIVE_MIN_ANSWER_LENGTH:
            issues.append("Subjective answer is too short or missing")

    if question.question_type in QUESTION_TYPES:
        # Stated answer must also satisfy the per-type format rules
        check = validate_question_answer(question)
        if not check.is_valid:
            issues.append(check.message)

    if len((question.solution or "").strip()) < MIN_SOLUTION_LENGTH:
        issues.append("Solution is too short or missing")

    return issues


class QuestionSolver:
    """Runs the Solve -> Validate -> Fix loop against Gemini."""

    def __init__(
        self,
        client: GeminiClient,
        rng: Optional[random.Random] = None,
        throttle: Optional[Throttle] = None,
    ):
        self.client = client
        self.rng = rng or random.Random()
        self.throttle = throttle or Throttle(VALIDATION_DELAY)

    def solve(self, question: ExtractedQuestion) -> SolvedAnswer:
        """
        Independently solve a question from its statement and options.

        Raises:
            MalformedOutputError: the reply has no JSON or no correctAnswer.
            PoolExhaustedError, or any non-rate-limit error from the client.
        """
        prompt = SOLVE_PROMPT.format(
            question_type=question.question_type,
            question_statement=question.question_statement,
            options_block=_options_block(question, "OPTIONS"),
        )
        reply = self.client.call(
            prompt,
            operation="question solving",
            generation_config=EXTRACTION_CONFIG,
        )

        data = require_json(reply, "question solving")
        if not isinstance(data, dict) or data.get("correctAnswer") in (None, ""):
            raise MalformedOutputError("Solver reply has no correctAnswer")

        return SolvedAnswer(
            correct_answer=coerce_answer(data["correctAnswer"]),
            solution=str(data.get("solution") or ""),
            reasoning=str(data.get("reasoning") or ""),
        )

    def find_issues(self, question: ExtractedQuestion, solved: SolvedAnswer) -> List[str]:
        return find_issues(question, solved)

    def choose_correct_letter(self) -> str:
        return self.rng.choice(MCQ_FIX_LETTERS)

    def build_fix_prompt(
        self,
        question: ExtractedQuestion,
        solved: SolvedAnswer,
        issues: List[str],
        correct_letter: Optional[str] = None,
    ) -> str:
        question_type = question.question_type
        if question_type == "MCQ":
            requirements = FIX_REQUIREMENTS["MCQ"].format(
                letter=correct_letter,
                position=MCQ_FIX_LETTERS.index(correct_letter) + 1,
            )
            answer_example = correct_letter
            answer_rule = (
                f'CRITICAL: The answer MUST be "{correct_letter}" and option '
                f"{correct_letter} must contain the solved answer\n"
            )
        else:
            requirements = FIX_REQUIREMENTS[question_type]
            answer_example = "Fixed answer based on solved answer"
            answer_rule = ""

        if question_type in ("MCQ", "MSQ"):
            options_example = '["Fixed Option A", "Fixed Option B", "Fixed Option C", "Fixed Option D"]'
        else:
            options_example = "null"

        return FIX_PROMPT.format(
            question_type=question_type,
            question_statement=question.question_statement,
            options_block=_options_block(question, "ORIGINAL OPTIONS"),
            answer=question.answer,
            solution=question.solution or "No solution provided",
            solved_answer=solved.correct_answer,
            solved_solution=solved.solution,
            solved_reasoning=solved.reasoning,
            issues=", ".join(issues),
            requirements=requirements,
            options_example=options_example,
            answer_example=answer_example,
            answer_rule=answer_rule,
        )

    def fix(
        self,
        question: ExtractedQuestion,
        solved: SolvedAnswer,
        issues: List[str],
        correct_letter: Optional[str] = None,
    ) -> ExtractedQuestion:
        """
        One repair call. Returns a new record; `question` is left untouched.

        For MCQ, `correct_letter` is the pre-drawn target position (drawn here
        when omitted). The question type never changes.

        Raises:
            MalformedOutputError: the reply has no usable JSON object.
            PoolExhaustedError, or any non-rate-limit error from the client.
        """
        if question.question_type == "MCQ" and correct_letter is None:
            correct_letter = self.choose_correct_letter()

        prompt = self.build_fix_prompt(question, solved, issues, correct_letter)
        reply = self.client.call(
            prompt,
            operation="question fixing",
            generation_config=FIX_CONFIG,
        )

        data = require_json(reply, "question fixing")
        if not isinstance(data, dict):
            raise MalformedOutputError("Fix reply is not a JSON object")

        return replace(
            question,
            question_statement=str(data.get("question_statement") or question.question_statement),
            options=coerce_options(data.get("options")) or question.options,
            answer=coerce_answer(data.get("answer")),
            solution=str(data.get("solution") or ""),
        )

    def validate_and_fix(self, question: ExtractedQuestion) -> FixOutcome:
        """
        Solve, check, and repair once if needed.

        Returns:
            FixOutcome with status accepted (no issues), fixed (repair passed
            re-validation) or rejected (repair still failing, or any error
            along the way, with the reason).
        """
        try:
            solved = self.solve(question)
            issues = self.find_issues(question, solved)
            if not issues:
                return FixOutcome(status=ACCEPTED, question=question, solved=solved)

            logger.info("Question has %d issue(s), fixing: %s", len(issues), "; ".join(issues))

            correct_letter = None
            reference = solved
            if question.question_type == "MCQ":
                correct_letter = self.choose_correct_letter()
                # The solved content now lives at the drawn letter
                reference = replace(solved, correct_answer=correct_letter)

            fixed = self.fix(question, solved, issues, correct_letter)
            remaining = self.find_issues(fixed, reference)
            if remaining:
                return FixOutcome(
                    status=REJECTED,
                    question=fixed,
                    issues=issues + remaining,
                    reason=f"Question still has issues after fixing: {', '.join(remaining)}",
                    solved=solved,
                )
            return FixOutcome(status=FIXED, question=fixed, issues=issues, solved=solved)

        except Exception as e:
            logger.error("Error in question validation/fixing: %s", e)
            return FixOutcome(status=REJECTED, question=question, reason=f"Validation failed: {e}")

    def validate_batch(self, questions: Iterable[ExtractedQuestion]) -> List[FixOutcome]:
        """Run validate_and_fix over questions one at a time, throttled."""
        outcomes = []
        for question in questions:
            self.throttle.wait()
            outcomes.append(self.validate_and_fix(question))
        return outcomes
