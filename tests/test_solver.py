"""
Tests for the Solve -> Validate -> Fix loop.

Gemini is replaced by a router that answers solve prompts and fix prompts
differently; all tests are offline and seeded.
"""
import json
import random
import re
from collections import Counter

import pytest

from pipeline.models import ACCEPTED, FIXED, REJECTED, ExtractedQuestion, SolvedAnswer
from pipeline.solver import QuestionSolver, find_issues
from tests.conftest import FakeBackend
from utils.gemini_client import EXTRACTION_CONFIG, FIX_CONFIG
from utils.json_utils import MalformedOutputError
from utils.throttle import NoThrottle

SOLUTION = "Area of the circle is pi r^2 = 3.14 * 2^2 = 12.56 square units."
_TARGET_LETTER = re.compile(r'The answer MUST be "([ABCD])"')


def _make_q(question_type="MCQ", answer="A", options=None, solution=SOLUTION,
            statement="What is the area of a circle of radius 2 units?"):
    if options is None and question_type in ("MCQ", "MSQ"):
        options = ["12.56", "6.28", "3.14", "25.12"]
    return ExtractedQuestion(
        question_type=question_type,
        question_statement=statement,
        options=options,
        answer=answer,
        solution=solution,
    )


def _solve_reply(answer):
    return json.dumps({"correctAnswer": answer, "solution": SOLUTION, "reasoning": "pi r squared"})


def _is_solve_prompt(prompt):
    return prompt.startswith("You are an expert problem solver")


def _router(solved_answer, fix_reply):
    """Answer solve prompts with `solved_answer`; fix prompts via fix_reply(prompt)."""
    def respond(prompt):
        if _is_solve_prompt(prompt):
            return _solve_reply(solved_answer)
        return fix_reply(prompt)
    return respond


def _echo_target_letter(prompt):
    """A well-behaved fixer: puts the answer wherever it was told to."""
    letter = _TARGET_LETTER.search(prompt).group(1)
    return json.dumps({
        "question_statement": "What is the area of a circle of radius 2 units?",
        "options": ["6.28", "12.56", "3.14", "25.12"],
        "answer": letter,
        "solution": SOLUTION,
    })


def _solver(client, seed=7):
    return QuestionSolver(client, rng=random.Random(seed), throttle=NoThrottle())


# ---------------------------------------------------------------------------
# solve()
# ---------------------------------------------------------------------------

class TestSolve:
    def test_returns_solved_answer(self, make_client):
        backend = FakeBackend([_solve_reply("C")])
        solved = _solver(make_client(backend)).solve(_make_q())
        assert solved == SolvedAnswer(correct_answer="C", solution=SOLUTION, reasoning="pi r squared")
        assert backend.calls[0]["generation_config"] == EXTRACTION_CONFIG

    def test_prompt_never_shows_stated_answer_or_solution(self, make_client):
        backend = FakeBackend([_solve_reply("42.125")])
        question = _make_q("NAT", answer="42.125", solution="Stated solution text that must stay hidden")
        _solver(make_client(backend)).solve(question)
        prompt = backend.prompts[0]
        assert "42.125" not in prompt
        assert "Stated solution text" not in prompt
        assert question.question_statement in prompt

    def test_options_listed_with_letters(self, make_client):
        backend = FakeBackend([_solve_reply("A")])
        _solver(make_client(backend)).solve(_make_q())
        assert "OPTIONS: A: 12.56\nB: 6.28\nC: 3.14\nD: 25.12" in backend.prompts[0]

    def test_list_answer_joined(self, make_client):
        backend = FakeBackend([json.dumps({"correctAnswer": ["A", "C"]})])
        assert _solver(make_client(backend)).solve(_make_q("MSQ")).correct_answer == "A,C"

    def test_no_json_raises(self, make_client):
        backend = FakeBackend(["The answer is clearly A."])
        with pytest.raises(MalformedOutputError):
            _solver(make_client(backend)).solve(_make_q())

    def test_missing_correct_answer_raises(self, make_client):
        backend = FakeBackend([json.dumps({"solution": "..."})])
        with pytest.raises(MalformedOutputError):
            _solver(make_client(backend)).solve(_make_q())


# ---------------------------------------------------------------------------
# find_issues()
# ---------------------------------------------------------------------------

class TestFindIssues:
    def test_consistent_mcq(self):
        assert find_issues(_make_q(answer="a"), SolvedAnswer("A")) == []

    def test_mcq_mismatch(self):
        issues = find_issues(_make_q(answer="A"), SolvedAnswer("B"))
        assert issues == ['Current answer "A" doesn\'t match solved answer "B"']

    def test_mcq_wrong_option_count(self):
        issues = find_issues(_make_q(options=["1", "2", "3"]), SolvedAnswer("A"))
        assert "MCQ must have exactly 4 options" in issues

    def test_mcq_solved_letter_outside_a_to_d(self):
        issues = find_issues(_make_q(answer="E"), SolvedAnswer("E"))
        assert "Solved answer is not a valid MCQ option (A, B, C, D)" in issues

    def test_msq_sorted_set_equality(self):
        assert find_issues(_make_q("MSQ", answer="C, A"), SolvedAnswer("A,C")) == []

    def test_msq_mismatch(self):
        issues = find_issues(_make_q("MSQ", answer="A,B"), SolvedAnswer("A,C"))
        assert len(issues) == 1

    def test_msq_too_few_options(self):
        issues = find_issues(_make_q("MSQ", options=["x", "y", "z"], answer="A"), SolvedAnswer("A"))
        assert "MSQ must have 4-5 options" in issues

    def test_nat_within_tolerance(self):
        assert find_issues(_make_q("NAT", answer="12.5604"), SolvedAnswer("12.56")) == []

    def test_nat_outside_tolerance(self):
        assert find_issues(_make_q("NAT", answer="12.562"), SolvedAnswer("12.56"))

    def test_nat_non_numeric_solution(self):
        issues = find_issues(_make_q("NAT", answer="12.56"), SolvedAnswer("about twelve"))
        assert "NAT question solved answer is not numerical" in issues

    def test_msq_letter_beyond_option_count(self):
        issues = find_issues(_make_q("MSQ", answer="A,E"), SolvedAnswer("A,E"))
        assert 'Invalid MSQ option "E" in solved answer' in issues
        assert any("only 4 options provided" in issue for issue in issues)

    def test_msq_repeated_letter_in_stated_answer(self):
        issues = find_issues(_make_q("MSQ", answer="A,A,B"), SolvedAnswer("A,B"))
        assert issues == ['Answer "A,A,B" repeats an option']

    def test_nat_with_units_rejected(self):
        issues = find_issues(_make_q("NAT", answer="12.56 cm^2"), SolvedAnswer("12.56"))
        assert issues == ['NAT answer "12.56 cm^2" is not a valid number']

    def test_subjective(self):
        question = _make_q("Subjective", answer="The area is 4 pi square units.")
        assert find_issues(question, SolvedAnswer("4 pi")) == []
        assert find_issues(_make_q("Subjective", answer="4pi"), SolvedAnswer("4 pi"))

    def test_short_statement_and_solution(self):
        issues = find_issues(_make_q(statement="Area?", solution="pi r^2"), SolvedAnswer("A"))
        assert "Question statement is too short or empty" in issues
        assert "Solution is too short or missing" in issues


# ---------------------------------------------------------------------------
# validate_and_fix()
# ---------------------------------------------------------------------------

class TestValidateAndFix:
    def test_valid_question_never_fixed(self, make_client):
        backend = FakeBackend(default=_router("A", _echo_target_letter))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q(answer="A"))

        assert outcome.status == ACCEPTED
        assert outcome.is_valid
        assert outcome.issues == []
        assert len(backend.calls) == 1

    def test_mismatch_fixed_at_drawn_letter(self, make_client):
        backend = FakeBackend(default=_router("B", _echo_target_letter))
        solver = _solver(make_client(backend), seed=3)
        expected_letter = random.Random(3).choice("ABCD")

        original = _make_q(answer="A")
        outcome = solver.validate_and_fix(original)

        assert outcome.status == FIXED
        assert outcome.question.answer == expected_letter
        assert outcome.question.question_type == "MCQ"
        assert outcome.issues
        assert len(backend.calls) == 2
        assert backend.calls[1]["generation_config"] == FIX_CONFIG
        assert original.answer == "A"

    def test_fix_that_ignores_target_is_rejected(self, make_client):
        def stubborn(prompt):
            letter = _TARGET_LETTER.search(prompt).group(1)
            wrong = "A" if letter != "A" else "B"
            return json.dumps({"options": ["1", "2", "3", "4"], "answer": wrong, "solution": SOLUTION})

        backend = FakeBackend(default=_router("C", stubborn))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q(answer="A"))

        assert outcome.status == REJECTED
        assert not outcome.is_valid
        assert outcome.reason.startswith("Question still has issues after fixing")
        assert len(outcome.issues) >= 2
        assert len(backend.calls) == 2

    def test_nat_fix_checked_against_solution(self, make_client):
        def fixer(prompt):
            return json.dumps({"answer": "12.56", "solution": SOLUTION, "options": None})

        backend = FakeBackend(default=_router("12.56", fixer))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q("NAT", answer="12"))

        assert outcome.status == FIXED
        assert outcome.question.answer == "12.56"
        assert outcome.question.options is None

    def test_msq_fix_with_repeated_letters_rejected(self, make_client):
        def fixer(prompt):
            return json.dumps({"options": ["a", "b", "c", "d"], "answer": "A,A,C", "solution": SOLUTION})

        backend = FakeBackend(default=_router("A,C", fixer))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q("MSQ", answer="A,B"))

        assert outcome.status == REJECTED
        assert 'Answer "A,A,C" repeats an option' in outcome.issues

    def test_nat_fix_with_units_rejected(self, make_client):
        def fixer(prompt):
            return json.dumps({"answer": "12.56 cm^2", "solution": SOLUTION, "options": None})

        backend = FakeBackend(default=_router("12.56", fixer))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q("NAT", answer="12.56 cm^2"))

        assert outcome.status == REJECTED
        assert len(backend.calls) == 2

    def test_mcq_fix_with_five_options_rejected(self, make_client):
        def fixer(prompt):
            letter = _TARGET_LETTER.search(prompt).group(1)
            return json.dumps({"options": ["1", "2", "3", "4", "5"], "answer": letter, "solution": SOLUTION})

        backend = FakeBackend(default=_router("B", fixer))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q(answer="A"))

        assert outcome.status == REJECTED
        assert "MCQ must have exactly 4 options" in outcome.issues

    def test_solver_error_becomes_rejection(self, make_client):
        backend = FakeBackend(["I refuse."])
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q())

        assert outcome.status == REJECTED
        assert "No valid JSON" in outcome.reason
        assert outcome.question.answer == "A"

    def test_pool_exhaustion_becomes_rejection(self, make_client):
        backend = FakeBackend(default=RuntimeError("429 Too Many Requests"))
        outcome = _solver(make_client(backend)).validate_and_fix(_make_q())
        assert outcome.status == REJECTED
        assert "exhausted" in outcome.reason


# ---------------------------------------------------------------------------
# Letter distribution
# ---------------------------------------------------------------------------

class TestLetterDistribution:
    def test_fixed_letters_roughly_uniform(self, make_client):
        backend = FakeBackend(default=_router("B", _echo_target_letter))
        solver = _solver(make_client(backend), seed=2024)

        counts = Counter()
        for _ in range(400):
            outcome = solver.validate_and_fix(_make_q(answer="A"))
            assert outcome.status == FIXED
            counts[outcome.question.answer] += 1

        assert set(counts) == {"A", "B", "C", "D"}
        for letter in "ABCD":
            assert 70 <= counts[letter] <= 130

    def test_letter_drawn_from_injected_rng(self, make_client):
        solver = _solver(make_client(FakeBackend()), seed=11)
        reference = random.Random(11)
        assert [solver.choose_correct_letter() for _ in range(20)] == [
            reference.choice("ABCD") for _ in range(20)
        ]


# ---------------------------------------------------------------------------
# validate_batch()
# ---------------------------------------------------------------------------

class TestValidateBatch:
    def test_one_outcome_per_question_in_order(self, make_client):
        backend = FakeBackend(default=_router("A", _echo_target_letter))
        questions = [_make_q(answer="A"), _make_q(answer="A", statement="Short"), _make_q(answer="A")]
        outcomes = _solver(make_client(backend)).validate_batch(questions)

        assert [o.status for o in outcomes] == [ACCEPTED, FIXED, ACCEPTED]

    def test_batch_is_throttled(self, make_client):
        class CountingThrottle(NoThrottle):
            waits = 0

            def wait(self):
                CountingThrottle.waits += 1
                return 0.0

        backend = FakeBackend(default=_router("A", _echo_target_letter))
        solver = QuestionSolver(make_client(backend), throttle=CountingThrottle())
        solver.validate_batch([_make_q(), _make_q()])
        assert CountingThrottle.waits == 2
