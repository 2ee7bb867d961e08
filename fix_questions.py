#!/usr/bin/env python3
"""
fix_questions.py - Solve, validate and repair questions in a JSON file

Each question is solved independently by Gemini, compared against its stated
answer, and repaired once if they disagree. Questions without an answer yet
(fresh extractions) are reported as rejected unless --skip-unanswered is set.

Usage:
    python fix_questions.py --input output/paper_questions.json
    python fix_questions.py --input q.json --output q_fixed.json --rejected q_rejected.json
    python fix_questions.py --input q.json --limit 20 --seed 7
"""

import argparse
import json
import logging
import random
import sys
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

sys.path.insert(0, str(Path(__file__).parent))

from config import VALIDATION_DELAY
from pipeline.models import ACCEPTED, FIXED, ExtractedQuestion
from pipeline.solver import QuestionSolver
from utils.gemini_client import GeminiClient
from utils.key_pool import ConfigurationError
from utils.throttle import Throttle


def load_questions(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    questions = []
    for i, item in enumerate(data):
        try:
            questions.append(ExtractedQuestion.from_dict(item))
        except ValueError as e:
            print(f"    [WARN] Skipping record {i + 1}: {e}")
    return questions


def save_json(path: Path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Validate and fix questions using Gemini")
    parser.add_argument("--input", type=str, required=True, help="Questions JSON file")
    parser.add_argument("--output", type=str, help="Where to write accepted/fixed questions")
    parser.add_argument("--rejected", type=str, help="Where to write rejected questions with reasons")
    parser.add_argument("--limit", type=int, help="Process only N questions")
    parser.add_argument("--skip-unanswered", action="store_true", help="Leave questions without an answer untouched")
    parser.add_argument("--seed", type=int, help="Seed for the MCQ answer-letter draw")
    parser.add_argument("--delay", type=float, default=VALIDATION_DELAY, help="Seconds between questions")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"[ERROR] File not found: {input_path}")
        return 1

    try:
        client = GeminiClient()
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        return 1

    questions = load_questions(input_path)
    untouched = []
    if args.skip_unanswered:
        untouched = [q for q in questions if not (q.answer or "").strip()]
        questions = [q for q in questions if (q.answer or "").strip()]
    if args.limit:
        questions = questions[:args.limit]

    print("=" * 60)
    print("QUESTION VALIDATION")
    print("Solve -> Validate -> Fix using Gemini")
    print("=" * 60)
    print(f"Questions to check: {len(questions)}")
    if untouched:
        print(f"Skipping {len(untouched)} unanswered questions")

    rng = random.Random(args.seed) if args.seed is not None else None
    solver = QuestionSolver(client, rng=rng, throttle=Throttle(args.delay))
    outcomes = solver.validate_batch(tqdm(questions, desc="Validating"))

    kept = [o.question.to_dict() for o in outcomes if o.is_valid] + [q.to_dict() for q in untouched]
    rejected = [
        {"question": o.question.to_dict() if o.question else None, "reason": o.reason, "issues": o.issues}
        for o in outcomes
        if not o.is_valid
    ]

    output_path = Path(args.output) if args.output else input_path.with_name(f"{input_path.stem}_fixed.json")
    save_json(output_path, kept)
    if args.rejected:
        save_json(Path(args.rejected), rejected)

    accepted = sum(1 for o in outcomes if o.status == ACCEPTED)
    fixed = sum(1 for o in outcomes if o.status == FIXED)

    print(f"\n{'=' * 60}")
    print("SUMMARY")
    print("=" * 60)
    print(f"Accepted: {accepted}")
    print(f"Fixed:    {fixed}")
    print(f"Rejected: {len(rejected)}")
    for item in rejected[:10]:
        print(f"  - {item['reason']}")
    print(f"\n[DONE] Saved to {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
