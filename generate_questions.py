#!/usr/bin/env python3
"""
generate_questions.py - Generate practice questions for a syllabus topic

Reads a topic file:
    {
      "id": "t-01", "name": "Probability", "notes": "...", "weightage": 0.05,
      "pyqs": [{"question_statement": "...", "options": [...], "question_type": "MCQ", "year": 2021}]
    }

Usage:
    python generate_questions.py --topic topics/probability.json --exam GATE --course CS
    python generate_questions.py --topic t.json --exam GATE --course CS --type MSQ --count 5
    python generate_questions.py --topic t.json --exam GATE --course CS --validate
    python generate_questions.py --topic t.json --solve-pyqs
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

sys.path.insert(0, str(Path(__file__).parent))

from config import OUTPUT_DIR, QUESTION_TYPES, VALIDATION_DELAY
from pipeline.models import ExtractedQuestion, Topic
from pipeline.question_generator import QuestionGenerator
from pipeline.solver import QuestionSolver
from utils.gemini_client import GeminiClient
from utils.key_pool import ConfigurationError
from utils.throttle import Throttle


def load_topic_file(path: Path):
    """Return (Topic, pyq dicts) from a topic JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return Topic.from_dict(data), list(data.get("pyqs") or [])


def load_existing(path: Path):
    """Existing questions as ExtractedQuestion records (invalid entries skipped)."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    questions = []
    for item in data:
        try:
            questions.append(ExtractedQuestion.from_dict(item))
        except ValueError as e:
            print(f"    [WARN] Skipping existing question: {e}")
    return questions


def existing_context(questions) -> str:
    return "\n\n".join(
        f"Existing {i}: {q.question_statement}" for i, q in enumerate(questions, start=1)
    )


def generate_batches(generator, topic, exam, course, question_type, batches, count=1,
                     pyqs=None, existing=(), throttle=None, progress=False):
    """Run `batches` generation requests, each gated by the throttle."""
    throttle = throttle or Throttle(VALIDATION_DELAY)
    existing = list(existing)
    recent = []
    generated = []

    for _ in tqdm(range(batches), desc="Generating", disable=not progress):
        throttle.wait()
        batch = generator.generate(
            topic,
            exam,
            course,
            question_type,
            pyqs=pyqs,
            existing_questions_context=existing_context(existing + generated),
            recently_generated=recent,
            count=count,
        )
        generated.extend(batch)
        recent.extend(q.question_statement for q in batch)
    return generated


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Generate new questions for a topic using Gemini")
    parser.add_argument("--topic", type=str, required=True, help="Topic JSON file")
    parser.add_argument("--exam", type=str, default="Exam", help="Exam name")
    parser.add_argument("--course", type=str, default="General", help="Course name")
    parser.add_argument("--type", type=str, default="MCQ", choices=QUESTION_TYPES, help="Question type")
    parser.add_argument("--count", type=int, default=1, help="Questions per request")
    parser.add_argument("--batches", type=int, default=1, help="Number of generation requests")
    parser.add_argument("--delay", type=float, default=VALIDATION_DELAY, help="Seconds between generation requests")
    parser.add_argument("--existing", type=str, help="JSON file of questions already generated for this topic")
    parser.add_argument("--validate", action="store_true", help="Run Solve -> Validate -> Fix on each new question")
    parser.add_argument("--solve-pyqs", action="store_true", help="Only generate answers/solutions for the topic's PYQs")
    parser.add_argument("--output", type=str, help="Output JSON file")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    topic_path = Path(args.topic)
    if not topic_path.exists():
        print(f"[ERROR] Topic file not found: {topic_path}")
        return 1

    try:
        client = GeminiClient()
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        return 1

    topic, pyqs = load_topic_file(topic_path)
    generator = QuestionGenerator(client)

    print("=" * 60)
    print("QUESTION GENERATION")
    print("=" * 60)
    print(f"Topic: {topic.name} ({topic.id})")
    print(f"PYQs available: {len(pyqs)}")

    if args.solve_pyqs:
        solutions = generator.solve_pyqs(pyqs, topic.notes)
        output_path = Path(args.output) if args.output else OUTPUT_DIR / f"{topic.id}_pyq_solutions.json"
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(solutions, f, ensure_ascii=False, indent=2)
        print(f"\n[DONE] {len(solutions)} PYQ solutions saved to {output_path}")
        return 0

    existing = load_existing(Path(args.existing)) if args.existing else []
    generated = generate_batches(
        generator,
        topic,
        args.exam,
        args.course,
        args.type,
        args.batches,
        count=args.count,
        pyqs=pyqs,
        existing=existing,
        throttle=Throttle(args.delay),
        progress=True,
    )

    print(f"Generated: {len(generated)}")

    rejected = 0
    if args.validate and generated:
        solver = QuestionSolver(client)
        outcomes = solver.validate_batch(tqdm(generated, desc="Validating"))
        kept = []
        for outcome in outcomes:
            if outcome.is_valid:
                kept.append(outcome.question)
            else:
                rejected += 1
                print(f"    [WARN] Rejected: {outcome.reason}")
        generated = kept

    output_path = Path(args.output) if args.output else OUTPUT_DIR / f"{topic.id}_{args.type.lower()}_questions.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump([q.to_dict() for q in generated], f, ensure_ascii=False, indent=2)

    print(f"\n{'=' * 60}")
    print("SUMMARY")
    print("=" * 60)
    print(f"Saved:    {len(generated)}")
    if args.validate:
        print(f"Rejected: {rejected}")
    print(f"\n[DONE] Saved to {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
