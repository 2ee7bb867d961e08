"""
Two-pass extraction runner.

Pass 1 scans every page for shared descriptions; pass 2 extracts questions
with that map and the running question history. Pages run strictly one
after another with fixed gaps between calls.

Usage:
    export GEMINI_API_KEYS="key1,key2"
    python -m pipeline.run --pdf "paper.pdf"
    python -m pipeline.run --pdf "paper.pdf" --pages 2-10 --output out.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from tqdm import tqdm

from config import EXTRACTION_PASS_DELAY, OUTPUT_DIR, PDF_DIR, STRUCTURE_PASS_DELAY
from pipeline.models import DocumentExtraction
from pipeline.pdf_loader import PDFLoader, RenderError
from pipeline.structural_analyzer import StructuralAnalyzer
from pipeline.vision_extractor import VisionExtractor
from utils.gemini_client import GeminiClient, ImageInput
from utils.key_pool import ConfigurationError
from utils.throttle import Throttle

logger = logging.getLogger(__name__)


def _neighbours(images: Sequence[ImageInput], i: int):
    previous_image = images[i - 1] if i > 0 else None
    next_image = images[i + 1] if i < len(images) - 1 else None
    return previous_image, next_image


class ExtractionPipeline:
    """Main two-pass extraction pipeline."""

    def __init__(
        self,
        analyzer: StructuralAnalyzer,
        extractor: VisionExtractor,
        structure_throttle: Optional[Throttle] = None,
        extraction_throttle: Optional[Throttle] = None,
        start_page_number: int = 1,
        verbose: bool = False,
    ):
        self.analyzer = analyzer
        self.extractor = extractor
        self.structure_throttle = structure_throttle or Throttle(STRUCTURE_PASS_DELAY)
        self.extraction_throttle = extraction_throttle or Throttle(EXTRACTION_PASS_DELAY)
        self.start_page_number = start_page_number
        self.verbose = verbose

    @classmethod
    def from_client(cls, client: GeminiClient, **kwargs) -> "ExtractionPipeline":
        return cls(StructuralAnalyzer(client), VisionExtractor(client), **kwargs)

    def analyze_structure(self, images: Sequence[ImageInput], result: DocumentExtraction):
        """Pass 1: shared descriptions, multi-page flags and question numbers per page."""
        pages = tqdm(images, desc="Pass 1: structure", disable=not self.verbose)
        for i, image in enumerate(pages):
            page_num = self.start_page_number + i
            self.structure_throttle.wait()
            previous_image, next_image = _neighbours(images, i)
            try:
                structure = self.analyzer.analyze_page(image, page_num, previous_image, next_image)
            except Exception as e:
                logger.error("Error in first pass analysis for page %d: %s", page_num, e)
                result.structure_failures[page_num] = str(e)
                continue

            if structure.shared_description:
                result.shared_descriptions[page_num] = structure.shared_description
            if structure.has_multi_page_question:
                result.multi_page_pages.append(page_num)
            if structure.question_numbers:
                result.question_numbers[page_num] = list(structure.question_numbers)

    def extract_questions(self, images: Sequence[ImageInput], result: DocumentExtraction):
        """Pass 2: extract questions page by page, appending in page order."""
        pages = tqdm(images, desc="Pass 2: questions", disable=not self.verbose)
        for i, image in enumerate(pages):
            page_num = self.start_page_number + i
            self.extraction_throttle.wait()
            previous_image, next_image = _neighbours(images, i)
            try:
                questions = self.extractor.extract_page(
                    image,
                    page_num,
                    result.shared_descriptions,
                    result.questions,
                    previous_image,
                    next_image,
                )
            except Exception as e:
                logger.error("Error extracting questions from page %d: %s", page_num, e)
                result.extraction_failures[page_num] = str(e)
                continue

            result.pages_processed += 1
            if not questions:
                result.empty_pages.append(page_num)
            logger.info("Page %d: %d questions", page_num, len(questions))
            result.questions.extend(questions)

    def run(self, images: Sequence[ImageInput]) -> DocumentExtraction:
        """
        Run both passes over the page images of one document.

        Individual page failures are logged and recorded; they never abort
        the document.
        """
        result = DocumentExtraction()
        if not images:
            return result

        self.analyze_structure(images, result)
        self.extract_questions(images, result)

        skipped = sorted(set(result.empty_pages) | set(result.extraction_failures))
        if skipped:
            logger.warning("Pages that yielded no questions: %s", skipped)
        return result


def extract_document(
    client: GeminiClient,
    images: Sequence[ImageInput],
    start_page_number: int = 1,
    structure_delay: float = STRUCTURE_PASS_DELAY,
    extraction_delay: float = EXTRACTION_PASS_DELAY,
    verbose: bool = False,
) -> DocumentExtraction:
    """Convenience wrapper: build a pipeline for `client` and run it."""
    pipeline = ExtractionPipeline.from_client(
        client,
        structure_throttle=Throttle(structure_delay),
        extraction_throttle=Throttle(extraction_delay),
        start_page_number=start_page_number,
        verbose=verbose,
    )
    return pipeline.run(images)


def parse_page_range(value: str):
    start, end = map(int, value.split("-"))
    if start < 1 or end < start:
        raise ValueError(value)
    return start, end


def main(argv: Optional[List[str]] = None) -> int:
    from dotenv import load_dotenv
    load_dotenv()

    parser = argparse.ArgumentParser(description="Extract exam questions from a PDF with Gemini")
    parser.add_argument("--pdf", type=str, required=True, help="PDF to process")
    parser.add_argument("--pages", type=str, help="Page range (e.g., 2-10)")
    parser.add_argument("--output", type=str, help="Output JSON file")
    parser.add_argument("--structure-delay", type=float, default=STRUCTURE_PASS_DELAY)
    parser.add_argument("--extraction-delay", type=float, default=EXTRACTION_PASS_DELAY)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    page_range = None
    if args.pages:
        try:
            page_range = parse_page_range(args.pages)
        except ValueError:
            print(f"[ERROR] Invalid page range: {args.pages}")
            return 1

    pdf_path = Path(args.pdf)
    if not pdf_path.exists() and (PDF_DIR / args.pdf).exists():
        pdf_path = PDF_DIR / args.pdf

    try:
        client = GeminiClient()
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        return 1

    print("=" * 60)
    print("EXAM QUESTION EXTRACTION")
    print("=" * 60)
    print(f"[INFO] PDF: {pdf_path.name}")
    print(f"[INFO] API keys in pool: {len(client.pool)}")

    try:
        images = PDFLoader().render_pages_to_base64(pdf_path, page_range)
    except RenderError as e:
        print(f"[ERROR] {e}")
        return 1

    start_page = page_range[0] if page_range else 1
    print(f"[INFO] Pages to process: {len(images)} (from page {start_page})")

    result = extract_document(
        client,
        images,
        start_page_number=start_page,
        structure_delay=args.structure_delay,
        extraction_delay=args.extraction_delay,
        verbose=True,
    )

    output_path = Path(args.output) if args.output else OUTPUT_DIR / f"{pdf_path.stem}_questions.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump([q.to_dict() for q in result.questions], f, ensure_ascii=False, indent=2)

    print(f"\n{'=' * 60}")
    print("SUMMARY")
    print("=" * 60)
    print(f"Pages processed: {result.pages_processed}/{len(images)}")
    print(f"Questions extracted: {len(result.questions)}")
    print(f"Shared descriptions: {len(result.shared_descriptions)}")
    if result.multi_page_pages:
        print(f"Pages with multi-page questions: {', '.join(map(str, result.multi_page_pages))}")
    if result.extraction_failures:
        print(f"Failed pages: {', '.join(map(str, result.failed_pages))}")
    if result.empty_pages:
        print(f"Pages with no questions: {', '.join(map(str, result.empty_pages))}")
    print(f"\n[DONE] Saved to {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
