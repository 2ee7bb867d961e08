"""
Second-pass extraction: full question records with shared context.
"""

import logging
from typing import Dict, List, Optional, Sequence

from config import RECENT_CONTEXT_CHARS, RECENT_CONTEXT_WINDOW
from pipeline.models import ExtractedQuestion
from utils.gemini_client import EXTRACTION_CONFIG, GeminiClient, ImageInput
from utils.json_utils import parse_json_response

logger = logging.getLogger(__name__)


EXTRACTION_PROMPT = """You are an EXPERT question extraction system. Extract ALL questions with ABSOLUTE PRECISION.

CRITICAL EXTRACTION RULES:
1. Extract questions EXACTLY as they appear - preserve every word, symbol, formatting
2. Convert math to LaTeX: $...$ for inline, $$...$$ for display math
3. Handle SHARED DESCRIPTIONS: If there's a description for multiple questions, include it with EACH question
4. Handle MULTI-PAGE QUESTIONS: If a question spans pages, extract what is visible and flag it
5. Handle DIAGRAMS/TABLES: Describe them in detail and include in question statement
6. NEVER skip questions with diagrams - describe the diagram thoroughly
7. Question types: MCQ (single correct), MSQ (multiple correct), NAT (numerical answer), Subjective (descriptive)
8. Write the question statement and the options separately, never together
9. If a question has parts, extract each part as its own question numbered like 11(A), 11(B), 11(C), each carrying the full parent description
10. IGNORE general instructions, exam rules, page headers and footers

SHARED DESCRIPTION HANDLING:
{shared_description_block}
- If questions share a description, include the FULL description text in EACH question_statement
- Never write "see above" or refer to the description - every question must be self-contained
- Example: If "Description for questions 17-18: [text]" exists, include this description in both Q17 and Q18

DIAGRAM/TABLE HANDLING:
- Describe ALL visual elements: charts, graphs, tables, Venn diagrams, figures
- Include table data in structured format inside the question statement
- For Venn diagrams: describe circles, intersections, labels, shaded regions
- For charts: describe data, axes, percentages, values
- NEVER skip questions because they have diagrams

MULTI-PAGE QUESTION HANDLING:
- If question starts but doesn't end on this page, extract what's visible
- Mark as spans_multiple_pages: true
- If question continues from previous page, mark as is_continuation: true

CONTEXT FROM PREVIOUS QUESTIONS:
{recent_context}

RESPONSE FORMAT - ENSURE PROPER JSON ESCAPING:
[
  {{
    "question_number": "17",
    "question_type": "MCQ",
    "question_statement": "FULL shared description + question statement + diagram description",
    "options": ["Option A", "Option B", "Option C", "Option D"],
    "shared_description": "Full shared description text",
    "has_image": true,
    "image_description": "Detailed description of diagram/table",
    "table_content": "Structured table data if present",
    "spans_multiple_pages": false,
    "is_continuation": false,
    "page_number": {page_number}
  }}
]

If this page contains only instructions, headers, or non-question content, return [].

CRITICAL: Use double backslashes (\\\\) for ALL LaTeX commands in JSON.
CRITICAL: Include shared descriptions with EVERY question that uses them.
CRITICAL: NEVER skip questions with diagrams - describe them thoroughly.
"""


def build_recent_context(previous_questions: Sequence[ExtractedQuestion]) -> str:
    """Short summary of the last few extracted questions."""
    recent = list(previous_questions)[-RECENT_CONTEXT_WINDOW:]
    return "\n".join(
        f"Q{q.question_number}: {q.question_statement[:RECENT_CONTEXT_CHARS]}..."
        for q in recent
    )


def build_extraction_prompt(
    page_number: int,
    shared_description: Optional[str],
    previous_questions: Sequence[ExtractedQuestion] = (),
) -> str:
    if shared_description:
        shared_block = f'SHARED DESCRIPTION FOR THIS PAGE: "{shared_description}"'
    else:
        shared_block = "No shared description found"

    return EXTRACTION_PROMPT.format(
        shared_description_block=shared_block,
        recent_context=build_recent_context(previous_questions) or "None",
        page_number=page_number,
    )


def parse_extraction_response(response: str, page_number: int) -> List[ExtractedQuestion]:
    """
    Turn a reply into question records for `page_number`.

    The page number echoed by the model is ignored. Records that are not
    objects or carry an unknown type are dropped.
    """
    data = parse_json_response(response)
    if data is None:
        logger.warning("No valid JSON found on page %d", page_number)
        return []
    if isinstance(data, dict):
        data = data.get("questions", [data])
    if not isinstance(data, list):
        logger.warning("Unexpected JSON shape on page %d", page_number)
        return []

    questions = []
    for i, item in enumerate(data):
        try:
            questions.append(ExtractedQuestion.from_dict(item, page_number=page_number))
        except ValueError as e:
            logger.warning("Page %d: skipping record %d: %s", page_number, i + 1, e)
    return questions


class VisionExtractor:
    """Extracts question records from a page image using shared-description context."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def extract_page(
        self,
        image: ImageInput,
        page_number: int,
        shared_descriptions: Optional[Dict[int, str]] = None,
        previous_questions: Sequence[ExtractedQuestion] = (),
        previous_image: Optional[ImageInput] = None,
        next_image: Optional[ImageInput] = None,
    ) -> List[ExtractedQuestion]:
        """
        Extract all questions from one page.

        Returns:
            Questions in the order the model listed them; [] when the reply
            holds no usable JSON.

        Raises:
            PoolExhaustedError, or any non-rate-limit error from the client.
        """
        shared = (shared_descriptions or {}).get(page_number)
        prompt = build_extraction_prompt(page_number, shared, previous_questions)

        reply = self.client.call(
            prompt,
            image=image,
            operation=f"question extraction (page {page_number})",
            generation_config=EXTRACTION_CONFIG,
        )
        return parse_extraction_response(reply, page_number)
