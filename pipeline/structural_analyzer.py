"""
First-pass page analysis: shared descriptions and page-spanning questions.
"""

import logging
from typing import Optional

from pipeline.models import PageStructure
from utils.gemini_client import EXTRACTION_CONFIG, GeminiClient, ImageInput
from utils.json_utils import parse_json_response

logger = logging.getLogger(__name__)


STRUCTURE_PROMPT = """Analyze this exam page to identify structural elements. Focus on:

1. SHARED DESCRIPTIONS: Look for text like "Description for the following X questions:" or "For questions X-Y:" or "Consider the following for next questions:"
   Only text that explicitly addresses SEVERAL following questions counts.
2. MULTI-PAGE QUESTIONS: Identify if any question starts but doesn't complete on this page
3. QUESTION NUMBERS: List all question numbers visible on this page, top to bottom

Return JSON with this structure:
{
  "sharedDescription": "Full text of any shared description found",
  "hasMultiPageQuestion": true/false,
  "questionNumbers": ["17", "18", "19"]
}

If no shared description exists, set sharedDescription to null.
"""


class StructuralAnalyzer:
    """Detects shared descriptions and multi-page questions on a page image."""

    def __init__(self, client: GeminiClient):
        self.client = client

    def analyze_page(
        self,
        image: ImageInput,
        page_number: int,
        previous_image: Optional[ImageInput] = None,
        next_image: Optional[ImageInput] = None,
    ) -> PageStructure:
        """
        Run the structure prompt on one page.

        Adjacent pages are accepted for callers that have them; only the
        current page is sent.

        Returns:
            PageStructure. Empty or unparseable replies give an empty result.

        Raises:
            PoolExhaustedError, or any non-rate-limit error from the client.
        """
        reply = self.client.call(
            STRUCTURE_PROMPT,
            image=image,
            operation=f"page structure analysis (page {page_number})",
            generation_config=EXTRACTION_CONFIG,
        )

        data = parse_json_response(reply)
        if data is None:
            logger.info("No structure JSON for page %d", page_number)
            return PageStructure()

        structure = PageStructure.from_dict(data)
        if structure.shared_description:
            logger.info("Page %d: shared description found", page_number)
        return structure
