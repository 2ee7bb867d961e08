"""
Configuration constants for the exam question extraction and repair pipeline.
"""

import os
from pathlib import Path
from typing import List

# Directory paths
PROJECT_ROOT = Path(__file__).parent
PDF_DIR = PROJECT_ROOT / "pdfs"
OUTPUT_DIR = PROJECT_ROOT / "output"

# Gemini configuration
DEFAULT_MODEL = "gemini-1.5-flash"

# Environment variables holding credentials. GEMINI_API_KEYS is a
# comma-separated list; GEMINI_API_KEY is appended if set.
API_KEYS_ENV = "GEMINI_API_KEYS"
API_KEY_ENV = "GEMINI_API_KEY"

# Values that show up in .env templates and must never be used as keys
PLACEHOLDER_KEYS = {
    "your-api-key-here",
    "your-gemini-api-key",
    "changeme",
}

# Sampling presets (temperature, top_k, top_p)
EXTRACTION_SAMPLING = {"temperature": 0.1, "top_k": 1, "top_p": 0.8}
GENERATION_SAMPLING = {"temperature": 0.7, "top_k": 40, "top_p": 0.9}
FIX_SAMPLING = {"temperature": 0.3, "top_k": 20, "top_p": 0.8}

# ============================================================================
# RATE LIMITING
# ============================================================================

# Wait after a 429 / quota error before retrying with the next key
RATE_LIMIT_BACKOFF = 2.0

# Fixed gaps between page calls. Key rotation alone does not keep the
# aggregate request rate under the free-tier ceiling.
STRUCTURE_PASS_DELAY = 5.0
EXTRACTION_PASS_DELAY = 10.0

# Gap between single-question solve/fix runs in batch mode
VALIDATION_DELAY = 2.0

# ============================================================================
# CONTEXT WINDOWS
# ============================================================================

RECENT_CONTEXT_WINDOW = 3
RECENT_CONTEXT_CHARS = 200
PYQ_SAMPLE_SIZE = 10
PYQ_SOLVE_BATCH = 5

# ============================================================================
# VALIDATION THRESHOLDS
# ============================================================================

QUESTION_TYPES = ("MCQ", "MSQ", "NAT", "Subjective")
OPTION_LETTERS = "ABCDE"
MCQ_FIX_LETTERS = "ABCD"
MCQ_OPTION_COUNT = 4
MSQ_MIN_OPTIONS = 4
MSQ_MAX_OPTIONS = 5
MSQ_MAX_CORRECT = 4

MIN_STATEMENT_LENGTH = 10
SUBJECTIVE_MIN_ANSWER_LENGTH = 10
MIN_SOLUTION_LENGTH = 20
NAT_TOLERANCE = 0.001
NAT_PATTERN = r"-?\d+(\.\d+)?"

# PDF processing settings
PDF_DPI = 200
PDF_IMAGE_FORMAT = "png"


def load_api_keys() -> List[str]:
    """Collect raw API keys from the environment (unfiltered)."""
    keys = []
    raw = os.environ.get(API_KEYS_ENV, "")
    keys.extend(part.strip() for part in raw.split(",") if part.strip())

    single = os.environ.get(API_KEY_ENV, "").strip()
    if single:
        keys.append(single)
    return keys
