"""
Utility modules for the Exam Question Extraction Pipeline.
"""

from .gemini_client import GeminiClient, PoolExhaustedError, create_client
from .json_utils import MalformedOutputError, extract_json_from_text, parse_json_response
from .key_pool import ConfigurationError, KeyRotationPool
from .throttle import NoThrottle, Throttle

__all__ = [
    "GeminiClient",
    "PoolExhaustedError",
    "create_client",
    "MalformedOutputError",
    "extract_json_from_text",
    "parse_json_response",
    "ConfigurationError",
    "KeyRotationPool",
    "NoThrottle",
    "Throttle",
]
