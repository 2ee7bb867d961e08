"""
API key rotation for the Gemini free tier.

Every request draws the key with the fewest recorded calls so that load
spreads evenly across the pool, including after a key has been skipped
because of a rate-limit error.
"""

import threading
from typing import Dict, Iterable, List

from config import PLACEHOLDER_KEYS


class ConfigurationError(ValueError):
    """Raised when the pipeline cannot be configured (e.g. no usable API keys)."""


def is_placeholder_key(key: str) -> bool:
    """Return True for empty values and template placeholders."""
    if key is None:
        return True
    value = key.strip()
    if not value:
        return True
    lowered = value.lower()
    return lowered in PLACEHOLDER_KEYS or lowered.startswith("your-")


class KeyRotationPool:
    """Least-used selection over a fixed set of API keys."""

    def __init__(self, keys: Iterable[str]):
        """
        Build the pool.

        Args:
            keys: Raw key values. Placeholders, blanks and duplicates are dropped.

        Raises:
            ConfigurationError: if no usable key remains.
        """
        usable: List[str] = []
        for key in keys or []:
            if is_placeholder_key(key):
                continue
            key = key.strip()
            if key not in usable:
                usable.append(key)

        if not usable:
            raise ConfigurationError(
                "No valid Gemini API keys found. Set GEMINI_API_KEYS "
                "(comma-separated) or GEMINI_API_KEY. Get a free key at: "
                "https://aistudio.google.com/app/apikey"
            )

        self._keys = usable
        self._usage: Dict[str, int] = {key: 0 for key in usable}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def keys(self) -> List[str]:
        return list(self._keys)

    def acquire(self) -> str:
        """Return the least-used key (first in pool order on ties) and count the use."""
        with self._lock:
            best = self._keys[0]
            for key in self._keys[1:]:
                if self._usage[key] < self._usage[best]:
                    best = key
            self._usage[best] += 1
            return best

    def usage(self, key: str) -> int:
        return self._usage.get(key, 0)

    def usage_counts(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._usage)


def mask_key(key: str) -> str:
    """Short, log-safe form of a key."""
    return f"{key[:6]}..." if len(key) > 6 else "***"
