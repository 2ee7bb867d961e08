"""
Gemini API client with key rotation and rate-limit retries.

Uses the google-genai SDK. Each request draws a key from a KeyRotationPool;
429 / quota errors are retried on the next key after a short backoff, any
other error propagates straight away.
"""

import base64
import io
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Union

from google import genai
from google.genai import types
from PIL import Image

from config import (
    DEFAULT_MODEL,
    EXTRACTION_SAMPLING,
    FIX_SAMPLING,
    GENERATION_SAMPLING,
    RATE_LIMIT_BACKOFF,
    load_api_keys,
)
from utils.key_pool import KeyRotationPool, mask_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling parameters for one request."""
    temperature: float
    top_k: int
    top_p: float


EXTRACTION_CONFIG = GenerationConfig(**EXTRACTION_SAMPLING)
GENERATION_CONFIG = GenerationConfig(**GENERATION_SAMPLING)
FIX_CONFIG = GenerationConfig(**FIX_SAMPLING)


@dataclass(frozen=True)
class InlineImage:
    """A base64-encoded image sent alongside the prompt."""
    data: str
    mime_type: str = "image/png"


ImageInput = Union[InlineImage, Image.Image, str, None]


class GeminiError(RuntimeError):
    """Base class for request failures surfaced by GeminiClient."""


class PoolExhaustedError(GeminiError):
    """Every attempt hit a rate limit; the operation is abandoned."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"All {attempts} API key attempts exhausted for {operation}{detail}"
        )


def is_rate_limit_error(error: BaseException) -> bool:
    """Rate-limit / quota errors are recognised by their message text."""
    message = str(error)
    return "429" in message or "quota" in message.lower()


def as_inline_image(image: ImageInput) -> Optional[InlineImage]:
    """Normalise base64 strings and PIL images to an InlineImage."""
    if image is None or isinstance(image, InlineImage):
        return image
    if isinstance(image, Image.Image):
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return InlineImage(data=base64.b64encode(buffer.getvalue()).decode("ascii"))
    return InlineImage(data=image)


class GenaiBackend:
    """Thin adapter over google-genai: one generate_content call per request."""

    def __init__(self, model: str = DEFAULT_MODEL):
        self.model_name = model
        self._clients: Dict[str, genai.Client] = {}

    def _client_for(self, api_key: str) -> genai.Client:
        if api_key not in self._clients:
            self._clients[api_key] = genai.Client(api_key=api_key)
        return self._clients[api_key]

    def __call__(
        self,
        prompt: str,
        api_key: str,
        image: Optional[InlineImage] = None,
        generation_config: Optional[GenerationConfig] = None,
    ) -> str:
        contents = [prompt]
        if image is not None:
            contents.append(
                types.Part.from_bytes(
                    data=base64.b64decode(image.data),
                    mime_type=image.mime_type,
                )
            )

        config = None
        if generation_config is not None:
            config = types.GenerateContentConfig(
                temperature=generation_config.temperature,
                top_k=generation_config.top_k,
                top_p=generation_config.top_p,
            )

        response = self._client_for(api_key).models.generate_content(
            model=self.model_name,
            contents=contents,
            config=config,
        )
        return response.text or ""


Backend = Callable[[str, str, Optional[InlineImage], Optional[GenerationConfig]], str]


class GeminiClient:
    """Client for issuing Gemini requests through a rotating key pool."""

    def __init__(
        self,
        api_keys: Union[KeyRotationPool, Iterable[str], None] = None,
        model: str = DEFAULT_MODEL,
        backend: Optional[Backend] = None,
        backoff_seconds: float = RATE_LIMIT_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize Gemini client.

        Args:
            api_keys: A KeyRotationPool, or raw keys. If omitted, reads
                GEMINI_API_KEYS / GEMINI_API_KEY from the environment.
            model: Model to use (default: gemini-1.5-flash)
            backend: Callable that performs one request. Defaults to google-genai.
            backoff_seconds: Wait before retrying after a rate-limit error.
            sleep: Sleep function (swapped out in tests).
        """
        if isinstance(api_keys, KeyRotationPool):
            self.pool = api_keys
        else:
            self.pool = KeyRotationPool(api_keys if api_keys is not None else load_api_keys())

        self.model_name = model
        self.backend = backend or GenaiBackend(model)
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def call(
        self,
        prompt: str,
        image: ImageInput = None,
        operation: str = "request",
        max_attempts: Optional[int] = None,
        generation_config: Optional[GenerationConfig] = None,
    ) -> str:
        """
        Send one prompt (plus optional image) and return the reply text.

        Args:
            prompt: Prompt text
            image: Optional page image (InlineImage or base64 string)
            operation: Label used in logs and in PoolExhaustedError
            max_attempts: Attempts before giving up (default: pool size)
            generation_config: Sampling parameters

        Raises:
            PoolExhaustedError: every attempt hit a rate limit.
            Exception: any non-rate-limit error from the backend, unchanged.
        """
        attempts = max_attempts if max_attempts is not None else len(self.pool)
        attempts = max(1, attempts)
        inline = as_inline_image(image)
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            api_key = self.pool.acquire()
            logger.debug("Using API key %s for %s", mask_key(api_key), operation)
            try:
                return self.backend(prompt, api_key, inline, generation_config)
            except Exception as e:
                if not is_rate_limit_error(e):
                    raise
                last_error = e
                logger.warning(
                    "API key %d/%d hit rate limit for %s, trying next key...",
                    attempt, attempts, operation,
                )
                if attempt < attempts:
                    self._sleep(self.backoff_seconds)

        raise PoolExhaustedError(operation, attempts, last_error)

    def test_connection(self) -> bool:
        """Test if API connection works."""
        try:
            reply = self.call(
                "Reply with just 'OK' if you can read this.",
                operation="connection test",
            )
            return "OK" in reply.upper()
        except Exception as e:
            logger.error("Connection test failed: %s", e)
            return False


def create_client(api_keys: Optional[Iterable[str]] = None, model: str = DEFAULT_MODEL) -> GeminiClient:
    """Factory function to create a GeminiClient."""
    return GeminiClient(api_keys=api_keys, model=model)
