"""
Shared fixtures. Every test runs offline: Gemini is replaced by FakeBackend.
"""
import pytest

from utils.gemini_client import GeminiClient


class FakeBackend:
    """
    Stand-in for GenaiBackend.

    `responses` is consumed in order. Each entry is a reply string, an
    exception instance (raised), or a callable taking the prompt and
    returning either of those. After the list runs out `default` is used.
    """

    def __init__(self, responses=None, default="[]"):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def __call__(self, prompt, api_key, image=None, generation_config=None):
        self.calls.append(
            {
                "prompt": prompt,
                "api_key": api_key,
                "image": image,
                "generation_config": generation_config,
            }
        )
        response = self.responses.pop(0) if self.responses else self.default
        if callable(response) and not isinstance(response, BaseException):
            response = response(prompt)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def prompts(self):
        return [c["prompt"] for c in self.calls]


class Sleeps:
    """Records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def sleeps():
    return Sleeps()


@pytest.fixture
def make_client(sleeps):
    def _make(backend, keys=("key-one-1234", "key-two-5678", "key-three-9012")):
        return GeminiClient(api_keys=list(keys), backend=backend, sleep=sleeps)
    return _make
