"""
Shared fixtures for the code-agent-tools test suite.
"""

from typing import Any, Dict, List, Optional

import aiohttp
import pytest

from code_agent_tools.core.config import settings


class FakeResponse:
    """Stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, status: int = 200, json_data: Any = None, body: bytes = b"", text: str = ""):
        self.status = status
        self._json = json_data
        self._body = body
        self._text = text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self):
        return self._json

    async def read(self):
        return self._body

    async def text(self):
        return self._text


class FakeSession:
    """Records requests and replays queued responses in order."""

    def __init__(self, responses: List[FakeResponse]):
        self.responses = responses
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, *args, **kwargs):
        # Used as the aiohttp.ClientSession factory
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def _next(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0)

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._next("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._next("POST", url, **kwargs)


@pytest.fixture
def output_dir(tmp_path):
    """Managed output directory isolated per test."""
    return str(tmp_path / "out")


@pytest.fixture
def fake_http(monkeypatch):
    """Patch aiohttp.ClientSession with a FakeSession fed by the returned factory."""
    sessions: List[FakeSession] = []

    def install(*responses: FakeResponse) -> FakeSession:
        session = FakeSession(list(responses))
        sessions.append(session)
        monkeypatch.setattr(aiohttp, "ClientSession", session)
        return session

    return install


@pytest.fixture
def no_credentials(monkeypatch):
    """Remove every credential from the environment and settings."""
    monkeypatch.delenv("HF_TOKEN", raising=False)
    monkeypatch.delenv("MOONDREAM_API_KEY", raising=False)
    monkeypatch.setattr(settings, "hf_token", None)
    monkeypatch.setattr(settings, "moondream_api_key", None)


def make_response(status: int = 200, json_data: Optional[Any] = None, body: bytes = b"", text: str = "") -> FakeResponse:
    return FakeResponse(status=status, json_data=json_data, body=body, text=text)


@pytest.fixture
def http_response():
    """Factory for FakeResponse objects."""
    return make_response
