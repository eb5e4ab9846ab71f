"""Shared fixtures: backend settings, a Flask test client, and a fake streamed backend response."""

from __future__ import annotations

from typing import Iterable, Optional
from unittest.mock import MagicMock

import pytest
import requests

from prd_workbench.app import create_app
from prd_workbench.config import BackendSettings
from prd_workbench.core.relay import BufferedSink


GENERATE_URL = "http://ollama.test/api/generate"


class RecordingSink(BufferedSink):
    """BufferedSink that also counts end() calls."""

    def __init__(self, committed: bool = False):
        super().__init__()
        self.end_calls = 0
        if committed:
            self.commit()

    def end(self) -> None:
        self.end_calls += 1
        super().end()

    @property
    def text(self) -> str:
        return "".join(self.drain())


def fake_stream_response(chunks: Iterable[bytes], error: Optional[Exception] = None,
                         status: int = 200) -> MagicMock:
    """Stand-in for a streamed requests.Response."""
    resp = MagicMock()
    resp.status_code = status
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Server Error")

    def _iter_content(chunk_size=None):
        yield from chunks
        if error is not None:
            raise error

    resp.iter_content.side_effect = _iter_content
    return resp


@pytest.fixture
def settings() -> BackendSettings:
    return BackendSettings(generate_url=GENERATE_URL, model="llama3.2", temperature=0.2, timeout_s=300)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_sink():
    return RecordingSink


@pytest.fixture
def committed_sink() -> RecordingSink:
    return RecordingSink(committed=True)


@pytest.fixture
def stream_response():
    return fake_stream_response


@pytest.fixture
def client(settings):
    app = create_app(settings)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
