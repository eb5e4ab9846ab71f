# backends/ollama_client.py
from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import requests

from ..config import OLLAMA_TAGS_URL, PREFERRED_MODEL, FALLBACK_MODEL, MODEL_CHECK_TIMEOUT_S, TEMPERATURE
from ..logger_config import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class GenerationRequest:
    """One prompt plus inference options, serialised as an /api/generate body."""
    prompt: str
    model: str
    temperature: float = TEMPERATURE
    stream: bool = True
    format: Optional[str] = None   # "json" asks the server for a JSON-only reply

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "prompt": self.prompt,
            "stream": self.stream,
            "options": {"temperature": self.temperature},
        }
        if self.format:
            body["format"] = self.format
        return body


class BackendStreamError(Exception):
    """Transport-level failure of the generation stream.

    kind is one of "connection", "timeout", "status" or "transport" (failure
    after the body started arriving).
    """

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind


class BackendUnavailableError(Exception):
    """The inference server could not answer a non-streaming call."""


class InvalidBackendReply(BackendUnavailableError):
    """The server answered, but not with the JSON shape expected."""


def _open_error_kind(e: requests.RequestException) -> str:
    # ConnectTimeout is both a Timeout and a ConnectionError; timeout wins
    if isinstance(e, requests.Timeout):
        return "timeout"
    if isinstance(e, requests.ConnectionError):
        return "connection"
    return "transport"


def open_generation_stream(request: GenerationRequest,
                           url: str,
                           timeout: float,
                           cancel: Optional[threading.Event] = None) -> Iterator[bytes]:
    """
    Yield the raw response body of one streamed generation, chunk by chunk.

    The connection is opened on the first next() and released when the
    iterator is exhausted, closed, or raises. Failures surface as
    BackendStreamError, never as data. When `cancel` is set the stream stops
    at the next chunk boundary.
    """
    try:
        r = requests.post(
            url,
            headers={"Content-Type": "application/json"},
            json=request.to_payload(),
            stream=True,                  # body arrives as newline-delimited JSON
            timeout=timeout,              # connect and per-read timeout
        )
    except requests.RequestException as e:
        raise BackendStreamError(_open_error_kind(e), f"Could not reach {url}: {e}") from e

    with r:
        try:
            r.raise_for_status()
        except requests.HTTPError as e:
            raise BackendStreamError("status", f"{url} answered HTTP {r.status_code}") from e

        logger.info("Backend stream opened (%s).", request.model)
        try:
            for chunk in r.iter_content(chunk_size=None):
                if cancel is not None and cancel.is_set():
                    logger.info("Downstream cancelled; releasing backend connection.")
                    return
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            kind = "timeout" if isinstance(e, requests.Timeout) else "transport"
            raise BackendStreamError(kind, f"Backend stream broke: {e}") from e


def generate_once(request: GenerationRequest, url: str, timeout: float) -> str:
    """Non-streaming generation; returns the full `response` text."""
    payload = request.to_payload()
    payload["stream"] = False
    try:
        r = requests.post(url, json=payload, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        raise BackendUnavailableError(f"Generation call to {url} failed: {e}") from e
    return (data or {}).get("response") or ""


def list_models(tags_url: str = OLLAMA_TAGS_URL, timeout: float = MODEL_CHECK_TIMEOUT_S) -> List[str]:
    """Names of the models the inference server has pulled."""
    try:
        r = requests.get(tags_url, timeout=timeout)
        r.raise_for_status()
    except requests.RequestException as e:
        raise BackendUnavailableError(f"Could not list models at {tags_url}: {e}") from e
    try:
        data = r.json()
    except ValueError as e:
        raise InvalidBackendReply(f"Invalid JSON from {tags_url}: {e}") from e

    models = data.get("models") if isinstance(data, dict) else None
    if not isinstance(data, dict) or not isinstance(models or [], list):
        raise InvalidBackendReply(f"Unexpected model listing shape from {tags_url}")
    return [m["name"] for m in models or [] if isinstance(m, dict) and isinstance(m.get("name"), str)]


def resolve_model(tags_url: str = OLLAMA_TAGS_URL,
                  preferred: str = PREFERRED_MODEL,
                  fallback: str = FALLBACK_MODEL,
                  timeout: float = MODEL_CHECK_TIMEOUT_S) -> str:
    """
    Startup check: keep the preferred model if the server lists it, otherwise
    fall back. A failed lookup is not fatal; the preferred model is kept.
    """
    try:
        names = list_models(tags_url, timeout)
    except Exception as e:
        logger.error("Could not reach Ollama to verify models. Defaulting to %s. (%s)", preferred, e)
        return preferred

    if any(preferred in n for n in names):
        logger.info("Using model: %s", preferred)
        return preferred
    logger.warning("%s not found, falling back to %s.", preferred, fallback)
    return fallback
