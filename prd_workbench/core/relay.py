# core/relay.py — newline-delimited JSON relay from the inference backend to one client
from __future__ import annotations
import json
import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Iterable, Iterator, List, Optional

from ..backends.ollama_client import BackendStreamError
from ..logger_config import setup_logger

logger = setup_logger(__name__)

# Appended to an already-committed stream when the backend fails mid-generation
ERROR_MARKER = "\n[Error during generation]"

# Cap on how much of a bad line ends up in the log
_LOG_LINE_MAX = 200


@dataclass
class GenerationEvent:
    """One decoded backend line: an optional text fragment and the terminal flag."""
    response: str = ""
    done: bool = False


def _decode(line: str) -> GenerationEvent:
    obj = json.loads(line)  # ValueError on malformed input
    if not isinstance(obj, dict):
        return GenerationEvent()
    text = obj.get("response")
    return GenerationEvent(
        response=text if isinstance(text, str) else "",
        done=obj.get("done") is True,
    )


def parse_event(line: str) -> Optional[GenerationEvent]:
    """Decode one frame; malformed JSON is logged and yields None."""
    try:
        return _decode(line)
    except ValueError:
        logger.error("JSON parse error on line: %s", line[:_LOG_LINE_MAX])
        return None


class FrameDecoder:
    """
    Splits an arbitrarily chunked byte stream into complete lines.

    The pending buffer always holds exactly the bytes after the last newline
    seen. Lines are decoded as UTF-8 only once complete, so a multi-byte
    character split across chunks is never mangled.
    """

    def __init__(self):
        self._pending = b""

    @property
    def pending(self) -> bytes:
        return self._pending

    def feed(self, chunk: bytes) -> List[str]:
        self._pending += chunk

        boundary = self._pending.rfind(b"\n")
        if boundary == -1:
            return []  # wait for more data

        complete = self._pending[:boundary]
        self._pending = self._pending[boundary + 1:]
        return [
            raw.decode("utf-8", errors="replace")
            for raw in complete.split(b"\n")
            if raw.strip()
        ]

    def flush(self) -> str:
        """Hand back whatever trailing partial frame remains and empty the buffer."""
        tail, self._pending = self._pending, b""
        return tail.decode("utf-8", errors="replace").strip()


class OutputSink(ABC):
    """
    Downstream channel of one relay session.

    `headers_sent` tells the relay whether the client already has a status
    line; `cancelled` is set by the HTTP layer when the client goes away.
    """

    def __init__(self):
        self.cancelled = threading.Event()
        self.headers_sent = False

    @abstractmethod
    def write(self, text: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def end(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def fail(self, message: str) -> None:
        """Report a failure before any output was committed."""
        raise NotImplementedError


class BufferedSink(OutputSink):
    """Pull-style sink: writes queue up until the response generator drains them."""

    def __init__(self):
        super().__init__()
        self._pending: Deque[str] = deque()
        self.closed = False
        self.failure: Optional[str] = None

    def write(self, text: str) -> None:
        if self.closed:
            raise RuntimeError("write after end")
        self._pending.append(text)

    def end(self) -> None:
        self.closed = True

    def fail(self, message: str) -> None:
        self.failure = message

    def commit(self) -> None:
        """The status line has gone out; from now on errors are reported in-band."""
        self.headers_sent = True

    def has_pending(self) -> bool:
        return bool(self._pending)

    def drain(self) -> Iterator[str]:
        while self._pending:
            yield self._pending.popleft()


class RelayState(Enum):
    OPENING = "opening"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


class RelaySession:
    """
    Proxies one backend generation stream into one OutputSink.

    OPENING -> STREAMING on the first pull; STREAMING -> CLOSING -> CLOSED on
    a `done` event, natural end of the backend stream, a backend error, or
    client cancellation. The sink's end() is only ever called from _close(),
    which runs once.
    """

    def __init__(self, open_stream: Callable[[], Iterable[bytes]], sink: OutputSink, label: str = ""):
        self._open_stream = open_stream
        self._stream: Optional[Iterable[bytes]] = None
        self.sink = sink
        self.decoder = FrameDecoder()
        self.state = RelayState.OPENING
        self.label = label

    @property
    def closed(self) -> bool:
        return self.state is RelayState.CLOSED

    def run(self) -> None:
        """Drive the session to completion."""
        for _ in self.pump():
            pass

    def pump(self) -> Iterator[None]:
        """
        Drive the session one backend chunk at a time, yielding after each.
        The caller decides when to pull the next chunk, which is how a slow
        client holds back the backend read. Closing this generator early
        counts as a client disconnect.
        """
        if self.state is not RelayState.OPENING:
            raise RuntimeError(f"relay session already {self.state.value}")
        try:
            self._stream = self._open_stream()
            self.state = RelayState.STREAMING
            for chunk in self._stream:
                if self.sink.cancelled.is_set():
                    logger.info("Client disconnected%s; aborting relay.", self._tag())
                    self._close()
                    return
                self._handle_chunk(chunk)
                if self.state is not RelayState.STREAMING:
                    return
                yield
            self._finish_without_done()
        except BackendStreamError as e:
            self._fail(e)
        finally:
            if self.state is not RelayState.CLOSED:
                logger.info("Relay abandoned%s before completion.", self._tag())
                self._close()

    # ---------- transitions ----------

    def _handle_chunk(self, chunk: bytes) -> None:
        for line in self.decoder.feed(chunk):
            event = parse_event(line)
            if event is None:
                continue
            if event.response:
                self.sink.write(event.response)
            if event.done:
                logger.info("Generation complete%s.", self._tag())
                self._close()
                return  # anything after `done` is outside the session

    def _finish_without_done(self) -> None:
        tail = self.decoder.flush()
        if tail:
            try:
                event = _decode(tail)
            except ValueError:
                logger.warning("Dropped unparseable trailing frame%s: %s", self._tag(), tail[:_LOG_LINE_MAX])
            else:
                if event.response:
                    self.sink.write(event.response)
        logger.info("Backend stream ended without a done marker%s.", self._tag())
        self._close()

    def _fail(self, e: BackendStreamError) -> None:
        logger.error("Ollama stream error%s (%s): %s", self._tag(), e.kind, e)
        if self.state is RelayState.CLOSED:
            return
        if self.sink.headers_sent:
            self.sink.write(ERROR_MARKER)
        else:
            self.sink.fail(str(e))
        self._close()

    def _close(self) -> None:
        if self.state is RelayState.CLOSED:
            return
        self.state = RelayState.CLOSING
        self._release()
        self.sink.end()
        self.state = RelayState.CLOSED

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        close = getattr(stream, "close", None)
        if close is not None:
            close()

    def _tag(self) -> str:
        return f" for: {self.label}" if self.label else ""
