# core/router.py — request handlers behind the HTTP routes
from __future__ import annotations
from typing import Any, Dict

from flask import Response, jsonify, stream_with_context

from ..config import BackendSettings
from ..backends.ollama_client import (
    BackendUnavailableError,
    GenerationRequest,
    generate_once,
    open_generation_stream,
)
from ..features import prompt_template
from ..features.brain_dump import extract_fields
from ..logger_config import setup_logger
from .relay import BufferedSink, RelaySession

logger = setup_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "X-Content-Type-Options": "nosniff",
}


def route_generate(payload: Dict[str, Any], settings: BackendSettings):
    """Validate the PRD form and stream the generated document."""
    error = prompt_template.validate_prd_input(payload)
    if error:
        logger.warning("Rejected generate request: %s", error)
        return jsonify({"error": error}), 400

    feature = payload.get("featureName", "").strip()
    prompt = prompt_template.construct_prompt(payload)
    logger.info("Sending prompt to Ollama (%s)...", settings.model)
    return relay_response(
        prompt,
        settings,
        label=feature,
        error_message=f"Failed to communicate with Ollama. Ensure {settings.model} is pulled.",
    )


def route_chat(payload: Dict[str, Any], settings: BackendSettings):
    """Guided elicitation: stream the assistant's next turn for a chat history."""
    history = prompt_template.format_chat_history(payload.get("history"))
    if not history:
        return jsonify({"error": "Chat history is required."}), 400
    prompt = prompt_template.construct_guided_chat_prompt(history)
    return relay_response(
        prompt,
        settings,
        label="guided chat",
        error_message=f"Failed to communicate with Ollama. Ensure {settings.model} is pulled.",
    )


def route_parse_brain_dump(payload: Dict[str, Any], settings: BackendSettings):
    """Extract the PRD form fields from free text (e.g. a voice transcript)."""
    text = payload.get("brainDump")
    text = text.strip() if isinstance(text, str) else ""
    if not text:
        return jsonify({"error": "Brain dump text is required."}), 400

    req = GenerationRequest(
        prompt=prompt_template.construct_brain_dump_parser_prompt(text),
        model=settings.model,
        temperature=settings.temperature,
        stream=False,
        format="json",
    )
    try:
        reply = generate_once(req, settings.generate_url, settings.timeout_s)
    except BackendUnavailableError as e:
        logger.error("Brain dump parsing failed: %s", e)
        return jsonify({"error": "Failed to communicate with Ollama."}), 502
    return jsonify(extract_fields(reply))


def relay_response(prompt: str, settings: BackendSettings, label: str = "",
                   error_message: str = "Stream error"):
    """
    Relay a streamed generation as a text/plain body.

    The status line is held back until the first text fragment is ready (or
    the session closes), so a backend that fails before producing anything
    gets a JSON 500 rather than an empty 200.
    """
    sink = BufferedSink()
    req = GenerationRequest(prompt=prompt, model=settings.model, temperature=settings.temperature)
    session = RelaySession(
        lambda: open_generation_stream(req, settings.generate_url, settings.timeout_s, cancel=sink.cancelled),
        sink,
        label=label,
    )
    steps = session.pump()

    for _ in steps:
        if sink.has_pending():
            break

    if sink.failure is not None:
        logger.error("Error initiating generation: %s", sink.failure)
        return jsonify({"error": error_message}), 500

    sink.commit()

    def gen():
        try:
            yield from sink.drain()
            for _ in steps:
                yield from sink.drain()
            yield from sink.drain()
        finally:
            if not session.closed:
                sink.cancelled.set()
            steps.close()

    return Response(
        stream_with_context(gen()),
        content_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
    )
