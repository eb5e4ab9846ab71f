import os
from typing import Optional

from flask import Flask, request, jsonify, send_from_directory
from .core.router import route_generate, route_chat, route_parse_brain_dump
from .backends.ollama_client import resolve_model
from .config import BackendSettings, OLLAMA_URL, HOST, PORT
from .logger_config import setup_logger

logger = setup_logger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static")


def create_app(settings: Optional[BackendSettings] = None) -> Flask:
    """Build the app; without explicit settings the model is resolved by probing Ollama once."""
    if settings is None:
        settings = BackendSettings.from_config(resolve_model())

    app = Flask(__name__, static_folder=STATIC_DIR, static_url_path="")
    app.config["BACKEND"] = settings

    @app.route("/api/ping", methods=["GET"])
    def ping():
        return jsonify({"status": "ok", "model": settings.model})

    @app.route("/", methods=["GET"])
    def index():
        return send_from_directory(STATIC_DIR, "index.html")

    @app.route("/api/generate", methods=["POST"])
    def generate():
        payload = request.get_json(force=True, silent=True) or {}   # parse JSON payload
        logger.info(">>> RECEIVED REQUEST: %s", payload)
        return route_generate(payload, settings)

    @app.route("/api/chat", methods=["POST"])
    def chat():
        payload = request.get_json(force=True, silent=True) or {}
        return route_chat(payload, settings)

    @app.route("/api/parse-brain-dump", methods=["POST"])
    def parse_brain_dump():
        payload = request.get_json(force=True, silent=True) or {}
        return route_parse_brain_dump(payload, settings)

    return app


if __name__ == "__main__":
    app = create_app()
    backend = app.config["BACKEND"]
    logger.info("PM Helper Server running at http://localhost:%s", PORT)
    logger.info("Targeting Ollama at: %s using model: %s", OLLAMA_URL, backend.model)
    app.run(host=HOST, port=PORT, threaded=True)  # dev server
