# diagnostic.py — quick reachability report for the workbench and its inference server
"""
Run from project root:
  python -m prd_workbench.diagnostic
"""
from __future__ import annotations
from typing import Any, Dict

import requests

from .backends.ollama_client import BackendUnavailableError, InvalidBackendReply, list_models
from .config import OLLAMA_TAGS_URL, PORT, PREFERRED_MODEL

CHECK_TIMEOUT_S = 2


def check_port(port: int, timeout: float = CHECK_TIMEOUT_S) -> Dict[str, Any]:
    try:
        r = requests.get(f"http://localhost:{port}/api/ping", timeout=timeout)
    except requests.Timeout:
        return {"error": "Timeout"}
    except requests.ConnectionError:
        return {"error": "Connection refused"}
    except requests.RequestException as e:
        return {"error": str(e)}
    return {"status": r.status_code, "data": r.text.strip()}


def check_ollama(tags_url: str = OLLAMA_TAGS_URL, model: str = PREFERRED_MODEL,
                 timeout: float = CHECK_TIMEOUT_S) -> Dict[str, Any]:
    try:
        names = list_models(tags_url, timeout)
    except InvalidBackendReply:
        return {"reachable": True, "error": "Invalid JSON response from Ollama"}
    except BackendUnavailableError:
        return {"reachable": False}
    return {"reachable": True, "model": model, "model_available": any(model in n for n in names)}


def run() -> int:
    print("--- DIAGNOSTIC START ---")
    print(f"Port {PORT}:", check_port(PORT))
    print("Ollama Status:", check_ollama())
    print("--- DIAGNOSTIC END ---")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
