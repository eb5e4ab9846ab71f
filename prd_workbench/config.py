import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()  # load variables from .env into environment

# endpoints
OLLAMA_URL      = os.getenv("OLLAMA_URL", "http://localhost:11434/api/generate")
OLLAMA_TAGS_URL = os.getenv("OLLAMA_TAGS_URL", "http://localhost:11434/api/tags")

# models
PREFERRED_MODEL = os.getenv("PREFERRED_MODEL", "llama3.2")
FALLBACK_MODEL  = os.getenv("FALLBACK_MODEL", "mistral")

# app settings
HOST              = os.getenv("HOST", "0.0.0.0")
PORT              = int(os.getenv("PORT", "3008"))
REQUEST_TIMEOUT_S = float(os.getenv("REQUEST_TIMEOUT_S", "300"))  # slow first-token on cold model loads
MODEL_CHECK_TIMEOUT_S = float(os.getenv("MODEL_CHECK_TIMEOUT_S", "2"))
TEMPERATURE       = float(os.getenv("TEMPERATURE", "0.2"))

# logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE  = os.getenv("LOG_FILE") or None


@dataclass(frozen=True)
class BackendSettings:
    """Resolved once at startup and handed to every relay session."""
    generate_url: str
    model: str
    temperature: float = TEMPERATURE
    timeout_s: float = REQUEST_TIMEOUT_S

    @classmethod
    def from_config(cls, model: str) -> "BackendSettings":
        return cls(
            generate_url=OLLAMA_URL,
            model=model,
            temperature=TEMPERATURE,
            timeout_s=REQUEST_TIMEOUT_S,
        )
