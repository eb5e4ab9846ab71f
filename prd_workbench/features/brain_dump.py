# features/brain_dump.py
from __future__ import annotations
import json
import re
from typing import Any, Dict

from .prompt_template import PRD_FIELDS

# Output normalization (syntax-only)
FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$", re.MULTILINE)
OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

def _strip_fences(s: str) -> str:
    return FENCE_RE.sub("", s or "").strip()

def _as_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, str):
        return v.strip()
    if isinstance(v, list):
        return ", ".join(_as_text(x) for x in v if x not in (None, ""))
    return str(v)

def extract_fields(reply: str) -> Dict[str, str]:
    """
    Pull the PRD form fields out of a model reply. Tolerates code fences and
    prose around the JSON object; anything unrecoverable yields empty fields.
    """
    out = {key: "" for key, _ in PRD_FIELDS}
    text = _strip_fences(reply)
    m = OBJECT_RE.search(text)
    if not m:
        return out
    try:
        data = json.loads(m.group(0))
    except ValueError:
        return out
    if not isinstance(data, dict):
        return out
    for key in out:
        out[key] = _as_text(data.get(key))
    return out
