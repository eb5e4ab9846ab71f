# features/prompt_template.py
from __future__ import annotations
from typing import Any, Dict, List, Optional, Union

# Input fields collected by the form, in prompt order
PRD_FIELDS = [
    ("featureName", "Feature Name"),
    ("problemStatement", "Problem Statement"),
    ("businessObjective", "Business Objective"),
    ("successMetrics", "Success Metrics"),
    ("targetPersona", "Target Persona"),
    ("constraints", "Constraints"),
]
REQUIRED_FIELDS = ("featureName", "problemStatement")

# Triggers the compliance line in the PRD prompt
HEALTHCARE_KEYWORDS = [
    "ABHA", "ABDM", "HIMS", "PHI", "Consent",
    "Health records", "Patient", "EMR", "EHR",
    "Clinical", "Doctor", "Hospital", "Pharmacy",
]

PRD_SECTIONS = [
    "Introduction / Overview",
    "Goals / Objectives (SMART)",
    "Target Audience / User Personas",
    "User Stories (Table: ID, User Story, Priority)",
    "Functional Requirements",
    "Non-Functional Requirements (Performance, Security, Compliance)",
    "Design Considerations",
    "Success Metrics",
    "Open Questions & Future Considerations",
]

GUIDED_CHAT_SYSTEM = """ROLE:
You are an expert Product Manager assistant and requirements analyst. Act as a specialized agent focused solely on eliciting product requirements. Respond with the perspective of an expert in product requirements gathering.

GOAL:
Collaborate with the user to create a comprehensive draft PRD through an iterative, question-driven process.

PROCESS & KEY RULES:
1. Analyze the user's input step-by-step. Cross-reference all info to ensure coverage and identify contradictions.
2. Guide by asking specific, targeted questions (1-3 at a time). Use bullet points for clarity. Keep questions concise.
3. Anticipate follow-up questions needed for a comprehensive PRD.
4. If you make assumptions, state them explicitly and ask for validation.
5. Prompt for multiple perspectives (user types, edge cases).
6. Ask for quantification (metrics, numbers) for goals and success.
7. USER-CENTERED CHECK-IN: Regularly verify direction. Before shifting focus, briefly state your intended next step and explicitly ask for confirmation.
8. Do not write the full PRD yet until sufficient information is gathered and the user confirms.

DESIRED PRD STRUCTURE (Towards which we build):
* Introduction / Overview
* Goals / Objectives (SMART)
* Target Audience / User Personas
* User Stories / Use Cases
* Functional Requirements
* Non-Functional Requirements (Security, Performance, etc.)
* Design Considerations
* Success Metrics
* Open Questions

TONE: Professional, inquisitive, and helpful. Neutral guidance."""


def _field(data: Dict[str, Any], key: str) -> str:
    v = (data or {}).get(key)
    return v.strip() if isinstance(v, str) else ""


def detect_healthcare_context(text: str) -> bool:
    t = (text or "").lower()
    return any(k.lower() in t for k in HEALTHCARE_KEYWORDS)


def validate_prd_input(data: Dict[str, Any]) -> Optional[str]:
    """Return the client-facing error when a required field is blank, else None."""
    if any(not _field(data, k) for k in REQUIRED_FIELDS):
        return "Feature Name and Problem Statement are required."
    return None


def construct_prompt(data: Dict[str, Any]) -> str:
    """Structured PRD prompt from the form fields."""
    subject = " ".join(_field(data, k) for k in ("featureName", "problemStatement", "businessObjective"))
    healthcare = "HEALTHCARE CONTEXT: Include ABHA/ABDM/PHI compliance details." if detect_healthcare_context(subject) else ""

    sections = "\n".join(f"{i}. {s}" for i, s in enumerate(PRD_SECTIONS, start=1))
    context = "\n".join(f"{label}: {_field(data, key)}" for key, label in PRD_FIELDS)

    return (
        "Act as an Expert PM Assistant. Generate a professional, highly structured PRD.\n"
        "NO conversational filler. Use Markdown.\n\n"
        f"SECTIONS TO INCLUDE:\n{sections}\n\n"
        f"{healthcare}\n\n"
        f"INPUT CONTEXT:\n{context}\n\n"
        "Generate the draft PRD now. Focus on logical clarity and implementation readiness."
    )


def format_chat_history(history: Union[str, List[Dict[str, Any]], None]) -> str:
    """Flatten a message list into 'Role: text' lines; strings pass through, anything else is empty."""
    if isinstance(history, str):
        return history.strip()
    if not isinstance(history, list):
        return ""
    lines = []
    for m in history:
        if not isinstance(m, dict):
            continue
        content = _field(m, "content")
        if not content:
            continue
        role = (_field(m, "role") or "user").capitalize()
        lines.append(f"{role}: {content}")
    return "\n".join(lines)


def construct_guided_chat_prompt(history: Union[str, List[Dict[str, Any]], None]) -> str:
    """Iterative elicitation prompt (collaborator mode)."""
    return f"{GUIDED_CHAT_SYSTEM}\n\nCONVERSATION HISTORY:\n{format_chat_history(history)}\n\nYOUR RESPONSE:"


def construct_brain_dump_parser_prompt(brain_dump: str) -> str:
    fields = ",\n".join(f'  "{key}": "string"' for key, _ in PRD_FIELDS)
    return (
        "### TASK: EXTRACT JSON DATA FROM BRAIN DUMP ::: STRICTLY NO CONVERSATION ###\n"
        "Extract the following fields from the raw text provided.\n"
        "If a field is unknown, use an empty string.\n\n"
        f"REQUIRED JSON FORMAT:\n{{\n{fields}\n}}\n\n"
        f'BRAIN DUMP TEXT:\n"{brain_dump}"\n\n'
        "### RESPONSE (Valid JSON only):"
    )
