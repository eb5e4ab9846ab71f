"""Prompt construction and brain-dump field extraction."""

from prd_workbench.features import prompt_template as pt
from prd_workbench.features.brain_dump import extract_fields


def test_healthcare_detection_is_case_insensitive():
    assert pt.detect_healthcare_context("Sync EMR records for the clinic")
    assert pt.detect_healthcare_context("hospital bed tracker")
    assert not pt.detect_healthcare_context("Dark mode for the dashboard")
    assert not pt.detect_healthcare_context("")


def test_validate_prd_input():
    msg = "Feature Name and Problem Statement are required."
    assert pt.validate_prd_input({}) == msg
    assert pt.validate_prd_input({"featureName": "X", "problemStatement": "   "}) == msg
    assert pt.validate_prd_input({"featureName": 3, "problemStatement": "Y"}) == msg
    assert pt.validate_prd_input({"featureName": "X", "problemStatement": "Y"}) is None


def test_construct_prompt_lists_sections_and_inputs():
    prompt = pt.construct_prompt({"featureName": "Dark mode", "problemStatement": "Eye strain at night"})
    for i, section in enumerate(pt.PRD_SECTIONS, start=1):
        assert f"{i}. {section}" in prompt
    assert "Feature Name: Dark mode" in prompt
    assert "Constraints: \n" in prompt
    assert "HEALTHCARE CONTEXT" not in prompt


def test_construct_prompt_adds_compliance_line():
    prompt = pt.construct_prompt({"featureName": "ABHA linking", "problemStatement": "Manual ID entry"})
    assert "HEALTHCARE CONTEXT: Include ABHA/ABDM/PHI compliance details." in prompt


def test_guided_chat_prompt_accepts_text_or_messages():
    assert "CONVERSATION HISTORY:\nhello there\n" in pt.construct_guided_chat_prompt("  hello there ")
    msgs = [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": ""}, "junk"]
    assert pt.format_chat_history(msgs) == "User: Hi"
    assert pt.format_chat_history(None) == ""


def test_brain_dump_prompt_embeds_text_and_schema():
    prompt = pt.construct_brain_dump_parser_prompt("build a kiosk")
    assert '"build a kiosk"' in prompt
    for key, _ in pt.PRD_FIELDS:
        assert f'"{key}": "string"' in prompt


def test_extract_fields_from_prose_wrapped_json():
    reply = 'Sure! Here you go: {"featureName": "Kiosk", "successMetrics": 20} Hope it helps.'
    fields = extract_fields(reply)
    assert fields["featureName"] == "Kiosk"
    assert fields["successMetrics"] == "20"
    assert set(fields) == {key for key, _ in pt.PRD_FIELDS}


def test_extract_fields_unrecoverable_reply():
    assert all(v == "" for v in extract_fields("no json here").values())
    assert all(v == "" for v in extract_fields("{broken").values())
    assert all(v == "" for v in extract_fields("").values())


def test_format_chat_history_ignores_malformed_input():
    assert pt.format_chat_history(5) == ""
    assert pt.format_chat_history({"role": "user", "content": "Hi"}) == ""
    msgs = [{"role": "user", "content": 42}, {"role": None, "content": "Still here"}]
    assert pt.format_chat_history(msgs) == "User: Still here"
