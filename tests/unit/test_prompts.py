"""Tests for prompt template loading."""

import json

from wallet_enrich.prompts import DEFAULT_PROMPTS, load_prompts


def test_no_path_uses_defaults():
    """Should use defaults when no path is configured."""
    assert load_prompts(None) == DEFAULT_PROMPTS


def test_missing_file_uses_defaults(tmp_path):
    """Should use defaults when the file does not exist."""
    assert load_prompts(tmp_path / "prompts.json") == DEFAULT_PROMPTS


def test_malformed_file_uses_defaults(tmp_path):
    """Should use defaults when the file is not JSON."""
    path = tmp_path / "prompts.json"
    path.write_text("{not json")
    assert load_prompts(path) == DEFAULT_PROMPTS


def test_non_object_uses_defaults(tmp_path):
    """Should use defaults when the JSON is not an object."""
    path = tmp_path / "prompts.json"
    path.write_text('["a", "b"]')
    assert load_prompts(path) == DEFAULT_PROMPTS


def test_partial_override(tmp_path):
    """Should replace defaults only for keys present in the file."""
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"analyze_system": "You are frugal.", "smart_parse_system": ""}))

    prompts = load_prompts(path)

    assert prompts.analyze_system == "You are frugal."
    assert prompts.smart_parse_system == DEFAULT_PROMPTS.smart_parse_system
    assert prompts.analyze_user_template == DEFAULT_PROMPTS.analyze_user_template


def test_edits_picked_up_without_restart(tmp_path):
    """Should pick up file edits on the next load."""
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"analyze_system": "first"}))
    assert load_prompts(path).analyze_system == "first"

    path.write_text(json.dumps({"analyze_system": "second"}))
    assert load_prompts(path).analyze_system == "second"


def test_render_placeholders():
    """Should substitute every template placeholder."""
    prompt = DEFAULT_PROMPTS.render_smart_parse("Netflix 15.99", "2024-06-01")
    assert "'Netflix 15.99'" in prompt
    assert "2024-06-01" in prompt
    assert "{text}" not in prompt

    analysis = DEFAULT_PROMPTS.render_analyze("- Netflix | Monthly\n")
    assert analysis.endswith("- Netflix | Monthly\n")
