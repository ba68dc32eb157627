"""Tests for prompt serialization and template rendering."""
import pytest

from core.prompt_serializer import deserialize_prompt, has_user_template, serialize_prompt
from models import AgentPrompt, SerializedPrompt
from utils.error_handling import PromptInvalidFormatError, TemplateCompileError


def test_serialize_carries_custom_fields(base_prompt):
    serialized = serialize_prompt(base_prompt)
    assert serialized.user_template == "Question: {{ question }}"
    assert serialized.custom_fields == {"temperature_hint": "Answer in a helpful tone"}
    assert serialized.to_json_dict()["userTemplate"] == "Question: {{ question }}"


def test_serialize_omits_empty_custom_fields():
    prompt = AgentPrompt(id="p", system="sys", user_template="{{ x }}")
    data = serialize_prompt(prompt).to_json_dict()
    assert "customFields" not in data
    assert data == {"id": "p", "version": "1.0.0", "system": "sys", "userTemplate": "{{ x }}"}


def test_serialize_requires_user_template():
    prompt = AgentPrompt(id="fn", system="sys", render_fn=lambda input: f"Q: {input}")
    assert not has_user_template(prompt)
    with pytest.raises(PromptInvalidFormatError):
        serialize_prompt(prompt)


def test_round_trip_renders_identically(base_prompt):
    restored = deserialize_prompt(serialize_prompt(base_prompt))
    assert restored == base_prompt
    assert restored.render({"question": "Why?"}) == "Question: Why?"


def test_core_fields_win_over_custom_fields():
    serialized = SerializedPrompt(
        id="real",
        version="2.0.0",
        system="real system",
        user_template="{{ q }}",
        custom_fields={"id": "spoofed", "system": "spoofed", "tone": "formal"}
    )
    prompt = deserialize_prompt(serialized)
    assert prompt.id == "real"
    assert prompt.system == "real system"
    assert prompt.custom_fields() == {"tone": "formal"}


def test_deserialize_rejects_bad_template():
    with pytest.raises(TemplateCompileError):
        deserialize_prompt({"id": "p", "version": "1.0.0", "system": "s", "userTemplate": "{{ unclosed"})


def test_deserialize_rejects_non_string_core_field():
    with pytest.raises(PromptInvalidFormatError) as exc_info:
        deserialize_prompt({"id": "p", "version": 1, "system": "s", "userTemplate": "x"})
    assert exc_info.value.context["field"] == "version"


def test_render_missing_variable_raises(base_prompt):
    with pytest.raises(TemplateCompileError):
        base_prompt.render({"other": "value"})


def test_render_fn_takes_precedence():
    prompt = AgentPrompt(id="p", system="s", user_template="{{ q }}", render_fn=lambda input: "custom")
    assert prompt.render({"q": "ignored"}) == "custom"


def test_invalid_version_rejected():
    with pytest.raises(ValueError):
        AgentPrompt(id="p", version="1.0", system="s", user_template="x")
