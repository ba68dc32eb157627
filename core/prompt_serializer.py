"""Conversion between AgentPrompt and its persistable form."""
from typing import Any, Dict, Union

from models.prompt import CORE_FIELDS, AgentPrompt, SerializedPrompt
from utils.error_handling import PromptInvalidFormatError
from utils.template import compile_template

REQUIRED_STRING_FIELDS = ("id", "version", "system", "userTemplate")


def has_user_template(prompt: AgentPrompt) -> bool:
    return isinstance(prompt.user_template, str)


def serialize_prompt(prompt: AgentPrompt) -> SerializedPrompt:
    """
    Convert a prompt into its persistable form.

    Render functions cannot be stored, so only template-backed prompts are
    serializable. Custom fields are carried in ``customFields`` (omitted when
    there are none).

    Raises:
        PromptInvalidFormatError: prompt has no userTemplate
    """
    if not has_user_template(prompt):
        raise PromptInvalidFormatError(
            "Cannot serialize prompt: userTemplate field is required",
            context={"prompt_id": prompt.id}
        )

    custom_fields = prompt.custom_fields()
    return SerializedPrompt(
        id=prompt.id,
        version=prompt.version,
        system=prompt.system,
        user_template=prompt.user_template,
        custom_fields=custom_fields or None
    )


def _validate_core_fields(data: Dict[str, Any], prompt_id: Any):
    for field_name in REQUIRED_STRING_FIELDS:
        value = data.get(field_name)
        if not isinstance(value, str):
            raise PromptInvalidFormatError(
                f"Invalid deserialized prompt: {field_name} must be a string",
                context={"prompt_id": prompt_id, "field": field_name, "actual": type(value).__name__}
            )


def deserialize_prompt(serialized: Union[SerializedPrompt, Dict[str, Any]]) -> AgentPrompt:
    """
    Rebuild a usable prompt from its persisted form.

    Custom fields are laid down first and core fields on top, so a custom
    field can never shadow ``id``, ``version``, ``system`` or ``userTemplate``.

    Raises:
        TemplateCompileError: userTemplate does not compile
        PromptInvalidFormatError: a core field is missing or not a string
    """
    if isinstance(serialized, SerializedPrompt):
        data = serialized.model_dump(by_alias=True)
    else:
        data = dict(serialized)

    prompt_id = data.get("id")
    _validate_core_fields(data, prompt_id)

    compile_template(data["userTemplate"], prompt_id)

    custom_fields = data.get("customFields") or {}
    fields = {k: v for k, v in custom_fields.items() if k not in CORE_FIELDS}
    fields.update(
        id=data["id"],
        version=data["version"],
        system=data["system"],
        user_template=data["userTemplate"],
    )

    try:
        return AgentPrompt(**fields)
    except ValueError as e:
        raise PromptInvalidFormatError(
            f"Invalid deserialized prompt: {e}",
            context={"prompt_id": prompt_id},
            cause=e
        )
