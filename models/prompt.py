"""Agent prompt models."""
import re
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

from models.base import CamelModel
from utils.error_handling import PromptInvalidFormatError
from utils.template import compile_template

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

# Fields owned by the prompt itself; everything else is a custom field
CORE_FIELDS = frozenset(["id", "version", "system", "user_template", "userTemplate", "render_fn"])


@lru_cache(maxsize=256)
def _compiled_template(template: str, prompt_id: str) -> Callable[[Any], str]:
    return compile_template(template, prompt_id)


class AgentPrompt(BaseModel):
    """
    A versioned agent prompt.

    The user prompt is rendered either from ``user_template`` or from an
    opaque ``render_fn``. Only template-backed prompts can be persisted.
    Any extra keyword arguments are kept as custom fields.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str
    version: str = Field(default="1.0.0", description="Semver x.y.z")
    system: str
    user_template: Optional[str] = Field(default=None, alias="userTemplate")
    render_fn: Optional[Callable[[Any], str]] = Field(default=None, exclude=True)

    @field_validator("version")
    @classmethod
    def _check_semver(cls, value: str) -> str:
        if not SEMVER_PATTERN.match(value):
            raise ValueError(f"version must be semver x.y.z, got {value!r}")
        return value

    def render(self, input: Any) -> str:
        """Render the user prompt for one test input."""
        if self.render_fn is not None:
            return self.render_fn(input)
        if self.user_template is None:
            raise PromptInvalidFormatError(
                f"Prompt '{self.id}' has neither userTemplate nor render_fn",
                context={"prompt_id": self.id}
            )
        return _compiled_template(self.user_template, self.id)(input)

    def custom_fields(self) -> Dict[str, Any]:
        """Fields beyond the core prompt fields."""
        return dict(self.model_extra or {})

    def with_changes(self, **changes: Any) -> "AgentPrompt":
        """Return a validated copy with the given fields replaced."""
        data = {
            "id": self.id,
            "version": self.version,
            "system": self.system,
            "user_template": self.user_template,
            "render_fn": self.render_fn,
        }
        data.update(self.custom_fields())
        data.update(changes)
        return AgentPrompt(**data)


class SerializedPrompt(CamelModel):
    """Persistable form of an AgentPrompt."""
    id: str
    version: str
    system: str
    user_template: str
    custom_fields: Optional[Dict[str, Any]] = None

    @model_serializer(mode="wrap")
    def _omit_missing_custom_fields(self, handler):
        data = handler(self)
        if self.custom_fields is None:
            data.pop("customFields", None)
            data.pop("custom_fields", None)
        return data
