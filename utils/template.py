"""User prompt template compilation."""
from typing import Any, Callable, Dict, Mapping

from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from pydantic import BaseModel

from utils.error_handling import TemplateCompileError


def _add(a: Any, b: Any) -> float:
    """Numeric add helper available inside templates as add(a, b)."""
    try:
        return float(a) + float(b)
    except (TypeError, ValueError):
        return float("nan")


# Templates may come from history files on disk, so they render sandboxed.
_environment = SandboxedEnvironment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=True,
)
_environment.globals["add"] = _add


def _template_variables(input: Any) -> Dict[str, Any]:
    """Expose the render input's fields as top-level template variables."""
    if isinstance(input, Mapping):
        return dict(input)
    if isinstance(input, BaseModel):
        return input.model_dump()
    if hasattr(input, "__dict__"):
        return dict(vars(input))
    return {"input": input}


def compile_template(template: str, prompt_id: str) -> Callable[[Any], str]:
    """
    Compile a user prompt template into a render function.

    Templates use ``{{ field }}`` placeholders; referencing a field the input
    does not provide is an error rather than an empty string.

    Args:
        template: Template source
        prompt_id: Owning prompt ID (error context)

    Returns:
        Function rendering the template for one input
    """
    try:
        compiled = _environment.from_string(template)
    except TemplateError as e:
        raise TemplateCompileError(
            f"Failed to compile userTemplate: {e}",
            context={"prompt_id": prompt_id, "user_template": template},
            cause=e
        )

    def render(input: Any) -> str:
        try:
            return compiled.render(**_template_variables(input))
        except TemplateError as e:
            raise TemplateCompileError(
                f"Failed to render userTemplate for prompt '{prompt_id}': {e}",
                context={"prompt_id": prompt_id, "stage": "render"},
                cause=e
            )

    return render
