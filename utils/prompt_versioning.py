"""Prompt versioning and suggestion application."""
from typing import List, Optional, Tuple

from models.prompt import CORE_FIELDS, AgentPrompt
from models.suggestion import ApplySuggestionsResult, SkippedSuggestion, Suggestion, SuggestionType
from utils.error_handling import SuggestionApplyError
from utils.template import compile_template

BUMP_KINDS = ("major", "minor", "patch")


def truncate(text: str, max_length: int) -> str:
    """Shorten text for messages, marking the cut with '...'."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def bump_version(version: str, kind: str) -> str:
    """
    Bump a semver version string.

    Examples:
        bump_version("1.0.0", "major") -> "2.0.0"
        bump_version("1.2.3", "minor") -> "1.3.0"
        bump_version("1.0.0", "patch") -> "1.0.1"

    Raises:
        SuggestionApplyError: version is not x.y.z or kind is unknown
    """
    parts = version.split(".")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise SuggestionApplyError(
            f'Invalid version format: "{version}". Expected semver format (x.y.z)',
            context={"version": version, "expected_format": "x.y.z"}
        )
    if kind not in BUMP_KINDS:
        raise SuggestionApplyError(
            f"Unknown version bump: {kind}",
            context={"bump": kind, "allowed": list(BUMP_KINDS)}
        )

    major, minor, patch = (int(p) for p in parts)
    if kind == "major":
        return f"{major + 1}.0.0"
    if kind == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def _apply_one(prompt: AgentPrompt, suggestion: Suggestion) -> Tuple[Optional[AgentPrompt], Optional[str]]:
    """Apply a single suggestion. Returns (new_prompt, None) or (None, skip_reason)."""
    current, replacement = suggestion.current_value, suggestion.suggested_value
    preview = truncate(current, 50)

    if suggestion.type == SuggestionType.SYSTEM_PROMPT:
        if current not in prompt.system:
            return None, f'currentValue not found in system prompt: "{preview}"'
        return prompt.with_changes(system=prompt.system.replace(current, replacement, 1)), None

    if suggestion.type == SuggestionType.USER_PROMPT:
        if not isinstance(prompt.user_template, str):
            raise SuggestionApplyError(
                "Cannot apply user_prompt suggestion: prompt does not have a userTemplate field. "
                "A render function cannot be modified directly.",
                context={"suggestion_type": suggestion.type, "prompt_id": prompt.id}
            )
        if current not in prompt.user_template:
            return None, f'currentValue not found in userTemplate: "{preview}"'
        new_template = prompt.user_template.replace(current, replacement, 1)
        compile_template(new_template, prompt.id)
        return prompt.with_changes(user_template=new_template, render_fn=None), None

    if suggestion.type == SuggestionType.PARAMETERS:
        for key, value in prompt.custom_fields().items():
            if key in CORE_FIELDS:
                continue
            if isinstance(value, str) and current in value:
                return prompt.with_changes(**{key: value.replace(current, replacement, 1)}), None
        return None, f'currentValue not found in any parameter field: "{preview}"'

    return None, f"Unknown suggestion type: {suggestion.type}"


def apply_prompt_suggestions(
    prompt: AgentPrompt,
    suggestions: List[Suggestion],
    bump: Optional[str] = None
) -> ApplySuggestionsResult:
    """
    Apply approved suggestions to a prompt and return the updated copy.

    Only suggestions with ``approved=True`` are applied, each replacing the
    first occurrence of its ``current_value``. Suggestions whose current value
    cannot be found are skipped with a reason. The version is bumped only when
    at least one suggestion applied.

    Raises:
        SuggestionApplyError: user_prompt suggestion on a prompt without a
            userTemplate, or invalid version when bumping
    """
    approved = [s for s in suggestions if s.approved]
    if not approved:
        return ApplySuggestionsResult(prompt=prompt)

    updated = prompt
    applied_count = 0
    skipped: List[SkippedSuggestion] = []

    for suggestion in approved:
        new_prompt, reason = _apply_one(updated, suggestion)
        if new_prompt is None:
            skipped.append(SkippedSuggestion(suggestion=suggestion, reason=reason))
            continue
        updated = new_prompt
        applied_count += 1

    if bump and applied_count > 0:
        updated = updated.with_changes(version=bump_version(prompt.version, bump))

    return ApplySuggestionsResult(prompt=updated, applied_count=applied_count, skipped=skipped)


def suggestion_diff(suggestion: Suggestion) -> str:
    """
    Full-replacement diff of a suggestion.

    Every current line is shown as removed and every suggested line as added,
    under a ``--- type (current)`` / ``+++ type (suggested)`` header.
    """
    lines = [
        f"--- {suggestion.type} (current)",
        f"+++ {suggestion.type} (suggested)",
        "",
    ]
    lines.extend(f"- {line}" for line in suggestion.current_value.split("\n"))
    lines.extend(f"+ {line}" for line in suggestion.suggested_value.split("\n"))
    return "\n".join(lines)


def suggestion_preview(suggestion: Suggestion) -> str:
    lines = [
        "=== Suggestion Preview ===",
        f"Type: {suggestion.type}",
        f"Priority: {suggestion.priority}",
        "",
        f"Reasoning: {suggestion.reasoning}",
        "",
        f"Expected Improvement: {suggestion.expected_improvement}",
        "",
        "--- Current Value ---",
        suggestion.current_value,
        "",
        "--- Suggested Value ---",
        suggestion.suggested_value,
    ]
    return "\n".join(lines)


def suggestion_summary(suggestion: Suggestion) -> str:
    """One-line summary, e.g. ``[HIGH] system_prompt: Improve clarity``."""
    return f"[{str(suggestion.priority).upper()}] {suggestion.type}: {truncate(suggestion.reasoning, 60)}"
