"""Request payload validation and normalization into ``RequestSpec``."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from prompt_relay.config import is_valid_timeout
from prompt_relay.orchestrator.failures import ValidationFailure
from prompt_relay.orchestrator.models import BackendName, OutputMode, RequestSpec

OUTPUT_FORMATS = tuple(mode.value for mode in OutputMode)
# argv strings cannot carry it
_NUL = "\x00"

# wire key -> RequestSpec field
_STRING_FIELDS = {
    "model": "model",
    "systemPrompt": "system_prompt",
    "appendSystemPrompt": "append_system_prompt",
    "sessionId": "session_id",
    "resumeSession": "resume_session",
}
_BOOL_FIELDS = {
    "dangerouslySkipPermissions": "skip_permissions",
    "continueSession": "continue_session",
    "includePartialMessages": "include_partial_messages",
    "disableFallback": "disable_fallback",
}
_LIST_FIELDS = {
    "allowedTools": "allowed_tools",
    "disallowedTools": "disallowed_tools",
    "mcpConfig": "mcp_config",
}


def build_request_spec(
    payload: Mapping[str, Any],
    *,
    max_prompt_length: int,
) -> RequestSpec:
    """Validate a request payload and return the normalized spec.

    Keys follow the request wire format (``prompt``, ``outputFormat``,
    ``systemPrompt``, ``cli``...). All errors are collected and raised
    together as one ``ValidationFailure``.
    """

    errors: list[str] = []
    values: dict[str, Any] = {}

    prompt = payload.get("prompt")
    if not isinstance(prompt, str) or not prompt:
        errors.append("prompt is required")
    elif len(prompt) > max_prompt_length:
        errors.append(f"prompt exceeds maximum length of {max_prompt_length} characters")
    elif _NUL in prompt:
        errors.append("prompt must not contain NUL characters")

    output_format = payload.get("outputFormat")
    if output_format is not None:
        if output_format not in OUTPUT_FORMATS:
            errors.append(f"outputFormat must be one of: {', '.join(OUTPUT_FORMATS)}")
        else:
            values["output_mode"] = OutputMode(output_format)

    for key, field_name in _STRING_FIELDS.items():
        value = payload.get(key)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            errors.append(f"{key} must be a string")
            continue
        if _NUL in value:
            errors.append(f"{key} must not contain NUL characters")
            continue
        values[field_name] = value

    for key, field_name in _BOOL_FIELDS.items():
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, bool):
            errors.append(f"{key} must be a boolean")
            continue
        values[field_name] = value

    for key, field_name in _LIST_FIELDS.items():
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, list | tuple) or not all(isinstance(v, str) for v in value):
            errors.append(f"{key} must be a list of strings")
            continue
        if any(_NUL in item for item in value):
            errors.append(f"{key} must not contain NUL characters")
            continue
        values[field_name] = tuple(value)

    settings = payload.get("settings")
    if settings is not None:
        if not isinstance(settings, Mapping):
            errors.append("settings must be an object")
        else:
            values["settings"] = dict(settings)

    backend = payload.get("cli")
    if backend is not None:
        try:
            values["backend"] = BackendName(str(backend).strip().lower())
        except ValueError:
            errors.append("cli must be one of: claude, gemini")

    timeout = payload.get("timeout")
    if timeout is not None:
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, int | float)
            or not is_valid_timeout(timeout)
        ):
            errors.append("timeout must be a positive number of seconds")
        else:
            values["timeout_seconds"] = float(timeout)

    if errors:
        raise ValidationFailure(errors)
    return RequestSpec(prompt=prompt, **values)


def validate_spec(spec: RequestSpec, *, max_prompt_length: int) -> None:
    """Check invariants of an already constructed spec."""

    errors: list[str] = []
    if not spec.prompt:
        errors.append("prompt is required")
    elif len(spec.prompt) > max_prompt_length:
        errors.append(f"prompt exceeds maximum length of {max_prompt_length} characters")
    elif _NUL in spec.prompt:
        errors.append("prompt must not contain NUL characters")
    for key, field_name in _STRING_FIELDS.items():
        value = getattr(spec, field_name)
        if value and _NUL in value:
            errors.append(f"{key} must not contain NUL characters")
    for key, field_name in _LIST_FIELDS.items():
        if any(_NUL in item for item in getattr(spec, field_name)):
            errors.append(f"{key} must not contain NUL characters")
    if not isinstance(spec.output_mode, OutputMode):
        errors.append(f"outputFormat must be one of: {', '.join(OUTPUT_FORMATS)}")
    if spec.timeout_seconds is not None and not is_valid_timeout(spec.timeout_seconds):
        errors.append("timeout must be a positive number of seconds")
    if errors:
        raise ValidationFailure(errors)
