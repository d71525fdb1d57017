"""Argument dialect for the reduced-featured ``gemini`` CLI.

The CLI has no system-prompt flag, so system text is folded into the
prompt argument. It has no session-id flag either; a bare session id is
approximated by resuming the most recent session.
"""

from __future__ import annotations

from prompt_relay.orchestrator.backend.base import (
    BackendCapability,
    BackendDescriptor,
    log_ignored_fields,
)
from prompt_relay.orchestrator.models import BackendName, Invocation, RequestSpec

LATEST_SESSION = "latest"

GEMINI_NATIVE = frozenset(
    {
        BackendCapability.ALLOWED_TOOLS,
        BackendCapability.SKIP_PERMISSIONS,
        BackendCapability.RESUME_SESSION,
    },
)
GEMINI_APPROXIMATED = frozenset(
    {
        BackendCapability.SYSTEM_PROMPT,
        BackendCapability.APPEND_SYSTEM_PROMPT,
        BackendCapability.SESSION_ID,
    },
)


class GeminiAdapter:
    """Maps the request onto the smaller gemini flag set."""

    def __init__(self, *, command: str, default_model: str) -> None:
        self.descriptor = BackendDescriptor(
            name=BackendName.GEMINI,
            command=command,
            default_model=default_model,
            native=GEMINI_NATIVE,
            approximated=GEMINI_APPROXIMATED,
        )

    @property
    def default_model(self) -> str:
        return self.descriptor.default_model

    def build_invocation(self, spec: RequestSpec) -> Invocation:
        log_ignored_fields(self.descriptor, spec)
        model = spec.model or self.default_model
        args: list[str] = ["--output-format", spec.output_mode.value, "--model", model]

        # --yolo and --allowed-tools are mutually exclusive
        if spec.skip_permissions:
            args.append("--yolo")
        elif spec.allowed_tools:
            args.extend(["--allowed-tools", *spec.allowed_tools])

        if spec.resume_session:
            args.extend(["--resume", spec.resume_session])
        elif spec.session_id:
            args.extend(["--resume", LATEST_SESSION])

        args.append(compose_prompt(spec))
        return Invocation(
            backend=self.descriptor.name,
            command=self.descriptor.command,
            args=tuple(args),
            model=model,
        )


def compose_prompt(spec: RequestSpec) -> str:
    """Fold system text into the prompt argument."""

    if spec.system_prompt:
        return f"System: {spec.system_prompt}\n\nUser: {spec.prompt}"
    if spec.append_system_prompt:
        return f"{spec.append_system_prompt}\n\n{spec.prompt}"
    return spec.prompt
