"""Argument dialect for the full-featured ``claude`` CLI."""

from __future__ import annotations

import json

from prompt_relay.orchestrator.backend.base import (
    BackendCapability,
    BackendDescriptor,
    log_ignored_fields,
)
from prompt_relay.orchestrator.models import BackendName, Invocation, OutputMode, RequestSpec

CLAUDE_CAPABILITIES = frozenset(BackendCapability)


class ClaudeAdapter:
    """Every request field maps to its own flag."""

    def __init__(self, *, command: str, default_model: str) -> None:
        self.descriptor = BackendDescriptor(
            name=BackendName.CLAUDE,
            command=command,
            default_model=default_model,
            native=CLAUDE_CAPABILITIES,
        )

    @property
    def default_model(self) -> str:
        return self.descriptor.default_model

    def build_invocation(self, spec: RequestSpec) -> Invocation:
        log_ignored_fields(self.descriptor, spec)
        model = spec.model or self.default_model
        args: list[str] = ["--print", "--output-format", spec.output_mode.value]
        if spec.include_partial_messages and spec.output_mode is OutputMode.STRUCTURED_STREAM:
            args.append("--include-partial-messages")

        args.extend(["--model", model])

        if spec.system_prompt:
            args.extend(["--system-prompt", spec.system_prompt])
        if spec.append_system_prompt:
            args.extend(["--append-system-prompt", spec.append_system_prompt])

        if spec.allowed_tools:
            args.extend(["--allowed-tools", " ".join(spec.allowed_tools)])
        if spec.disallowed_tools:
            args.extend(["--disallowed-tools", " ".join(spec.disallowed_tools)])
        # independent of --allowed-tools for this backend
        if spec.skip_permissions:
            args.append("--dangerously-skip-permissions")

        if spec.settings:
            args.extend(
                ["--settings", json.dumps(spec.settings, separators=(",", ":"), ensure_ascii=False)],
            )
        if spec.mcp_config:
            args.extend(["--mcp-config", *spec.mcp_config])

        if spec.continue_session:
            args.append("--continue")
        if spec.resume_session:
            args.extend(["--resume", spec.resume_session])
        if spec.session_id:
            args.extend(["--session-id", spec.session_id])

        args.append(spec.prompt)
        return Invocation(
            backend=self.descriptor.name,
            command=self.descriptor.command,
            args=tuple(args),
            model=model,
        )
