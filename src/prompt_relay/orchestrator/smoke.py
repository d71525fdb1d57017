"""Availability check for one external CLI backend."""

from __future__ import annotations

import shutil
from dataclasses import dataclass

from prompt_relay.orchestrator.failures import RelayFailure
from prompt_relay.orchestrator.fallback import FallbackOrchestrator
from prompt_relay.orchestrator.models import BackendName, OutputMode, RequestSpec


@dataclass(slots=True)
class BackendCheckResult:
    """Outcome of one backend availability check."""

    backend: BackendName
    executable: str
    available: bool
    run_ok: bool
    error: str | None
    response: str


def check_backend(
    *,
    orchestrator: FallbackOrchestrator,
    backend: BackendName,
    timeout_seconds: float | None = None,
) -> BackendCheckResult:
    """Run a synthetic prompt on ``backend`` alone, never falling back."""

    executable = orchestrator.adapter(backend).descriptor.command
    if shutil.which(executable) is None:
        return BackendCheckResult(
            backend=backend,
            executable=executable,
            available=False,
            run_ok=False,
            error=f"Executable not found in PATH: {executable}",
            response="",
        )

    spec = RequestSpec(
        prompt=f'Say "Hello from {backend.display_name} CLI API!"',
        output_mode=OutputMode.TEXT,
        backend=backend,
        disable_fallback=True,
        timeout_seconds=timeout_seconds,
    )
    try:
        result = orchestrator.run_with_fallback(spec)
    except RelayFailure as failure:
        return BackendCheckResult(
            backend=backend,
            executable=executable,
            available=True,
            run_ok=False,
            error=failure.message,
            response="",
        )
    return BackendCheckResult(
        backend=backend,
        executable=executable,
        available=True,
        run_ok=True,
        error=None,
        response=_truncate(result.stdout),
    )


def _truncate(value: str, *, limit: int = 240) -> str:
    compact = value.strip().replace("\n", " ")
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."
