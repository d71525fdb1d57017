"""Typed failures raised by request validation and backend execution."""

from __future__ import annotations

from prompt_relay.orchestrator.failure_classifier import ExitClassification
from prompt_relay.orchestrator.models import BackendName, FailureStage

_FALLBACK_STAGES = frozenset({FailureStage.SPAWN, FailureStage.TIMEOUT, FailureStage.EXIT})


class RelayFailure(RuntimeError):
    """Base failure tagged with the stage that failed."""

    stage: FailureStage

    def __init__(self, message: str, *, backend: BackendName | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.backend = backend

    @property
    def fallback_eligible(self) -> bool:
        """Whether the alternate backend may be tried after this failure."""

        return self.stage in _FALLBACK_STAGES

    @property
    def reason_code(self) -> str:
        """Short diagnostic label for logs and rendered errors."""

        return self.stage.value


class ValidationFailure(RelayFailure):
    """Malformed or oversized request; never spawns a process."""

    stage = FailureStage.VALIDATION

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class SpawnFailure(RelayFailure):
    """Backend executable could not be started."""

    stage = FailureStage.SPAWN

    def __init__(self, *, command: str, reason: str, backend: BackendName | None = None) -> None:
        super().__init__(f"Failed to spawn {command}: {reason}", backend=backend)
        self.command = command
        self.reason = reason


class TimeoutFailure(RelayFailure):
    """Process exceeded its wall-clock budget and was terminated."""

    stage = FailureStage.TIMEOUT

    def __init__(self, *, timeout_seconds: float, backend: BackendName | None = None) -> None:
        super().__init__("Request timeout exceeded", backend=backend)
        self.timeout_seconds = timeout_seconds


class NonZeroExitFailure(RelayFailure):
    """Process ran to completion but reported failure."""

    stage = FailureStage.EXIT

    def __init__(
        self,
        *,
        command: str,
        exit_code: int,
        stderr: str,
        classification: ExitClassification | None = None,
        backend: BackendName | None = None,
    ) -> None:
        super().__init__(f"{command} exited with code {exit_code}: {stderr}", backend=backend)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.classification = classification

    @property
    def reason_code(self) -> str:
        if self.classification is None:
            return super().reason_code
        return self.classification.reason_code


class CancelledFailure(RelayFailure):
    """Process was terminated because the caller went away."""

    stage = FailureStage.CANCELLED

    def __init__(self, *, backend: BackendName | None = None) -> None:
        super().__init__("Request cancelled by caller", backend=backend)


class AggregateFailure(RelayFailure):
    """Primary and fallback backends both failed."""

    stage = FailureStage.AGGREGATE

    def __init__(
        self,
        *,
        primary: BackendName,
        fallback: BackendName,
        primary_failure: RelayFailure,
        fallback_failure: RelayFailure,
    ) -> None:
        super().__init__(
            "Both backends failed. "
            f"Primary ({primary.value}): {primary_failure.message}. "
            f"Fallback ({fallback.value}): {fallback_failure.message}",
        )
        self.primary = primary
        self.fallback = fallback
        self.primary_failure = primary_failure
        self.fallback_failure = fallback_failure
