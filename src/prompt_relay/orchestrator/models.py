"""Domain models for prompt execution requests and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BackendName(str, Enum):
    """Closed set of external CLI backends."""

    CLAUDE = "claude"
    GEMINI = "gemini"

    @property
    def other(self) -> BackendName:
        """Return the alternate backend used for fallback."""

        if self is BackendName.CLAUDE:
            return BackendName.GEMINI
        return BackendName.CLAUDE

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class OutputMode(str, Enum):
    """Backend output format, valued by the CLI flag spelling."""

    TEXT = "text"
    STRUCTURED = "json"
    STRUCTURED_STREAM = "stream-json"


class FailureStage(str, Enum):
    """Stage at which a request failed."""

    VALIDATION = "validation"
    SPAWN = "spawn"
    TIMEOUT = "timeout"
    EXIT = "exit"
    CANCELLED = "cancelled"
    AGGREGATE = "aggregate"


class FailureClass(str, Enum):
    """Diagnostic class of a non-zero backend exit."""

    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"
    RATE_LIMITED = "rate_limited"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_ERROR = "backend_error"


@dataclass(frozen=True, slots=True)
class RequestSpec:
    """Normalized description of one prompt-execution request."""

    prompt: str
    output_mode: OutputMode = OutputMode.STRUCTURED
    model: str | None = None
    system_prompt: str | None = None
    append_system_prompt: str | None = None
    allowed_tools: tuple[str, ...] = ()
    disallowed_tools: tuple[str, ...] = ()
    skip_permissions: bool = False
    settings: dict[str, Any] | None = None
    mcp_config: tuple[str, ...] = ()
    session_id: str | None = None
    continue_session: bool = False
    resume_session: str | None = None
    include_partial_messages: bool = False
    backend: BackendName | None = None
    disable_fallback: bool = False
    timeout_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class Invocation:
    """Resolved external command line for one backend attempt."""

    backend: BackendName
    command: str
    args: tuple[str, ...]
    model: str

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]

    def display(self) -> str:
        """Render the command line for logs with the prompt redacted."""

        return " ".join([self.command, *self.args[:-1], "<prompt>"])


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    """Captured output of a process that exited cleanly."""

    stdout: bytes
    stderr: bytes
    exit_code: int = 0


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Buffered execution outcome tagged with provenance."""

    stdout: str
    stderr: str
    used_backend: BackendName
    model: str
    fallback_used: bool = False


@dataclass(slots=True)
class ParsedOutput:
    """Decoded backend output; ``raw`` marks undecodable structured output."""

    payload: Any
    raw: bool = False
    parse_error: str | None = None


@dataclass(slots=True)
class BatchItem:
    """One batch prompt with optional per-item overrides."""

    prompt: str
    model: str | None = None
    system_prompt: str | None = None
    backend: str | None = None


@dataclass(slots=True)
class BatchEntry:
    """Successful batch item."""

    index: int
    result: ExecutionResult
    parsed: ParsedOutput


@dataclass(slots=True)
class BatchError:
    """Failed batch item."""

    index: int
    message: str


@dataclass(slots=True)
class BatchSummary:
    total: int
    successful: int
    failed: int


@dataclass(slots=True)
class BatchOutcome:
    """Ordered batch results with isolated per-item failures."""

    results: list[BatchEntry] = field(default_factory=list)
    errors: list[BatchError] = field(default_factory=list)
    total: int = 0

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def summary(self) -> BatchSummary:
        return BatchSummary(
            total=self.total,
            successful=len(self.results),
            failed=len(self.errors),
        )
