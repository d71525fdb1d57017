"""Runtime configuration for backend routing and process execution."""

from __future__ import annotations

import math
import os
import threading
from dataclasses import dataclass

SUPPORTED_BACKENDS = ("claude", "gemini")
# largest interval threading.Timer accepts
MAX_TIMEOUT_SECONDS = threading.TIMEOUT_MAX
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True, slots=True)
class RelaySettings:
    """Immutable deployment settings threaded through the orchestrator."""

    default_backend: str = "claude"
    fallback_enabled: bool = True
    claude_default_model: str = "sonnet"
    gemini_default_model: str = "gemini-2.5-flash"
    claude_command: str = "claude"
    gemini_command: str = "gemini"
    max_prompt_length: int = 100_000
    request_timeout_seconds: float = 300.0
    kill_grace_seconds: float = 5.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> RelaySettings:
        """Load settings from environment with defaults for local use."""

        return cls(
            default_backend=os.getenv("PROMPT_RELAY_DEFAULT_BACKEND", "claude").strip().lower(),
            fallback_enabled=_env_bool("PROMPT_RELAY_ENABLE_FALLBACK", default=True),
            claude_default_model=os.getenv("PROMPT_RELAY_CLAUDE_DEFAULT_MODEL", "sonnet"),
            gemini_default_model=os.getenv(
                "PROMPT_RELAY_GEMINI_DEFAULT_MODEL",
                "gemini-2.5-flash",
            ),
            claude_command=os.getenv("PROMPT_RELAY_CLAUDE_COMMAND", "claude"),
            gemini_command=os.getenv("PROMPT_RELAY_GEMINI_COMMAND", "gemini"),
            max_prompt_length=int(os.getenv("PROMPT_RELAY_MAX_PROMPT_LENGTH", "100000")),
            request_timeout_seconds=float(
                os.getenv("PROMPT_RELAY_REQUEST_TIMEOUT_SECONDS", "300"),
            ),
            kill_grace_seconds=float(os.getenv("PROMPT_RELAY_KILL_GRACE_SECONDS", "5")),
            log_level=os.getenv("PROMPT_RELAY_LOG_LEVEL", "INFO").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for unsupported or non-positive values."""

        if self.default_backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unsupported PROMPT_RELAY_DEFAULT_BACKEND: {self.default_backend!r}. "
                "Use claude or gemini.",
            )
        for name, command in (("claude", self.claude_command), ("gemini", self.gemini_command)):
            if not command.strip():
                raise ValueError(f"Empty command for backend={name!r}")
        for name, model in (
            ("claude", self.claude_default_model),
            ("gemini", self.gemini_default_model),
        ):
            if not model.strip():
                raise ValueError(f"Empty default model for backend={name!r}")
        if self.max_prompt_length <= 0:
            raise ValueError("PROMPT_RELAY_MAX_PROMPT_LENGTH must be > 0.")
        if not is_valid_timeout(self.request_timeout_seconds):
            raise ValueError(
                "PROMPT_RELAY_REQUEST_TIMEOUT_SECONDS must be > 0 and finite "
                f"(at most {MAX_TIMEOUT_SECONDS:.0f}).",
            )
        if not (self.kill_grace_seconds == 0 or is_valid_timeout(self.kill_grace_seconds)):
            raise ValueError(
                "PROMPT_RELAY_KILL_GRACE_SECONDS must be >= 0 and finite "
                f"(at most {MAX_TIMEOUT_SECONDS:.0f}).",
            )
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(f"Unsupported PROMPT_RELAY_LOG_LEVEL: {self.log_level!r}")

    def default_model_for(self, backend: str) -> str:
        if backend == "gemini":
            return self.gemini_default_model
        return self.claude_default_model

    def command_for(self, backend: str) -> str:
        if backend == "gemini":
            return self.gemini_command
        return self.claude_command


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")


def is_valid_timeout(seconds: float) -> bool:
    """Return whether ``seconds`` is usable as a timer interval."""

    return math.isfinite(seconds) and 0 < seconds <= MAX_TIMEOUT_SECONDS
