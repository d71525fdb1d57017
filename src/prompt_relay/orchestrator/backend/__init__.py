"""Backend adapter implementations."""

from __future__ import annotations

from prompt_relay.config import RelaySettings
from prompt_relay.orchestrator.backend.base import (
    BackendAdapter,
    BackendCapability,
    BackendDescriptor,
)
from prompt_relay.orchestrator.backend.claude import ClaudeAdapter
from prompt_relay.orchestrator.backend.gemini import GeminiAdapter
from prompt_relay.orchestrator.models import BackendName


def build_adapters(settings: RelaySettings) -> dict[BackendName, BackendAdapter]:
    """Create one adapter per backend from deployment settings."""

    return {
        BackendName.CLAUDE: ClaudeAdapter(
            command=settings.command_for(BackendName.CLAUDE.value),
            default_model=settings.default_model_for(BackendName.CLAUDE.value),
        ),
        BackendName.GEMINI: GeminiAdapter(
            command=settings.command_for(BackendName.GEMINI.value),
            default_model=settings.default_model_for(BackendName.GEMINI.value),
        ),
    }


__all__ = [
    "BackendAdapter",
    "BackendCapability",
    "BackendDescriptor",
    "ClaudeAdapter",
    "GeminiAdapter",
    "build_adapters",
]
