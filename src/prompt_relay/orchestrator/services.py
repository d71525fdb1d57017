"""Wiring of the orchestration components from one settings value."""

from __future__ import annotations

from dataclasses import dataclass

from prompt_relay.config import RelaySettings
from prompt_relay.orchestrator.batch import BatchSequencer
from prompt_relay.orchestrator.executor import ProcessExecutor
from prompt_relay.orchestrator.fallback import FallbackOrchestrator
from prompt_relay.orchestrator.streaming import StreamingRelay


@dataclass(slots=True)
class RelayService:
    """Buffered, streaming and batch entry points sharing one executor."""

    settings: RelaySettings
    orchestrator: FallbackOrchestrator
    relay: StreamingRelay
    batch: BatchSequencer

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> RelayService:
        settings.validate()
        executor = ProcessExecutor(kill_grace_seconds=settings.kill_grace_seconds)
        orchestrator = FallbackOrchestrator(settings=settings, executor=executor)
        return cls(
            settings=settings,
            orchestrator=orchestrator,
            relay=StreamingRelay(orchestrator=orchestrator, executor=executor),
            batch=BatchSequencer(orchestrator=orchestrator),
        )
