"""Live relay of backend stdout to a caller-supplied sink."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Protocol

from prompt_relay.orchestrator.executor import CancelToken, ProcessExecutor, ProcessHandle
from prompt_relay.orchestrator.failures import (
    CancelledFailure,
    NonZeroExitFailure,
    RelayFailure,
    SpawnFailure,
)
from prompt_relay.orchestrator.fallback import FallbackOrchestrator
from prompt_relay.orchestrator.models import BackendName, OutputMode, RequestSpec
from prompt_relay.orchestrator.validator import validate_spec

logger = logging.getLogger(__name__)


class StreamSink(Protocol):
    """Byte sink fed as backend output arrives.

    ``write`` raises ``ConnectionError`` once the consumer has gone away.
    """

    def write(self, chunk: bytes) -> None: ...

    def close(self) -> None: ...


@dataclass(slots=True)
class StreamOutcome:
    """How a relay session ended."""

    backend: BackendName
    fallback_used: bool = False
    failure: RelayFailure | None = None
    disconnected: bool = False

    @property
    def success(self) -> bool:
        return self.failure is None and not self.disconnected


def failure_record(message: str) -> bytes:
    """Encode one inline failure line for the outgoing stream."""

    return (json.dumps({"error": message}) + "\n").encode("utf-8")


class StreamingRelay:
    """Forward stdout chunks unbuffered, restarting once on spawn failure."""

    def __init__(
        self,
        *,
        orchestrator: FallbackOrchestrator,
        executor: ProcessExecutor | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._executor = executor or ProcessExecutor(
            kill_grace_seconds=orchestrator.settings.kill_grace_seconds,
        )

    def stream_with_fallback(
        self,
        spec: RequestSpec,
        sink: StreamSink,
        *,
        cancel_token: CancelToken | None = None,
    ) -> StreamOutcome:
        """Relay one request to ``sink``; already relayed bytes are never retracted."""

        validate_spec(spec, max_prompt_length=self._orchestrator.settings.max_prompt_length)
        token = cancel_token or CancelToken()
        attempt_spec = replace(spec, output_mode=OutputMode.STRUCTURED_STREAM)
        fallback_used = False

        # at most one restart: the restarted request has fallback disabled
        while True:
            route = self._orchestrator.route(attempt_spec)
            outcome = StreamOutcome(backend=route.primary, fallback_used=fallback_used)
            if token.cancelled:
                outcome.disconnected = True
                return outcome
            try:
                handle = self._spawn(route.primary, attempt_spec, sink, token)
            except SpawnFailure as failure:
                logger.error(
                    "Stream spawn failed: backend=%s error=%s",
                    route.primary.value,
                    failure.message,
                )
                if route.fallback is None:
                    outcome.failure = failure
                    self._finish(sink, failure_record(failure.message))
                    return outcome
                logger.info("Stream restarting on fallback: backend=%s", route.fallback.value)
                attempt_spec = replace(
                    attempt_spec,
                    backend=route.fallback,
                    disable_fallback=True,
                )
                fallback_used = True
                continue
            return self._relay(handle, sink, outcome)

    def _spawn(
        self,
        backend: BackendName,
        spec: RequestSpec,
        sink: StreamSink,
        token: CancelToken,
    ) -> ProcessHandle:
        invocation = self._orchestrator.adapter(backend).build_invocation(spec)
        return self._executor.spawn(
            invocation,
            timeout_seconds=self._orchestrator.timeout_for(spec),
            on_stdout=sink.write,
            cancel_token=token,
        )

    def _relay(
        self,
        handle: ProcessHandle,
        sink: StreamSink,
        outcome: StreamOutcome,
    ) -> StreamOutcome:
        try:
            handle.wait()
        except CancelledFailure:
            logger.info(
                "Stream consumer disconnected, process terminated: backend=%s",
                outcome.backend.value,
            )
            outcome.disconnected = True
            return outcome
        except RelayFailure as failure:
            logger.error(
                "Stream failed: backend=%s stage=%s reason=%s error=%s",
                outcome.backend.value,
                failure.stage.value,
                failure.reason_code,
                failure.message,
            )
            outcome.failure = failure
            if isinstance(failure, NonZeroExitFailure):
                message = f"Process exited with code {failure.exit_code}"
            else:
                message = failure.message
            self._finish(sink, failure_record(message))
            return outcome

        self._finish(sink, None)
        return outcome

    def _finish(self, sink: StreamSink, record: bytes | None) -> None:
        try:
            if record is not None:
                sink.write(record)
            sink.close()
        except ConnectionError:
            logger.info("Stream consumer went away before the stream was closed")
