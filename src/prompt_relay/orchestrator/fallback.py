"""Buffered execution with a single fallback attempt on the other backend."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol

from prompt_relay.config import RelaySettings
from prompt_relay.orchestrator.backend import BackendAdapter, build_adapters
from prompt_relay.orchestrator.executor import ProcessExecutor
from prompt_relay.orchestrator.failures import AggregateFailure, RelayFailure
from prompt_relay.orchestrator.models import (
    BackendName,
    ExecutionResult,
    Invocation,
    ProcessOutput,
    RequestSpec,
)
from prompt_relay.orchestrator.routing import BackendRoute, resolve_route
from prompt_relay.orchestrator.validator import validate_spec

logger = logging.getLogger(__name__)


class Executor(Protocol):
    """Buffered process runner used by the orchestrator."""

    def run(self, invocation: Invocation, *, timeout_seconds: float) -> ProcessOutput:
        """Run one invocation to completion or raise a ``RelayFailure``."""


class FallbackOrchestrator:
    """Run a request on its primary backend, then once on the other one."""

    def __init__(
        self,
        *,
        settings: RelaySettings,
        executor: Executor | None = None,
        adapters: Mapping[BackendName, BackendAdapter] | None = None,
    ) -> None:
        self.settings = settings
        self._executor = executor or ProcessExecutor(
            kill_grace_seconds=settings.kill_grace_seconds,
        )
        self._adapters = dict(adapters) if adapters is not None else build_adapters(settings)

    def adapter(self, backend: BackendName) -> BackendAdapter:
        return self._adapters[backend]

    def route(self, spec: RequestSpec) -> BackendRoute:
        return resolve_route(spec, self.settings)

    def timeout_for(self, spec: RequestSpec) -> float:
        return spec.timeout_seconds or self.settings.request_timeout_seconds

    def run_with_fallback(self, spec: RequestSpec) -> ExecutionResult:
        """Execute ``spec`` and return output tagged with the backend used.

        Raises the primary failure unchanged when fallback is not eligible,
        or ``AggregateFailure`` when both backends fail.
        """

        validate_spec(spec, max_prompt_length=self.settings.max_prompt_length)
        route = self.route(spec)
        logger.info("Running request: %s", route.describe())

        try:
            return self.run_backend(route.primary, spec)
        except RelayFailure as primary_failure:
            logger.error(
                "Backend failed: backend=%s stage=%s reason=%s error=%s",
                route.primary.value,
                primary_failure.stage.value,
                primary_failure.reason_code,
                primary_failure.message,
            )
            if route.fallback is None or not primary_failure.fallback_eligible:
                raise
            fallback = route.fallback
            logger.info("Attempting fallback: backend=%s", fallback.value)
            try:
                result = self.run_backend(fallback, spec, fallback_used=True)
            except RelayFailure as fallback_failure:
                logger.error(
                    "Fallback failed: backend=%s stage=%s reason=%s error=%s",
                    fallback.value,
                    fallback_failure.stage.value,
                    fallback_failure.reason_code,
                    fallback_failure.message,
                )
                raise AggregateFailure(
                    primary=route.primary,
                    fallback=fallback,
                    primary_failure=primary_failure,
                    fallback_failure=fallback_failure,
                ) from fallback_failure
            logger.info("Fallback succeeded: backend=%s", fallback.value)
            return result

    def run_backend(
        self,
        backend: BackendName,
        spec: RequestSpec,
        *,
        fallback_used: bool = False,
    ) -> ExecutionResult:
        """Run exactly one attempt on ``backend``."""

        invocation = self.adapter(backend).build_invocation(spec)
        output = self._executor.run(invocation, timeout_seconds=self.timeout_for(spec))
        return ExecutionResult(
            stdout=output.stdout.decode("utf-8", errors="replace"),
            stderr=output.stderr.decode("utf-8", errors="replace"),
            used_backend=backend,
            model=invocation.model,
            fallback_used=fallback_used,
        )
