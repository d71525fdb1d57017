"""Controllers for prompt-relay CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Any

from prompt_relay import __version__
from prompt_relay.config import SUPPORTED_BACKENDS, RelaySettings
from prompt_relay.orchestrator.batch import MAX_BATCH_ITEMS
from prompt_relay.orchestrator.executor import CancelToken
from prompt_relay.orchestrator.failures import RelayFailure, ValidationFailure
from prompt_relay.orchestrator.models import BackendName, BatchItem, BatchOutcome
from prompt_relay.orchestrator.output_parser import parse_output
from prompt_relay.orchestrator.services import RelayService
from prompt_relay.orchestrator.smoke import check_backend
from prompt_relay.orchestrator.validator import build_request_spec


@dataclass(slots=True)
class AskCommand:
    """CLI input for simple prompt execution."""

    prompt: str
    output_format: str
    model: str | None
    system_prompt: str | None
    backend: str | None
    disable_fallback: bool


@dataclass(slots=True)
class ProcessCommand:
    """CLI input for prompt execution with every request option."""

    payload: dict[str, Any]


@dataclass(slots=True)
class StreamCommand:
    """CLI input for live-output execution."""

    payload: dict[str, Any]
    output: IO[bytes]


@dataclass(slots=True)
class BatchCommand:
    """CLI input for batch execution from a JSON request file."""

    file_path: Path


@dataclass(slots=True)
class CheckCommand:
    """CLI input for backend availability check."""

    backend: str | None
    timeout_seconds: float | None


@dataclass(slots=True)
class CommandResult:
    """Rendered command output and process status."""

    lines: list[str] = field(default_factory=list)
    success: bool = True


class BinaryStreamSink:
    """Sink writing relayed bytes to a binary stream, flushed per chunk."""

    def __init__(self, stream: IO[bytes]) -> None:
        self._stream = stream

    def write(self, chunk: bytes) -> None:
        self._stream.write(chunk)
        self._stream.flush()

    def close(self) -> None:
        self._stream.flush()


class RelayCliController:
    """Coordinates request execution for CLI commands."""

    def info(self) -> CommandResult:
        settings = RelaySettings.from_env()
        service = RelayService.from_settings(settings)
        backends: dict[str, Any] = {}
        for backend in BackendName:
            descriptor = service.orchestrator.adapter(backend).descriptor
            backends[backend.value] = {
                "command": descriptor.command,
                "defaultModel": descriptor.default_model,
                "native": sorted(capability.value for capability in descriptor.native),
                "approximated": sorted(capability.value for capability in descriptor.approximated),
            }
        return _json_result(
            {
                "version": __version__,
                "config": {
                    "maxPromptLength": settings.max_prompt_length,
                    "requestTimeoutSeconds": settings.request_timeout_seconds,
                    "defaultBackend": settings.default_backend,
                    "defaultModel": settings.default_model_for(settings.default_backend),
                    "fallbackEnabled": settings.fallback_enabled,
                    "maxBatchItems": MAX_BATCH_ITEMS,
                },
                "supportedBackends": list(SUPPORTED_BACKENDS),
                "backends": backends,
            },
        )

    def ask(self, command: AskCommand) -> CommandResult:
        payload = {
            "prompt": command.prompt,
            "outputFormat": command.output_format,
            "model": command.model,
            "systemPrompt": command.system_prompt,
            "cli": command.backend,
            "disableFallback": command.disable_fallback,
        }
        service = RelayService.from_settings(RelaySettings.from_env())
        try:
            spec = build_request_spec(payload, max_prompt_length=service.settings.max_prompt_length)
            result = service.orchestrator.run_with_fallback(spec)
        except RelayFailure as failure:
            return _failure_result(failure)

        parsed = parse_output(result.stdout, spec.output_mode).payload
        if isinstance(parsed, dict):
            parsed["_meta"] = {
                "usedBackend": result.used_backend.value,
                "fallbackUsed": result.fallback_used,
            }
        return _json_result(parsed)

    def process(self, command: ProcessCommand) -> CommandResult:
        service = RelayService.from_settings(RelaySettings.from_env())
        try:
            spec = build_request_spec(
                command.payload,
                max_prompt_length=service.settings.max_prompt_length,
            )
            result = service.orchestrator.run_with_fallback(spec)
        except RelayFailure as failure:
            return _failure_result(failure)

        return _json_result(
            {
                "success": True,
                "data": parse_output(result.stdout, spec.output_mode).payload,
                "metadata": {
                    "model": result.model,
                    "outputFormat": spec.output_mode.value,
                    "timestamp": datetime.now(tz=UTC).isoformat(),
                    "usedBackend": result.used_backend.value,
                    "fallbackUsed": result.fallback_used,
                },
            },
        )

    def stream(
        self,
        command: StreamCommand,
        cancel_token: CancelToken | None = None,
    ) -> CommandResult:
        service = RelayService.from_settings(RelaySettings.from_env())
        try:
            spec = build_request_spec(
                command.payload,
                max_prompt_length=service.settings.max_prompt_length,
            )
        except ValidationFailure as failure:
            return _failure_result(failure)

        outcome = service.relay.stream_with_fallback(
            spec,
            BinaryStreamSink(command.output),
            cancel_token=cancel_token,
        )
        return CommandResult(success=outcome.success)

    def batch(self, command: BatchCommand) -> CommandResult:
        try:
            body = json.loads(command.file_path.read_text("utf-8"))
        except ValueError as error:
            return _failure_result(
                ValidationFailure([f"batch file is not valid JSON: {error}"]),
            )
        if not isinstance(body, dict):
            return _failure_result(ValidationFailure(["batch file must contain a JSON object"]))
        raw_prompts = body.get("prompts")
        if not isinstance(raw_prompts, list):
            return _failure_result(ValidationFailure(["prompts array is required"]))

        service = RelayService.from_settings(RelaySettings.from_env())
        common = {key: value for key, value in body.items() if key != "prompts"}
        try:
            outcome = service.batch.run_batch(
                [_batch_item(raw) for raw in raw_prompts],
                common,
            )
        except ValidationFailure as failure:
            return _failure_result(failure)
        return _json_result(_render_batch(outcome), success=outcome.success)

    def check(self, command: CheckCommand) -> CommandResult:
        settings = RelaySettings.from_env()
        service = RelayService.from_settings(settings)
        backend = BackendName(command.backend or settings.default_backend)
        result = check_backend(
            orchestrator=service.orchestrator,
            backend=backend,
            timeout_seconds=command.timeout_seconds,
        )
        lines = [
            f"backend={result.backend.value} "
            f"available={'yes' if result.available else 'no'} "
            f"run={'ok' if result.run_ok else 'failed'}",
        ]
        if result.run_ok:
            lines.append(f"{backend.display_name} CLI is working correctly")
            lines.append(f"response: {result.response}")
        else:
            lines.append(f"{backend.display_name} CLI is not available or not working")
            lines.append(f"error: {result.error}")
        return CommandResult(lines=lines, success=result.run_ok)


def _batch_item(raw: object) -> str | BatchItem:
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, dict):
        return BatchItem(prompt="")
    prompt = raw.get("prompt")
    return BatchItem(
        prompt=prompt if isinstance(prompt, str) else "",
        model=raw.get("model"),
        system_prompt=raw.get("systemPrompt"),
        backend=raw.get("cli"),
    )


def _render_batch(outcome: BatchOutcome) -> dict[str, Any]:
    summary = outcome.summary
    rendered: dict[str, Any] = {
        "success": outcome.success,
        "results": [
            {
                "index": entry.index,
                "success": True,
                "data": entry.parsed.payload,
                "usedBackend": entry.result.used_backend.value,
                "fallbackUsed": entry.result.fallback_used,
            }
            for entry in outcome.results
        ],
    }
    if outcome.errors:
        rendered["errors"] = [
            {"index": error.index, "success": False, "error": error.message}
            for error in outcome.errors
        ]
    rendered["summary"] = {
        "total": summary.total,
        "successful": summary.successful,
        "failed": summary.failed,
    }
    return rendered


def _failure_result(failure: RelayFailure) -> CommandResult:
    if isinstance(failure, ValidationFailure):
        return _json_result({"errors": failure.errors}, success=False)
    return _json_result(
        {
            "success": False,
            "error": "Failed to process request",
            "stage": failure.stage.value,
            "reason": failure.reason_code,
            "message": failure.message,
        },
        success=False,
    )


def _json_result(payload: Any, *, success: bool = True) -> CommandResult:
    return CommandResult(
        lines=[json.dumps(payload, indent=2, ensure_ascii=False)],
        success=success,
    )
