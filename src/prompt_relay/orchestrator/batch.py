"""Sequential batch execution with per-item failure isolation."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from prompt_relay.orchestrator.failures import RelayFailure, ValidationFailure
from prompt_relay.orchestrator.fallback import FallbackOrchestrator
from prompt_relay.orchestrator.models import (
    BatchEntry,
    BatchError,
    BatchItem,
    BatchOutcome,
    OutputMode,
)
from prompt_relay.orchestrator.output_parser import parse_output
from prompt_relay.orchestrator.validator import OUTPUT_FORMATS, build_request_spec

logger = logging.getLogger(__name__)

MAX_BATCH_ITEMS = 10


class BatchSequencer:
    """Run batch items one after another through the fallback orchestrator."""

    def __init__(self, *, orchestrator: FallbackOrchestrator) -> None:
        self._orchestrator = orchestrator

    def run_batch(
        self,
        items: Sequence[str | BatchItem],
        common_options: Mapping[str, Any] | None = None,
    ) -> BatchOutcome:
        """Execute ``items`` in order.

        ``common_options`` uses the request wire keys. A per-item model,
        system prompt or backend overrides the common value when set. Items
        never overlap: each process has exited before the next one starts.
        """

        if not items:
            raise ValidationFailure(["prompts array is required"])
        if len(items) > MAX_BATCH_ITEMS:
            raise ValidationFailure([f"Maximum {MAX_BATCH_ITEMS} prompts per batch"])

        common = dict(common_options or {})
        common.pop("prompts", None)
        output_format = common.get("outputFormat") or OutputMode.STRUCTURED.value
        if output_format not in OUTPUT_FORMATS:
            raise ValidationFailure([f"outputFormat must be one of: {', '.join(OUTPUT_FORMATS)}"])
        output_mode = OutputMode(output_format)
        outcome = BatchOutcome(total=len(items))

        for index, item in enumerate(items):
            try:
                spec = build_request_spec(
                    _item_payload(item, common),
                    max_prompt_length=self._orchestrator.settings.max_prompt_length,
                )
                result = self._orchestrator.run_with_fallback(spec)
            except RelayFailure as failure:
                logger.warning(
                    "Batch item failed: index=%d reason=%s error=%s",
                    index,
                    failure.reason_code,
                    failure.message,
                )
                outcome.errors.append(BatchError(index=index, message=failure.message))
                continue
            outcome.results.append(
                BatchEntry(
                    index=index,
                    result=result,
                    parsed=parse_output(result.stdout, output_mode),
                ),
            )

        summary = outcome.summary
        logger.info(
            "Batch finished: total=%d successful=%d failed=%d",
            summary.total,
            summary.successful,
            summary.failed,
        )
        return outcome


def _item_payload(item: str | BatchItem, common: dict[str, Any]) -> dict[str, Any]:
    if isinstance(item, str):
        return {**common, "prompt": item}
    return {
        **common,
        "prompt": item.prompt,
        "model": item.model or common.get("model"),
        "systemPrompt": item.system_prompt or common.get("systemPrompt"),
        "cli": item.backend or common.get("cli"),
    }
