"""Best-effort decoding of buffered backend stdout."""

from __future__ import annotations

import json
import re
from typing import Any

from prompt_relay.orchestrator.models import OutputMode, ParsedOutput

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


def parse_output(stdout: str, output_mode: OutputMode) -> ParsedOutput:
    """Decode stdout according to the requested output mode.

    Decoding never fails the request: undecodable structured output comes
    back as ``{"response": <text>}`` with ``raw`` set and the parse error.
    """

    if output_mode is OutputMode.STRUCTURED:
        return _parse_json_document(stdout)
    if output_mode is OutputMode.STRUCTURED_STREAM:
        return _parse_json_lines(stdout)
    return ParsedOutput(payload={"response": stdout})


def _parse_json_document(stdout: str) -> ParsedOutput:
    try:
        return ParsedOutput(payload=json.loads(stdout))
    except json.JSONDecodeError as error:
        fenced = _FENCED_JSON.search(stdout)
        if fenced is not None:
            recovered = _try_load(fenced.group(1))
            if recovered is not None:
                return ParsedOutput(payload=recovered)
        return _raw(stdout, error)


def _parse_json_lines(stdout: str) -> ParsedOutput:
    events: list[Any] = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        try:
            events.append(json.loads(line))
        except json.JSONDecodeError as error:
            return _raw(stdout, error)
    return ParsedOutput(payload={"events": events})


def _try_load(raw: str) -> Any | None:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


def _raw(stdout: str, error: json.JSONDecodeError) -> ParsedOutput:
    return ParsedOutput(
        payload={"response": stdout, "raw": True, "parseError": str(error)},
        raw=True,
        parse_error=str(error),
    )
