from __future__ import annotations

import json
import threading

import allure
import pytest

from prompt_relay.orchestrator.executor import CancelToken
from prompt_relay.orchestrator.failures import SpawnFailure, ValidationFailure
from prompt_relay.orchestrator.fallback import FallbackOrchestrator
from prompt_relay.orchestrator.models import BackendName, OutputMode, RequestSpec
from prompt_relay.orchestrator.streaming import StreamingRelay, failure_record

pytestmark = [
    allure.epic("Streaming Relay"),
    allure.feature("Live Output Forwarding"),
]


class _RecordingSink:
    def __init__(self, *, fail_after: int | None = None) -> None:
        self.chunks: list[bytes] = []
        self.closed = False
        self._fail_after = fail_after

    def write(self, chunk: bytes) -> None:
        if self._fail_after is not None and len(self.chunks) >= self._fail_after:
            raise BrokenPipeError("consumer disconnected")
        self.chunks.append(chunk)

    def close(self) -> None:
        self.closed = True


def _relay(fake_backends, **overrides: object) -> StreamingRelay:
    orchestrator = FallbackOrchestrator(settings=fake_backends.settings(**overrides))
    return StreamingRelay(orchestrator=orchestrator)


def test_chunks_are_relayed_in_order_and_stream_closes(fake_backends) -> None:
    fake_backends.configure("claude", mode="chunks", chunks=("a", "b", "c"))
    sink = _RecordingSink()

    outcome = _relay(fake_backends).stream_with_fallback(RequestSpec(prompt="hi"), sink)

    assert sink.chunks == [b"a", b"b", b"c"]
    assert sink.closed
    assert outcome.success
    assert outcome.backend is BackendName.CLAUDE
    assert outcome.fallback_used is False


def test_stream_forces_streaming_output_format(fake_backends) -> None:
    fake_backends.configure("claude", mode="chunks", chunks=("x",))
    spec = RequestSpec(prompt="hi", output_mode=OutputMode.TEXT)

    _relay(fake_backends).stream_with_fallback(spec, _RecordingSink())

    args = fake_backends.calls()[0]["args"]
    index = args.index("--output-format")
    assert args[index + 1] == "stream-json"


def test_non_zero_exit_appends_failure_record_without_fallback(fake_backends) -> None:
    fake_backends.configure("claude", mode="chunks", chunks=("a",), exit_code=2)
    sink = _RecordingSink()

    outcome = _relay(fake_backends).stream_with_fallback(RequestSpec(prompt="hi"), sink)

    assert sink.chunks == [b"a", failure_record("Process exited with code 2")]
    assert sink.closed
    assert not outcome.success
    assert [call["backend"] for call in fake_backends.calls()] == ["claude"]


def test_stderr_is_not_relayed(fake_backends) -> None:
    fake_backends.configure("claude", mode="chunks", chunks=("a",), stderr="diagnostic noise")
    sink = _RecordingSink()

    _relay(fake_backends).stream_with_fallback(RequestSpec(prompt="hi"), sink)

    assert b"diagnostic" not in b"".join(sink.chunks)


def test_spawn_failure_restarts_on_fallback_backend(fake_backends) -> None:
    fake_backends.remove("claude")
    fake_backends.configure("gemini", mode="chunks", chunks=("g1", "g2"))
    sink = _RecordingSink()

    outcome = _relay(fake_backends).stream_with_fallback(RequestSpec(prompt="hi"), sink)

    assert sink.chunks == [b"g1", b"g2"]
    assert sink.closed
    assert outcome.backend is BackendName.GEMINI
    assert outcome.fallback_used is True
    assert outcome.success


def test_both_spawn_failures_emit_single_failure_record(fake_backends) -> None:
    fake_backends.remove("claude")
    fake_backends.remove("gemini")
    sink = _RecordingSink()

    outcome = _relay(fake_backends).stream_with_fallback(RequestSpec(prompt="hi"), sink)

    assert len(sink.chunks) == 1
    record = json.loads(sink.chunks[0])
    assert record["error"].startswith("Failed to spawn")
    assert "gemini" in record["error"]
    assert sink.closed
    assert isinstance(outcome.failure, SpawnFailure)


def test_spawn_failure_without_fallback_is_not_restarted(fake_backends) -> None:
    fake_backends.remove("claude")
    sink = _RecordingSink()

    outcome = _relay(fake_backends, fallback_enabled=False).stream_with_fallback(
        RequestSpec(prompt="hi"),
        sink,
    )

    assert len(sink.chunks) == 1
    assert "claude" in json.loads(sink.chunks[0])["error"]
    assert outcome.fallback_used is False
    assert fake_backends.calls() == []


def test_timeout_emits_failure_record(fake_backends) -> None:
    fake_backends.configure("claude", mode="chunks-then-hang", chunks=("a",))
    sink = _RecordingSink()

    outcome = _relay(fake_backends).stream_with_fallback(
        RequestSpec(prompt="hi", timeout_seconds=1.0),
        sink,
    )

    assert sink.chunks == [b"a", failure_record("Request timeout exceeded")]
    assert sink.closed
    assert not outcome.success


def test_consumer_disconnect_terminates_without_further_writes(fake_backends) -> None:
    fake_backends.configure("claude", mode="chunks-then-hang", chunks=("a", "b"))
    sink = _RecordingSink(fail_after=1)

    outcome = _relay(fake_backends).stream_with_fallback(RequestSpec(prompt="hi"), sink)

    assert sink.chunks == [b"a"]
    assert not sink.closed
    assert outcome.disconnected
    assert outcome.failure is None


def test_external_cancel_token_stops_stream(fake_backends) -> None:
    fake_backends.configure("claude", mode="hang")
    token = CancelToken()
    sink = _RecordingSink()
    timer = threading.Timer(0.5, token.cancel)
    timer.start()

    outcome = _relay(fake_backends).stream_with_fallback(
        RequestSpec(prompt="hi"),
        sink,
        cancel_token=token,
    )

    timer.join()
    assert outcome.disconnected
    assert sink.chunks == []
    assert not sink.closed


def test_invalid_request_is_rejected_before_spawning(fake_backends) -> None:
    sink = _RecordingSink()

    with pytest.raises(ValidationFailure):
        _relay(fake_backends).stream_with_fallback(RequestSpec(prompt=""), sink)

    assert fake_backends.calls() == []
    assert sink.chunks == []


def test_failure_record_is_one_json_line() -> None:
    assert failure_record("boom") == b'{"error": "boom"}\n'
