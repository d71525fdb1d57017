from __future__ import annotations

import allure

from prompt_relay.orchestrator.models import OutputMode
from prompt_relay.orchestrator.output_parser import parse_output

pytestmark = [
    allure.epic("Output Decoding"),
    allure.feature("Structured Output Recovery"),
]


def test_structured_output_is_decoded() -> None:
    parsed = parse_output('{"type": "result", "result": "hi"}', OutputMode.STRUCTURED)

    assert parsed.payload == {"type": "result", "result": "hi"}
    assert not parsed.raw
    assert parsed.parse_error is None


def test_structured_output_is_recovered_from_fenced_block() -> None:
    stdout = """
Some text before.
```json
{"result": "recovered"}
```
Some text after.
""".strip()

    parsed = parse_output(stdout, OutputMode.STRUCTURED)

    assert parsed.payload == {"result": "recovered"}
    assert not parsed.raw


def test_undecodable_structured_output_is_returned_raw() -> None:
    parsed = parse_output("plain words", OutputMode.STRUCTURED)

    assert parsed.raw
    assert parsed.payload["response"] == "plain words"
    assert parsed.payload["raw"] is True
    assert parsed.payload["parseError"] == parsed.parse_error
    assert parsed.parse_error


def test_stream_output_is_decoded_line_by_line() -> None:
    stdout = '{"type": "start"}\n\n{"type": "delta", "text": "a"}\n{"type": "result"}\n'

    parsed = parse_output(stdout, OutputMode.STRUCTURED_STREAM)

    assert parsed.payload == {
        "events": [
            {"type": "start"},
            {"type": "delta", "text": "a"},
            {"type": "result"},
        ],
    }


def test_stream_output_with_broken_line_is_returned_raw() -> None:
    parsed = parse_output('{"type": "start"}\nnot json\n', OutputMode.STRUCTURED_STREAM)

    assert parsed.raw
    assert parsed.payload["response"] == '{"type": "start"}\nnot json\n'


def test_text_output_is_wrapped_verbatim() -> None:
    parsed = parse_output("Hello!\n", OutputMode.TEXT)

    assert parsed.payload == {"response": "Hello!\n"}
    assert not parsed.raw
