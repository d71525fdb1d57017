from __future__ import annotations

import allure
import pytest

from prompt_relay.config import RelaySettings
from prompt_relay.orchestrator.backend import (
    BackendCapability,
    ClaudeAdapter,
    GeminiAdapter,
    build_adapters,
)
from prompt_relay.orchestrator.models import BackendName, OutputMode, RequestSpec

pytestmark = [
    allure.epic("Backend Dialects"),
    allure.feature("Argument Construction"),
]


def _claude() -> ClaudeAdapter:
    return ClaudeAdapter(command="claude", default_model="sonnet")


def _gemini() -> GeminiAdapter:
    return GeminiAdapter(command="gemini", default_model="gemini-2.5-flash")


def test_claude_minimal_invocation_uses_default_model() -> None:
    invocation = _claude().build_invocation(RequestSpec(prompt="hi"))

    assert invocation.command == "claude"
    assert invocation.model == "sonnet"
    assert invocation.args == ("--print", "--output-format", "json", "--model", "sonnet", "hi")


def test_claude_maps_every_field_to_its_own_flag() -> None:
    spec = RequestSpec(
        prompt="Y",
        output_mode=OutputMode.STRUCTURED_STREAM,
        model="opus",
        system_prompt="X",
        append_system_prompt="Be brief",
        allowed_tools=("Read", "Bash(git:*)"),
        disallowed_tools=("Write",),
        skip_permissions=True,
        settings={"theme": "dark", "nested": {"a": 1}},
        mcp_config=("a.json", "b.json"),
        session_id="sess-1",
        continue_session=True,
        resume_session="sess-0",
        include_partial_messages=True,
    )

    invocation = _claude().build_invocation(spec)

    assert invocation.args == (
        "--print",
        "--output-format",
        "stream-json",
        "--include-partial-messages",
        "--model",
        "opus",
        "--system-prompt",
        "X",
        "--append-system-prompt",
        "Be brief",
        "--allowed-tools",
        "Read Bash(git:*)",
        "--disallowed-tools",
        "Write",
        "--dangerously-skip-permissions",
        "--settings",
        '{"theme":"dark","nested":{"a":1}}',
        "--mcp-config",
        "a.json",
        "b.json",
        "--continue",
        "--resume",
        "sess-0",
        "--session-id",
        "sess-1",
        "Y",
    )


def test_claude_keeps_prompt_verbatim_with_system_prompt_flag() -> None:
    invocation = _claude().build_invocation(RequestSpec(prompt="Y", system_prompt="X"))

    assert invocation.args[-1] == "Y"
    index = invocation.args.index("--system-prompt")
    assert invocation.args[index + 1] == "X"


def test_claude_partial_messages_only_in_stream_mode() -> None:
    spec = RequestSpec(prompt="p", output_mode=OutputMode.STRUCTURED, include_partial_messages=True)

    invocation = _claude().build_invocation(spec)

    assert "--include-partial-messages" not in invocation.args


def test_claude_settings_serialization_keeps_unicode() -> None:
    invocation = _claude().build_invocation(RequestSpec(prompt="p", settings={"name": "café"}))

    index = invocation.args.index("--settings")
    assert invocation.args[index + 1] == '{"name":"café"}'


def test_gemini_folds_system_prompt_into_prompt() -> None:
    invocation = _gemini().build_invocation(RequestSpec(prompt="Y", system_prompt="X"))

    assert invocation.args[-1] == "System: X\n\nUser: Y"
    assert "--system-prompt" not in invocation.args
    assert invocation.args[:4] == ("--output-format", "json", "--model", "gemini-2.5-flash")


def test_gemini_folds_append_system_prompt_when_alone() -> None:
    invocation = _gemini().build_invocation(RequestSpec(prompt="Y", append_system_prompt="A"))

    assert invocation.args[-1] == "A\n\nY"


def test_gemini_system_prompt_wins_over_append_system_prompt() -> None:
    spec = RequestSpec(prompt="Y", system_prompt="X", append_system_prompt="A")

    assert _gemini().build_invocation(spec).args[-1] == "System: X\n\nUser: Y"


def test_gemini_yolo_suppresses_allowed_tools() -> None:
    spec = RequestSpec(prompt="p", skip_permissions=True, allowed_tools=("read", "write"))

    invocation = _gemini().build_invocation(spec)

    assert "--yolo" in invocation.args
    assert "--allowed-tools" not in invocation.args


def test_gemini_passes_allowed_tools_as_separate_values() -> None:
    spec = RequestSpec(prompt="p", allowed_tools=("read", "write"))

    invocation = _gemini().build_invocation(spec)

    index = invocation.args.index("--allowed-tools")
    assert invocation.args[index + 1 : index + 3] == ("read", "write")
    assert "--yolo" not in invocation.args


def test_gemini_resume_takes_precedence_over_session_id() -> None:
    spec = RequestSpec(prompt="p", resume_session="abc", session_id="xyz")

    invocation = _gemini().build_invocation(spec)

    assert invocation.args[-3:] == ("--resume", "abc", "p")
    assert "xyz" not in invocation.args


def test_gemini_session_id_alone_resumes_latest() -> None:
    invocation = _gemini().build_invocation(RequestSpec(prompt="p", session_id="xyz"))

    assert invocation.args[-3:] == ("--resume", "latest", "p")


def test_gemini_drops_unsupported_fields() -> None:
    spec = RequestSpec(
        prompt="p",
        output_mode=OutputMode.STRUCTURED_STREAM,
        disallowed_tools=("Write",),
        settings={"a": 1},
        mcp_config=("m.json",),
        continue_session=True,
        include_partial_messages=True,
        model="gemini-pro",
    )

    invocation = _gemini().build_invocation(spec)

    assert invocation.args == (
        "--output-format",
        "stream-json",
        "--model",
        "gemini-pro",
        "p",
    )


@pytest.mark.parametrize("backend", list(BackendName))
def test_prompt_is_always_the_last_argument(backend: BackendName) -> None:
    adapter = build_adapters(RelaySettings())[backend]
    spec = RequestSpec(
        prompt="--looks-like-a-flag",
        allowed_tools=("read",),
        session_id="s",
        mcp_config=("m.json",),
    )

    assert adapter.build_invocation(spec).args[-1] == "--looks-like-a-flag"


def test_build_adapters_uses_configured_commands_and_models() -> None:
    adapters = build_adapters(
        RelaySettings(
            claude_command="/opt/claude",
            gemini_command="/opt/gemini",
            claude_default_model="haiku",
            gemini_default_model="gemini-lite",
        ),
    )

    assert adapters[BackendName.CLAUDE].descriptor.command == "/opt/claude"
    assert adapters[BackendName.CLAUDE].default_model == "haiku"
    assert adapters[BackendName.GEMINI].descriptor.command == "/opt/gemini"
    assert adapters[BackendName.GEMINI].default_model == "gemini-lite"


def test_descriptors_declare_native_and_approximated_capabilities() -> None:
    claude = _claude().descriptor
    gemini = _gemini().descriptor

    assert claude.native == frozenset(BackendCapability)
    assert BackendCapability.SYSTEM_PROMPT in gemini.approximated
    assert BackendCapability.SYSTEM_PROMPT not in gemini.native
    assert gemini.supports(BackendCapability.SESSION_ID)
    assert not gemini.supports(BackendCapability.SETTINGS)


def test_invocation_display_redacts_prompt() -> None:
    invocation = _claude().build_invocation(RequestSpec(prompt="secret text"))

    assert invocation.display() == "claude --print --output-format json --model sonnet <prompt>"
    assert invocation.argv[0] == "claude"
