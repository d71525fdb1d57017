"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import stat
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

from prompt_relay.config import RelaySettings

_FAKE_BACKEND_SCRIPT = """
import json
import os
import signal
import sys
import time

NAME = "__NAME__"
PREFIX = "FAKE_" + NAME.upper() + "_"

args = sys.argv[1:]
log_path = os.environ.get("FAKE_CALL_LOG")
if log_path:
    with open(log_path, "a", encoding="utf-8") as handle:
        handle.write(json.dumps({"backend": NAME, "args": args}) + "\\n")

mode = os.environ.get(PREFIX + "MODE", "ok")
exit_code = int(os.environ.get(PREFIX + "EXIT", "0"))
stderr_text = os.environ.get(PREFIX + "STDERR")
out = sys.stdout.buffer

if stderr_text:
    sys.stderr.write(stderr_text + "\\n")
    sys.stderr.flush()

if mode == "ok":
    payload = {"type": "result", "result": "Hello from " + NAME, "backend": NAME}
    out.write(json.dumps(payload).encode("utf-8"))
elif mode == "text":
    out.write(("Hello from " + NAME + " CLI API!").encode("utf-8"))
elif mode == "fail":
    sys.stderr.write(NAME + " exploded\\n")
    sys.exit(exit_code or 1)
elif mode == "hang":
    time.sleep(60)
elif mode in ("chunks", "chunks-then-hang"):
    for chunk in os.environ.get(PREFIX + "CHUNKS", "").split(","):
        out.write(chunk.encode("utf-8"))
        out.flush()
        time.sleep(0.3)
    if mode == "chunks-then-hang":
        time.sleep(60)
elif mode == "ignore-term":
    signal.signal(signal.SIGTERM, signal.SIG_IGN)
    time.sleep(60)

out.flush()
sys.exit(exit_code)
"""


@dataclass(slots=True)
class FakeBackends:
    """Fake ``claude``/``gemini`` executables driven by environment variables."""

    bin_dir: Path
    call_log: Path
    monkeypatch: pytest.MonkeyPatch

    def path(self, name: str) -> Path:
        return self.bin_dir / name

    def configure(
        self,
        name: str,
        *,
        mode: str = "ok",
        exit_code: int = 0,
        chunks: tuple[str, ...] = (),
        stderr: str | None = None,
    ) -> None:
        prefix = f"FAKE_{name.upper()}_"
        self.monkeypatch.setenv(prefix + "MODE", mode)
        self.monkeypatch.setenv(prefix + "EXIT", str(exit_code))
        self.monkeypatch.setenv(prefix + "CHUNKS", ",".join(chunks))
        if stderr is None:
            self.monkeypatch.delenv(prefix + "STDERR", raising=False)
        else:
            self.monkeypatch.setenv(prefix + "STDERR", stderr)

    def remove(self, name: str) -> None:
        """Delete an executable so spawning it fails."""

        self.path(name).unlink()

    def calls(self) -> list[dict[str, object]]:
        if not self.call_log.exists():
            return []
        return [
            json.loads(line)
            for line in self.call_log.read_text("utf-8").splitlines()
            if line.strip()
        ]

    def settings(self, **overrides: object) -> RelaySettings:
        values: dict[str, object] = {
            "claude_command": str(self.path("claude")),
            "gemini_command": str(self.path("gemini")),
            "kill_grace_seconds": 1.0,
            "request_timeout_seconds": 30.0,
        }
        values.update(overrides)
        return RelaySettings(**values)


def _write_fake_backend(path: Path, name: str) -> None:
    implementation = path.parent / f"{name}_impl.py"
    implementation.write_text(_FAKE_BACKEND_SCRIPT.replace("__NAME__", name).lstrip(), "utf-8")
    path.write_text(
        f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
        "utf-8",
    )
    path.chmod(path.stat().st_mode | stat.S_IXUSR)


@pytest.fixture()
def fake_backends(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeBackends:
    """Install fake backend CLIs and point settings at them."""

    if os.name == "nt":
        pytest.skip("fake backend executables use POSIX shell launchers")

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    for name in ("claude", "gemini"):
        _write_fake_backend(bin_dir / name, name)

    call_log = tmp_path / "calls.jsonl"
    monkeypatch.setenv("FAKE_CALL_LOG", str(call_log))
    monkeypatch.setenv("PROMPT_RELAY_CLAUDE_COMMAND", str(bin_dir / "claude"))
    monkeypatch.setenv("PROMPT_RELAY_GEMINI_COMMAND", str(bin_dir / "gemini"))
    monkeypatch.setenv("PROMPT_RELAY_KILL_GRACE_SECONDS", "1")
    backends = FakeBackends(bin_dir=bin_dir, call_log=call_log, monkeypatch=monkeypatch)
    backends.configure("claude")
    backends.configure("gemini")
    return backends
