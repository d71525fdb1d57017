"""Subprocess lifecycle for one backend attempt.

Each attempt owns exactly one ``ProcessHandle``. Two reader threads drain
stdout and stderr as bytes arrive; the caller blocks on the OS process wait.
Timeout expiry and caller cancellation both end in ``terminate``, which
records the kill reason under a lock before signalling. Once a reason is
recorded the attempt fails with it, even if the process reports exit code 0.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from collections.abc import Callable, Mapping
from enum import Enum

from prompt_relay.orchestrator.failure_classifier import classify_exit_failure
from prompt_relay.orchestrator.failures import (
    CancelledFailure,
    NonZeroExitFailure,
    SpawnFailure,
    TimeoutFailure,
)
from prompt_relay.orchestrator.models import Invocation, ProcessOutput

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 64 * 1024
_READER_JOIN_SECONDS = 2.0

StdoutCallback = Callable[[bytes], None]


class KillReason(str, Enum):
    """Why a process was terminated before it exited on its own."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


def _noop() -> None:
    return None


class CancelToken:
    """Thread-safe cancellation signal with callbacks run on cancel."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_key = 0

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; return a function that unregisters it.

        An already cancelled token runs the callback immediately.
        """

        with self._lock:
            if not self._cancelled:
                key = self._next_key
                self._next_key += 1
                self._callbacks[key] = callback
                return lambda: self._discard(key)
        callback()
        return _noop

    def _discard(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)


class ProcessHandle:
    """One running backend process and its captured output."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        process: subprocess.Popen[bytes],
        invocation: Invocation,
        timeout_seconds: float,
        kill_grace_seconds: float,
        on_stdout: StdoutCallback | None,
        cancel_token: CancelToken | None,
    ) -> None:
        self.invocation = invocation
        self.timeout_seconds = timeout_seconds
        self._process = process
        self._kill_grace_seconds = kill_grace_seconds
        self._on_stdout = on_stdout
        self._cancel_token = cancel_token
        self._lock = threading.Lock()
        self._stdout = bytearray()
        self._stderr = bytearray()
        self._kill_reason: KillReason | None = None
        self._callback_error: Exception | None = None
        self._detached = False
        self._unregister_cancel: Callable[[], None] = _noop
        self._kill_timer: threading.Timer | None = None
        self._timeout_timer = threading.Timer(
            timeout_seconds,
            self.terminate,
            args=(KillReason.TIMEOUT,),
        )
        self._timeout_timer.daemon = True
        self._readers = [
            threading.Thread(target=self._pump_stdout, daemon=True),
            threading.Thread(target=self._pump_stderr, daemon=True),
        ]

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def killed(self) -> bool:
        with self._lock:
            return self._kill_reason is not None

    @property
    def kill_reason(self) -> KillReason | None:
        with self._lock:
            return self._kill_reason

    def start(self) -> None:
        for reader in self._readers:
            reader.start()
        self._timeout_timer.start()
        if self._cancel_token is not None:
            self._unregister_cancel = self._cancel_token.add_callback(
                lambda: self.terminate(KillReason.CANCELLED),
            )

    def terminate(self, reason: KillReason) -> None:
        """Send SIGTERM once; escalate to SIGKILL after the grace period."""

        with self._lock:
            if self._kill_reason is not None or self._process.poll() is not None:
                return
            self._kill_reason = reason
            logger.warning(
                "Terminating backend process: backend=%s pid=%s reason=%s",
                self.invocation.backend.value,
                self._process.pid,
                reason.value,
            )
            try:
                self._process.terminate()
            except OSError:
                return
            self._kill_timer = threading.Timer(self._kill_grace_seconds, self._force_kill)
            self._kill_timer.daemon = True
            self._kill_timer.start()

    def wait(self) -> ProcessOutput:
        """Block until the process exits and interpret the outcome."""

        try:
            exit_code = self._process.wait()
            for reader in self._readers:
                reader.join(timeout=_READER_JOIN_SECONDS)
                if reader.is_alive():
                    logger.warning(
                        "Backend output pipe still open after exit: backend=%s pid=%s",
                        self.invocation.backend.value,
                        self._process.pid,
                    )
        finally:
            self._detached = True
            self._timeout_timer.cancel()
            self._unregister_cancel()
            with self._lock:
                kill_timer = self._kill_timer
                reason = self._kill_reason
            if kill_timer is not None:
                kill_timer.cancel()

        if self._callback_error is not None:
            raise self._callback_error
        backend = self.invocation.backend
        if reason is KillReason.TIMEOUT:
            raise TimeoutFailure(timeout_seconds=self.timeout_seconds, backend=backend)
        if reason is KillReason.CANCELLED:
            raise CancelledFailure(backend=backend)

        stderr_text = self._stderr.decode("utf-8", errors="replace")
        if exit_code != 0:
            raise NonZeroExitFailure(
                command=self.invocation.command,
                exit_code=exit_code,
                stderr=stderr_text,
                classification=classify_exit_failure(
                    backend=backend.value,
                    exit_code=exit_code,
                    stderr=stderr_text,
                ),
                backend=backend,
            )
        return ProcessOutput(stdout=bytes(self._stdout), stderr=bytes(self._stderr), exit_code=0)

    def _force_kill(self) -> None:
        if self._process.poll() is not None:
            return
        logger.warning(
            "Backend process ignored SIGTERM, killing: backend=%s pid=%s",
            self.invocation.backend.value,
            self._process.pid,
        )
        try:
            self._process.kill()
        except OSError:
            return

    def _pump_stdout(self) -> None:
        stream = self._process.stdout
        if stream is None:
            return
        deliver = self._on_stdout is not None
        for chunk in iter(lambda: stream.read1(_READ_CHUNK_BYTES), b""):
            self._stdout.extend(chunk)
            if not deliver or self._detached:
                continue
            try:
                self._on_stdout(chunk)
            except ConnectionError:
                deliver = False
                logger.info(
                    "Output consumer disconnected: backend=%s pid=%s",
                    self.invocation.backend.value,
                    self._process.pid,
                )
                self.terminate(KillReason.CANCELLED)
            except Exception as error:  # noqa: BLE001
                deliver = False
                self._callback_error = error
                self.terminate(KillReason.CANCELLED)
        stream.close()

    def _pump_stderr(self) -> None:
        stream = self._process.stderr
        if stream is None:
            return
        for chunk in iter(lambda: stream.read1(_READ_CHUNK_BYTES), b""):
            self._stderr.extend(chunk)
            text = chunk.decode("utf-8", errors="replace").strip()
            if text:
                logger.warning("[%s stderr] %s", self.invocation.backend.value, text)
        stream.close()


class ProcessExecutor:
    """Spawn backend processes without a shell, stdin closed, env inherited."""

    def __init__(
        self,
        *,
        kill_grace_seconds: float = 5.0,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._kill_grace_seconds = kill_grace_seconds
        self._env = env

    def spawn(
        self,
        invocation: Invocation,
        *,
        timeout_seconds: float,
        on_stdout: StdoutCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ProcessHandle:
        """Start the process; raise ``SpawnFailure`` if it cannot start."""

        env = os.environ.copy() if self._env is None else dict(self._env)
        logger.info(
            "Executing backend: backend=%s command=%s",
            invocation.backend.value,
            invocation.display(),
        )
        try:
            process = subprocess.Popen(  # noqa: S603
                invocation.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                shell=False,
            )
        except (OSError, ValueError) as error:
            raise SpawnFailure(
                command=invocation.command,
                reason=str(error),
                backend=invocation.backend,
            ) from error

        handle = ProcessHandle(
            process=process,
            invocation=invocation,
            timeout_seconds=timeout_seconds,
            kill_grace_seconds=self._kill_grace_seconds,
            on_stdout=on_stdout,
            cancel_token=cancel_token,
        )
        handle.start()
        return handle

    def run(
        self,
        invocation: Invocation,
        *,
        timeout_seconds: float,
        on_stdout: StdoutCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ProcessOutput:
        """Spawn the process and wait for its outcome."""

        handle = self.spawn(
            invocation,
            timeout_seconds=timeout_seconds,
            on_stdout=on_stdout,
            cancel_token=cancel_token,
        )
        return handle.wait()
