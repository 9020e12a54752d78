"""
HATLOOP Process Executor

Thin, mockable layer over subprocess. Every adapter and backend spawns
through a ProcessExecutor so tests can substitute a recording fake.

Outcomes are uniform: a missing command is exit code 127, a timed-out
command is killed and reports the killed process's own exit code
(negative signal number on POSIX). Nothing here raises for a failed command.
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, IO

from loguru import logger
from pydantic import BaseModel

COMMAND_NOT_FOUND = 127

_IS_POSIX = os.name == "posix"


@dataclass
class SpawnOptions:
    cwd: str | None = None
    env: dict[str, str] | None = None  # merged over os.environ
    stdin: str | None = None
    timeout: int | None = None  # milliseconds
    on_stdout: Callable[[str], None] | None = None
    on_stderr: Callable[[str], None] | None = None

    @property
    def streaming(self) -> bool:
        return self.on_stdout is not None or self.on_stderr is not None


class ProcessResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int
    duration_ms: int = 0


class ProcessExecutor(ABC):
    """Spawns an external command and captures its output."""

    @abstractmethod
    def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        options: SpawnOptions | None = None,
    ) -> ProcessResult:
        ...


class SubprocessExecutor(ProcessExecutor):
    """
    ProcessExecutor backed by subprocess.Popen.

    The child is started in its own session so a timeout kill takes the
    whole process group down (a `sh -c` wrapper would otherwise leave its
    children holding the output pipes open).
    """

    def spawn(
        self,
        command: str,
        args: list[str] | None = None,
        options: SpawnOptions | None = None,
    ) -> ProcessResult:
        options = options or SpawnOptions()
        argv = [command, *(args or [])]
        env = {**os.environ, **options.env} if options.env is not None else None
        start = time.monotonic()

        logger.debug(f"[EXEC] {' '.join(argv)[:200]}")

        try:
            proc = subprocess.Popen(
                argv,
                cwd=options.cwd,
                env=env,
                stdin=subprocess.PIPE if options.stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=_IS_POSIX,
            )
        except OSError as e:
            logger.debug(f"[EXEC] Failed to launch {command}: {e}")
            return ProcessResult(
                stdout="",
                stderr=f"{command}: command not found ({e.strerror or e})",
                exit_code=COMMAND_NOT_FOUND,
                duration_ms=_elapsed_ms(start),
            )

        if options.streaming:
            stdout, stderr = self._run_streaming(proc, options)
        else:
            stdout, stderr = self._run_buffered(proc, options)

        return ProcessResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            duration_ms=_elapsed_ms(start),
        )

    def _run_buffered(self, proc: subprocess.Popen, options: SpawnOptions) -> tuple[str, str]:
        try:
            return proc.communicate(input=options.stdin, timeout=_seconds(options.timeout))
        except subprocess.TimeoutExpired:
            logger.warning(f"[EXEC] Timed out after {options.timeout}ms, killing pid {proc.pid}")
            _kill(proc)
            return proc.communicate()

    def _run_streaming(self, proc: subprocess.Popen, options: SpawnOptions) -> tuple[str, str]:
        out_chunks: list[str] = []
        err_chunks: list[str] = []

        workers = [
            threading.Thread(target=_drain, args=(proc.stdout, out_chunks, options.on_stdout), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, err_chunks, options.on_stderr), daemon=True),
        ]
        if options.stdin is not None:
            workers.append(threading.Thread(target=_feed, args=(proc.stdin, options.stdin), daemon=True))
        for worker in workers:
            worker.start()

        try:
            proc.wait(timeout=_seconds(options.timeout))
        except subprocess.TimeoutExpired:
            logger.warning(f"[EXEC] Timed out after {options.timeout}ms, killing pid {proc.pid}")
            _kill(proc)
            proc.wait()

        for worker in workers:
            worker.join()

        return "".join(out_chunks), "".join(err_chunks)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _drain(stream: IO[str] | None, sink: list[str], callback: Callable[[str], None] | None) -> None:
    if stream is None:
        return
    for line in iter(stream.readline, ""):
        sink.append(line)
        if callback is not None:
            try:
                callback(line)
            except Exception as e:
                logger.warning(f"[EXEC] Output callback failed: {e}")
    stream.close()


def _feed(stream: IO[str] | None, data: str) -> None:
    """Write stdin off the main thread so the timeout still applies to a child that never reads."""
    if stream is None:
        return
    try:
        stream.write(data)
    except OSError:
        logger.debug("[EXEC] Process closed stdin before input was fully written")
    finally:
        try:
            stream.close()
        except OSError:
            pass


def _kill(proc: subprocess.Popen) -> None:
    try:
        if _IS_POSIX:
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


def _seconds(timeout_ms: int | None) -> float | None:
    return timeout_ms / 1000 if timeout_ms else None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
