"""
Sandbox adapter contract.

Every execution backend (docker, container-use, host) exposes the same
three operations:

    is_available()  cheap capability probe, never raises
    execute()       run a shell command inside the environment
    cleanup()       tear the environment down, idempotent, never raises
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from loguru import logger
from pydantic import BaseModel, Field

from hatloop.process import ProcessExecutor, ProcessResult, SpawnOptions


class ExecuteOptions(BaseModel):
    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout: int | None = None  # milliseconds
    on_output: Callable[[str], None] | None = Field(default=None, exclude=True)  # live stdout lines


class ExecuteResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @classmethod
    def from_process(cls, result: ProcessResult) -> ExecuteResult:
        return cls(stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code)


class SandboxAdapter(ABC):
    name: str = "unknown"

    def __init__(self, executor: ProcessExecutor):
        self.executor = executor

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        ...

    def cleanup(self) -> None:
        """Release whatever the adapter created. Safe to call any number of times."""

    def _probe(self, command: str, *args: str) -> bool:
        """Run a version-style command; any failure collapses to False."""
        try:
            result = self.executor.spawn(command, list(args), SpawnOptions(timeout=10_000))
        except Exception as e:
            logger.debug(f"[SANDBOX] {self.name} probe raised: {e}")
            return False
        return result.exit_code == 0

    def __enter__(self) -> SandboxAdapter:
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"
