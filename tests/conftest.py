from __future__ import annotations

from dataclasses import dataclass

import pytest
from loguru import logger

from hatloop.process import ProcessExecutor, ProcessResult, SpawnOptions


@dataclass
class Call:
    argv: list[str]
    options: SpawnOptions | None


class FakeExecutor(ProcessExecutor):
    """Records every spawn and answers from scripted rules (last matching prefix wins)."""

    def __init__(self):
        self.calls: list[Call] = []
        self._rules: list[tuple[tuple[str, ...], ProcessResult | Exception]] = []

    def when(self, *prefix: str, stdout: str = "", stderr: str = "", exit_code: int = 0) -> None:
        self._rules.append((prefix, ProcessResult(stdout=stdout, stderr=stderr, exit_code=exit_code)))

    def raise_on(self, *prefix: str, error: Exception) -> None:
        self._rules.append((prefix, error))

    def spawn(self, command, args=None, options=None) -> ProcessResult:
        argv = [command, *(args or [])]
        self.calls.append(Call(argv, options))
        for prefix, outcome in reversed(self._rules):
            if tuple(argv[: len(prefix)]) == prefix:
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return ProcessResult(exit_code=0)

    def argvs(self, *prefix: str) -> list[list[str]]:
        return [c.argv for c in self.calls if tuple(c.argv[: len(prefix)]) == prefix]


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def log_messages():
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
