"""
Host adapter — runs commands directly on the calling machine.

Nothing is isolated. A security warning is logged once per adapter
instance, before the first command runs.
"""

from __future__ import annotations

from loguru import logger

from hatloop.process import ProcessExecutor, SpawnOptions, SubprocessExecutor
from hatloop.sandbox.base import ExecuteOptions, ExecuteResult, SandboxAdapter


class HostAdapter(SandboxAdapter):
    name = "host"

    def __init__(
        self,
        timeout: int | None = None,
        warn_on_start: bool = True,
        executor: ProcessExecutor | None = None,
    ):
        super().__init__(executor or SubprocessExecutor())
        self.timeout = timeout
        self.warn_on_start = warn_on_start
        self._has_warned = False

    def is_available(self) -> bool:
        return True

    def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        options = options or ExecuteOptions()

        if self.warn_on_start and not self._has_warned:
            logger.warning(
                "[HOST] Running on the host: commands are NOT isolated. "
                "Use docker or container-use for untrusted code."
            )
            self._has_warned = True

        result = self.executor.spawn(
            "sh",
            ["-c", command],
            SpawnOptions(
                cwd=options.cwd,
                env=options.env or None,
                timeout=options.timeout or self.timeout,
                on_stdout=options.on_output,
            ),
        )
        return ExecuteResult.from_process(result)
