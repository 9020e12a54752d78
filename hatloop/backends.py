"""
HATLOOP Agent Backends

A backend turns a prompt into agent output by running an agent CLI:

    execute(prompt) -> BackendResult(output, exit_code)

A non-zero exit is returned, never raised. The loop decides what it means.
Hats may override the backend type and model; BackendSelector resolves
which backend a hat runs on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from loguru import logger
from pydantic import BaseModel

from hatloop.config_loader import BackendConfig
from hatloop.errors import ConfigError
from hatloop.hats import HatDefinition
from hatloop.process import ProcessExecutor, ProcessResult, SpawnOptions, SubprocessExecutor

OutputCallback = Callable[[str], None]

CLAUDE_ALLOWED_TOOLS = "Edit,Write,Bash,Read,Glob,Grep"


class BackendResult(BaseModel):
    output: str
    exit_code: int

    @classmethod
    def from_process(cls, result: ProcessResult) -> BackendResult:
        output = result.stdout
        if result.exit_code != 0 and not output.strip():
            output = result.stderr
        return cls(output=output, exit_code=result.exit_code)


class Backend(ABC):
    """
    Base class for agent CLIs.

    Subclasses define:
      - name: str
      - build_args() — the argv that carries the prompt
    """

    name: str = "unknown"

    def __init__(
        self,
        workdir: str | None = None,
        timeout: int | None = None,
        executor: ProcessExecutor | None = None,
        on_output: OutputCallback | None = None,
    ):
        self.workdir = workdir
        self.timeout = timeout  # milliseconds
        self.executor = executor or SubprocessExecutor()
        self.on_output = on_output

    @property
    @abstractmethod
    def command(self) -> str:
        ...

    @abstractmethod
    def build_args(self, prompt: str) -> list[str]:
        ...

    def stdin_for(self, prompt: str) -> str | None:
        return None

    def execute(self, prompt: str) -> BackendResult:
        logger.debug(f"[BACKEND] {self.name}: {len(prompt)} chars")
        result = self.executor.spawn(
            self.command,
            self.build_args(prompt),
            SpawnOptions(
                cwd=self.workdir,
                stdin=self.stdin_for(prompt),
                timeout=self.timeout,
                on_stdout=self.on_output,
            ),
        )
        if result.exit_code != 0:
            logger.warning(f"[BACKEND] {self.name} exited {result.exit_code}")
        return BackendResult.from_process(result)


class ClaudeBackend(Backend):
    name = "claude"

    def __init__(self, model: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.model = model

    @property
    def command(self) -> str:
        return "claude"

    def build_args(self, prompt: str) -> list[str]:
        args = ["-p", prompt, "--allowedTools", CLAUDE_ALLOWED_TOOLS]
        if self.model:
            args += ["--model", self.model]
        return args


class GeminiBackend(Backend):
    name = "gemini"

    def __init__(self, model: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.model = model

    @property
    def command(self) -> str:
        return "gemini"

    def build_args(self, prompt: str) -> list[str]:
        args = ["-p", prompt, "--yolo"]
        if self.model:
            args += ["--model", self.model]
        return args


class OpenCodeBackend(Backend):
    name = "opencode"

    @property
    def command(self) -> str:
        return "opencode"

    def build_args(self, prompt: str) -> list[str]:
        return ["run", prompt]


class KiroBackend(Backend):
    name = "kiro"

    def __init__(self, agent: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.agent = agent

    @property
    def command(self) -> str:
        return "kiro-cli"

    def build_args(self, prompt: str) -> list[str]:
        if self.agent:
            return ["--agent", self.agent, prompt]
        return [prompt]


class CustomBackend(Backend):
    """Any agent CLI: prompt passed as an argument (optionally behind a flag) or on stdin."""

    def __init__(
        self,
        command: str,
        args: list[str] | None = None,
        prompt_mode: str = "arg",
        prompt_flag: str | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._command = command
        self.args = list(args or [])
        self.prompt_mode = prompt_mode
        self.prompt_flag = prompt_flag
        self.name = f"custom:{command}"

    @property
    def command(self) -> str:
        return self._command

    def build_args(self, prompt: str) -> list[str]:
        if self.prompt_mode == "stdin":
            return list(self.args)
        if self.prompt_flag:
            return [*self.args, self.prompt_flag, prompt]
        return [*self.args, prompt]

    def stdin_for(self, prompt: str) -> str | None:
        return prompt if self.prompt_mode == "stdin" else None


def create_backend(
    config: BackendConfig,
    model: str | None = None,
    workdir: str | None = None,
    executor: ProcessExecutor | None = None,
    on_output: OutputCallback | None = None,
) -> Backend:
    common = {
        "workdir": workdir,
        "timeout": config.timeout * 1000 if config.timeout else None,
        "executor": executor,
        "on_output": on_output,
    }

    if config.type == "claude":
        return ClaudeBackend(model=model, **common)
    if config.type == "gemini":
        return GeminiBackend(model=model, **common)
    if config.type == "opencode":
        return OpenCodeBackend(**common)
    if config.type == "kiro":
        return KiroBackend(agent=config.agent, **common)
    if config.type == "custom":
        if not config.command:
            raise ConfigError("Custom backend requires `backend.command`")
        return CustomBackend(
            command=config.command,
            args=config.args,
            prompt_mode=config.prompt_mode,
            prompt_flag=config.prompt_flag,
            **common,
        )
    raise ConfigError(f"Unknown backend type: {config.type}")


class BackendSelector:
    """Resolves the backend a hat runs on: the hat's override, else the global backend."""

    def __init__(
        self,
        config: BackendConfig,
        workdir: str | None = None,
        executor: ProcessExecutor | None = None,
        on_output: OutputCallback | None = None,
    ):
        self.config = config
        self.workdir = workdir
        self.executor = executor
        self.on_output = on_output
        self._cache: dict[tuple[str, str | None], Backend] = {}

    def select(self, hat: HatDefinition | None = None) -> Backend:
        backend_type = (hat.backend if hat and hat.backend else None) or self.config.type
        model = hat.model if hat else None

        key = (backend_type, model)
        if key not in self._cache:
            config = self.config.model_copy(update={"type": backend_type})
            self._cache[key] = create_backend(
                config,
                model=model,
                workdir=self.workdir,
                executor=self.executor,
                on_output=self.on_output,
            )
        return self._cache[key]
