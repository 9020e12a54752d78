"""
container-use adapter — a named, reusable environment managed by the `cu` CLI.

The environment is created lazily on the first execute() and reused for
every later command. cleanup() deletes it and forgets the id; it is safe to
call before creation or more than once.
"""

from __future__ import annotations

import json
import os
import shlex

from loguru import logger
from tenacity import retry, stop_after_attempt, wait_exponential

from hatloop.errors import EnvironmentCreateError, SandboxError
from hatloop.process import ProcessExecutor, SpawnOptions, SubprocessExecutor
from hatloop.sandbox.base import ExecuteOptions, ExecuteResult, SandboxAdapter

CU = "cu"


class ContainerUseAdapter(SandboxAdapter):
    name = "container-use"

    def __init__(
        self,
        image: str | None = None,
        workdir: str | None = None,
        env_id: str | None = None,
        title: str = "hatloop",
        executor: ProcessExecutor | None = None,
    ):
        super().__init__(executor or SubprocessExecutor())
        self.image = image
        self.workdir = workdir
        self.title = title
        self._env_id: str | None = env_id
        self._env_source: str | None = None

    @property
    def environment_id(self) -> str | None:
        return self._env_id

    def is_available(self) -> bool:
        return self._probe(CU, "--version")

    def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        options = options or ExecuteOptions()

        workdir = options.cwd or self._source()
        if self._env_id is None:
            self._env_id = self._create_environment(workdir)
            self._env_source = workdir

        result = self.executor.spawn(
            CU,
            [
                "environment", "run",
                "--id", self._env_id,
                "--source", workdir,
                "--command", _with_env(command, options.env),
            ],
            SpawnOptions(timeout=options.timeout, on_stdout=options.on_output),
        )
        return ExecuteResult.from_process(result)

    def cleanup(self) -> None:
        if self._env_id is None:
            return

        env_id, self._env_id = self._env_id, None
        source, self._env_source = self._env_source or self._source(), None
        logger.info(f"[CONTAINER-USE] Deleting environment {env_id}")
        try:
            self._delete_environment(env_id, source)
            logger.info(f"[CONTAINER-USE] Environment deleted: {env_id}")
        except Exception as e:
            logger.warning(f"[CONTAINER-USE] Failed to delete environment {env_id}: {e}")

    # --- internals ---

    def _source(self) -> str:
        return self.workdir or os.getcwd()

    def _create_environment(self, source: str) -> str:
        logger.info(f"[CONTAINER-USE] Creating environment (image={self.image or 'default'})...")

        args = ["environment", "create", "--source", source, "--title", self.title, "--json"]
        result = self.executor.spawn(CU, args)
        if result.exit_code != 0:
            raise EnvironmentCreateError(self.name, result.stderr)

        env_id = _parse_environment_id(result.stdout)
        if not env_id:
            raise EnvironmentCreateError(
                self.name, f"no environment_id in response: {result.stdout.strip()[:500]}"
            )

        logger.info(f"[CONTAINER-USE] Environment created: {env_id}")
        return env_id

    @retry(stop=stop_after_attempt(3), wait=wait_exponential(multiplier=0.2, max=2), reraise=True)
    def _delete_environment(self, env_id: str, source: str) -> None:
        result = self.executor.spawn(
            CU,
            ["environment", "delete", "--id", env_id, "--source", source],
            SpawnOptions(timeout=60_000),
        )
        if result.exit_code != 0:
            raise SandboxError(
                f"cu environment delete exited {result.exit_code}: {result.stderr.strip()}",
                details={"environment_id": env_id, "stderr": result.stderr},
            )


def _parse_environment_id(stdout: str) -> str | None:
    """Pull `environment_id` out of the JSON response. Tolerates log lines before the payload."""
    candidates = [stdout.strip()] + [line.strip() for line in reversed(stdout.splitlines())]
    for text in candidates:
        if not text.startswith("{"):
            continue
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            continue
        env_id = data.get("environment_id") if isinstance(data, dict) else None
        if env_id:
            return str(env_id)
    return None


def _with_env(command: str, env: dict[str, str]) -> str:
    if not env:
        return command
    assignments = " ".join(shlex.quote(f"{key}={value}") for key, value in env.items())
    return f"env {assignments} sh -c {shlex.quote(command)}"
