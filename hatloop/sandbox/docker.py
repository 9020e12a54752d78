"""
Docker adapter — one throwaway container per command.

The image is checked (and pulled if missing) before the first command.
Each command runs in `docker run --rm` with the working directory mounted
at /workspace, so there is no long-lived environment to clean up.
"""

from __future__ import annotations

import os
import uuid
from typing import Literal

from loguru import logger

from hatloop.errors import ImagePullError
from hatloop.process import ProcessExecutor, SpawnOptions, SubprocessExecutor
from hatloop.sandbox.base import ExecuteOptions, ExecuteResult, SandboxAdapter

NetworkMode = Literal["none", "bridge", "host"]

CONTAINER_WORKDIR = "/workspace"


class DockerAdapter(SandboxAdapter):
    name = "docker"

    def __init__(
        self,
        image: str,
        network: NetworkMode | None = None,
        timeout: int | None = None,
        workdir: str | None = None,
        executor: ProcessExecutor | None = None,
    ):
        if not image:
            raise ValueError("DockerAdapter requires a base image")
        super().__init__(executor or SubprocessExecutor())
        self.image = image
        self.network = network
        self.timeout = timeout
        self.workdir = workdir
        self._image_ready = False

    def is_available(self) -> bool:
        return self._probe("docker", "--version")

    def execute(self, command: str, options: ExecuteOptions | None = None) -> ExecuteResult:
        options = options or ExecuteOptions()
        self._ensure_image()

        name = f"hatloop-{uuid.uuid4().hex[:12]}"
        args = self.build_run_args(command, options, name=name)
        logger.debug(f"[DOCKER] {self.image} ({name}): {command[:120]}")

        result = self.executor.spawn(
            "docker",
            args,
            SpawnOptions(timeout=options.timeout or self.timeout, on_stdout=options.on_output),
        )
        if result.exit_code < 0:
            # The client was killed by a signal; the container outlives it.
            self._kill_container(name)
        return ExecuteResult.from_process(result)

    def build_run_args(self, command: str, options: ExecuteOptions, name: str | None = None) -> list[str]:
        """Translate execute options into `docker run` arguments."""
        args = ["run", "--rm", "-i"]

        if name:
            args += ["--name", name]

        if self.network:
            args += ["--network", self.network]

        workdir = options.cwd or self.workdir or os.getcwd()
        args += ["-v", f"{workdir}:{CONTAINER_WORKDIR}", "-w", CONTAINER_WORKDIR]

        for key, value in options.env.items():
            args += ["-e", f"{key}={value}"]

        args += [self.image, "sh", "-c", command]
        return args

    def _kill_container(self, name: str) -> None:
        logger.warning(f"[DOCKER] Run was killed, stopping container {name}")
        result = self.executor.spawn("docker", ["kill", name], SpawnOptions(timeout=30_000))
        if result.exit_code != 0:
            logger.warning(f"[DOCKER] docker kill {name} exited {result.exit_code}: {result.stderr.strip()}")

    def _ensure_image(self) -> None:
        if self._image_ready:
            return

        inspect = self.executor.spawn("docker", ["image", "inspect", self.image])
        if inspect.exit_code != 0:
            logger.info(f"[DOCKER] Pulling image: {self.image}")
            pulled = self.executor.spawn("docker", ["pull", self.image])
            if pulled.exit_code != 0:
                raise ImagePullError(self.image, pulled.stderr)
            logger.info(f"[DOCKER] Pulled image: {self.image}")

        self._image_ready = True
