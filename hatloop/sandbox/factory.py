"""
Sandbox factory — picks the first usable execution environment.

The sandbox type is a closed set of tags. Unknown tags are a
configuration error and fail before anything is probed.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger

from hatloop.config_loader import SandboxConfig
from hatloop.errors import EnvironmentUnavailableError, UnknownAdapterTypeError
from hatloop.process import ProcessExecutor, SubprocessExecutor
from hatloop.sandbox.base import SandboxAdapter
from hatloop.sandbox.container_use import ContainerUseAdapter
from hatloop.sandbox.docker import DockerAdapter
from hatloop.sandbox.host import HostAdapter


class AdapterType(str, Enum):
    DOCKER = "docker"
    CONTAINER_USE = "container-use"
    HOST = "host"

    @classmethod
    def parse(cls, value: str | AdapterType) -> AdapterType:
        try:
            return cls(value)
        except ValueError:
            raise UnknownAdapterTypeError(str(value)) from None


def _ms(seconds: int | None) -> int | None:
    return seconds * 1000 if seconds else None


def create_adapter(
    adapter_type: AdapterType | str,
    config: SandboxConfig,
    executor: ProcessExecutor | None = None,
) -> SandboxAdapter:
    """Construct (but do not probe) the adapter for a sandbox type tag."""
    kind = AdapterType.parse(adapter_type)
    executor = executor or SubprocessExecutor()

    if kind is AdapterType.DOCKER:
        return DockerAdapter(
            image=config.docker.image,
            network=config.docker.network,
            timeout=_ms(config.docker.timeout),
            workdir=config.docker.workdir,
            executor=executor,
        )
    if kind is AdapterType.CONTAINER_USE:
        return ContainerUseAdapter(
            image=config.container_use.image,
            workdir=config.container_use.workdir,
            env_id=config.container_use.env_id,
            title=config.container_use.title,
            executor=executor,
        )
    return HostAdapter(
        timeout=_ms(config.host.timeout),
        warn_on_start=config.host.warn_on_start,
        executor=executor,
    )


class SandboxFactory:
    """Resolves the configured primary/fallback pair into a ready adapter."""

    @staticmethod
    def create(config: SandboxConfig | None = None, executor: ProcessExecutor | None = None) -> SandboxAdapter:
        config = config or SandboxConfig()

        # Validate both tags up front: a typo in `fallback` is still a config error.
        primary = AdapterType.parse(config.type)
        fallback = AdapterType.parse(config.fallback) if config.fallback else None

        adapter = create_adapter(primary, config, executor)
        if adapter.is_available():
            logger.info(f"[FACTORY] Sandbox environment: {primary.value}")
            return adapter

        tried = [primary.value]

        if fallback is not None:
            logger.warning(f"[FACTORY] {primary.value} is not available, falling back to {fallback.value}")
            adapter = create_adapter(fallback, config, executor)
            if adapter.is_available():
                logger.info(f"[FACTORY] Sandbox environment: {fallback.value} (fallback)")
                return adapter
            tried.append(fallback.value)

        raise EnvironmentUnavailableError(tried)
