import pytest

from hatloop.config_loader import DockerConfig, HostConfig, SandboxConfig
from hatloop.errors import EnvironmentUnavailableError, UnknownAdapterTypeError
from hatloop.sandbox import (
    AdapterType,
    ContainerUseAdapter,
    DockerAdapter,
    HostAdapter,
    SandboxFactory,
    create_adapter,
)


def test_default_primary_is_container_use(executor):
    executor.when("cu", "--version")
    adapter = SandboxFactory.create(SandboxConfig(), executor)
    assert isinstance(adapter, ContainerUseAdapter)


def test_primary_returned_when_available(executor):
    executor.when("docker", "--version")
    adapter = SandboxFactory.create(SandboxConfig(type="docker", fallback="host"), executor)
    assert isinstance(adapter, DockerAdapter)


def test_falls_back_when_primary_unavailable(executor):
    executor.when("docker", "--version", exit_code=127)
    adapter = SandboxFactory.create(SandboxConfig(type="docker", fallback="host"), executor)
    assert isinstance(adapter, HostAdapter)


def test_both_unavailable_names_both(executor):
    executor.when("docker", "--version", exit_code=1)
    executor.when("cu", "--version", exit_code=1)

    with pytest.raises(EnvironmentUnavailableError) as exc:
        SandboxFactory.create(SandboxConfig(type="docker", fallback="container-use"), executor)

    assert exc.value.tried == ["docker", "container-use"]
    assert "docker, container-use" in str(exc.value)


def test_no_fallback_names_primary_only(executor):
    executor.when("cu", "--version", exit_code=1)
    with pytest.raises(EnvironmentUnavailableError) as exc:
        SandboxFactory.create(SandboxConfig(type="container-use"), executor)
    assert exc.value.tried == ["container-use"]


def test_unknown_type_fails_without_probing(executor):
    with pytest.raises(UnknownAdapterTypeError) as exc:
        SandboxFactory.create(SandboxConfig(type="podman", fallback="host"), executor)
    assert exc.value.adapter_type == "podman"
    assert executor.calls == []


def test_unknown_fallback_fails_without_probing(executor):
    with pytest.raises(UnknownAdapterTypeError):
        SandboxFactory.create(SandboxConfig(type="docker", fallback="vm"), executor)
    assert executor.calls == []


def test_create_adapter_converts_seconds_to_ms(executor):
    config = SandboxConfig(
        docker=DockerConfig(image="python:3.12", network="bridge", timeout=90),
        host=HostConfig(timeout=5, warn_on_start=False),
    )

    docker = create_adapter("docker", config, executor)
    assert docker.image == "python:3.12"
    assert docker.network == "bridge"
    assert docker.timeout == 90_000

    host = create_adapter(AdapterType.HOST, config, executor)
    assert host.timeout == 5_000
    assert host.warn_on_start is False


def test_adapter_type_parse():
    assert AdapterType.parse("container-use") is AdapterType.CONTAINER_USE
    with pytest.raises(UnknownAdapterTypeError):
        AdapterType.parse("Docker")
