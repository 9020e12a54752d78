"""
HATLOOP Sandbox Layer

Uniform execution contract over heterogeneous environments:
  - docker         one `docker run --rm` container per command
  - container-use  one lazily created, reusable `cu` environment
  - host           plain `sh -c` on this machine (no isolation)

Use SandboxFactory.create(config) to get the first available adapter,
and call cleanup() once when the run ends.
"""

from hatloop.sandbox.base import ExecuteOptions, ExecuteResult, SandboxAdapter
from hatloop.sandbox.container_use import ContainerUseAdapter
from hatloop.sandbox.docker import DockerAdapter
from hatloop.sandbox.factory import AdapterType, SandboxFactory, create_adapter
from hatloop.sandbox.host import HostAdapter

__all__ = [
    "AdapterType",
    "ContainerUseAdapter",
    "DockerAdapter",
    "ExecuteOptions",
    "ExecuteResult",
    "HostAdapter",
    "SandboxAdapter",
    "SandboxFactory",
    "create_adapter",
]
