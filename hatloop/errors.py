"""
HATLOOP Error Hierarchy

  HatloopError
    ├── ConfigError
    │     └── UnknownAdapterTypeError
    ├── SandboxError
    │     ├── EnvironmentUnavailableError
    │     ├── ImagePullError
    │     └── EnvironmentCreateError
    ├── RoutingError
    │     └── AmbiguousRoutingError
    ├── LoopError
    │     └── MaxIterationsReachedError
    └── EventEmitError

A non-zero exit code from a spawned command is never an error here.
It comes back as data on the result object.
"""

from __future__ import annotations

from typing import Any


class HatloopError(Exception):
    """Base error. Carries a machine-readable code and structured details."""

    default_code = "HATLOOP_ERROR"

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: dict[str, Any] = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigError(HatloopError):
    default_code = "CONFIG_ERROR"

    def __init__(self, message: str, config_path: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.config_path = config_path


class UnknownAdapterTypeError(ConfigError):
    """Raised for a sandbox type tag that names no known adapter."""

    def __init__(self, adapter_type: str):
        super().__init__(
            f"Unknown sandbox type: {adapter_type}",
            code="UNKNOWN_ADAPTER_TYPE",
            details={"adapter_type": adapter_type},
        )
        self.adapter_type = adapter_type


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------

class SandboxError(HatloopError):
    default_code = "SANDBOX_ERROR"


class EnvironmentUnavailableError(SandboxError):
    def __init__(self, tried: list[str]):
        joined = ", ".join(tried)
        super().__init__(
            f"No available sandbox environment: tried {joined}",
            code="ENVIRONMENT_UNAVAILABLE",
            details={"tried_environments": joined},
        )
        self.tried = list(tried)


class ImagePullError(SandboxError):
    def __init__(self, image: str, stderr: str):
        super().__init__(
            f"Failed to pull Docker image: {image}",
            code="IMAGE_PULL_ERROR",
            details={"image": image, "stderr": stderr},
        )
        self.image = image
        self.stderr = stderr


class EnvironmentCreateError(SandboxError):
    def __init__(self, backend: str, stderr: str):
        super().__init__(
            f"Failed to create {backend} environment: {stderr.strip() or 'no diagnostic output'}",
            code="ENVIRONMENT_CREATE_ERROR",
            details={"backend": backend, "stderr": stderr},
        )
        self.backend = backend
        self.stderr = stderr


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

class RoutingError(HatloopError):
    default_code = "ROUTING_ERROR"


class AmbiguousRoutingError(RoutingError):
    def __init__(self, topic: str, matched_hats: list[str]):
        super().__init__(
            f"Ambiguous routing: event '{topic}' matches multiple hats: {', '.join(matched_hats)}",
            code="AMBIGUOUS_ROUTING",
            details={"topic": topic, "matched_hats": list(matched_hats)},
        )
        self.topic = topic
        self.matched_hats = list(matched_hats)


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------

class LoopError(HatloopError):
    default_code = "LOOP_ERROR"


class MaxIterationsReachedError(LoopError):
    def __init__(self, iterations: int, max_iterations: int):
        super().__init__(
            f"Maximum iterations reached: {iterations}/{max_iterations}",
            code="MAX_ITERATIONS_REACHED",
            details={"iterations": iterations, "max_iterations": max_iterations},
        )
        self.iterations = iterations
        self.max_iterations = max_iterations


class EventEmitError(HatloopError):
    default_code = "EVENT_EMIT_ERROR"
