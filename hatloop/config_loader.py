"""
Configuration loader for HATLOOP.
Merges built-in defaults, an optional embedded preset, and per-repo
.hatloop/config.yaml overrides.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from hatloop.errors import ConfigError
from hatloop.presets import get_preset


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class DockerConfig(BaseModel):
    image: str = "node:20-alpine"
    network: Literal["none", "bridge", "host"] | None = None
    timeout: int | None = None  # seconds
    workdir: str | None = None


class ContainerUseConfig(BaseModel):
    image: str | None = None
    env_id: str | None = None
    workdir: str | None = None
    title: str = "hatloop"


class HostConfig(BaseModel):
    timeout: int | None = None  # seconds
    warn_on_start: bool = True


class SandboxConfig(BaseModel):
    # Plain strings: unknown tags must reach the factory and fail there.
    type: str = "container-use"
    fallback: str | None = None
    docker: DockerConfig = Field(default_factory=DockerConfig)
    container_use: ContainerUseConfig = Field(default_factory=ContainerUseConfig)
    host: HostConfig = Field(default_factory=HostConfig)


class HatConfig(BaseModel):
    name: str | None = None
    triggers: list[str] = Field(min_length=1)
    publishes: list[str] = Field(default_factory=list)
    instructions: str = ""
    backend: str | None = None
    model: str | None = None


class BackendConfig(BaseModel):
    type: str = "claude"
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    prompt_mode: Literal["arg", "stdin"] = "arg"
    prompt_flag: str | None = None
    agent: str | None = None  # kiro agent profile
    timeout: int | None = None  # seconds


class LoopConfig(BaseModel):
    max_iterations: int = Field(default=100, gt=0)
    completion_promise: str = "LOOP_COMPLETE"
    start_topic: str = "task.start"


class HatloopConfig(BaseModel):
    preset: str | None = None
    backend: BackendConfig = Field(default_factory=BackendConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    hats: dict[str, HatConfig] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

REPO_CONFIG_DIR = ".hatloop"


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", config_path=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config root must be a mapping: {path}", config_path=str(path))
    return data


def load_config(repo_path: Path | None = None, config_file: Path | None = None) -> HatloopConfig:
    """
    Load config by merging:
      1. Built-in defaults (hatloop/config.yaml)
      2. Hats from the embedded preset named by `preset`, if any
      3. Repo-level overrides (<repo>/.hatloop/config.yaml) or an explicit file
    """
    base = _read_yaml(_DEFAULT_CONFIG_PATH)

    source: Path | None = config_file
    if source is None and repo_path:
        candidate = repo_path / REPO_CONFIG_DIR / "config.yaml"
        if candidate.exists():
            source = candidate

    overrides: dict[str, Any] = {}
    if source is not None:
        if not source.exists():
            raise ConfigError(f"Config file not found: {source}", config_path=str(source))
        overrides = _read_yaml(source)

    preset_name = overrides.get("preset", base.get("preset"))
    if preset_name:
        preset = get_preset(preset_name)
        if preset is None:
            raise ConfigError(f"Unknown preset: {preset_name}", config_path=str(source) if source else None)
        base = _deep_merge(base, preset)

    merged = _deep_merge(base, overrides)

    try:
        return HatloopConfig(**merged)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration: {e}",
            config_path=str(source) if source else str(_DEFAULT_CONFIG_PATH),
        ) from e
