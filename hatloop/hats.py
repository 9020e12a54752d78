"""
HATLOOP Hat Roster

A hat is a named behavioural mode for the agent:
  - the topics that activate it (triggers)
  - the topics it is allowed to publish
  - the instructions prepended to the prompt while it is worn

Hats are immutable once registered. Topic lookup goes through the
GlobMatcher, so the registry and the router agree on ambiguity.
"""

from __future__ import annotations

from typing import Iterator

from loguru import logger
from pydantic import BaseModel, ConfigDict
from rich.console import Console

from hatloop.config_loader import HatConfig
from hatloop.router import GlobMatcher

console = Console()


class HatDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str | None = None
    triggers: tuple[str, ...]
    publishes: tuple[str, ...] = ()
    instructions: str = ""
    backend: str | None = None
    model: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @classmethod
    def from_config(cls, hat_id: str, config: HatConfig) -> HatDefinition:
        return cls(
            id=hat_id,
            name=config.name,
            triggers=tuple(config.triggers),
            publishes=tuple(config.publishes),
            instructions=config.instructions,
            backend=config.backend,
            model=config.model,
        )


class HatRegistry:
    def __init__(self):
        self._hats: dict[str, HatDefinition] = {}
        self._matcher = GlobMatcher(self._hats)
        self._active_id: str | None = None

    def register(self, hat_id: str, config: HatConfig | HatDefinition) -> HatDefinition:
        if hat_id in self._hats:
            raise ValueError(f"Hat already registered: {hat_id}")
        if isinstance(config, HatDefinition):
            hat = config.model_copy(update={"id": hat_id})
        else:
            hat = HatDefinition.from_config(hat_id, config)
        self._hats[hat_id] = hat
        logger.debug(f"[HATS] Registered {hat_id}: triggers={list(hat.triggers)}")
        return hat

    def register_from_config(self, hats: dict[str, HatConfig]) -> None:
        for hat_id, config in hats.items():
            self.register(hat_id, config)

    def get(self, hat_id: str) -> HatDefinition | None:
        return self._hats.get(hat_id)

    def all(self) -> list[HatDefinition]:
        return list(self._hats.values())

    def ids(self) -> list[str]:
        return list(self._hats)

    def __len__(self) -> int:
        return len(self._hats)

    def __contains__(self, hat_id: object) -> bool:
        return hat_id in self._hats

    def __iter__(self) -> Iterator[HatDefinition]:
        return iter(self._hats.values())

    # --- routing ---

    def route(self, topic: str) -> list[HatDefinition]:
        """All hats that respond to `topic`. Raises AmbiguousRoutingError like GlobMatcher."""
        return [self._hats[hat_id] for hat_id in self._matcher.match(topic)]

    def find_by_trigger(self, topic: str) -> HatDefinition | None:
        """The hat to wear next for `topic`: first of the winning tier, or None."""
        matched = self.route(topic)
        return matched[0] if matched else None

    # --- active hat ---

    def set_active(self, hat_id: str | None) -> None:
        if hat_id is not None and hat_id not in self._hats:
            raise KeyError(f"Unknown hat: {hat_id}")
        if hat_id is not None and hat_id != self._active_id:
            _print_hat_switch(self._hats[hat_id])
        self._active_id = hat_id

    @property
    def active(self) -> HatDefinition | None:
        return self._hats.get(self._active_id) if self._active_id else None

    @property
    def active_id(self) -> str | None:
        return self._active_id


def is_authorized(hat: HatDefinition, topic: str) -> bool:
    return topic in hat.publishes


def build_hat_prompt(hat: HatDefinition, base_prompt: str) -> str:
    """Prepend the hat's role section to the task prompt."""
    publishes = "\n".join(f"- {topic}" for topic in hat.publishes) or "- (none declared)"
    example = f"EVENT: {hat.publishes[0]}" if hat.publishes else "EVENT: <topic>"

    return (
        f"## Current Role: {hat.display_name}\n\n"
        f"{hat.instructions}\n\n"
        f"### Available Events to Publish\n"
        f"{publishes}\n\n"
        f"When you complete your role's task, output one of the events above.\n"
        f"For example: {example}\n\n"
        f"---\n\n"
        f"{base_prompt}"
    )


def _print_hat_switch(hat: HatDefinition) -> None:
    console.print(f"\n  [magenta]🎭 Switching to: {hat.display_name}[/]")
    console.print(f"  [dim]   Triggers: {', '.join(hat.triggers)}[/]")
    console.print(f"  [dim]   Publishes: {', '.join(hat.publishes) or '-'}[/]\n")
