"""
HATLOOP Router — Topic → Hat Routing

Maps an event topic to the hats whose trigger patterns match it.
Three tiers, evaluated in order, first non-empty tier wins:

  1. exact     `build.done`           more than one hat here is an error
  2. wildcard  `build.*`, `*.done`    every matching hat is returned
  3. global    `*`                    every catch-all hat is returned

Any other use of `*` (`*.*.done`, `bu*ld`) is not a glob: the pattern is
compared to the topic as a literal string.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

from loguru import logger

from hatloop.errors import AmbiguousRoutingError

if TYPE_CHECKING:
    from hatloop.hats import HatDefinition

WILDCARD = "*"


def is_match(pattern: str, topic: str) -> bool:
    """Does a single trigger pattern match a topic?"""
    if pattern == WILDCARD:
        return True

    if WILDCARD not in pattern:
        return pattern == topic

    # build.* → build, build.done, build.x.y (not buildx.done)
    if pattern.endswith(".*"):
        prefix = pattern[:-2]
        if prefix and WILDCARD not in prefix:
            return topic == prefix or topic.startswith(f"{prefix}.")

    # *.done → build.done, x.done (not done)
    if pattern.startswith("*."):
        suffix = pattern[2:]
        if suffix and WILDCARD not in suffix:
            return topic.endswith(f".{suffix}")

    return pattern == topic


class GlobMatcher:
    """
    Resolves topics against a fixed set of hats.

    Hats are read-only for the matcher's lifetime; iteration order is the
    mapping's order, so results are deterministic.
    """

    def __init__(self, hats: Mapping[str, HatDefinition]):
        self.hats = hats

    def match(self, topic: str) -> list[str]:
        """Return the ids of the hats that respond to `topic`.

        Raises:
            AmbiguousRoutingError: if more than one hat has an exact trigger for `topic`.
        """
        exact = self._exact_matches(topic)
        if len(exact) > 1:
            raise AmbiguousRoutingError(topic, exact)
        if exact:
            return exact

        wildcard = self._wildcard_matches(topic)
        if wildcard:
            return wildcard

        catch_all = self._global_matches()
        if catch_all:
            return catch_all

        logger.debug(f"[ROUTER] No hat responds to '{topic}'")
        return []

    def is_match(self, pattern: str, topic: str) -> bool:
        return is_match(pattern, topic)

    def _exact_matches(self, topic: str) -> list[str]:
        return [
            hat_id
            for hat_id, hat in self.hats.items()
            if any(WILDCARD not in t and t == topic for t in hat.triggers)
        ]

    def _wildcard_matches(self, topic: str) -> list[str]:
        return [
            hat_id
            for hat_id, hat in self.hats.items()
            if any(t != WILDCARD and WILDCARD in t and is_match(t, topic) for t in hat.triggers)
        ]

    def _global_matches(self) -> list[str]:
        return [hat_id for hat_id, hat in self.hats.items() if WILDCARD in hat.triggers]
