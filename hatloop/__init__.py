"""HATLOOP — event-routed hat orchestration for coding agents."""

from hatloop.identity import __version__

__all__ = ["__version__"]
