from __future__ import annotations


class GingerError(Exception):
    """Base class for task runner failures."""


class ConfigError(GingerError, ValueError):
    """Malformed task configuration or step token. Fatal, raised before any stimulus."""


class AssetLoadError(GingerError):
    """A stimulus image could not be loaded. Fatal, never retried."""

    def __init__(self, source: str, reason: object = None) -> None:
        self.source = source
        self.reason = reason
        detail = "" if reason is None else f": {reason}"
        super().__init__(f"failed to load image {_short(source)}{detail}")


class InputProtocolError(GingerError, AssertionError):
    """An internal contract was violated (unknown trigger or step type)."""


def _short(source: str, limit: int = 60) -> str:
    # data: URIs can be megabytes long.
    return source if len(source) <= limit else source[: limit - 3] + "..."
