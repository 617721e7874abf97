"""Exception hierarchy for the nap runtime."""

from __future__ import annotations


class NapError(RuntimeError):
    """Base class for every error raised by napper."""


class ParseError(NapError):
    """Raised when a .nap or .naplist file cannot be parsed."""


class RequestError(NapError):
    """Raised when an HTTP request fails at the transport level."""


class ScriptError(NapError):
    """Raised when an external script cannot be started."""


class CyclicPlaylistError(NapError):
    """Raised when a playlist references itself directly or transitively."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__("cyclic playlist reference: " + " -> ".join(chain))


class TargetNotFoundError(NapError):
    """Raised when the top-level target does not exist or holds no requests."""
