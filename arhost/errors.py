"""
Exception taxonomy shared by the runtime, registry and server layers.
"""

from __future__ import annotations

from typing import Optional


class HostError(RuntimeError):
    """Base class for host related errors."""


class LoadError(HostError):
    """Raised when a program (or one of its libraries) fails to load."""


class InitError(HostError):
    """Raised when a program's init hook fails."""

    def __init__(self, message: str, *, instance_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.instance_id = instance_id


class RenderError(HostError):
    """Raised when a program's render hook fails."""


class ConversionError(HostError):
    """Raised when a Lua value has no host-side representation."""


class BadKeyError(HostError):
    """Raised when a state path cannot be walked or written."""


class CodecError(HostError):
    """Raised when a client frame cannot be decoded into a message."""


class TransportError(HostError):
    """Raised when reading from or writing to a client connection fails."""


class UnknownProgramError(HostError, LookupError):
    """Raised when a program name is not registered."""


class UnknownInstanceError(HostError, LookupError):
    """Raised when an instance id is out of range."""


__all__ = [
    "BadKeyError",
    "CodecError",
    "ConversionError",
    "HostError",
    "InitError",
    "LoadError",
    "RenderError",
    "TransportError",
    "UnknownInstanceError",
    "UnknownProgramError",
]
