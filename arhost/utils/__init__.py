"""Utility helpers for the host."""

from .logging import configure_logging
from .programs import discover_programs, read_libraries

__all__ = ["configure_logging", "discover_programs", "read_libraries"]
