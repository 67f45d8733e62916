"""
Lua runtime integration: value bridging.  Program instances live in
:mod:`arhost.runtime.instance`.
"""

from __future__ import annotations

from .bridge import LuaBridge, is_table, new_runtime

__all__ = [
    "LuaBridge",
    "is_table",
    "new_runtime",
]
