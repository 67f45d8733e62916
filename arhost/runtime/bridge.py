"""
Conversion between Lua values and host :class:`~arhost.value.Value` trees.

Host tables are ordered while Lua hash parts are not, so every table handed
to a script carries a ``__pairs`` metamethod that walks the original key
order first and any keys the script added afterwards.  Reading tables back
goes through ``pairs`` as well, which makes ``to_host(to_engine(v)) == v``
hold entry for entry.

``to_host`` is fallible: tables whose keys are anything other than strings or
numbers, and values such as functions or userdata, raise
:class:`~arhost.errors.ConversionError`.  ``to_engine`` is total because every
:class:`Value` has a Lua counterpart.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Set, Tuple

from lupa import LuaError, LuaRuntime, lua_type

from ..errors import ConversionError
from ..value import NIL, Key, KeyType, TableEntry, Value, ValueType

LOG = logging.getLogger(__name__)

MAX_DEPTH = 100

# Lua 5.3+ distinguishes integers from floats.  Numbers with an exact integer
# value are handed to scripts as integers so ``tostring`` prints ``3``.
_MAX_EXACT_INT = 2**53

# Compiled once per runtime, before any program code runs, so scripts that
# replace ``pairs`` or ``setmetatable`` cannot affect conversion.
_HELPERS = r"""
local pairs, next, rawget = pairs, next, rawget
local getmetatable, setmetatable = getmetatable, setmetatable

local function ordered_pairs(t)
  local mt = getmetatable(t)
  local keys = type(mt) == "table" and rawget(mt, "__keys") or {}
  local seen = {}
  local index = 0
  local listed = true
  local cursor = nil
  return function()
    while listed do
      index = index + 1
      local key = keys[index]
      if key == nil then
        listed = false
        break
      end
      local item = rawget(t, key)
      if item ~= nil then
        seen[key] = true
        return key, item
      end
    end
    while true do
      local item
      cursor, item = next(t, cursor)
      if cursor == nil then
        return nil
      end
      if not seen[cursor] then
        return cursor, item
      end
    end
  end, t, nil
end

local function order(t, keys)
  return setmetatable(t, { __pairs = ordered_pairs, __keys = keys })
end

local function entries(t)
  local keys, items, count = {}, {}, 0
  for key, item in pairs(t) do
    count = count + 1
    keys[count] = key
    items[count] = item
  end
  return keys, items, count
end

return order, entries
"""


def _deny_private_attributes(obj: object, attr_name: Any, is_setting: bool) -> Any:
    if isinstance(attr_name, str) and attr_name.startswith("_"):
        raise AttributeError(f"access to {attr_name!r} is not allowed")
    return attr_name


def new_runtime() -> LuaRuntime:
    """
    Create a Lua runtime with the Python escape hatches removed.
    """

    runtime = LuaRuntime(
        encoding="utf-8",
        register_eval=False,
        register_builtins=False,
        unpack_returned_tuples=True,
        attribute_filter=_deny_private_attributes,
    )
    runtime.globals()["python"] = None
    return runtime


def is_table(obj: object) -> bool:
    return lua_type(obj) == "table"


def number_to_engine(number: float) -> float | int:
    if number.is_integer() and abs(number) < _MAX_EXACT_INT:
        return int(number)
    return number


def _describe(obj: object) -> str:
    kind = lua_type(obj)
    if kind is not None:
        return kind
    return type(obj).__name__


def _host_key(key: object) -> Tuple[KeyType, Key]:
    if isinstance(key, bytes):
        key = key.decode("utf-8", errors="replace")
    if isinstance(key, str):
        return KeyType.STRING, key
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        return KeyType.NUMBER, float(key)
    raise ConversionError(f"unknown key type {_describe(key)}")


class LuaBridge:
    """
    Value conversion bound to a single Lua runtime.
    """

    def __init__(self, runtime: Optional[LuaRuntime] = None) -> None:
        self.runtime = runtime if runtime is not None else new_runtime()
        self._order, self._entries = self.runtime.execute(_HELPERS)

    def to_engine(self, value: Value) -> Any:
        if value.type == ValueType.TABLE:
            table = self.runtime.table()
            keys: List[Any] = []
            written: Set[Tuple[KeyType, Key]] = set()
            for entry in value.entries:
                if (entry.key_type, entry.key) in written:
                    # First match wins, as in Value.get.
                    continue
                written.add((entry.key_type, entry.key))
                if entry.key_type == KeyType.STRING:
                    key: Any = entry.key
                else:
                    key = number_to_engine(float(entry.key))
                table[key] = self.to_engine(entry.value)
                keys.append(key)
            return self._order(table, self.runtime.table(*keys))
        if value.type == ValueType.BOOL:
            return value.boolean
        if value.type == ValueType.NUMBER:
            return number_to_engine(value.number)
        if value.type == ValueType.STRING:
            return value.string
        return None

    def to_host(self, obj: object, *, _depth: int = 0) -> Value:
        if obj is None:
            return NIL
        if isinstance(obj, bool):
            return Value.of_bool(obj)
        if isinstance(obj, (int, float)):
            return Value.of_number(obj)
        if isinstance(obj, str):
            return Value.of_string(obj)
        if isinstance(obj, bytes):
            return Value.of_string(obj.decode("utf-8", errors="replace"))

        if is_table(obj):
            if _depth >= MAX_DEPTH:
                raise ConversionError(
                    f"table nesting deeper than {MAX_DEPTH} levels (cyclic table?)"
                )
            try:
                keys, items, count = self._entries(obj)
            except LuaError as exc:
                raise ConversionError(f"cannot iterate table: {lua_error_message(exc)}") from exc
            entries: List[TableEntry] = []
            for index in range(1, int(count) + 1):
                key_type, key = _host_key(keys[index])
                entries.append(
                    TableEntry(key_type, key, self.to_host(items[index], _depth=_depth + 1))
                )
            return Value.table(entries)

        raise ConversionError(f"cannot convert value of type {_describe(obj)} to host data")


def lua_error_message(exc: BaseException) -> Optional[str]:
    """Best-effort single-line rendering of a Lua error for log output."""

    message = str(exc).strip()
    if not message:
        return None
    return message.splitlines()[0]


__all__ = [
    "LuaBridge",
    "MAX_DEPTH",
    "is_table",
    "lua_error_message",
    "new_runtime",
    "number_to_engine",
]
