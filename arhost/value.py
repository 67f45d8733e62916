"""
Host-side representation of dynamic script values.

A :class:`Value` is a closed tagged union over nil, table, boolean, number
and string.  Tables are ordered sequences of entries rather than mappings:
the order in which the script produced its keys is kept verbatim, lookups
scan linearly and the first matching entry wins when a key is duplicated.

Values are immutable.  :func:`set_path` returns a new root that shares every
untouched subtree with the old one, so a reader holding a reference to an
instance's state never observes a half-applied write.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import BadKeyError, ConversionError

Key = Union[str, float]


class ValueType(IntEnum):
    NIL = 0
    TABLE = 1
    BOOL = 2
    NUMBER = 3
    STRING = 4


class KeyType(IntEnum):
    STRING = 1
    NUMBER = 2


def split_key(key: object) -> Tuple[KeyType, Key]:
    """
    Classify ``key`` as a string or number key.

    Booleans are rejected even though they are ints in Python; the script
    engine keeps them distinct from numbers.
    """

    if isinstance(key, str):
        return KeyType.STRING, key
    if isinstance(key, bool) or not isinstance(key, (int, float)):
        raise BadKeyError(f"bad key type for table: {type(key).__name__}")
    number = float(key)
    if math.isnan(number):
        raise BadKeyError("table key is NaN")
    return KeyType.NUMBER, number


@dataclass(frozen=True, slots=True)
class TableEntry:
    key_type: KeyType
    key: Key
    value: "Value"

    def matches(self, key_type: KeyType, key: Key) -> bool:
        return self.key_type == key_type and self.key == key

    def to_dict(self) -> dict:
        return {
            "keytype": int(self.key_type),
            "stringkey": self.key if self.key_type == KeyType.STRING else "",
            "numberkey": float(self.key) if self.key_type == KeyType.NUMBER else 0.0,
            "value": self.value.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TableEntry":
        try:
            key_type = KeyType(int(payload.get("keytype", 0)))
        except (TypeError, ValueError):
            raise ConversionError(f"unknown key type {payload.get('keytype')!r}") from None
        if key_type == KeyType.STRING:
            key: Key = str(payload.get("stringkey") or "")
        else:
            try:
                key = float(payload.get("numberkey") or 0.0)
            except (TypeError, ValueError):
                raise ConversionError("number key is not numeric") from None
        value = payload.get("value")
        if not isinstance(value, Mapping):
            raise ConversionError("table entry is missing its value")
        return cls(key_type=key_type, key=key, value=Value.from_dict(value))


@dataclass(frozen=True, slots=True)
class Value:
    type: ValueType = ValueType.NIL
    entries: Tuple[TableEntry, ...] = ()
    boolean: bool = False
    number: float = 0.0
    string: str = ""

    # ------------------------------------------------------------------ constructors

    @classmethod
    def nil(cls) -> "Value":
        return NIL

    @classmethod
    def table(cls, entries: Sequence[TableEntry] = ()) -> "Value":
        return cls(type=ValueType.TABLE, entries=tuple(entries))

    @classmethod
    def of_bool(cls, value: bool) -> "Value":
        return cls(type=ValueType.BOOL, boolean=bool(value))

    @classmethod
    def of_number(cls, value: float) -> "Value":
        return cls(type=ValueType.NUMBER, number=float(value))

    @classmethod
    def of_string(cls, value: str) -> "Value":
        return cls(type=ValueType.STRING, string=str(value))

    @classmethod
    def from_python(cls, obj: object) -> "Value":
        """
        Build a value from plain Python data.

        Mappings keep their iteration order; lists and tuples become tables
        keyed ``1..n`` the way the script engine numbers arrays.
        """

        if obj is None:
            return NIL
        if isinstance(obj, Value):
            return obj
        if isinstance(obj, bool):
            return cls.of_bool(obj)
        if isinstance(obj, (int, float)):
            return cls.of_number(obj)
        if isinstance(obj, str):
            return cls.of_string(obj)
        if isinstance(obj, Mapping):
            entries = []
            for key, item in obj.items():
                key_type, clean_key = split_key(key)
                entries.append(TableEntry(key_type, clean_key, cls.from_python(item)))
            return cls.table(entries)
        if isinstance(obj, (list, tuple)):
            return cls.table(
                TableEntry(KeyType.NUMBER, float(index), cls.from_python(item))
                for index, item in enumerate(obj, start=1)
            )
        raise ConversionError(f"cannot convert {type(obj).__name__} to a value")

    # ------------------------------------------------------------------ table access

    @property
    def is_nil(self) -> bool:
        return self.type == ValueType.NIL

    @property
    def is_table(self) -> bool:
        return self.type == ValueType.TABLE

    def get(self, key: object) -> Optional["Value"]:
        if not self.is_table:
            raise BadKeyError(f"cannot index a {self.type.name.lower()} value")
        key_type, clean_key = split_key(key)
        for entry in self.entries:
            if entry.matches(key_type, clean_key):
                return entry.value
        return None

    def with_entry(self, key: object, value: "Value") -> "Value":
        """
        Return a copy of this table with ``key`` set to ``value``.

        The first matching entry is replaced in place; a new key is appended.
        """

        if not self.is_table:
            raise BadKeyError(f"cannot index a {self.type.name.lower()} value")
        key_type, clean_key = split_key(key)
        entries = list(self.entries)
        for index, entry in enumerate(entries):
            if entry.matches(key_type, clean_key):
                entries[index] = TableEntry(key_type, clean_key, value)
                break
        else:
            entries.append(TableEntry(key_type, clean_key, value))
        return Value.table(entries)

    # ------------------------------------------------------------------ serialisation

    def to_python(self) -> Any:
        if self.type == ValueType.TABLE:
            result: Dict[Key, Any] = {}
            for entry in self.entries:
                key: Any = entry.key
                if entry.key_type == KeyType.NUMBER and float(key).is_integer():
                    key = int(key)
                result.setdefault(key, entry.value.to_python())
            return result
        if self.type == ValueType.BOOL:
            return self.boolean
        if self.type == ValueType.NUMBER:
            return self.number
        if self.type == ValueType.STRING:
            return self.string
        return None

    def to_dict(self) -> dict:
        return {
            "type": int(self.type),
            "tablevalue": [entry.to_dict() for entry in self.entries],
            "boolvalue": bool(self.boolean),
            "numbervalue": float(self.number),
            "stringvalue": self.string,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Value":
        try:
            value_type = ValueType(int(payload.get("type", 0)))
        except (TypeError, ValueError):
            raise ConversionError(f"unknown value type {payload.get('type')!r}") from None

        if value_type == ValueType.TABLE:
            raw_entries = payload.get("tablevalue") or []
            if not isinstance(raw_entries, list):
                raise ConversionError("table value must be a list of entries")
            entries: List[TableEntry] = []
            for raw in raw_entries:
                if not isinstance(raw, Mapping):
                    raise ConversionError("table entry must be a mapping")
                entries.append(TableEntry.from_dict(raw))
            return cls.table(entries)
        if value_type == ValueType.BOOL:
            return cls.of_bool(bool(payload.get("boolvalue")))
        if value_type == ValueType.NUMBER:
            try:
                return cls.of_number(float(payload.get("numbervalue") or 0.0))
            except (TypeError, ValueError):
                raise ConversionError("number value is not numeric") from None
        if value_type == ValueType.STRING:
            return cls.of_string(str(payload.get("stringvalue") or ""))
        return NIL


NIL = Value()
EMPTY_TABLE = Value.table()


def _set_path(node: Value, keys: Sequence[object], value: Value) -> Value:
    if node.is_nil:
        node = EMPTY_TABLE
    elif not node.is_table:
        raise BadKeyError(
            f"cannot set key {keys[0]!r} on a {node.type.name.lower()} value"
        )

    head = keys[0]
    if len(keys) == 1:
        return node.with_entry(head, value)

    child = node.get(head)
    if child is None:
        child = NIL
    return node.with_entry(head, _set_path(child, keys[1:], value))


def set_path(root: Value, keys: Sequence[object], value: Value) -> Value:
    """
    Write ``value`` at ``keys`` below ``root`` and return the new root.

    Missing segments and nil segments are created as empty tables.  Any other
    non-table value on the path, or a key that is neither a string nor a
    number, raises :class:`BadKeyError`; ``root`` itself is never modified.
    """

    if not keys:
        raise BadKeyError("path must contain at least one key")
    for key in keys:
        split_key(key)
    return _set_path(root, list(keys), value)


__all__ = [
    "EMPTY_TABLE",
    "Key",
    "KeyType",
    "NIL",
    "TableEntry",
    "Value",
    "ValueType",
    "set_path",
    "split_key",
]
