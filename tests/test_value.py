"""Tests covering the host-side value model and path writes."""

from __future__ import annotations

import pytest

from arhost.errors import BadKeyError, ConversionError
from arhost.value import EMPTY_TABLE, NIL, KeyType, TableEntry, Value, ValueType, set_path


def test_set_path_creates_intermediate_tables() -> None:
    root = set_path(EMPTY_TABLE, ["a", "b"], Value.of_number(1))

    inner = root.get("a")
    assert inner is not None
    assert inner.type == ValueType.TABLE
    assert inner.get("b") == Value.of_number(1)


def test_set_path_promotes_nil_nodes() -> None:
    root = Value.from_python({"slot": None})
    assert root.get("slot") == NIL

    updated = set_path(root, ["slot", 1], Value.of_string("x"))

    assert updated.to_python() == {"slot": {1: "x"}}


def test_set_path_rejects_non_table_intermediate_and_keeps_root() -> None:
    root = Value.from_python({"a": 5})

    with pytest.raises(BadKeyError):
        set_path(root, ["a", "b"], Value.of_number(1))

    assert root == Value.from_python({"a": 5})


@pytest.mark.parametrize("key", [True, None, 1.5j, float("nan")])
def test_set_path_rejects_bad_keys(key) -> None:
    with pytest.raises(BadKeyError):
        set_path(EMPTY_TABLE, ["ok", key], Value.of_number(1))


def test_set_path_requires_a_key() -> None:
    with pytest.raises(BadKeyError):
        set_path(EMPTY_TABLE, [], Value.of_number(1))


def test_set_path_overwrites_in_place_and_keeps_order() -> None:
    root = Value.from_python({"first": 1, "second": 2, "third": 3})

    updated = set_path(root, ["second"], Value.of_string("two"))

    assert [entry.key for entry in updated.entries] == ["first", "second", "third"]
    assert updated.get("second") == Value.of_string("two")
    assert root.get("second") == Value.of_number(2)


def test_string_and_number_keys_are_distinct() -> None:
    root = set_path(EMPTY_TABLE, ["1"], Value.of_string("string"))
    root = set_path(root, [1], Value.of_string("number"))

    assert len(root.entries) == 2
    assert root.get("1") == Value.of_string("string")
    assert root.get(1.0) == Value.of_string("number")


def test_duplicate_keys_first_match_wins() -> None:
    table = Value.table(
        [
            TableEntry(KeyType.STRING, "k", Value.of_number(1)),
            TableEntry(KeyType.STRING, "k", Value.of_number(2)),
        ]
    )

    assert table.get("k") == Value.of_number(1)
    updated = table.with_entry("k", Value.of_number(3))
    assert [entry.value.number for entry in updated.entries] == [3.0, 2.0]


def test_from_python_distinguishes_bool_from_number() -> None:
    assert Value.from_python(True).type == ValueType.BOOL
    assert Value.from_python(1).type == ValueType.NUMBER
    assert Value.from_python([True]).get(1) == Value.of_bool(True)


def test_from_python_rejects_unsupported_objects() -> None:
    with pytest.raises(ConversionError):
        Value.from_python(object())


def test_wire_dict_preserves_structure() -> None:
    value = Value.from_python({"board": ["x", "", "o"], "turn": "x", "done": False})

    payload = value.to_dict()

    assert payload["type"] == int(ValueType.TABLE)
    assert payload["tablevalue"][0]["keytype"] == int(KeyType.STRING)
    assert payload["tablevalue"][0]["stringkey"] == "board"
    assert Value.from_dict(payload) == value


def test_from_dict_rejects_unknown_type() -> None:
    with pytest.raises(ConversionError):
        Value.from_dict({"type": 42})
