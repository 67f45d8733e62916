"""Tests covering conversion between Lua values and host values."""

from __future__ import annotations

import pytest

from arhost.errors import ConversionError
from arhost.value import NIL, KeyType, TableEntry, Value, ValueType


def _keys(value: Value) -> list:
    return [entry.key for entry in value.entries]


def test_round_trip_preserves_values_and_order(bridge) -> None:
    value = Value.from_python(
        {
            "board": [
                ["x", "", "o"],
                ["", "x", ""],
                ["o", "", "x"],
            ]
        }
    )

    assert bridge.to_host(bridge.to_engine(value)) == value


def test_round_trip_keeps_unsorted_string_keys_in_order(bridge) -> None:
    value = Value.from_python({"zeta": 1, "alpha": 2, "mid": 3, "beta": 4, "q": {"z": 1, "a": 2}})

    result = bridge.to_host(bridge.to_engine(value))

    assert result == value
    assert _keys(result) == ["zeta", "alpha", "mid", "beta", "q"]
    assert _keys(result.get("q")) == ["z", "a"]


def test_round_trip_keeps_array_part_before_hash_part(bridge) -> None:
    value = Value.from_python({1: "a", 2: "b", 3: "c"}).with_entry("name", Value.of_string("n"))

    result = bridge.to_host(bridge.to_engine(value))

    assert result == value
    assert _keys(result) == [1.0, 2.0, 3.0, "name"]


@pytest.mark.parametrize("size", [1, 2, 5, 9, 17, 33, 40])
def test_tables_built_in_lua_round_trip(bridge, size) -> None:
    fields = ", ".join(f"k{index} = {index}" for index in range(size))
    first = bridge.to_host(bridge.runtime.eval("{" + fields + "}"))

    assert len(first.entries) == size
    assert bridge.to_host(bridge.to_engine(first)) == first


def test_table_with_deleted_keys_round_trips(bridge) -> None:
    bridge.runtime.execute("sparse = {a = 1, b = 2, c = 3, d = 4}; sparse.b = nil; sparse.e = 5")
    first = bridge.to_host(bridge.runtime.globals()["sparse"])

    assert sorted(_keys(first)) == ["a", "c", "d", "e"]
    assert bridge.to_host(bridge.to_engine(first)) == first


def test_scripts_see_and_extend_the_host_order(bridge) -> None:
    value = Value.from_python({"zeta": 1, "alpha": 2, "mid": 3})
    bridge.runtime.globals()["t"] = bridge.to_engine(value)
    bridge.runtime.execute(
        """
        seen = {}
        for key in pairs(t) do seen[#seen + 1] = key end
        t.alpha = nil
        t.extra = 4
        """
    )

    seen = bridge.runtime.globals()["seen"]
    assert [seen[index] for index in range(1, 4)] == ["zeta", "alpha", "mid"]
    assert _keys(bridge.to_host(bridge.runtime.globals()["t"])) == ["zeta", "mid", "extra"]


def test_replacing_pairs_does_not_break_conversion(bridge) -> None:
    value = Value.from_python({"b": 1, "a": 2})
    bridge.runtime.execute("pairs = nil; setmetatable = nil")

    assert bridge.to_host(bridge.to_engine(value)) == value


def test_duplicate_keys_keep_first_entry(bridge) -> None:
    value = Value.table(
        [
            TableEntry(KeyType.STRING, "a", Value.of_number(1)),
            TableEntry(KeyType.STRING, "a", Value.of_number(2)),
        ]
    )

    table = bridge.to_engine(value)

    assert table["a"] == 1


@pytest.mark.parametrize(
    "value",
    [NIL, Value.of_bool(False), Value.of_number(-2.5), Value.of_number(7), Value.of_string("héllo")],
)
def test_scalars_round_trip(bridge, value) -> None:
    assert bridge.to_host(bridge.to_engine(value)) == value


def test_integral_numbers_reach_lua_as_integers(bridge) -> None:
    lua = bridge.runtime
    lua.globals()["n"] = bridge.to_engine(Value.of_number(3))

    assert lua.eval("tostring(n)") == "3"
    assert lua.eval("math.type(n)") == "integer"


def test_to_host_reads_lua_numbers_as_floats(bridge) -> None:
    result = bridge.to_host(bridge.runtime.eval("{count = 2, ratio = 0.5}"))

    assert result.get("count") == Value.of_number(2.0)
    assert result.get("ratio") == Value.of_number(0.5)


def test_to_host_rejects_non_scalar_keys(bridge) -> None:
    with pytest.raises(ConversionError):
        bridge.to_host(bridge.runtime.eval("{[print] = 1}"))

    with pytest.raises(ConversionError):
        bridge.to_host(bridge.runtime.eval("{[true] = 1}"))


def test_to_host_rejects_functions(bridge) -> None:
    with pytest.raises(ConversionError):
        bridge.to_host(bridge.runtime.eval("{callback = function() end}"))

    with pytest.raises(ConversionError):
        bridge.to_host(bridge.runtime.eval("print"))


def test_to_host_rejects_cyclic_tables(bridge) -> None:
    bridge.runtime.execute("cyclic = {}; cyclic.self = cyclic")

    with pytest.raises(ConversionError):
        bridge.to_host(bridge.runtime.globals()["cyclic"])


def test_number_keys_are_tagged_as_numbers(bridge) -> None:
    result = bridge.to_host(bridge.runtime.eval("{10, 20}"))

    assert result.type == ValueType.TABLE
    assert [(entry.key_type, entry.key) for entry in result.entries] == [
        (KeyType.NUMBER, 1.0),
        (KeyType.NUMBER, 2.0),
    ]


def test_python_escape_hatch_is_removed(lua) -> None:
    assert lua.eval("python") is None
