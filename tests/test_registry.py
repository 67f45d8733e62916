import pytest

from arhost.errors import InitError, LoadError, UnknownInstanceError, UnknownProgramError
from arhost.registry import InstanceRegistry
from arhost.runtime.instance import InstanceState
from arhost.value import Value

from conftest import COUNTER_PROGRAM


@pytest.fixture
def registry() -> InstanceRegistry:
    registry = InstanceRegistry()
    registry.register("counter", COUNTER_PROGRAM)
    registry.register("broken", "function ARInit() error('bad init') end")
    registry.register("unloadable", "function (")
    return registry


def test_instance_ids_are_sequential(registry: InstanceRegistry) -> None:
    assert registry.instantiate("counter") == 0
    assert registry.instantiate("counter") == 1
    assert len(registry) == 2
    assert registry.instance(1).lifecycle is InstanceState.INITIALIZED


def test_load_error_registers_nothing(registry: InstanceRegistry) -> None:
    with pytest.raises(LoadError):
        registry.instantiate("unloadable")

    assert len(registry) == 0
    assert registry.instantiate("counter") == 0


def test_init_error_keeps_the_slot(registry: InstanceRegistry) -> None:
    registry.instantiate("counter")

    with pytest.raises(InitError) as excinfo:
        registry.instantiate("broken")

    assert excinfo.value.instance_id == 1
    assert len(registry) == 2
    assert registry.instance(1).program.name == "broken"
    assert registry.instantiate("counter") == 2


def test_data_skips_init(registry: InstanceRegistry) -> None:
    instance_id = registry.instantiate("broken", data=Value.from_python({"restored": True}))

    assert registry.instance(instance_id).state.get("restored") == Value.of_bool(True)


def test_unknown_program(registry: InstanceRegistry) -> None:
    with pytest.raises(UnknownProgramError):
        registry.instantiate("missing")
    with pytest.raises(LookupError):
        registry.program("missing")


def test_unknown_instance(registry: InstanceRegistry) -> None:
    with pytest.raises(UnknownInstanceError):
        registry.instance(0)
    with pytest.raises(UnknownInstanceError):
        registry.tap(-1, "button")
    with pytest.raises(UnknownInstanceError):
        registry.bind(0, 5)


def test_bind_is_last_writer_wins(registry: InstanceRegistry) -> None:
    first = registry.instantiate("counter")
    second = registry.instantiate("counter")

    registry.bind(3, first)
    registry.bind(3, second)
    registry.bind(7, first)

    assert registry.bindings() == {3: second, 7: first}
    assert registry.tag_for(second) == 3

    registry.unbind(3)
    assert registry.tag_for(second) is None


def test_tag_for_reports_lowest_tag(registry: InstanceRegistry) -> None:
    instance_id = registry.instantiate("counter")
    registry.bind(9, instance_id)
    registry.bind(4, instance_id)

    assert registry.tag_for(instance_id) == 4
    assert registry.roster()[0].tag == 4


def test_roster_lists_every_instance(registry: InstanceRegistry) -> None:
    registry.instantiate("counter")
    registry.instantiate("counter")
    registry.bind(0, 1)
    registry.tap(1, "button")

    roster = registry.roster()

    assert [entry.instance_id for entry in roster] == [0, 1]
    assert [entry.program for entry in roster] == ["counter", "counter"]
    assert [entry.tag for entry in roster] == [None, 0]
    assert roster[0].state.get("count") == Value.of_number(0)


def test_programs_are_listed_sorted(registry: InstanceRegistry) -> None:
    assert registry.programs() == ["broken", "counter", "unloadable"]


def test_registry_libraries_reach_programs() -> None:
    registry = InstanceRegistry(libraries=[("answer.lua", "ANSWER = 42")])
    registry.register("uses_lib", "function ARInit() ar.setdata('answer', ANSWER) end")

    instance_id = registry.instantiate("uses_lib")

    assert registry.instance(instance_id).state.get("answer") == Value.of_number(42)
