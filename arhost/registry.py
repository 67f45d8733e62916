"""
Process-wide bookkeeping of programs, instances, tag bindings and snapshots.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import InitError, UnknownInstanceError, UnknownProgramError
from .runtime.instance import Instance, Program
from .scene import SceneObject
from .value import Value

LOG = logging.getLogger(__name__)

Snapshot = Tuple[Optional[SceneObject], ...]


@dataclass(frozen=True)
class RosterEntry:
    instance_id: int
    program: str
    tag: Optional[int]
    state: Value


class InstanceRegistry:
    """
    Append-only list of instances plus a last-writer-wins tag table.

    Instance ids are list indices and are never reused.  The published
    snapshot is an immutable tuple swapped wholesale by the simulation tick;
    readers grab one reference and never observe a partial update.
    """

    def __init__(self, libraries: Iterable[Tuple[str, str]] = ()) -> None:
        self._lock = threading.RLock()
        self._create_lock = threading.Lock()
        self._libraries: Tuple[Tuple[str, str], ...] = tuple(libraries)
        self._programs: Dict[str, Program] = {}
        self._instances: List[Instance] = []
        self._tags: Dict[int, int] = {}
        self._snapshots: Snapshot = ()

    # ------------------------------------------------------------------ programs

    @property
    def libraries(self) -> Tuple[Tuple[str, str], ...]:
        return self._libraries

    def register(self, name: str, source: str) -> Program:
        program = Program(name=name, source=source, libraries=self._libraries)
        with self._lock:
            if name in self._programs:
                LOG.info("Replacing program %r", name)
            self._programs[name] = program
        return program

    def program(self, name: str) -> Program:
        with self._lock:
            program = self._programs.get(name)
        if program is None:
            raise UnknownProgramError(f"unknown program {name!r}")
        return program

    def programs(self) -> List[str]:
        with self._lock:
            return sorted(self._programs)

    # ------------------------------------------------------------------ instances

    def instantiate(
        self,
        program: Program | str,
        *,
        auto_init: bool = True,
        data: Optional[Value] = None,
    ) -> int:
        """
        Create an instance and return its id.

        Load failures raise :class:`~arhost.errors.LoadError` and register
        nothing.  The init hook runs before the instance becomes visible to
        the simulation tick.  An init failure raises
        :class:`~arhost.errors.InitError` after the instance has been
        registered; it keeps its slot and keeps being rendered.
        """

        if isinstance(program, str):
            program = self.program(program)

        # Creation is serialised so the id handed out is the next list slot.
        with self._create_lock:
            instance = Instance(program, data=data)
            failure: Optional[InitError] = None
            if auto_init and data is None:
                try:
                    instance.init()
                except InitError as exc:
                    failure = exc
            with self._lock:
                self._instances.append(instance)
                instance_id = len(self._instances) - 1
        LOG.info("Instantiated %r as instance %d", program.name, instance_id)

        if failure is not None:
            failure.instance_id = instance_id
            raise failure
        return instance_id

    def instance(self, instance_id: int) -> Instance:
        with self._lock:
            if 0 <= instance_id < len(self._instances):
                return self._instances[instance_id]
        raise UnknownInstanceError(f"unknown instance {instance_id}")

    def instances(self) -> Tuple[Instance, ...]:
        with self._lock:
            return tuple(self._instances)

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def tap(self, instance_id: int, entity_id: str) -> None:
        self.instance(instance_id).tap(entity_id)

    # ------------------------------------------------------------------ tags

    def bind(self, tag: int, instance_id: int) -> None:
        self.instance(instance_id)
        with self._lock:
            previous = self._tags.get(tag)
            self._tags[tag] = instance_id
        if previous is not None and previous != instance_id:
            LOG.info("Tag %d rebound from instance %d to %d", tag, previous, instance_id)

    def unbind(self, tag: int) -> None:
        with self._lock:
            self._tags.pop(tag, None)

    def bindings(self) -> Dict[int, int]:
        with self._lock:
            return dict(self._tags)

    def tag_for(self, instance_id: int) -> Optional[int]:
        tags = [tag for tag, bound in self.bindings().items() if bound == instance_id]
        return min(tags) if tags else None

    # ------------------------------------------------------------------ snapshots

    def snapshots(self) -> Snapshot:
        return self._snapshots

    def publish(self, snapshots: Sequence[Optional[SceneObject]]) -> Snapshot:
        published = tuple(snapshots)
        self._snapshots = published
        return published

    def roster(self) -> List[RosterEntry]:
        bindings = self.bindings()
        tags: Dict[int, int] = {}
        for tag, instance_id in bindings.items():
            if instance_id not in tags or tag < tags[instance_id]:
                tags[instance_id] = tag
        return [
            RosterEntry(
                instance_id=instance_id,
                program=instance.program.name,
                tag=tags.get(instance_id),
                state=instance.state,
            )
            for instance_id, instance in enumerate(self.instances())
        ]


__all__ = ["InstanceRegistry", "RosterEntry", "Snapshot"]
