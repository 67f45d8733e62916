"""
Simulation ticker and broadcast collection.

The simulation tick renders every instance on a dedicated thread and
publishes a brand new snapshot tuple.  Broadcasting is driven per connection
by the server; :func:`collect_broadcast` gathers what one round should send.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .errors import RenderError
from .registry import InstanceRegistry, RosterEntry, Snapshot
from .scene import SceneObject

LOG = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.1


@dataclass(frozen=True)
class BroadcastRound:
    roster: List[RosterEntry]
    scenes: List[Tuple[int, SceneObject]]


def tick(registry: InstanceRegistry) -> Snapshot:
    """
    Render every instance once and publish the result.

    An instance whose render fails keeps whatever the previous snapshot held
    for it (or nothing); the failure never affects other instances.
    """

    previous = registry.snapshots()
    instances = registry.instances()
    rendered: List[Optional[SceneObject]] = [None] * len(instances)

    for instance_id, instance in enumerate(instances):
        try:
            rendered[instance_id] = instance.render_scene()
        except RenderError as exc:
            LOG.warning("Failed to render instance %d: %s", instance_id, exc)
            if instance_id < len(previous):
                rendered[instance_id] = previous[instance_id]

    return registry.publish(rendered)


def collect_broadcast(registry: InstanceRegistry) -> BroadcastRound:
    """
    Gather the roster and the scenes of every tag-bound instance.

    Instances created after the current snapshot was published have no entry
    yet; they are skipped for this round and picked up on the next one.
    """

    snapshots = registry.snapshots()
    roster = registry.roster()

    scenes: List[Tuple[int, SceneObject]] = []
    for instance_id in sorted(set(registry.bindings().values())):
        if instance_id >= len(snapshots) or snapshots[instance_id] is None:
            LOG.debug("Instance %d has no rendered scene yet; skipping", instance_id)
            continue
        scenes.append((instance_id, snapshots[instance_id]))

    return BroadcastRound(roster=roster, scenes=scenes)


class SyncLoop:
    """
    Drive :func:`tick` on a fixed interval from a background thread.
    """

    def __init__(self, registry: InstanceRegistry, *, tick_interval: float = DEFAULT_TICK_INTERVAL) -> None:
        self.registry = registry
        self.tick_interval = max(0.01, float(tick_interval))
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._ticks = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks(self) -> int:
        return self._ticks

    def tick(self) -> Snapshot:
        snapshot = tick(self.registry)
        self._ticks += 1
        return snapshot

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="arhost-sync", daemon=True)
        self._thread.start()
        LOG.info("Simulation loop started (interval=%.3fs)", self.tick_interval)

    def stop(self, timeout: float = 2.0) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout=timeout)
        if thread.is_alive():  # pragma: no cover - a render hook that never returns
            LOG.warning("Simulation loop did not stop within %.1fs", timeout)
        self._thread = None
        LOG.info("Simulation loop stopped after %d ticks", self._ticks)

    def _run(self) -> None:
        next_deadline = time.monotonic()
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:  # pragma: no cover - keep ticking whatever happens
                LOG.exception("Simulation tick failed")
            next_deadline += self.tick_interval
            delay = next_deadline - time.monotonic()
            if delay < 0:
                next_deadline = time.monotonic()
                delay = 0.0
            self._stop.wait(delay)


__all__ = ["BroadcastRound", "DEFAULT_TICK_INTERVAL", "SyncLoop", "collect_broadcast", "tick"]
