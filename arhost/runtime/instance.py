"""
Program instances: one Lua runtime plus one persistent state table each.

Scripts talk to the host through the ``ar`` global:

``ar.getdata()``
    A fresh Lua copy of the instance state.
``ar.setdata(key, ..., value)``
    Write ``value`` at the given key path, creating intermediate tables.
``ar.gettapped()`` / ``ar.cleartap()``
    Read and consume the pending tap, if any.

The host calls the optional globals ``ARInit`` once after creation and
``ARRenderScene`` on every simulation tick.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence, Tuple

from lupa import LuaError, LuaRuntime, LuaSyntaxError

from ..errors import BadKeyError, ConversionError, InitError, LoadError, RenderError
from ..scene import EMPTY_SCENE, SceneObject, render_object
from ..value import EMPTY_TABLE, Value, set_path
from .bridge import LuaBridge, lua_error_message

LOG = logging.getLogger(__name__)

INIT_HOOK = "ARInit"
RENDER_HOOK = "ARRenderScene"
HOST_TABLE = "ar"


@dataclass(frozen=True)
class Program:
    """A named Lua source together with the libraries it is loaded with."""

    name: str
    source: str
    libraries: Tuple[Tuple[str, str], ...] = field(default=(), repr=False)


class InstanceState(str, Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    RUNNING = "running"


def _load_chunk(runtime: LuaRuntime, name: str, source: str) -> None:
    try:
        runtime.execute(source)
    except LuaSyntaxError as exc:
        raise LoadError(f"syntax error in {name}: {lua_error_message(exc)}") from exc
    except LuaError as exc:
        raise LoadError(f"failed to run {name}: {lua_error_message(exc)}") from exc
    except Exception as exc:
        raise LoadError(f"failed to run {name}: {exc}") from exc


class Instance:
    """
    A running program.

    Every call into the Lua runtime happens under ``_lock``: the simulation
    thread renders while connection handlers deliver taps and the runtime is
    not re-entrant across threads.
    """

    def __init__(self, program: Program, *, data: Optional[Value] = None) -> None:
        if data is not None and not data.is_table:
            raise ConversionError("instance state must be a table")
        self.program = program
        self._state: Value = data if data is not None else EMPTY_TABLE
        self._tapped: Optional[str] = None
        self._lock = threading.RLock()
        self._lifecycle = InstanceState.INITIALIZED if data is not None else InstanceState.CREATED
        self._init_attempted = data is not None
        self._bridge = LuaBridge()
        self._runtime = self._bridge.runtime
        self._install_host_table()
        for library_name, library_source in program.libraries:
            _load_chunk(self._runtime, library_name, library_source)
        _load_chunk(self._runtime, program.name, program.source)

    # ------------------------------------------------------------------ properties

    @property
    def state(self) -> Value:
        return self._state

    @property
    def tapped(self) -> Optional[str]:
        return self._tapped

    @property
    def lifecycle(self) -> InstanceState:
        return self._lifecycle

    # ------------------------------------------------------------------ host primitives

    def _install_host_table(self) -> None:
        self._runtime.globals()[HOST_TABLE] = self._runtime.table_from(
            {
                "getdata": self._lua_getdata,
                "setdata": self._lua_setdata,
                "gettapped": self._lua_gettapped,
                "cleartap": self._lua_cleartap,
            }
        )

    def _lua_getdata(self) -> Any:
        return self._bridge.to_engine(self._state)

    def _lua_setdata(self, *args: Any) -> None:
        if len(args) < 2:
            raise BadKeyError("ar.setdata expects at least one key and a value")
        self.set_path(args[:-1], self._bridge.to_host(args[-1]))

    def _lua_gettapped(self) -> Optional[str]:
        return self._tapped

    def _lua_cleartap(self) -> None:
        self._tapped = None

    # ------------------------------------------------------------------ public API

    def set_path(self, keys: Sequence[object], value: Value) -> None:
        with self._lock:
            self._state = set_path(self._state, keys, value)

    def init(self) -> None:
        """
        Run the init hook at most once, even if it fails.  A program without
        one is initialised as is.  Rendering never counts as initialisation.
        """

        with self._lock:
            if self._init_attempted:
                LOG.debug("Instance of %s already initialised; skipping init", self.program.name)
                return
            self._init_attempted = True
            hook = self._runtime.globals()[INIT_HOOK]
            if hook is not None:
                try:
                    hook()
                except Exception as exc:
                    raise InitError(
                        f"init of {self.program.name} failed: {lua_error_message(exc) or exc}"
                    ) from exc
            self._lifecycle = InstanceState.INITIALIZED

    def render_scene(self) -> SceneObject:
        """
        Run the render hook and convert its result.

        A program without a render hook renders an empty anchor.
        """

        with self._lock:
            hook = self._runtime.globals()[RENDER_HOOK]
            if hook is None:
                return EMPTY_SCENE
            try:
                result = hook()
                if isinstance(result, tuple):
                    result = result[0] if result else None
                scene = render_object(result)
            except Exception as exc:
                raise RenderError(
                    f"render of {self.program.name} failed: {lua_error_message(exc) or exc}"
                ) from exc
            if self._lifecycle is InstanceState.INITIALIZED:
                self._lifecycle = InstanceState.RUNNING
        if scene is None:
            return EMPTY_SCENE
        return scene

    def tap(self, entity_id: str) -> None:
        with self._lock:
            self._tapped = entity_id or None


__all__ = [
    "HOST_TABLE",
    "INIT_HOOK",
    "Instance",
    "InstanceState",
    "Program",
    "RENDER_HOOK",
]
