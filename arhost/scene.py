"""
Scene object model produced by a program's render hook.

Programs return nested Lua tables such as::

    { type = "box", id = "cell-1", pos = {0, 0.1, 0}, size = 0.05,
      rot = { axis = {0, 1, 0}, angle = math.pi / 4 },
      { type = "text", text = "X" } }

:func:`render_object` turns such a table into an immutable
:class:`SceneObject` tree.  Nodes with an unknown ``type`` are dropped with a
warning together with their subtree; their siblings are kept.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .runtime.bridge import is_table

LOG = logging.getLogger(__name__)

Vec3 = Tuple[float, float, float]
Quat = Tuple[float, float, float, float]

ZERO: Vec3 = (0.0, 0.0, 0.0)
ONE: Vec3 = (1.0, 1.0, 1.0)
IDENTITY: Quat = (0.0, 0.0, 0.0, 1.0)
DEFAULT_TEXT_SIZE = 0.05

# Below this quaternion norm a from/to rotation is treated as a half-turn.
DEGENERATE_EPSILON = 1e-6


class ObjectType(IntEnum):
    ANCHOR = 0
    BOX = 1
    SPHERE = 2
    CYLINDER = 3
    CONE = 4
    TEXT = 5
    TRIGGER_BOX = 6


OBJECT_TYPES: Dict[str, ObjectType] = {
    "": ObjectType.ANCHOR,
    "anchor": ObjectType.ANCHOR,
    "box": ObjectType.BOX,
    "sphere": ObjectType.SPHERE,
    "cylinder": ObjectType.CYLINDER,
    "cone": ObjectType.CONE,
    "text": ObjectType.TEXT,
    "triggerbox": ObjectType.TRIGGER_BOX,
    "trigger-box": ObjectType.TRIGGER_BOX,
}


# ---------------------------------------------------------------------- vector math


def length(v: Vec3) -> float:
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def normalized(v: Vec3) -> Optional[Vec3]:
    norm = length(v)
    if norm == 0.0 or not math.isfinite(norm):
        return None
    return (v[0] / norm, v[1] / norm, v[2] / norm)


def dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def cross(a: Vec3, b: Vec3) -> Vec3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def quat_normalized(q: Quat) -> Optional[Quat]:
    norm = math.sqrt(q[0] * q[0] + q[1] * q[1] + q[2] * q[2] + q[3] * q[3])
    if norm == 0.0 or not math.isfinite(norm):
        return None
    return (q[0] / norm, q[1] / norm, q[2] / norm, q[3] / norm)


def orthogonal(v: Vec3) -> Vec3:
    """Return a unit vector perpendicular to the unit vector ``v``."""

    magnitudes = [abs(component) for component in v]
    basis = [0.0, 0.0, 0.0]
    basis[magnitudes.index(min(magnitudes))] = 1.0
    unit = normalized(cross(v, (basis[0], basis[1], basis[2])))
    if unit is None:
        # Only a zero vector has no perpendicular; any axis will do.
        return (1.0, 0.0, 0.0)
    return unit


def quat_from_axis_angle(axis: Vec3, angle: float) -> Quat:
    unit = normalized(axis)
    if unit is None:
        return IDENTITY
    sine = math.sin(angle / 2)
    return (unit[0] * sine, unit[1] * sine, unit[2] * sine, math.cos(angle / 2))


def quat_from_to(source: Vec3, target: Vec3) -> Quat:
    """
    Shortest-arc rotation taking direction ``source`` onto ``target``.

    When the two directions are opposite there is no unique shortest arc; a
    half-turn about an axis orthogonal to ``source`` is returned instead.
    """

    src = normalized(source)
    dst = normalized(target)
    if src is None or dst is None:
        return IDENTITY

    w = 1.0 + dot(src, dst)
    axis = cross(src, dst)
    q = quat_normalized((axis[0], axis[1], axis[2], w))
    if q is None or w < DEGENERATE_EPSILON:
        ortho = orthogonal(src)
        return (ortho[0], ortho[1], ortho[2], 0.0)
    return q


# ---------------------------------------------------------------------- model


@dataclass(frozen=True, slots=True)
class SceneObject:
    type: ObjectType = ObjectType.ANCHOR
    id: str = ""
    pos: Vec3 = ZERO
    rot: Quat = IDENTITY
    size: Vec3 = ONE
    color: str = ""
    text: str = ""
    text_size: float = DEFAULT_TEXT_SIZE
    text_align: str = ""
    text_wrap: bool = False
    children: Tuple["SceneObject", ...] = ()

    @classmethod
    def empty(cls) -> "SceneObject":
        return EMPTY_SCENE

    def walk(self) -> Iterator["SceneObject"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, object_id: str) -> Optional["SceneObject"]:
        for node in self.walk():
            if node.id == object_id:
                return node
        return None

    def to_dict(self) -> dict:
        return {
            "type": int(self.type),
            "id": self.id,
            "pos": list(self.pos),
            "rot": list(self.rot),
            "size": list(self.size),
            "color": self.color,
            "text": self.text,
            "textsize": float(self.text_size),
            "textalign": self.text_align,
            "textwrap": bool(self.text_wrap),
            "children": [child.to_dict() for child in self.children],
        }


EMPTY_SCENE = SceneObject()


# ---------------------------------------------------------------------- Lua -> model


def _field(obj: object, name: Any) -> Any:
    if not is_table(obj):
        return None
    return obj[name]


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_string(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if _is_number(value):
        return format(value, ".14g")
    return ""


def _as_number(value: object) -> float:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def _as_bool(value: object) -> bool:
    return value is not None and value is not False


def _as_vec3(value: object, default: Vec3) -> Vec3:
    if value is None:
        return default
    if _is_number(value):
        n = float(value)
        return (n, n, n)
    if is_table(value):
        return (_as_number(value[1]), _as_number(value[2]), _as_number(value[3]))
    return default


def _as_rotation(value: object) -> Quat:
    if not is_table(value):
        return IDENTITY
    if value["axis"] is not None:
        axis = _as_vec3(value["axis"], (1.0, 0.0, 0.0))
        return quat_from_axis_angle(axis, _as_number(value["angle"]))
    if value["from"] is not None:
        source = _as_vec3(value["from"], (1.0, 0.0, 0.0))
        target = _as_vec3(value["to"], (1.0, 0.0, 0.0))
        return quat_from_to(source, target)
    return IDENTITY


def _children(obj: object) -> List[SceneObject]:
    children: List[SceneObject] = []
    if not is_table(obj):
        return children
    index = 1
    while True:
        raw = obj[index]
        if raw is None:
            break
        if not is_table(raw):
            LOG.warning("Dropping non-table child %d of type %s", index, type(raw).__name__)
            index += 1
            continue
        child = render_object(raw)
        if child is not None:
            children.append(child)
        index += 1
    return children


def render_object(obj: object) -> Optional[SceneObject]:
    """
    Build a :class:`SceneObject` from a Lua table.

    Returns ``None`` when the node's ``type`` is not recognised.
    """

    type_name = _as_string(_field(obj, "type"))
    object_type = OBJECT_TYPES.get(type_name)
    if object_type is None:
        LOG.warning("Unrecognized object type %r; dropping node and its children", type_name)
        return None

    text_size = _as_number(_field(obj, "textsize"))
    if text_size == 0:
        text_size = DEFAULT_TEXT_SIZE

    return SceneObject(
        type=object_type,
        id=_as_string(_field(obj, "id")),
        pos=_as_vec3(_field(obj, "pos"), ZERO),
        rot=_as_rotation(_field(obj, "rot")),
        size=_as_vec3(_field(obj, "size"), ONE),
        color=_as_string(_field(obj, "color")),
        text=_as_string(_field(obj, "text")),
        text_size=text_size,
        text_align=_as_string(_field(obj, "textalign")),
        text_wrap=_as_bool(_field(obj, "textwrap")),
        children=tuple(_children(obj)),
    )


__all__ = [
    "DEFAULT_TEXT_SIZE",
    "EMPTY_SCENE",
    "IDENTITY",
    "OBJECT_TYPES",
    "ObjectType",
    "Quat",
    "SceneObject",
    "Vec3",
    "quat_from_axis_angle",
    "quat_from_to",
    "render_object",
]
