"""
MessagePack framing for client and server messages.
"""

from __future__ import annotations

from typing import Iterable

import msgpack
from pydantic import ValidationError

from ..errors import CodecError, HostError
from ..registry import RosterEntry
from ..scene import SceneObject
from ..value import Value
from .schemas import ClientMessage, InstanceUpdate, SceneUpdate, ServerMessage, ServerMessageType

_UNPACK_ERRORS = (ValueError, TypeError, msgpack.exceptions.UnpackException)


def _unpack(frame: bytes) -> object:
    try:
        return msgpack.unpackb(frame, raw=False)
    except _UNPACK_ERRORS as exc:
        raise CodecError(f"bad MessagePack data: {exc}") from exc


def encode_value(value: Value) -> bytes:
    return msgpack.packb(value.to_dict(), use_bin_type=True)


def decode_value(frame: bytes) -> Value:
    payload = _unpack(frame)
    if not isinstance(payload, dict):
        raise CodecError("serialised value must be a map")
    try:
        return Value.from_dict(payload)
    except HostError as exc:
        raise CodecError(f"bad serialised value: {exc}") from exc


def decode_client_message(frame: bytes) -> ClientMessage:
    payload = _unpack(frame)
    if not isinstance(payload, dict):
        raise CodecError("client message must be a map")
    try:
        return ClientMessage.model_validate(payload)
    except ValidationError as exc:
        raise CodecError(f"invalid client message: {exc.error_count()} error(s)") from exc


def encode_client_message(message: ClientMessage) -> bytes:
    payload = message.model_dump(mode="python", exclude_none=True)
    payload["type"] = int(message.type)
    payload["entityid"] = payload.pop("entity_id", "")
    request = payload.pop("instantiate_request", None)
    if request is not None:
        payload["instantiaterequest"] = request
    return msgpack.packb(payload, use_bin_type=True)


def encode_server_message(message: ServerMessage) -> bytes:
    return msgpack.packb(message.model_dump(mode="python", exclude_none=True), use_bin_type=True)


def decode_server_message(frame: bytes) -> ServerMessage:
    payload = _unpack(frame)
    try:
        return ServerMessage.model_validate(payload)
    except ValidationError as exc:
        raise CodecError(f"invalid server message: {exc.error_count()} error(s)") from exc


def roster_message(roster: Iterable[RosterEntry]) -> ServerMessage:
    return ServerMessage(
        type=ServerMessageType.INSTANCES,
        instances=[
            InstanceUpdate(
                instance=entry.instance_id,
                program=entry.program,
                data=encode_value(entry.state),
                tag=entry.tag,
            )
            for entry in roster
        ],
    )


def scene_message(instance_id: int, scene: SceneObject) -> ServerMessage:
    return ServerMessage(
        type=ServerMessageType.SCENE,
        scene=SceneUpdate(instance=instance_id, object=scene.to_dict()),
    )


__all__ = [
    "decode_client_message",
    "decode_server_message",
    "decode_value",
    "encode_client_message",
    "encode_server_message",
    "encode_value",
    "roster_message",
    "scene_message",
]
