import msgpack
import pytest

from arhost.api import schemas
from arhost.api.codec import (
    decode_client_message,
    decode_server_message,
    decode_value,
    encode_client_message,
    encode_server_message,
    encode_value,
    roster_message,
    scene_message,
)
from arhost.errors import CodecError
from arhost.registry import RosterEntry
from arhost.scene import EMPTY_SCENE
from arhost.value import EMPTY_TABLE, Value


def _pack(payload: object) -> bytes:
    return msgpack.packb(payload, use_bin_type=True)


@pytest.mark.parametrize(
    "frame",
    [
        b"\x81\xa4typ",
        b"\xc1",
        _pack([1, 2, 3]),
        _pack({"type": 9}),
        _pack({"type": "tap"}),
        _pack({"type": 3, "instantiaterequest": {"program": ""}}),
    ],
)
def test_malformed_frames_raise_codec_error(frame: bytes) -> None:
    with pytest.raises(CodecError):
        decode_client_message(frame)


def test_decode_tap() -> None:
    message = decode_client_message(_pack({"type": 1, "instance": 2, "entityid": "button"}))

    assert message.type is schemas.ClientMessageType.TAP
    assert message.instance == 2
    assert message.entity_id == "button"
    assert message.instantiate_request is None


def test_decode_instantiate_defaults() -> None:
    message = decode_client_message(
        _pack({"type": 3, "instantiaterequest": {"program": "counter"}})
    )

    request = message.instantiate_request
    assert request is not None
    assert request.program == "counter"
    assert request.data == b""
    assert request.tag == schemas.NO_TAG


def test_client_message_encoding_uses_wire_keys() -> None:
    message = schemas.ClientMessage(
        type=schemas.ClientMessageType.INSTANTIATE,
        instantiate_request=schemas.InstantiateRequest(program="counter", tag=4),
    )

    payload = msgpack.unpackb(encode_client_message(message), raw=False)

    assert payload["type"] == 3
    assert payload["entityid"] == ""
    assert payload["instantiaterequest"]["program"] == "counter"
    assert payload["instantiaterequest"]["tag"] == 4
    assert decode_client_message(encode_client_message(message)) == message


def test_value_wire_format() -> None:
    value = Value.from_python({"count": 3, "name": "x"})

    payload = msgpack.unpackb(encode_value(value), raw=False)

    assert payload["type"] == 1
    assert [entry["stringkey"] for entry in payload["tablevalue"]] == ["count", "name"]
    assert payload["tablevalue"][0]["value"]["numbervalue"] == 3.0
    assert decode_value(encode_value(value)) == value


@pytest.mark.parametrize("frame", [_pack([1]), _pack({"type": 42}), b"\xc1"])
def test_decode_value_rejects_garbage(frame: bytes) -> None:
    with pytest.raises(CodecError):
        decode_value(frame)


def test_roster_omits_missing_tag() -> None:
    roster = [
        RosterEntry(instance_id=0, program="counter", tag=None, state=EMPTY_TABLE),
        RosterEntry(instance_id=1, program="counter", tag=5, state=EMPTY_TABLE),
    ]

    payload = msgpack.unpackb(encode_server_message(roster_message(roster)), raw=False)

    assert payload["type"] == 2
    assert "scene" not in payload
    assert "tag" not in payload["instances"][0]
    assert payload["instances"][1]["tag"] == 5
    assert decode_value(payload["instances"][1]["data"]) == EMPTY_TABLE


def test_scene_message_round_trip() -> None:
    frame = encode_server_message(scene_message(4, EMPTY_SCENE))

    message = decode_server_message(frame)

    assert message.type == schemas.ServerMessageType.SCENE
    assert message.instances is None
    assert message.scene.instance == 4
    assert message.scene.object == EMPTY_SCENE.to_dict()
