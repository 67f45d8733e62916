"""
Pydantic schemas mirroring the WebSocket/REST contract.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

NO_TAG = -1


class ClientMessageType(IntEnum):
    TAP = 1
    HOVER = 2
    INSTANTIATE = 3


class ServerMessageType(IntEnum):
    SCENE = 1
    INSTANCES = 2


class InstantiateRequest(BaseModel):
    program: str
    data: bytes = b""
    tag: int = NO_TAG

    @field_validator("program", mode="before")
    @classmethod
    def _normalise_program(cls, value: object) -> str:
        result = str(value or "").strip()
        if not result:
            raise ValueError("program is required")
        return result


class ClientMessage(BaseModel):
    type: ClientMessageType
    instance: int = 0
    entity_id: str = Field(
        default="",
        validation_alias=AliasChoices("entityid", "entityId", "entity_id"),
    )
    instantiate_request: Optional[InstantiateRequest] = Field(
        default=None,
        validation_alias=AliasChoices(
            "instantiaterequest", "instantiateRequest", "instantiate_request"
        ),
    )

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("entity_id", mode="before")
    @classmethod
    def _coerce_entity_id(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value)


class InstanceUpdate(BaseModel):
    instance: int
    program: str
    data: bytes
    tag: Optional[int] = None


class SceneUpdate(BaseModel):
    instance: int
    object: Dict[str, Any]


class ServerMessage(BaseModel):
    type: ServerMessageType
    instances: Optional[List[InstanceUpdate]] = None
    scene: Optional[SceneUpdate] = None

    model_config = ConfigDict(use_enum_values=True)


class BindRequest(BaseModel):
    tag: int
    instance: int

    @field_validator("instance")
    @classmethod
    def _validate_instance(cls, value: int) -> int:
        if value < 0:
            raise ValueError("instance must be non-negative")
        return value


class InstanceModel(BaseModel):
    instance: int
    program: str
    tag: Optional[int] = None
    lifecycle: str
    state: Any = None
    scene: Optional[Dict[str, Any]] = None


class StateModel(BaseModel):
    programs: List[str] = Field(default_factory=list)
    bindings: Dict[int, int] = Field(default_factory=dict)
    instances: List[InstanceModel] = Field(default_factory=list)
