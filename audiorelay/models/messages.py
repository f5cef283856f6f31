"""Wire protocol messages exchanged as JSON text frames.

Client -> relay: ``start`` and ``stop`` control frames.
Relay -> client: ``connection``, ``start``, ``stop``, ``audioChunk`` and
``error`` frames. Binary frames carry raw audio and never go through here.
"""

import time
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..exceptions import ProtocolError


class MessageType(str, Enum):
    """Values of the ``type`` field of control frames."""
    CONNECTION = "connection"
    START = "start"
    STOP = "stop"
    AUDIO_CHUNK = "audioChunk"
    ERROR = "error"


class Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class StartCommand(Message):
    type: Literal["start"] = "start"


class StopCommand(Message):
    type: Literal["stop"] = "stop"


class ConnectionMessage(Message):
    type: Literal["connection"] = "connection"
    user_id: str = Field(alias="userId")
    message: str = "Connection established"


class StartAck(Message):
    type: Literal["start"] = "start"
    status: str = "ok"
    message: str = "Started recording"


class StopAck(Message):
    type: Literal["stop"] = "stop"
    status: str = "ok"
    message: str = "Stopped recording"


class AudioChunkAck(Message):
    type: Literal["audioChunk"] = "audioChunk"
    status: str = "received"
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))


class ErrorMessage(Message):
    type: Literal["error"] = "error"
    message: str


ControlCommand = Annotated[
    Union[StartCommand, StopCommand],
    Field(discriminator="type"),
]

ServerMessage = Annotated[
    Union[ConnectionMessage, StartAck, StopAck, AudioChunkAck, ErrorMessage],
    Field(discriminator="type"),
]

_control_adapter = TypeAdapter(ControlCommand)
_server_adapter = TypeAdapter(ServerMessage)


def _parse(adapter: TypeAdapter, payload: Union[str, bytes], direction: str):
    try:
        return adapter.validate_json(payload)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {direction} frame: {e.errors(include_url=False)}") from e


def parse_control_command(payload: Union[str, bytes]) -> Union[StartCommand, StopCommand]:
    """Parse a client -> relay control frame.

    Raises:
        ProtocolError: payload is not JSON, has no ``type`` or an unknown one
    """
    return _parse(_control_adapter, payload, "control")


def parse_server_message(payload: Union[str, bytes]):
    """Parse a relay -> client frame into one of the server message models.

    Raises:
        ProtocolError: payload is not a recognised server message
    """
    return _parse(_server_adapter, payload, "server")
