"""Typed messages exchanged between a caller and the inference worker.

Commands flow caller -> worker, events flow worker -> caller. Field names on
the wire are camelCase and must stay stable since both sides evolve
independently; Python attributes are snake_case with aliases.
"""
import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from src.models.model_info import InferenceRequest
from src.utils.exceptions import ProtocolError


class _Message(BaseModel):
    model_config = {"populate_by_name": True, "frozen": True}

    def to_message(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        return {key: value for key, value in data.items() if value is not None}


# -- Commands ---------------------------------------------------------------


class LoadCommand(_Message):
    command: Literal["load"] = "load"


class RunCommand(_Message):
    command: Literal["run"] = "run"
    task: str = Field(..., min_length=1)
    image_ref: str = Field(..., alias="imageRef", min_length=1)
    language_hint: Optional[str] = Field(None, alias="languageHint")
    conversation_history: List[str] = Field(
        default_factory=list, alias="conversationHistory"
    )
    text: Optional[str] = None

    @field_validator("conversation_history", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value

    def to_request(self) -> InferenceRequest:
        history = list(self.conversation_history)
        if not history and self.text:
            history = [self.text]
        return InferenceRequest(
            task=self.task,
            image_ref=self.image_ref,
            language_hint=self.language_hint or None,
            conversation_history=tuple(history),
        )


class ResetCommand(_Message):
    command: Literal["reset"] = "reset"


Command = Annotated[
    Union[LoadCommand, RunCommand, ResetCommand],
    Field(discriminator="command"),
]

_command_adapter: TypeAdapter = TypeAdapter(Command)


def parse_command(payload: Any) -> Union[LoadCommand, RunCommand, ResetCommand]:
    if isinstance(payload, (LoadCommand, RunCommand, ResetCommand)):
        return payload
    try:
        if isinstance(payload, (str, bytes)):
            return _command_adapter.validate_json(payload)
        return _command_adapter.validate_python(payload)
    except ValidationError as e:
        raise ProtocolError(str(e.errors()[0].get("msg", e))) from e


# -- Events -----------------------------------------------------------------


class LoadingEvent(_Message):
    event: Literal["loading"] = "loading"
    message: str


class InitiateEvent(_Message):
    event: Literal["initiate"] = "initiate"
    file_id: str = Field(..., alias="fileId")
    total: Optional[int] = None


class ProgressEvent(_Message):
    event: Literal["progress"] = "progress"
    file_id: str = Field(..., alias="fileId")
    loaded: int
    total: Optional[int] = None


class DoneEvent(_Message):
    event: Literal["done"] = "done"
    file_id: str = Field(..., alias="fileId")


class ReadyEvent(_Message):
    event: Literal["ready"] = "ready"


class CompleteEvent(_Message):
    event: Literal["complete"] = "complete"
    result: Any
    elapsed_millis: float = Field(..., alias="elapsedMillis")


class ErrorEvent(_Message):
    event: Literal["error"] = "error"
    message: str


WorkerEvent = Union[
    LoadingEvent,
    InitiateEvent,
    ProgressEvent,
    DoneEvent,
    ReadyEvent,
    CompleteEvent,
    ErrorEvent,
]

EVENT_TYPES: Dict[str, Type[_Message]] = {
    "loading": LoadingEvent,
    "initiate": InitiateEvent,
    "progress": ProgressEvent,
    "done": DoneEvent,
    "ready": ReadyEvent,
    "complete": CompleteEvent,
    "error": ErrorEvent,
}


def parse_event(payload: Any) -> Optional[WorkerEvent]:
    """Decode an event message.

    Returns None for events this version does not know about so newer workers
    can add event types without breaking older callers.
    """
    if isinstance(payload, _Message):
        return payload
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise ProtocolError(f"invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ProtocolError("event must be an object")

    event_cls = EVENT_TYPES.get(payload.get("event"))
    if event_cls is None:
        return None
    try:
        return event_cls.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(str(e.errors()[0].get("msg", e))) from e
