"""Message protocol between the host and the worker.

Inbound (host -> worker):
    {"type": "LOAD_MODEL", "payload": {"modelUrl": "<uri>"}}
    {"type": "PROCESS_INPUT", "payload": {"input": <nested number array>}}

Outbound (worker -> host):
    {"type": "MODEL_LOADED", "success": bool, "error"?: str}
    {"type": "PROCESS_COMPLETE", "success": bool, "result"?: [...], "error"?: str}
    {"type": "ERROR", "error": str}

Requests decode into a tagged union keyed by ``type``. Decoding checks the
payload shape only; the numeric content of ``input`` is validated by the engine.
"""
from __future__ import annotations
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ProtocolError

LOAD_MODEL = "LOAD_MODEL"
PROCESS_INPUT = "PROCESS_INPUT"

MODEL_LOADED = "MODEL_LOADED"
PROCESS_COMPLETE = "PROCESS_COMPLETE"
ERROR = "ERROR"

REQUEST_TYPES = (LOAD_MODEL, PROCESS_INPUT)


class LoadModelPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_url: str = Field(alias="modelUrl", min_length=1)


class ProcessInputPayload(BaseModel):
    input: Any


class LoadModelRequest(BaseModel):
    type: Literal["LOAD_MODEL"] = LOAD_MODEL
    payload: LoadModelPayload


class ProcessInputRequest(BaseModel):
    type: Literal["PROCESS_INPUT"] = PROCESS_INPUT
    payload: ProcessInputPayload


Request = Union[LoadModelRequest, ProcessInputRequest]

_REQUEST_MODELS = {LOAD_MODEL: LoadModelRequest, PROCESS_INPUT: ProcessInputRequest}


class Response(BaseModel):
    type: Literal["MODEL_LOADED", "PROCESS_COMPLETE", "ERROR"]
    success: Optional[bool] = None
    result: Optional[Any] = None
    error: Optional[str] = None

    def to_message(self) -> Dict[str, Any]:
        # ``result`` may legitimately be an empty list; only None is dropped
        return self.model_dump(exclude_none=True)


def _validation_summary(err: ValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()))
        parts.append(f"{loc}: {e.get('msg')}" if loc else str(e.get("msg")))
    return "; ".join(parts)


def decode_request(message: Any) -> Request:
    """Validate a raw inbound message and return its typed request.

    Raises ProtocolError for an unknown ``type`` or a payload that does not
    match the shape the type implies.
    """
    msg_type = message.get("type") if isinstance(message, dict) else None
    model = _REQUEST_MODELS.get(msg_type) if isinstance(msg_type, str) else None
    if model is None:
        raise ProtocolError(f"Unknown message type: {msg_type}")
    payload = message.get("payload")
    if not isinstance(payload, dict):
        raise ProtocolError(f"Invalid payload for {msg_type}: payload must be an object")
    try:
        return model.model_validate({"type": msg_type, "payload": payload})
    except ValidationError as e:
        raise ProtocolError(f"Invalid payload for {msg_type}: {_validation_summary(e)}") from e


def model_loaded(success: bool, error: Optional[str] = None) -> Response:
    return Response(type=MODEL_LOADED, success=success, error=error)


def process_complete(success: bool, result: Any = None, error: Optional[str] = None) -> Response:
    return Response(type=PROCESS_COMPLETE, success=success, result=result if success else None, error=error)


def error_response(error: str) -> Response:
    return Response(type=ERROR, error=error)


__all__ = [
    "LOAD_MODEL",
    "PROCESS_INPUT",
    "MODEL_LOADED",
    "PROCESS_COMPLETE",
    "ERROR",
    "REQUEST_TYPES",
    "LoadModelRequest",
    "ProcessInputRequest",
    "Request",
    "Response",
    "decode_request",
    "model_loaded",
    "process_complete",
    "error_response",
]
