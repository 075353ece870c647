"""Normalization of interactive message payloads (buttons, lists, flows).

Payloads reach the client either as JSON strings or as already-parsed objects,
and older messages use slightly different spellings. ``decode`` folds all of
them into one typed shape and returns ``None`` for anything it cannot read, in
which case the caller shows the message's plain text content instead.
"""
from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chat_sync.domain.value_objects.enums import InteractiveKind

logger = logging.getLogger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


class ButtonPayload(_Payload):
    type: Literal["button"] = "button"
    data: list[Any] = Field(default_factory=list)
    button_id: str | None = None
    button_text: str | None = None


class ListPayload(_Payload):
    type: Literal["list"] = "list"
    data: list[dict[str, Any]] = Field(default_factory=list)  # sections with rows
    list_item_id: str | None = None
    list_item_title: str | None = None
    list_item_description: str | None = None

    @property
    def has_rows(self) -> bool:
        return any(section.get("rows") for section in self.data)


class FlowPayload(_Payload):
    type: Literal["flow"] = "flow"
    data: dict[str, Any] = Field(default_factory=dict)
    flow_name: str | None = None
    flow_token: str | None = None


InteractivePayload = Annotated[
    Union[ButtonPayload, ListPayload, FlowPayload],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[ButtonPayload | ListPayload | FlowPayload] = TypeAdapter(InteractivePayload)

_TYPE_ALIASES: dict[str, str] = {
    "button": InteractiveKind.BUTTON,
    "buttons": InteractiveKind.BUTTON,
    "button_reply": InteractiveKind.BUTTON,
    "list": InteractiveKind.LIST,
    "list_reply": InteractiveKind.LIST,
    "flow": InteractiveKind.FLOW,
    "nfm_reply": InteractiveKind.FLOW,
}


def _infer_type(obj: dict[str, Any]) -> str | None:
    raw = obj.get("type")
    if isinstance(raw, str) and raw.lower() in _TYPE_ALIASES:
        return _TYPE_ALIASES[raw.lower()]
    if "button_text" in obj or "button_id" in obj:
        return InteractiveKind.BUTTON
    if "list_item_title" in obj or "list_item_id" in obj:
        return InteractiveKind.LIST
    if "flow_response" in obj or "flow_name" in obj:
        return InteractiveKind.FLOW
    return None


def _normalize(obj: dict[str, Any]) -> dict[str, Any] | None:
    kind = _infer_type(obj)
    if kind is None:
        return None
    out = dict(obj)
    out["type"] = InteractiveKind(kind).value
    if kind == InteractiveKind.FLOW:
        data = obj.get("data") or obj.get("flow_response") or {}
        if isinstance(data, str):
            data = json.loads(data)
        out["data"] = data
        out.pop("flow_response", None)
    elif out.get("data") is None:
        out["data"] = []
    elif isinstance(out["data"], dict):
        out["data"] = [out["data"]]
    return out


def decode(raw: Any) -> ButtonPayload | ListPayload | FlowPayload | None:
    """Return the normalized payload, or None when ``raw`` is empty or unreadable."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, (ButtonPayload, ListPayload, FlowPayload)):
        return raw
    try:
        obj = json.loads(raw) if isinstance(raw, (str, bytes, bytearray)) else raw
        if not isinstance(obj, dict):
            return None
        normalized = _normalize(obj)
        if normalized is None:
            return None
        return _adapter.validate_python(normalized)
    except (ValueError, TypeError, RecursionError, PydanticValidationError):
        # json.JSONDecodeError is a ValueError
        logger.debug("Undecodable interactive payload: %.200r", raw)
        return None


def response_label(payload: ButtonPayload | ListPayload | FlowPayload | None) -> str | None:
    """What the contact picked: button text, list row title or flow name."""
    if isinstance(payload, ButtonPayload):
        return payload.button_text
    if isinstance(payload, ListPayload):
        return payload.list_item_title
    if isinstance(payload, FlowPayload):
        return payload.flow_name or "Flow response"
    return None
