"""httpx client for the conversations REST API (the system of record)."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from chat_sync.application.exceptions import (
    AppError,
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    RemoteServiceError,
    ValidationError,
)
from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message
from chat_sync.infrastructure.mappers import conversation as conversation_mapper
from chat_sync.infrastructure.mappers import message as message_mapper

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[AppError]] = {
    400: ValidationError,
    401: AuthenticationError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


class ConversationApiClient:
    """Implements application.ports.api.ConversationApi.

    Every response is a ``{"success": bool, "data": ..., "message": str}``
    envelope; failures are raised as AppError subclasses.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def create(
        cls,
        base_url: str,
        token: str | None,
        *,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ConversationApiClient:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        return cls(http)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def list_conversations(
        self,
        *,
        status: str | None = None,
        page: int = 1,
    ) -> list[ConversationSummary]:
        params: dict[str, Any] = {"page": page}
        if status and status != "all":
            params["status"] = status
        data = await self._request("GET", "conversations", params=params)
        return [conversation_mapper.payload_to_entity(row) for row in data or []]

    async def get_conversation(self, conversation_id: str) -> ConversationSummary:
        data = await self._request("GET", f"conversations/{conversation_id}")
        return conversation_mapper.payload_to_entity(data)

    async def get_messages(self, conversation_id: str) -> list[Message]:
        data = await self._request("GET", f"conversations/{conversation_id}/messages")
        return [
            message_mapper.payload_to_entity(row, conversation_id=conversation_id)
            for row in data or []
        ]

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        *,
        message_type: str = "text",
        extra: dict[str, Any] | None = None,
    ) -> Message:
        body = {"messageType": message_type, "content": content, **(extra or {})}
        data = await self._request("POST", f"conversations/{conversation_id}/messages", json=body)
        if not isinstance(data, dict):
            raise RemoteServiceError("send_message returned no message")
        return message_mapper.payload_to_entity(data, conversation_id=conversation_id)

    async def mark_read(self, conversation_id: str) -> None:
        # The backend marks inbound messages read when history is fetched.
        await self._request("GET", f"conversations/{conversation_id}/messages")

    async def close_conversation(self, conversation_id: str) -> None:
        await self._request("POST", f"conversations/{conversation_id}/close")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise RemoteServiceError(f"{method} {path}: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"success": True, "data": payload}

        if resp.is_error:
            detail = payload.get("message") or resp.reason_phrase
            error_cls = _STATUS_ERRORS.get(resp.status_code)
            if error_cls is not None:
                raise error_cls(detail)
            raise RemoteServiceError(detail, status_code=resp.status_code)

        if payload.get("success") is False:
            raise RemoteServiceError(payload.get("message") or "request failed", status_code=resp.status_code)
        return payload.get("data")
