from __future__ import annotations

from chat_sync.domain.value_objects.ids import ABNORMAL_CLOSURE


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ForbiddenError(AppError):
    pass


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class AuthenticationError(AppError):
    pass


class RemoteServiceError(AppError):
    """REST collaborator failed or answered with ``success: false``."""

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(detail)


class FrameDecodeError(AppError):
    pass


class InvalidTransitionError(AppError):
    pass


class TransportError(AppError):
    """Event-stream transport failure. Never escapes the connection manager."""


class TransportClosedError(TransportError):
    def __init__(self, code: int = ABNORMAL_CLOSURE, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(f"closed with code {code}: {reason}" if reason else f"closed with code {code}")
