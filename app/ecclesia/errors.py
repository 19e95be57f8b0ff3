"""
Typed failures for the action layer.

Services raise `ActionError`; routes turn it into the JSON envelope
`{"success": false, "error": {"kind": ..., "message": ...}}` so callers can
branch on `kind` instead of parsing the message.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    DATA_STORE_ERROR = "DATA_STORE_ERROR"


class ActionError(Exception):
    def __init__(self, kind: ErrorKind, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self._status = status

    @property
    def status(self) -> int:
        if self._status is not None:
            return self._status
        return _STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


_STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.VALIDATION_FAILED: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DATA_STORE_ERROR: 500,
}


def unauthorized(message: str = "Not authorized.") -> ActionError:
    return ActionError(ErrorKind.UNAUTHORIZED, message)


def unauthenticated(message: str = "Login required.") -> ActionError:
    return ActionError(ErrorKind.UNAUTHORIZED, message, status=401)


def validation_failed(message: str) -> ActionError:
    return ActionError(ErrorKind.VALIDATION_FAILED, message)


def not_found(message: str) -> ActionError:
    return ActionError(ErrorKind.NOT_FOUND, message)
