"""
Application errors for CageMatch.
"""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Expected, client-facing error carrying an HTTP status and a stable code."""

    is_operational = True

    def __init__(self, message: str, status_code: int, code: Optional[str] = None,
                 details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code or "CLIENT_ERROR"
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details is not None:
            error["details"] = self.details
        return error

    def __repr__(self) -> str:
        return f"AppError({self.status_code}, {self.code!r}, {self.message!r})"


def not_found(message: str, code: str) -> AppError:
    return AppError(message, 404, code)


def not_authorized(message: str) -> AppError:
    return AppError(message, 403, "NOT_AUTHORIZED")


def invalid_status(reason: str, status: str) -> AppError:
    """Action not permitted from the challenge's current status."""
    return AppError(
        f"{reason} - current status: {status}",
        400,
        "INVALID_STATUS",
    )
