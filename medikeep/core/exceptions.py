"""
Application Exception Handling

Single AppException class for protocol-level errors with FastAPI integration.
Expected payload variance (bad, foreign or expired QR codes) is reported through
decode results, not through exceptions.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AppException(Exception):
    """
    Unified application exception for HTTP and WebSocket errors.

    Usage:
        raise AppException("Unknown message type", "UNKNOWN_MESSAGE", 400)

    Error Codes:
        WebSocket protocol:
            - INVALID_MESSAGE (400)
            - UNKNOWN_MESSAGE (400)

        General:
            - INTERNAL_ERROR (500)
    """

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code (e.g., "UNKNOWN_MESSAGE")
            status_code: HTTP status code (default: 400)
            details: Additional error context (optional)
        """
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        error_dict = {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp
            }
        }

        if self.details:
            error_dict["error"]["details"] = self.details

        return error_dict


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Convert AppException to a consistent JSON error response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(AppException, app_exception_handler)


# ============================================
# CONVENIENCE FACTORY FUNCTIONS
# ============================================

def invalid_message(reason: str) -> AppException:
    """Create malformed WebSocket message exception."""
    return AppException(
        f"Invalid message: {reason}",
        "INVALID_MESSAGE",
        400,
        {"reason": reason}
    )


def unknown_message(message_type: Optional[str]) -> AppException:
    """Create unknown WebSocket message type exception."""
    return AppException(
        f"Unknown message type: {message_type}",
        "UNKNOWN_MESSAGE",
        400,
        {"message_type": message_type}
    )


def internal_error(message: str = "Internal server error") -> AppException:
    """Create internal server error exception."""
    return AppException(message, "INTERNAL_ERROR", 500)
