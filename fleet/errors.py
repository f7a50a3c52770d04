"""
Fleet error taxonomy.
Every error is per-slot or per-request; none of them should stop the process.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    CAPACITY = "CAPACITY"
    NOT_FOUND = "NOT_FOUND"
    THROTTLED = "THROTTLED"
    SESSION = "SESSION"


class FleetError(Exception):
    """Base exception for fleet errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(FleetError):
    """Bad operator input. Raised before any state is touched."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(
            ErrorCode.VALIDATION,
            message,
            details={"field": field_name} if field_name else None,
        )


class CapacityError(FleetError):
    """Fleet already holds the maximum number of slots."""

    def __init__(self, max_slots: int):
        super().__init__(
            ErrorCode.CAPACITY,
            f"Maximum {max_slots} bots reached",
            details={"maxSlots": max_slots},
        )


class NotFoundError(FleetError):
    """Control or command request referenced an unknown slot."""

    def __init__(self, slot_id: Any):
        super().__init__(
            ErrorCode.NOT_FOUND,
            f"Bot {slot_id} not found",
            details={"botId": slot_id},
        )


class ThrottleError(FleetError):
    """Connection attempt deferred. Internal, the attempt is retried."""

    def __init__(self, slot_id: int, retry_after: float):
        self.retry_after = retry_after
        super().__init__(
            ErrorCode.THROTTLED,
            f"Bot {slot_id} throttled for {retry_after:.1f}s",
            details={"botId": slot_id, "retryAfter": retry_after},
        )


class SessionError(FleetError):
    """Network or session failure on one slot."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.SESSION, message)
