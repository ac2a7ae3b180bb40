# FILE: attempt_engine/errors.py
"""
Engine error kinds and the uniform operation result
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for errors the engine reports to its caller"""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(EngineError):
    """No active session"""

    code = "authentication_error"


class AuthorizationError(EngineError):
    """Caller is not a member of the owning group"""

    code = "authorization_error"


class NotFoundError(EngineError):
    """Activity or attempt missing, or not owned by the caller"""

    code = "not_found"


class StateError(EngineError):
    """Attempt lifecycle violation (completed, max attempts, timers)"""

    code = "state_error"


class ValidationError(EngineError):
    """Malformed input or mode settings"""

    code = "validation_error"


OPERATION_FAILED = "operation_failed"


@dataclass(frozen=True)
class OperationResult:
    """Success/error envelope returned by every engine operation"""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, error_code: str) -> "OperationResult":
        return cls(success=False, error=error, error_code=error_code)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"status": "success", "data": self.data}
        return {"status": "error", "code": self.error_code, "message": self.error}
