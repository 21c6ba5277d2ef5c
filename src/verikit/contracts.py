"""Public result models for the verikit package."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from verikit.codes import ErrorCode
from verikit.errors import VerikitError


class Failure(BaseModel):
    """A failure surfaced through the public API instead of an exception."""
    code: ErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class Outcome(BaseModel):
    """Tagged result: ok with a value, or not ok with a Failure."""
    ok: bool
    value: Any = None
    failure: Optional[Failure] = None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None) -> "Outcome":
        return cls(ok=False, failure=Failure(code=code, message=message, details=details or {}))

    @classmethod
    def from_error(cls, error: Exception) -> "Outcome":
        if isinstance(error, VerikitError):
            return cls.fail(error.code, error.message, error.details)
        return cls.fail(ErrorCode.UNEXPECTED, str(error))

    def unwrap(self) -> Any:
        """Return the value, or raise ValueError carrying the failure message."""
        if not self.ok:
            raise ValueError(self.failure.message if self.failure else "operation failed")
        return self.value
