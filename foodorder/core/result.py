"""
Result Envelope

Every repository function returns a ``Result`` instead of raising. Its
``to_dict()`` form is the wire contract shared with every caller:

    {"success": bool, "data"?: ..., "error"?: str, "errorCode"?: str,
     "retryable"?: bool, "errors"?: {field: message}}
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from foodorder.core.errors import ClassifiedError, ErrorCode, classify, make_error

T = TypeVar("T")


def _serialize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json")
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


@dataclass
class Result(Generic[T]):
    """
    Uniform success/failure envelope.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success (model, list of models, dict or None)
        error: User-facing message on failure
        error_code: Taxonomy code on failure
        retryable: Whether retrying the same call may succeed
        errors: Field -> message mapping for validation failures
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    retryable: Optional[bool] = None
    errors: Optional[dict[str, str]] = None

    @classmethod
    def ok(cls, data: Optional[T] = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: ErrorCode,
        retryable: Optional[bool] = None,
        errors: Optional[dict[str, str]] = None,
    ) -> "Result[T]":
        """Build a failure; ``retryable`` defaults to the taxonomy's flag."""
        if retryable is None:
            retryable = make_error(error_code).retryable
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            retryable=retryable,
            errors=errors,
        )

    @classmethod
    def from_error(
        cls,
        error: object,
        message: Optional[str] = None,
    ) -> "Result[T]":
        """Classify an exception (or ClassifiedError) into a failed Result."""
        classified: ClassifiedError = classify(error)
        return cls(
            success=False,
            error=message or classified.message,
            error_code=classified.code,
            retryable=classified.retryable,
        )

    @classmethod
    def validation_error(cls, errors: dict[str, str], message: str = "Validation failed") -> "Result[T]":
        return cls.fail(message, ErrorCode.VALIDATION_ERROR, retryable=False, errors=errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire envelope, omitting empty keys."""
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = _serialize(self.data)
        if self.error is not None:
            payload["error"] = self.error
        if self.error_code is not None:
            payload["errorCode"] = self.error_code.value
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        if self.errors:
            payload["errors"] = dict(self.errors)
        return payload
