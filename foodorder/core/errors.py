"""
Error Classification

Maps low-level backend failures (document store codes, auth provider codes,
transport exceptions) onto the small closed taxonomy every repository
reports through the result envelope.

Backends raise ``ServiceError`` subclasses carrying a source-specific
``code``; ``classify()`` is the only place those codes are interpreted.

Usage:
    from foodorder.core.errors import classify

    try:
        await store.update("orders", order_id, {...})
    except Exception as e:
        classified = classify(e)
        return Result.fail(classified.message, classified.code, classified.retryable)
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx


class ErrorCode(str, Enum):
    """Machine-readable error codes exposed as ``errorCode``."""
    # Auth
    INVALID_EMAIL = "INVALID_EMAIL"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    WRONG_PASSWORD = "WRONG_PASSWORD"
    USER_DISABLED = "USER_DISABLED"
    EMAIL_IN_USE = "EMAIL_IN_USE"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    AUTH_ERROR = "AUTH_ERROR"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"

    # Transport
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    UNAVAILABLE = "UNAVAILABLE"

    # Data
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    CONFLICT_ERROR = "CONFLICT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Listeners
    SETUP_ERROR = "SETUP_ERROR"
    LISTENER_ERROR = "LISTENER_ERROR"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class ClassifiedError:
    """Classifier output: user-facing message, code and retry hint."""
    message: str
    code: ErrorCode
    retryable: bool


class ServiceError(Exception):
    """
    Structured error raised by backends at the data-layer boundary.

    Attributes:
        code: Source-specific error code (e.g. "not-found", "auth/wrong-password")
        message: Human readable detail
    """

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        self.message = message or code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# TAXONOMY
# =============================================================================

# code -> (default user-facing message, retryable)
TAXONOMY: dict[ErrorCode, tuple[str, bool]] = {
    ErrorCode.INVALID_EMAIL: ("Invalid email address", False),
    ErrorCode.USER_NOT_FOUND: ("No account found with this email", False),
    ErrorCode.WRONG_PASSWORD: ("Incorrect password", False),
    ErrorCode.USER_DISABLED: ("This account has been disabled", False),
    ErrorCode.EMAIL_IN_USE: ("An account already exists with this email", False),
    ErrorCode.WEAK_PASSWORD: ("Password should be at least 6 characters", False),
    ErrorCode.AUTH_ERROR: ("User not authenticated", False),
    ErrorCode.TOO_MANY_REQUESTS: ("Too many attempts. Please wait a moment and try again.", True),
    ErrorCode.NETWORK_ERROR: ("No internet connection. Please check your network and try again.", True),
    ErrorCode.TIMEOUT_ERROR: ("Request timed out. Please try again.", True),
    ErrorCode.CONNECTION_ERROR: ("Connection error. Please try again.", True),
    ErrorCode.UNAVAILABLE: ("Service unavailable. Reconnecting...", True),
    ErrorCode.PERMISSION_DENIED: ("Permission denied. Please contact support.", False),
    ErrorCode.NOT_FOUND: ("The requested item was not found", False),
    ErrorCode.QUOTA_EXCEEDED: ("Service quota exceeded. Please try again later.", False),
    ErrorCode.CONFLICT_ERROR: ("This item was updated by another process. Please refresh.", True),
    ErrorCode.VALIDATION_ERROR: ("Some of the information provided is invalid", False),
    ErrorCode.INVALID_TRANSITION: ("This status change is not allowed", False),
    ErrorCode.SETUP_ERROR: ("Failed to set up live updates", False),
    ErrorCode.LISTENER_ERROR: ("Failed to load live updates", True),
    ErrorCode.UNKNOWN_ERROR: ("An error occurred. Please try again", True),
}

# Raw backend code -> taxonomy code
RAW_CODES: dict[str, ErrorCode] = {
    # Firebase Auth SDK style
    "auth/invalid-email": ErrorCode.INVALID_EMAIL,
    "auth/user-not-found": ErrorCode.USER_NOT_FOUND,
    "auth/wrong-password": ErrorCode.WRONG_PASSWORD,
    "auth/invalid-credential": ErrorCode.WRONG_PASSWORD,
    "auth/user-disabled": ErrorCode.USER_DISABLED,
    "auth/email-already-in-use": ErrorCode.EMAIL_IN_USE,
    "auth/weak-password": ErrorCode.WEAK_PASSWORD,
    "auth/too-many-requests": ErrorCode.TOO_MANY_REQUESTS,
    "auth/network-request-failed": ErrorCode.NETWORK_ERROR,
    "auth/unauthenticated": ErrorCode.AUTH_ERROR,
    # Identity Toolkit REST style
    "INVALID_EMAIL": ErrorCode.INVALID_EMAIL,
    "EMAIL_NOT_FOUND": ErrorCode.USER_NOT_FOUND,
    "INVALID_PASSWORD": ErrorCode.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": ErrorCode.WRONG_PASSWORD,
    "USER_DISABLED": ErrorCode.USER_DISABLED,
    "EMAIL_EXISTS": ErrorCode.EMAIL_IN_USE,
    "WEAK_PASSWORD": ErrorCode.WEAK_PASSWORD,
    "TOO_MANY_ATTEMPTS_TRY_LATER": ErrorCode.TOO_MANY_REQUESTS,
    # Document store
    "not-found": ErrorCode.NOT_FOUND,
    "permission-denied": ErrorCode.PERMISSION_DENIED,
    "unauthenticated": ErrorCode.AUTH_ERROR,
    "aborted": ErrorCode.CONFLICT_ERROR,
    "already-exists": ErrorCode.CONFLICT_ERROR,
    "resource-exhausted": ErrorCode.QUOTA_EXCEEDED,
    "invalid-argument": ErrorCode.VALIDATION_ERROR,
    "failed-precondition": ErrorCode.VALIDATION_ERROR,
    "unavailable": ErrorCode.NETWORK_ERROR,
    "deadline-exceeded": ErrorCode.TIMEOUT_ERROR,
}


def make_error(code: ErrorCode, message: Optional[str] = None) -> ClassifiedError:
    """Build a ClassifiedError with the taxonomy's retry flag."""
    default_message, retryable = TAXONOMY[code]
    return ClassifiedError(message=message or default_message, code=code, retryable=retryable)


def _classify_network_message(message: str) -> Optional[ErrorCode]:
    lowered = message.lower()
    if "network" in lowered:
        return ErrorCode.NETWORK_ERROR
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCode.TIMEOUT_ERROR
    if "connection" in lowered:
        return ErrorCode.CONNECTION_ERROR
    return None


def classify(error: object) -> ClassifiedError:
    """
    Classify a raw error into the closed taxonomy.

    Pure function: no logging, no I/O.

    Args:
        error: A ServiceError, a builtin/httpx exception, or any object
            exposing ``code``/``message``

    Returns:
        ClassifiedError with a user-facing message, code and retry hint
    """
    if isinstance(error, ClassifiedError):
        return error

    # Builtin and httpx transport failures first: their types are unambiguous
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return make_error(ErrorCode.TIMEOUT_ERROR)
    if isinstance(error, ConnectionError) or isinstance(error, httpx.ConnectError):
        return make_error(ErrorCode.CONNECTION_ERROR)
    if isinstance(error, httpx.TransportError):
        return make_error(ErrorCode.NETWORK_ERROR)

    raw_code = getattr(error, "code", None)
    if isinstance(raw_code, ErrorCode):
        message = getattr(error, "message", None)
        return make_error(raw_code, message if message != raw_code else None)
    if isinstance(raw_code, str) and raw_code in RAW_CODES:
        return make_error(RAW_CODES[raw_code])

    message = getattr(error, "message", None) or str(error or "")
    network_code = _classify_network_message(message)
    if network_code is not None:
        return make_error(network_code)

    return make_error(ErrorCode.UNKNOWN_ERROR)
