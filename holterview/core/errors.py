"""Error taxonomy for windowed ECG retrieval."""
from __future__ import annotations

import enum

import requests

__all__ = [
    "ErrorKind",
    "LoaderError",
    "InvalidParametersError",
    "NetworkError",
    "RequestTimeoutError",
    "AuthError",
    "NotFoundError",
    "ServerError",
    "RateLimitError",
    "RequestSuperseded",
    "classify_exception",
    "error_from_status",
    "error_from_code",
]


class ErrorKind(str, enum.Enum):
    INVALID_PARAMETERS = "invalid_parameters"
    NETWORK = "network"
    TIMEOUT = "timeout"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    SERVER = "server"
    RATE_LIMIT = "rate_limit"


class LoaderError(Exception):
    """Base class for user-visible retrieval failures."""

    kind: ErrorKind = ErrorKind.SERVER
    default_message = "Unknown error fetching ECG data."
    retryable = True

    def __init__(self, message: str | None = None, *, status: int | None = None, detail: str | None = None):
        self.user_message = message or self.default_message
        self.status = status
        self.detail = detail
        super().__init__(self.user_message)


class InvalidParametersError(LoaderError):
    kind = ErrorKind.INVALID_PARAMETERS
    default_message = "Invalid request parameters."
    retryable = False


class NetworkError(LoaderError):
    kind = ErrorKind.NETWORK
    default_message = "Network error. Check your connection and try again."


class RequestTimeoutError(LoaderError):
    kind = ErrorKind.TIMEOUT
    default_message = "Query timed out. Reduce the time range or increase downsampling."


class AuthError(LoaderError):
    kind = ErrorKind.AUTH
    default_message = "Authentication required. Please log in."
    retryable = False


class NotFoundError(LoaderError):
    kind = ErrorKind.NOT_FOUND
    default_message = "No ECG data found for the specified parameters."


class ServerError(LoaderError):
    kind = ErrorKind.SERVER
    default_message = "Server error processing ECG data. Try again later."


class RateLimitError(LoaderError):
    kind = ErrorKind.RATE_LIMIT
    default_message = "ECG query rate limit exceeded. Try again later."


class RequestSuperseded(Exception):
    """A newer request for the same view replaced this one. Not a user-visible error."""

    def __init__(self, view: str, generation: int):
        self.view = view
        self.generation = generation
        super().__init__(f"request {generation} for view {view!r} superseded")


def error_from_status(status: int, detail: str | None = None) -> LoaderError:
    if status == 401:
        return AuthError(status=status, detail=detail)
    if status == 403:
        return AuthError("You don't have permission to access this ECG data.", status=status, detail=detail)
    if status == 404:
        return NotFoundError(status=status, detail=detail)
    if status in (408, 504):
        return RequestTimeoutError(status=status, detail=detail)
    if status == 429:
        return RateLimitError(status=status, detail=detail)
    if status >= 500:
        return ServerError(status=status, detail=detail)
    if status == 400 or status == 422:
        return InvalidParametersError(detail or InvalidParametersError.default_message, status=status, detail=detail)
    return ServerError(f"ECG data error ({status}): {detail or 'unknown'}", status=status, detail=detail)


_CODE_MAP = {
    "FUNCTION_TIMEOUT": RequestTimeoutError,
    "FUNCTION_NOT_FOUND": NotFoundError,
    "FUNCTION_RATE_LIMIT": RateLimitError,
}


def error_from_code(code: str, message: str | None = None) -> LoaderError:
    code = (code or "").upper()
    if code == "FUNCTION_NOT_FOUND":
        return NotFoundError("The ECG query function is not deployed. Contact administrator.", detail=message)
    if code == "FUNCTION_EXECUTION_ERROR":
        return ServerError(f"Edge function error: {message or 'unknown execution error'}", detail=message)
    cls = _CODE_MAP.get(code)
    if cls is not None:
        return cls(detail=message)
    return ServerError(message or f"Edge function error ({code})", detail=message)


def classify_exception(exc: BaseException) -> LoaderError:
    """Map transport/decoding exceptions onto the loader error taxonomy."""
    if isinstance(exc, LoaderError):
        return exc
    if isinstance(exc, requests.Timeout):
        return RequestTimeoutError(detail=str(exc))
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        status = response.status_code if response is not None else 500
        return error_from_status(status, detail=str(exc))
    if isinstance(exc, requests.ConnectionError):
        return NetworkError(detail=str(exc))
    if isinstance(exc, requests.RequestException):
        return NetworkError(detail=str(exc))
    if isinstance(exc, TimeoutError):
        return RequestTimeoutError(detail=str(exc))
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return ServerError("Invalid response format from ECG service.", detail=str(exc))
    text = str(exc).lower()
    if "timeout" in text or "timed out" in text:
        return RequestTimeoutError(detail=str(exc))
    if "network" in text:
        return NetworkError(detail=str(exc))
    return ServerError(str(exc) or None, detail=str(exc))
