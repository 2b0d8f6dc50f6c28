"""
Exception classes for failed request executions.

The core only ever interprets the flags exposed here: whether a response
exists, its status, and whether the failure was a network error, a timeout
or a cancellation.
"""
from typing import Any, Optional


class FetchError(Exception):
    """Base class for every failure surfaced by the execution core."""

    is_network_error = False
    is_timeout = False
    is_cancelled = False

    def __init__(
        self,
        message: str,
        *,
        descriptor: Any = None,
        response: Any = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.descriptor = descriptor
        self.response = response
        if cause is not None:
            self.__cause__ = cause

    @property
    def has_response(self) -> bool:
        return self.response is not None

    @property
    def status(self) -> Optional[int]:
        if self.response is None:
            return None
        return getattr(self.response, "status", None)


class NetworkError(FetchError):
    """The transport failed before any response was received."""

    is_network_error = True


class RequestTimeoutError(FetchError):
    """The request did not settle within its time limit."""

    is_timeout = True


class CancelError(FetchError):
    """The request was cancelled, either while queued or while active."""

    is_cancelled = True

    def __init__(self, message: str = "Request cancelled", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.reason = message


class QueueFullError(FetchError):
    """The scheduler queue reached its capacity."""

    def __init__(self, max_queue_size: int, **kwargs: Any) -> None:
        super().__init__(f"Queue is full (max_queue_size={max_queue_size})", **kwargs)
        self.max_queue_size = max_queue_size


class HttpStatusError(FetchError):
    """A response was received with a non-success status."""

    def __init__(self, response: Any, **kwargs: Any) -> None:
        status = getattr(response, "status", None)
        status_text = getattr(response, "status_text", "") or ""
        super().__init__(
            f"Request failed with status {status} {status_text}".rstrip(),
            response=response,
            **kwargs,
        )


def is_fetch_error(error: BaseException) -> bool:
    """Check whether an exception belongs to the fetch error taxonomy."""
    return isinstance(error, FetchError)
