"""
Error taxonomy shared by the request execution core.
"""
from .errors import (
    FetchError,
    NetworkError,
    RequestTimeoutError,
    CancelError,
    QueueFullError,
    HttpStatusError,
    is_fetch_error,
)


__all__ = [
    "FetchError",
    "NetworkError",
    "RequestTimeoutError",
    "CancelError",
    "QueueFullError",
    "HttpStatusError",
    "is_fetch_error",
]
