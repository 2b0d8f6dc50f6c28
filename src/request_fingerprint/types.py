"""
Type definitions for request_fingerprint
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


DEFAULT_EXCLUDED_HEADERS = frozenset({"authorization", "x-request-id", "x-timestamp"})


@dataclass
class FingerprintConfig:
    """Controls which parts of a request contribute to its fingerprint."""

    include_method: bool = True
    """Include the upper-cased HTTP method. Default: True"""

    include_url: bool = True
    """Include the request URL. Default: True"""

    include_params: bool = True
    """Include query parameters (sorted by name). Default: True"""

    include_body: bool = False
    """Include the request body. Excluding it can make distinct requests collide."""

    include_headers: bool = False
    """Include all headers except those in excluded_headers. Default: False"""

    specific_headers: list[str] = field(default_factory=list)
    """Headers always included by name (case-insensitive)"""

    excluded_headers: frozenset[str] = DEFAULT_EXCLUDED_HEADERS
    """Per-request volatile headers skipped when include_headers is set"""

    hash_keys: bool = False
    """Replace the composite key with its SHA-256 hex digest"""

    custom_generator: Optional[Callable[[Any], str]] = None
    """Custom fingerprint function, used instead of the built-in one"""
