"""
Cache-Control header parsing and cacheability helpers.
"""
import time
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Mapping, Optional

from .types import CacheControlDirectives


def _parse_seconds(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value.strip('"'))
    except ValueError:
        return None


def parse_cache_control(header: Optional[str]) -> CacheControlDirectives:
    """Parse Cache-Control header into directives."""
    directives = CacheControlDirectives()

    if not header:
        return directives

    for part in header.split(","):
        part = part.strip().lower()
        if not part:
            continue
        if "=" in part:
            key, value = part.split("=", 1)
            key = key.strip()
            value = value.strip()
        else:
            key, value = part, None

        if key == "no-store":
            directives.no_store = True
        elif key == "no-cache":
            directives.no_cache = True
        elif key == "max-age":
            directives.max_age = _parse_seconds(value)
        elif key == "s-maxage":
            directives.s_maxage = _parse_seconds(value)
        elif key == "private":
            directives.private = True
        elif key == "public":
            directives.public = True
        elif key == "must-revalidate":
            directives.must_revalidate = True
        elif key == "immutable":
            directives.immutable = True

    return directives


def normalize_headers(headers: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """Lower-case header names."""
    if not headers:
        return {}
    return {str(k).lower(): str(v) for k, v in headers.items()}


def get_header_value(headers: Optional[Mapping[str, Any]], name: str) -> Optional[str]:
    """Get a header value by case-insensitive name."""
    if not headers:
        return None
    name = name.lower()
    for key, value in headers.items():
        if str(key).lower() == name:
            return str(value)
    return None


def parse_date_header(header: Optional[str]) -> Optional[float]:
    """Parse an HTTP date to a timestamp."""
    if not header:
        return None
    try:
        return parsedate_to_datetime(header).timestamp()
    except (TypeError, ValueError):
        return None


def is_no_store(headers: Optional[Mapping[str, Any]]) -> bool:
    """Whether the response forbids storing: no-store, no-cache or Pragma: no-cache."""
    directives = parse_cache_control(get_header_value(headers, "cache-control"))
    if directives.no_store or directives.no_cache:
        return True
    pragma = get_header_value(headers, "pragma")
    return bool(pragma and "no-cache" in pragma.lower())


def response_ttl_seconds(
    headers: Optional[Mapping[str, Any]],
    now: Optional[float] = None,
) -> Optional[float]:
    """
    TTL derived from the response: s-maxage, then max-age, then Expires.

    Returns None when the response says nothing about freshness.
    """
    directives = parse_cache_control(get_header_value(headers, "cache-control"))

    if directives.s_maxage is not None:
        return float(directives.s_maxage)

    if directives.max_age is not None:
        return float(directives.max_age)

    expires = parse_date_header(get_header_value(headers, "expires"))
    if expires is not None:
        now = now if now is not None else time.time()
        return max(0.0, expires - now)

    return None


def is_success_status(status: int, upper_bound: int = 300) -> bool:
    """Check whether a status is in [200, upper_bound)."""
    return 200 <= status < upper_bound


def is_cacheable_method(method: str, cacheable_methods: Optional[Iterable[str]] = None) -> bool:
    """Check if request method is cacheable."""
    if cacheable_methods is None:
        cacheable_methods = ["GET"]
    return method.upper() in {m.upper() for m in cacheable_methods}
