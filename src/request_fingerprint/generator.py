"""
Deterministic request fingerprints.

A fingerprint is a pure function of the cache-relevant fields of a request.
Mapping keys and URL query parameters are sorted so that two semantically
identical requests produce the same string regardless of insertion order.
"""
import hashlib
import io
import json
from collections.abc import AsyncIterable, Iterator, Mapping
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode

from .types import FingerprintConfig


def _marker(value: Any) -> Optional[str]:
    """Return a structural marker for payloads that cannot be serialized."""
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}>"
    if isinstance(value, memoryview):
        return f"<bytes:{value.nbytes}>"
    if isinstance(value, io.IOBase) or hasattr(value, "read"):
        return "[File]"
    if isinstance(value, (AsyncIterable, Iterator)):
        return "<stream>"
    return None


def _normalize(value: Any) -> Any:
    """Convert a value into a JSON-safe structure with sorted keys."""
    marker = _marker(value)
    if marker is not None:
        return marker
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=repr)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


def stable_serialize(value: Any) -> str:
    """Serialize a value with sorted keys; never raises for binary or stream payloads."""
    return json.dumps(_normalize(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _serialize_pairs(items: Mapping[str, Any]) -> str:
    return ",".join(f"{key}:{stable_serialize(items[key])}" for key in sorted(items))


def canonical_url(url: str) -> str:
    """Sort the query string of ``url`` by parameter name.

    Repeated names keep their relative order.
    """
    base, sep, query = url.partition("?")
    if not sep:
        return url
    pairs = parse_qsl(query, keep_blank_values=True)
    if not pairs:
        return base
    return f"{base}?{urlencode(sorted(pairs, key=lambda kv: kv[0]))}"


class FingerprintGenerator:
    """
    Builds fingerprints from request descriptors.

    Any object exposing ``method``, ``url``, ``params``, ``headers`` and
    ``body`` attributes is accepted; missing attributes count as empty.

    Example:
        generator = FingerprintGenerator(FingerprintConfig(include_body=True))
        key = generator.generate(descriptor)
    """

    def __init__(self, config: Optional[FingerprintConfig] = None) -> None:
        self._config = config or FingerprintConfig()

    @property
    def config(self) -> FingerprintConfig:
        return self._config

    def generate(self, descriptor: Any) -> str:
        """Generate the fingerprint for a request descriptor."""
        config = self._config
        if config.custom_generator is not None:
            return config.custom_generator(descriptor)

        parts: list[str] = []

        method = getattr(descriptor, "method", None)
        if config.include_method and method:
            parts.append(f"method:{method.upper()}")

        url = getattr(descriptor, "url", None)
        if config.include_url and url:
            parts.append(f"url:{canonical_url(url)}")

        params = getattr(descriptor, "params", None)
        if config.include_params and params:
            parts.append(f"params:{_serialize_pairs(dict(params))}")

        body = getattr(descriptor, "body", None)
        if config.include_body and body is not None:
            parts.append(f"data:{self._serialize_body(body)}")

        headers = getattr(descriptor, "headers", None) or {}
        if config.include_headers and headers:
            kept = {
                k.lower(): v
                for k, v in headers.items()
                if k.lower() not in config.excluded_headers
            }
            if kept:
                parts.append(f"headers:{_serialize_pairs(kept)}")

        if config.specific_headers and headers:
            lowered = {k.lower(): v for k, v in headers.items()}
            selected = {
                name.lower(): lowered[name.lower()]
                for name in config.specific_headers
                if name.lower() in lowered
            }
            if selected:
                parts.append(f"specific-headers:{_serialize_pairs(selected)}")

        key = "|".join(parts)
        if config.hash_keys:
            return hashlib.sha256(key.encode()).hexdigest()
        return key

    def _serialize_body(self, body: Any) -> str:
        if isinstance(body, str):
            return body
        marker = _marker(body)
        if marker is not None:
            return marker
        if isinstance(body, Mapping):
            # Form-like payloads: file values become per-field markers
            return _serialize_pairs(dict(body))
        return stable_serialize(body)


default_generator = FingerprintGenerator()


def create_fingerprint_generator(
    config: Optional[FingerprintConfig] = None,
) -> FingerprintGenerator:
    """Create a fingerprint generator."""
    return FingerprintGenerator(config)


def generate_fingerprint(descriptor: Any, config: Optional[FingerprintConfig] = None) -> str:
    """Generate a fingerprint with the given config, or the default one."""
    if config is None:
        return default_generator.generate(descriptor)
    return FingerprintGenerator(config).generate(descriptor)
