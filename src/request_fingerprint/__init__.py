"""
Deterministic fingerprints identifying the dedup and cache identity of a request.
"""
from .types import FingerprintConfig, DEFAULT_EXCLUDED_HEADERS
from .generator import (
    FingerprintGenerator,
    canonical_url,
    create_fingerprint_generator,
    default_generator,
    generate_fingerprint,
    stable_serialize,
)


__all__ = [
    "FingerprintConfig",
    "DEFAULT_EXCLUDED_HEADERS",
    "FingerprintGenerator",
    "canonical_url",
    "create_fingerprint_generator",
    "default_generator",
    "generate_fingerprint",
    "stable_serialize",
]
