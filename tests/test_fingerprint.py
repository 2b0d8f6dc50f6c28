"""
Tests for request fingerprints.

Coverage includes:
- Determinism under key and query-string reordering
- Optional parts (params, body, headers)
- Binary, file and stream payload markers
- Hashing and custom generators
"""
import hashlib
import io

import pytest

from fetch_executor import RequestDescriptor
from request_fingerprint import (
    FingerprintConfig,
    FingerprintGenerator,
    canonical_url,
    create_fingerprint_generator,
    generate_fingerprint,
    stable_serialize,
)


class TestStableSerialize:
    """Tests for stable_serialize."""

    def test_sorts_keys_at_every_level(self) -> None:
        a = {"b": 1, "a": {"y": 2, "x": [3, {"d": 4, "c": 5}]}}
        b = {"a": {"x": [3, {"c": 5, "d": 4}], "y": 2}, "b": 1}

        assert stable_serialize(a) == stable_serialize(b)

    def test_binary_marker(self) -> None:
        assert stable_serialize(b"abc") == '"<bytes:3>"'

    def test_never_raises_for_unknown_objects(self) -> None:
        class Opaque:
            pass

        assert isinstance(stable_serialize({"value": Opaque()}), str)


class TestCanonicalUrl:
    """Tests for canonical_url."""

    def test_sorts_by_name(self) -> None:
        assert canonical_url("https://x/items?b=2&a=1") == "https://x/items?a=1&b=2"

    def test_repeated_names_keep_their_order(self) -> None:
        assert canonical_url("/i?tag=z&id=1&tag=a") == "/i?id=1&tag=z&tag=a"

    def test_without_query(self) -> None:
        assert canonical_url("/i") == "/i"
        assert canonical_url("/i?") == "/i"


class TestFingerprintGenerator:
    """Tests for FingerprintGenerator."""

    @pytest.fixture
    def generator(self) -> FingerprintGenerator:
        return FingerprintGenerator()

    def test_default_parts(self, generator: FingerprintGenerator) -> None:
        descriptor = RequestDescriptor(url="/users", method="get", params={"page": 2})

        assert generator.generate(descriptor) == 'method:GET|url:/users|params:page:2'

    def test_param_order_does_not_matter(self, generator: FingerprintGenerator) -> None:
        a = RequestDescriptor(url="/search", params={"q": "x", "limit": 10})
        b = RequestDescriptor(url="/search", params={"limit": 10, "q": "x"})

        assert generator.generate(a) == generator.generate(b)

    def test_query_string_order_does_not_matter(self, generator: FingerprintGenerator) -> None:
        a = RequestDescriptor(url="/i?a=1&b=2")
        b = RequestDescriptor(url="/i?b=2&a=1")

        assert generator.generate(a) == generator.generate(b)
        assert generator.generate(a) == "method:GET|url:/i?a=1&b=2"

    def test_different_query_strings_differ(self, generator: FingerprintGenerator) -> None:
        a = RequestDescriptor(url="/i?a=1")
        b = RequestDescriptor(url="/i?a=2")

        assert generator.generate(a) != generator.generate(b)

    def test_different_params_differ(self, generator: FingerprintGenerator) -> None:
        a = RequestDescriptor(url="/search", params={"q": "x"})
        b = RequestDescriptor(url="/search", params={"q": "y"})

        assert generator.generate(a) != generator.generate(b)

    def test_body_excluded_by_default(self, generator: FingerprintGenerator) -> None:
        a = RequestDescriptor(url="/items", method="POST", body={"a": 1})
        b = RequestDescriptor(url="/items", method="POST", body={"a": 2})

        assert generator.generate(a) == generator.generate(b)

    def test_body_included(self) -> None:
        generator = FingerprintGenerator(FingerprintConfig(include_body=True))
        a = RequestDescriptor(url="/items", method="POST", body={"a": 1, "b": 2})
        b = RequestDescriptor(url="/items", method="POST", body={"b": 2, "a": 1})
        c = RequestDescriptor(url="/items", method="POST", body={"a": 2})

        assert generator.generate(a) == generator.generate(b)
        assert generator.generate(a) != generator.generate(c)
        assert "data:" in generator.generate(a)

    def test_body_markers(self) -> None:
        generator = FingerprintGenerator(FingerprintConfig(include_body=True))

        binary = generator.generate(RequestDescriptor(url="/u", method="PUT", body=b"12345"))
        upload = generator.generate(
            RequestDescriptor(url="/u", method="POST", body={"file": io.BytesIO(b"x")})
        )
        stream = generator.generate(
            RequestDescriptor(url="/u", method="POST", body=iter([b"a", b"b"]))
        )

        assert binary.endswith("data:<bytes:5>")
        assert "[File]" in upload
        assert stream.endswith("data:<stream>")

    def test_headers_skip_excluded(self) -> None:
        generator = FingerprintGenerator(FingerprintConfig(include_headers=True))
        a = RequestDescriptor(
            url="/me", headers={"Accept": "application/json", "Authorization": "Bearer a"}
        )
        b = RequestDescriptor(
            url="/me", headers={"accept": "application/json", "X-Request-Id": "42"}
        )

        assert generator.generate(a) == generator.generate(b)
        assert "headers:accept" in generator.generate(a)

    def test_specific_headers(self) -> None:
        generator = FingerprintGenerator(FingerprintConfig(specific_headers=["Accept-Language"]))
        en = RequestDescriptor(url="/home", headers={"accept-language": "en"})
        fr = RequestDescriptor(url="/home", headers={"Accept-Language": "fr"})

        assert generator.generate(en) != generator.generate(fr)
        assert "specific-headers:accept-language" in generator.generate(en)

    def test_hash_keys(self) -> None:
        plain = FingerprintGenerator().generate(RequestDescriptor(url="/x"))
        hashed = FingerprintGenerator(FingerprintConfig(hash_keys=True)).generate(
            RequestDescriptor(url="/x")
        )

        assert hashed == hashlib.sha256(plain.encode()).hexdigest()

    def test_custom_generator(self) -> None:
        generator = create_fingerprint_generator(
            FingerprintConfig(custom_generator=lambda d: f"custom:{d.url}")
        )

        assert generator.generate(RequestDescriptor(url="/x")) == "custom:/x"

    def test_accepts_plain_objects(self) -> None:
        class Request:
            method = "delete"
            url = "/items/1"

        assert generate_fingerprint(Request()) == "method:DELETE|url:/items/1"
