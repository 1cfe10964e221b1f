"""Tests for content hashes and file digests."""

from __future__ import annotations

import pytest
import xxhash

from prosemerge.services.hashing import (
    HashAlgorithm,
    HashingService,
    create_contextual_hash,
    create_hash,
    hashes_equal,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", "811c9dc5"),
        ("a", "e40c292c"),
        ("foobar", "bf9cf968"),
    ],
)
def test_create_hash_matches_fnv1a_vectors(text: str, expected: str) -> None:
    assert create_hash(text) == expected


def test_create_hash_is_deterministic_and_fixed_width() -> None:
    for text in ("Hello World.", "naïve café", "emoji \U0001F600 here"):
        digest = create_hash(text)
        assert digest == create_hash(text)
        assert len(digest) == 8
        assert int(digest, 16) >= 0


def test_create_hash_distinguishes_case() -> None:
    assert create_hash("Hello") != create_hash("hello")


def test_contextual_hash_uses_fifty_characters_of_context() -> None:
    before = "x" * 60 + "b"
    after = "c" + "y" * 60
    expected = create_hash(f"{before[-50:]}|content|{after[:50]}")

    assert create_contextual_hash("content", before, after) == expected
    assert create_contextual_hash("content", "other", after) != expected


def test_hashes_equal() -> None:
    assert hashes_equal("abc", "abc")
    assert not hashes_equal("abc", "abd")


def test_hash_string_xxh64_matches_library() -> None:
    result = HashingService().hash_string("some text")

    assert result.algorithm == HashAlgorithm.XXH64
    assert result.hash_hex == xxhash.xxh64(b"some text").hexdigest()
    assert result.size == len(b"some text")


def test_hash_string_fnv_uses_unit_hash_function() -> None:
    result = HashingService().hash_string("foobar", HashAlgorithm.FNV1A32)
    assert result.hash_hex == "bf9cf968"


def test_hash_file_and_verify(tmp_path) -> None:
    path = tmp_path / "doc.txt"
    path.write_bytes(b"chunked " * 10000)
    service = HashingService(chunk_size=1024)

    result = service.hash_file(path)

    assert result.hash_hex == xxhash.xxh64(b"chunked " * 10000).hexdigest()
    assert result.size == 80000
    assert service.verify_hash(path, result.hash_hex.upper())
    assert not service.verify_hash(path, "0" * 16)


def test_hash_file_sha256(tmp_path) -> None:
    import hashlib

    path = tmp_path / "doc.txt"
    path.write_bytes(b"abc")

    result = HashingService().hash_file(path, HashAlgorithm.SHA256)
    assert result.hash_hex == hashlib.sha256(b"abc").hexdigest()
    assert result.matches(HashingService().hash_file(path, HashAlgorithm.SHA256))


def test_hash_file_rejects_fnv(tmp_path) -> None:
    path = tmp_path / "doc.txt"
    path.write_text("abc")

    with pytest.raises(ValueError):
        HashingService().hash_file(path, HashAlgorithm.FNV1A32)
