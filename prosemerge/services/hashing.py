"""
Hashing service for content identity and file integrity.

Unit identity uses 32-bit FNV-1a over UTF-16 code units so that hashes are
stable across platforms. File and document digests use xxHash.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional

import xxhash


FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
_UINT32_MASK = 0xFFFFFFFF


def create_hash(text: str) -> str:
    """
    Hash a string with 32-bit FNV-1a.

    The input is consumed as UTF-16 code units, so characters outside the
    Basic Multilingual Plane contribute their surrogate pair.

    Returns:
        8-character lowercase hex digest
    """
    value = FNV_OFFSET_BASIS
    data = text.encode('utf-16-le', errors='surrogatepass')
    for low, high in zip(data[0::2], data[1::2]):
        value ^= low | (high << 8)
        value = (value * FNV_PRIME) & _UINT32_MASK
    return f"{value:08x}"


def create_contextual_hash(content: str, before: str, after: str) -> str:
    """Hash content together with up to 50 characters of context on each side."""
    return create_hash(f"{before[-50:]}|{content}|{after[:50]}")


def hashes_equal(a: str, b: str) -> bool:
    return a == b


class HashAlgorithm(Enum):
    """Supported digest algorithms."""
    FNV1A32 = auto()  # Unit identity
    XXH64 = auto()    # Fast non-cryptographic digest
    SHA256 = auto()

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass
class HashResult:
    """Result of a hash operation."""
    algorithm: HashAlgorithm
    hash_hex: str
    size: int

    def matches(self, other: 'HashResult') -> bool:
        """Check if this hash matches another."""
        return (self.algorithm == other.algorithm and
                self.hash_hex == other.hash_hex)


class HashingService:
    """Service for computing digests of files and strings."""

    def __init__(
        self,
        default_algorithm: HashAlgorithm = HashAlgorithm.XXH64,
        chunk_size: int = 65536
    ):
        self.default_algorithm = default_algorithm
        self.chunk_size = chunk_size

    def hash_file(
        self,
        path: Path | str,
        algorithm: Optional[HashAlgorithm] = None
    ) -> HashResult:
        """
        Compute the digest of a file.

        Args:
            path: Path to the file
            algorithm: Digest algorithm; FNV-1a is not supported for files

        Returns:
            HashResult with the computed digest
        """
        path = Path(path)
        algorithm = algorithm or self.default_algorithm
        hasher = self._create_hasher(algorithm)

        size = 0
        with open(path, 'rb') as f:
            while chunk := f.read(self.chunk_size):
                hasher.update(chunk)
                size += len(chunk)

        return HashResult(algorithm=algorithm, hash_hex=hasher.hexdigest(), size=size)

    def hash_string(
        self,
        text: str,
        algorithm: Optional[HashAlgorithm] = None
    ) -> HashResult:
        """Compute the digest of a string."""
        algorithm = algorithm or self.default_algorithm
        if algorithm == HashAlgorithm.FNV1A32:
            return HashResult(algorithm=algorithm, hash_hex=create_hash(text), size=len(text))

        data = text.encode('utf-8')
        hasher = self._create_hasher(algorithm)
        hasher.update(data)
        return HashResult(algorithm=algorithm, hash_hex=hasher.hexdigest(), size=len(data))

    def verify_hash(
        self,
        path: Path | str,
        expected_hash: str,
        algorithm: Optional[HashAlgorithm] = None
    ) -> bool:
        """Verify a file's digest against an expected value."""
        result = self.hash_file(path, algorithm)
        return result.hash_hex.lower() == expected_hash.lower()

    def _create_hasher(self, algorithm: HashAlgorithm):
        """Create a streaming hasher for the given algorithm."""
        if algorithm == HashAlgorithm.XXH64:
            return xxhash.xxh64()
        elif algorithm == HashAlgorithm.SHA256:
            return hashlib.sha256()
        else:
            raise ValueError(f"Algorithm does not support streaming: {algorithm.label}")
