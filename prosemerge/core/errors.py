"""
Exception types raised by the merge core.

Only contract violations are raised: malformed provider output, malformed
patch documents and unknown conflict ids. Text-shape problems never raise.
"""

from __future__ import annotations


class ProseMergeError(Exception):
    """Base class for all errors raised by prosemerge."""


class DimensionMismatchError(ProseMergeError, ValueError):
    """Two vectors (or a vector and the provider's dimension) disagree in length."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class PatchValidationError(ProseMergeError, ValueError):
    """A serialized patch is missing required fields or is not valid JSON."""


class ConflictNotFoundError(ProseMergeError, ValueError):
    """A conflict id does not belong to the merge result."""

    def __init__(self, conflict_id: str):
        super().__init__(f"Invalid conflict ID: {conflict_id}")
        self.conflict_id = conflict_id
