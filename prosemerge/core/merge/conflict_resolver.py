"""
Conflict resolution utilities and strategies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, runtime_checkable

from prosemerge.core.models import (
    Conflict,
    ConflictStrategy,
    Resolution,
    ResolutionSource,
    ResolutionSuggestion,
)
from prosemerge.core.segmentation import normalize_for_hash


SUBSUMPTION_CONFIDENCE = 0.9
STRATEGY_CONFIDENCE = 0.7
CONCATENATE_CONFIDENCE = 0.5
NEAR_IDENTICAL_THRESHOLD = 0.95

_WORD = re.compile(r'\w+')


# =============================================================================
# Resolver Hook
# =============================================================================

@runtime_checkable
class ConflictResolver(Protocol):
    """
    Resolves conflicts left open by the deterministic merge.

    Implementations may also define ``resolve_batch(conflicts)``; the merge
    engine uses it when present.
    """

    def resolve(self, conflict: Conflict) -> Resolution: ...


@runtime_checkable
class BatchConflictResolver(ConflictResolver, Protocol):
    """A resolver that can settle several conflicts in one call."""

    def resolve_batch(self, conflicts: Sequence[Conflict]) -> list[Resolution]: ...


# =============================================================================
# Sentence-Level Resolution
# =============================================================================

def try_auto_resolve(
    conflict: Conflict,
    strategy: ConflictStrategy,
    equivalent_threshold: float = NEAR_IDENTICAL_THRESHOLD
) -> Optional[Resolution]:
    """
    Settle a sentence-level conflict without a human.

    Subsumption is tried first when neither side is blank: a side whose text
    contains the other's is preferred. Sides that are near-identical
    (``b_to_c`` above ``equivalent_threshold``) subsume each other, so
    neither is preferred and the strategy decides.

    Returns:
        Resolution, or None when the strategy is DEFER
    """
    b, c = conflict.b, conflict.c

    if b.strip() and c.strip():
        near_identical = conflict.similarities.b_to_c > equivalent_threshold
        b_contains_c = near_identical or c in b
        c_contains_b = near_identical or b in c

        if b_contains_c and not c_contains_b:
            return Resolution(conflict.id, b, ResolutionSource.BASE, SUBSUMPTION_CONFIDENCE)
        if c_contains_b and not b_contains_c:
            return Resolution(conflict.id, c, ResolutionSource.USER, SUBSUMPTION_CONFIDENCE)

    if strategy == ConflictStrategy.PREFER_A:
        return Resolution(conflict.id, conflict.a, ResolutionSource.ANCESTOR, STRATEGY_CONFIDENCE)
    elif strategy == ConflictStrategy.PREFER_B:
        return Resolution(conflict.id, b, ResolutionSource.BASE, STRATEGY_CONFIDENCE)
    elif strategy == ConflictStrategy.PREFER_C:
        return Resolution(conflict.id, c, ResolutionSource.USER, STRATEGY_CONFIDENCE)
    elif strategy == ConflictStrategy.CONCATENATE:
        return Resolution(conflict.id, f"{b}\n{c}", ResolutionSource.MERGED, CONCATENATE_CONFIDENCE)
    return None


def format_conflict_marker(conflict: Conflict) -> str:
    """Marker block spliced into merged text for an unresolved conflict."""
    return f"<<<<<<< B\n{conflict.b}\n=======\n{conflict.c}\n>>>>>>> C"


# =============================================================================
# Analysis
# =============================================================================

class ConflictAnalyzer:
    """Analyzes conflicts to suggest resolutions."""

    @staticmethod
    def analyze(conflict: Conflict) -> list[ResolutionSuggestion]:
        """
        Analyze a conflict and return suggested resolutions.

        Returns suggestions sorted by confidence (highest first).
        """
        suggestions: list[ResolutionSuggestion] = []
        b, c = conflict.b, conflict.c

        # Check for empty sides
        if not b.strip() and c.strip():
            suggestions.append(ResolutionSuggestion(
                resolution=c,
                confidence=0.8,
                reason="Upgrade removed the text; customization kept it",
            ))

        if not c.strip() and b.strip():
            suggestions.append(ResolutionSuggestion(
                resolution=b,
                confidence=0.8,
                reason="Customization removed the text; upgrade kept it",
            ))

        # Check for case, punctuation or whitespace differences
        if b.strip() and normalize_for_hash(b) == normalize_for_hash(c):
            suggestions.append(ResolutionSuggestion(
                resolution=b,
                confidence=0.9,
                reason="Difference is case, punctuation or whitespace only",
            ))

        # Check if one side's words are a subset of the other's
        b_words = set(_WORD.findall(b.lower()))
        c_words = set(_WORD.findall(c.lower()))

        if b_words < c_words:
            suggestions.append(ResolutionSuggestion(
                resolution=c,
                confidence=0.6,
                reason="Customization contains all of the upgrade's words plus additions",
            ))
        elif c_words < b_words:
            suggestions.append(ResolutionSuggestion(
                resolution=b,
                confidence=0.6,
                reason="Upgrade contains all of the customization's words plus additions",
            ))

        # Check for reordering
        if b_words and sorted(_WORD.findall(b.lower())) == sorted(_WORD.findall(c.lower())):
            suggestions.append(ResolutionSuggestion(
                resolution=b,
                confidence=0.5,
                reason="Same words in different order",
            ))

        suggestions.sort(key=lambda s: s.confidence, reverse=True)
        return suggestions

    @classmethod
    def best_suggestion(cls, conflict: Conflict) -> Optional[ResolutionSuggestion]:
        """Highest-confidence suggestion, if any."""
        suggestions = cls.analyze(conflict)
        return suggestions[0] if suggestions else None

    @staticmethod
    def similarity_score(left: str, right: str) -> float:
        """
        Calculate word overlap between two texts.

        Returns a value between 0.0 (completely different) and 1.0 (identical).
        """
        left_set = set(_WORD.findall(left.lower()))
        right_set = set(_WORD.findall(right.lower()))
        if not left_set and not right_set:
            return 1.0
        if not left_set or not right_set:
            return 0.0

        # Use Jaccard similarity
        return len(left_set & right_set) / len(left_set | right_set)


# =============================================================================
# Marker Parsing
# =============================================================================

@dataclass
class MarkerBlock:
    """A B/C conflict marker block found in text."""
    start: int  # Character offset of the opening marker
    end: int    # Character offset just past the closing marker
    b: str
    c: str


class ConflictMarkerParser:
    """Find and strip B/C conflict marker blocks in merged text."""

    BLOCK = re.compile(
        r'^<{7} B\n(?P<b>[\s\S]*?)\n={7}\n(?P<c>[\s\S]*?)\n>{7} C$',
        re.MULTILINE
    )

    @classmethod
    def has_conflict_markers(cls, content: str) -> bool:
        """Check if content contains conflict markers."""
        return cls.BLOCK.search(content) is not None

    @classmethod
    def parse_conflicts(cls, content: str) -> list[MarkerBlock]:
        """Return every marker block in document order."""
        return [
            MarkerBlock(start=m.start(), end=m.end(), b=m.group('b'), c=m.group('c'))
            for m in cls.BLOCK.finditer(content)
        ]

    @classmethod
    def remove_conflict_markers(
        cls,
        content: str,
        source: ResolutionSource = ResolutionSource.USER
    ) -> str:
        """
        Replace every marker block with one side.

        Args:
            content: Merged text with marker blocks
            source: BASE keeps B, USER keeps C, MERGED keeps B then C

        Returns:
            Text without marker blocks
        """
        def _pick(match: re.Match) -> str:
            if source == ResolutionSource.BASE:
                return match.group('b')
            elif source == ResolutionSource.MERGED:
                return f"{match.group('b')}\n{match.group('c')}"
            elif source == ResolutionSource.USER:
                return match.group('c')
            raise ValueError(f"Cannot resolve markers from source: {source.value}")

        return cls.BLOCK.sub(_pick, content)
