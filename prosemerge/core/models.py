"""
Core data models for prosemerge.

This module defines all data structures shared by the merge core:
- Semantic units and their structural metadata
- Alignment models
- Edit, diff and patch models
- Merge, conflict and resolution models
- Similarity classification models

Units, pairs, edits, conflicts and resolutions are frozen value objects.
Operations that change content build new instances instead of mutating.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Union


# =============================================================================
# Enumerations
# =============================================================================

class PairType(Enum):
    """How a source unit relates to a target unit after alignment."""
    MATCH = "match"                # Paired, near-identical
    MODIFICATION = "modification"  # Paired, content differs
    INSERTION = "insertion"        # Target only
    DELETION = "deletion"          # Source only


class EditOperation(Enum):
    """Atomic edit operations."""
    KEEP = "KEEP"
    INSERT = "INSERT"
    DELETE = "DELETE"
    REPLACE = "REPLACE"
    MOVE = "MOVE"  # Reserved; never emitted by diff, but must round-trip


class EditPosition(Enum):
    """Where an edit lands relative to its anchor."""
    BEFORE = "before"
    AFTER = "after"
    REPLACE = "replace"


class ConflictStrategy(Enum):
    """Strategy for resolving sentence-level conflicts."""
    PREFER_A = "prefer-a"        # Keep the ancestor text
    PREFER_B = "prefer-b"        # Take the upgraded text
    PREFER_C = "prefer-c"        # Keep the customized text
    CONCATENATE = "concatenate"  # B, newline, C
    DEFER = "defer"              # Leave a conflict marker for a human

    @classmethod
    def from_string(cls, value: str) -> 'ConflictStrategy':
        """Create from a strategy name such as ``prefer-b``."""
        normalized = value.strip().lower().replace('_', '-')
        for strategy in cls:
            if strategy.value == normalized:
                return strategy
        choices = ', '.join(s.value for s in cls)
        raise ValueError(f"Unknown conflict strategy: {value} (expected one of {choices})")


class ResolutionSource(Enum):
    """Where the text of a resolution came from."""
    ANCESTOR = "ancestor"  # A
    BASE = "base"          # B
    USER = "user"          # C
    MERGED = "merged"      # Combination of B and C
    EXTERNAL = "external"  # Supplied by a caller or resolver


class SimilarityClass(Enum):
    """Coarse classification of a similarity score."""
    IDENTICAL = "identical"
    EQUIVALENT = "equivalent"
    SIMILAR = "similar"
    DIFFERENT = "different"


# =============================================================================
# Unit Metadata
# =============================================================================

@dataclass(frozen=True)
class Plain:
    """Ordinary prose."""


@dataclass(frozen=True)
class Heading:
    """Markdown heading (``#`` through ``######``)."""
    level: int


@dataclass(frozen=True)
class ListItem:
    """Markdown list item."""
    ordered: bool


@dataclass(frozen=True)
class CodeBlock:
    """Fenced code block."""


@dataclass(frozen=True)
class ConflictMarker:
    """Unresolved conflict block spliced into merged output."""
    conflict_id: str


UnitMetadata = Union[Plain, Heading, ListItem, CodeBlock, ConflictMarker]

PLAIN = Plain()


# =============================================================================
# Segmentation Models
# =============================================================================

@dataclass(frozen=True)
class SemanticUnit:
    """
    The atomic unit of comparison and merge.

    ``prefix`` and ``suffix`` hold the exact text surrounding ``content`` in
    the source so that units can be reassembled losslessly.
    """
    content: str
    hash: str
    index: int
    start: int
    end: int
    prefix: str = ""
    suffix: str = ""
    metadata: UnitMetadata = PLAIN

    @property
    def text(self) -> str:
        """Content with its surrounding whitespace."""
        return f"{self.prefix}{self.content}{self.suffix}"

    @property
    def is_heading(self) -> bool:
        return isinstance(self.metadata, Heading)

    @property
    def is_conflict_marker(self) -> bool:
        return isinstance(self.metadata, ConflictMarker)


@dataclass
class SegmentationResult:
    """Units produced from one source text."""
    units: list[SemanticUnit]
    original: str

    @property
    def unit_count(self) -> int:
        return len(self.units)

    def __iter__(self) -> Iterator[SemanticUnit]:
        return iter(self.units)


# =============================================================================
# Alignment Models
# =============================================================================

@dataclass(frozen=True)
class AlignedPair:
    """
    Relates a source unit to a target unit.

    Insertions have no source, deletions have no target, and every other
    pair type has both.
    """
    source: Optional[SemanticUnit]
    target: Optional[SemanticUnit]
    pair_type: PairType
    similarity: float = 0.0

    def __post_init__(self) -> None:
        if self.pair_type == PairType.INSERTION:
            valid = self.source is None and self.target is not None
        elif self.pair_type == PairType.DELETION:
            valid = self.source is not None and self.target is None
        else:
            valid = self.source is not None and self.target is not None
        if not valid:
            raise ValueError(f"Inconsistent units for {self.pair_type.value} pair")

    @property
    def key(self) -> str:
        """Identity of the pair by unit hashes."""
        source_hash = self.source.hash if self.source else "null"
        target_hash = self.target.hash if self.target else "null"
        return f"{source_hash}-{target_hash}"

    @property
    def sort_index(self) -> int:
        """Target index when present, otherwise source index."""
        if self.target is not None:
            return self.target.index
        return self.source.index  # type: ignore[union-attr]


@dataclass
class AlignmentResult:
    """Outcome of aligning two unit sequences."""
    pairs: list[AlignedPair]
    unmatched_source: list[SemanticUnit] = field(default_factory=list)
    unmatched_target: list[SemanticUnit] = field(default_factory=list)

    def iter_type(self, pair_type: PairType) -> Iterator[AlignedPair]:
        """Iterate over pairs of one type."""
        for pair in self.pairs:
            if pair.pair_type == pair_type:
                yield pair


# =============================================================================
# Edit and Diff Models
# =============================================================================

@dataclass(frozen=True)
class AnchorContext:
    """Text of the units neighbouring an anchor."""
    before: str = ""
    after: str = ""


@dataclass(frozen=True)
class Edit:
    """A single atomic change against a base text."""
    operation: EditOperation
    anchor: str = ""
    anchor_context: Optional[AnchorContext] = None
    old_content: Optional[str] = None
    new_content: Optional[str] = None
    position: Optional[EditPosition] = None
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if self.operation == EditOperation.REPLACE:
            if self.old_content is None or self.new_content is None:
                raise ValueError("REPLACE edit requires old and new content")
        elif self.operation == EditOperation.DELETE:
            if not self.anchor or self.old_content is None:
                raise ValueError("DELETE edit requires an anchor and old content")
        elif self.operation == EditOperation.INSERT:
            if self.new_content is None:
                raise ValueError("INSERT edit requires new content")

    @property
    def is_change(self) -> bool:
        return self.operation != EditOperation.KEEP


@dataclass
class DiffStats:
    """Edit counts by operation."""
    kept: int = 0
    inserted: int = 0
    deleted: int = 0
    replaced: int = 0
    moved: int = 0

    @property
    def total_changes(self) -> int:
        return self.inserted + self.deleted + self.replaced + self.moved

    def __str__(self) -> str:
        return (f"={self.kept} +{self.inserted} -{self.deleted} "
                f"~{self.replaced} >{self.moved}")


@dataclass
class DiffResult:
    """Edit script between two texts."""
    edits: list[Edit]
    stats: DiffStats

    @property
    def has_changes(self) -> bool:
        return self.stats.total_changes > 0


# =============================================================================
# Patch Models
# =============================================================================

@dataclass
class Patch:
    """Portable set of edits bound to a base text by hash."""
    version: str
    base_hash: str
    created_at: str
    edits: list[Edit]
    metadata: Optional[dict[str, Any]] = None


@dataclass
class PatchApplicationResult:
    """Best-effort result of applying a patch, with per-edit buckets."""
    result: str
    applied: list[Edit] = field(default_factory=list)
    failed: list[Edit] = field(default_factory=list)
    adapted: list[Edit] = field(default_factory=list)

    @property
    def edit_count(self) -> int:
        return len(self.applied) + len(self.failed) + len(self.adapted)

    @property
    def fully_applied(self) -> bool:
        return not self.failed and not self.adapted


# =============================================================================
# Similarity Models
# =============================================================================

@dataclass(frozen=True)
class SimilarityThresholds:
    """Boundaries used by similarity classification."""
    equivalent_threshold: float = 0.95
    similar_threshold: float = 0.80


# =============================================================================
# Merge Models
# =============================================================================

@dataclass(frozen=True)
class ConflictContext:
    """Whitespace surrounding the conflicting unit in A."""
    before: str = ""
    after: str = ""


@dataclass(frozen=True)
class ConflictSimilarities:
    """Similarity scores between the three versions of a conflicting unit."""
    a_to_b: float = 0.0
    a_to_c: float = 0.0
    b_to_c: float = 0.0


@dataclass(frozen=True)
class ResolutionSuggestion:
    """A suggested resolution for a conflict."""
    resolution: str
    confidence: float  # 0.0 to 1.0
    reason: str


@dataclass(frozen=True)
class Conflict:
    """
    A unit that both B and C changed in incompatible ways.

    Conflicts live inside a MergeResult and are resolved through it.
    """
    id: str
    a: str
    b: str
    c: str
    context: ConflictContext = field(default_factory=ConflictContext)
    similarities: ConflictSimilarities = field(default_factory=ConflictSimilarities)
    suggestion: Optional[ResolutionSuggestion] = None


@dataclass(frozen=True)
class Resolution:
    """How a conflict (or an auto-merged unit) was settled."""
    conflict_id: str
    resolved: str
    source: ResolutionSource
    confidence: float


@dataclass
class MergeStats:
    """Per-unit outcome counts for a merge."""
    unchanged: int = 0
    upgraded: int = 0
    preserved: int = 0
    removed: int = 0
    conflicts: int = 0
    auto_resolved: int = 0

    def __str__(self) -> str:
        return (f"unchanged={self.unchanged} upgraded={self.upgraded} "
                f"preserved={self.preserved} removed={self.removed} "
                f"conflicts={self.conflicts} auto_resolved={self.auto_resolved}")


@dataclass
class MergeResult:
    """
    Complete result of a three-way merge operation.

    ``conflicts`` holds only unresolved conflicts; every conflict listed
    has a marker block in ``merged``.
    """
    merged: str
    conflicts: list[Conflict] = field(default_factory=list)
    resolutions: list[Resolution] = field(default_factory=list)
    stats: MergeStats = field(default_factory=MergeStats)

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    def get_conflict(self, conflict_id: str) -> Optional[Conflict]:
        """Get an unresolved conflict by ID."""
        for conflict in self.conflicts:
            if conflict.id == conflict_id:
                return conflict
        return None


@dataclass(frozen=True)
class ConflictRange:
    """Inline word-level conflict inside a merged sentence."""
    start: int  # Token index in the merged token stream
    end: int
    b: str
    c: str


@dataclass
class WordMergeResult:
    """Result of merging three versions of one sentence word by word."""
    merged: str
    has_conflict: bool
    conflict_ranges: list[ConflictRange] = field(default_factory=list)
