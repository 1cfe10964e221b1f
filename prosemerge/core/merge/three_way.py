"""
Three-way merge engine for prose.

Implements a semantic three-way merge that:
1. Segments the ancestor (A), the upgrade (B) and the customization (C)
2. Aligns A with B and A with C
3. Classifies every unit of A as unchanged, upgraded, preserved or conflicting
4. Merges conflicting units word by word, then applies the conflict strategy
5. Appends content that only B or only C added, and reassembles the text
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from prosemerge.core.alignment import AlignmentOptions, AlignmentStrategy, UnitAligner
from prosemerge.core.errors import ConflictNotFoundError
from prosemerge.core.merge.conflict_resolver import (
    BatchConflictResolver,
    ConflictAnalyzer,
    ConflictResolver,
    format_conflict_marker,
    try_auto_resolve,
)
from prosemerge.core.merge.word_merge import word_merge_3way
from prosemerge.core.models import (
    AlignedPair,
    AlignmentResult,
    Conflict,
    ConflictContext,
    ConflictMarker,
    ConflictSimilarities,
    ConflictStrategy,
    MergeResult,
    MergeStats,
    PairType,
    Resolution,
    ResolutionSource,
    SemanticUnit,
    SimilarityThresholds,
)
from prosemerge.core.segmentation import (
    SegmentationOptions,
    TextSegmenter,
    reconstruct,
    unit_hash,
)
from prosemerge.services.embeddings import EmbeddingProvider
from prosemerge.services.hashing import create_hash


logger = logging.getLogger(__name__)

REMOVAL_SIMILARITY_THRESHOLD = 0.5   # C's text below this is a replacement
HYBRID_MERGE_CONFIDENCE = 0.85
NEARBY_DISTANCE = 1


@dataclass
class MergeOptions:
    """Options for a three-way merge."""
    conflict_strategy: ConflictStrategy = ConflictStrategy.PREFER_C
    thresholds: SimilarityThresholds = field(default_factory=SimilarityThresholds)
    alignment_strategy: AlignmentStrategy = AlignmentStrategy.HYBRID
    match_threshold: float = 0.75
    segmentation: SegmentationOptions = field(default_factory=SegmentationOptions)
    resolver: Optional[ConflictResolver] = None  # Offered conflicts left unresolved


class UnitChangeCase(Enum):
    """How a unit of A fared on the two branches."""
    UNCHANGED = "unchanged"  # Neither side changed it
    UPGRADED = "upgraded"    # Only B changed it
    PRESERVED = "preserved"  # Only C changed it
    CONFLICT = "conflict"    # Both changed it


def side_changed(a_unit: SemanticUnit, pair: Optional[AlignedPair]) -> bool:
    """Whether one branch modified or removed a unit of A."""
    if pair is None:
        return False
    if pair.pair_type in (PairType.MODIFICATION, PairType.DELETION):
        return True
    return pair.target is not None and pair.target.content != a_unit.content


def classify_unit_change(
    a_unit: SemanticUnit,
    b_pair: Optional[AlignedPair],
    c_pair: Optional[AlignedPair]
) -> UnitChangeCase:
    """
    Classify a unit of A from its A->B and A->C pairs.

    A pair that is missing counts as unchanged.
    """
    b_changed = side_changed(a_unit, b_pair)
    c_changed = side_changed(a_unit, c_pair)

    if b_changed and c_changed:
        return UnitChangeCase.CONFLICT
    if b_changed:
        return UnitChangeCase.UPGRADED
    if c_changed:
        return UnitChangeCase.PRESERVED
    return UnitChangeCase.UNCHANGED


@dataclass
class _MergeState:
    """Everything one merge call accumulates."""
    units: list[SemanticUnit] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    resolutions: list[Resolution] = field(default_factory=list)
    stats: MergeStats = field(default_factory=MergeStats)
    used_b: set[int] = field(default_factory=set)  # ids of consumed B units
    used_c: set[int] = field(default_factory=set)  # ids of consumed C units
    next_conflict: int = 1

    def new_conflict_id(self) -> str:
        conflict_id = f"conflict-{self.next_conflict}"
        self.next_conflict += 1
        return conflict_id

    def add_content(self, content: str, a_unit: SemanticUnit) -> None:
        """Emit new content in the place of a unit of A."""
        self.units.append(SemanticUnit(
            content=content,
            hash=unit_hash(content),
            index=len(self.units),
            start=0,
            end=len(content),
            prefix=a_unit.prefix,
            suffix=a_unit.suffix,
        ))


class ThreeWayMergeEngine:
    """
    Three-way merge engine for prose.

    A = original/ancestor, B = new/upgraded, C = user's customized version
    derived from A.
    """

    def __init__(
        self,
        options: Optional[MergeOptions] = None,
        provider: Optional[EmbeddingProvider] = None
    ):
        self.options = options or MergeOptions()
        self.segmenter = TextSegmenter(self.options.segmentation)
        self.aligner = UnitAligner(
            AlignmentOptions(
                strategy=self.options.alignment_strategy,
                match_threshold=self.options.match_threshold,
            ),
            provider,
        )

    def merge(self, a: str, b: str, c: str) -> MergeResult:
        """
        Perform three-way merge.

        Args:
            a: Original/ancestor text
            b: Upgraded text
            c: Customized text

        Returns:
            MergeResult with merged text, unresolved conflicts, resolutions
            and per-unit statistics
        """
        a_units = self.segmenter.segment(a).units
        b_units = self.segmenter.segment(b).units
        c_units = self.segmenter.segment(c).units

        ab = self.aligner.align(a_units, b_units)
        ac = self.aligner.align(a_units, c_units)

        a_to_b = {id(pair.source): pair for pair in ab.pairs if pair.source is not None}
        a_to_c = {id(pair.source): pair for pair in ac.pairs if pair.source is not None}

        state = _MergeState()

        for a_unit in a_units:
            b_pair = a_to_b.get(id(a_unit))
            c_pair = a_to_c.get(id(a_unit))
            case = classify_unit_change(a_unit, b_pair, c_pair)

            if case == UnitChangeCase.UNCHANGED:
                if b_pair is not None and b_pair.target is not None:
                    state.units.append(b_pair.target)
                    state.used_b.add(id(b_pair.target))
                else:
                    state.units.append(a_unit)
                state.stats.unchanged += 1

            elif case == UnitChangeCase.UPGRADED:
                # Dropped when B deleted it
                if b_pair.target is not None:
                    state.units.append(b_pair.target)
                    state.used_b.add(id(b_pair.target))
                    state.stats.upgraded += 1

            elif case == UnitChangeCase.PRESERVED:
                if c_pair.target is not None:
                    state.units.append(c_pair.target)
                    state.used_c.add(id(c_pair.target))
                    state.stats.preserved += 1
                else:
                    state.stats.removed += 1

            else:
                self._merge_conflicting_unit(state, a_unit, b_pair, c_pair, ab, ac)

        self._add_c_insertions(state, ab, ac)
        self._add_b_insertions(state, ab, ac, c_units)

        state.units.sort(key=lambda u: (u.index, u.hash))
        result = MergeResult(
            merged=reconstruct(state.units).strip(),
            conflicts=state.conflicts,
            resolutions=state.resolutions,
            stats=state.stats,
        )
        logger.info(f"Merge complete: {result.stats}")

        if self.options.resolver is not None and result.conflicts:
            result = self._apply_resolver(result)
        return result

    # =========================================================================
    # Conflict Path
    # =========================================================================

    def _merge_conflicting_unit(
        self,
        state: _MergeState,
        a_unit: SemanticUnit,
        b_pair: AlignedPair,
        c_pair: AlignedPair,
        ab: AlignmentResult,
        ac: AlignmentResult
    ) -> None:
        """Merge a unit both sides changed, word level first."""
        b_content = b_pair.target.content if b_pair.target is not None else ""
        c_content = c_pair.target.content if c_pair.target is not None else ""

        # A deletion may really be a rewrite that alignment split in two
        if b_pair.pair_type == PairType.DELETION:
            insertion = _find_unused_insertion(ab.pairs, state.used_b, a_unit.index)
            if insertion is not None:
                b_content = insertion.target.content
                state.used_b.add(id(insertion.target))
        if c_pair.pair_type == PairType.DELETION:
            insertion = _find_unused_insertion(ac.pairs, state.used_c, a_unit.index)
            if insertion is not None:
                c_content = insertion.target.content
                state.used_c.add(id(insertion.target))

        c_removed = c_content == "" or c_pair.similarity < REMOVAL_SIMILARITY_THRESHOLD
        strategy = self.options.conflict_strategy

        word_result = word_merge_3way(a_unit.content, b_content, c_content)
        equals_b = word_result.merged == b_content
        equals_c = word_result.merged == c_content

        if not word_result.has_conflict and (equals_b or equals_c):
            content = word_result.merged
            if strategy == ConflictStrategy.PREFER_B and equals_c and not equals_b:
                content = b_content
            elif strategy == ConflictStrategy.PREFER_C and equals_b and not equals_c:
                content = c_content

            if content:
                state.add_content(content, a_unit)
                if c_removed and equals_c:
                    state.stats.removed += 1
            elif c_removed:
                state.stats.removed += 1
            state.stats.auto_resolved += 1
            self._mark_used(state.used_c, c_pair)
            return

        if not word_result.has_conflict and strategy == ConflictStrategy.DEFER:
            content = word_result.merged
            if content:
                state.add_content(content, a_unit)
                state.resolutions.append(Resolution(
                    conflict_id=state.new_conflict_id(),
                    resolved=content,
                    source=ResolutionSource.MERGED,
                    confidence=HYBRID_MERGE_CONFIDENCE,
                ))
            elif c_removed:
                state.stats.removed += 1
            state.stats.auto_resolved += 1
            self._mark_used(state.used_c, c_pair)
            return

        # Sentence-level conflict
        state.stats.conflicts += 1
        conflict = Conflict(
            id=state.new_conflict_id(),
            a=a_unit.content,
            b=b_content,
            c=c_content,
            context=ConflictContext(before=a_unit.prefix, after=a_unit.suffix),
            similarities=ConflictSimilarities(
                a_to_b=b_pair.similarity,
                a_to_c=c_pair.similarity,
            ),
        )

        resolution = try_auto_resolve(
            conflict, strategy, self.options.thresholds.equivalent_threshold
        )
        if resolution is not None:
            state.resolutions.append(resolution)
            state.stats.auto_resolved += 1
            if resolution.resolved:
                state.add_content(resolution.resolved, a_unit)
                if c_removed and resolution.source == ResolutionSource.USER:
                    state.stats.removed += 1
            elif c_removed:
                state.stats.removed += 1
            self._mark_used(state.used_b, b_pair)
            self._mark_used(state.used_c, c_pair)
            return

        conflict = dataclasses.replace(
            conflict, suggestion=ConflictAnalyzer.best_suggestion(conflict)
        )
        state.conflicts.append(conflict)
        marker = format_conflict_marker(conflict)
        state.units.append(SemanticUnit(
            content=marker,
            hash=create_hash(marker),
            index=len(state.units),
            start=0,
            end=len(marker),
            prefix=a_unit.prefix,
            suffix=a_unit.suffix,
            metadata=ConflictMarker(conflict_id=conflict.id),
        ))
        self._mark_used(state.used_c, c_pair)
        logger.info(f"Deferred {conflict.id}: both sides changed {a_unit.content[:40]!r}")

    @staticmethod
    def _mark_used(used: set[int], pair: AlignedPair) -> None:
        if pair.target is not None:
            used.add(id(pair.target))

    # =========================================================================
    # Insertions
    # =========================================================================

    def _add_c_insertions(
        self,
        state: _MergeState,
        ab: AlignmentResult,
        ac: AlignmentResult
    ) -> None:
        """Keep content C added, unless it replaces what B also deleted under prefer-b."""
        for pair in ac.pairs:
            if pair.pair_type != PairType.INSERTION or id(pair.target) in state.used_c:
                continue

            if (self.options.conflict_strategy == ConflictStrategy.PREFER_B
                    and _replaces_deleted_unit(pair, ac.pairs, ab.pairs)):
                state.used_c.add(id(pair.target))
                continue

            state.units.append(pair.target)
            state.used_c.add(id(pair.target))
            state.stats.preserved += 1

    def _add_b_insertions(
        self,
        state: _MergeState,
        ab: AlignmentResult,
        ac: AlignmentResult,
        c_units: Sequence[SemanticUnit]
    ) -> None:
        """
        Take content B added.

        Skipped when it replaces what C also deleted under prefer-c, or when C
        already has a unit with the same hash.
        """
        c_hashes = {unit.hash for unit in c_units}

        for pair in ab.pairs:
            if pair.pair_type != PairType.INSERTION or id(pair.target) in state.used_b:
                continue

            if (self.options.conflict_strategy == ConflictStrategy.PREFER_C
                    and _replaces_deleted_unit(pair, ab.pairs, ac.pairs)):
                state.used_b.add(id(pair.target))
                continue

            if pair.target.hash not in c_hashes:
                state.units.append(pair.target)
                state.used_b.add(id(pair.target))
                state.stats.upgraded += 1

    # =========================================================================
    # Resolver Hook
    # =========================================================================

    def _apply_resolver(self, result: MergeResult) -> MergeResult:
        """Offer unresolved conflicts to the configured resolver."""
        resolver = self.options.resolver
        pending = list(result.conflicts)

        if isinstance(resolver, BatchConflictResolver):
            resolutions = resolver.resolve_batch(pending)
        else:
            resolutions = [resolver.resolve(conflict) for conflict in pending]

        for resolution in resolutions:
            result = _settle_conflict(result, resolution)
        logger.info(f"Resolver settled {len(resolutions)} of {len(pending)} conflict(s)")
        return result


def _find_unused_insertion(
    pairs: Sequence[AlignedPair],
    used: set[int],
    index: int
) -> Optional[AlignedPair]:
    """An unconsumed insertion at the given index, else the first unconsumed one."""
    fallback: Optional[AlignedPair] = None
    for pair in pairs:
        if pair.pair_type != PairType.INSERTION or id(pair.target) in used:
            continue
        if pair.target.index == index:
            return pair
        if fallback is None:
            fallback = pair
    return fallback


def _replaces_deleted_unit(
    insertion: AlignedPair,
    own_pairs: Sequence[AlignedPair],
    other_pairs: Sequence[AlignedPair]
) -> bool:
    """
    Whether an insertion stands in for a unit of A that both sides deleted.

    The insertion replaces the first unit its own side deleted within one
    position of it; the other side must have deleted a unit with that hash.
    """
    nearby = next(
        (p for p in own_pairs
         if p.pair_type == PairType.DELETION
         and abs(p.source.index - insertion.target.index) <= NEARBY_DISTANCE),
        None
    )
    if nearby is None:
        return False
    return any(
        p.pair_type == PairType.DELETION and p.source.hash == nearby.source.hash
        for p in other_pairs
    )


def _settle_conflict(result: MergeResult, resolution: Resolution) -> MergeResult:
    """Replace a conflict's marker block and record its resolution."""
    conflict = result.get_conflict(resolution.conflict_id)
    if conflict is None:
        raise ConflictNotFoundError(resolution.conflict_id)

    return dataclasses.replace(
        result,
        merged=result.merged.replace(format_conflict_marker(conflict), resolution.resolved, 1),
        conflicts=[c for c in result.conflicts if c.id != conflict.id],
        resolutions=[*result.resolutions, resolution],
    )


def merge(
    a: str,
    b: str,
    c: str,
    options: Optional[MergeOptions] = None,
    provider: Optional[EmbeddingProvider] = None
) -> MergeResult:
    """Three-way merge of ancestor ``a``, upgrade ``b`` and customization ``c``."""
    return ThreeWayMergeEngine(options, provider).merge(a, b, c)


def has_conflicts(result: MergeResult) -> bool:
    """Check if a merge result has unresolved conflicts."""
    return result.has_conflicts


def resolve_conflict(result: MergeResult, conflict_id: str, resolution: str) -> MergeResult:
    """
    Resolve a conflict by hand.

    Args:
        result: Merge result holding the conflict
        conflict_id: ID of the conflict to resolve
        resolution: Text replacing the conflict's marker block

    Returns:
        New MergeResult without the conflict

    Raises:
        ConflictNotFoundError: if the ID is not an unresolved conflict
    """
    return _settle_conflict(result, Resolution(
        conflict_id=conflict_id,
        resolved=resolution,
        source=ResolutionSource.EXTERNAL,
        confidence=1.0,
    ))
