"""
Unit-level diff.

Segments two texts, aligns their units and turns the aligned pairs into an
edit script of KEEP, INSERT, DELETE and REPLACE operations.
"""

from __future__ import annotations

import dataclasses
from typing import Optional, Sequence

from prosemerge.core.alignment import AlignmentOptions, UnitAligner
from prosemerge.core.models import (
    AlignedPair,
    AnchorContext,
    DiffResult,
    DiffStats,
    Edit,
    EditOperation,
    EditPosition,
    PairType,
    SemanticUnit,
)
from prosemerge.core.segmentation import SegmentationOptions, TextSegmenter
from prosemerge.services.embeddings import EmbeddingProvider


CONTEXT_CHARS = 50
INSERT_CONFIDENCE = 0.9
DELETE_CONFIDENCE = 0.9


def anchor_context(units: Sequence[SemanticUnit], position: int) -> AnchorContext:
    """Tail of the previous unit and head of the next unit around a position."""
    before = units[position - 1].content[-CONTEXT_CHARS:] if position > 0 else ""
    after = units[position + 1].content[:CONTEXT_CHARS] if position + 1 < len(units) else ""
    return AnchorContext(before=before, after=after)


def pairs_to_edits(pairs: Sequence[AlignedPair], source: Sequence[SemanticUnit]) -> list[Edit]:
    """
    Convert aligned pairs into edits, one per pair.

    A paired unit whose text changed becomes a REPLACE even when alignment
    rated it a match.

    Args:
        pairs: Alignment pairs in document order
        source: The source units the pairs were aligned from, used for
            anchor context

    Returns:
        Edits in pair order; insertions are left without an anchor
    """
    positions = {id(unit): k for k, unit in enumerate(source)}
    edits: list[Edit] = []

    for pair in pairs:
        if pair.pair_type == PairType.MATCH and pair.source.content == pair.target.content:
            edits.append(Edit(
                operation=EditOperation.KEEP,
                anchor=pair.source.hash,
                old_content=pair.source.content,
                confidence=1.0,
            ))
        elif pair.pair_type in (PairType.MATCH, PairType.MODIFICATION):
            edits.append(Edit(
                operation=EditOperation.REPLACE,
                anchor=pair.source.hash,
                anchor_context=anchor_context(source, positions[id(pair.source)]),
                old_content=pair.source.content,
                new_content=pair.target.content,
                confidence=pair.similarity,
            ))
        elif pair.pair_type == PairType.INSERTION:
            edits.append(Edit(
                operation=EditOperation.INSERT,
                new_content=pair.target.content,
                position=EditPosition.AFTER,
                confidence=INSERT_CONFIDENCE,
            ))
        else:
            edits.append(Edit(
                operation=EditOperation.DELETE,
                anchor=pair.source.hash,
                anchor_context=anchor_context(source, positions[id(pair.source)]),
                old_content=pair.source.content,
                confidence=DELETE_CONFIDENCE,
            ))

    return edits


def compute_stats(edits: Sequence[Edit]) -> DiffStats:
    """Count edits by operation."""
    stats = DiffStats()
    for edit in edits:
        if edit.operation == EditOperation.KEEP:
            stats.kept += 1
        elif edit.operation == EditOperation.INSERT:
            stats.inserted += 1
        elif edit.operation == EditOperation.DELETE:
            stats.deleted += 1
        elif edit.operation == EditOperation.REPLACE:
            stats.replaced += 1
        elif edit.operation == EditOperation.MOVE:
            stats.moved += 1
    return stats


class UnitDiffEngine:
    """
    Engine for unit-level diffs between two texts.

    Uses sentence segmentation and hybrid alignment unless told otherwise.
    """

    def __init__(
        self,
        segmentation: Optional[SegmentationOptions] = None,
        alignment: Optional[AlignmentOptions] = None,
        provider: Optional[EmbeddingProvider] = None
    ):
        self.segmenter = TextSegmenter(segmentation)
        self.aligner = UnitAligner(alignment, provider)

    def diff(self, original: str, modified: str) -> DiffResult:
        """Compute the full edit script, KEEP edits included."""
        source = self.segmenter.segment(original).units
        target = self.segmenter.segment(modified).units
        alignment = self.aligner.align(source, target)

        edits = pairs_to_edits(alignment.pairs, source)
        return DiffResult(edits=edits, stats=compute_stats(edits))

    def extract_patch(self, base_original: str, user_modified: str) -> DiffResult:
        """
        Compute the changes only, ready to be packaged as a patch.

        KEEP edits are dropped. Each INSERT is anchored after the closest
        preceding edit that has an anchor (KEEP edits included); an INSERT
        with nothing anchored before it stays anchorless and lands at the
        start of the text. Stats still count the full edit script.
        """
        result = self.diff(base_original, user_modified)

        edits: list[Edit] = []
        last_anchor = ""
        for edit in result.edits:
            if edit.operation == EditOperation.INSERT and not edit.anchor and last_anchor:
                edit = dataclasses.replace(edit, anchor=last_anchor, position=EditPosition.AFTER)
            if edit.anchor:
                last_anchor = edit.anchor
            if edit.operation != EditOperation.KEEP:
                edits.append(edit)

        return DiffResult(edits=edits, stats=result.stats)


def diff(
    original: str,
    modified: str,
    provider: Optional[EmbeddingProvider] = None
) -> DiffResult:
    """Compute a unit-level diff between two texts."""
    return UnitDiffEngine(provider=provider).diff(original, modified)


def extract_patch(
    base_original: str,
    user_modified: str,
    provider: Optional[EmbeddingProvider] = None
) -> DiffResult:
    """Compute the anchored changes between two texts."""
    return UnitDiffEngine(provider=provider).extract_patch(base_original, user_modified)


def summarize_diff(result: DiffResult) -> str:
    """Render diff stats as a short human-readable line."""
    stats = result.stats
    parts = []
    if stats.kept:
        parts.append(f"{stats.kept} unchanged")
    if stats.inserted:
        parts.append(f"{stats.inserted} added")
    if stats.deleted:
        parts.append(f"{stats.deleted} removed")
    if stats.replaced:
        parts.append(f"{stats.replaced} modified")
    if stats.moved:
        parts.append(f"{stats.moved} moved")
    return ", ".join(parts) or "No changes"
