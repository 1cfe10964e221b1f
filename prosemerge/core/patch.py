"""
Portable patches.

A patch captures the edits that turn a base text into a user's modified
version. It can later be replayed on a new revision of the base: every edit
is relocated by its anchor, and edits whose surroundings drifted are applied
with reduced confidence instead of failing.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import datetime, timezone
from typing import Any, Collection, Optional, Sequence

from prosemerge.core.diff.unit_diff import UnitDiffEngine
from prosemerge.core.errors import PatchValidationError
from prosemerge.core.models import (
    Edit,
    EditOperation,
    Patch,
    PatchApplicationResult,
    SemanticUnit,
)
from prosemerge.core.segmentation import segment, unit_hash
from prosemerge.core.serialization import patch_from_dict, patch_to_dict
from prosemerge.core.similarity import levenshtein_similarity
from prosemerge.services.embeddings import EmbeddingProvider
from prosemerge.services.hashing import create_hash


logger = logging.getLogger(__name__)

PATCH_VERSION = "1.0.0"

FUZZY_ANCHOR_THRESHOLD = 0.6    # Old content must be more similar than this
CONTEXT_DRIFT_THRESHOLD = 0.7   # Neighbours less similar than this have drifted
ADAPTED_CONFIDENCE_FACTOR = 0.7
CONTEXT_CHARS = 50


def _timestamp() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def generate_patch(
    base_original: str,
    user_modified: str,
    metadata: Optional[dict[str, Any]] = None,
    provider: Optional[EmbeddingProvider] = None
) -> Patch:
    """
    Capture the user's modifications of a base text as a patch.

    Args:
        base_original: The original base text
        user_modified: The user's modified version
        metadata: Free-form metadata stored with the patch
        provider: Embedding provider for alignment (default provider if None)

    Returns:
        Patch bound to ``base_original`` by hash
    """
    result = UnitDiffEngine(provider=provider).extract_patch(base_original, user_modified)
    return Patch(
        version=PATCH_VERSION,
        base_hash=create_hash(base_original),
        created_at=_timestamp(),
        edits=result.edits,
        metadata=metadata,
    )


# =============================================================================
# Anchoring
# =============================================================================

def _neighbours(units: Sequence[SemanticUnit], position: int) -> tuple[str, str]:
    before = units[position - 1].content if position > 0 else ""
    after = units[position + 1].content if position + 1 < len(units) else ""
    return before, after


def find_anchor(
    edit: Edit,
    units: Sequence[SemanticUnit],
    exclude: Collection[int] = ()
) -> Optional[SemanticUnit]:
    """
    Locate the unit an edit targets in a new base.

    Tries, in order: the anchor hash; the hash of the edit's old content;
    the unit whose text is most similar to the old content (above 0.6);
    and finally a unit whose neighbours contain the edit's anchor context.

    Args:
        edit: Edit to relocate
        units: Units of the new base, in order
        exclude: Unit indexes already claimed by other edits

    Returns:
        The anchor unit, or None when nothing matches
    """
    candidates = [unit for unit in units if unit.index not in exclude]

    if edit.anchor:
        for unit in candidates:
            if unit.hash == edit.anchor:
                return unit

    if edit.old_content:
        content_hash = unit_hash(edit.old_content)
        for unit in candidates:
            if unit.hash == content_hash:
                return unit

        best_match: Optional[SemanticUnit] = None
        best_similarity = FUZZY_ANCHOR_THRESHOLD
        old_lower = edit.old_content.lower()
        for unit in candidates:
            similarity = levenshtein_similarity(old_lower, unit.content.lower())
            if similarity > best_similarity:
                best_similarity = similarity
                best_match = unit
        if best_match is not None:
            return best_match

    context = edit.anchor_context
    if context is not None and (context.before or context.after):
        for unit in candidates:
            before, after = _neighbours(units, unit.index)
            if ((not context.before or context.before in before)
                    and (not context.after or context.after in after)):
                return unit

    return None


def has_context_changed(
    edit: Edit,
    units: Sequence[SemanticUnit],
    anchor: SemanticUnit
) -> bool:
    """Whether the anchor's neighbours drifted from the edit's recorded context."""
    context = edit.anchor_context
    if context is None:
        return False

    before, after = _neighbours(units, anchor.index)
    before_similarity = (
        levenshtein_similarity(context.before, before[-CONTEXT_CHARS:])
        if context.before else 1.0
    )
    after_similarity = (
        levenshtein_similarity(context.after, after[:CONTEXT_CHARS])
        if context.after else 1.0
    )
    return (before_similarity < CONTEXT_DRIFT_THRESHOLD
            or after_similarity < CONTEXT_DRIFT_THRESHOLD)


# =============================================================================
# Application
# =============================================================================

def _inserted_unit(content: str, index: int, prefix: str, suffix: str) -> SemanticUnit:
    return SemanticUnit(
        content=content,
        hash=unit_hash(content),
        index=index,
        start=0,
        end=len(content),
        prefix=prefix,
        suffix=suffix,
    )


def apply_patch(new_base: str, patch: Patch) -> PatchApplicationResult:
    """
    Replay a patch on a new base text.

    Never raises for edits that cannot be placed. Each edit lands in exactly
    one bucket: ``applied``, ``adapted`` (placed, but its surroundings
    changed) or ``failed`` (no anchor found).

    Args:
        new_base: The new base text
        patch: Patch generated against an earlier base

    Returns:
        PatchApplicationResult with the patched text and per-edit buckets
    """
    units = segment(new_base).units
    result = PatchApplicationResult(result="")

    replacements: dict[int, Edit] = {}
    deletions: set[int] = set()
    insertions: dict[int, list[Edit]] = {}
    leading: list[Edit] = []
    claimed: set[int] = set()

    for edit in patch.edits:
        if edit.operation == EditOperation.INSERT and not edit.anchor:
            leading.append(edit)
            result.applied.append(edit)
            continue

        if edit.operation == EditOperation.MOVE:
            logger.warning("Move edits are not supported; skipping")
            result.failed.append(edit)
            continue

        exclude = claimed if edit.operation in (EditOperation.REPLACE, EditOperation.DELETE) else ()
        anchor = find_anchor(edit, units, exclude)
        if anchor is None:
            logger.warning(f"No anchor found for {edit.operation.value} edit {edit.anchor!r}")
            result.failed.append(edit)
            continue

        context_changed = has_context_changed(edit, units, anchor)

        if edit.operation == EditOperation.REPLACE:
            if context_changed:
                edit = dataclasses.replace(
                    edit, confidence=edit.confidence * ADAPTED_CONFIDENCE_FACTOR
                )
            replacements[anchor.index] = edit
            claimed.add(anchor.index)
        elif edit.operation == EditOperation.DELETE:
            deletions.add(anchor.index)
            claimed.add(anchor.index)
        elif edit.operation == EditOperation.INSERT:
            insertions.setdefault(anchor.index, []).append(edit)
        else:
            result.applied.append(edit)
            continue

        if context_changed:
            result.adapted.append(edit)
        else:
            result.applied.append(edit)

    final_units: list[SemanticUnit] = []

    for edit in leading:
        if edit.new_content:
            final_units.append(_inserted_unit(edit.new_content, len(final_units), "", " "))

    for unit in units:
        if unit.index not in deletions:
            replacement = replacements.get(unit.index)
            if replacement is not None and replacement.new_content:
                final_units.append(dataclasses.replace(
                    unit,
                    content=replacement.new_content,
                    hash=unit_hash(replacement.new_content),
                    end=unit.start + len(replacement.new_content),
                ))
            else:
                final_units.append(unit)

        # Insertions stay even when their anchor was deleted
        for edit in insertions.get(unit.index, []):
            if edit.new_content:
                final_units.append(_inserted_unit(edit.new_content, len(final_units), " ", ""))

    result.result = ''.join(unit.text for unit in final_units).strip()
    return result


# =============================================================================
# Serialization
# =============================================================================

def serialize_patch(patch: Patch) -> str:
    """Serialize a patch to indented JSON."""
    return json.dumps(patch_to_dict(patch), indent=2, ensure_ascii=False)


def deserialize_patch(text: str) -> Patch:
    """
    Parse a patch from JSON.

    Raises:
        PatchValidationError: if the JSON is malformed or required fields
            are missing
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PatchValidationError(f"Invalid patch: {e}") from e
    return patch_from_dict(data)


def is_patch_compatible(patch: Patch, base: str) -> bool:
    """Whether a patch was generated against exactly this base text."""
    return patch.base_hash == create_hash(base)
