"""
JSON-ready dictionaries for core models.

Keys are camelCase to match the patch file format. Optional fields that are
unset are left out rather than written as null.
"""

from __future__ import annotations

from typing import Any, Optional

from prosemerge.core.errors import PatchValidationError
from prosemerge.core.models import (
    AnchorContext,
    CodeBlock,
    Conflict,
    ConflictMarker,
    DiffResult,
    Edit,
    EditOperation,
    EditPosition,
    Heading,
    ListItem,
    MergeResult,
    Patch,
    PatchApplicationResult,
    Resolution,
    SemanticUnit,
    UnitMetadata,
)


# =============================================================================
# Units
# =============================================================================

def metadata_to_dict(metadata: UnitMetadata) -> Optional[dict[str, Any]]:
    """Tagged form of unit metadata; None for plain prose."""
    if isinstance(metadata, Heading):
        return {'type': 'heading', 'level': metadata.level}
    if isinstance(metadata, ListItem):
        return {'type': 'list-item', 'ordered': metadata.ordered}
    if isinstance(metadata, CodeBlock):
        return {'type': 'code-block'}
    if isinstance(metadata, ConflictMarker):
        return {'type': 'conflict-marker', 'conflictId': metadata.conflict_id}
    return None


def unit_to_dict(unit: SemanticUnit) -> dict[str, Any]:
    data: dict[str, Any] = {
        'content': unit.content,
        'hash': unit.hash,
        'index': unit.index,
        'start': unit.start,
        'end': unit.end,
        'prefix': unit.prefix,
        'suffix': unit.suffix,
    }
    metadata = metadata_to_dict(unit.metadata)
    if metadata is not None:
        data['metadata'] = metadata
    return data


# =============================================================================
# Edits and Patches
# =============================================================================

def edit_to_dict(edit: Edit) -> dict[str, Any]:
    data: dict[str, Any] = {
        'operation': edit.operation.value,
        'anchor': edit.anchor,
    }
    if edit.anchor_context is not None:
        data['anchorContext'] = {
            'before': edit.anchor_context.before,
            'after': edit.anchor_context.after,
        }
    if edit.old_content is not None:
        data['oldContent'] = edit.old_content
    if edit.new_content is not None:
        data['newContent'] = edit.new_content
    if edit.position is not None:
        data['position'] = edit.position.value
    data['confidence'] = edit.confidence
    return data


def edit_from_dict(data: Any) -> Edit:
    """
    Build an Edit from its dictionary form.

    Raises:
        PatchValidationError: if the operation or position is unknown, or
            the edit is missing fields its operation requires
    """
    if not isinstance(data, dict):
        raise PatchValidationError("Invalid patch: edit must be an object")

    try:
        operation = EditOperation(data.get('operation'))
    except ValueError:
        raise PatchValidationError(
            f"Invalid patch: unknown edit operation {data.get('operation')!r}"
        ) from None

    position = None
    if data.get('position') is not None:
        try:
            position = EditPosition(data['position'])
        except ValueError:
            raise PatchValidationError(
                f"Invalid patch: unknown edit position {data['position']!r}"
            ) from None

    anchor_context = None
    context = data.get('anchorContext')
    if isinstance(context, dict):
        anchor_context = AnchorContext(
            before=context.get('before', ''),
            after=context.get('after', ''),
        )

    try:
        return Edit(
            operation=operation,
            anchor=data.get('anchor') or '',
            anchor_context=anchor_context,
            old_content=data.get('oldContent'),
            new_content=data.get('newContent'),
            position=position,
            confidence=float(data.get('confidence', 1.0)),
        )
    except (TypeError, ValueError) as e:
        raise PatchValidationError(f"Invalid patch: {e}") from e


def patch_to_dict(patch: Patch) -> dict[str, Any]:
    data: dict[str, Any] = {
        'version': patch.version,
        'baseHash': patch.base_hash,
        'createdAt': patch.created_at,
        'edits': [edit_to_dict(edit) for edit in patch.edits],
    }
    if patch.metadata is not None:
        data['metadata'] = patch.metadata
    return data


def patch_from_dict(data: Any) -> Patch:
    """
    Build a Patch from its dictionary form.

    Raises:
        PatchValidationError: if the version or edits are missing, or any
            edit is invalid
    """
    if not isinstance(data, dict):
        raise PatchValidationError("Invalid patch: expected a JSON object")
    if not data.get('version'):
        raise PatchValidationError("Invalid patch: missing version")
    if not isinstance(data.get('edits'), list):
        raise PatchValidationError("Invalid patch: missing or invalid edits")

    metadata = data.get('metadata')
    if metadata is not None and not isinstance(metadata, dict):
        raise PatchValidationError("Invalid patch: metadata must be an object")

    return Patch(
        version=str(data['version']),
        base_hash=str(data.get('baseHash', '')),
        created_at=str(data.get('createdAt', '')),
        edits=[edit_from_dict(edit) for edit in data['edits']],
        metadata=metadata,
    )


# =============================================================================
# Results
# =============================================================================

def diff_result_to_dict(result: DiffResult) -> dict[str, Any]:
    stats = result.stats
    return {
        'edits': [edit_to_dict(edit) for edit in result.edits],
        'stats': {
            'kept': stats.kept,
            'inserted': stats.inserted,
            'deleted': stats.deleted,
            'replaced': stats.replaced,
            'moved': stats.moved,
        },
    }


def application_result_to_dict(result: PatchApplicationResult) -> dict[str, Any]:
    return {
        'result': result.result,
        'applied': [edit_to_dict(edit) for edit in result.applied],
        'failed': [edit_to_dict(edit) for edit in result.failed],
        'adapted': [edit_to_dict(edit) for edit in result.adapted],
    }


def conflict_to_dict(conflict: Conflict) -> dict[str, Any]:
    data: dict[str, Any] = {
        'id': conflict.id,
        'a': conflict.a,
        'b': conflict.b,
        'c': conflict.c,
        'context': {
            'before': conflict.context.before,
            'after': conflict.context.after,
        },
        'similarities': {
            'aToB': conflict.similarities.a_to_b,
            'aToC': conflict.similarities.a_to_c,
            'bToC': conflict.similarities.b_to_c,
        },
    }
    if conflict.suggestion is not None:
        data['suggestion'] = {
            'resolution': conflict.suggestion.resolution,
            'confidence': conflict.suggestion.confidence,
            'reason': conflict.suggestion.reason,
        }
    return data


def resolution_to_dict(resolution: Resolution) -> dict[str, Any]:
    return {
        'conflictId': resolution.conflict_id,
        'resolved': resolution.resolved,
        'source': resolution.source.value,
        'confidence': resolution.confidence,
    }


def merge_result_to_dict(result: MergeResult) -> dict[str, Any]:
    stats = result.stats
    return {
        'merged': result.merged,
        'conflicts': [conflict_to_dict(c) for c in result.conflicts],
        'resolutions': [resolution_to_dict(r) for r in result.resolutions],
        'stats': {
            'unchanged': stats.unchanged,
            'upgraded': stats.upgraded,
            'preserved': stats.preserved,
            'removed': stats.removed,
            'conflicts': stats.conflicts,
            'autoResolved': stats.auto_resolved,
        },
    }
