"""Three-way merge: unit classification, word-level merge and conflict handling."""

from prosemerge.core.merge.conflict_resolver import (
    BatchConflictResolver,
    ConflictAnalyzer,
    ConflictMarkerParser,
    ConflictResolver,
    MarkerBlock,
    format_conflict_marker,
    try_auto_resolve,
)
from prosemerge.core.merge.three_way import (
    MergeOptions,
    ThreeWayMergeEngine,
    UnitChangeCase,
    classify_unit_change,
    has_conflicts,
    merge,
    resolve_conflict,
)
from prosemerge.core.merge.word_merge import (
    can_merge_without_conflict,
    format_inline_conflict,
    word_merge_3way,
)

__all__ = [
    # Engine
    'MergeOptions',
    'ThreeWayMergeEngine',
    'UnitChangeCase',
    'classify_unit_change',
    'has_conflicts',
    'merge',
    'resolve_conflict',
    # Conflicts
    'BatchConflictResolver',
    'ConflictAnalyzer',
    'ConflictMarkerParser',
    'ConflictResolver',
    'MarkerBlock',
    'format_conflict_marker',
    'try_auto_resolve',
    # Word level
    'can_merge_without_conflict',
    'format_inline_conflict',
    'word_merge_3way',
]
