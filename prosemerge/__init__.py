"""
prosemerge: semantic diff, patch and three-way merge for prose.

Texts are split into semantic units (sentences by default), aligned by
embedding similarity and merged unit by unit, falling back to a word-level
merge when both sides changed the same sentence.
"""

__version__ = "0.1.0"

from prosemerge.core.alignment import AlignmentOptions, AlignmentStrategy, align
from prosemerge.core.diff.unit_diff import diff, extract_patch, summarize_diff
from prosemerge.core.errors import (
    ConflictNotFoundError,
    DimensionMismatchError,
    PatchValidationError,
    ProseMergeError,
)
from prosemerge.core.merge.three_way import (
    MergeOptions,
    has_conflicts,
    merge,
    resolve_conflict,
)
from prosemerge.core.merge.word_merge import word_merge_3way
from prosemerge.core.models import (
    ConflictStrategy,
    DiffResult,
    Edit,
    MergeResult,
    Patch,
    PatchApplicationResult,
    SemanticUnit,
)
from prosemerge.core.patch import (
    apply_patch,
    deserialize_patch,
    generate_patch,
    is_patch_compatible,
    serialize_patch,
)
from prosemerge.core.segmentation import SegmentationOptions, reconstruct, segment
from prosemerge.services.embeddings import (
    CharFrequencyEmbeddingProvider,
    EmbeddingProvider,
    get_default_provider,
    set_default_provider,
)
from prosemerge.services.hashing import create_hash

__all__ = [
    '__version__',
    # Operations
    'align',
    'apply_patch',
    'create_hash',
    'deserialize_patch',
    'diff',
    'extract_patch',
    'generate_patch',
    'has_conflicts',
    'is_patch_compatible',
    'merge',
    'reconstruct',
    'resolve_conflict',
    'segment',
    'serialize_patch',
    'summarize_diff',
    'word_merge_3way',
    # Options
    'AlignmentOptions',
    'AlignmentStrategy',
    'ConflictStrategy',
    'MergeOptions',
    'SegmentationOptions',
    # Models
    'DiffResult',
    'Edit',
    'MergeResult',
    'Patch',
    'PatchApplicationResult',
    'SemanticUnit',
    # Embeddings
    'CharFrequencyEmbeddingProvider',
    'EmbeddingProvider',
    'get_default_provider',
    'set_default_provider',
    # Errors
    'ConflictNotFoundError',
    'DimensionMismatchError',
    'PatchValidationError',
    'ProseMergeError',
]
