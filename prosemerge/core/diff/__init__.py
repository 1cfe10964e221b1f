"""Diff engines: word/token/sentence string diffs and unit-level edit scripts."""

from prosemerge.core.diff.unit_diff import UnitDiffEngine, diff, extract_patch, summarize_diff
from prosemerge.core.diff.word_diff import (
    DiffGranularity,
    WordDiffOp,
    WordOpType,
    lcs,
    simple_diff,
    token_diff,
    tokenize,
    word_diff,
)

__all__ = [
    'UnitDiffEngine',
    'diff',
    'extract_patch',
    'summarize_diff',
    'DiffGranularity',
    'WordDiffOp',
    'WordOpType',
    'lcs',
    'simple_diff',
    'token_diff',
    'tokenize',
    'word_diff',
]
