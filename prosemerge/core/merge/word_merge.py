"""
Word-level three-way merge.

When both sides changed the same sentence, the sentence is merged token by
token: B's and C's word diffs against A are replayed together so that only
insertions competing for the same spot become conflicts.

A = original/ancestor
B = new/upgraded
C = user's customized version
"""

from __future__ import annotations

from dataclasses import dataclass, field

from prosemerge.core.diff.word_diff import iter_diff_runs, tokenize
from prosemerge.core.models import ConflictRange, WordMergeResult


def format_inline_conflict(b: str, c: str) -> str:
    """Inline marker for competing word insertions."""
    return f"<<<{b}|{c}>>>"


@dataclass
class _SideChanges:
    """One side's changes, keyed by A token position."""
    deleted: set[int] = field(default_factory=set)
    insert_after: dict[int, list[str]] = field(default_factory=dict)
    insert_at_start: list[str] = field(default_factory=list)


def _collect_changes(tokens_a: list[str], tokens_x: list[str]) -> _SideChanges:
    """Map a word diff of A against one side onto A token positions."""
    changes = _SideChanges()
    a_idx = 0

    for deleted, inserted, kept in iter_diff_runs(tokens_a, tokens_x):
        for _ in deleted:
            changes.deleted.add(a_idx)
            a_idx += 1
        if inserted:
            if a_idx == 0:
                changes.insert_at_start = inserted
            else:
                changes.insert_after[a_idx - 1] = inserted
        if kept is not None:
            a_idx += 1

    return changes


def word_merge_3way(a: str, b: str, c: str) -> WordMergeResult:
    """
    Merge three versions of a sentence word by word.

    A token of A survives unless either side deleted it. At each insertion
    point, text inserted by only one side (or identical text inserted by
    both) is kept; different text inserted by both sides becomes an inline
    ``<<<b|c>>>`` conflict.

    Args:
        a: Original/ancestor text
        b: Upgraded text
        c: Customized text

    Returns:
        WordMergeResult; conflict ranges index the merged token stream
    """
    tokens_a = tokenize(a)
    b_changes = _collect_changes(tokens_a, tokenize(b))
    c_changes = _collect_changes(tokens_a, tokenize(c))

    merged: list[str] = []
    ranges: list[ConflictRange] = []

    def emit_insertions(b_tokens: list[str], c_tokens: list[str]) -> None:
        b_text = ''.join(b_tokens)
        c_text = ''.join(c_tokens)
        if b_text and c_text and b_text != c_text:
            start = len(merged)
            merged.append(format_inline_conflict(b_text, c_text))
            ranges.append(ConflictRange(start=start, end=start + 1, b=b_text, c=c_text))
        elif b_tokens:
            merged.extend(b_tokens)
        else:
            merged.extend(c_tokens)

    emit_insertions(b_changes.insert_at_start, c_changes.insert_at_start)

    for i, token in enumerate(tokens_a):
        if i not in b_changes.deleted and i not in c_changes.deleted:
            merged.append(token)
        emit_insertions(
            b_changes.insert_after.get(i, []),
            c_changes.insert_after.get(i, []),
        )

    return WordMergeResult(
        merged=''.join(merged),
        has_conflict=bool(ranges),
        conflict_ranges=ranges,
    )


def can_merge_without_conflict(a: str, b: str, c: str) -> bool:
    """Whether B's and C's changes to A touch disjoint words."""
    return not word_merge_3way(a, b, c).has_conflict
