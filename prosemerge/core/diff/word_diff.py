"""
Word, token and sentence level string diffs.

All three granularities share one LCS-based walk; they differ only in how
the inputs are tokenized. ``tokenize`` is also the tokenizer used by the
word-level three-way merge, so both see the same token boundaries.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Sequence, TypeVar


T = TypeVar('T')

WORD_TOKEN = re.compile(r'\w+|\W+')
SEMANTIC_TOKEN = re.compile(r"\s+|[A-Za-z]+(?:'[a-z]+)?|[0-9]+(?:\.[0-9]+)?|\w|[^\s\w]")
SENTENCE_TOKEN = re.compile(r'[^.!?]*[.!?]+\s*|[^.!?]+')


class WordOpType(Enum):
    """Kinds of word diff operations."""
    KEEP = "keep"
    DELETE = "delete"
    INSERT = "insert"
    REPLACE = "replace"


class DiffGranularity(Enum):
    """Token size used by ``simple_diff``."""
    TOKEN = "token"
    WORD = "word"
    SENTENCE = "sentence"


@dataclass(frozen=True)
class WordDiffOp:
    """
    One operation of a string diff.

    For REPLACE, ``content`` is the new text and ``old_content`` the text it
    replaces.
    """
    op_type: WordOpType
    content: str
    old_content: Optional[str] = None


def tokenize(text: str) -> list[str]:
    """Split text into alternating runs of word and non-word characters."""
    return WORD_TOKEN.findall(text)


def tokenize_semantic(text: str) -> list[str]:
    """
    Split text into subword-like tokens.

    Whitespace runs, words with an optional apostrophe suffix, numbers with
    an optional decimal part, and single punctuation marks.
    """
    return SEMANTIC_TOKEN.findall(text)


def split_sentences_simple(text: str) -> list[str]:
    """Split text after runs of sentence punctuation, keeping trailing space."""
    return SENTENCE_TOKEN.findall(text)


def lcs(a: Sequence[T], b: Sequence[T]) -> list[T]:
    """Longest common subsequence of two sequences."""
    m, n = len(a), len(b)
    dp = [[0] * (n + 1) for _ in range(m + 1)]

    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if a[i - 1] == b[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    result: list[T] = []
    i, j = m, n
    while i > 0 and j > 0:
        if a[i - 1] == b[j - 1]:
            result.append(a[i - 1])
            i -= 1
            j -= 1
        elif dp[i - 1][j] > dp[i][j - 1]:
            i -= 1
        else:
            j -= 1

    result.reverse()
    return result


def iter_diff_runs(
    a: Sequence[T],
    b: Sequence[T]
) -> Iterator[tuple[list[T], list[T], Optional[T]]]:
    """
    Walk two sequences along their longest common subsequence.

    Yields ``(deleted, inserted, kept)`` triples: the tokens of ``a`` and of
    ``b`` that precede the next common token, then that common token
    (``None`` once the common subsequence is exhausted).
    """
    common = lcs(a, b)
    ai = bi = ci = 0

    while ai < len(a) or bi < len(b):
        deleted: list[T] = []
        while ai < len(a) and (ci >= len(common) or a[ai] != common[ci]):
            deleted.append(a[ai])
            ai += 1

        inserted: list[T] = []
        while bi < len(b) and (ci >= len(common) or b[bi] != common[ci]):
            inserted.append(b[bi])
            bi += 1

        kept: Optional[T] = None
        if ci < len(common):
            kept = common[ci]
            ai += 1
            bi += 1
            ci += 1

        yield deleted, inserted, kept


def diff_sequences(a: Sequence[str], b: Sequence[str]) -> list[WordDiffOp]:
    """
    Diff two token sequences.

    A deletion run directly followed by an insertion run becomes a single
    REPLACE.
    """
    ops: list[WordDiffOp] = []
    for deleted, inserted, kept in iter_diff_runs(a, b):
        if deleted and inserted:
            ops.append(WordDiffOp(WordOpType.REPLACE, ''.join(inserted), ''.join(deleted)))
        elif deleted:
            ops.append(WordDiffOp(WordOpType.DELETE, ''.join(deleted)))
        elif inserted:
            ops.append(WordDiffOp(WordOpType.INSERT, ''.join(inserted)))
        if kept is not None:
            ops.append(WordDiffOp(WordOpType.KEEP, kept))
    return ops


def word_diff(original: str, modified: str) -> list[WordDiffOp]:
    """Diff two strings word by word (whitespace and punctuation are tokens)."""
    return diff_sequences(tokenize(original), tokenize(modified))


def token_diff(original: str, modified: str) -> list[WordDiffOp]:
    """Diff two strings by subword-like tokens."""
    return diff_sequences(tokenize_semantic(original), tokenize_semantic(modified))


def simple_diff(
    original: str,
    modified: str,
    granularity: DiffGranularity = DiffGranularity.WORD
) -> list[WordDiffOp]:
    """Diff two strings at token, word or sentence granularity."""
    if granularity == DiffGranularity.TOKEN:
        return token_diff(original, modified)
    if granularity == DiffGranularity.SENTENCE:
        return diff_sequences(split_sentences_simple(original), split_sentences_simple(modified))
    return word_diff(original, modified)
