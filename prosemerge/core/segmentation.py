"""
Text segmentation.

Splits raw text into semantic units at one of three granularities:
- Sentences (default), with abbreviation handling
- Paragraphs, at blank lines
- Markdown sections, at heading lines

Every unit records the exact whitespace around it so that
``reconstruct(segment(text).units)`` reproduces the input.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from prosemerge.core.models import (
    PLAIN,
    CodeBlock,
    Heading,
    ListItem,
    SegmentationResult,
    SemanticUnit,
    UnitMetadata,
)
from prosemerge.services.hashing import create_hash


# =============================================================================
# Patterns
# =============================================================================

SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+(?=[A-Z])|(?<=[.!?])(?=\s*\Z)|(?<=\n\n)')
PARAGRAPH_BOUNDARY = re.compile(r'\n\s*\n')
HEADING_LINE = re.compile(r'^#{1,6}\s')
CODE_FENCE_BLOCK = re.compile(r'```[\s\S]*?```')
CODE_PLACEHOLDER = re.compile('\x00CODE_BLOCK_(\\d+)\x00')

UNORDERED_ITEM = re.compile(r'^[-*+]\s')
ORDERED_ITEM = re.compile(r'^\d+\.\s')
STANDALONE_PRECEDER = re.compile(r'[\s,;:(]\Z')

ABBREVIATIONS = (
    "Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Sr.", "Jr.",
    "vs.", "etc.", "i.e.", "e.g.", "cf.", "al.",
    "Fig.", "fig.", "Vol.", "vol.", "No.", "no.", "pp.", "p.",
)


class Granularity(Enum):
    """Size of the units produced by segmentation."""
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"
    SECTION = "section"


@dataclass
class SegmentationOptions:
    """Options for segmentation."""
    granularity: Granularity = Granularity.SENTENCE
    preserve_markdown: bool = True  # Protect code fences and tag structure


# =============================================================================
# Hash Identity
# =============================================================================

_WHITESPACE_RUN = re.compile(r'\s+')
_NON_WORD = re.compile(r'[^\w\s]')


def normalize_for_hash(text: str) -> str:
    """Lowercase, collapse whitespace and strip punctuation."""
    result = _WHITESPACE_RUN.sub(' ', text.lower())
    result = _NON_WORD.sub('', result)
    return result.strip()


def unit_hash(content: str) -> str:
    """Identity hash of unit content; insensitive to case and punctuation."""
    return create_hash(normalize_for_hash(content))


# =============================================================================
# Splitters
# =============================================================================

def _ends_with_abbreviation(text: str) -> bool:
    """Check whether text ends with an abbreviation used as its own token."""
    for abbreviation in ABBREVIATIONS:
        if not text.endswith(abbreviation):
            continue
        before = text[:-len(abbreviation)]
        if not before or STANDALONE_PRECEDER.search(before):
            return True
    return False


def split_sentences(text: str) -> list[str]:
    """
    Split text at sentence boundaries.

    A boundary is sentence punctuation followed by whitespace and an
    uppercase letter, sentence punctuation at the end of the text, or a
    blank line. Pieces that end in a standalone abbreviation are joined with
    the piece that follows, keeping the original text between them.
    """
    spans: list[tuple[int, int]] = []
    position = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        spans.append((position, match.start()))
        position = match.end()
    spans.append((position, len(text)))

    sentences: list[str] = []
    buffer_start: Optional[int] = None
    buffer_end = 0

    for start, end in spans:
        if not text[start:end].strip():
            continue
        if buffer_start is None:
            buffer_start = start
        buffer_end = end

        if not _ends_with_abbreviation(text[buffer_start:buffer_end].rstrip()):
            sentences.append(text[buffer_start:buffer_end])
            buffer_start = None

    if buffer_start is not None:
        sentences.append(text[buffer_start:buffer_end])

    return sentences


def split_paragraphs(text: str) -> list[str]:
    """Split text at blank lines."""
    return [part for part in PARAGRAPH_BOUNDARY.split(text) if part.strip()]


def split_sections(text: str) -> list[str]:
    """
    Split markdown into sections.

    Each heading line starts a new section that runs until the next heading.
    """
    sections: list[str] = []
    current: list[str] = []

    for line in text.split('\n'):
        if HEADING_LINE.match(line) and current:
            sections.append('\n'.join(current))
            current = [line]
        else:
            current.append(line)

    if current:
        last = '\n'.join(current).strip()
        if last:
            sections.append(last)

    return sections


def _split_protecting_code(text: str, splitter: Callable[[str], list[str]]) -> list[str]:
    """Run a splitter with fenced code blocks swapped out for placeholders."""
    blocks: list[str] = []

    def _stash(match: re.Match) -> str:
        blocks.append(match.group(0))
        return f"\x00CODE_BLOCK_{len(blocks) - 1}\x00"

    def _restore(match: re.Match) -> str:
        index = int(match.group(1))
        return blocks[index] if index < len(blocks) else ""

    processed = CODE_FENCE_BLOCK.sub(_stash, text)
    return [CODE_PLACEHOLDER.sub(_restore, part) for part in splitter(processed)]


_SPLITTERS: dict[Granularity, Callable[[str], list[str]]] = {
    Granularity.SENTENCE: split_sentences,
    Granularity.PARAGRAPH: split_paragraphs,
    Granularity.SECTION: split_sections,
}


# =============================================================================
# Segmenter
# =============================================================================

def detect_metadata(content: str) -> UnitMetadata:
    """Classify trimmed unit content by its markdown shape."""
    if HEADING_LINE.match(content):
        level = len(content) - len(content.lstrip('#'))
        return Heading(level=level)
    if UNORDERED_ITEM.match(content):
        return ListItem(ordered=False)
    if ORDERED_ITEM.match(content):
        return ListItem(ordered=True)
    if content.startswith('```'):
        return CodeBlock()
    return PLAIN


class TextSegmenter:
    """
    Splits text into semantic units.

    Units carry their leading gap and surrounding whitespace as
    ``prefix``/``suffix``; any text after the last unit is appended to its
    suffix.
    """

    def __init__(self, options: Optional[SegmentationOptions] = None):
        self.options = options or SegmentationOptions()

    def segment(self, text: str) -> SegmentationResult:
        """
        Segment text into units.

        Args:
            text: Raw input text

        Returns:
            SegmentationResult; empty or whitespace-only input has no units
        """
        splitter = _SPLITTERS[self.options.granularity]
        if self.options.preserve_markdown:
            raw_parts = _split_protecting_code(text, splitter)
        else:
            raw_parts = splitter(text)

        units: list[SemanticUnit] = []
        offset = 0

        for raw in raw_parts:
            if not raw:
                continue
            idx = text.find(raw, offset)
            if idx == -1:
                continue

            stripped_left = raw.lstrip()
            leading = raw[:len(raw) - len(stripped_left)]
            content = stripped_left.rstrip()
            if not content:
                continue
            trailing = stripped_left[len(content):]

            units.append(SemanticUnit(
                content=content,
                hash=unit_hash(content),
                index=len(units),
                start=idx,
                end=idx + len(raw),
                prefix=text[offset:idx] + leading,
                suffix=trailing,
                metadata=detect_metadata(content) if self.options.preserve_markdown else PLAIN,
            ))
            offset = idx + len(raw)

        if units and offset < len(text):
            last = units[-1]
            units[-1] = dataclasses.replace(last, suffix=last.suffix + text[offset:])

        return SegmentationResult(units=units, original=text)


def segment(text: str, options: Optional[SegmentationOptions] = None) -> SegmentationResult:
    """Segment text with the given options (sentences by default)."""
    return TextSegmenter(options).segment(text)


def reconstruct(units: Sequence[SemanticUnit]) -> str:
    """
    Reassemble units into text.

    A single space is inserted between two units when neither the previous
    suffix nor the next prefix contains whitespace.
    """
    parts: list[str] = []
    previous: Optional[SemanticUnit] = None

    for unit in units:
        if previous is not None and parts:
            if not (_has_whitespace(previous.suffix) or _has_whitespace(unit.prefix)):
                parts.append(' ')
        parts.append(unit.text)
        previous = unit

    return ''.join(parts)


def _has_whitespace(text: str) -> bool:
    return any(char.isspace() for char in text)
