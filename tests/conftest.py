"""Shared fixtures: a deterministic embedding provider installed for every test."""

from __future__ import annotations

from typing import Sequence

import pytest

from prosemerge.services import embeddings
from prosemerge.services.embeddings import set_default_provider


class LetterFrequencyProvider:
    """26-dimensional a-z letter counts, scaled to unit length."""

    name = "letter-frequency"
    dimension = 26

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._embed_one(text) for text in texts]

    def _embed_one(self, text: str) -> list[float]:
        counts = [0.0] * self.dimension
        for char in text.lower():
            if 'a' <= char <= 'z':
                counts[ord(char) - ord('a')] += 1
        norm = sum(c * c for c in counts) ** 0.5 or 1.0
        return [c / norm for c in counts]


@pytest.fixture(autouse=True)
def letter_provider():
    """Install the letter-frequency provider as the default, then restore."""
    previous = embeddings._default_provider
    provider = LetterFrequencyProvider()
    set_default_provider(provider)
    yield provider
    set_default_provider(previous)
