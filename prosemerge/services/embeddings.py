"""
Embedding providers.

A provider maps a batch of strings to fixed-length vectors. Alignment only
relies on the ``EmbeddingProvider`` protocol, so any object with ``name``,
``dimension`` and ``embed`` can be plugged in.

Backends:
- sentence-transformers model (``ml`` extra), loaded lazily
- Character-frequency vectors, dependency free
- Caching wrapper memoizing vectors by exact text
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from enum import Enum
from typing import Optional, Protocol, Sequence, runtime_checkable

from prosemerge.core.errors import ProseMergeError


logger = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "all-MiniLM-L6-v2"
DEFAULT_CACHE_SIZE = 1000


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns texts into vectors of one fixed dimension."""

    @property
    def name(self) -> str: ...

    @property
    def dimension(self) -> int: ...

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per text, in input order."""
        ...


class EmbeddingBackend(Enum):
    """Built-in provider backends."""
    ML = "ml"
    CHAR_FREQUENCY = "char-frequency"

    @classmethod
    def from_string(cls, value: str) -> 'EmbeddingBackend':
        for backend in cls:
            if backend.value == value:
                return backend
        raise ValueError(f"Unknown embedding backend: {value}")


# =============================================================================
# Providers
# =============================================================================

class CharFrequencyEmbeddingProvider:
    """
    Character-frequency vectors over the ASCII range.

    Text is lowercased, code points below 128 are counted and the counts are
    scaled to unit length. Useful without a model, and deterministic.
    """

    name = "char-frequency-fallback"
    dimension = 128

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._embed_one(text) for text in texts]

    def _embed_one(self, text: str) -> list[float]:
        counts = [0.0] * self.dimension
        for char in text.lower():
            code = ord(char)
            if code < self.dimension:
                counts[code] += 1

        norm = sum(c * c for c in counts) ** 0.5 or 1.0
        return [c / norm for c in counts]


class SentenceTransformerEmbeddingProvider:
    """
    Sentence embeddings from a sentence-transformers model.

    The model is loaded on first use. Vectors are L2-normalised.
    """

    def __init__(self, model_name: str = DEFAULT_MODEL_NAME, device: Optional[str] = None):
        self.model_name = model_name
        self.device = device
        self._model = None

    @property
    def name(self) -> str:
        return f"sentence-transformers/{self.model_name}"

    @property
    def dimension(self) -> int:
        return int(self._load_model().get_sentence_embedding_dimension())

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        model = self._load_model()
        vectors = model.encode(
            list(texts),
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return vectors.tolist()

    def _load_model(self):
        if self._model is not None:
            return self._model

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ProseMergeError(
                "ML embeddings need sentence-transformers; install with "
                "'pip install prosemerge[ml]' or use the char-frequency backend"
            ) from e

        logger.info(f"Loading embedding model: {self.model_name}")
        self._model = SentenceTransformer(self.model_name, device=self.device)
        logger.info(f"Embedding model loaded: {self.model_name}")
        return self._model


# =============================================================================
# Caching
# =============================================================================

class EmbeddingCache:
    """
    Bounded map from exact text to vector.

    When full, the oldest entry is evicted. Reads do not refresh an entry's
    age.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_SIZE):
        self.max_size = max_size
        self._entries: OrderedDict[str, list[float]] = OrderedDict()

    def get(self, text: str) -> Optional[list[float]]:
        return self._entries.get(text)

    def set(self, text: str, embedding: list[float]) -> None:
        if text not in self._entries and len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[text] = embedding

    def has(self, text: str) -> bool:
        return text in self._entries

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class CachedEmbeddingProvider:
    """Wraps a provider, embedding only texts not already cached."""

    def __init__(self, provider: EmbeddingProvider, cache: Optional[EmbeddingCache] = None):
        self.provider = provider
        self.cache = cache if cache is not None else EmbeddingCache()

    @property
    def name(self) -> str:
        return f"cached-{self.provider.name}"

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        results: list[Optional[list[float]]] = [None] * len(texts)
        missing_indices: list[int] = []
        missing_texts: list[str] = []

        for i, text in enumerate(texts):
            cached = self.cache.get(text)
            if cached is not None:
                results[i] = cached
            else:
                missing_indices.append(i)
                missing_texts.append(text)

        if missing_texts:
            vectors = self.provider.embed(missing_texts)
            for i, text, vector in zip(missing_indices, missing_texts, vectors):
                self.cache.set(text, vector)
                results[i] = vector

        return results  # type: ignore[return-value]


# =============================================================================
# Default Provider
# =============================================================================

def create_provider(
    backend: EmbeddingBackend = EmbeddingBackend.ML,
    model_name: str = DEFAULT_MODEL_NAME,
    cache_size: int = DEFAULT_CACHE_SIZE
) -> CachedEmbeddingProvider:
    """Build a cached provider for a backend."""
    if backend == EmbeddingBackend.ML:
        inner: EmbeddingProvider = SentenceTransformerEmbeddingProvider(model_name)
    else:
        inner = CharFrequencyEmbeddingProvider()
    return CachedEmbeddingProvider(inner, EmbeddingCache(cache_size))


# Process-wide default; configure once at startup when calls run concurrently.
_default_provider: Optional[EmbeddingProvider] = None


def get_default_provider() -> EmbeddingProvider:
    """Get the default provider, creating the cached ML provider on first use."""
    global _default_provider
    if _default_provider is None:
        _default_provider = create_provider(EmbeddingBackend.ML)
    return _default_provider


def set_default_provider(provider: Optional[EmbeddingProvider]) -> None:
    """Replace the default provider; ``None`` restores lazy creation."""
    global _default_provider
    _default_provider = provider


def is_ml_embeddings_active() -> bool:
    """Whether the current default provider is (or wraps) the ML backend."""
    if _default_provider is None:
        return False
    return "sentence-transformers" in _default_provider.name
