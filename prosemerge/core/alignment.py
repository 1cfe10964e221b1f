"""
Unit alignment.

Pairs the units of a source sequence with the units of a target sequence.

Strategies:
- Sequential: order-preserving dynamic program over unit similarities
- Semantic: greedy best-first matching that ignores order
- Hybrid: sequential, then deletion/insertion pairs that are similar
  enough are joined into a single modification (moved text)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from prosemerge.core.errors import ProseMergeError
from prosemerge.core.models import AlignedPair, AlignmentResult, PairType, SemanticUnit
from prosemerge.core.similarity import cosine_similarity_matrix
from prosemerge.services.embeddings import EmbeddingProvider, get_default_provider


logger = logging.getLogger(__name__)

MATCH_PENALTY = -0.5   # Score for pairing two dissimilar units
GAP_PENALTY = 0.1      # Cost of a deletion or insertion step
SEMANTIC_MATCH_THRESHOLD = 0.99


class AlignmentStrategy(Enum):
    """Available alignment strategies."""
    SEQUENTIAL = "sequential"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"


@dataclass
class AlignmentOptions:
    """Options for alignment."""
    strategy: AlignmentStrategy = AlignmentStrategy.HYBRID
    match_threshold: float = 0.75


class _Step(Enum):
    MATCH = "match"
    DELETE = "delete"
    INSERT = "insert"


class UnitAligner:
    """
    Aligns two unit sequences using embedding similarity.

    All unit contents are embedded in one batched call per alignment, source
    units first.
    """

    def __init__(
        self,
        options: Optional[AlignmentOptions] = None,
        provider: Optional[EmbeddingProvider] = None
    ):
        self.options = options or AlignmentOptions()
        self.provider = provider

    def align(
        self,
        source: Sequence[SemanticUnit],
        target: Sequence[SemanticUnit]
    ) -> AlignmentResult:
        """
        Align source units with target units.

        Args:
            source: Units of the earlier text
            target: Units of the later text

        Returns:
            AlignmentResult with pairs in document order
        """
        if not source and not target:
            return AlignmentResult(pairs=[])

        if not source:
            return AlignmentResult(
                pairs=[AlignedPair(None, unit, PairType.INSERTION) for unit in target],
                unmatched_target=list(target),
            )

        if not target:
            return AlignmentResult(
                pairs=[AlignedPair(unit, None, PairType.DELETION) for unit in source],
                unmatched_source=list(source),
            )

        matrix = self._similarity_matrix(source, target)
        strategy = self.options.strategy
        logger.debug(
            f"Aligning {len(source)} source units with {len(target)} target units "
            f"({strategy.value})"
        )

        if strategy == AlignmentStrategy.SEQUENTIAL:
            pairs = self._sequential(source, target, matrix)
        elif strategy == AlignmentStrategy.SEMANTIC:
            pairs = self._semantic(source, target, matrix)
        else:
            pairs = self._hybrid(source, target, matrix)

        return AlignmentResult(
            pairs=pairs,
            unmatched_source=[p.source for p in pairs if p.pair_type == PairType.DELETION],
            unmatched_target=[p.target for p in pairs if p.pair_type == PairType.INSERTION],
        )

    def _similarity_matrix(
        self,
        source: Sequence[SemanticUnit],
        target: Sequence[SemanticUnit]
    ) -> list[list[float]]:
        """Embed every unit in one call and compute pairwise similarities."""
        provider = self.provider or get_default_provider()
        texts = [unit.content for unit in source] + [unit.content for unit in target]
        vectors = provider.embed(texts)
        if len(vectors) != len(texts):
            raise ProseMergeError(
                f"Embedding provider {provider.name} returned {len(vectors)} vectors "
                f"for {len(texts)} texts"
            )

        matrix = cosine_similarity_matrix(vectors[:len(source)], vectors[len(source):])
        return matrix.tolist()

    # =========================================================================
    # Strategies
    # =========================================================================

    def _sequential(
        self,
        source: Sequence[SemanticUnit],
        target: Sequence[SemanticUnit],
        matrix: list[list[float]]
    ) -> list[AlignedPair]:
        """Order-preserving alignment by dynamic programming."""
        threshold = self.options.match_threshold
        m, n = len(source), len(target)

        dp = [[0.0] * (n + 1) for _ in range(m + 1)]
        steps = [[_Step.MATCH] * (n + 1) for _ in range(m + 1)]
        for i in range(1, m + 1):
            steps[i][0] = _Step.DELETE
        for j in range(1, n + 1):
            steps[0][j] = _Step.INSERT

        for i in range(1, m + 1):
            for j in range(1, n + 1):
                sim = matrix[i - 1][j - 1]
                match_score = dp[i - 1][j - 1] + (sim if sim >= threshold else MATCH_PENALTY)
                delete_score = dp[i - 1][j] - GAP_PENALTY
                insert_score = dp[i][j - 1] - GAP_PENALTY

                if match_score >= delete_score and match_score >= insert_score:
                    dp[i][j] = match_score
                    steps[i][j] = _Step.MATCH
                elif delete_score >= insert_score:
                    dp[i][j] = delete_score
                    steps[i][j] = _Step.DELETE
                else:
                    dp[i][j] = insert_score
                    steps[i][j] = _Step.INSERT

        pairs: list[AlignedPair] = []
        i, j = m, n
        while i > 0 or j > 0:
            step = steps[i][j]
            if step == _Step.MATCH and i > 0 and j > 0:
                sim = matrix[i - 1][j - 1]
                pair_type = PairType.MATCH if sim >= threshold else PairType.MODIFICATION
                pairs.append(AlignedPair(source[i - 1], target[j - 1], pair_type, sim))
                i -= 1
                j -= 1
            elif step == _Step.DELETE and i > 0:
                pairs.append(AlignedPair(source[i - 1], None, PairType.DELETION))
                i -= 1
            else:
                pairs.append(AlignedPair(None, target[j - 1], PairType.INSERTION))
                j -= 1

        pairs.reverse()
        return pairs

    def _semantic(
        self,
        source: Sequence[SemanticUnit],
        target: Sequence[SemanticUnit],
        matrix: list[list[float]]
    ) -> list[AlignedPair]:
        """Greedy best-first matching, each unit used at most once."""
        threshold = self.options.match_threshold
        candidates = [
            (sim, i, j)
            for i, row in enumerate(matrix)
            for j, sim in enumerate(row)
            if sim >= threshold
        ]
        candidates.sort(key=lambda c: c[0], reverse=True)

        pairs: list[AlignedPair] = []
        matched_source: set[int] = set()
        matched_target: set[int] = set()

        for sim, i, j in candidates:
            if i in matched_source or j in matched_target:
                continue
            pair_type = PairType.MATCH if sim >= SEMANTIC_MATCH_THRESHOLD else PairType.MODIFICATION
            pairs.append(AlignedPair(source[i], target[j], pair_type, sim))
            matched_source.add(i)
            matched_target.add(j)

        for i, unit in enumerate(source):
            if i not in matched_source:
                pairs.append(AlignedPair(unit, None, PairType.DELETION))
        for j, unit in enumerate(target):
            if j not in matched_target:
                pairs.append(AlignedPair(None, unit, PairType.INSERTION))

        pairs.sort(key=lambda p: p.sort_index)
        return pairs

    def _hybrid(
        self,
        source: Sequence[SemanticUnit],
        target: Sequence[SemanticUnit],
        matrix: list[list[float]]
    ) -> list[AlignedPair]:
        """
        Sequential alignment with move detection.

        Each deletion takes the most similar unclaimed insertion at or above
        the threshold. The joined modification takes the place of whichever
        of the two came first, and is dropped if an earlier pair already
        has the same (source hash, target hash) key.
        """
        threshold = self.options.match_threshold
        pairs: list[Optional[AlignedPair]] = list(self._sequential(source, target, matrix))

        insertion_slots = [
            slot for slot, pair in enumerate(pairs)
            if pair is not None and pair.pair_type == PairType.INSERTION
        ]
        source_pos = {id(unit): k for k, unit in enumerate(source)}
        target_pos = {id(unit): k for k, unit in enumerate(target)}
        claimed: set[int] = set()
        moved_slots: set[int] = set()

        for slot, pair in enumerate(pairs):
            if pair is None or pair.pair_type != PairType.DELETION:
                continue
            src_idx = source_pos[id(pair.source)]

            best_slot: Optional[int] = None
            best_sim = threshold
            for ins_slot in insertion_slots:
                if ins_slot in claimed:
                    continue
                tgt_idx = target_pos[id(pairs[ins_slot].target)]
                sim = matrix[src_idx][tgt_idx]
                if sim >= best_sim and (best_slot is None or sim > best_sim):
                    best_slot, best_sim = ins_slot, sim

            if best_slot is None:
                continue

            claimed.add(best_slot)
            moved = AlignedPair(
                pair.source,
                pairs[best_slot].target,  # type: ignore[union-attr]
                PairType.MODIFICATION,
                best_sim,
            )
            pairs[min(slot, best_slot)] = moved
            pairs[max(slot, best_slot)] = None
            moved_slots.add(min(slot, best_slot))

        if moved_slots:
            logger.debug(f"Detected {len(moved_slots)} moved unit(s)")

        seen: set[str] = set()
        result: list[AlignedPair] = []
        for slot, pair in enumerate(pairs):
            if pair is None:
                continue
            if slot in moved_slots and pair.key in seen:
                continue
            seen.add(pair.key)
            result.append(pair)
        return result


def align(
    source: Sequence[SemanticUnit],
    target: Sequence[SemanticUnit],
    options: Optional[AlignmentOptions] = None,
    provider: Optional[EmbeddingProvider] = None
) -> AlignmentResult:
    """Align two unit sequences (hybrid strategy by default)."""
    return UnitAligner(options, provider).align(source, target)
