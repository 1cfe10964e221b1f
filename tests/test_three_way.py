"""Tests for the sentence-level three-way merge."""

from __future__ import annotations

import pytest

from prosemerge.core.errors import ConflictNotFoundError
from prosemerge.core.merge.three_way import (
    MergeOptions,
    ThreeWayMergeEngine,
    UnitChangeCase,
    classify_unit_change,
    has_conflicts,
    merge,
    resolve_conflict,
)
from prosemerge.core.models import (
    AlignedPair,
    Conflict,
    ConflictStrategy,
    PairType,
    Resolution,
    ResolutionSource,
)
from prosemerge.core.segmentation import segment

# Letter-disjoint sentences; the edited variants differ from ABC by one letter.
ABC = "Abc cab."
ABC_B = "Abc cad."
ABC_C = "Abc cae."
DEF = "Def fed."
GHI = "Ghi hig."
KLM = "Klm mlk."

CONFLICT_MARKER = f"<<<<<<< B\n{ABC_B}\n=======\n{ABC_C}\n>>>>>>> C"


def strategy(value: ConflictStrategy) -> MergeOptions:
    return MergeOptions(conflict_strategy=value)


@pytest.mark.parametrize("text", [
    f"{ABC} {DEF}",
    "# Title\n\nSome prose here. More prose follows.",
    "Single",
    "Hello world. Hello world.",
])
def test_merging_identical_versions_returns_the_text(text: str) -> None:
    result = merge(text, text, text)

    assert result.merged == text.strip()
    assert result.conflicts == []
    assert result.stats.unchanged == len(segment(text).units)


def test_empty_merge() -> None:
    result = merge("", "", "")

    assert result.merged == ""
    assert not has_conflicts(result)


def test_upgrade_adds_sentence() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC} {DEF} {GHI}", f"{ABC} {DEF}")

    assert result.merged == f"{ABC} {DEF} {GHI}"
    assert result.stats.upgraded == 1
    assert result.stats.unchanged == 2


def test_customization_sentence_is_preserved() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC} {DEF}", f"{ABC} {KLM} {DEF}")

    assert KLM in result.merged
    assert ABC in result.merged and DEF in result.merged
    assert result.stats.preserved == 1


def test_upgrade_edit_is_taken() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC_B} {DEF}", f"{ABC} {DEF}")

    assert result.merged == f"{ABC_B} {DEF}"
    assert (result.stats.upgraded, result.stats.unchanged) == (1, 1)


def test_customization_edit_is_kept() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC} {DEF}", f"{ABC_C} {DEF}")

    assert result.merged == f"{ABC_C} {DEF}"
    assert result.stats.preserved == 1


def test_both_sides_add_the_same_sentence_once() -> None:
    result = merge(ABC, f"{ABC} {DEF}", f"{ABC} {DEF}")

    assert result.merged == f"{ABC} {DEF}"
    assert result.merged.count(DEF) == 1


def test_upgrade_and_customization_both_land() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC_B} {DEF}", f"{ABC} {DEF} {KLM}")

    assert ABC_B in result.merged
    assert KLM in result.merged
    assert ABC not in result.merged


@pytest.mark.parametrize("conflict_strategy, expected, source", [
    (ConflictStrategy.PREFER_A, ABC, ResolutionSource.ANCESTOR),
    (ConflictStrategy.PREFER_B, ABC_B, ResolutionSource.BASE),
    (ConflictStrategy.PREFER_C, ABC_C, ResolutionSource.USER),
    (ConflictStrategy.CONCATENATE, f"{ABC_B}\n{ABC_C}", ResolutionSource.MERGED),
])
def test_strategy_settles_sentence_conflict(conflict_strategy, expected, source) -> None:
    result = merge(ABC, ABC_B, ABC_C, strategy(conflict_strategy))

    assert result.merged == expected
    assert result.conflicts == []
    assert [r.source for r in result.resolutions] == [source]
    assert (result.stats.conflicts, result.stats.auto_resolved) == (1, 1)


LONG_SENTENCE = (
    "The committee reviewed the proposal {} before the annual meeting and agreed "
    "that the budget, the schedule and the staffing plan would all need another "
    "round of revision by the end of the quarter."
)


def test_near_identical_long_sentences_honour_the_strategy() -> None:
    a = LONG_SENTENCE.format("carefully")
    b = LONG_SENTENCE.format("quickly")
    c = LONG_SENTENCE.format("thoroughly")

    preferred = merge(a, b, c, strategy(ConflictStrategy.PREFER_B))
    assert preferred.merged == b
    assert [(r.source, r.confidence) for r in preferred.resolutions] == [
        (ResolutionSource.BASE, 0.7)
    ]

    deferred = merge(a, b, c, strategy(ConflictStrategy.DEFER))
    assert deferred.merged == f"<<<<<<< B\n{b}\n=======\n{c}\n>>>>>>> C"
    assert len(deferred.conflicts) == 1
    assert (deferred.stats.conflicts, deferred.stats.auto_resolved) == (1, 0)


def test_merge_is_deterministic() -> None:
    first = merge(ABC, ABC_B, ABC_C)
    second = merge(ABC, ABC_B, ABC_C)
    assert first.merged == second.merged


def test_defer_leaves_a_marker() -> None:
    result = merge(ABC, ABC_B, ABC_C, strategy(ConflictStrategy.DEFER))

    assert result.merged == CONFLICT_MARKER
    assert has_conflicts(result)
    conflict = result.conflicts[0]
    assert conflict.id == "conflict-1"
    assert (conflict.a, conflict.b, conflict.c) == (ABC, ABC_B, ABC_C)
    assert conflict.similarities.b_to_c == 0.0
    assert result.get_conflict("conflict-1") is conflict


def test_resolve_conflict_replaces_marker() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC_B} {DEF}", f"{ABC_C} {DEF}", strategy(ConflictStrategy.DEFER))

    resolved = resolve_conflict(result, "conflict-1", "Abc bca.")

    assert resolved.merged == f"Abc bca. {DEF}"
    assert resolved.conflicts == []
    assert resolved.resolutions[-1] == Resolution(
        "conflict-1", "Abc bca.", ResolutionSource.EXTERNAL, 1.0
    )
    assert has_conflicts(result)


def test_resolve_unknown_conflict_fails() -> None:
    result = merge(ABC, ABC_B, ABC_C, strategy(ConflictStrategy.DEFER))

    with pytest.raises(ConflictNotFoundError, match="Invalid conflict ID: conflict-9"):
        resolve_conflict(result, "conflict-9", "x")
    with pytest.raises(ValueError):
        resolve_conflict(result, "conflict-9", "x")


def test_disjoint_word_edits_merge_under_defer() -> None:
    a = "The quick brown fox."
    result = merge(a, "The fast brown fox.", "The quick red fox.", strategy(ConflictStrategy.DEFER))

    assert result.merged == "The fast red fox."
    assert result.conflicts == []
    assert result.resolutions[-1].source == ResolutionSource.MERGED
    assert result.resolutions[-1].confidence == 0.85
    assert result.stats.auto_resolved == 1


def test_disjoint_word_edits_fall_back_to_strategy() -> None:
    a = "The quick brown fox."
    result = merge(a, "The fast brown fox.", "The quick red fox.")
    assert result.merged == "The quick red fox."


def test_upgrade_deletion_against_customized_edit() -> None:
    a = f"{ABC} {DEF}"
    b = DEF
    c = f"{ABC_C} {DEF}"

    prefer_c = merge(a, b, c)
    prefer_b = merge(a, b, c, strategy(ConflictStrategy.PREFER_B))

    assert ABC_C in prefer_c.merged and DEF in prefer_c.merged
    assert prefer_c.resolutions[0].source == ResolutionSource.USER
    assert prefer_b.merged == DEF


def test_resolver_settles_deferred_conflicts() -> None:
    class Resolver:
        def __init__(self) -> None:
            self.seen: list[Conflict] = []

        def resolve(self, conflict: Conflict) -> Resolution:
            self.seen.append(conflict)
            return Resolution(conflict.id, "Resolved text.", ResolutionSource.EXTERNAL, 0.8)

    resolver = Resolver()
    options = MergeOptions(conflict_strategy=ConflictStrategy.DEFER, resolver=resolver)

    result = merge(ABC, ABC_B, ABC_C, options)

    assert result.merged == "Resolved text."
    assert result.conflicts == []
    assert [c.id for c in resolver.seen] == ["conflict-1"]


def test_batch_resolver_gets_all_conflicts_at_once() -> None:
    class BatchResolver:
        def __init__(self) -> None:
            self.batches: list[int] = []

        def resolve(self, conflict: Conflict) -> Resolution:
            raise AssertionError("single resolve should not be used")

        def resolve_batch(self, conflicts) -> list[Resolution]:
            self.batches.append(len(conflicts))
            return [Resolution(c.id, c.b, ResolutionSource.BASE, 1.0) for c in conflicts]

    resolver = BatchResolver()
    options = MergeOptions(conflict_strategy=ConflictStrategy.DEFER, resolver=resolver)

    result = ThreeWayMergeEngine(options).merge(ABC, ABC_B, ABC_C)

    assert resolver.batches == [1]
    assert result.merged == ABC_B


def test_resolver_is_not_called_without_conflicts() -> None:
    class Resolver:
        def resolve(self, conflict: Conflict) -> Resolution:
            raise AssertionError("no conflicts to resolve")

    result = merge(ABC, ABC, ABC_C, MergeOptions(resolver=Resolver()))
    assert result.merged == ABC_C


def test_classify_unit_change() -> None:
    a_unit = segment(ABC).units[0]
    changed = segment(ABC_B).units[0]

    same = AlignedPair(a_unit, a_unit, PairType.MATCH, 1.0)
    edited = AlignedPair(a_unit, changed, PairType.MATCH, 0.91)
    deleted = AlignedPair(a_unit, None, PairType.DELETION)

    assert classify_unit_change(a_unit, same, same) == UnitChangeCase.UNCHANGED
    assert classify_unit_change(a_unit, edited, same) == UnitChangeCase.UPGRADED
    assert classify_unit_change(a_unit, same, deleted) == UnitChangeCase.PRESERVED
    assert classify_unit_change(a_unit, edited, deleted) == UnitChangeCase.CONFLICT
    assert classify_unit_change(a_unit, None, None) == UnitChangeCase.UNCHANGED


def test_stats_render() -> None:
    result = merge(f"{ABC} {DEF}", f"{ABC} {DEF} {GHI}", f"{ABC} {DEF}")
    assert str(result.stats) == (
        "unchanged=2 upgraded=1 preserved=0 removed=0 conflicts=0 auto_resolved=0"
    )
