"""Tests for the unit-level diff and patch extraction."""

from __future__ import annotations

from prosemerge.core.diff.unit_diff import (
    UnitDiffEngine,
    anchor_context,
    compute_stats,
    diff,
    extract_patch,
    summarize_diff,
)
from prosemerge.core.models import AnchorContext, Edit, EditOperation, EditPosition
from prosemerge.core.segmentation import segment, unit_hash

ABC = "Abc cab."
ABC_EDITED = "Abc cad."
DEF = "Def fed."
GHI = "Ghi hig."


def operations(result) -> list[EditOperation]:
    return [edit.operation for edit in result.edits]


def test_unchanged_text_is_all_keeps() -> None:
    result = diff(f"{ABC} {DEF}", f"{ABC} {DEF}")

    assert operations(result) == [EditOperation.KEEP, EditOperation.KEEP]
    assert not result.has_changes
    assert summarize_diff(result) == "2 unchanged"


def test_insertion() -> None:
    result = diff(f"{ABC} {DEF}", f"{ABC} {GHI} {DEF}")

    assert operations(result) == [EditOperation.KEEP, EditOperation.INSERT, EditOperation.KEEP]
    insert = result.edits[1]
    assert insert.new_content == GHI
    assert insert.anchor == ""
    assert insert.position == EditPosition.AFTER
    assert result.stats.inserted == 1
    assert summarize_diff(result) == "2 unchanged, 1 added"


def test_deletion_records_neighbour_context() -> None:
    result = diff(f"{ABC} {DEF} {GHI}", f"{ABC} {GHI}")

    delete = result.edits[1]
    assert delete.operation == EditOperation.DELETE
    assert delete.anchor == unit_hash(DEF)
    assert delete.old_content == DEF
    assert delete.anchor_context == AnchorContext(before=ABC, after=GHI)


def test_changed_sentence_is_replace() -> None:
    result = diff(f"{ABC} {DEF}", f"{ABC_EDITED} {DEF}")

    replace = result.edits[0]
    assert replace.operation == EditOperation.REPLACE
    assert (replace.old_content, replace.new_content) == (ABC, ABC_EDITED)
    assert replace.anchor == unit_hash(ABC)
    assert 0.75 <= replace.confidence < 1.0
    assert result.edits[1].operation == EditOperation.KEEP


def test_empty_texts() -> None:
    result = diff("", "")
    assert result.edits == []
    assert summarize_diff(result) == "No changes"


def test_extract_patch_drops_keeps_and_anchors_inserts() -> None:
    result = extract_patch(f"{ABC} {DEF}", f"{ABC} {GHI} {DEF}")

    assert operations(result) == [EditOperation.INSERT]
    assert result.edits[0].anchor == unit_hash(ABC)
    assert result.stats.kept == 2


def test_extract_patch_leading_insert_has_no_anchor() -> None:
    result = extract_patch(ABC, f"{GHI} {ABC}")

    assert operations(result) == [EditOperation.INSERT]
    assert result.edits[0].anchor == ""


def test_engine_uses_given_provider(letter_provider) -> None:
    class Constant:
        name = "constant"
        dimension = 2

        def embed(self, texts):
            return [[0.0, 1.0] for _ in texts]

    result = UnitDiffEngine(provider=Constant()).diff(ABC, GHI)

    assert letter_provider.calls == []
    assert operations(result) == [EditOperation.REPLACE]


def test_anchor_context_truncates_neighbours() -> None:
    long_sentence = "Word " * 20 + "end."
    units = segment(f"{long_sentence} {ABC} {long_sentence}").units

    context = anchor_context(units, 1)

    assert len(context.before) == 50
    assert context.before == long_sentence[-50:]
    assert context.after == long_sentence[:50]


def test_compute_stats_counts_moves() -> None:
    stats = compute_stats([
        Edit(EditOperation.MOVE, anchor="x"),
        Edit(EditOperation.KEEP, anchor="y"),
    ])
    assert (stats.moved, stats.kept, stats.total_changes) == (1, 1, 1)
