"""Tests for patch generation, application and serialization."""

from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from prosemerge.core.errors import PatchValidationError
from prosemerge.core.models import (
    AnchorContext,
    Edit,
    EditOperation,
    EditPosition,
    Patch,
)
from prosemerge.core.patch import (
    PATCH_VERSION,
    apply_patch,
    deserialize_patch,
    find_anchor,
    generate_patch,
    is_patch_compatible,
    serialize_patch,
)
from prosemerge.core.segmentation import segment, unit_hash
from prosemerge.services.hashing import create_hash

ABC = "Abc cab."
ABC_EDITED = "Abc cad."
DEF = "Def fed."
GHI = "Ghi hig."
KLM = "Klm mlk."

BASE = f"{ABC} {DEF}"


def patch_of(*edits: Edit) -> Patch:
    return Patch(version=PATCH_VERSION, base_hash="", created_at="", edits=list(edits))


def test_generate_patch_header() -> None:
    patch = generate_patch(BASE, f"{ABC} {GHI} {DEF}", metadata={"author": "me"})

    assert patch.version == "1.0.0"
    assert patch.base_hash == create_hash(BASE)
    assert patch.created_at.endswith("Z")
    assert patch.metadata == {"author": "me"}
    assert [e.operation for e in patch.edits] == [EditOperation.INSERT]
    assert is_patch_compatible(patch, BASE)
    assert not is_patch_compatible(patch, f"{BASE} ")


@pytest.mark.parametrize("modified", [
    f"{ABC} {GHI} {DEF}",
    f"{ABC_EDITED} {DEF}",
    ABC,
    f"{GHI} {ABC} {DEF}",
    BASE,
])
def test_patch_reproduces_modification_on_same_base(modified: str) -> None:
    patch = generate_patch(BASE, modified)
    result = apply_patch(BASE, patch)

    assert result.result == modified
    assert result.failed == []
    assert result.adapted == []


def test_patch_carries_insertion_to_new_base() -> None:
    patch = generate_patch(BASE, f"{ABC} {GHI} {DEF}")

    result = apply_patch(f"{BASE} {KLM}", patch)

    assert result.result == f"{ABC} {GHI} {DEF} {KLM}"
    assert result.fully_applied


def test_missing_anchor_fails_without_raising() -> None:
    edit = Edit(EditOperation.DELETE, anchor="deadbeef", old_content="Zzz.")

    result = apply_patch(ABC, patch_of(edit))

    assert result.result == ABC
    assert result.failed == [edit]
    assert result.applied == []


def test_fuzzy_anchor_on_reworded_base() -> None:
    edit = Edit(
        EditOperation.REPLACE,
        anchor=unit_hash(ABC),
        old_content=ABC,
        new_content=ABC_EDITED,
    )

    result = apply_patch(f"Abc cabs. {DEF}", patch_of(edit))

    assert result.result == f"{ABC_EDITED} {DEF}"
    assert result.applied == [edit]


def test_drifted_context_is_adapted_with_lower_confidence() -> None:
    edit = Edit(
        EditOperation.REPLACE,
        anchor=unit_hash(ABC),
        anchor_context=AnchorContext(before="Qqq rrr sss.", after=""),
        old_content=ABC,
        new_content=ABC_EDITED,
        confidence=0.9,
    )

    result = apply_patch(f"{DEF} {ABC}", patch_of(edit))

    assert result.result == f"{DEF} {ABC_EDITED}"
    assert len(result.adapted) == 1
    assert result.adapted[0].confidence == pytest.approx(0.63)
    assert not result.fully_applied


def test_context_locates_anchor_when_content_is_unknown() -> None:
    edit = Edit(
        EditOperation.DELETE,
        anchor="00000000",
        anchor_context=AnchorContext(before=ABC, after=GHI),
        old_content="",
    )

    result = apply_patch(f"{ABC} {DEF} {GHI}", patch_of(edit))

    assert result.result == f"{ABC} {GHI}"
    assert result.applied == [edit]


def test_move_edits_fail() -> None:
    edit = Edit(EditOperation.MOVE, anchor=unit_hash(ABC))

    result = apply_patch(ABC, patch_of(edit))

    assert result.failed == [edit]
    assert result.result == ABC


def test_keep_edits_count_as_applied() -> None:
    edit = Edit(EditOperation.KEEP, anchor=unit_hash(ABC), old_content=ABC)
    assert apply_patch(ABC, patch_of(edit)).applied == [edit]


def test_every_edit_lands_in_one_bucket() -> None:
    edits = [
        Edit(EditOperation.INSERT, anchor=unit_hash(ABC), new_content=GHI),
        Edit(EditOperation.DELETE, anchor="nope", old_content="Nothing alike at all."),
        Edit(EditOperation.MOVE, anchor=unit_hash(DEF)),
    ]

    result = apply_patch(BASE, patch_of(*edits))

    assert result.edit_count == len(edits)
    assert result.result == f"{ABC} {GHI} {DEF}"


def test_two_replacements_of_duplicate_sentences_claim_different_units() -> None:
    edits = [
        Edit(EditOperation.REPLACE, anchor=unit_hash(ABC), old_content=ABC, new_content=GHI),
        Edit(EditOperation.REPLACE, anchor=unit_hash(ABC), old_content=ABC, new_content=KLM),
    ]

    result = apply_patch(f"{ABC} {ABC}", patch_of(*edits))

    assert result.result == f"{GHI} {KLM}"


def test_insertion_survives_deleted_anchor() -> None:
    edits = [
        Edit(EditOperation.DELETE, anchor=unit_hash(ABC), old_content=ABC),
        Edit(EditOperation.INSERT, anchor=unit_hash(ABC), new_content=GHI),
    ]

    result = apply_patch(BASE, patch_of(*edits))

    assert result.result == f"{GHI} {DEF}"


def test_find_anchor_respects_exclusions() -> None:
    units = segment(f"{ABC} {ABC}").units
    edit = Edit(EditOperation.DELETE, anchor=unit_hash(ABC), old_content=ABC)

    assert find_anchor(edit, units).index == 0
    assert find_anchor(edit, units, exclude={0}).index == 1


def test_serialized_patch_is_camel_case_json() -> None:
    patch = generate_patch(BASE, f"{ABC_EDITED} {DEF}")

    data = json.loads(serialize_patch(patch))

    assert set(data) == {"version", "baseHash", "createdAt", "edits"}
    edit = data["edits"][0]
    assert edit["operation"] == "replace"
    assert edit["oldContent"] == ABC
    assert edit["newContent"] == ABC_EDITED
    assert edit["anchorContext"] == {"before": "", "after": DEF}


@pytest.mark.parametrize("text, message", [
    ("{not json", "Invalid patch"),
    ("[]", "expected a JSON object"),
    ('{"edits": []}', "missing version"),
    ('{"version": "1.0.0"}', "missing or invalid edits"),
    ('{"version": "1.0.0", "edits": "nope"}', "missing or invalid edits"),
    ('{"version": "1.0.0", "edits": [{"operation": "shuffle"}]}', "unknown edit operation"),
    ('{"version": "1.0.0", "edits": [{"operation": "replace", "oldContent": "x"}]}',
     "requires old and new content"),
    ('{"version": "1.0.0", "edits": [{"operation": "insert", "newContent": "x",'
     ' "position": "sideways"}]}', "unknown edit position"),
    ('{"version": "1.0.0", "edits": [], "metadata": [1]}', "metadata must be an object"),
])
def test_deserialize_rejects_invalid_patches(text: str, message: str) -> None:
    with pytest.raises(PatchValidationError, match=message):
        deserialize_patch(text)


def test_validation_error_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        deserialize_patch("{}")


texts = st.text(max_size=20)
contexts = st.none() | st.builds(AnchorContext, before=texts, after=texts)
positions = st.none() | st.sampled_from(list(EditPosition))
confidences = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)

edits = st.one_of(
    st.builds(Edit, operation=st.just(EditOperation.INSERT), anchor=texts,
              anchor_context=contexts, new_content=texts, position=positions,
              confidence=confidences),
    st.builds(Edit, operation=st.just(EditOperation.DELETE), anchor=st.text(min_size=1),
              anchor_context=contexts, old_content=texts, confidence=confidences),
    st.builds(Edit, operation=st.just(EditOperation.REPLACE), anchor=texts,
              anchor_context=contexts, old_content=texts, new_content=texts,
              confidence=confidences),
    st.builds(Edit, operation=st.just(EditOperation.KEEP), anchor=texts,
              old_content=st.none() | texts, confidence=confidences),
)

patches = st.builds(
    Patch,
    version=st.text(min_size=1, max_size=8),
    base_hash=st.text(max_size=8),
    created_at=st.text(max_size=24),
    edits=st.lists(edits, max_size=5),
    metadata=st.none() | st.dictionaries(st.text(max_size=5), st.integers() | texts, max_size=3),
)


@given(patches)
def test_serialization_round_trips(patch: Patch) -> None:
    assert deserialize_patch(serialize_patch(patch)) == patch
