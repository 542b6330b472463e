from __future__ import annotations

import io
import json
import uuid
from pathlib import Path

import pytest

from photo_site.ingest import (
    PhotoNotFoundError,
    create_photo,
    discard_staged,
    parse_photo_id,
    stage_uploads,
    store_variants,
    variant_name,
)


def _sidecar(photo_root: Path, photo_id: str) -> dict:
    return json.loads((photo_root / photo_id / "metadata.json").read_text())


def test_create_photo_writes_initial_sidecar(photo_root: Path) -> None:
    tags = {"wildlife": True, "bird": True}
    first = create_photo(photo_root, tags)
    second = create_photo(photo_root, tags)

    assert first != second
    assert str(uuid.UUID(first)) == first
    record = _sidecar(photo_root, first)
    assert record["tags"] == tags
    assert record["id"] == first
    assert isinstance(record["uploadTimestamp"], int)
    assert set(record) == {"tags", "id", "uploadTimestamp"}


def test_stage_and_store_variants(photo_root: Path, tmp_path: Path) -> None:
    photo_id = create_photo(photo_root, {"bird": True})
    staging = tmp_path / "staging"
    staged = stage_uploads(
        [("raw.jpg", io.BytesIO(b"raw")), ("small_thumb.webp", io.BytesIO(b"thumb"))], staging
    )

    recorded = store_variants(photo_root, photo_id, staged)
    discard_staged(staged)

    assert recorded == {"raw": "raw.jpg", "small_thumb": "small_thumb.webp"}
    record = _sidecar(photo_root, photo_id)
    assert record["raw"] == "raw.jpg"
    assert record["small_thumb"] == "small_thumb.webp"
    assert (photo_root / photo_id / "raw.jpg").read_bytes() == b"raw"
    assert list(staging.iterdir()) == []


def test_uploading_same_variant_twice_keeps_last(photo_root: Path, tmp_path: Path) -> None:
    photo_id = create_photo(photo_root, {})
    for content in (b"first", b"second"):
        staged = stage_uploads([("raw.jpg", io.BytesIO(content))], tmp_path / "staging")
        store_variants(photo_root, photo_id, staged)

    record = _sidecar(photo_root, photo_id)
    assert record["raw"] == "raw.jpg"
    assert (photo_root / photo_id / "raw.jpg").read_bytes() == b"second"
    assert sorted(p.name for p in (photo_root / photo_id).iterdir()) == ["metadata.json", "raw.jpg"]


def test_discard_staged_removes_everything(tmp_path: Path) -> None:
    staging = tmp_path / "staging"
    staged = stage_uploads(
        [("raw.jpg", io.BytesIO(b"x")), ("full.jpg", io.BytesIO(b"y"))], staging
    )
    discard_staged(staged)
    assert list(staging.rglob("*")) == []


def test_stage_uploads_strips_directories_from_names(tmp_path: Path) -> None:
    staged = stage_uploads([("../../evil/raw.jpg", io.BytesIO(b"x"))], tmp_path / "staging")
    assert [p.name for p in staged] == ["raw.jpg"]
    assert staged[0].parent.parent == tmp_path / "staging"


def test_stage_uploads_rejects_nameless_files(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        stage_uploads([("", io.BytesIO(b"x"))], tmp_path / "staging")
    assert list((tmp_path / "staging").iterdir()) == []


def test_store_variants_for_unknown_photo(photo_root: Path) -> None:
    with pytest.raises(PhotoNotFoundError):
        store_variants(photo_root, str(uuid.uuid4()), [])


@pytest.mark.parametrize("bad_name", ["tags.jpg", "id.png", "metadata.json", ".hidden"])
def test_store_variants_rejects_reserved_names(
    photo_root: Path, tmp_path: Path, bad_name: str
) -> None:
    photo_id = create_photo(photo_root, {})
    staged = stage_uploads([(bad_name, io.BytesIO(b"x"))], tmp_path / "staging")
    with pytest.raises(ValueError):
        store_variants(photo_root, photo_id, staged)
    assert _sidecar(photo_root, photo_id)["tags"] == {}
    assert sorted(p.name for p in (photo_root / photo_id).iterdir()) == ["metadata.json"]


@pytest.mark.parametrize("value", ["../etc", "not-a-uuid", ""])
def test_parse_photo_id_rejects_non_uuids(value: str) -> None:
    with pytest.raises(ValueError):
        parse_photo_id(value)


def test_parse_photo_id_normalises_case() -> None:
    value = str(uuid.uuid4())
    assert parse_photo_id(value.upper()) == value


@pytest.mark.parametrize(
    ("filename", "expected"),
    [("raw.jpg", "raw"), ("big_thumb.webp", "big_thumb"), ("raw.v2.jpg", "raw"), ("full", "full")],
)
def test_variant_name(filename: str, expected: str) -> None:
    assert variant_name(filename) == expected
