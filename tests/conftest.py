from __future__ import annotations

import json
from pathlib import Path

import mongomock
import pytest
from PIL import Image

from sqlalchemy import select

from photo_site.store import MetadataStore, session_factory

EXIF_TAGS = {
    271: "Nikon",  # Make
    272: "Z 6",  # Model
    42036: "NIKKOR Z 24-70mm f/4 S",  # LensModel
    33434: (1, 250),  # ExposureTime
    33437: (4, 1),  # FNumber
    34855: 400,  # ISO
    37386: (35, 1),  # FocalLength
}


class ClosingCounter:
    """Hands out one shared mongomock client and counts close() calls."""

    def __init__(self) -> None:
        self.client = mongomock.MongoClient()
        self.opened = 0
        self.closed = 0

    def __call__(self, uri: str) -> "ClosingCounter":
        self.opened += 1
        return self

    def __getitem__(self, name: str):
        return self.client[name]

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def mongo() -> ClosingCounter:
    return ClosingCounter()


@pytest.fixture
def store(mongo: ClosingCounter) -> MetadataStore:
    return MetadataStore("mongodb://unit-test", client_factory=mongo)


@pytest.fixture
def photo_root(tmp_path: Path) -> Path:
    root = tmp_path / "photography"
    root.mkdir()
    return root


@pytest.fixture
def exif_tags() -> dict:
    return dict(EXIF_TAGS)


@pytest.fixture
def read_rows():
    """Load every row of a log table, oldest first."""

    def _read_rows(engine, model) -> list:
        with session_factory(engine)() as session:
            return list(session.scalars(select(model).order_by(model.id)))

    return _read_rows


@pytest.fixture
def make_image():
    def _make_image(path: Path, exif_tags: dict | None = None) -> Path:
        img = Image.new("RGB", (10, 10), color="red")
        exif = Image.Exif()
        for tag, value in (EXIF_TAGS if exif_tags is None else exif_tags).items():
            exif[tag] = value
        img.save(path, exif=exif)
        return path

    return _make_image


@pytest.fixture
def make_photo(photo_root: Path, make_image):
    """Lay out an identity folder with a sidecar and, optionally, a raw image."""

    def _make_photo(photo_id: str, tags: dict, raw: str | None = "raw.jpg", **extra) -> Path:
        folder = photo_root / photo_id
        folder.mkdir()
        record = {"id": photo_id, "tags": tags, "uploadTimestamp": 1700000000000, **extra}
        if raw:
            make_image(folder / raw)
            record["raw"] = raw
        (folder / "metadata.json").write_text(json.dumps(record))
        return folder

    return _make_photo
