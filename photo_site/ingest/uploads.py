from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
import uuid
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from photo_site.core.models import VARIANT_NAMES, PhotoMetadata

from .sidecar import SIDECAR_NAME, read_sidecar, sidecar_path, write_sidecar

logger = logging.getLogger(__name__)

STAGING_PREFIX = "upload-"


class PhotoNotFoundError(LookupError):
    """No identity folder with a sidecar exists for the requested photo id."""


def parse_photo_id(value: str) -> str:
    """Validate a photo identity; only canonical UUID strings name folders."""
    try:
        parsed = uuid.UUID(value)
    except (ValueError, AttributeError, TypeError) as exc:
        raise ValueError(f"Invalid photo id: {value!r}") from exc
    if str(parsed) != value.lower():
        raise ValueError(f"Invalid photo id: {value!r}")
    return str(parsed)


def variant_name(filename: str) -> str:
    """``raw.jpg`` -> ``raw``; everything from the first dot on is dropped."""
    return filename.split(".")[0]


def _chown(path: Path, owner: Optional[tuple[int, int]]) -> None:
    if owner is None:
        return
    try:
        os.chown(path, owner[0], owner[1])
    except OSError as exc:
        logger.error("Failed to chown %s: %s", path, exc)


def create_photo(
    photo_root: str | Path,
    tags: dict[str, bool],
    owner: Optional[tuple[int, int]] = None,
) -> str:
    """Create a new photo identity folder holding its initial sidecar."""
    photo_id = str(uuid.uuid4())
    folder = Path(photo_root) / photo_id
    folder.mkdir(parents=False, exist_ok=False)
    _chown(folder, owner)

    record = PhotoMetadata(
        id=photo_id,
        tags=tags,
        uploadTimestamp=int(time.time() * 1000),
    )
    path = folder / SIDECAR_NAME
    write_sidecar(path, record)
    _chown(path, owner)
    logger.info("Created new metadata file at %s", path)
    return photo_id


def stage_uploads(
    files: Iterable[tuple[Optional[str], BinaryIO]],
    staging_dir: str | Path,
) -> list[Path]:
    """Write incoming upload streams into a fresh per-request staging folder."""
    staging_root = Path(staging_dir)
    staging_root.mkdir(parents=True, exist_ok=True)
    request_dir = Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=staging_root))
    staged: list[Path] = []
    try:
        for filename, stream in files:
            name = Path(filename or "").name
            if not name or name in {".", ".."}:
                raise ValueError("Uploaded file has no usable name")
            target = request_dir / name
            with target.open("wb") as out:
                shutil.copyfileobj(stream, out)
            staged.append(target)
    except BaseException:
        shutil.rmtree(request_dir, ignore_errors=True)
        raise
    if not staged:
        request_dir.rmdir()
    return staged


def discard_staged(staged: Iterable[Path]) -> None:
    """Delete staged uploads and the request folders that held them."""
    folders: set[Path] = set()
    for path in staged:
        folders.add(path.parent)
        if not path.exists():
            continue
        try:
            path.unlink()
            logger.warning("Removed staged upload %s", path)
        except OSError as exc:
            logger.error("Failed to remove staged upload %s: %s", path, exc)
    for folder in folders:
        shutil.rmtree(folder, ignore_errors=True)


def store_variants(
    photo_root: str | Path,
    photo_id: str,
    staged: Iterable[Path],
    owner: Optional[tuple[int, int]] = None,
) -> dict[str, str]:
    """Move staged files into the photo's folder and record them in its sidecar.

    Uploading a file with the same name again replaces both the file and the
    sidecar entry. Returns the recorded ``variant -> filename`` pairs.
    """
    photo_id = parse_photo_id(photo_id)
    path = sidecar_path(photo_root, photo_id)
    if not path.is_file():
        raise PhotoNotFoundError(f"No photo with id {photo_id}")

    staged = list(staged)
    for source in staged:
        variant = variant_name(source.name)
        if not variant or variant in PhotoMetadata.model_fields or source.name == SIDECAR_NAME:
            raise ValueError(f"Uploaded file name {source.name!r} cannot name a variant")

    document = read_sidecar(path).to_document()
    recorded: dict[str, str] = {}
    for source in staged:
        destination = path.parent / source.name
        shutil.move(str(source), str(destination))
        _chown(destination, owner)
        logger.debug("Wrote uploaded photo to %s", destination)

        variant = variant_name(source.name)
        if variant not in VARIANT_NAMES:
            logger.warning("Photo %s received unconventional variant %r", photo_id, variant)
        document[variant] = source.name
        recorded[variant] = source.name

    write_sidecar(path, PhotoMetadata.model_validate(document))
    logger.info("Wrote out metadata information to %s", path)
    return recorded
