from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from photo_site.core.models import PhotoMetadata

SIDECAR_NAME = "metadata.json"
SIDECAR_SUFFIX = ".json"
# a.json is too short to be a sidecar, abc.json is long enough
MIN_SIDECAR_NAME_LENGTH = len(SIDECAR_SUFFIX) + 2


class SidecarError(ValueError):
    """A metadata sidecar could not be read or does not describe a photo."""


def is_sidecar(path: str | Path) -> bool:
    name = Path(path).name
    return len(name) >= MIN_SIDECAR_NAME_LENGTH and name.lower().endswith(SIDECAR_SUFFIX)


def sidecar_path(photo_root: str | Path, photo_id: str) -> Path:
    return Path(photo_root) / photo_id / SIDECAR_NAME


def read_sidecar(path: str | Path) -> PhotoMetadata:
    """Parse a sidecar file into a PhotoMetadata record."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SidecarError(f"Unreadable sidecar {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise SidecarError(f"Sidecar {path} does not hold a JSON object")
    try:
        return PhotoMetadata.model_validate(payload)
    except ValidationError as exc:
        raise SidecarError(f"Sidecar {path} is missing expected fields: {exc}") from exc


def write_sidecar(path: str | Path, record: PhotoMetadata) -> None:
    Path(path).write_text(json.dumps(record.to_document()), encoding="utf-8")
