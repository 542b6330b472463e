from __future__ import annotations

import math
import numbers
from pathlib import Path
from typing import Optional

from PIL import Image

from photo_site.core.models import ExifFields, PhotoMetadata

EXIF_IFD_TAG = 34665  # ExifOffset
MAKE_TAG = 271
MODEL_TAG = 272
LENS_SPECIFICATION_TAG = 42034
LENS_MODEL_TAG = 42036
EXPOSURE_TIME_TAG = 33434
FNUMBER_TAG = 33437
ISO_TAG = 34855  # PhotographicSensitivity
FOCAL_LENGTH_TAG = 37386


class ExifEnrichmentError(RuntimeError):
    """The raw image of a photo is missing, unreadable or lacks an EXIF field."""


def _to_float(value: object) -> Optional[float]:
    if isinstance(value, tuple) and len(value) == 2 and value[1]:
        return float(value[0]) / float(value[1])
    if isinstance(value, (int, float)) or isinstance(value, numbers.Real):
        return float(value)
    return None


def _text(tags: dict, tag: int) -> Optional[str]:
    value = tags.get(tag)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value or "").strip("\x00 ")
    return text or None


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


def _spec_value(value: object) -> Optional[str]:
    number = _to_float(value)
    if number is None or math.isnan(number) or number <= 0:
        return None
    return _format_number(number)


def format_lens_spec(spec: object) -> Optional[str]:
    """Render a LensSpecification tuple as ``24-70mm f/4`` or ``18-55mm f/3.5-5.6``.

    The tag holds min/max focal length then min/max f-number; undefined
    entries print as ``?``.
    """
    if not isinstance(spec, tuple) or len(spec) != 4:
        return None
    short, long, wide, narrow = (_spec_value(v) for v in spec)
    if short is None and long is None:
        return None
    text = short or "?"
    if long and long != short:
        text += f"-{long}"
    text += "mm"
    if wide or narrow:
        text += f" f/{wide or '?'}"
        if narrow and narrow != wide:
            text += f"-{narrow}"
    return text


def format_shutter_speed(seconds: float) -> str:
    """Render an exposure time the way cameras print it: 1/250, 0.5 or 2."""
    if 0 < seconds < 1:
        denominator = 1 / seconds
        if abs(denominator - round(denominator)) < 0.01:
            return f"1/{round(denominator)}"
        return _format_number(seconds)
    return _format_number(seconds)


def _read_tags(path: Path) -> dict:
    with Image.open(path) as img:
        exif = img.getexif()
        tags = dict(exif)
        tags.update(exif.get_ifd(EXIF_IFD_TAG))
    return tags


def read_exif_fields(path: str | Path) -> ExifFields:
    """Extract the camera, lens and exposure fields shown in the gallery."""
    try:
        tags = _read_tags(Path(path))
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ExifEnrichmentError(f"Could not read EXIF from {path}: {exc}") from exc

    make = _text(tags, MAKE_TAG)
    model = _text(tags, MODEL_TAG)
    lens = format_lens_spec(tags.get(LENS_SPECIFICATION_TAG)) or _text(tags, LENS_MODEL_TAG)
    focal_length = _to_float(tags.get(FOCAL_LENGTH_TAG))
    f_number = _to_float(tags.get(FNUMBER_TAG))
    exposure_time = _to_float(tags.get(EXPOSURE_TIME_TAG))
    iso = tags.get(ISO_TAG)
    if isinstance(iso, tuple):
        iso = iso[0] if iso else None
    if iso is not None and not isinstance(iso, (int, str)):
        iso = str(iso)

    missing = [
        name
        for name, value in (
            ("Make", make),
            ("Model", model),
            ("LensSpecification", lens),
            ("FocalLength", focal_length),
            ("FNumber", f_number),
            ("ExposureTime", exposure_time),
            ("ISO", iso),
        )
        if value is None
    ]
    if missing:
        raise ExifEnrichmentError(f"{path} is missing EXIF fields: {', '.join(missing)}")

    return ExifFields(
        camera=f"{make} {model}",
        lens=lens,
        focalLength=str(focal_length).split(".")[0] + " mm",
        fNumber=f"f/{_format_number(f_number)}",
        shutterSpeed=format_shutter_speed(exposure_time),
        iso=iso,
    )


def enrich_record(record: PhotoMetadata, photo_root: str | Path) -> PhotoMetadata:
    """Return a copy of ``record`` carrying the EXIF fields of its raw image.

    Nothing is applied unless every field could be read.
    """
    raw_name = record.variant("raw")
    if not raw_name:
        raise ExifEnrichmentError(f"Photo {record.id} has no raw image recorded")
    fields = read_exif_fields(Path(photo_root) / record.id / raw_name)
    return record.model_copy(update=fields.model_dump())
