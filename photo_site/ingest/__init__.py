"""Photo ingestion: uploads, sidecar files, EXIF enrichment and table reloads."""

from .exif_reader import ExifEnrichmentError, enrich_record, read_exif_fields
from .pipeline import ReloadInProgressError, reload_in_progress, reload_tables
from .sidecar import SIDECAR_NAME, SidecarError, is_sidecar, read_sidecar, write_sidecar
from .uploads import (
    PhotoNotFoundError,
    create_photo,
    discard_staged,
    parse_photo_id,
    stage_uploads,
    store_variants,
    variant_name,
)
from .walker import walk_files

__all__ = [
    "ExifEnrichmentError",
    "PhotoNotFoundError",
    "ReloadInProgressError",
    "SIDECAR_NAME",
    "SidecarError",
    "create_photo",
    "discard_staged",
    "enrich_record",
    "is_sidecar",
    "parse_photo_id",
    "read_exif_fields",
    "read_sidecar",
    "reload_in_progress",
    "reload_tables",
    "stage_uploads",
    "store_variants",
    "variant_name",
    "walk_files",
    "write_sidecar",
]
