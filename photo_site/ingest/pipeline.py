from __future__ import annotations

import logging
import threading
from pathlib import Path

from pymongo.errors import PyMongoError

from photo_site.core.models import PhotoMetadata, ReloadReport
from photo_site.store.documents import MetadataStore

from .exif_reader import ExifEnrichmentError, enrich_record
from .sidecar import SidecarError, is_sidecar, read_sidecar, write_sidecar
from .walker import walk_files

logger = logging.getLogger(__name__)

_reload_lock = threading.Lock()


class ReloadInProgressError(RuntimeError):
    """Another reload of the photography tables is already running."""


def merge_tags(tag_index: dict[str, bool], record: PhotoMetadata) -> None:
    for tag in record.tags:
        tag_index[tag] = True


def process_sidecar(
    path: Path,
    photo_root: Path,
    store: MetadataStore,
    tag_index: dict[str, bool],
    report: ReloadReport,
) -> None:
    """Parse, enrich, rewrite and upsert one sidecar file."""
    record = read_sidecar(path)
    merge_tags(tag_index, record)

    try:
        record = enrich_record(record, photo_root)
        report.enriched += 1
    except ExifEnrichmentError as exc:
        logger.warning("Upserting photo %s without EXIF fields: %s", record.id, exc)
        report.unenriched += 1

    write_sidecar(path, record)
    store.upsert_photo(record.to_document())
    report.upserted += 1
    logger.info("Upserted photo with id %s", record.id)


def reload_tables(
    photo_root: str | Path,
    store: MetadataStore,
    *,
    rebuild: bool = True,
) -> ReloadReport:
    """Rebuild the photos and tags collections from the sidecars under ``photo_root``.

    Per-file failures are logged, counted in the report and skipped. A root
    that cannot be enumerated aborts the run before the store is touched.
    Only one reload may run per process at a time.
    """
    if not _reload_lock.acquire(blocking=False):
        raise ReloadInProgressError("A reload is already in progress")
    try:
        root = Path(photo_root)
        if not root.exists():
            raise FileNotFoundError(f"Photo root not found: {root}")
        if not root.is_dir():
            raise NotADirectoryError(f"Photo root is not a directory: {root}")
        # Surfaces permission errors on the root itself.
        next(root.iterdir(), None)

        logger.info("Reloading photography tables from %s", root)
        if rebuild:
            store.rebuild_collections()

        report = ReloadReport()
        tag_index: dict[str, bool] = {}

        def _directory_failed(exc: OSError) -> None:
            report.record_error(exc.filename, exc)

        for path in walk_files(root, on_error=_directory_failed):
            if not is_sidecar(path):
                continue
            report.sidecars += 1
            try:
                process_sidecar(path, root, store, tag_index, report)
            except (SidecarError, OSError, PyMongoError) as exc:
                logger.error("Skipping %s: %s", path, exc)
                report.skipped += 1
                report.record_error(path, exc)

        store.replace_tags(tag_index)
        report.tags = tag_index
        logger.info(
            "Reload finished: %d sidecars, %d upserted, %d enriched, %d skipped, %d tags",
            report.sidecars,
            report.upserted,
            report.enriched,
            report.skipped,
            len(tag_index),
        )
        return report
    finally:
        _reload_lock.release()


def reload_in_progress() -> bool:
    return _reload_lock.locked()
