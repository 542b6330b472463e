#!/usr/bin/env python
"""
Rebuild the photography collections from the sidecar files under a photo root.

Usage:
  python scripts/reload.py /srv/http/images/photography
  MONGO_URI=mongodb://localhost:27017 python scripts/reload.py ~/photos --incremental
"""
from __future__ import annotations

import argparse
import os
from pathlib import Path

from photo_site.core.env import configure_logging, load_dotenv_if_present
from photo_site.ingest import reload_tables
from photo_site.store import MetadataStore


def main() -> None:
    parser = argparse.ArgumentParser(description="Reload photo records and tags into MongoDB.")
    parser.add_argument("directory", type=Path, help="Photo root holding one folder per photo")
    parser.add_argument(
        "--incremental",
        action="store_true",
        help="Upsert into the existing collections instead of dropping them first",
    )
    args = parser.parse_args()

    load_dotenv_if_present()
    configure_logging()
    store = MetadataStore(
        os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        os.getenv("MONGO_DATABASE", "photography"),
    )
    target = args.directory
    if not target.exists() or not target.is_dir():
        raise FileNotFoundError(f"Directory not found or not a folder: {target}")

    report = reload_tables(target, store, rebuild=not args.incremental)
    print(
        f"Reload complete: {report.upserted}/{report.sidecars} sidecars upserted "
        f"({report.enriched} with EXIF), {len(report.tags)} tags, "
        f"{store.count_photos()} photos stored"
    )
    for error in report.errors:
        print(f"  skipped {error}")


if __name__ == "__main__":
    main()
