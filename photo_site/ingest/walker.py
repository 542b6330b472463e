from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


def walk_files(
    root: str | Path,
    on_error: Optional[Callable[[OSError], None]] = None,
) -> Iterator[Path]:
    """Lazily yield every regular file below ``root``, depth first.

    Symlinks are neither followed nor yielded, so the walk always covers a
    tree. A directory that cannot be listed is logged and skipped together
    with its subtree; the rest of the walk carries on.
    """

    def _report(exc: OSError) -> None:
        logger.error("Could not read directory %s: %s", exc.filename, exc.strerror or exc)
        if on_error is not None:
            on_error(exc)

    for dirpath, _dirnames, filenames in os.walk(root, onerror=_report, followlinks=False):
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            yield path
