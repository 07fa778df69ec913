"""
Filesystem helpers shared by the scanning probes.
"""

from __future__ import annotations

import fnmatch
import os
from collections.abc import Iterable, Iterator
from pathlib import Path


def iter_files(
    root: Path,
    patterns: Iterable[str],
    excluded_dirs: Iterable[str] = (),
    limit: int | None = None,
) -> Iterator[Path]:
    """
    Yield files under ``root`` whose name matches any glob in ``patterns``.

    Excluded directory names are pruned at every depth. Results come out
    in a stable (sorted) walk order so capped scans are reproducible.
    """
    pats = list(patterns)
    excluded = set(excluded_dirs)
    found = 0
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in excluded)
        for name in sorted(filenames):
            if any(fnmatch.fnmatch(name, p) for p in pats):
                yield Path(dirpath) / name
                found += 1
                if limit is not None and found >= limit:
                    return


def read_text(path: Path, max_bytes: int = 512_000) -> str:
    """Read a text file, tolerating bad encodings and truncating huge files."""
    with open(path, "rb") as f:
        return f.read(max_bytes).decode("utf-8", errors="replace")


def relative(path: Path, root: Path) -> str:
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)
