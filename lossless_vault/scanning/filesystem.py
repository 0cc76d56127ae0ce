import logging
import os
from pathlib import Path
from typing import Iterator, Optional, Set

from ..formats import format_from_extension
from ..models import ScannedFile


class DiskScanner:
    def scan(self, root: Path, skip_dirs: Optional[Set[Path]] = None) -> Iterator[ScannedFile]:
        """
        Generator that yields a ScannedFile for every supported photo under root.
        Unsupported extensions and macOS resource forks ('._*') are ignored.
        """
        skip_dirs = skip_dirs or set()

        for path in self._iter_files(root, skip_dirs):
            if path.name.startswith("._"):
                continue
            fmt = format_from_extension(path.suffix)
            if fmt is None:
                continue

            try:
                stat_result = path.stat()
            except OSError as e:
                logging.warning(f"Cannot stat {path}: {e}")
                continue

            yield ScannedFile(
                path=path,
                size_bytes=stat_result.st_size,
                format=fmt,
                mtime=int(stat_result.st_mtime),
            )

    def _iter_files(self, root: Path, skip_dirs: Set[Path]) -> Iterator[Path]:
        """Depth-first walker using os.scandir, following directory symlinks once."""
        stack = [root]
        visited: Set[Path] = set()
        while stack:
            current = stack.pop()
            if skip_dirs and any(sd == current or sd in current.parents for sd in skip_dirs):
                continue

            try:
                real = current.resolve()
            except OSError:
                real = current
            if real in visited:
                continue
            visited.add(real)

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except (OSError, PermissionError):
                logging.warning(f"Permission denied: {current}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                try:
                    if e.is_dir():
                        dirs.append(Path(e.path))
                    elif e.is_file():
                        files.append(Path(e.path))
                except OSError:
                    logging.debug(f"Skipping unreadable entry {e.path}")

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f
