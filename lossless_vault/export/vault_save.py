"""
Content-addressed vault pack.

The pack holds one copy of every distinct photo worth keeping:
`<vault>/<sha256[:2]>/<sha256>.<ext>`. A file's presence at its address
means it is already correct, so saving is naturally incremental.
"""
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Sequence, Set

from ..database.ops import DBOperations
from ..events import (
    EventCallback,
    FileCopied,
    FileRemoved,
    FileSkipped,
    TransferComplete,
    TransferStart,
    emit,
)
from ..exceptions import FileOperationError
from ..formats import PhotoFormat, extension_for
from ..models import DuplicateGroup, PhotoRecord


def select_photos_to_export(records: Sequence[PhotoRecord],
                            groups: Iterable[DuplicateGroup]) -> List[PhotoRecord]:
    """
    Picks the photos worth keeping: the canonical member of every group plus
    every photo that belongs to no group. Input order is preserved.
    """
    grouped: Set[int] = set()
    canonical: Set[int] = set()
    for group in groups:
        grouped.update(group.members)
        if group.canonical_id is not None:
            canonical.add(group.canonical_id)

    return [r for r in records if r.id not in grouped or r.id in canonical]


def build_content_path(pack_root: Path, sha256: str, fmt: PhotoFormat) -> Path:
    return pack_root / sha256[:2] / f"{sha256}.{extension_for(fmt)}"


def photo_date(record: PhotoRecord) -> datetime:
    """EXIF capture time, falling back to the file's mtime."""
    if record.capture_time is not None:
        return record.capture_time
    return datetime.fromtimestamp(record.mtime)


def copy_photo_to_pack(source: Path, target: Path) -> bool:
    """Returns False when the target already exists, True after copying."""
    if target.exists():
        return False
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(source), str(target))
    except OSError as e:
        raise FileOperationError(f"Failed to copy {source} -> {target}: {e}") from e
    return True


class VaultSaver:
    def __init__(self, db_ops: DBOperations, pack_root: Path):
        self.db = db_ops
        self.pack_root = pack_root

    def save(self, photos: Sequence[PhotoRecord], on_event: EventCallback = None) -> TransferComplete:
        """
        Copies `photos` into the pack and removes pack files no longer wanted.
        Several catalog rows can share a content hash; the first one wins.
        """
        wanted = {}
        for photo in photos:
            wanted.setdefault(photo.content_hash, photo)

        emit(on_event, TransferStart(total=len(wanted)))
        logging.info(f"Saving {len(wanted)} photos to vault {self.pack_root}...")

        copied = skipped = 0
        for sha256, photo in wanted.items():
            target = build_content_path(self.pack_root, sha256, photo.format)
            if copy_photo_to_pack(photo.path, target):
                copied += 1
                emit(on_event, FileCopied(photo.path, target))
            else:
                skipped += 1
                emit(on_event, FileSkipped(target))
            self.db.manifest_add(sha256, photo.format)
        self.db.conn.commit()

        removed = self.cleanup(set(wanted), on_event)

        summary = TransferComplete(done=copied, skipped=skipped, removed=len(removed))
        emit(on_event, summary)
        logging.info(f"Vault save complete: {copied} copied, {skipped} skipped, {len(removed)} removed.")
        return summary

    def cleanup(self, desired: Set[str], on_event: EventCallback = None) -> List[Path]:
        """Deletes pack files whose hash is no longer desired and forgets them."""
        removed = []
        for sha256, fmt in self.db.manifest_entries():
            if sha256 in desired:
                continue
            path = build_content_path(self.pack_root, sha256, fmt)
            try:
                path.unlink()
                removed.append(path)
                emit(on_event, FileRemoved(path))
            except FileNotFoundError:
                logging.debug(f"Stale pack entry {path} already gone.")
            except OSError as e:
                logging.error(f"Failed to remove stale pack file {path}: {e}")
                continue
            self.db.manifest_remove(sha256)
        self.db.conn.commit()
        return removed
