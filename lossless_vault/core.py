import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Set, Tuple

from . import config
from .database.db import DBManager
from .database.ops import DBOperations
from .events import EventCallback, FileProcessed, SourceStart, TransferComplete, emit
from .exceptions import FileHashError, GroupNotFoundError, SourceError, VaultNotConfiguredError
from .export.heic import HeicExporter, Renderer
from .export.vault_save import VaultSaver, select_photos_to_export
from .matching.engine import find_duplicates
from .metadata.extract import MetadataExtractor
from .models import CatalogStats, DuplicateGroup, ExifData, PhotoRecord, ScannedFile, ScanSummary, Source
from .scanning.filesystem import DiskScanner
from .scanning.hasher import FileHasher, HashResult


class VaultApp:
    def __init__(self, db_path: Path):
        self.db_manager = DBManager(db_path)
        self.scanner = DiskScanner()
        self.hasher = FileHasher()
        self.metadata = MetadataExtractor()

    # --- Sources ---

    def add_source(self, path: Path) -> Source:
        root = path.expanduser().resolve()
        if not root.is_dir():
            raise SourceError(f"{root} is not a directory")
        with self.db_manager as conn:
            source = DBOperations(conn).add_source(root)
        logging.info(f"Registered source #{source.id}: {source.path}")
        return source

    def sources(self) -> List[Source]:
        with self.db_manager as conn:
            return DBOperations(conn).list_sources()

    # --- Scanning ---

    def scan(self,
             on_event: EventCallback = None,
             max_workers: int = config.DEFAULT_SCAN_WORKERS,
             skip_dirs: Optional[Set[Path]] = None) -> ScanSummary:
        """
        Brings the catalog up to date with every registered source, then
        recomputes duplicate groups.

        1. Walk  - list supported files per source; a registered source nested
                   inside another (the vault, typically) is walked only as itself
        2. Skip  - files whose (mtime, size) match the catalog are left alone
        3. Hash  - content + perceptual hashes and EXIF on a thread pool
        4. Write - rows are written from this thread only
        5. Prune - catalog rows for vanished files are dropped
        """
        summary = ScanSummary()
        with self.db_manager as conn:
            db_ops = DBOperations(conn)
            sources = db_ops.list_sources()
            for source in sources:
                skip = set(skip_dirs or ()) | _nested_roots(source, sources)
                self._scan_source(db_ops, source, summary, on_event, max_workers, skip)
                conn.commit()

            records = db_ops.fetch_all_photos()

        logging.info(
            f"Scan complete: {summary.added} added, {summary.updated} updated, "
            f"{summary.unchanged} unchanged, {summary.removed} removed, {summary.failed} failed."
        )

        # Groups are never stored; rebuilding them here reports the current state.
        summary.groups = len(find_duplicates(records, on_event=on_event))
        return summary

    def _scan_source(self,
                     db_ops: DBOperations,
                     source: Source,
                     summary: ScanSummary,
                     on_event: EventCallback,
                     max_workers: int,
                     skip_dirs: Optional[Set[Path]]):
        root = source.path
        if not root.is_dir():
            logging.warning(f"Source {root} is missing; skipping (catalog rows kept).")
            return

        owned = db_ops.fetch_scan_index(source.id)
        known = db_ops.fetch_path_index()
        files = list(self.scanner.scan(root, skip_dirs))
        emit(on_event, SourceStart(root, len(files)))
        logging.info(f"Scanning {root}: {len(files)} candidate files.")

        seen = set()
        pending: List[ScannedFile] = []
        for f in files:
            key = str(f.path)
            seen.add(key)
            entry = known.get(key)
            if entry is not None and entry[1] == f.mtime and entry[2] == f.size_bytes:
                summary.unchanged += 1
                emit(on_event, FileProcessed(f.path))
            else:
                pending.append(f)

        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
            futures = [executor.submit(self._hash_one, f) for f in pending]

            # Consume in submission order so photo ids follow the sorted walk.
            for f, future in zip(pending, futures):
                try:
                    hashes, exif = future.result()
                except FileHashError as e:
                    logging.error(str(e))
                    summary.failed += 1
                    emit(on_event, FileProcessed(f.path))
                    continue

                db_ops.upsert_photo(
                    source_id=source.id,
                    path=f.path,
                    fmt=f.format,
                    size_bytes=f.size_bytes,
                    mtime=f.mtime,
                    content_hash=hashes.content_hash,
                    ahash=hashes.ahash,
                    dhash=hashes.dhash,
                    exif=exif,
                )
                if str(f.path) in known:
                    summary.updated += 1
                else:
                    summary.added += 1
                emit(on_event, FileProcessed(f.path))

        vanished = [entry[0] for path, entry in owned.items() if path not in seen]
        summary.removed += db_ops.remove_photos(vanished)
        db_ops.mark_source_scanned(source.id, int(time.time()))

    def _hash_one(self, f: ScannedFile) -> Tuple[HashResult, Optional[ExifData]]:
        """Runs on a worker thread: no catalog access here."""
        hashes = self.hasher.hash_file(f.path, f.format)
        exif = self.metadata.get_image_metadata(f.path)
        return hashes, exif

    # --- Groups ---

    def snapshot(self, on_event: EventCallback = None) -> Tuple[List[PhotoRecord], List[DuplicateGroup]]:
        """Reads the catalog and groups it from scratch."""
        with self.db_manager as conn:
            records = DBOperations(conn).fetch_all_photos()
        return records, find_duplicates(records, on_event=on_event)

    def groups(self) -> List[DuplicateGroup]:
        return self.snapshot()[1]

    def group(self, label: int) -> Tuple[DuplicateGroup, List[PhotoRecord]]:
        """Returns a group and its member records, canonical first."""
        records, groups = self.snapshot()
        for group in groups:
            if group.label == label:
                by_id = {r.id: r for r in records}
                members = sorted(
                    (by_id[rid] for rid in group.members),
                    key=lambda r: (r.id != group.canonical_id, r.id),
                )
                return group, members
        raise GroupNotFoundError(f"No duplicate group #{label}")

    def photos(self) -> List[PhotoRecord]:
        """Every catalog row, ordered by id."""
        with self.db_manager as conn:
            return DBOperations(conn).fetch_all_photos()

    def stats(self) -> CatalogStats:
        with self.db_manager as conn:
            db_ops = DBOperations(conn)
            total_sources = len(db_ops.list_sources())
            total_photos = db_ops.count_photos()
            records = db_ops.fetch_all_photos()
        groups = find_duplicates(records)
        return CatalogStats(
            total_sources=total_sources,
            total_photos=total_photos,
            total_groups=len(groups),
            total_duplicates=sum(len(g) - 1 for g in groups),
        )

    # --- Vault & Export ---

    def set_vault_path(self, path: Path) -> Path:
        """Sets the vault destination and registers it as a source (idempotent)."""
        vault = path.expanduser().resolve()
        vault.mkdir(parents=True, exist_ok=True)
        with self.db_manager as conn:
            db_ops = DBOperations(conn)
            db_ops.set_setting(config.SETTING_VAULT_PATH, str(vault))
            db_ops.add_source(vault)
        logging.info(f"Vault path set to {vault}")
        return vault

    def vault_path(self) -> Optional[Path]:
        return self._path_setting(config.SETTING_VAULT_PATH)

    def set_export_path(self, path: Path) -> Path:
        export_root = path.expanduser().resolve()
        with self.db_manager as conn:
            DBOperations(conn).set_setting(config.SETTING_EXPORT_PATH, str(export_root))
        logging.info(f"Export path set to {export_root}")
        return export_root

    def export_path(self) -> Optional[Path]:
        return self._path_setting(config.SETTING_EXPORT_PATH)

    def save_vault(self, on_event: EventCallback = None) -> TransferComplete:
        vault = self.vault_path()
        if vault is None:
            raise VaultNotConfiguredError("No vault path configured; use `lsvault vault set <path>`")

        records, groups = self.snapshot()
        keep = select_photos_to_export(records, groups)
        with self.db_manager as conn:
            return VaultSaver(DBOperations(conn), vault).save(keep, on_event)

    def export(self,
               quality: int = config.DEFAULT_HEIC_QUALITY,
               renderer: Optional[Renderer] = None,
               on_event: EventCallback = None) -> TransferComplete:
        export_root = self.export_path()
        if export_root is None:
            raise VaultNotConfiguredError("No export path configured; use `lsvault vault export-set <path>`")

        exporter = HeicExporter(export_root, renderer)
        records, groups = self.snapshot()
        return exporter.export(select_photos_to_export(records, groups), quality, on_event)

    def _path_setting(self, key: str) -> Optional[Path]:
        with self.db_manager as conn:
            value = DBOperations(conn).get_setting(key)
        return Path(value) if value else None


def _nested_roots(source: Source, sources: List[Source]) -> Set[Path]:
    """Roots of other registered sources that live under `source`."""
    return {other.path for other in sources if source.path in other.path.parents}
