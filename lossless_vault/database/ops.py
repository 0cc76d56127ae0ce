import sqlite3
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import DatabaseError
from ..formats import PhotoFormat, parse_format
from ..models import ExifData, PhotoRecord, Source

_PHOTO_COLUMNS = """
    id, source_id, path, size_bytes, format, sha256, phash, dhash, capture_time,
    camera_make, camera_model, width, height, gps_lat, gps_lon, mtime
"""


def encode_code(code: Optional[int]) -> Optional[str]:
    return f"{code:016x}" if code is not None else None


def decode_code(text: Optional[str]) -> Optional[int]:
    """Corrupt stored hashes read back as missing, which degrades the photo to content matching."""
    if not text:
        return None
    try:
        return int(text, 16)
    except ValueError:
        logging.debug(f"Ignoring malformed perceptual hash {text!r}")
        return None


class DBOperations:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Sources ---

    def add_source(self, path: Path) -> Source:
        """Registers a source directory. Registering the same path again is a no-op."""
        self.conn.execute("INSERT OR IGNORE INTO sources (path) VALUES (?)", (str(path),))
        self.conn.commit()
        source = self.get_source_by_path(path)
        if source is None:
            raise DatabaseError(f"Source {path} vanished right after insert")
        return source

    def get_source_by_path(self, path: Path) -> Optional[Source]:
        cur = self.conn.cursor()
        cur.execute("SELECT id, path, last_scanned FROM sources WHERE path = ?", (str(path),))
        row = cur.fetchone()
        return Source(row[0], Path(row[1]), row[2]) if row else None

    def list_sources(self) -> List[Source]:
        cur = self.conn.cursor()
        cur.execute("SELECT id, path, last_scanned FROM sources ORDER BY id")
        return [Source(r[0], Path(r[1]), r[2]) for r in cur.fetchall()]

    def mark_source_scanned(self, source_id: int, timestamp: int):
        self.conn.execute("UPDATE sources SET last_scanned = ? WHERE id = ?", (timestamp, source_id))

    # --- Photos ---

    def fetch_scan_index(self, source_id: int) -> Dict[str, Tuple[int, int, int]]:
        """Returns {path: (photo_id, mtime, size_bytes)} for rows owned by one source."""
        cur = self.conn.cursor()
        cur.execute("SELECT path, id, mtime, size_bytes FROM photos WHERE source_id = ?", (source_id,))
        return {row[0]: (row[1], row[2], row[3]) for row in cur.fetchall()}

    def fetch_path_index(self) -> Dict[str, Tuple[int, int, int]]:
        """Same shape as fetch_scan_index, across every source. Paths are unique catalog-wide."""
        cur = self.conn.cursor()
        cur.execute("SELECT path, id, mtime, size_bytes FROM photos")
        return {row[0]: (row[1], row[2], row[3]) for row in cur.fetchall()}

    def upsert_photo(self,
                     source_id: int,
                     path: Path,
                     fmt: PhotoFormat,
                     size_bytes: int,
                     mtime: int,
                     content_hash: str,
                     ahash: Optional[int],
                     dhash: Optional[int],
                     exif: Optional[ExifData]) -> int:
        """Inserts or refreshes the row for `path` and returns its id."""
        exif = exif or ExifData()
        capture_str = exif.capture_time.isoformat() if exif.capture_time else None

        cur = self.conn.cursor()
        cur.execute("""
            INSERT INTO photos (
                source_id, path, size_bytes, format, sha256, phash, dhash, capture_time,
                camera_make, camera_model, width, height, gps_lat, gps_lon, mtime
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                source_id = excluded.source_id,
                size_bytes = excluded.size_bytes,
                format = excluded.format,
                sha256 = excluded.sha256,
                phash = excluded.phash,
                dhash = excluded.dhash,
                capture_time = excluded.capture_time,
                camera_make = excluded.camera_make,
                camera_model = excluded.camera_model,
                width = excluded.width,
                height = excluded.height,
                gps_lat = excluded.gps_lat,
                gps_lon = excluded.gps_lon,
                mtime = excluded.mtime
        """, (
            source_id, str(path), size_bytes, str(fmt), content_hash,
            encode_code(ahash), encode_code(dhash), capture_str,
            exif.camera_make, exif.camera_model, exif.width, exif.height,
            exif.gps_lat, exif.gps_lon, mtime,
        ))

        cur.execute("SELECT id FROM photos WHERE path = ?", (str(path),))
        row = cur.fetchone()
        if row is None:
            raise DatabaseError(f"Upsert of {path} did not produce a row")
        return int(row[0])

    def remove_photos(self, photo_ids: Iterable[int]) -> int:
        ids = [(pid,) for pid in photo_ids]
        self.conn.executemany("DELETE FROM photos WHERE id = ?", ids)
        return len(ids)

    def fetch_all_photos(self) -> List[PhotoRecord]:
        """Materializes the whole catalog as PhotoRecords, ordered by id."""
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_PHOTO_COLUMNS} FROM photos ORDER BY id")
        return [self._row_to_record(row) for row in cur.fetchall()]

    def count_photos(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM photos")
        return cur.fetchone()[0]

    def _row_to_record(self, row) -> PhotoRecord:
        (pid, source_id, path, size_bytes, fmt, sha256, phash, dhash, capture,
         make, model, width, height, lat, lon, mtime) = row
        return PhotoRecord(
            id=pid,
            source_id=source_id,
            path=Path(path),
            format=parse_format(fmt),
            content_hash=sha256,
            size_bytes=size_bytes,
            mtime=mtime,
            perceptual_hash_a=decode_code(phash),
            perceptual_hash_b=decode_code(dhash),
            capture_time=datetime.fromisoformat(capture) if capture else None,
            width=width,
            height=height,
            camera_make=make,
            camera_model=model,
            gps_lat=lat,
            gps_lon=lon,
        )

    # --- Settings ---

    def get_setting(self, key: str) -> Optional[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cur.fetchone()
        return row[0] if row else None

    def set_setting(self, key: str, value: str):
        self.conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value)
        )
        self.conn.commit()

    # --- Vault manifest ---

    def manifest_add(self, sha256: str, fmt: PhotoFormat):
        self.conn.execute(
            "INSERT OR REPLACE INTO vault_manifest (sha256, format) VALUES (?, ?)", (sha256, str(fmt))
        )

    def manifest_remove(self, sha256: str):
        self.conn.execute("DELETE FROM vault_manifest WHERE sha256 = ?", (sha256,))

    def manifest_entries(self) -> List[Tuple[str, PhotoFormat]]:
        cur = self.conn.cursor()
        cur.execute("SELECT sha256, format FROM vault_manifest ORDER BY sha256")
        return [(row[0], parse_format(row[1])) for row in cur.fetchall()]
