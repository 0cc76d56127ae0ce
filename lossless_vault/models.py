from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Optional, Tuple

from . import config
from .formats import PhotoFormat, supports_perceptual_hash

_CODE_LIMIT = 1 << config.PERCEPTUAL_HASH_BITS


def _usable_code(code: Optional[int]) -> Optional[int]:
    if isinstance(code, int) and 0 <= code < _CODE_LIMIT:
        return code
    return None


@dataclass
class PhotoRecord:
    """
    One physical file tracked by the catalog.

    perceptual_hash_a is the average-hash, perceptual_hash_b the
    difference-hash. Both are 64-bit codes and only meaningful for formats
    whose decoder is allowed to run (see formats.supports_perceptual_hash).
    """
    id: int
    path: Path
    format: PhotoFormat
    content_hash: str
    size_bytes: int
    mtime: int
    source_id: Optional[int] = None
    perceptual_hash_a: Optional[int] = None
    perceptual_hash_b: Optional[int] = None
    capture_time: Optional[datetime] = None

    # EXIF enrichment (used for ranking and export dating)
    width: Optional[int] = None
    height: Optional[int] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    gps_lat: Optional[float] = None
    gps_lon: Optional[float] = None

    def perceptual_codes(self) -> Tuple[Optional[int], Optional[int]]:
        """
        Returns the (aHash, dHash) pair the matcher may use.
        Codes on gated formats or outside the 64-bit range read as missing.
        """
        if not supports_perceptual_hash(self.format):
            return None, None
        return _usable_code(self.perceptual_hash_a), _usable_code(self.perceptual_hash_b)

    @property
    def has_perceptual_hashes(self) -> bool:
        a, b = self.perceptual_codes()
        return a is not None or b is not None

    @property
    def pixel_count(self) -> Optional[int]:
        if self.width and self.height:
            return self.width * self.height
        return None


class Confidence(IntEnum):
    """Strength of the evidence linking members of a group. Ordered weakest first."""
    LOW = 0
    PROBABLE = 1
    HIGH = 2
    NEAR_CERTAIN = 3
    CERTAIN = 4

    def __str__(self) -> str:
        return self.name.replace('_', '-').title()


@dataclass(frozen=True)
class DuplicateGroup:
    """
    A derived cluster of PhotoRecord ids. Rebuilt on every run; `label` is only
    meaningful within the run that produced it.
    """
    label: int
    members: Tuple[int, ...]
    confidence: Confidence
    canonical_id: Optional[int] = None

    def __len__(self) -> int:
        return len(self.members)

    def __contains__(self, record_id: int) -> bool:
        return record_id in self.members


@dataclass
class ExifData:
    capture_time: Optional[datetime] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    gps_lat: Optional[float] = None
    gps_lon: Optional[float] = None


@dataclass
class ScannedFile:
    """A supported file discovered on disk, before hashing."""
    path: Path
    size_bytes: int
    format: PhotoFormat
    mtime: int


@dataclass
class Source:
    id: int
    path: Path
    last_scanned: Optional[int] = None


@dataclass
class CatalogStats:
    total_sources: int
    total_photos: int
    total_groups: int
    total_duplicates: int


@dataclass
class ScanSummary:
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    removed: int = 0
    failed: int = 0
    groups: int = 0
