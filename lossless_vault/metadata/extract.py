import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import exifread

from .. import config
from ..models import ExifData


def parse_exif_date(dt_str: str) -> Optional[datetime]:
    """
    Parses EXIF-style timestamps.

    Accepts "YYYY:MM:DD HH:MM:SS" (raw EXIF), "YYYY-MM-DD HH:MM:SS" and a bare
    date. Sub-second suffixes are dropped. Years outside EXIF_YEAR_RANGE are
    treated as garbage (zeroed or defaulted camera clocks).
    """
    if not dt_str:
        return None
    parts = dt_str.strip().split()
    if not parts:
        return None

    date_bits = parts[0].replace(':', '-').split('-')
    if len(date_bits) < 3:
        return None

    time_bits = ['0', '0', '0']
    if len(parts) > 1:
        clock = parts[1].split('.')[0].split(':')
        time_bits = (clock + ['0', '0', '0'])[:3]

    try:
        year, month, day = (int(x) for x in date_bits[:3])
        hour, minute, second = (int(x) for x in time_bits)
        dt = datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None

    low, high = config.EXIF_YEAR_RANGE
    if not low <= dt.year <= high:
        return None
    return dt


class MetadataExtractor:
    """
    Reads the EXIF fields the catalog keeps, using 'exifread'.
    Extraction never fails a scan: unreadable metadata yields None.
    """

    def get_image_metadata(self, path: Path) -> Optional[ExifData]:
        try:
            with path.open('rb') as f:
                # details=False skips maker notes and thumbnails
                tags = exifread.process_file(f, details=False)
        except Exception as e:
            logging.warning(f"ExifRead failed for {path}: {e}")
            return None

        if not tags:
            return None

        data = ExifData(
            capture_time=self._parse_date(tags),
            camera_make=self._text(tags, 'Image Make'),
            camera_model=self._text(tags, 'Image Model'),
            width=self._first_int(tags, config.WIDTH_TAGS),
            height=self._first_int(tags, config.HEIGHT_TAGS),
            gps_lat=self._gps_coord(tags, 'GPS GPSLatitude', 'GPS GPSLatitudeRef'),
            gps_lon=self._gps_coord(tags, 'GPS GPSLongitude', 'GPS GPSLongitudeRef'),
        )

        # Only report metadata if we got at least one useful field
        if any(v is not None for v in vars(data).values()):
            return data
        return None

    def _parse_date(self, tags) -> Optional[datetime]:
        for tag in config.DATE_TAGS:
            if tag in tags:
                dt = parse_exif_date(str(tags[tag]))
                if dt:
                    return dt
        return None

    def _text(self, tags, name: str) -> Optional[str]:
        if name not in tags:
            return None
        value = str(tags[name]).strip().strip('"')
        return value or None

    def _first_int(self, tags, names) -> Optional[int]:
        for name in names:
            if name in tags:
                values = getattr(tags[name], 'values', None)
                try:
                    return int(values[0])
                except (TypeError, ValueError, IndexError):
                    continue
        return None

    def _gps_coord(self, tags, coord_tag: str, ref_tag: str) -> Optional[float]:
        if coord_tag not in tags:
            return None
        values = getattr(tags[coord_tag], 'values', None)
        if not values or len(values) < 3:
            return None

        try:
            degrees, minutes, seconds = (_ratio_to_float(v) for v in values[:3])
        except (TypeError, ZeroDivisionError):
            return None

        decimal = degrees + minutes / 60.0 + seconds / 3600.0
        # South and West are negative
        if ref_tag in tags and str(tags[ref_tag]).strip().upper() in ('S', 'W'):
            decimal = -decimal
        return decimal


def _ratio_to_float(value: Any) -> float:
    # exifread returns Ratio objects (Fraction subclass in 3.x, num/den in 2.x)
    if hasattr(value, 'num') and hasattr(value, 'den'):
        return value.num / value.den
    return float(value)
