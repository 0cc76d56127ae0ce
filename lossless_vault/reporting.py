import csv
import logging
from pathlib import Path
from typing import Iterable, Sequence

from .models import DuplicateGroup, PhotoRecord
from .ranking import RankingEngine

HEADERS = [
    "Group",
    "Confidence",
    "Role",
    "Path",
    "Format",
    "Size (bytes)",
    "Resolution",
    "Capture Time",
]


class ReportGenerator:
    def __init__(self):
        self.ranking = RankingEngine()

    def write_groups_csv(self,
                         groups: Iterable[DuplicateGroup],
                         records: Sequence[PhotoRecord],
                         output_csv: Path) -> int:
        """
        Writes one row per group member, best first, marking the canonical copy
        as 'Keep' and the rest as 'Redundant'. Returns the number of rows.
        """
        by_id = {r.id: r for r in records}
        rows = 0

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(HEADERS)

            for group in groups:
                for rec in self.ranking.rank(group, by_id):
                    role = "Keep" if rec.id == group.canonical_id else "Redundant"
                    resolution = f"{rec.width}x{rec.height}" if rec.pixel_count else ""
                    captured = rec.capture_time.isoformat(sep=" ") if rec.capture_time else ""
                    writer.writerow([
                        group.label,
                        str(group.confidence),
                        role,
                        str(rec.path),
                        str(rec.format),
                        rec.size_bytes,
                        resolution,
                        captured,
                    ])
                    rows += 1

        logging.info(f"Report complete: {rows} rows written to {output_csv}")
        return rows
