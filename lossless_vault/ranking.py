"""
Canonical member selection.

Members of a group are ordered best first by:
  1. format quality rank (RAW > TIFF > PNG > HEIC > JPEG > WebP)
  2. pixel count, when known (known resolutions sort above unknown ones)
  3. file size, larger first (less lossy compression)
  4. mtime, earliest first
  5. record id, lowest first

Export and vault logic rely on this order to decide which files are redundant.
"""
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping

from .formats import quality_rank
from .models import DuplicateGroup, PhotoRecord


def ranking_key(record: PhotoRecord):
    pixels = record.pixel_count
    return (
        -quality_rank(record.format),
        0 if pixels is not None else 1,
        -(pixels or 0),
        -record.size_bytes,
        record.mtime,
        record.id,
    )


class RankingEngine:
    def rank(self, group: DuplicateGroup, records: Mapping[int, PhotoRecord]) -> List[PhotoRecord]:
        """Returns the group's records ordered best first."""
        return sorted((records[rid] for rid in group.members), key=ranking_key)

    def select_canonical(self, group: DuplicateGroup, records: Mapping[int, PhotoRecord]) -> PhotoRecord:
        if not group.members:
            raise ValueError("cannot elect a canonical member from an empty group")
        return min((records[rid] for rid in group.members), key=ranking_key)

    def annotate(self, groups: Iterable[DuplicateGroup], records: Iterable[PhotoRecord]) -> List[DuplicateGroup]:
        """Returns copies of `groups` with canonical_id filled in. Membership is untouched."""
        by_id: Dict[int, PhotoRecord] = {r.id: r for r in records}
        return [
            replace(group, canonical_id=self.select_canonical(group, by_id).id)
            for group in groups
        ]
