"""
HEIC export.

Conversion is delegated to a renderer object with a single `render(source,
target, quality)` method. The default shells out to macOS `sips`; tests and
other platforms inject their own. Nothing in the matching code depends on
which renderer, if any, is available.
"""
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .. import config
from ..events import (
    EventCallback,
    FileCopied,
    FileSkipped,
    TransferComplete,
    TransferStart,
    emit,
)
from ..exceptions import ConversionError, RendererUnavailableError
from ..models import PhotoRecord
from .vault_save import photo_date


class Renderer(Protocol):
    def render(self, source: Path, target: Path, quality: int) -> None:
        ...


class SipsRenderer:
    """Converts with the macOS `sips` command."""

    def __init__(self, executable: str = "sips"):
        found = shutil.which(executable)
        if found is None:
            raise RendererUnavailableError(f"'{executable}' not found; HEIC export needs macOS")
        self.executable = found

    def render(self, source: Path, target: Path, quality: int) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        cmd = [
            self.executable,
            "-s", "format", "heic",
            "-s", "formatOptions", str(quality),
            str(source),
            "--out", str(target),
        ]
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise ConversionError(source, result.stderr.strip())
        # sips exits 0 for some unreadable inputs without writing anything
        if not target.exists():
            raise ConversionError(source, "renderer produced no output")


def build_export_path(export_root: Path, record: PhotoRecord) -> Path:
    """export_root/YYYY/MM/DD/<stem>.heic, dated by EXIF capture time or mtime."""
    dt = photo_date(record)
    folder = config.EXPORT_FOLDER_PATTERN.format(year=dt.year, month=dt.month, day=dt.day)
    return export_root / folder / f"{record.path.stem}.heic"


def export_photo_to_heic(renderer: Renderer, source: Path, target: Path, quality: int) -> bool:
    """Returns False if the target exists already, True after converting."""
    if target.exists():
        return False
    renderer.render(source, target, quality)
    return True


class HeicExporter:
    def __init__(self, export_root: Path, renderer: Optional[Renderer] = None):
        self.export_root = export_root
        self.renderer = renderer if renderer is not None else SipsRenderer()

    def export(self,
               photos: Sequence[PhotoRecord],
               quality: int = config.DEFAULT_HEIC_QUALITY,
               on_event: EventCallback = None) -> TransferComplete:
        if not 0 <= quality <= 100:
            raise ValueError(f"HEIC quality must be 0-100, got {quality}")

        emit(on_event, TransferStart(total=len(photos)))
        logging.info(f"Exporting {len(photos)} photos as HEIC to {self.export_root}...")

        converted = skipped = 0
        for photo in photos:
            target = build_export_path(self.export_root, photo)
            if export_photo_to_heic(self.renderer, photo.path, target, quality):
                converted += 1
                emit(on_event, FileCopied(photo.path, target))
            else:
                skipped += 1
                emit(on_event, FileSkipped(target))

        summary = TransferComplete(done=converted, skipped=skipped)
        emit(on_event, summary)
        logging.info(f"Export complete: {converted} converted, {skipped} skipped.")
        return summary
