import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import imagehash
from PIL import Image, UnidentifiedImageError

from .. import config
from ..exceptions import FileHashError
from ..formats import PhotoFormat, supports_perceptual_hash


@dataclass
class HashResult:
    content_hash: str
    ahash: Optional[int] = None  # average-hash
    dhash: Optional[int] = None  # difference-hash


class FileHasher:
    def hash_file(self, path: Path, fmt: PhotoFormat) -> HashResult:
        """
        Computes every fingerprint the matcher needs for one file.

        The content hash is mandatory and failures raise FileHashError.
        Perceptual hashes are best effort: gated formats and files Pillow
        cannot decode simply come back without them.
        """
        content = self.content_hash(path)
        codes = self.perceptual_hashes(path, fmt)
        if codes is None:
            return HashResult(content)
        return HashResult(content, codes[0], codes[1])

    def content_hash(self, path: Path) -> str:
        """Full SHA-256 of the file bytes."""
        h = hashlib.sha256()
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(config.HASH_CHUNK_SIZE):
                    h.update(chunk)
        except OSError as e:
            raise FileHashError(f"Cannot hash {path}: {e}") from e
        return h.hexdigest()

    def perceptual_hashes(self, path: Path, fmt: PhotoFormat) -> Optional[Tuple[int, int]]:
        """Returns (ahash, dhash), or None if the format is gated or decoding fails."""
        if not supports_perceptual_hash(fmt):
            return None

        try:
            with Image.open(path) as im:
                rgb = im.convert('RGB')
        except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
            logging.debug(f"Perceptual hash skipped for {path}: {e}")
            return None

        size = config.PERCEPTUAL_HASH_SIZE
        return (
            hash_to_int(imagehash.average_hash(rgb, hash_size=size)),
            hash_to_int(imagehash.dhash(rgb, hash_size=size)),
        )


def hash_to_int(h: imagehash.ImageHash) -> int:
    """Packs an 8x8 ImageHash into the 64-bit code the matcher compares."""
    return int(str(h), 16)
