"""
Format capability table.

Every photo format the catalog understands is listed here along with two
static facts about it: whether its decoder is safe to run for perceptual
hashing, and where it sits in the quality ordering used to pick a canonical
copy. Both are closed, explicit mappings; formats do not describe themselves.
"""
from enum import Enum
from typing import Optional


class PhotoFormat(Enum):
    # RAW
    CR2 = "CR2"
    CR3 = "CR3"
    NEF = "NEF"
    ARW = "ARW"
    ORF = "ORF"
    RAF = "RAF"
    RW2 = "RW2"
    DNG = "DNG"
    # Lossless
    TIFF = "TIFF"
    PNG = "PNG"
    # Lossy
    JPEG = "JPEG"
    HEIC = "HEIC"
    WEBP = "WebP"

    def __str__(self) -> str:
        return self.value


RAW_FORMATS = frozenset({
    PhotoFormat.CR2, PhotoFormat.CR3, PhotoFormat.NEF, PhotoFormat.ARW,
    PhotoFormat.ORF, PhotoFormat.RAF, PhotoFormat.RW2, PhotoFormat.DNG,
})

# Decoders known to behave on these containers. HEIC and RAW decoders can hang
# or misbehave; those files are still matched by content hash.
PERCEPTUAL_HASH_FORMATS = frozenset({
    PhotoFormat.JPEG, PhotoFormat.PNG, PhotoFormat.TIFF, PhotoFormat.WEBP,
})

# Higher = better. RAW/TIFF originals always outrank derived JPEG/HEIC renditions.
QUALITY_RANK = {fmt: 6 for fmt in RAW_FORMATS}
QUALITY_RANK.update({
    PhotoFormat.TIFF: 5,
    PhotoFormat.PNG: 4,
    PhotoFormat.HEIC: 3,
    PhotoFormat.JPEG: 2,
    PhotoFormat.WEBP: 1,
})

EXT_TO_FORMAT = {
    '.jpg': PhotoFormat.JPEG,
    '.jpeg': PhotoFormat.JPEG,
    '.png': PhotoFormat.PNG,
    '.tif': PhotoFormat.TIFF,
    '.tiff': PhotoFormat.TIFF,
    '.webp': PhotoFormat.WEBP,
    '.heic': PhotoFormat.HEIC,
    '.heif': PhotoFormat.HEIC,
    '.cr2': PhotoFormat.CR2,
    '.cr3': PhotoFormat.CR3,
    '.nef': PhotoFormat.NEF,
    '.arw': PhotoFormat.ARW,
    '.orf': PhotoFormat.ORF,
    '.raf': PhotoFormat.RAF,
    '.rw2': PhotoFormat.RW2,
    '.dng': PhotoFormat.DNG,
}

SUPPORTED_EXTENSIONS = frozenset(EXT_TO_FORMAT)

# Extension written when a file is stored in the vault pack
FORMAT_TO_EXT = {
    PhotoFormat.JPEG: 'jpg',
    PhotoFormat.PNG: 'png',
    PhotoFormat.TIFF: 'tiff',
    PhotoFormat.WEBP: 'webp',
    PhotoFormat.HEIC: 'heic',
}
FORMAT_TO_EXT.update({fmt: fmt.value.lower() for fmt in RAW_FORMATS})


def supports_perceptual_hash(fmt: PhotoFormat) -> bool:
    return fmt in PERCEPTUAL_HASH_FORMATS


def quality_rank(fmt: PhotoFormat) -> int:
    return QUALITY_RANK[fmt]


def is_raw(fmt: PhotoFormat) -> bool:
    return fmt in RAW_FORMATS


def format_from_extension(ext: str) -> Optional[PhotoFormat]:
    """Maps 'JPG', '.jpg' or 'jpg' to PhotoFormat.JPEG; unknown -> None."""
    ext = ext.lower()
    if not ext.startswith('.'):
        ext = '.' + ext
    return EXT_TO_FORMAT.get(ext)


def extension_for(fmt: PhotoFormat) -> str:
    return FORMAT_TO_EXT[fmt]


def parse_format(name: str) -> PhotoFormat:
    """Inverse of str(fmt), used when reading the catalog."""
    return PhotoFormat(name)
