"""
Configuration constants for LosslessVault.
"""
from pathlib import Path

# --- Perceptual Matching Thresholds ---
# Hamming distance in bits, out of 64. Beyond ~5 bits (~8%) false positives
# dominate at catalog scale, so these are fixed rather than per-call options.
PHASH_NEAR_CERTAIN_THRESHOLD = 2
PHASH_HIGH_THRESHOLD = 3
PHASH_PROBABLE_THRESHOLD = 5

PERCEPTUAL_HASH_BITS = 64

# --- Burst Filtering ---
# Records whose EXIF capture times fall within this many seconds of a window's
# anchor are considered the same moment.
BURST_WINDOW_SECONDS = 1

# --- Hashing & Performance ---
HASH_CHUNK_SIZE = 1024 * 1024  # 1 MB chunks for reading
DEFAULT_SCAN_WORKERS = 4

# imagehash side length; hash_size**2 must equal PERCEPTUAL_HASH_BITS
PERCEPTUAL_HASH_SIZE = 8

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'Image DateTime',
]
WIDTH_TAGS = ['EXIF ExifImageWidth', 'Image ImageWidth']
HEIGHT_TAGS = ['EXIF ExifImageLength', 'Image ImageLength']
EXIF_YEAR_RANGE = (1970, 2100)

# --- Catalog ---
DEFAULT_CATALOG_PATH = Path.home() / ".losslessvault" / "catalog.db"
SETTING_VAULT_PATH = "vault_path"
SETTING_EXPORT_PATH = "export_path"

# --- Export ---
DEFAULT_HEIC_QUALITY = 85
EXPORT_FOLDER_PATTERN = "{year:04d}/{month:02d}/{day:02d}"
