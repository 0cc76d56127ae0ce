import pytest

from lossless_vault import formats
from lossless_vault.formats import PhotoFormat


def test_perceptual_hash_gate():
    for fmt in (PhotoFormat.JPEG, PhotoFormat.PNG, PhotoFormat.TIFF, PhotoFormat.WEBP):
        assert formats.supports_perceptual_hash(fmt)

    # Decoders for these containers are never invoked
    assert not formats.supports_perceptual_hash(PhotoFormat.HEIC)
    for fmt in formats.RAW_FORMATS:
        assert not formats.supports_perceptual_hash(fmt)


def test_quality_rank_ordering():
    rank = formats.quality_rank
    for raw in formats.RAW_FORMATS:
        assert rank(raw) > rank(PhotoFormat.TIFF)
    assert rank(PhotoFormat.TIFF) > rank(PhotoFormat.PNG)
    assert rank(PhotoFormat.PNG) > rank(PhotoFormat.HEIC)
    assert rank(PhotoFormat.HEIC) > rank(PhotoFormat.JPEG)
    assert rank(PhotoFormat.JPEG) > rank(PhotoFormat.WEBP)


def test_every_format_is_ranked_and_has_extension():
    for fmt in PhotoFormat:
        assert isinstance(formats.quality_rank(fmt), int)
        assert formats.extension_for(fmt)


@pytest.mark.parametrize("ext, expected", [
    ("jpg", PhotoFormat.JPEG),
    (".JPEG", PhotoFormat.JPEG),
    ("heif", PhotoFormat.HEIC),
    ("tif", PhotoFormat.TIFF),
    (".CR2", PhotoFormat.CR2),
    ("dng", PhotoFormat.DNG),
    ("txt", None),
    ("mp4", None),
])
def test_format_from_extension(ext, expected):
    assert formats.format_from_extension(ext) == expected


def test_format_string_roundtrip():
    assert str(PhotoFormat.WEBP) == "WebP"
    assert formats.parse_format("WebP") is PhotoFormat.WEBP
    assert formats.parse_format(str(PhotoFormat.NEF)) is PhotoFormat.NEF


def test_raw_formats():
    assert formats.is_raw(PhotoFormat.ORF)
    assert not formats.is_raw(PhotoFormat.TIFF)


def test_supported_extensions_are_lowercase_with_dots():
    assert ".jpg" in formats.SUPPORTED_EXTENSIONS
    assert ".heif" in formats.SUPPORTED_EXTENSIONS
    assert all(ext == ext.lower() and ext.startswith(".") for ext in formats.SUPPORTED_EXTENSIONS)
