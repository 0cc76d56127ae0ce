import hashlib

import imagehash
import pytest
from PIL import Image

from lossless_vault.exceptions import FileHashError
from lossless_vault.formats import PhotoFormat
from lossless_vault.matching.bktree import hamming_distance
from lossless_vault.matching.confidence import PROBABLE
from lossless_vault.scanning.filesystem import DiskScanner
from lossless_vault.scanning.hasher import FileHasher, hash_to_int


def _save_vertical_gradient(path, fmt="PNG"):
    img = Image.new("RGB", (64, 64))
    for y in range(64):
        for x in range(64):
            img.putpixel((x, y), (y * 4, y * 4, y * 4))
    img.save(path, format=fmt)


def _save_horizontal_gradient(path, fmt="PNG"):
    img = Image.new("RGB", (64, 64))
    for y in range(64):
        for x in range(64):
            img.putpixel((x, y), (x * 4, x * 4, x * 4))
    img.save(path, format=fmt)


def _save_checkerboard(path, fmt="PNG"):
    img = Image.new("RGB", (64, 64))
    for y in range(64):
        for x in range(64):
            v = 255 if (x < 32) != (y < 32) else 0
            img.putpixel((x, y), (v, v, v))
    img.save(path, format=fmt)


# --- Hasher ---

def test_hash_to_int_keeps_all_64_bits():
    assert hash_to_int(imagehash.hex_to_hash("ffffffffffffffff")) == (1 << 64) - 1
    assert hash_to_int(imagehash.hex_to_hash("8000000000000000")) == 1 << 63
    assert hash_to_int(imagehash.hex_to_hash("0000000000000000")) == 0


def test_vertical_gradient_ahash(tmp_path):
    f = tmp_path / "grad.png"
    _save_vertical_gradient(f)

    result = FileHasher().hash_file(f, PhotoFormat.PNG)
    # Top four rows darker than the mean, bottom four brighter
    assert result.ahash == 0x00000000FFFFFFFF


def test_content_hash_matches_sha256(tmp_path):
    f = tmp_path / "data.jpg"
    payload = b"not really a jpeg" * 1000
    f.write_bytes(payload)

    assert FileHasher().content_hash(f) == hashlib.sha256(payload).hexdigest()


def test_content_hash_missing_file_raises(tmp_path):
    with pytest.raises(FileHashError):
        FileHasher().content_hash(tmp_path / "missing.jpg")


def test_identical_images_share_hashes(tmp_path):
    a = tmp_path / "a.png"
    b = tmp_path / "b.png"
    _save_vertical_gradient(a)
    _save_vertical_gradient(b)

    hasher = FileHasher()
    ra = hasher.hash_file(a, PhotoFormat.PNG)
    rb = hasher.hash_file(b, PhotoFormat.PNG)

    assert ra.ahash is not None and ra.dhash is not None
    assert (ra.ahash, ra.dhash) == (rb.ahash, rb.dhash)


def test_gradient_and_checkerboard_differ(tmp_path):
    grad = tmp_path / "grad.png"
    check = tmp_path / "check.png"
    _save_horizontal_gradient(grad)
    _save_checkerboard(check)

    hasher = FileHasher()
    rg = hasher.hash_file(grad, PhotoFormat.PNG)
    rc = hasher.hash_file(check, PhotoFormat.PNG)

    assert rg.ahash != rc.ahash
    assert hamming_distance(rg.ahash, rc.ahash) > PROBABLE


def test_gated_formats_skip_decoding(tmp_path):
    # A real PNG wearing a HEIC extension must still not be decoded
    f = tmp_path / "photo.heic"
    _save_vertical_gradient(f)

    result = FileHasher().hash_file(f, PhotoFormat.HEIC)
    assert result.content_hash
    assert result.ahash is None
    assert result.dhash is None


def test_undecodable_file_has_no_perceptual_hash(tmp_path):
    f = tmp_path / "broken.jpg"
    f.write_bytes(b"\xff\xd8 truncated garbage")

    result = FileHasher().hash_file(f, PhotoFormat.JPEG)
    assert result.content_hash == hashlib.sha256(f.read_bytes()).hexdigest()
    assert result.ahash is None


# --- Scanner ---

def test_scanner_finds_supported_files(tmp_path):
    (tmp_path / "2023" / "july").mkdir(parents=True)
    (tmp_path / "a.JPG").write_bytes(b"x")
    (tmp_path / "2023" / "b.cr2").write_bytes(b"xx")
    (tmp_path / "2023" / "july" / "c.heic").write_bytes(b"xxx")
    (tmp_path / "notes.txt").write_text("ignore me")
    (tmp_path / "._a.JPG").write_bytes(b"resource fork")

    found = {f.path.name: f for f in DiskScanner().scan(tmp_path)}

    assert set(found) == {"a.JPG", "b.cr2", "c.heic"}
    assert found["a.JPG"].format is PhotoFormat.JPEG
    assert found["b.cr2"].format is PhotoFormat.CR2
    assert found["c.heic"].size_bytes == 3


def test_scanner_honours_skip_dirs(tmp_path):
    vault = tmp_path / "vault"
    vault.mkdir()
    (vault / "kept.jpg").write_bytes(b"x")
    (tmp_path / "photo.jpg").write_bytes(b"x")

    names = [f.path.name for f in DiskScanner().scan(tmp_path, skip_dirs={vault})]
    assert names == ["photo.jpg"]


def test_scanner_order_is_stable(tmp_path):
    for name in ["b.png", "A.png", "c.png"]:
        (tmp_path / name).write_bytes(b"x")

    first = [f.path.name for f in DiskScanner().scan(tmp_path)]
    second = [f.path.name for f in DiskScanner().scan(tmp_path)]
    assert first == second == ["A.png", "b.png", "c.png"]
