from datetime import datetime
from pathlib import Path

from lossless_vault.database.db import DBManager
from lossless_vault.database.ops import decode_code, encode_code
from lossless_vault.formats import PhotoFormat
from lossless_vault.models import ExifData


def _insert(db_ops, source_id, name, ahash=None, dhash=None, exif=None, fmt=PhotoFormat.JPEG, sha="abc"):
    return db_ops.upsert_photo(
        source_id=source_id,
        path=Path(f"/photos/{name}"),
        fmt=fmt,
        size_bytes=1234,
        mtime=1_700_000_000,
        content_hash=sha,
        ahash=ahash,
        dhash=dhash,
        exif=exif,
    )


def test_schema_is_idempotent(conn):
    from lossless_vault.database.schema import init_schema
    init_schema(conn)
    init_schema(conn)
    assert conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0] == 1


def test_add_source_is_idempotent(db_ops):
    first = db_ops.add_source(Path("/photos"))
    second = db_ops.add_source(Path("/photos"))

    assert first.id == second.id
    assert len(db_ops.list_sources()) == 1
    assert first.last_scanned is None


def test_mark_source_scanned(db_ops):
    source = db_ops.add_source(Path("/photos"))
    db_ops.mark_source_scanned(source.id, 1_700_000_123)
    assert db_ops.get_source_by_path(Path("/photos")).last_scanned == 1_700_000_123


def test_hash_codes_roundtrip_full_width():
    top_bit = 1 << 63
    assert encode_code(top_bit) == "8000000000000000"
    assert decode_code(encode_code(top_bit)) == top_bit
    assert decode_code(encode_code((1 << 64) - 1)) == (1 << 64) - 1
    assert encode_code(None) is None
    assert decode_code(None) is None
    assert decode_code("not-hex") is None


def test_upsert_and_fetch_photo(db_ops):
    source = db_ops.add_source(Path("/photos"))
    exif = ExifData(
        capture_time=datetime(2022, 5, 6, 7, 8, 9),
        camera_make="Nikon",
        camera_model="Z6",
        width=6048,
        height=4024,
        gps_lat=48.85,
        gps_lon=2.35,
    )
    pid = _insert(db_ops, source.id, "a.jpg", ahash=(1 << 64) - 1, dhash=0x1234, exif=exif)

    [record] = db_ops.fetch_all_photos()
    assert record.id == pid
    assert record.source_id == source.id
    assert record.format is PhotoFormat.JPEG
    assert record.perceptual_hash_a == (1 << 64) - 1
    assert record.perceptual_hash_b == 0x1234
    assert record.capture_time == datetime(2022, 5, 6, 7, 8, 9)
    assert record.pixel_count == 6048 * 4024
    assert record.camera_model == "Z6"


def test_upsert_keeps_id_for_same_path(db_ops):
    source = db_ops.add_source(Path("/photos"))
    first = _insert(db_ops, source.id, "a.jpg", sha="old")
    second = _insert(db_ops, source.id, "a.jpg", sha="new")

    assert first == second
    assert db_ops.count_photos() == 1
    assert db_ops.fetch_all_photos()[0].content_hash == "new"


def test_corrupt_stored_hash_reads_as_missing(db_ops, conn):
    source = db_ops.add_source(Path("/photos"))
    pid = _insert(db_ops, source.id, "a.png", fmt=PhotoFormat.PNG, ahash=5, dhash=5)
    conn.execute("UPDATE photos SET phash = 'zzzz' WHERE id = ?", (pid,))

    [record] = db_ops.fetch_all_photos()
    assert record.perceptual_hash_a is None
    assert record.perceptual_hash_b == 5


def test_scan_index_and_removal(db_ops):
    source = db_ops.add_source(Path("/photos"))
    a = _insert(db_ops, source.id, "a.jpg")
    b = _insert(db_ops, source.id, "b.jpg")

    index = db_ops.fetch_scan_index(source.id)
    assert index["/photos/a.jpg"] == (a, 1_700_000_000, 1234)

    assert db_ops.remove_photos([b]) == 1
    assert [r.id for r in db_ops.fetch_all_photos()] == [a]


def test_settings(db_ops):
    assert db_ops.get_setting("vault_path") is None
    db_ops.set_setting("vault_path", "/vault")
    db_ops.set_setting("vault_path", "/vault2")
    assert db_ops.get_setting("vault_path") == "/vault2"


def test_manifest(db_ops):
    db_ops.manifest_add("bbb", PhotoFormat.NEF)
    db_ops.manifest_add("aaa", PhotoFormat.JPEG)
    db_ops.manifest_add("aaa", PhotoFormat.JPEG)
    assert db_ops.manifest_entries() == [("aaa", PhotoFormat.JPEG), ("bbb", PhotoFormat.NEF)]

    db_ops.manifest_remove("aaa")
    assert db_ops.manifest_entries() == [("bbb", PhotoFormat.NEF)]


def test_db_manager_creates_catalog(tmp_path):
    db_path = tmp_path / "nested" / "catalog.db"
    with DBManager(db_path) as conn:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}

    assert db_path.exists()
    assert {"sources", "photos", "settings", "vault_manifest"} <= tables


def test_path_index_spans_sources(db_ops):
    library = db_ops.add_source(Path("/photos"))
    vault = db_ops.add_source(Path("/photos/vault"))
    a = _insert(db_ops, library.id, "a.jpg")
    b = _insert(db_ops, vault.id, "vault/b.jpg")

    assert set(db_ops.fetch_scan_index(library.id)) == {"/photos/a.jpg"}
    index = db_ops.fetch_path_index()
    assert index["/photos/a.jpg"][0] == a
    assert index["/photos/vault/b.jpg"][0] == b
