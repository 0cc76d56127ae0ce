import pytest
import sqlite3
from pathlib import Path

from lossless_vault.database.schema import init_schema
from lossless_vault.database.ops import DBOperations
from lossless_vault.formats import PhotoFormat
from lossless_vault.models import PhotoRecord


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def db_ops(conn):
    """Returns a DBOperations instance attached to the in-memory DB."""
    return DBOperations(conn)


@pytest.fixture
def make_record():
    """Factory for PhotoRecords; content hash defaults to one unique per id."""
    def _make(id, fmt=PhotoFormat.JPEG, content_hash=None, a=None, b=None,
              capture_time=None, size=1000, mtime=1_600_000_000,
              width=None, height=None):
        return PhotoRecord(
            id=id,
            path=Path(f"/photos/{id}.{fmt.value.lower()}"),
            format=fmt,
            content_hash=content_hash or f"sha-{id}",
            size_bytes=size,
            mtime=mtime,
            source_id=1,
            perceptual_hash_a=a,
            perceptual_hash_b=b,
            capture_time=capture_time,
            width=width,
            height=height,
        )
    return _make
