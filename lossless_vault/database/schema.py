"""
Catalog schema definitions.

Duplicate groups are deliberately absent: they are recomputed from the
photos table on every run.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1


def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Registered source directories
        conn.execute("""
        CREATE TABLE IF NOT EXISTS sources (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            path            TEXT NOT NULL UNIQUE,
            last_scanned    INTEGER
        );
        """)

        # 3. One row per physical file
        # Perceptual hashes are 16-char hex: unsigned 64-bit does not fit INTEGER.
        conn.execute("""
        CREATE TABLE IF NOT EXISTS photos (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            source_id       INTEGER NOT NULL,
            path            TEXT NOT NULL UNIQUE,
            size_bytes      INTEGER NOT NULL,
            format          TEXT NOT NULL,
            sha256          TEXT NOT NULL,
            phash           TEXT,                 -- average-hash
            dhash           TEXT,                 -- difference-hash
            capture_time    TEXT,
            camera_make     TEXT,
            camera_model    TEXT,
            width           INTEGER,
            height          INTEGER,
            gps_lat         REAL,
            gps_lon         REAL,
            mtime           INTEGER NOT NULL,
            FOREIGN KEY(source_id) REFERENCES sources(id) ON DELETE CASCADE
        );
        """)

        # 4. Key/value settings (vault and export destinations)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key             TEXT PRIMARY KEY,
            value           TEXT NOT NULL
        );
        """)

        # 5. Content-addressed vault pack contents
        conn.execute("""
        CREATE TABLE IF NOT EXISTS vault_manifest (
            sha256          TEXT PRIMARY KEY,
            format          TEXT NOT NULL
        );
        """)

        # 6. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_sha256 ON photos(sha256);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_source ON photos(source_id);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_photos_capture ON photos(capture_time);")

    logging.debug("Database schema initialized.")
