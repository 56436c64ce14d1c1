"""Database schema for the queue, registry and runs tables.

The migration is idempotent and can be applied multiple times safely. The
schema version lives in a ``_meta`` table so later migrations can gate on it.

Example:
  ```python
  import sqlite3
  from GraphIngest.datastore.migrations import apply_migrations

  conn = sqlite3.connect("graphingest.sqlite")
  apply_migrations(conn)
  conn.close()
  ```
"""

from __future__ import annotations

import sqlite3

SCHEMA_VERSION = 1

_MIGRATION_SQL = """
BEGIN IMMEDIATE;

-- Meta version gate
CREATE TABLE IF NOT EXISTS _meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);
INSERT OR IGNORE INTO _meta(key, value) VALUES ('schema_version', '1');

-- Pending work, one row per identifier
CREATE TABLE IF NOT EXISTS queue (
  iri          TEXT PRIMARY KEY,
  action       TEXT,
  type         TEXT,
  retry_count  INTEGER NOT NULL DEFAULT 0,
  created_at   TEXT NOT NULL,
  updated_at   TEXT NOT NULL,
  CHECK (action IS NULL OR action IN ('create','update','delete'))
);
CREATE INDEX IF NOT EXISTS queue_type ON queue(type);

-- Identifiers currently materialized in the file store
CREATE TABLE IF NOT EXISTS registry (
  iri          TEXT PRIMARY KEY,
  type         TEXT,
  created_at   TEXT NOT NULL,
  updated_at   TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS registry_type ON registry(type);

-- Run bookkeeping; only the last row is meaningful
CREATE TABLE IF NOT EXISTS runs (
  id           INTEGER PRIMARY KEY AUTOINCREMENT,
  identifier   TEXT,
  created_at   TEXT NOT NULL,
  updated_at   TEXT NOT NULL
);

UPDATE _meta SET value='1' WHERE key='schema_version';
COMMIT;
"""


def apply_migrations(conn: sqlite3.Connection) -> None:
    """Create the queue, registry and runs tables if they do not exist.

    Raises
    ------
    sqlite3.Error
        If the migration fails (e.g., schema conflicts)
    """
    conn.executescript(_MIGRATION_SQL)


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read current schema version from the ``_meta`` table (0 when absent)."""
    try:
        row = conn.execute("SELECT value FROM _meta WHERE key='schema_version'").fetchone()
        return int(row[0]) if row else 0
    except sqlite3.OperationalError:
        return 0
