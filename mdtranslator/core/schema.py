"""
Database schema and migrations.

The schema is a list of migrations applied in order; the index of the last
applied one is stored in db_version. Translation records outlive process
restarts (that is what makes resume work), so existing databases are
upgraded in place, never recreated. For CRUD operations see core/database.py.
"""

import sqlite3
from typing import List, Tuple

# Module attribute access keeps DB_FILE patchable in tests
import mdtranslator.core.database as db

MIGRATIONS: List[Tuple[str, ...]] = [
    # 1: namespaced JSON documents (contents, translations, live_progress) and app config
    (
        """
        CREATE TABLE IF NOT EXISTS documents (
            namespace TEXT NOT NULL,
            id TEXT NOT NULL,
            body TEXT NOT NULL,
            updated_at REAL NOT NULL,
            PRIMARY KEY (namespace, id)
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_documents_namespace_updated
        ON documents (namespace, updated_at)
        """,
        """
        CREATE TABLE IF NOT EXISTS app_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
]

DB_VERSION = len(MIGRATIONS)


def get_db_version() -> int:
    """Number of migrations applied to the current database (0 when new)."""
    try:
        with db.get_connection() as conn:
            row = conn.execute("SELECT version FROM db_version LIMIT 1").fetchone()
            return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0


def set_db_version(version: int):
    with db.get_connection() as conn:
        conn.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        conn.execute("DELETE FROM db_version")
        conn.execute("INSERT INTO db_version (version) VALUES (?)", (version,))
        conn.commit()


def initialize_database():
    """Create the database file if needed and apply pending migrations."""
    from mdtranslator.logger import get_logger
    logger = get_logger(__name__)

    db.DB_FILE.parent.mkdir(parents=True, exist_ok=True)
    current_version = get_db_version()
    if current_version >= DB_VERSION:
        return

    with db.get_connection() as conn:
        for version, statements in enumerate(MIGRATIONS[current_version:], start=current_version + 1):
            for statement in statements:
                conn.execute(statement)
            logger.debug(f"Applied schema migration {version}")
        conn.commit()

    set_db_version(DB_VERSION)
    logger.info(f"Database schema initialized (version {current_version} -> {DB_VERSION})")
