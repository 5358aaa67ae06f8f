"""
Database CRUD Operations Module

This module handles all database CRUD operations for:
- Namespaced JSON documents (source contents, translations, live progress)
- App Config

For schema management, see core/schema.py
"""

import json
import os
import sqlite3
import time
from pathlib import Path
from typing import Optional, List, Dict, Any

DB_FILE = Path(os.environ.get("MDTRANSLATOR_DB", Path(__file__).parent.parent.parent / "translations.db"))


def get_connection():
    """Get a database connection."""
    return sqlite3.connect(DB_FILE)


# ============================================================
# Document Operations
# ============================================================

def get_document(namespace: str, doc_id: str) -> Optional[Dict[str, Any]]:
    """Get a document by namespace and id."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT body FROM documents WHERE namespace = ? AND id = ?",
            (namespace, doc_id),
        )
        row = cursor.fetchone()
        return json.loads(row[0]) if row else None


def put_document(namespace: str, doc_id: str, body: Dict[str, Any]):
    """Insert or replace a document."""
    payload = json.dumps(body, ensure_ascii=False)
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO documents (namespace, id, body, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(namespace, id) DO UPDATE SET
                body = excluded.body,
                updated_at = excluded.updated_at
        """, (namespace, doc_id, payload, time.time()))
        conn.commit()


def delete_document(namespace: str, doc_id: str):
    """Delete a document. Missing documents are ignored."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "DELETE FROM documents WHERE namespace = ? AND id = ?",
            (namespace, doc_id),
        )
        conn.commit()


def list_documents(namespace: str) -> List[Dict[str, Any]]:
    """Get all documents of a namespace, most recently updated first."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT body FROM documents WHERE namespace = ? ORDER BY updated_at DESC",
            (namespace,),
        )
        return [json.loads(row[0]) for row in cursor.fetchall()]


def clear_namespace(namespace: str):
    """Delete every document of a namespace."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM documents WHERE namespace = ?", (namespace,))
        conn.commit()


# ============================================================
# App Config Operations
# ============================================================

def get_app_config(key: str) -> Optional[str]:
    """Get an app config value."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM app_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_app_config(key: str, value: str):
    """Set an app config value."""
    with get_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT INTO app_config (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """, (key, value))
        conn.commit()
