"""
Core module - Database and storage utilities

This module provides:
- database: sqlite CRUD for namespaced JSON documents and app config
- schema: Database initialization
- store: async DocumentStore used by the translation manager
"""

from mdtranslator.core.database import (
    DB_FILE,
    get_connection,
    # Document operations
    get_document,
    put_document,
    delete_document,
    list_documents,
    clear_namespace,
    # App config operations
    get_app_config,
    set_app_config,
)

from mdtranslator.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
)
