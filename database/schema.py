"""
SQLite schema and connection handling for the library store.

The full-text index is an external-content FTS5 table over the derived
`search_text` column (title + file name, see search.filters.search_text_for),
kept in sync by triggers.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from core.errors import StoreError


SCHEMA = '''
-- Documents
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT,
    file_name TEXT,
    file_type TEXT,
    file_size_bytes INTEGER DEFAULT 0,
    total_pages INTEGER,
    reading_progress REAL DEFAULT 0 CHECK (reading_progress >= 0 AND reading_progress <= 100),
    last_read_page INTEGER DEFAULT 0,
    last_read_at TEXT,
    is_favorite BOOLEAN DEFAULT 0,
    notes_count INTEGER DEFAULT 0,
    sessions_count INTEGER DEFAULT 0,
    series_id TEXT,
    series_order INTEGER,
    archived_at TEXT,
    embedding BLOB,
    search_text TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Full-text index over title + file name
CREATE VIRTUAL TABLE IF NOT EXISTS documents_fts USING fts5(
    search_text,
    content=documents,
    content_rowid=rowid,
    tokenize='porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS documents_ai AFTER INSERT ON documents BEGIN
    INSERT INTO documents_fts(rowid, search_text) VALUES (NEW.rowid, NEW.search_text);
END;

CREATE TRIGGER IF NOT EXISTS documents_ad AFTER DELETE ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, search_text)
    VALUES ('delete', OLD.rowid, OLD.search_text);
END;

CREATE TRIGGER IF NOT EXISTS documents_au AFTER UPDATE OF search_text ON documents BEGIN
    INSERT INTO documents_fts(documents_fts, rowid, search_text)
    VALUES ('delete', OLD.rowid, OLD.search_text);
    INSERT INTO documents_fts(rowid, search_text) VALUES (NEW.rowid, NEW.search_text);
END;

-- Collections (regular and smart)
CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    is_smart BOOLEAN DEFAULT 0,
    smart_filter TEXT,  -- JSON object
    color TEXT,
    icon TEXT,
    display_order INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    color TEXT,
    category TEXT
);

CREATE TABLE IF NOT EXISTS document_collections (
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    collection_id TEXT NOT NULL REFERENCES collections(id) ON DELETE CASCADE,
    PRIMARY KEY (document_id, collection_id)
);

CREATE TABLE IF NOT EXISTS document_tags (
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (document_id, tag_id)
);

-- Relationship graph
CREATE TABLE IF NOT EXISTS document_relationships (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    source_document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    related_document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    kind TEXT NOT NULL,
    relevance_score REAL CHECK (relevance_score IS NULL OR (relevance_score >= 0 AND relevance_score <= 100)),
    description TEXT,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'completed', 'failed')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (source_document_id, related_document_id),
    CHECK (source_document_id != related_document_id)
);

-- Indexes for cursor scans and common lookups
CREATE INDEX IF NOT EXISTS idx_documents_last_read_cursor ON documents(owner_id, last_read_at DESC, id);
CREATE INDEX IF NOT EXISTS idx_documents_created_cursor ON documents(owner_id, created_at DESC, id);
CREATE INDEX IF NOT EXISTS idx_documents_favorites ON documents(owner_id, id) WHERE is_favorite = 1;
CREATE INDEX IF NOT EXISTS idx_documents_embedded ON documents(owner_id) WHERE embedding IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_collections_owner ON collections(owner_id);
CREATE INDEX IF NOT EXISTS idx_document_collections_collection ON document_collections(collection_id);
CREATE INDEX IF NOT EXISTS idx_document_tags_tag ON document_tags(tag_id);
CREATE INDEX IF NOT EXISTS idx_relationships_owner ON document_relationships(owner_id);
CREATE INDEX IF NOT EXISTS idx_relationships_related ON document_relationships(related_document_id);
CREATE INDEX IF NOT EXISTS idx_relationships_status ON document_relationships(status);
'''


def init_db(db_path: Union[str, Path]):
    """Create the schema if it does not exist."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with connect(path) as conn:
        conn.executescript(SCHEMA)


@contextmanager
def connect(db_path: Union[str, Path], timeout: float = 10.0) -> Iterator[sqlite3.Connection]:
    """
    Open a connection, commit on success, roll back on failure.

    sqlite3 errors are re-raised as StoreError; other exceptions pass
    through unchanged after the rollback.
    """
    try:
        conn = sqlite3.connect(str(db_path), timeout=timeout)
    except sqlite3.Error as e:
        raise StoreError(f'Could not open database: {e}', db_path=str(db_path)) from e

    conn.row_factory = sqlite3.Row
    try:
        conn.execute('PRAGMA foreign_keys = ON')
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise StoreError(f'Database operation failed: {e}') from e
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
