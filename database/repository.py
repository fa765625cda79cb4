"""
SQLite Document Repository

Owner-scoped document storage with:
- Full-text search via FTS5 over title + file name
- Typed filter predicates and keyset pagination
- Nearest-neighbor lookup over stored embeddings
- Collection / tag membership

Usage:
    from database.repository import DocumentRepository

    repo = DocumentRepository('data/library.db')
    repo.save_document(document)
    rows = repo.query_documents(owner_id, predicates, Ordering(), limit=50)
"""

import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from core.errors import NotFoundError, ValidationError
from core.timestamps import from_db_timestamp, to_db_timestamp, utcnow
from search.cursor import Cursor
from search.filters import search_text_for, text_match
from search.ordering import Ordering

from .models import Collection, Document, Tag
from .schema import connect, init_db
from .sql import order_sql, predicate_sql, where_sql
from .vectors import blob_to_vector, top_k_similar, vector_to_blob

logger = logging.getLogger(__name__)

DOCUMENT_COLUMNS = (
    'id', 'owner_id', 'title', 'file_name', 'file_type', 'file_size_bytes',
    'total_pages', 'reading_progress', 'last_read_page', 'last_read_at',
    'is_favorite', 'notes_count', 'sessions_count', 'series_id',
    'series_order', 'archived_at', 'embedding', 'search_text',
    'created_at', 'updated_at',
)


class DocumentRepository:
    """
    Document store for one library database.

    Every read takes an owner id and never returns another owner's rows.
    """

    def __init__(self, db_path: Union[str, Path] = None):
        """
        Initialize the repository.

        Args:
            db_path: Path to SQLite database. Defaults to data/library.db
        """
        if db_path is None:
            db_path = Path(__file__).parent.parent / 'data' / 'library.db'

        self.db_path = Path(db_path)
        init_db(self.db_path)

    def _connection(self):
        return connect(self.db_path)

    # =========================================================================
    # Documents
    # =========================================================================

    def save_document(self, document: Document) -> Document:
        """
        Insert or update a document.

        The derived search text is recomputed on every write so the
        full-text index always reflects the current title and file name.
        """
        if not document.owner_id:
            raise ValidationError('Document owner_id is required', field='owner_id')
        if not document.id:
            document.id = str(uuid.uuid4())

        try:
            row = self._document_to_row(document)
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e), field='embedding', document_id=document.id)
        columns = list(row)
        updates = ', '.join(f'{c} = excluded.{c}' for c in columns if c not in ('id', 'owner_id', 'created_at'))

        sql = f'''
            INSERT INTO documents ({', '.join(columns)})
            VALUES ({', '.join('?' for _ in columns)})
            ON CONFLICT(id) DO UPDATE SET {updates}
            WHERE documents.owner_id = excluded.owner_id
        '''

        with self._connection() as conn:
            cursor = conn.execute(sql, [row[c] for c in columns])
            if cursor.rowcount == 0:
                raise ValidationError(
                    'Document id already belongs to another owner',
                    document_id=document.id
                )

        return document

    def get_document(self, document_id: str) -> Optional[Document]:
        """Get a document by id, or None."""
        with self._connection() as conn:
            row = conn.execute(
                'SELECT * FROM documents WHERE id = ?',
                (document_id,)
            ).fetchone()

        return self._row_to_document(row) if row else None

    def get_owned_document(self, document_id: str, owner_id: str) -> Document:
        """Get a document that must belong to `owner_id`."""
        document = self.get_document(document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError('Document not found', document_id=document_id)
        return document

    def set_embedding(self, document_id: str, owner_id: str, embedding: Optional[Sequence[float]]) -> bool:
        """
        Store (or clear) a document's embedding.

        Returns:
            True if the document exists for this owner
        """
        try:
            blob = vector_to_blob(embedding)
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e), field='embedding', document_id=document_id)

        with self._connection() as conn:
            cursor = conn.execute(
                'UPDATE documents SET embedding = ?, updated_at = ? WHERE id = ? AND owner_id = ?',
                (blob, to_db_timestamp(utcnow()), document_id, owner_id)
            )
            return cursor.rowcount > 0

    def delete_document(self, document_id: str, owner_id: str) -> bool:
        """Delete a document; memberships and relationship edges cascade."""
        with self._connection() as conn:
            cursor = conn.execute(
                'DELETE FROM documents WHERE id = ? AND owner_id = ?',
                (document_id, owner_id)
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Queries
    # =========================================================================

    def query_documents(
        self,
        owner_id: str,
        predicates: Iterable = (),
        ordering: Ordering = None,
        after: Optional[Cursor] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        """
        Filtered, ordered, keyset-paginated read.

        Args:
            owner_id: Owner scope (always applied)
            predicates: Filter-model predicates, combined with AND
            ordering: Sort order; NULLs last, id tie-break
            after: Return only rows strictly after this cursor
            limit: Maximum rows

        Returns:
            List of Document
        """
        ordering = ordering or Ordering()
        where_clause, params = where_sql(owner_id, predicates, after, ordering)

        sql = f'''
            SELECT d.*
            FROM documents d
            WHERE {where_clause}
            ORDER BY {order_sql(ordering)}
        '''
        if limit is not None:
            sql += ' LIMIT ?'
            params.append(int(limit))

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [self._row_to_document(row) for row in rows]

    def count_documents(self, owner_id: str, predicates: Iterable = ()) -> int:
        """Count documents matching the predicates."""
        where_clause, params = where_sql(owner_id, predicates)

        with self._connection() as conn:
            row = conn.execute(
                f'SELECT COUNT(*) FROM documents d WHERE {where_clause}',
                params
            ).fetchone()
            return row[0]

    def text_matches(self, owner_id: str, query_text: str) -> Set[str]:
        """Ids of the owner's documents whose title + file name match the query."""
        match = text_match(query_text)
        if match is None:
            return set()
        return {d.id for d in self.query_documents(owner_id, [match])}

    def nearest_neighbors(
        self,
        owner_id: str,
        vector: Sequence[float],
        exclude_id: Optional[str] = None,
        limit: int = 5,
        min_similarity: Optional[float] = None
    ) -> List[Tuple[str, float]]:
        """
        Most similar embedded documents of the same owner.

        Stored vectors whose dimension differs from the query are skipped.

        Returns:
            (document_id, similarity) pairs, similarity descending
        """
        query_vec = np.asarray(vector, dtype=np.float32)

        with self._connection() as conn:
            rows = conn.execute(
                '''
                SELECT id, embedding FROM documents
                WHERE owner_id = ? AND embedding IS NOT NULL AND id != ?
                ORDER BY id
                ''',
                (owner_id, exclude_id or '')
            ).fetchall()

        ids = []
        vectors = []
        skipped = 0
        for row in rows:
            candidate = blob_to_vector(row['embedding'])
            if candidate.shape != query_vec.shape:
                skipped += 1
                continue
            ids.append(row['id'])
            vectors.append(candidate)

        if skipped:
            logger.warning(
                f'Skipped {skipped} embeddings with mismatched dimension',
                extra={'owner_id': owner_id, 'dimension': int(query_vec.shape[0])}
            )

        if not vectors:
            return []

        matches = top_k_similar(query_vec, np.vstack(vectors), top_k=limit, threshold=min_similarity)
        return [(ids[i], score) for i, score in matches]

    # =========================================================================
    # Collections & Tags
    # =========================================================================

    def create_collection(self, collection: Collection) -> Collection:
        with self._connection() as conn:
            conn.execute(
                '''
                INSERT INTO collections
                (id, owner_id, name, description, is_smart, smart_filter, color, icon, display_order, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''',
                (
                    collection.id,
                    collection.owner_id,
                    collection.name,
                    collection.description,
                    collection.is_smart,
                    json.dumps(collection.smart_filter or {}),
                    collection.color,
                    collection.icon,
                    collection.display_order,
                    to_db_timestamp(collection.created_at),
                )
            )
        return collection

    def get_collection(self, collection_id: str) -> Optional[Collection]:
        with self._connection() as conn:
            row = conn.execute(
                'SELECT * FROM collections WHERE id = ?',
                (collection_id,)
            ).fetchone()

        return self._row_to_collection(row) if row else None

    def list_collections(self, owner_id: str, smart: Optional[bool] = None) -> List[Collection]:
        sql = 'SELECT * FROM collections WHERE owner_id = ?'
        params: List[Any] = [owner_id]
        if smart is not None:
            sql += ' AND is_smart = ?'
            params.append(smart)
        sql += ' ORDER BY display_order, name'

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        return [self._row_to_collection(row) for row in rows]

    def create_tag(self, tag: Tag) -> Tag:
        with self._connection() as conn:
            conn.execute(
                'INSERT INTO tags (id, owner_id, name, color, category) VALUES (?, ?, ?, ?, ?)',
                (tag.id, tag.owner_id, tag.name, tag.color, tag.category)
            )
        return tag

    def add_to_collection(self, document_id: str, collection_id: str) -> bool:
        """Add a membership; both sides must belong to the same owner."""
        return self._add_membership('collections', 'document_collections', 'collection_id',
                                    document_id, collection_id)

    def add_tag(self, document_id: str, tag_id: str) -> bool:
        return self._add_membership('tags', 'document_tags', 'tag_id', document_id, tag_id)

    def _add_membership(self, group_table, link_table, id_column, document_id, group_id) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                f'''
                SELECT d.owner_id AS document_owner, g.owner_id AS group_owner
                FROM documents d, {group_table} g
                WHERE d.id = ? AND g.id = ?
                ''',
                (document_id, group_id)
            ).fetchone()

            if row is None:
                raise NotFoundError(
                    'Document or group not found',
                    document_id=document_id, group_id=group_id
                )
            if row['document_owner'] != row['group_owner']:
                raise ValidationError(
                    'Document and group belong to different owners',
                    document_id=document_id, group_id=group_id
                )

            cursor = conn.execute(
                f'INSERT OR IGNORE INTO {link_table} (document_id, {id_column}) VALUES (?, ?)',
                (document_id, group_id)
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self, owner_id: str) -> Dict[str, Any]:
        """Per-owner library statistics."""
        with self._connection() as conn:
            stats = {}

            stats['total'] = conn.execute(
                'SELECT COUNT(*) FROM documents WHERE owner_id = ?', (owner_id,)
            ).fetchone()[0]

            rows = conn.execute('''
                SELECT file_type, COUNT(*) as count
                FROM documents
                WHERE owner_id = ?
                GROUP BY file_type
            ''', (owner_id,)).fetchall()
            stats['by_file_type'] = {row['file_type']: row['count'] for row in rows}

            stats['favorites'] = conn.execute(
                'SELECT COUNT(*) FROM documents WHERE owner_id = ? AND is_favorite = 1', (owner_id,)
            ).fetchone()[0]

            stats['archived'] = conn.execute(
                'SELECT COUNT(*) FROM documents WHERE owner_id = ? AND archived_at IS NOT NULL', (owner_id,)
            ).fetchone()[0]

            stats['with_embedding'] = conn.execute(
                'SELECT COUNT(*) FROM documents WHERE owner_id = ? AND embedding IS NOT NULL', (owner_id,)
            ).fetchone()[0]

            return stats

    # =========================================================================
    # Helpers
    # =========================================================================

    def _document_to_row(self, document: Document) -> Dict[str, Any]:
        return {
            'id': document.id,
            'owner_id': document.owner_id,
            'title': document.title,
            'file_name': document.file_name,
            'file_type': (document.file_type or '').lower() or None,
            'file_size_bytes': document.file_size_bytes,
            'total_pages': document.total_pages,
            'reading_progress': document.reading_progress,
            'last_read_page': document.last_read_page,
            'last_read_at': to_db_timestamp(document.last_read_at),
            'is_favorite': bool(document.is_favorite),
            'notes_count': document.notes_count,
            'sessions_count': document.sessions_count,
            'series_id': document.series_id,
            'series_order': document.series_order,
            'archived_at': to_db_timestamp(document.archived_at),
            'embedding': vector_to_blob(document.embedding),
            'search_text': search_text_for(document.title, document.file_name),
            'created_at': to_db_timestamp(document.created_at),
            'updated_at': to_db_timestamp(document.updated_at),
        }

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        return Document(
            id=row['id'],
            owner_id=row['owner_id'],
            title=row['title'],
            file_name=row['file_name'],
            file_type=row['file_type'],
            file_size_bytes=row['file_size_bytes'],
            total_pages=row['total_pages'],
            reading_progress=row['reading_progress'],
            last_read_page=row['last_read_page'],
            last_read_at=from_db_timestamp(row['last_read_at']),
            is_favorite=bool(row['is_favorite']),
            notes_count=row['notes_count'],
            sessions_count=row['sessions_count'],
            created_at=from_db_timestamp(row['created_at']),
            updated_at=from_db_timestamp(row['updated_at']),
            archived_at=from_db_timestamp(row['archived_at']),
            series_id=row['series_id'],
            series_order=row['series_order'],
            embedding=blob_to_vector(row['embedding']),
        )

    def _row_to_collection(self, row: sqlite3.Row) -> Collection:
        smart_filter = {}
        if row['smart_filter']:
            try:
                smart_filter = json.loads(row['smart_filter'])
            except (json.JSONDecodeError, TypeError):
                logger.warning('Invalid smart_filter JSON', extra={'collection_id': row['id']})

        return Collection(
            id=row['id'],
            owner_id=row['owner_id'],
            name=row['name'],
            description=row['description'],
            is_smart=bool(row['is_smart']),
            smart_filter=smart_filter,
            color=row['color'],
            icon=row['icon'],
            display_order=row['display_order'],
            created_at=from_db_timestamp(row['created_at']),
        )
