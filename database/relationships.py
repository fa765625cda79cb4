"""
Relationship Edge Store

Directed, owner-scoped edges between documents. At most one edge exists per
ordered (source, related) pair: the insert is a single
INSERT ... ON CONFLICT DO NOTHING statement, so concurrent writers for the
same pair cannot both succeed and the first write wins.

Usage:
    from database.relationships import RelationshipRepository

    edges = RelationshipRepository('data/library.db')
    created = edges.upsert_edge_if_absent(owner, a, b, kind, 87.5, 'Auto')
"""

import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.errors import ValidationError
from core.timestamps import from_db_timestamp, to_db_timestamp, utcnow

from .models import ComputationStatus, DocumentRelationship, RelatedDocument, RelationshipKind
from .schema import connect, init_db

logger = logging.getLogger(__name__)


class RelationshipRepository:
    """Edge storage for one library database."""

    def __init__(self, db_path: Union[str, Path] = None):
        if db_path is None:
            db_path = Path(__file__).parent.parent / 'data' / 'library.db'

        self.db_path = Path(db_path)
        init_db(self.db_path)

    def _connection(self):
        return connect(self.db_path)

    def upsert_edge_if_absent(
        self,
        owner_id: str,
        source_id: str,
        related_id: str,
        kind: RelationshipKind,
        relevance_score: Optional[float],
        description: Optional[str] = None,
        status: ComputationStatus = ComputationStatus.COMPLETED
    ) -> Optional[DocumentRelationship]:
        """
        Create the edge source -> related unless one already exists.

        Both documents must belong to `owner_id`.

        Returns:
            The new edge, or None if the pair already had one
        """
        if source_id == related_id:
            raise ValidationError('A document cannot relate to itself', document_id=source_id)
        if relevance_score is not None and not 0 <= relevance_score <= 100:
            raise ValidationError(
                'Relevance score must be within [0, 100]',
                relevance_score=relevance_score
            )

        now = utcnow()
        edge = DocumentRelationship(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            source_document_id=source_id,
            related_document_id=related_id,
            kind=kind,
            relevance_score=relevance_score,
            description=description,
            status=status,
            created_at=now,
            updated_at=now,
        )

        with self._connection() as conn:
            cursor = conn.execute(
                '''
                INSERT INTO document_relationships
                (id, owner_id, source_document_id, related_document_id, kind,
                 relevance_score, description, status, created_at, updated_at)
                SELECT ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
                WHERE EXISTS (SELECT 1 FROM documents WHERE id = ? AND owner_id = ?)
                  AND EXISTS (SELECT 1 FROM documents WHERE id = ? AND owner_id = ?)
                ON CONFLICT(source_document_id, related_document_id) DO NOTHING
                ''',
                (
                    edge.id, owner_id, source_id, related_id, kind.value,
                    relevance_score, description, status.value,
                    to_db_timestamp(now), to_db_timestamp(now),
                    source_id, owner_id, related_id, owner_id,
                )
            )
            created = cursor.rowcount > 0

        if created:
            logger.debug(
                'Created relationship',
                extra={'owner_id': owner_id, 'source': source_id, 'related': related_id}
            )
            return edge
        return None

    def get_edge(self, source_id: str, related_id: str) -> Optional[DocumentRelationship]:
        with self._connection() as conn:
            row = conn.execute(
                '''
                SELECT * FROM document_relationships
                WHERE source_document_id = ? AND related_document_id = ?
                ''',
                (source_id, related_id)
            ).fetchone()

        return self._row_to_edge(row) if row else None

    def list_edges(self, owner_id: str) -> List[DocumentRelationship]:
        with self._connection() as conn:
            rows = conn.execute(
                '''
                SELECT * FROM document_relationships
                WHERE owner_id = ?
                ORDER BY source_document_id, related_document_id
                ''',
                (owner_id,)
            ).fetchall()

        return [self._row_to_edge(row) for row in rows]

    def get_related(self, source_id: str, owner_id: str) -> List[RelatedDocument]:
        """
        Outgoing edges of a document, joined with the related document.

        Ordered by relevance (unscored last), then newest first.
        """
        with self._connection() as conn:
            rows = conn.execute(
                '''
                SELECT r.*, d.title AS related_title, d.file_name AS related_file_name,
                       d.file_type AS related_file_type, d.total_pages AS related_total_pages
                FROM document_relationships r
                JOIN documents d ON d.id = r.related_document_id
                WHERE r.source_document_id = ? AND r.owner_id = ?
                ORDER BY r.relevance_score IS NULL, r.relevance_score DESC, r.created_at DESC
                ''',
                (source_id, owner_id)
            ).fetchall()

        return [
            RelatedDocument(
                relationship=self._row_to_edge(row),
                title=row['related_title'],
                file_name=row['related_file_name'],
                file_type=row['related_file_type'],
                total_pages=row['related_total_pages'],
            )
            for row in rows
        ]

    def get_stats(self, owner_id: str) -> Dict[str, Any]:
        """Edge counts by status plus the mean relevance of scored edges."""
        with self._connection() as conn:
            row = conn.execute(
                '''
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed,
                    SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END) AS pending,
                    SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed,
                    AVG(relevance_score) AS average_relevance
                FROM document_relationships
                WHERE owner_id = ?
                ''',
                (owner_id,)
            ).fetchone()

            kinds = conn.execute(
                '''
                SELECT kind, COUNT(*) AS count
                FROM document_relationships
                WHERE owner_id = ?
                GROUP BY kind
                ''',
                (owner_id,)
            ).fetchall()

        average = row['average_relevance']
        return {
            'total': row['total'],
            'completed': row['completed'] or 0,
            'pending': row['pending'] or 0,
            'failed': row['failed'] or 0,
            'average_relevance': round(average, 2) if average is not None else None,
            'by_kind': {k['kind']: k['count'] for k in kinds},
        }

    def backfill_reverse_edges(self, owner_id: str) -> int:
        """
        Add the missing reverse of every edge of an owner.

        The reverse copies kind, score, description and status; pairs that
        already have a reverse edge are left untouched.

        Returns:
            Number of edges created
        """
        now = to_db_timestamp(utcnow())

        with self._connection() as conn:
            missing = conn.execute(
                '''
                SELECT r.* FROM document_relationships r
                WHERE r.owner_id = ?
                  AND NOT EXISTS (
                      SELECT 1 FROM document_relationships x
                      WHERE x.source_document_id = r.related_document_id
                        AND x.related_document_id = r.source_document_id
                  )
                ''',
                (owner_id,)
            ).fetchall()

            created = 0
            for row in missing:
                cursor = conn.execute(
                    '''
                    INSERT INTO document_relationships
                    (id, owner_id, source_document_id, related_document_id, kind,
                     relevance_score, description, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(source_document_id, related_document_id) DO NOTHING
                    ''',
                    (
                        str(uuid.uuid4()), owner_id,
                        row['related_document_id'], row['source_document_id'],
                        row['kind'], row['relevance_score'], row['description'],
                        row['status'], now, now,
                    )
                )
                created += cursor.rowcount

        if created:
            logger.info(f'Backfilled {created} reverse relationships', extra={'owner_id': owner_id})
        return created

    def _row_to_edge(self, row: sqlite3.Row) -> DocumentRelationship:
        return DocumentRelationship(
            id=row['id'],
            owner_id=row['owner_id'],
            source_document_id=row['source_document_id'],
            related_document_id=row['related_document_id'],
            kind=RelationshipKind(row['kind']),
            relevance_score=row['relevance_score'],
            description=row['description'],
            status=ComputationStatus(row['status']),
            created_at=from_db_timestamp(row['created_at']),
            updated_at=from_db_timestamp(row['updated_at']),
        )
