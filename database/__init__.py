"""
Database Layer for the document library

SQLite-based storage with FTS5 full-text search.

Features:
- Owner-scoped document, collection and tag storage
- Full-text search over title + file name
- Keyset-paginated filtered queries
- Relationship edges with first-write-wins inserts

Usage:
    from database import DocumentRepository, RelationshipRepository

    repo = DocumentRepository()
    repo.save_document(document)
    docs = repo.query_documents(owner_id, predicates, ordering, limit=50)
"""

from .models import (
    Collection,
    ComputationStatus,
    Document,
    DocumentRelationship,
    RelatedDocument,
    RelationshipKind,
    Tag,
)
from .relationships import RelationshipRepository
from .repository import DocumentRepository

__all__ = [
    'Collection',
    'ComputationStatus',
    'Document',
    'DocumentRelationship',
    'DocumentRepository',
    'RelatedDocument',
    'RelationshipKind',
    'RelationshipRepository',
    'Tag',
]
