"""
Data models for the document library.

Documents, collections, tags and relationship edges. Each model converts
itself to a JSON-friendly dict; timestamps are rendered in the canonical
stored form (see core/timestamps.py).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np

from core.timestamps import to_db_timestamp, utcnow


# =============================================================================
# Enums
# =============================================================================

class RelationshipKind(Enum):
    """How two documents relate."""
    IDENTICAL = "Identical"
    EXTENSION = "Extension / Follow-up"
    SHARED_TOPIC = "Shared Topic"
    RELATED_TANGENTIAL = "Related (Tangential)"


class ComputationStatus(Enum):
    """Status of an edge's relevance computation."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Entities
# =============================================================================

@dataclass
class Document:
    """One item in an owner's library."""
    id: str
    owner_id: str
    title: str
    file_name: str
    file_type: str = 'pdf'
    file_size_bytes: int = 0
    total_pages: Optional[int] = None
    reading_progress: float = 0.0
    last_read_page: int = 0
    last_read_at: Optional[datetime] = None
    is_favorite: bool = False
    notes_count: int = 0
    sessions_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    archived_at: Optional[datetime] = None
    series_id: Optional[str] = None
    series_order: Optional[int] = None
    embedding: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'title': self.title,
            'file_name': self.file_name,
            'file_type': self.file_type,
            'file_size_bytes': self.file_size_bytes,
            'total_pages': self.total_pages,
            'reading_progress': self.reading_progress,
            'last_read_page': self.last_read_page,
            'last_read_at': to_db_timestamp(self.last_read_at),
            'is_favorite': self.is_favorite,
            'notes_count': self.notes_count,
            'sessions_count': self.sessions_count,
            'created_at': to_db_timestamp(self.created_at),
            'updated_at': to_db_timestamp(self.updated_at),
            'archived_at': to_db_timestamp(self.archived_at),
            'series_id': self.series_id,
            'series_order': self.series_order,
            'has_embedding': self.has_embedding,
        }


@dataclass
class Collection:
    """An owner-scoped group of documents; smart collections carry a filter."""
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    is_smart: bool = False
    smart_filter: Dict[str, Any] = field(default_factory=dict)
    color: Optional[str] = None
    icon: Optional[str] = None
    display_order: int = 0
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'description': self.description,
            'is_smart': self.is_smart,
            'smart_filter': self.smart_filter,
            'color': self.color,
            'icon': self.icon,
            'display_order': self.display_order,
            'created_at': to_db_timestamp(self.created_at),
        }


@dataclass
class Tag:
    """An owner-scoped label."""
    id: str
    owner_id: str
    name: str
    color: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'color': self.color,
            'category': self.category,
        }


@dataclass
class DocumentRelationship:
    """A directed, scored edge between two documents of one owner."""
    id: str
    owner_id: str
    source_document_id: str
    related_document_id: str
    kind: RelationshipKind
    relevance_score: Optional[float]
    description: Optional[str]
    status: ComputationStatus = ComputationStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def pair(self):
        return (self.source_document_id, self.related_document_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'source_document_id': self.source_document_id,
            'related_document_id': self.related_document_id,
            'kind': self.kind.value,
            'relevance_score': self.relevance_score,
            'description': self.description,
            'status': self.status.value,
            'created_at': to_db_timestamp(self.created_at),
            'updated_at': to_db_timestamp(self.updated_at),
        }


@dataclass
class RelatedDocument:
    """An edge joined with the details of the document it points to."""
    relationship: DocumentRelationship
    title: str
    file_name: str
    file_type: str
    total_pages: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.relationship.to_dict()
        data.update({
            'related_title': self.title,
            'related_file_name': self.file_name,
            'related_file_type': self.file_type,
            'related_total_pages': self.total_pages,
        })
        return data


def documents_to_dicts(documents: List[Document]) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in documents]
