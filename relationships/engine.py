"""
Relationship Inference Engine

Discovers related documents when a document's embedding becomes available.

For the triggering document it asks the store for the owner's nearest
embedded neighbors, keeps those above the similarity threshold, classifies
each by similarity band and inserts an edge in both directions. Inserts are
first-write-wins: an existing edge for an ordered pair is never modified,
so re-running discovery, or two documents being re-embedded at once,
creates no duplicates and causes no score churn.

A failure on one candidate is logged, recorded on the result and skipped;
failures fetching the document or its neighbors abort the run.

Usage:
    from relationships import RelationshipEngine

    engine = RelationshipEngine(document_repo, relationship_repo)
    result = engine.on_embedding_available(document_id, owner_id)
    print(f"{len(result.created)} edges created, {len(result.failures)} failed")
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.errors import LibraryError, NotFoundError, ValidationError
from core.logging_config import AuditLogger, log_performance
from database.models import ComputationStatus, DocumentRelationship

from .classification import DEFAULT_SIMILARITY_THRESHOLD, classify, relevance_score

logger = logging.getLogger(__name__)

AUTO_DESCRIPTION = 'Automatically detected relationship based on content similarity.'

DEFAULT_NEIGHBOR_LIMIT = 5


@dataclass
class CandidateFailure:
    """A neighbor whose edges could not be created."""
    candidate_id: str
    similarity: Optional[float]
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'candidate_id': self.candidate_id,
            'similarity': self.similarity,
            'error_type': self.error_type,
            'message': self.message,
        }


@dataclass
class DiscoveryResult:
    """Outcome of one discovery run."""
    document_id: str
    created: List[DocumentRelationship] = field(default_factory=list)
    failures: List[CandidateFailure] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def partial(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'document_id': self.document_id,
            'created': [edge.to_dict() for edge in self.created],
            'created_count': len(self.created),
            'failures': [f.to_dict() for f in self.failures],
            'partial': self.partial,
            'skipped_reason': self.skipped_reason,
        }


class RelationshipEngine:
    """
    Embedding-triggered relationship discovery.

    Args:
        documents: Store with get_document() and nearest_neighbors()
        relationships: Store with upsert_edge_if_absent()
        similarity_threshold: Minimum similarity for an edge
        neighbor_limit: Neighbors considered per run (top K)
        audit: Optional audit logger
    """

    def __init__(
        self,
        documents,
        relationships,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        neighbor_limit: int = DEFAULT_NEIGHBOR_LIMIT,
        audit: Optional[AuditLogger] = None
    ):
        if neighbor_limit < 1:
            raise ValueError('neighbor_limit must be at least 1')
        self.documents = documents
        self.relationships = relationships
        self.similarity_threshold = similarity_threshold
        self.neighbor_limit = neighbor_limit
        self.audit = audit

    @log_performance('library.relationships')
    def on_embedding_available(self, document_id: str, owner_id: str) -> DiscoveryResult:
        """
        Create edges between a freshly embedded document and its neighbors.

        Returns:
            DiscoveryResult with every edge created by this call (both
            directions) and any per-candidate failures

        Raises:
            ValidationError if either id is missing
            NotFoundError if the document does not exist for this owner
            StoreError if the document or its neighbors cannot be read
        """
        if not document_id:
            raise ValidationError('document_id is required', field='document_id')
        if not owner_id:
            raise ValidationError('owner_id is required', field='owner_id')

        document = self.documents.get_document(document_id)
        if document is None or document.owner_id != owner_id:
            raise NotFoundError('Document not found', document_id=document_id)

        result = DiscoveryResult(document_id=document_id)

        if document.embedding is None:
            logger.debug('Document has no embedding yet', extra={'document_id': document_id})
            result.skipped_reason = 'no_embedding'
            return result

        neighbors = self.documents.nearest_neighbors(
            owner_id,
            document.embedding,
            exclude_id=document_id,
            limit=self.neighbor_limit,
        )

        for candidate_id, similarity in neighbors[:self.neighbor_limit]:
            if candidate_id == document_id:
                continue
            try:
                self._link(result, owner_id, document_id, candidate_id, similarity)
            except (LibraryError, ValueError, TypeError, ArithmeticError) as e:
                logger.warning(
                    f'Skipping relationship candidate: {e}',
                    extra={
                        'owner_id': owner_id,
                        'document_id': document_id,
                        'candidate_id': candidate_id,
                        'error_type': type(e).__name__,
                    }
                )
                result.failures.append(CandidateFailure(
                    candidate_id=candidate_id,
                    similarity=_as_float(similarity),
                    error_type=type(e).__name__,
                    message=str(e),
                ))

        logger.info(
            f'Discovered {len(result.created)} relationships',
            extra={
                'owner_id': owner_id,
                'document_id': document_id,
                'candidates': len(neighbors),
                'failed': len(result.failures),
            }
        )
        if self.audit:
            self.audit.log_discovery(owner_id, document_id, len(result.created), len(result.failures))

        return result

    def _link(self, result: DiscoveryResult, owner_id: str, document_id: str,
              candidate_id: str, similarity: Any):
        similarity = float(similarity)
        kind = classify(similarity, self.similarity_threshold)
        if kind is None:
            return
        score = relevance_score(similarity)

        for source_id, related_id in ((document_id, candidate_id), (candidate_id, document_id)):
            edge = self.relationships.upsert_edge_if_absent(
                owner_id,
                source_id,
                related_id,
                kind,
                score,
                AUTO_DESCRIPTION,
                ComputationStatus.COMPLETED,
            )
            if not edge:
                continue
            if not isinstance(edge, DocumentRelationship):
                # Store reported success without returning the record
                edge = DocumentRelationship(
                    id=None,
                    owner_id=owner_id,
                    source_document_id=source_id,
                    related_document_id=related_id,
                    kind=kind,
                    relevance_score=score,
                    description=AUTO_DESCRIPTION,
                    status=ComputationStatus.COMPLETED,
                )
            result.created.append(edge)


def _as_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number
