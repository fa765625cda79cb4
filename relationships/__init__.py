"""
Relationship discovery for the document library.

- classification: similarity band table and relevance scores
- engine: embedding-triggered, idempotent bidirectional edge creation
"""

from .classification import CLASSIFICATION_BANDS, classify, relevance_score
from .engine import AUTO_DESCRIPTION, CandidateFailure, DiscoveryResult, RelationshipEngine

__all__ = [
    'AUTO_DESCRIPTION',
    'CLASSIFICATION_BANDS',
    'CandidateFailure',
    'DiscoveryResult',
    'RelationshipEngine',
    'classify',
    'relevance_score',
]
