"""
Similarity band classification.

A pure mapping from an embedding similarity to a relationship kind,
evaluated top-down over an ordered (threshold, kind) table:

    >= 0.90  Identical
    >= 0.80  Extension / Follow-up
    >= 0.70  Shared Topic

Anything below the caller's threshold is not a relationship at all. A
similarity that clears the threshold but no band (possible only when the
threshold is configured below 0.70) is Related (Tangential); with the
default threshold that kind is never produced automatically.
"""

import math
from typing import Optional, Tuple

from database.models import RelationshipKind

DEFAULT_SIMILARITY_THRESHOLD = 0.70

CLASSIFICATION_BANDS: Tuple[Tuple[float, RelationshipKind], ...] = (
    (0.90, RelationshipKind.IDENTICAL),
    (0.80, RelationshipKind.EXTENSION),
    (0.70, RelationshipKind.SHARED_TOPIC),
)


def classify(similarity: float, threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> Optional[RelationshipKind]:
    """
    Kind of relationship implied by a similarity, or None if below threshold.

    Raises:
        ValueError for NaN similarity
    """
    if math.isnan(similarity):
        raise ValueError('Similarity is NaN')
    if similarity < threshold:
        return None

    for band, kind in CLASSIFICATION_BANDS:
        if similarity >= band:
            return kind

    return RelationshipKind.RELATED_TANGENTIAL


def relevance_score(similarity: float) -> float:
    """Similarity as a 0-100 score with two decimals."""
    if math.isnan(similarity):
        raise ValueError('Similarity is NaN')
    return min(max(round(similarity * 100, 2), 0.0), 100.0)
