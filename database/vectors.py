"""
Vector helpers for the nearest-neighbor index.

Embeddings are stored as float32 blobs and compared with cosine similarity
(1 - cosine distance) computed in float64 with numpy.

Usage:
    from database.vectors import top_k_similar

    matches = top_k_similar(query_vec, corpus_vecs, top_k=5)
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np


def vector_to_blob(vector: Optional[Sequence[float]]) -> Optional[bytes]:
    """Serialize an embedding as float32 bytes."""
    if vector is None:
        return None
    array = np.asarray(vector, dtype=np.float32)
    if array.ndim != 1 or array.size == 0:
        raise ValueError(f'Embedding must be a non-empty 1-d vector, got shape {array.shape}')
    if not np.all(np.isfinite(array)):
        raise ValueError('Embedding contains NaN or infinite values')
    return array.tobytes()


def blob_to_vector(blob: Optional[bytes]) -> Optional[np.ndarray]:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32)


def cosine_similarities(query: np.ndarray, corpus: np.ndarray) -> np.ndarray:
    """Similarity of `query` against every row of `corpus`."""
    query = np.asarray(query, dtype=np.float64)
    corpus = np.asarray(corpus, dtype=np.float64)

    query_norm = np.linalg.norm(query)
    corpus_norms = np.linalg.norm(corpus, axis=1)

    if query_norm == 0:
        return np.zeros(len(corpus))

    denominators = corpus_norms * query_norm
    dots = corpus @ query
    return np.divide(dots, denominators, out=np.zeros_like(dots), where=denominators > 0)


def top_k_similar(
    query_vec: np.ndarray,
    corpus_vecs: np.ndarray,
    top_k: int = 5,
    threshold: Optional[float] = None
) -> List[Tuple[int, float]]:
    """
    Find the most similar rows in a corpus.

    Args:
        query_vec: Query vector of shape (dimension,)
        corpus_vecs: Corpus of shape (n_docs, dimension)
        top_k: Number of results to return
        threshold: Optional minimum similarity

    Returns:
        (row index, similarity) pairs, similarity descending; ties keep
        corpus order
    """
    if len(corpus_vecs) == 0 or top_k < 1:
        return []

    similarities = cosine_similarities(query_vec, corpus_vecs)

    if threshold is not None:
        candidates = np.where(similarities >= threshold)[0]
    else:
        candidates = np.arange(len(similarities))

    if len(candidates) == 0:
        return []

    # Stable sort on the negated scores keeps ties in corpus order
    ranked = candidates[np.argsort(-similarities[candidates], kind='stable')][:top_k]

    return [(int(i), float(similarities[i])) for i in ranked]
