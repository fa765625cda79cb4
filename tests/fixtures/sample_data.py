#!/usr/bin/env python3
"""
Sample Data Generator for the document library

Builders for documents and embeddings used across the test suite, plus a
small generator that fills a database with a realistic library for
development.

Usage:
    python -m tests.fixtures.sample_data --db data/library.db --count 200
"""

import argparse
import math
import random
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from database.models import Document

OWNER = 'owner-alice'
OTHER_OWNER = 'owner-bob'

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Builders
# =============================================================================

def at(days: float = 0, hours: float = 0) -> datetime:
    """A fixed point in time relative to BASE_TIME."""
    return BASE_TIME + timedelta(days=days, hours=hours)


def make_document(doc_id: str, owner_id: str = OWNER, **overrides) -> Document:
    """A document with deterministic defaults; any field can be overridden."""
    values = dict(
        id=doc_id,
        owner_id=owner_id,
        title=f'Document {doc_id}',
        file_name=f'{doc_id}.pdf',
        file_type='pdf',
        file_size_bytes=1024,
        total_pages=100,
        created_at=at(),
        updated_at=at(),
    )
    values.update(overrides)
    return Document(**values)


def similar_vector(similarity: float, dimension: int = 2) -> List[float]:
    """
    A unit vector whose cosine similarity to base_vector() is `similarity`.
    """
    vector = [0.0] * dimension
    vector[0] = similarity
    vector[1] = math.sqrt(max(0.0, 1.0 - similarity * similarity))
    return vector


def base_vector(dimension: int = 2) -> List[float]:
    vector = [0.0] * dimension
    vector[0] = 1.0
    return vector


# Small library with ties and never-read documents, used by the search tests
SAMPLE_LIBRARY: List[Dict] = [
    dict(id='d01', title='Introduction to Graph Theory', file_name='graph_theory.pdf',
         reading_progress=100, is_favorite=True, notes_count=3, last_read_at=at(days=5),
         created_at=at(days=-30), file_size_bytes=2_000_000),
    dict(id='d02', title='Deep Learning', file_name='deep_learning.epub', file_type='epub',
         reading_progress=40, last_read_at=at(days=5), created_at=at(days=-20),
         sessions_count=2, file_size_bytes=5_000_000),
    dict(id='d03', title='Graphs and Networks', file_name='networks.pdf',
         reading_progress=10, last_read_at=at(days=3), created_at=at(days=-10),
         file_size_bytes=750_000),
    dict(id='d04', title='Cooking for Engineers', file_name='cooking.pdf',
         reading_progress=0, created_at=at(days=-5), file_size_bytes=300_000),
    dict(id='d05', title='Linear Algebra Done Right', file_name='linear_algebra.pdf',
         reading_progress=75.5, is_favorite=True, notes_count=1, last_read_at=at(days=1),
         created_at=at(days=-40), file_size_bytes=3_500_000),
    dict(id='d06', title='Network Science', file_name='network_science.pdf',
         reading_progress=0, created_at=at(days=-5), file_size_bytes=900_000),
    dict(id='d07', title='The Art of Computer Programming', file_name='taocp_vol1.djvu',
         file_type='djvu', reading_progress=5, last_read_at=at(days=3), created_at=at(days=-1),
         sessions_count=7, file_size_bytes=12_000_000),
]


def build_library(repo, owner_id: str = OWNER, entries: Optional[Sequence[Dict]] = None) -> List[Document]:
    """Save SAMPLE_LIBRARY (or the given entries) for one owner."""
    documents = []
    for entry in entries if entries is not None else SAMPLE_LIBRARY:
        entry = dict(entry)
        doc_id = entry.pop('id')
        if owner_id != OWNER:
            doc_id = f'{owner_id}-{doc_id}'
        documents.append(repo.save_document(make_document(doc_id, owner_id=owner_id, **entry)))
    return documents


# =============================================================================
# Random library generator
# =============================================================================

TOPICS = [
    'Graph Theory', 'Machine Learning', 'Linear Algebra', 'Distributed Systems',
    'Compilers', 'Category Theory', 'Statistics', 'Cryptography', 'Databases',
    'Operating Systems', 'Number Theory', 'Information Retrieval',
]

FORMATS = ['pdf', 'epub', 'djvu', 'mobi']


def generate_library(count: int, owner_id: str = OWNER, seed: int = 7, dimension: int = 16) -> List[Document]:
    """Random but reproducible documents with topic-clustered embeddings."""
    rng = random.Random(seed)
    topic_centers = {
        topic: [rng.gauss(0, 1) for _ in range(dimension)]
        for topic in TOPICS
    }

    documents = []
    for i in range(count):
        topic = rng.choice(TOPICS)
        file_type = rng.choice(FORMATS)
        progress = rng.choice([0, 0, 100, round(rng.uniform(1, 99), 2)])
        created = BASE_TIME - timedelta(days=rng.randint(0, 365))
        last_read = None if progress == 0 else created + timedelta(days=rng.randint(0, 60))
        center = topic_centers[topic]

        documents.append(make_document(
            str(uuid.UUID(int=rng.getrandbits(128))),
            owner_id=owner_id,
            title=f'{topic} Volume {i + 1}',
            file_name=f'{topic.lower().replace(" ", "_")}_{i + 1}.{file_type}',
            file_type=file_type,
            file_size_bytes=rng.randint(50_000, 50_000_000),
            total_pages=rng.randint(40, 1200),
            reading_progress=progress,
            last_read_at=last_read,
            is_favorite=rng.random() < 0.15,
            notes_count=rng.choice([0, 0, 0, rng.randint(1, 20)]),
            sessions_count=rng.choice([0, rng.randint(1, 30)]),
            created_at=created,
            updated_at=last_read or created,
            embedding=[c + rng.gauss(0, 0.3) for c in center],
        ))

    return documents


def main():
    from database.repository import DocumentRepository

    parser = argparse.ArgumentParser(description='Generate a sample document library')
    parser.add_argument('--db', default='data/library.db', help='SQLite database path')
    parser.add_argument('--count', type=int, default=200, help='Number of documents')
    parser.add_argument('--owner', default=OWNER, help='Owner id')
    parser.add_argument('--seed', type=int, default=7)
    args = parser.parse_args()

    repo = DocumentRepository(args.db)
    for document in generate_library(args.count, owner_id=args.owner, seed=args.seed):
        repo.save_document(document)

    print(f'Wrote {args.count} documents for {args.owner} to {args.db}')


if __name__ == '__main__':
    main()
