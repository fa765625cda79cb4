"""
Library API

REST endpoints for search, relationship discovery and smart collections.

The owner is established by the upstream access-control layer and passed
in the X-Owner-Id header; every endpoint is scoped to that owner.

Endpoints:
    GET|POST /api/search
    POST     /api/documents/<id>/relationships/discover
    GET      /api/documents/<id>/relationships
    GET      /api/relationships/stats
    GET      /api/smart-collections/<id>/documents
    GET      /api/smart-collections/<id>/count
    POST     /api/smart-collections/defaults
"""

import json

from flask import Blueprint, current_app, jsonify, request

from core.errors import NotFoundError, ValidationError
from search.filters import FILTER_ALIASES, FILTER_PARSERS
from search.query import SearchRequest

library_api = Blueprint('library_api', __name__)

OWNER_HEADER = 'X-Owner-Id'

# Filters that can be given directly as query parameters
_SCALAR_QUERY_FILTERS = ('fileType', 'isFavorite', 'hasNotes', 'hasActivity', 'isArchived', 'collections', 'tags')


def services():
    return current_app.extensions['library']


def current_owner() -> str:
    owner_id = request.headers.get(OWNER_HEADER, '').strip()
    if not owner_id:
        raise ValidationError(f'{OWNER_HEADER} header is required', field='owner_id')
    return owner_id


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        if request.data:
            raise ValidationError('Request body must be valid JSON')
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _search_request_from_args(owner_id: str) -> SearchRequest:
    """Build a SearchRequest from query-string parameters."""
    args = request.args
    payload = {key: args.get(key) for key in args if key != 'filters'}

    filters = {}
    raw_filters = args.get('filters')
    if raw_filters:
        try:
            filters = json.loads(raw_filters)
        except ValueError:
            raise ValidationError('filters must be a JSON object', field='filters')
        if not isinstance(filters, dict):
            raise ValidationError('filters must be a JSON object', field='filters')

    for key in args:
        canonical = FILTER_ALIASES.get(key, key)
        if canonical in _SCALAR_QUERY_FILTERS:
            filters[canonical] = args.get(key)
        elif canonical in FILTER_PARSERS and canonical not in filters:
            raise ValidationError(
                f'Filter {key} must be passed inside the filters parameter',
                filter=key
            )

    payload['filters'] = filters
    return SearchRequest.from_dict(payload, owner_id=owner_id)


# =============================================================================
# Search
# =============================================================================

@library_api.route('/search', methods=['GET', 'POST'])
def search():
    """
    Faceted, full-text, cursor-paginated search.

    GET query params:
        q: Free-text query over title and file name
        sort: Sort key (default last_read_at)
        order: desc (default) or asc
        cursor: Opaque cursor from a previous page
        limit: Page size (clamped to the configured maximum)
        filters: JSON object of filters
        fileType, isFavorite, hasNotes, hasActivity, isArchived,
        collections, tags: scalar filters

    POST takes the same fields as a JSON body.
    """
    owner_id = current_owner()

    if request.method == 'POST':
        search_request = SearchRequest.from_dict(_json_body(), owner_id=owner_id)
    else:
        search_request = _search_request_from_args(owner_id)

    page = services().search.search(search_request)
    return jsonify(page.to_dict())


# =============================================================================
# Relationships
# =============================================================================

@library_api.route('/documents/<document_id>/relationships/discover', methods=['POST'])
def discover_relationships(document_id):
    """
    Run relationship discovery for a document.

    Optional JSON body:
        embedding: New embedding to store before discovery
    """
    owner_id = current_owner()
    body = _json_body()
    svc = services()

    if 'embedding' in body:
        embedding = body['embedding']
        if embedding is not None and not isinstance(embedding, list):
            raise ValidationError('embedding must be a list of numbers', field='embedding')
        if not svc.documents.set_embedding(document_id, owner_id, embedding):
            raise NotFoundError('Document not found', document_id=document_id)

    result = svc.engine.on_embedding_available(document_id, owner_id)
    return jsonify(result.to_dict()), 201 if result.created else 200


@library_api.route('/documents/<document_id>/relationships')
def list_relationships(document_id):
    """Related documents, most relevant first."""
    owner_id = current_owner()
    svc = services()

    svc.documents.get_owned_document(document_id, owner_id)
    related = svc.relationships.get_related(document_id, owner_id)

    return jsonify({
        'document_id': document_id,
        'relationships': [r.to_dict() for r in related],
        'total': len(related)
    })


@library_api.route('/relationships/stats')
def relationship_stats():
    return jsonify(services().relationships.get_stats(current_owner()))


# =============================================================================
# Smart Collections
# =============================================================================

@library_api.route('/smart-collections/<collection_id>/documents')
def smart_collection_documents(collection_id):
    owner_id = current_owner()
    documents = services().smart_collections.evaluate(collection_id, owner_id)

    return jsonify({
        'collection_id': collection_id,
        'documents': [d.to_dict() for d in documents],
        'count': len(documents)
    })


@library_api.route('/smart-collections/<collection_id>/count')
def smart_collection_count(collection_id):
    owner_id = current_owner()
    return jsonify({
        'collection_id': collection_id,
        'count': services().smart_collections.count(collection_id, owner_id)
    })


@library_api.route('/smart-collections/defaults', methods=['POST'])
def create_default_smart_collections():
    """Create the default smart collections the owner is missing."""
    owner_id = current_owner()
    created = services().smart_collections.ensure_defaults(owner_id)

    return jsonify({
        'created': [c.to_dict() for c in created],
        'total': len(created)
    }), 201 if created else 200
