"""
Tests for the Library API

Exercises the Flask app through its test client.
"""

import json

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import LibraryConfig
from library_api.app import create_app
from tests.fixtures.sample_data import (
    OTHER_OWNER, OWNER, base_vector, build_library, make_document, similar_vector
)

HEADERS = {'X-Owner-Id': OWNER}


@pytest.fixture
def app(tmp_path):
    config = LibraryConfig(db_path=str(tmp_path / 'library.db'), default_page_size=5, max_page_size=5)
    app = create_app(config, configure_logging=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def services(app):
    return app.extensions['library']


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def library(services):
    documents = build_library(services.documents)
    build_library(services.documents, owner_id=OTHER_OWNER)
    return documents


class TestSearchEndpoint:
    """GET|POST /api/search"""

    def test_get_search(self, client, library):
        response = client.get('/api/search', headers=HEADERS)

        assert response.status_code == 200
        data = response.get_json()
        assert [d['id'] for d in data['documents']] == ['d02', 'd01', 'd07', 'd03', 'd05']
        assert data['page_size'] == 5
        assert data['has_more'] is True
        assert data['sort_key'] == 'last_read_at'

    def test_follow_cursor(self, client, library):
        first = client.get('/api/search', headers=HEADERS).get_json()
        second = client.get(
            '/api/search', headers=HEADERS, query_string={'cursor': first['next_cursor']}
        ).get_json()

        assert [d['id'] for d in second['documents']] == ['d06', 'd04']
        assert second['next_cursor'] is None

    def test_get_with_scalar_and_json_filters(self, client, library):
        response = client.get('/api/search', headers=HEADERS, query_string={
            'q': 'graph',
            'isFavorite': 'true',
            'filters': json.dumps({'readingProgress': {'min': 50}}),
        })

        assert [d['id'] for d in response.get_json()['documents']] == ['d01']

    def test_range_filter_requires_filters_param(self, client, library):
        response = client.get('/api/search', headers=HEADERS, query_string={'readingProgress': '50'})

        assert response.status_code == 400

    def test_post_search(self, client, library):
        response = client.post('/api/search', headers=HEADERS, json={
            'filters': {'isFavorite': True},
            'sortKey': 'title',
            'sortDirection': 'asc',
        })

        assert response.status_code == 200
        assert [d['title'] for d in response.get_json()['documents']] == [
            'Introduction to Graph Theory', 'Linear Algebra Done Right'
        ]

    def test_owner_header_required(self, client, library):
        response = client.get('/api/search')

        assert response.status_code == 400
        data = response.get_json()
        assert data['error'] == 'validation_error'
        assert data['retryable'] is False

    def test_owner_in_body_is_ignored(self, client, library):
        response = client.post('/api/search', headers=HEADERS, json={'ownerId': OTHER_OWNER})

        assert all(d['owner_id'] == OWNER for d in response.get_json()['documents'])

    def test_bad_filter_is_400(self, client, library):
        response = client.post('/api/search', headers=HEADERS, json={
            'filters': {'readingProgress': {'min': 'lots'}}
        })

        assert response.status_code == 400
        assert response.get_json()['details']['filter'] == 'readingProgress'

    def test_bad_cursor_is_400(self, client, library):
        response = client.get('/api/search', headers=HEADERS, query_string={'cursor': 'nope'})

        assert response.status_code == 400

    def test_malformed_json_body(self, client, library):
        response = client.post(
            '/api/search', headers=HEADERS, data='{not json', content_type='application/json'
        )

        assert response.status_code == 400

    def test_request_id_echoed(self, client, library):
        response = client.get('/api/search', headers={**HEADERS, 'X-Request-ID': 'req-123'})

        assert response.headers['X-Request-ID'] == 'req-123'


class TestRelationshipEndpoints:
    """Discovery and related documents."""

    @pytest.fixture
    def embedded(self, services):
        services.documents.save_document(make_document('A', title='Alpha', embedding=base_vector()))
        services.documents.save_document(make_document('B', title='Beta', embedding=similar_vector(0.95)))
        services.documents.save_document(make_document('C', title='Gamma'))

    def test_discover(self, client, embedded):
        response = client.post('/api/documents/A/relationships/discover', headers=HEADERS)

        assert response.status_code == 201
        data = response.get_json()
        assert data['created_count'] == 2
        assert data['partial'] is False

        again = client.post('/api/documents/A/relationships/discover', headers=HEADERS)
        assert again.status_code == 200
        assert again.get_json()['created_count'] == 0

    def test_discover_with_new_embedding(self, client, embedded):
        response = client.post(
            '/api/documents/C/relationships/discover',
            headers=HEADERS,
            json={'embedding': similar_vector(0.85)}
        )

        data = response.get_json()
        assert data['created_count'] == 4
        kinds = {(e['source_document_id'], e['related_document_id']): e['kind'] for e in data['created']}
        assert kinds[('C', 'A')] == 'Extension / Follow-up'

    def test_discover_without_embedding(self, client, embedded):
        response = client.post('/api/documents/C/relationships/discover', headers=HEADERS)

        assert response.status_code == 200
        assert response.get_json()['skipped_reason'] == 'no_embedding'

    def test_discover_invalid_embedding(self, client, embedded):
        response = client.post(
            '/api/documents/A/relationships/discover', headers=HEADERS, json={'embedding': 'abc'}
        )

        assert response.status_code == 400

    def test_discover_unknown_document(self, client, embedded):
        response = client.post('/api/documents/nope/relationships/discover', headers=HEADERS)

        assert response.status_code == 404
        assert response.get_json()['error'] == 'not_found'

    def test_discover_other_owner(self, client, embedded):
        response = client.post(
            '/api/documents/A/relationships/discover', headers={'X-Owner-Id': OTHER_OWNER}
        )

        assert response.status_code == 404

    def test_list_relationships(self, client, embedded):
        client.post('/api/documents/A/relationships/discover', headers=HEADERS)

        response = client.get('/api/documents/B/relationships', headers=HEADERS)

        data = response.get_json()
        assert data['total'] == 1
        assert data['relationships'][0]['related_title'] == 'Alpha'
        assert data['relationships'][0]['relevance_score'] == 95.0

    def test_list_relationships_other_owner(self, client, embedded):
        response = client.get('/api/documents/A/relationships', headers={'X-Owner-Id': OTHER_OWNER})

        assert response.status_code == 404

    def test_stats(self, client, embedded):
        client.post('/api/documents/A/relationships/discover', headers=HEADERS)

        data = client.get('/api/relationships/stats', headers=HEADERS).get_json()

        assert data['total'] == 2
        assert data['completed'] == 2


class TestSmartCollectionEndpoints:
    """Smart collection evaluation over HTTP."""

    def test_defaults_then_evaluate(self, client, services, library):
        response = client.post('/api/smart-collections/defaults', headers=HEADERS)
        assert response.status_code == 201
        created = {c['name']: c['id'] for c in response.get_json()['created']}

        documents = client.get(
            f'/api/smart-collections/{created["Completed"]}/documents', headers=HEADERS
        ).get_json()
        count = client.get(
            f'/api/smart-collections/{created["Unread"]}/count', headers=HEADERS
        ).get_json()

        assert [d['id'] for d in documents['documents']] == ['d01']
        assert count['count'] == 2

        repeat = client.post('/api/smart-collections/defaults', headers=HEADERS)
        assert repeat.status_code == 200
        assert repeat.get_json()['total'] == 0

    def test_unknown_collection(self, client, library):
        response = client.get('/api/smart-collections/missing/documents', headers=HEADERS)

        assert response.status_code == 404


class TestHealthEndpoints:
    """Health and readiness."""

    def test_liveness(self, client):
        assert client.get('/health').get_json()['status'] == 'ok'

    def test_readiness(self, client):
        response = client.get('/ready')

        assert response.status_code == 200
        assert response.get_json()['checks'] == {'database': 'ok', 'fts5': 'ok'}

    def test_detailed(self, client, library):
        data = client.get('/health/detailed').get_json()

        assert data['checks']['database']['documents'] == 2 * len(library)
        assert 'memory' in data['resources']

    def test_unknown_route_is_json_404(self, client):
        response = client.get('/api/nowhere')

        assert response.status_code == 404
        assert response.get_json()['error'] == 'not_found'

    def test_method_not_allowed(self, client):
        response = client.delete('/api/search', headers=HEADERS)

        assert response.status_code == 405
