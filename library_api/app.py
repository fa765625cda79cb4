#!/usr/bin/env python3
"""
Library API Server

Flask app factory wiring the search engine, relationship engine and smart
collections over the SQLite store.

Usage:
    python -m library_api.app --port 5000
    LIBRARY_DB_PATH=/tmp/library.db python -m library_api.app
"""

import argparse
import logging
import os
from dataclasses import dataclass
from typing import Optional

from flask import Flask
from flask_cors import CORS

from core.config import LibraryConfig, load_config
from core.logging_config import AuditLogger, setup_logging, setup_request_logging
from database.relationships import RelationshipRepository
from database.repository import DocumentRepository
from relationships.engine import RelationshipEngine
from search.query import QueryCompiler, SearchService
from search.smart_collections import SmartCollectionEvaluator

from .api import library_api
from .error_handlers import setup_error_handlers
from .health import health_bp

__version__ = '1.0.0'

logger = logging.getLogger(__name__)


@dataclass
class LibraryServices:
    """Per-app service graph, stored in app.extensions['library']."""
    documents: DocumentRepository
    relationships: RelationshipRepository
    search: SearchService
    engine: RelationshipEngine
    smart_collections: SmartCollectionEvaluator

    @classmethod
    def from_config(cls, config: LibraryConfig) -> 'LibraryServices':
        audit = AuditLogger()
        documents = DocumentRepository(config.db_path)
        relationships = RelationshipRepository(config.db_path)

        compiler = QueryCompiler(
            max_page_size=config.max_page_size,
            default_page_size=config.default_page_size,
            strict_filters=config.strict_filters,
        )

        return cls(
            documents=documents,
            relationships=relationships,
            search=SearchService(documents, compiler=compiler, audit=audit),
            engine=RelationshipEngine(
                documents,
                relationships,
                similarity_threshold=config.similarity_threshold,
                neighbor_limit=config.neighbor_limit,
                audit=audit,
            ),
            smart_collections=SmartCollectionEvaluator(
                documents,
                limit=config.smart_collection_limit,
                audit=audit,
            ),
        )


def create_app(config: Optional[LibraryConfig] = None, configure_logging: bool = True) -> Flask:
    """
    Build the Flask application.

    Args:
        config: Settings; loaded from config/library.yaml and the
                environment when omitted
        configure_logging: Install the root log handler
    """
    config = config or load_config()
    config.validate()

    app = Flask(__name__)
    app.config['LIBRARY_CONFIG'] = config
    app.config['LIBRARY_VERSION'] = __version__
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024

    CORS(app)

    if configure_logging:
        setup_logging(level=config.log_level, json_format=config.json_logs, app=app)
    setup_request_logging(app)
    setup_error_handlers(app)

    app.extensions['library'] = LibraryServices.from_config(config)

    app.register_blueprint(health_bp)
    app.register_blueprint(library_api, url_prefix='/api')

    logger.info('Library API ready', extra={'db_path': config.db_path})
    return app


def main():
    parser = argparse.ArgumentParser(description='Document library API server')
    parser.add_argument('--host', default=os.getenv('HOST', '127.0.0.1'))
    parser.add_argument('--port', type=int, default=int(os.getenv('PORT', '5000')))
    parser.add_argument('--config', help='Path to a YAML config file')
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args()

    app = create_app(load_config(args.config))
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == '__main__':
    main()
