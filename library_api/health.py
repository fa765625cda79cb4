"""
Library Health Check System

Endpoints:
- /health - liveness probe (is the process alive?)
- /ready - readiness probe (can the store answer queries?)
- /health/detailed - full diagnostic report with resource usage
"""

import sqlite3
import sys
import time
from pathlib import Path

import numpy as np
import psutil
from flask import Blueprint, current_app, jsonify

health_bp = Blueprint('health', __name__)

# Track startup time
STARTUP_TIME = time.time()


def check_database():
    """Check that the library database is reachable and has its schema."""
    db_path = Path(current_app.config['LIBRARY_CONFIG'].db_path)
    if not db_path.exists():
        return {'status': 'error', 'error': 'Database not found', 'path': str(db_path)}

    try:
        conn = sqlite3.connect(str(db_path), timeout=5)
        try:
            documents = conn.execute('SELECT COUNT(*) FROM documents').fetchone()[0]
            edges = conn.execute('SELECT COUNT(*) FROM document_relationships').fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        return {'status': 'error', 'error': str(e)}

    return {'status': 'ok', 'documents': documents, 'relationships': edges}


def check_fts():
    """FTS5 must be compiled into the sqlite3 module."""
    conn = sqlite3.connect(':memory:')
    try:
        conn.execute('CREATE VIRTUAL TABLE fts_probe USING fts5(body)')
        return {'status': 'ok', 'sqlite_version': sqlite3.sqlite_version}
    except sqlite3.Error as e:
        return {'status': 'error', 'error': str(e), 'sqlite_version': sqlite3.sqlite_version}
    finally:
        conn.close()


def get_system_resources():
    """Get current system resource usage."""
    try:
        process = psutil.Process()

        return {
            'memory': {
                'rss_mb': round(process.memory_info().rss / 1024 / 1024, 2),
                'percent': round(process.memory_percent(), 2)
            },
            'cpu': {
                'percent': round(process.cpu_percent(interval=0.1), 2),
                'num_threads': process.num_threads()
            },
            'system': {
                'memory_available_mb': round(psutil.virtual_memory().available / 1024 / 1024, 2),
                'disk_free_gb': round(psutil.disk_usage('/').free / 1024 / 1024 / 1024, 2)
            }
        }
    except psutil.Error as e:
        return {'status': 'error', 'error': str(e)}


# =============================================================================
# Health Endpoints
# =============================================================================

@health_bp.route('/health')
def liveness():
    """Returns 200 if the process is alive and can respond."""
    return jsonify({
        'status': 'ok',
        'uptime_seconds': int(time.time() - STARTUP_TIME)
    })


@health_bp.route('/ready')
def readiness():
    """
    Readiness probe.

    Returns 200 only if the database answers and full-text search is
    available.
    """
    db_check = check_database()
    fts_check = check_fts()

    is_ready = db_check.get('status') == 'ok' and fts_check.get('status') == 'ok'

    response = {
        'status': 'ready' if is_ready else 'not_ready',
        'checks': {
            'database': db_check.get('status'),
            'fts5': fts_check.get('status')
        }
    }

    return jsonify(response), 200 if is_ready else 503


@health_bp.route('/health/detailed')
def detailed_health():
    """Comprehensive status of all components, for debugging and dashboards."""
    config = current_app.config['LIBRARY_CONFIG']
    return jsonify({
        'status': 'ok',
        'version': current_app.config.get('LIBRARY_VERSION'),
        'uptime_seconds': int(time.time() - STARTUP_TIME),
        'python_version': sys.version,
        'numpy_version': np.__version__,
        'checks': {
            'database': check_database(),
            'fts5': check_fts(),
        },
        'config': {
            'similarity_threshold': config.similarity_threshold,
            'neighbor_limit': config.neighbor_limit,
            'max_page_size': config.max_page_size,
        },
        'resources': get_system_resources()
    })
