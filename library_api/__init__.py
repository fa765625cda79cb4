"""
HTTP surface for the document library.

Usage:
    from library_api import create_app

    app = create_app()
    app.run()
"""

from .app import LibraryServices, create_app

__all__ = ['LibraryServices', 'create_app']
