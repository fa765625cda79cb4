"""
Search System for the document library

Provides:
- A typed filter/predicate model shared by search and smart collections
- Sort keys with NULLs-last ordering and an id tie-break
- Versioned, opaque keyset cursors
- The query compiler and executor
- Smart-collection evaluation

Usage:
    from search import SearchRequest, SearchService

    service = SearchService(repo)
    page = service.search(SearchRequest(owner_id='u1', query='graph theory'))
    for doc in page.documents:
        print(doc.title)
"""

# filters, ordering and cursor must load before anything that imports the
# database package, which depends on them
from .filters import (
    BoolFilter,
    BoolTest,
    EqualityFilter,
    FilterSet,
    Membership,
    RangeFilter,
    SetFilter,
    TextMatch,
    parse_filters,
    search_text_for,
    text_match,
)
from .ordering import Ordering, SortDirection, SortKey, parse_sort_direction, parse_sort_key
from .cursor import Cursor
from .query import QueryCompiler, QueryPlan, ResultPage, SearchRequest, SearchService
from .smart_collections import SmartCollectionEvaluator, SmartFilter

__all__ = [
    'BoolFilter',
    'BoolTest',
    'Cursor',
    'EqualityFilter',
    'FilterSet',
    'Membership',
    'Ordering',
    'QueryCompiler',
    'QueryPlan',
    'RangeFilter',
    'ResultPage',
    'SearchRequest',
    'SearchService',
    'SetFilter',
    'SmartCollectionEvaluator',
    'SmartFilter',
    'SortDirection',
    'SortKey',
    'TextMatch',
    'parse_filters',
    'parse_sort_direction',
    'parse_sort_key',
    'text_match',
    'search_text_for',
]
