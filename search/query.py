"""
Query Compiler & Executor

Turns a SearchRequest into an owner-scoped, ordered, keyset-paginated page
of documents.

    request -> QueryCompiler.compile() -> QueryPlan -> store.query_documents()
            -> ResultPage (documents + opaque next cursor)

The compiler does all validation up front; the executor is a single store
read, so the service holds no mutable state and is safe to share.

Usage:
    from search.query import SearchRequest, SearchService

    service = SearchService(DocumentRepository(db_path))
    page = service.search(SearchRequest(owner_id='u1', filters={'isFavorite': True}))
    while page.next_cursor:
        page = service.search(SearchRequest(owner_id='u1', cursor=page.next_cursor))
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from core.errors import LibraryError, StoreError, ValidationError
from core.logging_config import AuditLogger, log_performance

from .cursor import Cursor
from .filters import FilterSet, Predicate, parse_filters, text_match
from .ordering import Ordering, SortDirection, SortKey, parse_sort_direction, parse_sort_key

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# Request keys accepted by SearchRequest.from_dict, by field
_REQUEST_KEYS = {
    'owner_id': ('ownerId', 'owner_id'),
    'query': ('query', 'q', 'searchQuery', 'search_query'),
    'filters': ('filters',),
    'sort_key': ('sortKey', 'sort_key', 'sortBy', 'sort_by', 'sort'),
    'sort_direction': ('sortDirection', 'sort_direction', 'order'),
    'cursor': ('cursor',),
    'page_size': ('pageSize', 'page_size', 'limit'),
}


@dataclass
class SearchRequest:
    """A search over one owner's documents. Only owner_id is required."""
    owner_id: str
    query: Optional[str] = None
    filters: Mapping[str, Any] = field(default_factory=dict)
    sort_key: Union[SortKey, str, None] = None
    sort_direction: Union[SortDirection, str, None] = None
    cursor: Optional[str] = None
    page_size: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], owner_id: Optional[str] = None) -> 'SearchRequest':
        """
        Build a request from a JSON body or query-string mapping.

        Both camelCase and snake_case keys are accepted. An explicit
        owner_id argument (e.g. from the access-control layer) wins over
        any owner in the payload.
        """
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValidationError('Search request must be an object')

        values = {}
        for name, keys in _REQUEST_KEYS.items():
            for key in keys:
                if key in data:
                    values[name] = data[key]
                    break

        if owner_id is not None:
            values['owner_id'] = owner_id

        filters = values.get('filters')
        if filters is None:
            values['filters'] = {}

        return cls(
            owner_id=values.get('owner_id'),
            query=values.get('query'),
            filters=values['filters'],
            sort_key=values.get('sort_key'),
            sort_direction=values.get('sort_direction'),
            cursor=values.get('cursor') or None,
            page_size=values.get('page_size'),
        )


@dataclass(frozen=True)
class QueryPlan:
    """A validated request, lowered to store arguments."""
    owner_id: str
    predicates: Tuple[Predicate, ...]
    ordering: Ordering
    after: Optional[Cursor]
    limit: int
    ignored_filters: Tuple[str, ...] = ()


@dataclass
class ResultPage:
    documents: List[Any]
    next_cursor: Optional[str]
    page_size: int
    sort_key: SortKey
    ignored_filters: Tuple[str, ...] = ()

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'documents': [d.to_dict() for d in self.documents],
            'count': len(self.documents),
            'next_cursor': self.next_cursor,
            'has_more': self.has_more,
            'page_size': self.page_size,
            'sort_key': self.sort_key.value,
        }
        if self.ignored_filters:
            data['ignored_filters'] = list(self.ignored_filters)
        return data


class QueryCompiler:
    """
    Validates a SearchRequest and lowers it into a QueryPlan.

    Args:
        max_page_size: Upper clamp for page size
        default_page_size: Page size when the request gives none
        strict_filters: Reject unknown filter keys instead of ignoring them
    """

    def __init__(
        self,
        max_page_size: int = MAX_PAGE_SIZE,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        strict_filters: bool = False
    ):
        if max_page_size < 1:
            raise ValueError('max_page_size must be at least 1')
        self.max_page_size = max_page_size
        self.default_page_size = min(max(default_page_size, 1), max_page_size)
        self.strict_filters = strict_filters

    def compile(self, request: SearchRequest) -> QueryPlan:
        if not isinstance(request.owner_id, str) or not request.owner_id.strip():
            raise ValidationError('owner_id is required', field='owner_id')

        if request.query is not None and not isinstance(request.query, str):
            raise ValidationError('query must be a string', field='query')

        filters: FilterSet = parse_filters(request.filters, strict=self.strict_filters)
        if filters.ignored_keys:
            logger.debug(f'Ignoring unknown filters: {", ".join(filters.ignored_keys)}')

        predicates = list(filters)
        match = text_match(request.query)
        if match is not None:
            predicates.append(match)

        ordering = Ordering(
            key=parse_sort_key(request.sort_key),
            direction=parse_sort_direction(request.sort_direction),
        )

        after = None
        if request.cursor:
            if not ordering.supports_cursor:
                raise ValidationError(
                    f'Sort key {ordering.key.value} does not support cursor pagination',
                    field='cursor',
                    sort_key=ordering.key.value
                )
            after = Cursor.decode(
                request.cursor,
                expected_key=ordering.key,
                expected_direction=ordering.direction
            )

        return QueryPlan(
            owner_id=request.owner_id,
            predicates=tuple(predicates),
            ordering=ordering,
            after=after,
            limit=self.page_size(request.page_size),
            ignored_filters=filters.ignored_keys,
        )

    def page_size(self, requested: Any) -> int:
        """Clamp a requested page size to [1, max_page_size]."""
        if requested is None or requested == '':
            return self.default_page_size
        if isinstance(requested, bool):
            raise ValidationError('page_size must be an integer', field='page_size')
        try:
            size = int(requested)
        except (TypeError, ValueError):
            raise ValidationError('page_size must be an integer', field='page_size', value=repr(requested))
        if isinstance(requested, float) and not requested.is_integer():
            raise ValidationError('page_size must be an integer', field='page_size', value=repr(requested))
        return min(max(size, 1), self.max_page_size)


class SearchService:
    """
    Executes compiled searches against a document store.

    The store must provide
    query_documents(owner_id, predicates, ordering, after, limit).
    """

    def __init__(self, store, compiler: Optional[QueryCompiler] = None, audit: Optional[AuditLogger] = None):
        self.store = store
        self.compiler = compiler or QueryCompiler()
        self.audit = audit

    @log_performance('library.search')
    def search(self, request: SearchRequest) -> ResultPage:
        plan = self.compiler.compile(request)

        try:
            documents = self.store.query_documents(
                plan.owner_id,
                plan.predicates,
                plan.ordering,
                after=plan.after,
                limit=plan.limit,
            )
        except LibraryError:
            raise
        except Exception as e:
            logger.exception('Search execution failed', extra={'owner_id': plan.owner_id})
            raise StoreError(f'Search execution failed: {e}') from e

        next_cursor = None
        if len(documents) == plan.limit and plan.ordering.supports_cursor:
            next_cursor = Cursor.after(
                documents[-1], plan.ordering.key, plan.ordering.direction
            ).encode()

        if self.audit:
            self.audit.log_search(
                plan.owner_id,
                request.query,
                len(documents),
                sort_key=plan.ordering.key.value,
                paginated=plan.after is not None,
            )

        return ResultPage(
            documents=documents,
            next_cursor=next_cursor,
            page_size=plan.limit,
            sort_key=plan.ordering.key,
            ignored_filters=plan.ignored_filters,
        )
