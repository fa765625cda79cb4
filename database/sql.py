"""
Lowering of the filter model into SQLite WHERE / ORDER BY fragments.

Every fragment refers to the documents table through the alias `d` and
returns its parameters separately; values are never interpolated.
"""

from typing import Iterable, List, Optional, Tuple

from search.cursor import Cursor
from search.filters import (
    BoolFilter,
    BoolTest,
    EqualityFilter,
    Membership,
    RangeFilter,
    SetFilter,
    TextMatch,
)
from search.ordering import Ordering, SortDirection, SortKey

# Document attributes a predicate may reference
FILTERABLE_COLUMNS = frozenset({
    'file_type', 'is_favorite', 'notes_count', 'sessions_count', 'archived_at',
    'reading_progress', 'file_size_bytes', 'created_at', 'last_read_at',
    'updated_at', 'total_pages', 'series_id',
})

SORT_COLUMNS = {key: key.value for key in SortKey}

_MEMBERSHIP_TABLES = {
    Membership.COLLECTION: ('document_collections', 'collection_id'),
    Membership.TAG: ('document_tags', 'tag_id'),
}


def _column(field_name: str) -> str:
    if field_name not in FILTERABLE_COLUMNS:
        raise ValueError(f'Unknown document attribute: {field_name}')
    return f'd.{field_name}'


def fts_query(match: TextMatch) -> str:
    """All terms required; each quoted so FTS5 operators in user text are inert."""
    return ' AND '.join('"{}"'.format(term.replace('"', '""')) for term in match.terms)


def predicate_sql(predicate) -> Tuple[str, List]:
    """Translate one predicate into (clause, params)."""
    if isinstance(predicate, EqualityFilter):
        return f'{_column(predicate.field)} = ?', [predicate.value]

    if isinstance(predicate, RangeFilter):
        column = _column(predicate.field)
        parts = []
        params = []
        if predicate.minimum is not None:
            parts.append(f'{column} >= ?')
            params.append(predicate.minimum)
        if predicate.maximum is not None:
            parts.append(f'{column} {"<" if predicate.exclusive_max else "<="} ?')
            params.append(predicate.maximum)
        clause = ' AND '.join(parts) if parts else '1=1'
        if predicate.include_missing:
            clause = f'(({clause}) OR {column} IS NULL)'
        return clause, params

    if isinstance(predicate, BoolFilter):
        column = _column(predicate.field)
        if predicate.test is BoolTest.POSITIVE_COUNT:
            return (f'{column} > 0' if predicate.value else f'COALESCE({column}, 0) = 0'), []
        return (f'{column} IS NOT NULL' if predicate.value else f'{column} IS NULL'), []

    if isinstance(predicate, SetFilter):
        if not predicate.ids:
            return '0', []
        table, id_column = _MEMBERSHIP_TABLES[predicate.membership]
        ids = sorted(predicate.ids)
        placeholders = ', '.join('?' for _ in ids)
        return (
            f'EXISTS (SELECT 1 FROM {table} m WHERE m.document_id = d.id '
            f'AND m.{id_column} IN ({placeholders}))'
        ), ids

    if isinstance(predicate, TextMatch):
        return (
            'd.rowid IN (SELECT rowid FROM documents_fts WHERE documents_fts MATCH ?)',
            [fts_query(predicate)]
        )

    raise TypeError(f'Unsupported predicate: {type(predicate).__name__}')


def where_sql(owner_id: str, predicates: Iterable, after: Optional[Cursor] = None,
              ordering: Optional[Ordering] = None) -> Tuple[str, List]:
    """Owner scope, then every predicate, then the keyset condition."""
    parts = ['d.owner_id = ?']
    params: List = [owner_id]

    for predicate in predicates:
        clause, clause_params = predicate_sql(predicate)
        parts.append(clause)
        params.extend(clause_params)

    if after is not None:
        if ordering is None:
            ordering = Ordering(key=after.sort_key, direction=after.sort_direction)
        clause, clause_params = keyset_sql(after, ordering)
        parts.append(clause)
        params.extend(clause_params)

    return ' AND '.join(parts), params


def keyset_sql(after: Cursor, ordering: Ordering) -> Tuple[str, List]:
    """
    Rows strictly after (sort value, id) in an ordering with NULLs last.

    Non-null cursor value v, id i (descending):
        col < v OR (col = v AND id < i) OR col IS NULL
    Null cursor value (already inside the NULL tail):
        col IS NULL AND id < i
    Ascending flips the comparisons.
    """
    if after.sort_key != ordering.key or after.sort_direction != ordering.direction or ordering.then_by:
        raise ValueError('Cursor does not match the ordering')

    column = f'd.{SORT_COLUMNS[ordering.key]}'
    op = '<' if ordering.direction is SortDirection.DESC else '>'

    if after.sort_value is None:
        return f'({column} IS NULL AND d.id {op} ?)', [after.document_id]

    return (
        f'({column} {op} ? OR ({column} = ? AND d.id {op} ?) OR {column} IS NULL)',
        [after.sort_value, after.sort_value, after.document_id]
    )


def order_sql(ordering: Ordering) -> str:
    direction = 'DESC' if ordering.direction is SortDirection.DESC else 'ASC'
    terms = []
    for key in (ordering.key,) + tuple(ordering.then_by):
        column = f'd.{SORT_COLUMNS[key]}'
        terms.append(f'{column} IS NULL')
        terms.append(f'{column} {direction}')
    terms.append(f'd.id {direction}')
    return ', '.join(terms)
