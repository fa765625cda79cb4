"""
Filter / predicate model shared by search and smart collections.

A request's loose filter mapping is parsed once into a closed set of typed
predicates:

- EqualityFilter: attribute equals a value (media type, favorite flag)
- RangeFilter: attribute within [minimum, maximum] (progress, size, dates)
- BoolFilter: presence test (has notes, has activity, is archived)
- SetFilter: membership in any of a set of collections or tags
- TextMatch: natural-language match over title + file name

Absence of a key means no constraint. Stores translate these variants into
their own query language; see database/sql.py.

Usage:
    from search.filters import parse_filters

    filters = parse_filters({'isFavorite': True, 'readingProgress': {'min': 10, 'max': 90}})
    for predicate in filters:
        print(predicate.name)
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterator, Mapping, Optional, Tuple, Union

from core.errors import ValidationError
from core.timestamps import to_db_timestamp


class BoolTest(Enum):
    """How a BoolFilter decides that an attribute is 'present'."""
    POSITIVE_COUNT = "positive_count"
    NOT_NULL = "not_null"


class Membership(Enum):
    """Many-to-many membership kinds usable in a SetFilter."""
    COLLECTION = "collection"
    TAG = "tag"


@dataclass(frozen=True)
class EqualityFilter:
    name: str
    field: str
    value: Any


@dataclass(frozen=True)
class RangeFilter:
    """
    Inclusive range over one attribute. Either bound may be None (open).

    include_missing also admits rows whose attribute is NULL;
    exclusive_max turns the upper bound into a strict '<'.
    """
    name: str
    field: str
    minimum: Any = None
    maximum: Any = None
    include_missing: bool = False
    exclusive_max: bool = False


@dataclass(frozen=True)
class BoolFilter:
    name: str
    field: str
    value: bool
    test: BoolTest = BoolTest.POSITIVE_COUNT


@dataclass(frozen=True)
class SetFilter:
    name: str
    membership: Membership
    ids: FrozenSet[str]


@dataclass(frozen=True)
class TextMatch:
    """Every term must match the indexed title + file name text."""
    query: str
    terms: Tuple[str, ...]
    name: str = 'q'


Predicate = Union[EqualityFilter, RangeFilter, BoolFilter, SetFilter, TextMatch]


# =============================================================================
# Text
# =============================================================================

_TERM_PATTERN = re.compile(r'\w+', re.UNICODE)

# English stop words; dropped from text queries so natural-language phrasing
# still matches
STOP_WORDS: FrozenSet[str] = frozenset({
    'a', 'about', 'above', 'after', 'again', 'against', 'all', 'am', 'an', 'and',
    'any', 'are', 'as', 'at', 'be', 'because', 'been', 'before', 'being',
    'below', 'between', 'both', 'but', 'by', 'can', 'did', 'do', 'does', 'doing',
    'down', 'during', 'each', 'few', 'for', 'from', 'further', 'had', 'has',
    'have', 'having', 'he', 'her', 'here', 'hers', 'herself', 'him', 'himself',
    'his', 'how', 'i', 'if', 'in', 'into', 'is', 'it', 'its', 'itself', 'just',
    'me', 'more', 'most', 'my', 'myself', 'no', 'nor', 'not', 'now', 'of', 'off',
    'on', 'once', 'only', 'or', 'other', 'our', 'ours', 'ourselves', 'out',
    'over', 'own', 'same', 'she', 'should', 'so', 'some', 'such', 'than',
    'that', 'the', 'their', 'theirs', 'them', 'themselves', 'then', 'there',
    'these', 'they', 'this', 'those', 'through', 'to', 'too', 'under', 'until',
    'up', 'very', 'was', 'we', 'were', 'what', 'when', 'where', 'which',
    'while', 'who', 'whom', 'why', 'will', 'with', 'you', 'your', 'yours',
    'yourself', 'yourselves',
})


def search_text_for(title: Optional[str], file_name: Optional[str]) -> str:
    """
    The derived text indexed for full-text search.

    The full-text index is built over exactly this expression; the
    query-time matcher evaluates against the same index, so both sides
    share one tokenizer.
    """
    return f"{title or ''} {file_name or ''}".strip()


def text_match(query: Optional[str]) -> Optional[TextMatch]:
    """
    Build a TextMatch, or None when the query has no searchable terms.

    Stop words are dropped; every remaining term must match.
    """
    if query is None:
        return None
    words = (t.lower() for t in _TERM_PATTERN.findall(query))
    terms = tuple(w for w in words if w not in STOP_WORDS)
    if not terms:
        return None
    return TextMatch(query=query.strip(), terms=terms)


# =============================================================================
# Value coercion
# =============================================================================

def coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', '1', 'yes'):
            return True
        if lowered in ('false', '0', 'no'):
            return False
    raise ValidationError(
        f'Filter {name} must be a boolean',
        filter=name, value=repr(value)
    )


def coerce_number(name: str, bound: str, value: Any, integer: bool = False):
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(
            f'Filter {name}.{bound} must be numeric',
            filter=name, bound=bound, value=repr(value)
        )
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f'Filter {name}.{bound} must be numeric',
            filter=name, bound=bound, value=repr(value)
        )
    if number != number:
        raise ValidationError(f'Filter {name}.{bound} must not be NaN', filter=name, bound=bound)
    if integer:
        if not number.is_integer():
            raise ValidationError(
                f'Filter {name}.{bound} must be a whole number',
                filter=name, bound=bound, value=repr(value)
            )
        return int(number)
    return number


def coerce_timestamp(name: str, bound: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_db_timestamp(value)
    if isinstance(value, str):
        try:
            return to_db_timestamp(value)
        except ValueError:
            pass
    raise ValidationError(
        f'Filter {name}.{bound} must be an ISO-8601 timestamp',
        filter=name, bound=bound, value=repr(value)
    )


def _range_bounds(name: str, value: Any, low_key: str, high_key: str) -> Tuple[Any, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError(
            f'Filter {name} must be an object with {low_key}/{high_key}',
            filter=name
        )
    return value.get(low_key), value.get(high_key)


def _check_order(name: str, minimum: Any, maximum: Any):
    if minimum is not None and maximum is not None and minimum > maximum:
        raise ValidationError(
            f'Filter {name} has min greater than max',
            filter=name, min=minimum, max=maximum
        )


def _id_set(name: str, value: Any) -> FrozenSet[str]:
    if isinstance(value, str):
        value = [v for v in value.split(',') if v.strip()]
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ValidationError(f'Filter {name} must be a list of ids', filter=name)
    ids = set()
    for item in value:
        if not isinstance(item, (str, int)) or isinstance(item, bool):
            raise ValidationError(
                f'Filter {name} contains an invalid id',
                filter=name, value=repr(item)
            )
        ids.add(str(item).strip())
    return frozenset(i for i in ids if i)


# =============================================================================
# Parsers, one per recognized key
# =============================================================================

def _parse_file_type(name, value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'Filter {name} must be a non-empty string', filter=name)
    lowered = value.strip().lower()
    if lowered == 'all':
        return None
    return EqualityFilter(name, 'file_type', lowered)


def _parse_favorite(name, value):
    return EqualityFilter(name, 'is_favorite', coerce_bool(name, value))


def _count_presence(field_name):
    def parse(name, value):
        return BoolFilter(name, field_name, coerce_bool(name, value), BoolTest.POSITIVE_COUNT)
    return parse


def _parse_archived(name, value):
    return BoolFilter(name, 'archived_at', coerce_bool(name, value), BoolTest.NOT_NULL)


def _numeric_range(field_name, integer=False):
    def parse(name, value):
        low, high = _range_bounds(name, value, 'min', 'max')
        minimum = coerce_number(name, 'min', low, integer)
        maximum = coerce_number(name, 'max', high, integer)
        _check_order(name, minimum, maximum)
        if minimum is None and maximum is None:
            return None
        return RangeFilter(name, field_name, minimum, maximum)
    return parse


def _parse_date_range(name, value):
    low, high = _range_bounds(name, value, 'start', 'end')
    start = coerce_timestamp(name, 'start', low)
    end = coerce_timestamp(name, 'end', high)
    _check_order(name, start, end)
    if start is None and end is None:
        return None
    return RangeFilter(name, 'created_at', start, end)


def _membership(kind):
    # An empty set is a constraint that nothing satisfies
    def parse(name, value):
        return SetFilter(name, kind, _id_set(name, value))
    return parse


FILTER_PARSERS: Dict[str, Callable[[str, Any], Optional[Predicate]]] = {
    'fileType': _parse_file_type,
    'isFavorite': _parse_favorite,
    'hasNotes': _count_presence('notes_count'),
    'hasActivity': _count_presence('sessions_count'),
    'isArchived': _parse_archived,
    'readingProgress': _numeric_range('reading_progress'),
    'fileSizeRange': _numeric_range('file_size_bytes', integer=True),
    'dateRange': _parse_date_range,
    'collections': _membership(Membership.COLLECTION),
    'tags': _membership(Membership.TAG),
}

# Alternate spellings accepted for the keys above
FILTER_ALIASES = {
    'file_type': 'fileType',
    'is_favorite': 'isFavorite',
    'has_notes': 'hasNotes',
    'has_activity': 'hasActivity',
    'hasAudio': 'hasActivity',
    'is_archived': 'isArchived',
    'reading_progress': 'readingProgress',
    'file_size_range': 'fileSizeRange',
    'date_range': 'dateRange',
}


# =============================================================================
# FilterSet
# =============================================================================

@dataclass(frozen=True)
class FilterSet:
    """An immutable conjunction of predicates; empty means no constraint."""
    predicates: Tuple[Predicate, ...] = ()
    ignored_keys: Tuple[str, ...] = ()

    def __iter__(self) -> Iterator[Predicate]:
        return iter(self.predicates)

    def __len__(self) -> int:
        return len(self.predicates)

    def get(self, name: str) -> Optional[Predicate]:
        for predicate in self.predicates:
            if predicate.name == name:
                return predicate
        return None


def parse_filters(raw: Optional[Mapping[str, Any]], strict: bool = False) -> FilterSet:
    """
    Parse a loose filter mapping into a FilterSet.

    Args:
        raw: Mapping of filter name to value; None or {} means no filters.
        strict: Reject unrecognized keys instead of ignoring them.

    Raises:
        ValidationError naming the offending filter.
    """
    if raw is None:
        return FilterSet()
    if isinstance(raw, FilterSet):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError('filters must be an object', field='filters')

    predicates = {}
    ignored = []

    for key, value in raw.items():
        canonical = FILTER_ALIASES.get(key, key)
        parser = FILTER_PARSERS.get(canonical)
        if parser is None:
            if strict:
                raise ValidationError(f'Unknown filter: {key}', filter=key)
            ignored.append(key)
            continue
        if value is None:
            continue
        predicate = parser(canonical, value)
        if predicate is not None:
            predicates[canonical] = predicate

    ordered = tuple(predicates[k] for k in FILTER_PARSERS if k in predicates)
    return FilterSet(predicates=ordered, ignored_keys=tuple(ignored))
