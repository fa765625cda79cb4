"""
Sort keys and orderings.

Every ordering sorts NULLs last and ends with the document id in the same
direction as the primary key, so the order is total and can anchor keyset
pagination.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

from core.errors import ValidationError
from core.timestamps import to_db_timestamp


class SortKey(Enum):
    """Document attributes results can be ordered by."""
    LAST_READ_AT = "last_read_at"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    READING_PROGRESS = "reading_progress"
    FILE_SIZE = "file_size_bytes"
    NOTES_COUNT = "notes_count"
    SESSIONS_COUNT = "sessions_count"


class SortDirection(Enum):
    DESC = "desc"
    ASC = "asc"


DEFAULT_SORT_KEY = SortKey.LAST_READ_AT

# Keys backed by (owner_id, key, id) indexes; only these accept a cursor
CURSOR_SORT_KEYS = frozenset({SortKey.LAST_READ_AT, SortKey.CREATED_AT})

TIMESTAMP_SORT_KEYS = frozenset({SortKey.LAST_READ_AT, SortKey.CREATED_AT, SortKey.UPDATED_AT})

# Friendly names accepted from callers in addition to the enum values
_SORT_KEY_ALIASES = {
    'last_activity': SortKey.LAST_READ_AT,
    'lastReadAt': SortKey.LAST_READ_AT,
    'createdAt': SortKey.CREATED_AT,
    'updatedAt': SortKey.UPDATED_AT,
    'readingProgress': SortKey.READING_PROGRESS,
    'fileSize': SortKey.FILE_SIZE,
    'fileSizeBytes': SortKey.FILE_SIZE,
    'notesCount': SortKey.NOTES_COUNT,
    'sessionsCount': SortKey.SESSIONS_COUNT,
    'pomodoro_sessions_count': SortKey.SESSIONS_COUNT,
}


def parse_sort_key(value: Union[SortKey, str, None]) -> SortKey:
    if value is None or value == '':
        return DEFAULT_SORT_KEY
    if isinstance(value, SortKey):
        return value
    if isinstance(value, str):
        if value in _SORT_KEY_ALIASES:
            return _SORT_KEY_ALIASES[value]
        try:
            return SortKey(value)
        except ValueError:
            pass
    raise ValidationError(
        f'Unsupported sort key: {value}',
        field='sort',
        allowed=sorted(k.value for k in SortKey)
    )


def parse_sort_direction(value: Union[SortDirection, str, None]) -> SortDirection:
    if value is None or value == '':
        return SortDirection.DESC
    if isinstance(value, SortDirection):
        return value
    if isinstance(value, str):
        try:
            return SortDirection(value.lower())
        except ValueError:
            pass
    raise ValidationError(
        f'Unsupported sort direction: {value}',
        field='order',
        allowed=[d.value for d in SortDirection]
    )


@dataclass(frozen=True)
class Ordering:
    """
    Primary key plus optional secondary keys, all in one direction.

    The id tie-break is implicit and always last.
    """
    key: SortKey = DEFAULT_SORT_KEY
    direction: SortDirection = SortDirection.DESC
    then_by: Tuple[SortKey, ...] = ()

    @property
    def supports_cursor(self) -> bool:
        return self.key in CURSOR_SORT_KEYS and not self.then_by


def sort_value(document: Any, key: SortKey) -> Optional[Any]:
    """The value of `key` on a document, in the form stores compare on."""
    value = getattr(document, key.value)
    if key in TIMESTAMP_SORT_KEYS:
        return to_db_timestamp(value)
    return value
