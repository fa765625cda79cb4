"""
Smart Collections

A smart collection is a saved filter evaluated on demand against the
owner's documents, as opposed to a static membership list. Evaluation
shares the predicate model and store query path with search, and always
adds one base condition: archived documents are never returned.

Results are ordered by last read (never-read last), then newest first.

Usage:
    from search.smart_collections import SmartCollectionEvaluator

    evaluator = SmartCollectionEvaluator(repo)
    evaluator.ensure_defaults('u1')
    docs = evaluator.evaluate(collection_id, 'u1')
"""

import logging
import uuid
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

from core.errors import NotFoundError, ValidationError
from core.logging_config import AuditLogger, log_performance
from core.timestamps import to_db_timestamp, utcnow
from database.models import Collection

from .filters import BoolFilter, BoolTest, RangeFilter, coerce_bool, coerce_number, coerce_timestamp
from .ordering import Ordering, SortDirection, SortKey

logger = logging.getLogger(__name__)

DEFAULT_RESULT_LIMIT = 500

SMART_COLLECTION_ORDERING = Ordering(
    key=SortKey.LAST_READ_AT,
    direction=SortDirection.DESC,
    then_by=(SortKey.CREATED_AT,),
)

NOT_ARCHIVED = BoolFilter('notArchived', 'archived_at', False, BoolTest.NOT_NULL)


@dataclass(frozen=True)
class SmartFilter:
    """
    Stored smart-collection criteria. Every field is optional.

    The *_days fields are relative to the moment of evaluation and are
    combined with their absolute counterparts (both must hold).
    """
    progress_min: Optional[float] = None
    progress_max: Optional[float] = None
    uploaded_after: Optional[str] = None
    last_read_before: Optional[str] = None
    has_notes: Optional[bool] = None
    has_activity: Optional[bool] = None
    uploaded_within_days: Optional[int] = None
    not_read_in_days: Optional[int] = None

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> 'SmartFilter':
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValidationError('smart_filter must be an object', field='smart_filter')

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known - {'has_sessions'})
        if unknown:
            logger.warning(f'Ignoring unknown smart filter fields: {", ".join(unknown)}')

        has_activity = raw.get('has_activity', raw.get('has_sessions'))

        smart_filter = cls(
            progress_min=coerce_number('progress_min', 'value', raw.get('progress_min')),
            progress_max=coerce_number('progress_max', 'value', raw.get('progress_max')),
            uploaded_after=coerce_timestamp('uploaded_after', 'value', raw.get('uploaded_after')),
            last_read_before=coerce_timestamp('last_read_before', 'value', raw.get('last_read_before')),
            has_notes=None if raw.get('has_notes') is None else coerce_bool('has_notes', raw['has_notes']),
            has_activity=None if has_activity is None else coerce_bool('has_activity', has_activity),
            uploaded_within_days=_days('uploaded_within_days', raw.get('uploaded_within_days')),
            not_read_in_days=_days('not_read_in_days', raw.get('not_read_in_days')),
        )

        if (smart_filter.progress_min is not None and smart_filter.progress_max is not None
                and smart_filter.progress_min > smart_filter.progress_max):
            raise ValidationError(
                'progress_min is greater than progress_max',
                field='smart_filter',
                progress_min=smart_filter.progress_min,
                progress_max=smart_filter.progress_max
            )
        return smart_filter

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def predicates(self, now: Optional[datetime] = None) -> List:
        """Lower to filter predicates, resolving relative dates against `now`."""
        now = now or utcnow()
        result = []

        if self.progress_min is not None or self.progress_max is not None:
            result.append(RangeFilter('progress', 'reading_progress', self.progress_min, self.progress_max))

        if self.uploaded_after is not None:
            result.append(RangeFilter('uploaded_after', 'created_at', minimum=self.uploaded_after))
        if self.uploaded_within_days is not None:
            since = to_db_timestamp(now - timedelta(days=self.uploaded_within_days))
            result.append(RangeFilter('uploaded_within_days', 'created_at', minimum=since))

        # Never-read documents count as "not read since"
        if self.last_read_before is not None:
            result.append(RangeFilter(
                'last_read_before', 'last_read_at',
                maximum=self.last_read_before, include_missing=True, exclusive_max=True
            ))
        if self.not_read_in_days is not None:
            cutoff = to_db_timestamp(now - timedelta(days=self.not_read_in_days))
            result.append(RangeFilter(
                'not_read_in_days', 'last_read_at',
                maximum=cutoff, include_missing=True, exclusive_max=True
            ))

        if self.has_notes is not None:
            result.append(BoolFilter('has_notes', 'notes_count', self.has_notes))
        if self.has_activity is not None:
            result.append(BoolFilter('has_activity', 'sessions_count', self.has_activity))

        return result


def _days(name: str, value: Any) -> Optional[int]:
    days = coerce_number(name, 'value', value, integer=True)
    if days is not None and days < 0:
        raise ValidationError(f'{name} must not be negative', field=name, value=days)
    return days


# Presets created for every owner by ensure_defaults()
DEFAULT_SMART_COLLECTIONS = [
    {
        'name': 'In Progress',
        'description': 'Documents you have started but not finished',
        'smart_filter': {'progress_min': 0.01, 'progress_max': 99.99},
        'color': '#F59E0B',
        'icon': 'book-open',
        'display_order': 1,
    },
    {
        'name': 'Recently Added',
        'description': 'Documents added in the last 30 days',
        'smart_filter': {'uploaded_within_days': 30},
        'color': '#3B82F6',
        'icon': 'calendar',
        'display_order': 2,
    },
    {
        'name': 'Needs Review',
        'description': 'Documents not opened in the last 90 days',
        'smart_filter': {'not_read_in_days': 90},
        'color': '#EF4444',
        'icon': 'alert-circle',
        'display_order': 3,
    },
    {
        'name': 'Completed',
        'description': 'Documents you have finished',
        'smart_filter': {'progress_min': 100, 'progress_max': 100},
        'color': '#10B981',
        'icon': 'check-circle',
        'display_order': 4,
    },
    {
        'name': 'Unread',
        'description': 'Documents you have not started yet',
        'smart_filter': {'progress_min': 0, 'progress_max': 0},
        'color': '#6B7280',
        'icon': 'book-marked',
        'display_order': 5,
    },
]


class SmartCollectionEvaluator:
    """
    Evaluates saved smart filters against a document store.

    The store must provide get_collection, list_collections,
    create_collection, query_documents and count_documents.
    """

    def __init__(self, store, limit: int = DEFAULT_RESULT_LIMIT, audit: Optional[AuditLogger] = None):
        self.store = store
        self.limit = limit
        self.audit = audit

    def _smart_collection(self, collection_id: str, owner_id: str):
        collection = self.store.get_collection(collection_id)
        if collection is None or collection.owner_id != owner_id or not collection.is_smart:
            raise NotFoundError('Smart collection not found', collection_id=collection_id)
        return collection

    def _predicates(self, smart_filter: SmartFilter, now: Optional[datetime] = None) -> List:
        return [NOT_ARCHIVED] + smart_filter.predicates(now)

    @log_performance('library.smart_collections')
    def evaluate(self, collection_id: str, owner_id: str, now: Optional[datetime] = None) -> List:
        """Documents in a smart collection, archived ones excluded."""
        collection = self._smart_collection(collection_id, owner_id)
        documents = self.evaluate_filter(owner_id, collection.smart_filter, now=now)

        if self.audit:
            self.audit.log_smart_collection(owner_id, collection_id, len(documents))
        return documents

    def evaluate_filter(self, owner_id: str, smart_filter: Any, now: Optional[datetime] = None) -> List:
        """Evaluate an unsaved filter definition."""
        if not owner_id:
            raise ValidationError('owner_id is required', field='owner_id')
        if not isinstance(smart_filter, SmartFilter):
            smart_filter = SmartFilter.from_dict(smart_filter)

        return self.store.query_documents(
            owner_id,
            self._predicates(smart_filter, now),
            SMART_COLLECTION_ORDERING,
            limit=self.limit,
        )

    def count(self, collection_id: str, owner_id: str, now: Optional[datetime] = None) -> int:
        collection = self._smart_collection(collection_id, owner_id)
        smart_filter = SmartFilter.from_dict(collection.smart_filter)
        return self.store.count_documents(owner_id, self._predicates(smart_filter, now))

    def ensure_defaults(self, owner_id: str) -> List:
        """
        Create the default smart collections the owner does not have yet.

        Matching is by name, so calling this repeatedly is safe.

        Returns:
            The collections created by this call
        """
        if not owner_id:
            raise ValidationError('owner_id is required', field='owner_id')

        existing = {c.name for c in self.store.list_collections(owner_id, smart=True)}
        created = []

        for preset in DEFAULT_SMART_COLLECTIONS:
            if preset['name'] in existing:
                continue
            collection = Collection(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                is_smart=True,
                **dict(preset, smart_filter=dict(preset["smart_filter"]))
            )
            created.append(self.store.create_collection(collection))

        if created:
            logger.info(
                f'Created {len(created)} default smart collections',
                extra={'owner_id': owner_id}
            )
        return created
