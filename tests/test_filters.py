"""
Tests for the filter / predicate model

Parsing of loose filter mappings into typed predicates, and text matching.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import ValidationError
from search.filters import (
    BoolFilter, BoolTest, EqualityFilter, Membership, RangeFilter, SetFilter,
    FilterSet, parse_filters, search_text_for, text_match
)


class TestParseFilters:
    """Tests for parse_filters()."""

    def test_empty_means_no_constraint(self):
        assert len(parse_filters(None)) == 0
        assert len(parse_filters({})) == 0

    def test_favorite_equality(self):
        filters = parse_filters({'isFavorite': True})

        assert list(filters) == [EqualityFilter('isFavorite', 'is_favorite', True)]

    @pytest.mark.parametrize('value,expected', [(1, True), (0, False), ('1', True), ('0', False)])
    def test_numeric_booleans(self, value, expected):
        assert parse_filters({'isFavorite': value}).get('isFavorite').value is expected

    def test_file_type_is_lowercased(self):
        predicate = parse_filters({'fileType': 'PDF'}).get('fileType')

        assert predicate == EqualityFilter('fileType', 'file_type', 'pdf')

    def test_file_type_all_is_no_constraint(self):
        assert len(parse_filters({'fileType': 'all'})) == 0

    def test_has_notes_and_activity(self):
        filters = parse_filters({'hasNotes': False, 'hasActivity': 'true'})

        assert filters.get('hasNotes') == BoolFilter('hasNotes', 'notes_count', False, BoolTest.POSITIVE_COUNT)
        assert filters.get('hasActivity') == BoolFilter('hasActivity', 'sessions_count', True, BoolTest.POSITIVE_COUNT)

    def test_has_audio_is_activity_alias(self):
        filters = parse_filters({'hasAudio': True})

        assert filters.get('hasActivity').field == 'sessions_count'

    def test_archived_filter(self):
        predicate = parse_filters({'isArchived': False}).get('isArchived')

        assert predicate == BoolFilter('isArchived', 'archived_at', False, BoolTest.NOT_NULL)

    def test_progress_range(self):
        predicate = parse_filters({'readingProgress': {'min': 10, 'max': '90.5'}}).get('readingProgress')

        assert predicate == RangeFilter('readingProgress', 'reading_progress', 10.0, 90.5)

    def test_open_ended_range(self):
        predicate = parse_filters({'fileSizeRange': {'min': 1000}}).get('fileSizeRange')

        assert predicate.minimum == 1000
        assert predicate.maximum is None

    def test_empty_range_is_no_constraint(self):
        assert len(parse_filters({'readingProgress': {}})) == 0

    def test_date_range_normalized_to_utc(self):
        predicate = parse_filters({
            'dateRange': {'start': '2024-01-01T00:00:00Z', 'end': '2024-02-01T01:00:00+01:00'}
        }).get('dateRange')

        assert predicate.field == 'created_at'
        assert predicate.minimum == '2024-01-01T00:00:00.000000+00:00'
        assert predicate.maximum == '2024-02-01T00:00:00.000000+00:00'

    def test_membership_sets(self):
        filters = parse_filters({'collections': ['c1', 'c2', 'c1'], 'tags': 't1,t2'})

        assert filters.get('collections') == SetFilter('collections', Membership.COLLECTION, frozenset({'c1', 'c2'}))
        assert filters.get('tags') == SetFilter('tags', Membership.TAG, frozenset({'t1', 't2'}))

    @pytest.mark.parametrize('raw', [{'collections': []}, {'tags': ''}, {'tags': ' , '}])
    def test_empty_membership_matches_nothing(self, raw):
        (name,) = raw

        assert parse_filters(raw).get(name).ids == frozenset()

    def test_none_values_are_skipped(self):
        assert len(parse_filters({'isFavorite': None, 'tags': None})) == 0

    def test_snake_case_keys(self):
        filters = parse_filters({'is_favorite': True, 'reading_progress': {'min': 1}})

        assert filters.get('isFavorite') is not None
        assert filters.get('readingProgress') is not None

    def test_unknown_keys_ignored_by_default(self):
        filters = parse_filters({'isFavorite': True, 'moonPhase': 'full'})

        assert len(filters) == 1
        assert filters.ignored_keys == ('moonPhase',)

    def test_unknown_keys_rejected_in_strict_mode(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_filters({'moonPhase': 'full'}, strict=True)

        assert exc_info.value.details['filter'] == 'moonPhase'

    def test_predicate_order_is_stable(self):
        filters = parse_filters({'tags': ['t'], 'isFavorite': True, 'fileType': 'pdf'})

        assert [p.name for p in filters] == ['fileType', 'isFavorite', 'tags']

    def test_filter_set_passes_through(self):
        filters = parse_filters({'isFavorite': True})

        assert parse_filters(filters) is filters
        assert isinstance(filters, FilterSet)


class TestFilterValidation:
    """Malformed values must name the offending filter."""

    @pytest.mark.parametrize('raw,name', [
        ({'readingProgress': {'min': 'ten'}}, 'readingProgress'),
        ({'readingProgress': {'min': True}}, 'readingProgress'),
        ({'readingProgress': 50}, 'readingProgress'),
        ({'readingProgress': {'min': 'nan'}}, 'readingProgress'),
        ({'fileSizeRange': {'max': 10.5}}, 'fileSizeRange'),
        ({'dateRange': {'start': 'yesterday'}}, 'dateRange'),
        ({'isFavorite': 'maybe'}, 'isFavorite'),
        ({'isFavorite': 2}, 'isFavorite'),
        ({'hasNotes': 1.0}, 'hasNotes'),
        ({'collections': [{'id': 1}]}, 'collections'),
        ({'tags': 42}, 'tags'),
        ({'fileType': ''}, 'fileType'),
    ])
    def test_malformed_values(self, raw, name):
        with pytest.raises(ValidationError) as exc_info:
            parse_filters(raw)

        assert exc_info.value.details['filter'] == name

    def test_min_greater_than_max(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_filters({'readingProgress': {'min': 90, 'max': 10}})

        assert exc_info.value.details['filter'] == 'readingProgress'

    def test_filters_must_be_mapping(self):
        with pytest.raises(ValidationError):
            parse_filters(['isFavorite'])


class TestTextMatch:
    """Tests for the text matcher and the indexed text expression."""

    def test_terms_are_lowercased_words(self):
        match = text_match('  Graph THEORY, 2nd ed.  ')

        assert match.terms == ('graph', 'theory', '2nd', 'ed')
        assert match.query == 'Graph THEORY, 2nd ed.'

    def test_empty_query_is_no_constraint(self):
        assert text_match(None) is None
        assert text_match('') is None
        assert text_match('   ') is None
        assert text_match('"*" -- ()') is None

    def test_stop_words_dropped(self):
        match = text_match('What is the theory of graphs?')

        assert match.terms == ('theory', 'graphs')

    def test_only_stop_words_is_no_constraint(self):
        assert text_match('the') is None
        assert text_match('To Be Or Not To Be') is None

    def test_search_text_concatenates_title_and_file_name(self):
        assert search_text_for('Graph Theory', 'graphs.pdf') == 'Graph Theory graphs.pdf'
        assert search_text_for(None, 'graphs.pdf') == 'graphs.pdf'
        assert search_text_for('Graph Theory', None) == 'Graph Theory'
