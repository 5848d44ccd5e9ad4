#!/usr/bin/env python3
"""
Tests for the changelog parser and the pure helpers built on it.
"""

from datetime import datetime, timedelta, timezone

import pytest

from jira_sync.errors import InvalidDataError
from jira_sync.models.enums import ChangeType
from jira_sync.services.changelog_parser import (
    extract_field_changes, extract_histories, filter_new_histories,
    generate_change_summary, group_by_change_type, parse_changelog,
    parse_changelog_timestamp,
)

from tests.factories import BASE_TIME, changelog_entry, make_history, make_issue, status_item


@pytest.fixture
def single_status_changelog():
    return {
        'histories': [{
            'id': '12345',
            'created': '2024-01-15T10:30:00.000+0000',
            'author': {'accountId': 'user123', 'displayName': 'Test User'},
            'items': [{
                'field': 'status',
                'from': '1',
                'to': '3',
                'fromString': 'Open',
                'toString': 'In Progress',
            }],
        }]
    }


class TestParseChangelog:
    """Test parse_changelog."""

    def test_single_status_change(self, single_status_changelog) -> None:
        """Test the canonical one-entry, one-item changelog."""
        histories = parse_changelog("10000", "TEST-123", single_status_changelog)

        assert len(histories) == 1
        history = histories[0]
        assert history.issue_id == "10000"
        assert history.issue_key == "TEST-123"
        assert history.change_id == "12345"
        assert history.field_name == "status"
        assert history.from_value == "1"
        assert history.to_value == "3"
        assert history.from_display_value == "Open"
        assert history.to_display_value == "In Progress"
        assert history.author.display_name == "Test User"
        assert history.author.account_id == "user123"
        assert history.change_timestamp == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert history.change_type == ChangeType.STATUS_CHANGE

    def test_entry_with_many_items(self) -> None:
        changelog = {'histories': [changelog_entry("1", BASE_TIME, [
            status_item("Open", "Done"),
            {'field': 'Story Points', 'fieldId': 'customfield_10016', 'from': None, 'to': '5',
             'fromString': None, 'toString': '5'},
        ])]}
        histories = parse_changelog("id-1", "TEST-1", changelog)

        assert [h.field_name for h in histories] == ["status", "Story Points"]
        assert {h.change_id for h in histories} == {"1"}
        assert histories[0].author is histories[1].author
        assert histories[1].field_id == "customfield_10016"
        assert histories[1].from_value is None

    def test_author_is_optional(self) -> None:
        changelog = {'histories': [changelog_entry("1", BASE_TIME, [status_item("A", "B")], author=None)]}
        assert parse_changelog("id-1", "TEST-1", changelog)[0].author is None

    def test_empty_histories(self) -> None:
        assert parse_changelog("id-1", "TEST-1", {'histories': []}) == []

    @pytest.mark.parametrize("mutate,message", [
        (lambda c: c.pop('histories'), "No histories array"),
        (lambda c: c['histories'][0].pop('id'), "Missing change id"),
        (lambda c: c['histories'][0].pop('created'), "Missing created timestamp"),
        (lambda c: c['histories'][0].pop('items'), "Missing items array"),
        (lambda c: c['histories'][0]['items'][0].pop('field'), "Missing field name"),
        (lambda c: c['histories'][0]['author'].pop('accountId'), "Missing accountId"),
        (lambda c: c['histories'][0]['author'].pop('displayName'), "Missing displayName"),
        (lambda c: c['histories'][0].update(created="yesterday"), "Invalid timestamp format"),
    ])
    def test_malformed_input(self, single_status_changelog, mutate, message) -> None:
        """Test that any malformed entry fails the whole call."""
        mutate(single_status_changelog)
        with pytest.raises(InvalidDataError, match=message):
            parse_changelog("10000", "TEST-123", single_status_changelog)

    def test_one_bad_entry_fails_everything(self, single_status_changelog) -> None:
        single_status_changelog['histories'].append({'id': '2', 'items': []})
        with pytest.raises(InvalidDataError):
            parse_changelog("10000", "TEST-123", single_status_changelog)

    def test_parsing_is_repeatable(self, single_status_changelog) -> None:
        first = parse_changelog("10000", "TEST-123", single_status_changelog)
        second = parse_changelog("10000", "TEST-123", single_status_changelog)
        assert [{**h.to_dict(), 'created_at': None} for h in first] == \
               [{**h.to_dict(), 'created_at': None} for h in second]


class TestTimestamps:
    """Test changelog timestamp parsing."""

    def test_offsets(self) -> None:
        assert parse_changelog_timestamp("2024-01-15T10:30:00.000Z") == \
            datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        parsed = parse_changelog_timestamp("2024-01-15T12:30:00.000+0200")
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_offset_required(self) -> None:
        with pytest.raises(InvalidDataError, match="Invalid timestamp format"):
            parse_changelog_timestamp("2024-01-15T10:30:00.000")


class TestExtractHistories:
    """Test batch extraction from issues."""

    def test_collects_rows_and_errors(self, single_status_changelog) -> None:
        issues = [
            make_issue("TEST-1", changelog=single_status_changelog),
            make_issue("TEST-2"),
            make_issue("TEST-3", changelog={'nope': []}),
        ]
        histories, errors = extract_histories(issues)

        assert [h.issue_key for h in histories] == ["TEST-1"]
        assert len(errors) == 1
        assert errors[0].startswith("TEST-3:")


class TestHelpers:
    """Test the pure helper functions."""

    @pytest.fixture
    def histories(self):
        return [
            make_history("TEST-1", "1", "status"),
            make_history("TEST-1", "1", "assignee"),
            make_history("TEST-1", "2", "status"),
            make_history("TEST-2", "3", "Sprint", field_id="customfield_10020"),
            make_history("TEST-2", "3", "summary"),
        ]

    def test_extract_field_changes(self, histories) -> None:
        selected = extract_field_changes(histories, ["status", "summary"])
        assert [h.field_name for h in selected] == ["status", "status", "summary"]
        assert extract_field_changes(histories, []) == []

    def test_generate_change_summary(self, histories) -> None:
        assert generate_change_summary(histories) == {
            "status": 2, "assignee": 1, "Sprint": 1, "summary": 1,
        }

    def test_group_by_change_type(self, histories) -> None:
        groups = group_by_change_type(histories)
        assert set(groups) == {"Status Changes", "Assignee Changes", "Custom Field Changes", "Other Changes"}
        assert len(groups["Status Changes"]) == 2

    def test_filter_new_histories(self, histories) -> None:
        """Test dedup by (issue key, change id, field name) against stored rows."""
        incoming = [
            make_history("TEST-1", "1", "status"),
            make_history("TEST-1", "4", "status"),
        ]
        fresh = filter_new_histories(histories, incoming)
        assert [(h.change_id, h.field_name) for h in fresh] == [("4", "status")]

    def test_filter_new_histories_keeps_repeated_fields_of_one_entry(self, histories) -> None:
        """Test that same-field items of one new entry all survive."""
        incoming = [
            make_history("TEST-1", "4", "Attachment", to_display_value="a.png"),
            make_history("TEST-1", "4", "Attachment", to_display_value="b.png"),
        ]
        fresh = filter_new_histories(histories, incoming)
        assert [h.to_display_value for h in fresh] == ["a.png", "b.png"]
        assert filter_new_histories(histories + fresh, incoming) == []
