#!/usr/bin/env python3
"""
Changelog parser.

Turns the nested changelog document Jira returns with ``expand=changelog``
into flat IssueHistory rows, one per changed field. Everything here is pure:
no I/O, no state.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import InvalidDataError
from ..models.history import HistoryAuthor, IssueHistory
from ..models.issue import Issue

logger = logging.getLogger(__name__)

_OFFSET_WITHOUT_COLON = re.compile(r'([+-]\d{2})(\d{2})$')


def parse_changelog_timestamp(value: str) -> datetime:
    """Parse a changelog timestamp such as ``2024-01-15T10:30:00.000+0000``.

    The offset is required; ``Z`` and ``+HHMM`` forms are normalized to
    ``+HH:MM`` before parsing.

    Raises:
        InvalidDataError: If the value is not a timestamp with an offset
    """
    normalized = value.strip()
    if normalized.endswith('Z'):
        normalized = normalized[:-1] + '+00:00'
    normalized = _OFFSET_WITHOUT_COLON.sub(r'\1:\2', normalized)
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as e:
        raise InvalidDataError(f"Invalid timestamp format: {value}") from e
    if parsed.tzinfo is None:
        raise InvalidDataError(f"Invalid timestamp format: {value}")
    return parsed


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    return value if isinstance(value, str) else None


def _parse_author(author: Any) -> HistoryAuthor:
    if not isinstance(author, dict):
        raise InvalidDataError("Author must be an object")
    account_id = _optional_str(author, 'accountId')
    if account_id is None:
        raise InvalidDataError("Missing accountId in author")
    display_name = _optional_str(author, 'displayName')
    if display_name is None:
        raise InvalidDataError("Missing displayName in author")
    return HistoryAuthor(
        account_id=account_id,
        display_name=display_name,
        email_address=_optional_str(author, 'emailAddress'),
    )


def _parse_entry(issue_id: str, issue_key: str, entry: Any) -> List[IssueHistory]:
    if not isinstance(entry, dict):
        raise InvalidDataError("History entry must be an object")

    change_id = _optional_str(entry, 'id')
    if change_id is None:
        raise InvalidDataError("Missing change id in history")
    created = _optional_str(entry, 'created')
    if created is None:
        raise InvalidDataError("Missing created timestamp in history")
    change_timestamp = parse_changelog_timestamp(created)

    author_data = entry.get('author')
    author = _parse_author(author_data) if author_data is not None else None

    items = entry.get('items')
    if not isinstance(items, list):
        raise InvalidDataError("Missing items array in history")

    histories = []
    for item in items:
        if not isinstance(item, dict) or _optional_str(item, 'field') is None:
            raise InvalidDataError("Missing field name in history item")
        histories.append(IssueHistory(
            issue_id=issue_id,
            issue_key=issue_key,
            change_id=change_id,
            change_timestamp=change_timestamp,
            author=author,
            field_name=item['field'],
            field_id=_optional_str(item, 'fieldId'),
            from_value=_optional_str(item, 'from'),
            to_value=_optional_str(item, 'to'),
            from_display_value=_optional_str(item, 'fromString'),
            to_display_value=_optional_str(item, 'toString'),
        ))
    return histories


def parse_changelog(issue_id: str, issue_key: str, changelog: Dict[str, Any]) -> List[IssueHistory]:
    """Parse a raw changelog document into history rows.

    An entry with N items yields N rows sharing change id, timestamp and
    author. A single malformed entry fails the whole call.

    Args:
        issue_id: Id of the issue the changelog belongs to
        issue_key: Key of the issue the changelog belongs to
        changelog: Raw changelog JSON (must contain a ``histories`` array)

    Returns:
        List of IssueHistory rows in document order

    Raises:
        InvalidDataError: If the document or any entry is malformed
    """
    if not isinstance(changelog, dict) or not isinstance(changelog.get('histories'), list):
        raise InvalidDataError("No histories array in changelog")

    histories: List[IssueHistory] = []
    for entry in changelog['histories']:
        histories.extend(_parse_entry(issue_id, issue_key, entry))
    return histories


def extract_histories(issues: Iterable[Issue]) -> Tuple[List[IssueHistory], List[str]]:
    """Parse the changelogs carried by a batch of issues.

    Issues without a changelog are skipped. A malformed changelog does not
    stop the batch; its error is returned alongside the parsed rows.

    Returns:
        Tuple of (history rows, error messages)
    """
    histories: List[IssueHistory] = []
    errors: List[str] = []
    for issue in issues:
        if issue.changelog is None:
            continue
        try:
            histories.extend(parse_changelog(issue.id, issue.key, issue.changelog))
        except InvalidDataError as e:
            logger.warning(f"Failed to parse changelog for {issue.key}: {e}")
            errors.append(f"{issue.key}: {e}")
    return histories, errors


def extract_field_changes(histories: Iterable[IssueHistory], field_names: Iterable[str]) -> List[IssueHistory]:
    """Keep only rows whose field name is in field_names."""
    wanted = set(field_names)
    return [h for h in histories if h.field_name in wanted]


def generate_change_summary(histories: Iterable[IssueHistory]) -> Dict[str, int]:
    """Count changes per field name."""
    summary: Dict[str, int] = {}
    for history in histories:
        summary[history.field_name] = summary.get(history.field_name, 0) + 1
    return summary


def group_by_change_type(histories: Iterable[IssueHistory]) -> Dict[str, List[IssueHistory]]:
    """Partition rows by the label of their derived change type."""
    groups: Dict[str, List[IssueHistory]] = {}
    for history in histories:
        groups.setdefault(history.change_type.label, []).append(history)
    return groups


def history_identity(history: IssueHistory) -> Tuple[str, str, str]:
    return (history.issue_key, history.change_id, history.field_name)


def filter_new_histories(
    existing: Iterable[IssueHistory],
    incoming: Iterable[IssueHistory]
) -> List[IssueHistory]:
    """Drop incoming rows whose identity is already present in existing.

    Rows are identified by (issue_key, change_id, field_name). Rows within
    ``incoming`` are never collapsed against each other: one changelog entry
    may change the same field several times (two attachments, two links).
    """
    stored: Set[Tuple[str, str, str]] = {history_identity(h) for h in existing}
    return [history for history in incoming if history_identity(history) not in stored]
