"""
Issue classification for standup reports.

Pure functions turning one raw Jira issue into a CategorizedIssue. The
reference time is always passed in, so the same issue classified twice with
the same ``now`` and ``days_stale`` gives identical results.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

from utils.models import CategorizedIssue, IssueCategory, LastComment, StatusCategory


logger = logging.getLogger(__name__)

COMMENT_MAX_LENGTH = 200
NO_TEXT_PLACEHOLDER = "No text content"
BLOCKED_LABELS = ("blocked", "impediment")
SECONDS_PER_DAY = 24 * 60 * 60


def classify_status(status: str) -> StatusCategory:
    """
    Map a status name to its coarse category.

    Examples:
        >>> classify_status("Done")
        <StatusCategory.COMPLETED: 'completed'>
        >>> classify_status("Code Review")
        <StatusCategory.IN_PROGRESS: 'in_progress'>
        >>> classify_status("Backlog")
        <StatusCategory.TODO: 'todo'>
    """
    status_lower = (status or "").lower()

    if status_lower in ("done", "closed", "resolved"):
        return StatusCategory.COMPLETED
    if any(word in status_lower for word in ("progress", "review", "testing")):
        return StatusCategory.IN_PROGRESS
    return StatusCategory.TODO


def parse_jira_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a Jira timestamp into an aware UTC datetime.

    Accepts Jira's ``2024-01-15T10:30:00.000+0000`` form, ``Z`` suffixes,
    plain dates and naive timestamps (taken as UTC). Returns None when the
    value is empty or unparseable.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    elif len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit() and "T" in text:
        text = f"{text[:-2]}:{text[-2:]}"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value}")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_due_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a YYYY-MM-DD due date as midnight UTC."""
    if not value:
        return None
    try:
        return datetime.combine(date.fromisoformat(value[:10]), time.min, tzinfo=timezone.utc)
    except ValueError:
        return parse_jira_datetime(value)


def days_since(timestamp: Optional[str], now: datetime) -> int:
    """Whole days elapsed since ``timestamp`` (0 if it cannot be parsed)."""
    parsed = parse_jira_datetime(timestamp)
    if parsed is None:
        return 0
    return math.floor((now - parsed).total_seconds() / SECONDS_PER_DAY)


# ==============================================================================
# Comment Bodies
# ==============================================================================

@dataclass(frozen=True)
class PlainTextBody:
    text: str


@dataclass(frozen=True)
class DocumentBody:
    """Atlassian document (rich text) body."""
    document: Dict[str, Any]

    def first_text(self) -> Optional[str]:
        """Text of the first paragraph's first text node, if present."""
        content = self.document.get("content")
        if not isinstance(content, list) or not content or not isinstance(content[0], dict):
            return None
        inner = content[0].get("content")
        if not isinstance(inner, list) or not inner or not isinstance(inner[0], dict):
            return None
        text = inner[0].get("text")
        return text if isinstance(text, str) and text else None


@dataclass(frozen=True)
class UnrecognizedBody:
    raw: Any


CommentBody = Union[PlainTextBody, DocumentBody, UnrecognizedBody]


def parse_comment_body(body: Any) -> CommentBody:
    if isinstance(body, str) and body:
        return PlainTextBody(body)
    if isinstance(body, dict):
        return DocumentBody(body)
    return UnrecognizedBody(body)


def comment_text(body: CommentBody) -> str:
    """Display text for a comment body, truncated to 200 characters."""
    if isinstance(body, PlainTextBody):
        return body.text[:COMMENT_MAX_LENGTH]
    if isinstance(body, DocumentBody):
        text = body.first_text()
        if text:
            return text[:COMMENT_MAX_LENGTH]
    return NO_TEXT_PLACEHOLDER


def extract_last_comment(fields: Dict[str, Any]) -> Optional[LastComment]:
    comments = ((fields.get("comment") or {}).get("comments")) or []
    if not comments:
        return None

    comment = comments[-1]
    return LastComment(
        author=(comment.get("author") or {}).get("displayName") or "Unknown",
        created=comment.get("created") or "",
        body=comment_text(parse_comment_body(comment.get("body"))),
    )


# ==============================================================================
# Categorization
# ==============================================================================

def categorize_issue(
    raw: Dict[str, Any],
    days_stale: int,
    base_url: str,
    now: datetime
) -> CategorizedIssue:
    """
    Normalize a raw issue and compute its problem categories.

    Categories are only assigned to issues that are not completed:
    stale (not updated for more than ``days_stale`` days), overdue (due date
    before ``now``), unassigned (no assignee) and blocked (``blocked`` or
    ``impediment`` label, or "blocked" in the status name).

    Args:
        raw: Issue as returned by the Jira agile API (not modified)
        days_stale: Staleness threshold in days
        base_url: Jira base URL used to build the browse link
        now: Reference time (aware UTC datetime)

    Returns:
        CategorizedIssue sharing no mutable state with ``raw``
    """
    fields = raw.get("fields") or {}
    key = raw.get("key", "")

    status = (fields.get("status") or {}).get("name") or "Unknown"
    assignee = fields.get("assignee") or None
    updated = fields.get("updated") or fields.get("created") or ""
    duedate = fields.get("duedate") or ""
    labels: List[str] = list(fields.get("labels") or [])
    days_since_update = days_since(updated, now)

    categories: List[IssueCategory] = []
    if classify_status(status) != StatusCategory.COMPLETED:
        if days_since_update > days_stale:
            categories.append(IssueCategory.STALE)

        due = parse_due_date(duedate)
        if due is not None and due < now:
            categories.append(IssueCategory.OVERDUE)

        if not assignee:
            categories.append(IssueCategory.UNASSIGNED)

        if any(label in BLOCKED_LABELS for label in labels) or "blocked" in status.lower():
            categories.append(IssueCategory.BLOCKED)

    return CategorizedIssue(
        key=key,
        summary=fields.get("summary") or "No summary",
        status=status,
        assignee=(assignee or {}).get("displayName") or "Unassigned",
        assignee_email=(assignee or {}).get("emailAddress"),
        updated=updated,
        duedate=duedate,
        priority=(fields.get("priority") or {}).get("name") or "None",
        days_since_update=days_since_update,
        url=f"{base_url}/browse/{key}",
        labels=labels,
        last_comment=extract_last_comment(fields),
        categories=categories,
    )
