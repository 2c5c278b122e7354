"""
Standup Report Builder.

Orchestrates the daily standup report: resolve the board's active sprint,
fetch every sprint issue, filter by project, classify, group by assignee,
sort, and cache the finished report.

Example:
    builder = StandupReportBuilder(jira_client, caches)
    report = await builder.build(board_id=42, project_key="WEB", days_stale=3)
    print(f"{report.sprint_name}: {len(report.stale_issues)} stale issues")
"""

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from api.jira_client import JiraClient
from services.issue_classifier import categorize_issue, classify_status
from utils.cache import CacheKeys, CacheRegistry
from utils.exceptions import JiraError
from utils.models import (
    AssigneeReport,
    CategorizedIssue,
    IssueCategory,
    Sprint,
    SprintOverview,
    SprintSummary,
    StandupReport,
    StatusCategory,
)


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def assemble_report(
    sprint: Sprint,
    issues: List[Dict[str, Any]],
    base_url: str,
    now: datetime,
    project_key: Optional[str] = None,
    days_stale: int = 2,
    include_unassigned: bool = True
) -> StandupReport:
    """
    Build a StandupReport from already-fetched sprint issues.

    Issues from other projects are skipped entirely when ``project_key`` is
    set. Completed issues count toward the totals but never appear in the
    category lists or assignee buckets.

    Args:
        sprint: Active sprint
        issues: Raw sprint issues
        base_url: Jira base URL for browse links
        now: Reference time for staleness and due dates
        project_key: Optional project filter
        days_stale: Staleness threshold in days
        include_unassigned: When False, issues are not reported as unassigned

    Returns:
        Immutable StandupReport
    """
    summary = SprintSummary(project_filtered=bool(project_key), project_key=project_key)
    buckets: Dict[IssueCategory, List[CategorizedIssue]] = {category: [] for category in IssueCategory}
    by_assignee: Dict[str, AssigneeReport] = {}

    for raw in issues:
        issue_project = ((raw.get("fields") or {}).get("project") or {}).get("key")
        if project_key and issue_project != project_key:
            continue

        issue = categorize_issue(raw, days_stale, base_url, now)
        summary.total_sprint_issues += 1

        status_category = classify_status(issue.status)
        if status_category == StatusCategory.COMPLETED:
            summary.completed_issues += 1
            continue
        if status_category == StatusCategory.IN_PROGRESS:
            summary.in_progress_issues += 1
        else:
            summary.todo_issues += 1

        if not include_unassigned and issue.has_category(IssueCategory.UNASSIGNED):
            issue = issue.model_copy(update={
                "categories": [c for c in issue.categories if c != IssueCategory.UNASSIGNED]
            })

        for category in issue.categories:
            buckets[category].append(issue)

        bucket = by_assignee.get(issue.assignee)
        if bucket is None:
            bucket = AssigneeReport(name=issue.assignee, email=issue.assignee_email)
            by_assignee[issue.assignee] = bucket

        bucket.issues.append(issue)
        if issue.has_category(IssueCategory.STALE):
            bucket.stale_count += 1
        if issue.has_category(IssueCategory.OVERDUE):
            bucket.overdue_count += 1

    stale = sorted(buckets[IssueCategory.STALE], key=lambda i: i.days_since_update, reverse=True)
    overdue = sorted(buckets[IssueCategory.OVERDUE], key=lambda i: i.duedate or "")

    return StandupReport(
        sprint_name=sprint.name,
        sprint_id=sprint.id,
        date=now.date().isoformat(),
        stale_issues=stale,
        overdue_issues=overdue,
        unassigned_issues=buckets[IssueCategory.UNASSIGNED],
        blocked_issues=buckets[IssueCategory.BLOCKED],
        by_assignee=by_assignee,
        summary=summary,
    )


def summarize_sprint(sprint: Sprint, issues: List[Dict[str, Any]]) -> SprintOverview:
    """Count every sprint issue by status name, assignee and status category."""
    by_status: Dict[str, int] = {}
    by_assignee: Dict[str, int] = {}
    counts = {category: 0 for category in StatusCategory}

    for raw in issues:
        fields = raw.get("fields") or {}
        status = (fields.get("status") or {}).get("name") or "Unknown"
        assignee = (fields.get("assignee") or {}).get("displayName") or "Unassigned"

        by_status[status] = by_status.get(status, 0) + 1
        by_assignee[assignee] = by_assignee.get(assignee, 0) + 1
        counts[classify_status(status)] += 1

    return SprintOverview(
        sprint_name=sprint.name,
        total_issues=len(issues),
        by_status=by_status,
        by_assignee=by_assignee,
        summary=SprintSummary(
            total_sprint_issues=len(issues),
            completed_issues=counts[StatusCategory.COMPLETED],
            in_progress_issues=counts[StatusCategory.IN_PROGRESS],
            todo_issues=counts[StatusCategory.TODO],
        ),
    )


class StandupReportBuilder:
    """
    Builds and caches standup reports.

    Attributes:
        jira: Jira client used for sprint and issue reads
        caches: Cache registry (reports go to the ``report`` store)
        clock: Returns the reference time for a build (aware UTC datetime)
    """

    def __init__(
        self,
        jira: JiraClient,
        caches: CacheRegistry,
        clock: Callable[[], datetime] = utc_now
    ):
        self.jira = jira
        self.caches = caches
        self.clock = clock

    async def _require_active_sprint(self, board_id: int) -> Sprint:
        sprint = await self.jira.get_active_sprint(board_id)
        if sprint is None:
            raise JiraError.sprint_not_found(board_id)
        return sprint

    async def build(
        self,
        board_id: int,
        project_key: Optional[str] = None,
        days_stale: int = 2,
        include_unassigned: bool = True
    ) -> StandupReport:
        """
        Return the standup report for a board's active sprint.

        Reports are cached per (board, project, days_stale, include_unassigned);
        concurrent identical requests share one build.

        Raises:
            JiraError: Board not found or no active sprint
            ApiError: Upstream request failed
        """
        cache_key = CacheKeys.standup_report(board_id, project_key, days_stale, include_unassigned)
        return await self.caches.report.get_or_set(
            cache_key,
            partial(self._build_fresh, board_id, project_key, days_stale, include_unassigned)
        )

    async def _build_fresh(
        self,
        board_id: int,
        project_key: Optional[str],
        days_stale: int,
        include_unassigned: bool
    ) -> StandupReport:
        sprint = await self._require_active_sprint(board_id)
        logger.info(f"Processing sprint {sprint.name} (id={sprint.id})")

        issues = await self.jira.get_sprint_tickets(sprint.id)
        logger.info(f"Found {len(issues)} issues")

        report = assemble_report(
            sprint,
            issues,
            self.jira.config.base_url,
            self.clock(),
            project_key=project_key,
            days_stale=days_stale,
            include_unassigned=include_unassigned,
        )

        logger.info(
            f"Report summary: {len(report.stale_issues)} stale, "
            f"{len(report.overdue_issues)} overdue, "
            f"{len(report.unassigned_issues)} unassigned, "
            f"{len(report.blocked_issues)} blocked"
        )
        return report

    async def sprint_overview(self, board_id: int) -> SprintOverview:
        """
        Counts over every issue in the board's active sprint.

        Raises:
            JiraError: Board not found or no active sprint
        """
        sprint = await self._require_active_sprint(board_id)
        issues = await self.jira.get_sprint_tickets(sprint.id)
        return summarize_sprint(sprint, issues)
