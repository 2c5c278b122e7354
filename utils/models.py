"""
Pydantic models for sprint and standup report data.

Attributes are snake_case in Python; JSON output uses the camelCase field
names expected by tool callers (``sprintName``, ``staleIssues``,
``daysSinceUpdate``, ...).

Usage:
    from utils.models import Sprint, StandupReport

    sprint = Sprint.model_validate(sprint_json)
    payload = report.model_dump(by_alias=True, mode="json")
"""
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase and accepting either spelling."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ==============================================================================
# Jira Data Models
# ==============================================================================

class Sprint(CamelModel):
    """Jira sprint as returned by the agile API.

    Attributes:
        id: Sprint ID
        name: Sprint name (e.g., "Sprint 42")
        state: Sprint state ("active", "future", "closed")
        start_date: ISO 8601 timestamp (optional for future sprints)
        end_date: ISO 8601 timestamp (optional for future sprints)
        origin_board_id: Board the sprint was created on
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    id: int
    name: str
    state: Literal["active", "future", "closed"]
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    origin_board_id: Optional[int] = None


class StatusCategory(str, Enum):
    """Coarse workflow bucket derived from the status name."""
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"
    TODO = "todo"


class IssueCategory(str, Enum):
    """Problem categories an open issue can fall into."""
    STALE = "stale"
    OVERDUE = "overdue"
    UNASSIGNED = "unassigned"
    BLOCKED = "blocked"


# ==============================================================================
# Standup Report Models
# ==============================================================================

class LastComment(CamelModel):
    author: str
    created: str
    body: str


class CategorizedIssue(CamelModel):
    """Normalized issue with its problem categories.

    Completed issues always carry an empty ``categories`` list.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    key: str
    summary: str
    status: str
    assignee: str
    assignee_email: Optional[str] = None
    updated: str
    duedate: str = ""
    priority: str
    days_since_update: int
    url: str
    labels: List[str] = Field(default_factory=list)
    last_comment: Optional[LastComment] = None
    categories: List[IssueCategory] = Field(default_factory=list)

    def has_category(self, category: IssueCategory) -> bool:
        return category in self.categories


class AssigneeReport(CamelModel):
    """Open issues and problem counts for one assignee."""
    name: str
    email: Optional[str] = None
    issues: List[CategorizedIssue] = Field(default_factory=list)
    stale_count: int = 0
    overdue_count: int = 0


class SprintSummary(CamelModel):
    """Issue counts by status category.

    Invariant: total_sprint_issues == completed + in_progress + todo.
    """
    total_sprint_issues: int = 0
    completed_issues: int = 0
    in_progress_issues: int = 0
    todo_issues: int = 0
    project_filtered: bool = False
    project_key: Optional[str] = None


class StandupReport(CamelModel):
    """Daily standup report for one sprint. Immutable once built."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sprint_name: str
    sprint_id: int
    date: str
    stale_issues: List[CategorizedIssue] = Field(default_factory=list)
    overdue_issues: List[CategorizedIssue] = Field(default_factory=list)
    unassigned_issues: List[CategorizedIssue] = Field(default_factory=list)
    blocked_issues: List[CategorizedIssue] = Field(default_factory=list)
    by_assignee: Dict[str, AssigneeReport] = Field(default_factory=dict)
    summary: SprintSummary

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class SprintOverview(CamelModel):
    """Counts over every issue in the active sprint."""
    sprint_name: str
    total_issues: int
    by_status: Dict[str, int] = Field(default_factory=dict)
    by_assignee: Dict[str, int] = Field(default_factory=dict)
    summary: SprintSummary = Field(default_factory=SprintSummary)
