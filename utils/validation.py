"""
Tool input validation.

Each tool has a pydantic input model. Unknown arguments are rejected; both the
camelCase argument names used by MCP hosts (``boardId``, ``daysStale``) and
their snake_case equivalents are accepted.

Usage:
    from utils.validation import validate, DailyStandupReportInput

    try:
        args = validate(DailyStandupReportInput, {"boardId": 42})
    except ValidationError as e:
        logger.error(f"Invalid input: {e.errors}")
"""
import logging
import re
import time
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from utils.exceptions import ValidationError


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

PROJECT_KEY_PATTERN = r"^[A-Z]{2,10}$"
ISSUE_KEY_PATTERN = r"^[A-Z]{2,10}-\d+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
OUTPUT_PATH_PATTERN = r"^[\w\-/.]+\.pdf$"
SLACK_CHANNEL_PATTERN = r"^([#@][\w-]+|[A-Z0-9]{9,})$"
SLACK_ID_PATTERN = r"^[A-Z0-9]{9,}$"
SLACK_TS_PATTERN = r"^\d{10}\.\d{6}$"

Priority = Literal["Highest", "High", "Medium", "Low", "Lowest"]
IssueType = Literal["Bug", "Task", "Story", "Epic", "Sub-task"]


class ToolInput(BaseModel):
    """Base model for tool arguments."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')


# ==============================================================================
# Jira Inputs
# ==============================================================================

class CreateIssueInput(ToolInput):
    project: str = Field(pattern=PROJECT_KEY_PATTERN)
    summary: str = Field(min_length=1, max_length=255)
    issue_type: IssueType
    description: Optional[str] = Field(default=None, max_length=32768)
    assignee: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN)
    priority: Optional[Priority] = None


class PriorityField(BaseModel):
    name: Optional[Priority] = None


class AssigneeField(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email_address: Optional[str] = Field(default=None, alias="emailAddress", pattern=EMAIL_PATTERN)


class StatusField(BaseModel):
    name: str


class IssueFieldsUpdate(BaseModel):
    """Fields accepted by jira_update_issue.

    Unknown fields are dropped; at least one known field must remain.
    """
    model_config = ConfigDict(extra='ignore')

    summary: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[Any] = None
    priority: Optional[PriorityField] = None
    assignee: Optional[AssigneeField] = None
    status: Optional[StatusField] = None

    @model_validator(mode='after')
    def check_not_empty(self):
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one field must be provided to update")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class UpdateIssueInput(ToolInput):
    issue_key: str = Field(pattern=ISSUE_KEY_PATTERN)
    fields: IssueFieldsUpdate


class SprintIssuesInput(ToolInput):
    board_id: int = Field(gt=0)


class DailyStandupReportInput(ToolInput):
    board_id: int = Field(gt=0)
    project_key: Optional[str] = Field(default=None, pattern=PROJECT_KEY_PATTERN)
    days_stale: int = Field(default=2, ge=1, le=30)
    include_unassigned: bool = True


class GenerateStandupPdfInput(ToolInput):
    board_id: int = Field(gt=0)
    project_key: Optional[str] = Field(default=None, pattern=PROJECT_KEY_PATTERN)
    days_stale: int = Field(default=2, ge=1, le=30)
    output_path: Optional[str] = Field(default=None, pattern=OUTPUT_PATH_PATTERN)


# ==============================================================================
# Slack Inputs
# ==============================================================================

class PostMessageInput(ToolInput):
    channel: str = Field(pattern=SLACK_CHANNEL_PATTERN)
    text: str = Field(min_length=1, max_length=40000)
    thread_ts: Optional[str] = Field(default=None, pattern=SLACK_TS_PATTERN)


class CreateReminderInput(ToolInput):
    text: str = Field(min_length=1, max_length=1000)
    time: str = Field(min_length=1, max_length=100)
    user: Optional[str] = Field(default=None, pattern=SLACK_ID_PATTERN)


class ChannelHistoryInput(ToolInput):
    channel: str = Field(pattern=SLACK_ID_PATTERN)
    limit: int = Field(default=10, ge=1, le=1000)


class ScheduleMessageInput(ToolInput):
    channel: str = Field(pattern=SLACK_CHANNEL_PATTERN)
    text: str = Field(min_length=1, max_length=40000)
    post_at: int = Field(gt=0)

    @field_validator('post_at')
    @classmethod
    def check_future(cls, value: int) -> int:
        if value <= int(time.time()):
            raise ValueError("Post time must be in the future")
        return value


# ==============================================================================
# Helpers
# ==============================================================================

def _format_errors(error: PydanticValidationError) -> List[Dict[str, str]]:
    formatted = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "input"
        message = err["msg"]
        if err["type"] == "string_pattern_mismatch":
            message = f"Invalid format for {field}"
        formatted.append({"field": field, "message": message})
    return formatted


def validate(model: Type[M], data: Optional[Dict[str, Any]]) -> M:
    """Validate tool arguments against an input model.

    Args:
        model: ToolInput subclass to validate against
        data: Raw tool arguments (None is treated as no arguments)

    Returns:
        Validated model instance

    Raises:
        ValidationError: With one {field, message} entry per problem
    """
    try:
        return model.model_validate(data or {})
    except PydanticValidationError as e:
        errors = _format_errors(e)
        logger.debug(f"Validation failed for {model.__name__}: {errors}")
        raise ValidationError("Input validation failed", errors)


def sanitize_string(value: str, max_length: int = 10000) -> str:
    """Strip null bytes and surrounding whitespace, and cap the length."""
    sanitized = re.sub(r"\x00", "", value).strip()
    return sanitized[:max_length]
