"""
Tool dispatch for Engineering Manager MCP.

ToolHandler is the composition root: it builds the cache registry, API
clients and report builder from a Config, validates tool arguments, runs the
tool and converts every failure into a structured error response.

Example:
    handler = ToolHandler.from_config(load_config())
    result = await handler.call("jira_daily_standup_report", {"boardId": 42})
    await handler.aclose()
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

import httpx

from api.jira_client import JiraClient
from api.slack_client import SlackClient
from services.pdf_generator import generate_standup_pdf
from services.standup_report import StandupReportBuilder
from utils.cache import CacheRegistry
from utils.config import Config, ReportConfig
from utils.exceptions import BaseError, ErrorCode, handle_error
from utils.validation import (
    ChannelHistoryInput,
    CreateIssueInput,
    CreateReminderInput,
    DailyStandupReportInput,
    GenerateStandupPdfInput,
    PostMessageInput,
    ScheduleMessageInput,
    SprintIssuesInput,
    ToolInput,
    UpdateIssueInput,
    sanitize_string,
    validate,
)


logger = logging.getLogger(__name__)

ToolMethod = Callable[[Any], Awaitable[Any]]


class ToolHandler:
    """
    Runs named tools against Jira and Slack.

    Attributes:
        jira: Jira API client
        slack: Slack API client
        builder: Standup report builder
        caches: Shared cache registry
        report_config: Report defaults (days stale, output directory)
        debug: Include error context in error responses
    """

    def __init__(
        self,
        jira: JiraClient,
        slack: SlackClient,
        builder: StandupReportBuilder,
        caches: CacheRegistry,
        report_config: Optional[ReportConfig] = None,
        debug: bool = False
    ):
        self.jira = jira
        self.slack = slack
        self.builder = builder
        self.caches = caches
        self.report_config = report_config or ReportConfig()
        self.debug = debug

        self._tools: Dict[str, Tuple[Type[ToolInput], ToolMethod]] = {
            'jira_create_issue': (CreateIssueInput, self.create_issue),
            'jira_update_issue': (UpdateIssueInput, self.update_issue),
            'jira_get_sprint_issues': (SprintIssuesInput, self.get_sprint_issues),
            'jira_daily_standup_report': (DailyStandupReportInput, self.daily_standup_report),
            'jira_generate_standup_pdf': (GenerateStandupPdfInput, self.generate_standup_pdf),
            'slack_post_message': (PostMessageInput, self.post_message),
            'slack_create_reminder': (CreateReminderInput, self.create_reminder),
            'slack_get_channel_history': (ChannelHistoryInput, self.get_channel_history),
            'slack_schedule_message': (ScheduleMessageInput, self.schedule_message),
        }

    @classmethod
    def from_config(
        cls,
        config: Config,
        jira_transport: Optional[httpx.AsyncBaseTransport] = None,
        slack_transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ) -> "ToolHandler":
        """Wire every component from configuration."""
        caches = CacheRegistry(config.cache)
        jira = JiraClient(config.jira, caches, config.retry, transport=jira_transport, sleep=sleep)
        slack = SlackClient(config.slack, transport=slack_transport)
        builder = StandupReportBuilder(jira, caches)
        return cls(jira, slack, builder, caches, config.report, config.debug)

    @property
    def tool_names(self):
        return list(self._tools)

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Validate arguments and run a tool.

        Never raises (except on cancellation): failures come back as the
        structured error response built by handle_error().

        Args:
            name: Tool name (e.g., "jira_daily_standup_report")
            arguments: Raw tool arguments (camelCase or snake_case keys)

        Returns:
            The tool result, or an error response with ``error``, ``tool``,
            ``status`` and ``details``
        """
        try:
            if name not in self._tools:
                raise BaseError(f"Unknown tool: {name}", ErrorCode.UNKNOWN_TOOL, 400)

            model, method = self._tools[name]
            args = validate(model, arguments)
            logger.info(f"Running tool {name}")
            return await method(args)
        except Exception as e:
            return handle_error(e, name, self.debug)

    async def call_json(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """Run a tool and return its result as indented JSON text."""
        result = await self.call(name, arguments)
        return json.dumps(result, indent=2, default=str)

    # ==========================================================================
    # Jira tools
    # ==========================================================================

    async def create_issue(self, args: CreateIssueInput) -> Dict[str, Any]:
        return await self.jira.create_issue(
            project=args.project,
            summary=sanitize_string(args.summary, 255),
            issue_type=args.issue_type,
            description=args.description,
            assignee=args.assignee,
            priority=args.priority,
        )

    async def update_issue(self, args: UpdateIssueInput) -> Dict[str, Any]:
        return await self.jira.update_issue(args.issue_key, args.fields.to_payload())

    async def get_sprint_issues(self, args: SprintIssuesInput) -> Dict[str, Any]:
        overview = await self.builder.sprint_overview(args.board_id)
        return overview.model_dump(by_alias=True, mode="json")

    def _days_stale(self, args: ToolInput) -> int:
        if 'days_stale' in args.model_fields_set:
            return args.days_stale
        return self.report_config.default_days_stale

    async def daily_standup_report(self, args: DailyStandupReportInput) -> Dict[str, Any]:
        report = await self.builder.build(
            args.board_id,
            project_key=args.project_key,
            days_stale=self._days_stale(args),
            include_unassigned=args.include_unassigned,
        )
        return report.to_json_dict()

    async def generate_standup_pdf(self, args: GenerateStandupPdfInput) -> Dict[str, Any]:
        report = await self.builder.build(
            args.board_id,
            project_key=args.project_key,
            days_stale=self._days_stale(args),
            include_unassigned=True,
        )

        logger.info("Generating PDF report")
        pdf_path = await generate_standup_pdf(report, args.output_path, self.report_config.output_dir)

        return {
            'success': True,
            'message': 'PDF report generated successfully',
            'filePath': str(pdf_path),
            'reportSummary': {
                'sprint': report.sprint_name,
                'date': report.date,
                'totalIssues': report.summary.total_sprint_issues,
                'overdueCount': len(report.overdue_issues),
                'staleCount': len(report.stale_issues),
            },
        }

    # ==========================================================================
    # Slack tools
    # ==========================================================================

    async def post_message(self, args: PostMessageInput) -> Dict[str, Any]:
        return await self.slack.post_message(args.channel, sanitize_string(args.text, 40000), args.thread_ts)

    async def create_reminder(self, args: CreateReminderInput) -> Dict[str, Any]:
        return await self.slack.create_reminder(sanitize_string(args.text, 1000), args.time, args.user)

    async def get_channel_history(self, args: ChannelHistoryInput) -> Dict[str, Any]:
        messages = await self.slack.get_channel_history(args.channel, args.limit)
        return {'channel': args.channel, 'messages': messages}

    async def schedule_message(self, args: ScheduleMessageInput) -> Dict[str, Any]:
        return await self.slack.schedule_message(args.channel, sanitize_string(args.text, 40000), args.post_at)

    async def aclose(self) -> None:
        """Stop cache sweeps and close HTTP clients."""
        await self.caches.stop()
        await self.jira.aclose()
        await self.slack.aclose()
