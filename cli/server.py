"""
MCP stdio server for Engineering Manager MCP.

Registers the Jira and Slack tools with FastMCP. Each tool forwards its
arguments to ToolHandler and returns the JSON result (or structured error)
as text. stdout carries the protocol, so logging must go to stderr.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from mcp.server.fastmcp import FastMCP

from services.tool_handler import ToolHandler
from utils.config import Config


logger = logging.getLogger(__name__)

SERVER_NAME = "engineering-manager-mcp"


def _args(**kwargs: Any) -> Dict[str, Any]:
    """Drop arguments the caller left unset so input defaults apply."""
    return {key: value for key, value in kwargs.items() if value is not None}


def create_server(config: Config, handler: Optional[ToolHandler] = None) -> FastMCP:
    """
    Build the MCP server.

    Args:
        config: Loaded configuration
        handler: Pre-built tool handler (default: ToolHandler.from_config)

    Returns:
        FastMCP server ready for ``run(transport="stdio")``
    """
    handler = handler or ToolHandler.from_config(config)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        handler.caches.start_cleanup()
        logger.info(f"{SERVER_NAME} started with {len(handler.tool_names)} tools")
        try:
            yield
        finally:
            await handler.aclose()
            logger.info(f"{SERVER_NAME} stopped")

    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)

    # Jira tools

    @mcp.tool()
    async def jira_create_issue(
        project: str,
        summary: str,
        issue_type: str,
        description: Optional[str] = None,
        assignee: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> str:
        """Create a new Jira issue.

        Args:
            project: Project key (e.g., "PROJ")
            summary: Issue summary
            issue_type: Issue type (Bug, Task, Story, Epic, Sub-task)
            description: Issue description
            assignee: Assignee email
            priority: Priority (Highest, High, Medium, Low, Lowest)
        """
        return await handler.call_json("jira_create_issue", _args(
            project=project, summary=summary, issue_type=issue_type,
            description=description, assignee=assignee, priority=priority,
        ))

    @mcp.tool()
    async def jira_update_issue(issue_key: str, fields: Dict[str, Any]) -> str:
        """Update an existing Jira issue.

        Args:
            issue_key: Issue key (e.g., "PROJ-123")
            fields: Fields to update (summary, description, priority, assignee, status)
        """
        return await handler.call_json("jira_update_issue", _args(issue_key=issue_key, fields=fields))

    @mcp.tool()
    async def jira_get_sprint_issues(board_id: int) -> str:
        """Get issue counts by status and assignee for a board's active sprint.

        Args:
            board_id: Jira board ID
        """
        return await handler.call_json("jira_get_sprint_issues", _args(board_id=board_id))

    @mcp.tool()
    async def jira_daily_standup_report(
        board_id: int,
        project_key: Optional[str] = None,
        days_stale: Optional[int] = None,
        include_unassigned: Optional[bool] = None,
    ) -> str:
        """Generate a daily standup report of stale, overdue, unassigned and blocked issues.

        Args:
            board_id: Jira board ID
            project_key: Project key to filter (optional)
            days_stale: Days without update to consider stale (default: 2)
            include_unassigned: Include unassigned issues (default: true)
        """
        return await handler.call_json("jira_daily_standup_report", _args(
            board_id=board_id, project_key=project_key,
            days_stale=days_stale, include_unassigned=include_unassigned,
        ))

    @mcp.tool()
    async def jira_generate_standup_pdf(
        board_id: int,
        project_key: Optional[str] = None,
        days_stale: Optional[int] = None,
        output_path: Optional[str] = None,
    ) -> str:
        """Generate a PDF report from the daily standup data.

        Args:
            board_id: Jira board ID
            project_key: Project key to filter (optional)
            days_stale: Days without update to consider stale (default: 2)
            output_path: Output path for the PDF file (optional)
        """
        return await handler.call_json("jira_generate_standup_pdf", _args(
            board_id=board_id, project_key=project_key,
            days_stale=days_stale, output_path=output_path,
        ))

    # Slack tools

    @mcp.tool()
    async def slack_post_message(channel: str, text: str, thread_ts: Optional[str] = None) -> str:
        """Post a message to a Slack channel.

        Args:
            channel: Channel ID or name (e.g., "#general")
            text: Message text
            thread_ts: Thread timestamp for replies (optional)
        """
        return await handler.call_json("slack_post_message", _args(
            channel=channel, text=text, thread_ts=thread_ts,
        ))

    @mcp.tool()
    async def slack_create_reminder(text: str, time: str, user: Optional[str] = None) -> str:
        """Create a reminder for yourself or someone else.

        Args:
            text: Reminder text
            time: Time (e.g., "in 2 hours", "tomorrow at 9am")
            user: User ID (optional, defaults to self)
        """
        return await handler.call_json("slack_create_reminder", _args(text=text, time=time, user=user))

    @mcp.tool()
    async def slack_get_channel_history(channel: str, limit: Optional[int] = None) -> str:
        """Get recent messages from a channel.

        Args:
            channel: Channel ID
            limit: Number of messages to retrieve (default: 10)
        """
        return await handler.call_json("slack_get_channel_history", _args(channel=channel, limit=limit))

    @mcp.tool()
    async def slack_schedule_message(channel: str, text: str, post_at: int) -> str:
        """Schedule a message for later.

        Args:
            channel: Channel ID or name
            text: Message text
            post_at: Unix timestamp when to send
        """
        return await handler.call_json("slack_schedule_message", _args(
            channel=channel, text=text, post_at=post_at,
        ))

    return mcp


def run_server(config: Config) -> None:
    """Run the MCP server over stdio until the host disconnects."""
    create_server(config).run(transport="stdio")
