"""
API client modules for Engineering Manager MCP.

This package provides async clients for external APIs:
- JiraClient: Jira Agile and core REST APIs (sprints, issues)
- SlackClient: Slack Web API (messages, reminders, history)

Example usage:
    from api import JiraClient

    async with JiraClient(config.jira, caches) as client:
        sprint = await client.get_active_sprint(42)
"""

from .jira_client import JiraClient
from .slack_client import SlackClient

__all__ = [
    'JiraClient',
    'SlackClient',
]

__version__ = '1.0.0'
