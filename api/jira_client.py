"""
Jira API Client for Engineering Manager MCP.

Async client for Jira's Agile and core REST APIs: active sprint lookup,
paginated sprint issue retrieval, and issue create/update. Reads go through
the shared cache stores and every request goes through the retry executor.

Example usage:
    from api.jira_client import JiraClient

    async with JiraClient(config.jira, caches) as client:
        sprint = await client.get_active_sprint(42)
        issues = await client.get_sprint_tickets(sprint.id)
        print(f"{sprint.name}: {len(issues)} issues")
"""

import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from utils.cache import CacheKeys, CacheRegistry
from utils.config import JiraConfig
from utils.exceptions import ApiError, JiraError
from utils.models import Sprint
from utils.retry import RetryPolicy, retry_async


# Configure module logger
logger = logging.getLogger(__name__)

AGILE_API = "/rest/agile/1.0"
CORE_API = "/rest/api/3"

PAGE_SIZE = 50
ISSUE_FIELDS = "summary,status,assignee,updated,duedate,priority,labels,project,comment,created"


def to_document(text: str) -> Dict[str, Any]:
    """Wrap plain text in a single-paragraph Atlassian document."""
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


class JiraClient:
    """
    Client for the Jira REST APIs.

    All requests use HTTP Basic Authentication with email and API token and
    a 30 second timeout. Non-2xx responses and transport failures surface as
    ApiError (or a JiraError for known not-found cases).

    Attributes:
        config: Jira connection settings
        caches: Shared cache stores (sprint, issue, metadata and report)
        retry_policy: Retry settings applied to every request
    """

    def __init__(
        self,
        config: JiraConfig,
        caches: CacheRegistry,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        timeout: float = 30.0
    ):
        """
        Initialize Jira client.

        Args:
            config: Jira base URL and credentials
            caches: Cache registry shared with the report builder
            retry_policy: Retry settings (defaults to RetryPolicy())
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Sleep function used between retries
            timeout: Per-request timeout in seconds
        """
        self.config = config
        self.caches = caches
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            auth=httpx.BasicAuth(config.email, config.api_token),
            headers={
                'Accept': 'application/json',
                'Content-Type': 'application/json'
            },
            timeout=timeout,
            transport=transport,
        )

        logger.info(f"Initialized Jira client for {config.base_url}")

    def browse_url(self, issue_key: str) -> str:
        return f"{self.config.base_url}/browse/{issue_key}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make a single request to the Jira API.

        Args:
            method: HTTP method
            endpoint: API path (e.g., /rest/agile/1.0/sprint/123/issue)
            params: Optional query parameters
            json: Optional JSON body

        Returns:
            Decoded JSON body, or None for empty responses (204)

        Raises:
            ApiError: Non-2xx response or network failure
        """
        logger.debug(f"{method} {endpoint} with params={params}")

        try:
            response = await self._client.request(method, endpoint, params=params, json=json)
        except httpx.HTTPError as e:
            raise ApiError.from_transport_error(e, method, endpoint) from e

        if response.is_error:
            raise ApiError.from_response(response)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _request_with_retry(self, method: str, endpoint: str, **kwargs) -> Any:
        return await retry_async(
            partial(self._request, method, endpoint, **kwargs),
            self.retry_policy,
            self._sleep
        )

    async def get_active_sprint(self, board_id: int) -> Optional[Sprint]:
        """
        Get the currently active sprint for a board.

        The sprint is cached per board. A board without an active sprint is
        not cached, so it is re-checked on the next call.

        Args:
            board_id: Jira board ID

        Returns:
            The first active sprint, or None if the board has none

        Raises:
            JiraError: Board does not exist (404)
            ApiError: API request failed
        """
        cache_key = CacheKeys.sprint(board_id)
        cached = self.caches.sprint.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for active sprint of board {board_id}")
            return cached

        logger.info(f"Fetching active sprint for board {board_id}")
        try:
            data = await self._request_with_retry(
                "GET",
                f"{AGILE_API}/board/{board_id}/sprint",
                params={'state': 'active'}
            )
        except ApiError as e:
            if e.status_code == 404:
                raise JiraError.board_not_found(board_id) from e
            raise

        sprints = (data or {}).get('values') or []
        if not sprints:
            logger.info(f"No active sprint found for board {board_id}")
            return None

        sprint = Sprint.model_validate(sprints[0])
        self.caches.sprint.set(cache_key, sprint)
        logger.info(f"Found active sprint: {sprint.name}")

        return sprint

    async def get_sprint_tickets(self, sprint_id: int) -> List[Dict[str, Any]]:
        """
        Fetch all issues in a sprint.

        Pages of 50 are requested one after another until the server-reported
        total is reached. The complete list is cached; if any page fails,
        nothing is cached and the error propagates.

        Args:
            sprint_id: Sprint ID

        Returns:
            Raw issue dictionaries in server order
        """
        return await self.caches.issue.get_or_set(
            CacheKeys.sprint_issues(sprint_id),
            partial(self._fetch_sprint_tickets, sprint_id)
        )

    async def _fetch_sprint_tickets(self, sprint_id: int) -> List[Dict[str, Any]]:
        endpoint = f"{AGILE_API}/sprint/{sprint_id}/issue"
        all_issues: List[Dict[str, Any]] = []
        start_at = 0

        logger.info(f"Fetching issues for sprint {sprint_id}")

        while True:
            params = {
                'startAt': start_at,
                'maxResults': PAGE_SIZE,
                'fields': ISSUE_FIELDS
            }
            page = await self._request_with_retry("GET", endpoint, params=params) or {}
            all_issues.extend(page.get('issues') or [])

            total = page.get('total') or 0
            logger.debug(f"Retrieved {len(all_issues)}/{total} issues")

            start_at += PAGE_SIZE
            if start_at >= total:
                break

        logger.info(f"Retrieved {len(all_issues)} total issues for sprint {sprint_id}")
        return all_issues

    async def _resolve_account_id(self, email: str) -> str:
        """Look up a user's accountId by e-mail (cached in the metadata store)."""

        async def lookup() -> str:
            users = await self._request_with_retry(
                "GET", f"{CORE_API}/user/search", params={'query': email}
            ) or []
            for user in users:
                if (user.get('emailAddress') or '').lower() == email.lower():
                    return user['accountId']
            # A lone result with a hidden e-mail (Jira privacy settings) is the user
            if len(users) == 1 and not users[0].get('emailAddress') and users[0].get('accountId'):
                return users[0]['accountId']
            raise JiraError.user_not_found(email)

        return await self.caches.metadata.get_or_set(CacheKeys.user_by_email(email), lookup)

    async def create_issue(
        self,
        project: str,
        summary: str,
        issue_type: str,
        description: Optional[str] = None,
        assignee: Optional[str] = None,
        priority: Optional[str] = None
    ) -> Dict[str, str]:
        """
        Create a Jira issue.

        Args:
            project: Project key (e.g., "PROJ")
            summary: Issue title
            issue_type: Bug, Task, Story, Epic or Sub-task
            description: Plain text description
            assignee: Assignee e-mail address
            priority: Priority name

        Returns:
            {"issueKey": ..., "browseUrl": ...}

        Raises:
            JiraError: Assignee e-mail does not match a Jira user
            ApiError: API request failed
        """
        fields: Dict[str, Any] = {
            'project': {'key': project},
            'summary': summary,
            'issuetype': {'name': issue_type},
        }
        if description:
            fields['description'] = to_document(description)
        if priority:
            fields['priority'] = {'name': priority}
        if assignee:
            fields['assignee'] = {'id': await self._resolve_account_id(assignee)}

        data = await self._request_with_retry("POST", f"{CORE_API}/issue", json={'fields': fields})
        issue_key = data['key']
        logger.info(f"Issue created: {issue_key}")

        return {'issueKey': issue_key, 'browseUrl': self.browse_url(issue_key)}

    async def update_issue(self, issue_key: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update fields of an existing issue.

        A string description is converted to an Atlassian document and an
        ``assignee.emailAddress`` is resolved to an account ID. Cached copies
        of the issue, sprint issue lists and standup reports are invalidated.

        Args:
            issue_key: Issue key (e.g., "PROJ-123")
            fields: Fields to update

        Returns:
            Confirmation with the issue key and the updated field names

        Raises:
            JiraError: Issue does not exist (404)
            ApiError: API request failed
        """
        payload = dict(fields)
        if isinstance(payload.get('description'), str):
            payload['description'] = to_document(payload['description'])

        assignee_email = (payload.get('assignee') or {}).get('emailAddress')
        if assignee_email:
            payload['assignee'] = {'id': await self._resolve_account_id(assignee_email)}

        try:
            await self._request_with_retry("PUT", f"{CORE_API}/issue/{issue_key}", json={'fields': payload})
        except ApiError as e:
            if e.status_code == 404:
                raise JiraError.issue_not_found(issue_key) from e
            raise

        self.invalidate_issue(issue_key)
        logger.info(f"Issue updated: {issue_key}")

        return {'issueKey': issue_key, 'updated': True, 'fields': sorted(fields.keys())}

    def invalidate_issue(self, issue_key: str) -> None:
        """Drop every cached value that may embed a stale copy of an issue."""
        issue_store = self.caches.issue
        report_store = self.caches.report

        issue_store.delete(CacheKeys.issue(issue_key))
        issue_store.invalidate_pattern(f"{issue_store.prefix}:{CacheKeys.sprint_issues('*')}")
        report_store.invalidate_pattern(f"{report_store.prefix}:standup:*")

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
        logger.info("Jira client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
