"""
Shared fixtures: fixed clocks, raw Jira issue builders and a fake Jira API
served through httpx.MockTransport.
"""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from api.jira_client import JiraClient
from utils.cache import CacheRegistry
from utils.config import JiraConfig
from utils.retry import RetryPolicy


NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
BASE_URL = "https://example.atlassian.net"


def jira_timestamp(moment: datetime) -> str:
    """Format a datetime the way Jira does (2024-01-15T10:30:00.000+0000)."""
    return moment.strftime("%Y-%m-%dT%H:%M:%S.000+0000")


def make_issue(
    key: str,
    status: str = "To Do",
    days_ago: Optional[float] = 0,
    assignee: Optional[str] = "Alice Smith",
    project: str = "WEB",
    duedate: Optional[str] = None,
    labels: Optional[List[str]] = None,
    comments: Optional[List[Dict[str, Any]]] = None,
    priority: Optional[str] = "Medium",
    summary: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a raw issue as returned by the agile sprint issue endpoint."""
    fields: Dict[str, Any] = {
        "summary": summary if summary is not None else f"Work on {key}",
        "status": {"name": status},
        "assignee": None,
        "updated": jira_timestamp(NOW - timedelta(days=days_ago)) if days_ago is not None else None,
        "created": jira_timestamp(NOW - timedelta(days=30)),
        "duedate": duedate,
        "priority": {"name": priority} if priority else None,
        "labels": labels or [],
        "project": {"key": project},
        "comment": {"comments": comments or []},
    }
    if assignee:
        email = assignee.split()[0].lower() + "@example.com"
        fields["assignee"] = {"displayName": assignee, "emailAddress": email, "accountId": f"acc-{email}"}
    return {"key": key, "fields": fields}


class FakeClock:
    """Monotonic fake for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeJira:
    """
    In-memory Jira API for httpx.MockTransport.

    Attributes:
        sprints: board id -> list of sprint dicts (unknown boards answer 404)
        issues: sprint id -> list of raw issues
        users: e-mail -> list of user search results
        failures: status codes returned (in order) before normal handling resumes
        requests: every request received
    """

    def __init__(self):
        self.sprints: Dict[int, List[Dict[str, Any]]] = {}
        self.issues: Dict[int, List[Dict[str, Any]]] = {}
        self.users: Dict[str, List[Dict[str, Any]]] = {}
        self.existing_issues = set()
        self.failures: List[int] = []
        self.requests: List[httpx.Request] = []
        self.created_key = "WEB-101"

    def add_sprint(self, board_id: int, sprint_id: int, name: str, issues: List[Dict[str, Any]]) -> None:
        self.sprints.setdefault(board_id, []).append({
            "id": sprint_id,
            "name": name,
            "state": "active",
            "startDate": "2024-01-08T09:00:00.000Z",
            "endDate": "2024-01-22T09:00:00.000Z",
            "originBoardId": board_id,
        })
        self.issues[sprint_id] = issues
        self.existing_issues.update(issue["key"] for issue in issues)

    def requests_to(self, pattern: str) -> List[httpx.Request]:
        return [r for r in self.requests if re.search(pattern, r.url.path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if self.failures:
            status = self.failures.pop(0)
            return httpx.Response(status, json={"errorMessages": [f"Injected {status}"]})

        match = re.fullmatch(r"/rest/agile/1\.0/board/(\d+)/sprint", path)
        if match:
            board_id = int(match.group(1))
            if board_id not in self.sprints:
                return httpx.Response(404, json={"errorMessages": ["Board does not exist"]})
            return httpx.Response(200, json={"values": self.sprints[board_id]})

        match = re.fullmatch(r"/rest/agile/1\.0/sprint/(\d+)/issue", path)
        if match:
            issues = self.issues.get(int(match.group(1)), [])
            start_at = int(request.url.params.get("startAt", 0))
            max_results = int(request.url.params.get("maxResults", 50))
            return httpx.Response(200, json={
                "startAt": start_at,
                "maxResults": max_results,
                "total": len(issues),
                "issues": issues[start_at:start_at + max_results],
            })

        if path == "/rest/api/3/user/search":
            return httpx.Response(200, json=self.users.get(request.url.params.get("query"), []))

        if path == "/rest/api/3/issue" and request.method == "POST":
            return httpx.Response(201, json={"id": "10001", "key": self.created_key})

        match = re.fullmatch(r"/rest/api/3/issue/([A-Z]+-\d+)", path)
        if match and request.method == "PUT":
            if match.group(1) not in self.existing_issues:
                return httpx.Response(404, json={"errorMessages": ["Issue does not exist"]})
            return httpx.Response(204)

        return httpx.Response(404, json={"errorMessages": [f"No route for {path}"]})

    def last_json(self, pattern: str) -> Dict[str, Any]:
        return json.loads(self.requests_to(pattern)[-1].content)


class SleepRecorder:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def fake_jira():
    return FakeJira()


@pytest.fixture
def jira_config():
    return JiraConfig(base_url=BASE_URL, email="bot@example.com", api_token="secret-token")


@pytest.fixture
def caches(clock):
    return CacheRegistry(clock=clock)


@pytest.fixture
def jira_client(jira_config, caches, fake_jira, sleep):
    """JiraClient talking to FakeJira without real sleeps between retries."""
    return JiraClient(
        jira_config,
        caches,
        RetryPolicy(),
        transport=httpx.MockTransport(fake_jira.handler),
        sleep=sleep,
    )
