"""
Tests for api/jira_client.py against the in-memory Jira API.

Run with: pytest tests/test_jira_client.py -v
"""

import asyncio
import base64

import httpx
import pytest

from conftest import BASE_URL, make_issue
from api.jira_client import JiraClient, to_document
from utils.cache import CacheKeys
from utils.exceptions import ApiError, ErrorCode, JiraError
from utils.retry import RetryPolicy


class TestActiveSprint:
    """Test active sprint lookup and caching."""

    def test_returns_first_active_sprint(self, jira_client, fake_jira):
        fake_jira.add_sprint(42, 7, "Sprint 42", [])

        sprint = asyncio.run(jira_client.get_active_sprint(42))

        assert sprint.id == 7
        assert sprint.name == "Sprint 42"
        assert sprint.state == "active"
        assert sprint.origin_board_id == 42
        request = fake_jira.requests[0]
        assert request.url.path == "/rest/agile/1.0/board/42/sprint"
        assert request.url.params["state"] == "active"

    def test_sprint_is_cached(self, jira_client, fake_jira):
        fake_jira.add_sprint(42, 7, "Sprint 42", [])

        asyncio.run(jira_client.get_active_sprint(42))
        asyncio.run(jira_client.get_active_sprint(42))

        assert len(fake_jira.requests) == 1

    def test_missing_sprint_is_not_cached(self, jira_client, fake_jira):
        """Test a board without an active sprint is re-checked on every call."""
        fake_jira.sprints[42] = []

        assert asyncio.run(jira_client.get_active_sprint(42)) is None
        assert asyncio.run(jira_client.get_active_sprint(42)) is None
        assert len(fake_jira.requests) == 2

    def test_unknown_board(self, jira_client):
        with pytest.raises(JiraError) as exc_info:
            asyncio.run(jira_client.get_active_sprint(999))

        assert exc_info.value.code == ErrorCode.JIRA_BOARD_NOT_FOUND

    def test_transient_failure_is_retried(self, jira_client, fake_jira, sleep):
        fake_jira.add_sprint(42, 7, "Sprint 42", [])
        fake_jira.failures = [503]

        sprint = asyncio.run(jira_client.get_active_sprint(42))

        assert sprint.id == 7
        assert len(fake_jira.requests) == 2
        assert sleep.delays == [1.0]

    def test_unauthorized(self, jira_client, fake_jira, sleep):
        fake_jira.failures = [401]

        with pytest.raises(ApiError) as exc_info:
            asyncio.run(jira_client.get_active_sprint(42))

        assert exc_info.value.code == ErrorCode.API_UNAUTHORIZED
        assert sleep.delays == []

    def test_forbidden(self, jira_client, fake_jira, sleep):
        fake_jira.failures = [403]

        with pytest.raises(ApiError) as exc_info:
            asyncio.run(jira_client.get_active_sprint(42))

        assert exc_info.value.code == ErrorCode.API_FORBIDDEN
        assert exc_info.value.status_code == 403
        assert sleep.delays == []

    def test_basic_auth_header(self, jira_client, fake_jira):
        fake_jira.add_sprint(42, 7, "Sprint 42", [])

        asyncio.run(jira_client.get_active_sprint(42))

        expected = base64.b64encode(b"bot@example.com:secret-token").decode()
        assert fake_jira.requests[0].headers["authorization"] == f"Basic {expected}"


class TestSprintTickets:
    """Test paginated sprint issue retrieval."""

    def test_page_parameters(self, jira_client, fake_jira):
        fake_jira.add_sprint(42, 7, "Sprint 42", [make_issue("WEB-1")])

        issues = asyncio.run(jira_client.get_sprint_tickets(7))

        assert [issue["key"] for issue in issues] == ["WEB-1"]
        params = fake_jira.requests[0].url.params
        assert params["startAt"] == "0"
        assert params["maxResults"] == "50"
        assert "duedate" in params["fields"].split(",")

    def test_exact_page_boundary(self, jira_client, fake_jira):
        """Test exactly 100 issues need two requests, not three."""
        fake_jira.add_sprint(42, 7, "Sprint 42", [make_issue(f"WEB-{n}") for n in range(100)])

        issues = asyncio.run(jira_client.get_sprint_tickets(7))

        assert len(issues) == 100
        assert len(fake_jira.requests) == 2

    def test_issue_order_is_preserved(self, jira_client, fake_jira):
        fake_jira.add_sprint(42, 7, "Sprint 42", [make_issue(f"WEB-{n}") for n in range(75)])

        issues = asyncio.run(jira_client.get_sprint_tickets(7))

        assert [issue["key"] for issue in issues] == [f"WEB-{n}" for n in range(75)]

    def test_failed_page_caches_nothing(self, jira_config, caches, fake_jira, sleep):
        """Test a failure on page two propagates and leaves no partial list in the cache."""
        fake_jira.add_sprint(42, 7, "Sprint 42", [make_issue(f"WEB-{n}") for n in range(120)])
        broken = {"page_two": True}

        def handler(request):
            if broken["page_two"] and request.url.params.get("startAt") == "50":
                fake_jira.requests.append(request)
                return httpx.Response(500, json={"errorMessages": ["Internal error"]})
            return fake_jira.handler(request)

        client = JiraClient(jira_config, caches, RetryPolicy(), transport=httpx.MockTransport(handler), sleep=sleep)

        with pytest.raises(ApiError):
            asyncio.run(client.get_sprint_tickets(7))

        assert caches.issue.get(CacheKeys.sprint_issues(7)) is None
        assert len(fake_jira.requests_to(r"/sprint/7/issue$")) == 4  # page one + three attempts

        broken["page_two"] = False
        issues = asyncio.run(client.get_sprint_tickets(7))
        assert len(issues) == 120

    def test_list_is_cached(self, jira_client, fake_jira):
        fake_jira.add_sprint(42, 7, "Sprint 42", [make_issue("WEB-1")])

        asyncio.run(jira_client.get_sprint_tickets(7))
        asyncio.run(jira_client.get_sprint_tickets(7))

        assert len(fake_jira.requests) == 1


class TestCreateIssue:
    """Test issue creation."""

    def test_payload_and_result(self, jira_client, fake_jira):
        fake_jira.users["carol@example.com"] = [
            {"accountId": "acc-other", "emailAddress": "caroline@example.com"},
            {"accountId": "acc-carol", "emailAddress": "Carol@example.com"},
        ]

        result = asyncio.run(jira_client.create_issue(
            project="WEB",
            summary="Login fails on Safari",
            issue_type="Bug",
            description="Steps to reproduce",
            assignee="carol@example.com",
            priority="High",
        ))

        assert result == {"issueKey": "WEB-101", "browseUrl": f"{BASE_URL}/browse/WEB-101"}
        fields = fake_jira.last_json(r"/rest/api/3/issue$")["fields"]
        assert fields == {
            "project": {"key": "WEB"},
            "summary": "Login fails on Safari",
            "issuetype": {"name": "Bug"},
            "description": to_document("Steps to reproduce"),
            "priority": {"name": "High"},
            "assignee": {"id": "acc-carol"},
        }

    def test_optional_fields_are_omitted(self, jira_client, fake_jira):
        asyncio.run(jira_client.create_issue("WEB", "Write docs", "Task"))

        fields = fake_jira.last_json(r"/rest/api/3/issue$")["fields"]
        assert set(fields) == {"project", "summary", "issuetype"}

    def test_unknown_assignee(self, jira_client, fake_jira):
        with pytest.raises(JiraError) as exc_info:
            asyncio.run(jira_client.create_issue("WEB", "x", "Task", assignee="ghost@example.com"))

        assert exc_info.value.code == ErrorCode.JIRA_USER_NOT_FOUND
        assert fake_jira.requests_to(r"/rest/api/3/issue$") == []

    def test_loose_search_match_is_not_assigned(self, jira_client, fake_jira):
        fake_jira.users["bob@example.com"] = [{"accountId": "acc-bobby", "emailAddress": "bobby.tables@example.com"}]

        with pytest.raises(JiraError) as exc_info:
            asyncio.run(jira_client.create_issue("WEB", "x", "Task", assignee="bob@example.com"))

        assert exc_info.value.code == ErrorCode.JIRA_USER_NOT_FOUND
        assert fake_jira.requests_to(r"/rest/api/3/issue$") == []

    def test_single_result_with_hidden_email(self, jira_client, fake_jira):
        fake_jira.users["erin@example.com"] = [{"accountId": "acc-erin", "displayName": "Erin"}]

        asyncio.run(jira_client.create_issue("WEB", "x", "Task", assignee="erin@example.com"))

        assert fake_jira.last_json(r"/rest/api/3/issue$")["fields"]["assignee"] == {"id": "acc-erin"}

    def test_account_lookup_is_cached(self, jira_client, fake_jira):
        fake_jira.users["carol@example.com"] = [{"accountId": "acc-carol", "emailAddress": "carol@example.com"}]

        asyncio.run(jira_client.create_issue("WEB", "one", "Task", assignee="carol@example.com"))
        asyncio.run(jira_client.create_issue("WEB", "two", "Task", assignee="carol@example.com"))

        assert len(fake_jira.requests_to(r"/user/search$")) == 1


class TestUpdateIssue:
    """Test issue updates and cache invalidation."""

    def test_converts_description_and_assignee(self, jira_client, fake_jira):
        fake_jira.existing_issues.add("WEB-1")
        fake_jira.users["dave@example.com"] = [{"accountId": "acc-dave", "emailAddress": "dave@example.com"}]

        result = asyncio.run(jira_client.update_issue("WEB-1", {
            "description": "New text",
            "assignee": {"emailAddress": "dave@example.com"},
        }))

        assert result == {"issueKey": "WEB-1", "updated": True, "fields": ["assignee", "description"]}
        fields = fake_jira.last_json(r"/issue/WEB-1$")["fields"]
        assert fields["description"] == to_document("New text")
        assert fields["assignee"] == {"id": "acc-dave"}

    def test_missing_issue(self, jira_client):
        with pytest.raises(JiraError) as exc_info:
            asyncio.run(jira_client.update_issue("WEB-404", {"summary": "x"}))

        assert exc_info.value.code == ErrorCode.JIRA_ISSUE_NOT_FOUND

    def test_update_invalidates_issue_and_report_caches(self, jira_client, fake_jira, caches):
        fake_jira.add_sprint(42, 7, "Sprint 42", [make_issue("WEB-1")])
        asyncio.run(jira_client.get_active_sprint(42))
        asyncio.run(jira_client.get_sprint_tickets(7))
        caches.issue.set(CacheKeys.issue("WEB-1"), {"key": "WEB-1"})
        caches.report.set(CacheKeys.standup_report(42, "WEB"), "cached report")

        asyncio.run(jira_client.update_issue("WEB-1", {"summary": "Renamed"}))

        assert caches.issue.get(CacheKeys.issue("WEB-1")) is None
        assert caches.issue.get(CacheKeys.sprint_issues(7)) is None
        assert caches.report.get(CacheKeys.standup_report(42, "WEB")) is None
        assert caches.sprint.get(CacheKeys.sprint(42)) is not None
