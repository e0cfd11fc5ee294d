"""
Jira Cloud REST client for notebridge MCP Server.
"""

from typing import Any

import httpx

from .config import JiraSettings
from .remote import RemoteClient

SEARCH_FIELDS = [
    "summary",
    "description",
    "status",
    "issuetype",
    "priority",
    "assignee",
    "reporter",
    "created",
    "updated",
    "project",
]


def to_adf(text: str) -> dict[str, Any]:
    """Wrap plain text in an Atlassian Document Format paragraph."""
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


class JiraClient(RemoteClient):
    """Thin client for the Jira REST API v3 (Bearer token auth)."""

    service = "Jira"

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: JiraSettings, **kwargs: Any) -> "JiraClient":
        return cls(
            settings.base_url,
            settings.token.get_secret_value(),
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            **kwargs,
        )

    def api_base_url(self) -> str:
        return f"{self.base_url}/rest/api/3"

    # Issue operations

    async def search_issues(self, jql: str, max_results: int = 50) -> dict[str, Any]:
        return await self.request(
            "POST", "/search", "searching issues",
            json={"jql": jql, "maxResults": max_results, "fields": SEARCH_FIELDS},
        )

    async def get_issue(self, issue_key: str) -> dict[str, Any]:
        return await self.request("GET", f"/issue/{issue_key}", f"getting issue {issue_key}")

    async def create_issue(
        self,
        project_key: str,
        issue_type: str,
        summary: str,
        description: str | None = None,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "issuetype": {"name": issue_type},
            "summary": summary,
        }
        if description:
            fields["description"] = to_adf(description)
        return await self.request(
            "POST", "/issue", f"creating issue in project {project_key}", json={"fields": fields},
        )

    async def update_issue(self, issue_key: str, fields: dict[str, Any]) -> None:
        await self.request("PUT", f"/issue/{issue_key}", f"updating issue {issue_key}", json={"fields": fields})

    # Comments

    async def get_comments(self, issue_key: str) -> list[dict[str, Any]]:
        data = await self.request("GET", f"/issue/{issue_key}/comment", f"getting comments for {issue_key}")
        return data.get("comments", [])

    async def add_comment(self, issue_key: str, body: str) -> dict[str, Any]:
        return await self.request(
            "POST", f"/issue/{issue_key}/comment", f"commenting on {issue_key}", json={"body": to_adf(body)},
        )

    # Transitions

    async def get_transitions(self, issue_key: str) -> list[dict[str, Any]]:
        data = await self.request("GET", f"/issue/{issue_key}/transitions", f"getting transitions for {issue_key}")
        return data.get("transitions", [])

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        await self.request(
            "POST", f"/issue/{issue_key}/transitions", f"transitioning {issue_key}",
            json={"transition": {"id": transition_id}},
        )
