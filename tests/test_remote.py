"""
Tests for the Jira and Confluence clients and their MCP tools.
"""

import base64
import json

import httpx
import pytest


JIRA_URL = "https://jira.example.com"
CONFLUENCE_URL = "https://wiki.example.com"


def recording_transport(responder):
    """MockTransport that records every request before answering it."""
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return responder(request)

    return httpx.MockTransport(handler), requests


def make_jira(responder, **kwargs):
    from notebridge.jira import JiraClient

    transport, requests = recording_transport(responder)
    return JiraClient(JIRA_URL, "jira-token", transport=transport, **kwargs), requests


def make_confluence(responder, **kwargs):
    from notebridge.confluence import ConfluenceClient

    transport, requests = recording_transport(responder)
    return ConfluenceClient(CONFLUENCE_URL, "me@example.com", "wiki-token", transport=transport, **kwargs), requests


SEARCH_RESPONSE = {
    "results": [
        {
            "id": "123",
            "title": "Design",
            "space": {"key": "ENG", "name": "Engineering"},
            "version": {"when": "2024-05-01T10:00:00.000Z"},
            "_links": {"webui": "/spaces/ENG/pages/123"},
        },
        {"id": "456", "title": "Notes", "space": {"key": "ENG"}},
    ],
    "start": 0,
    "limit": 25,
    "size": 2,
    "_links": {"next": "/rest/api/content/search?cursor=abc"},
}


# ============== Tests for JiraClient ==============

class TestJiraClient:
    """Tests for the Jira REST client."""

    async def test_search_issues(self):
        client, requests = make_jira(lambda r: httpx.Response(200, json={"issues": [{"key": "PROJ-1"}]}))

        data = await client.search_issues("project = PROJ", max_results=5)

        assert data == {"issues": [{"key": "PROJ-1"}]}
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{JIRA_URL}/rest/api/3/search"
        assert request.headers["Authorization"] == "Bearer jira-token"
        body = json.loads(request.content)
        assert body["jql"] == "project = PROJ"
        assert body["maxResults"] == 5
        assert "summary" in body["fields"]
        await client.aclose()

    async def test_get_issue(self):
        client, requests = make_jira(lambda r: httpx.Response(200, json={"key": "PROJ-7"}))

        issue = await client.get_issue("PROJ-7")

        assert issue["key"] == "PROJ-7"
        assert requests[0].method == "GET"
        assert requests[0].url.path == "/rest/api/3/issue/PROJ-7"

    async def test_create_issue_wraps_description(self):
        client, requests = make_jira(lambda r: httpx.Response(201, json={"key": "PROJ-9"}))

        await client.create_issue("PROJ", "Bug", "Broken", "It fails")

        fields = json.loads(requests[0].content)["fields"]
        assert fields["project"] == {"key": "PROJ"}
        assert fields["issuetype"] == {"name": "Bug"}
        assert fields["summary"] == "Broken"
        assert fields["description"]["type"] == "doc"
        assert fields["description"]["content"][0]["content"][0]["text"] == "It fails"

    async def test_create_issue_without_description(self):
        client, requests = make_jira(lambda r: httpx.Response(201, json={"key": "PROJ-9"}))

        await client.create_issue("PROJ", "Task", "Chore")

        assert "description" not in json.loads(requests[0].content)["fields"]

    async def test_empty_response_body(self):
        client, requests = make_jira(lambda r: httpx.Response(204))

        assert await client.update_issue("PROJ-1", {"summary": "New"}) is None
        assert requests[0].method == "PUT"

    async def test_comments_and_transitions(self):
        def responder(request):
            if request.url.path.endswith("/comment"):
                return httpx.Response(200, json={"comments": [{"id": "1"}]})
            return httpx.Response(200, json={"transitions": [{"id": "31", "name": "Done"}]})

        client, _ = make_jira(responder)

        assert await client.get_comments("PROJ-1") == [{"id": "1"}]
        assert await client.get_transitions("PROJ-1") == [{"id": "31", "name": "Done"}]

    async def test_add_comment_and_transition(self):
        client, requests = make_jira(lambda r: httpx.Response(200, json={"id": "10"}))

        await client.add_comment("PROJ-1", "Looks good")
        await client.transition_issue("PROJ-1", "31")

        comment = json.loads(requests[0].content)
        assert requests[0].url.path == "/rest/api/3/issue/PROJ-1/comment"
        assert comment["body"]["content"][0]["content"][0]["text"] == "Looks good"
        assert requests[1].url.path == "/rest/api/3/issue/PROJ-1/transitions"
        assert json.loads(requests[1].content) == {"transition": {"id": "31"}}

    async def test_error_response(self):
        from notebridge.remote import RemoteAPIError

        client, _ = make_jira(lambda r: httpx.Response(404, json={"errorMessages": ["Issue does not exist"]}))

        with pytest.raises(RemoteAPIError) as exc_info:
            await client.get_issue("PROJ-404")

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Jira API Error (404) during getting issue PROJ-404: Issue does not exist"

    async def test_error_response_plain_text(self):
        from notebridge.remote import RemoteAPIError

        client, _ = make_jira(lambda r: httpx.Response(502, text="Bad gateway"))

        with pytest.raises(RemoteAPIError, match="Bad gateway"):
            await client.search_issues("x")

    async def test_transport_errors_retried(self):
        attempts = []

        def responder(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"key": "PROJ-1"})

        client, _ = make_jira(responder, max_retries=1)

        assert (await client.get_issue("PROJ-1"))["key"] == "PROJ-1"
        assert len(attempts) == 2

    async def test_transport_errors_raise_after_retries(self):
        def responder(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, requests = make_jira(responder, max_retries=0)

        with pytest.raises(httpx.ConnectError):
            await client.get_issue("PROJ-1")
        assert len(requests) == 1

    def test_from_settings(self):
        from notebridge.config import JiraSettings
        from notebridge.jira import JiraClient

        settings = JiraSettings(_env_file=None, base_url=f"{JIRA_URL}/", token="secret")
        client = JiraClient.from_settings(settings)

        assert client.base_url == JIRA_URL
        assert client.api_base_url() == f"{JIRA_URL}/rest/api/3"


# ============== Tests for ConfluenceClient ==============

class TestBuildCql:
    """Tests for CQL query construction."""

    def test_text_query_with_space(self):
        from notebridge.confluence import build_cql

        assert build_cql("design", "ENG") == 'type=page AND text ~ "design" AND space="ENG"'

    def test_quotes_escaped(self):
        from notebridge.confluence import build_cql

        assert build_cql('say "hi"') == 'type=page AND text ~ "say \\"hi\\""'

    def test_space_key_escaped(self):
        from notebridge.confluence import build_cql

        cql = build_cql("design", 'ENG" OR space="HR')

        assert cql == 'type=page AND text ~ "design" AND space="ENG\\" OR space=\\"HR"'

    def test_blank_query_lists_recent_pages(self):
        from notebridge.confluence import build_cql

        assert build_cql("") == "type=page order by lastmodified desc"

    def test_ordering_clause_after_space_filter(self):
        from notebridge.confluence import build_cql

        assert build_cql("order by created desc", "ENG") == 'type=page AND space="ENG" order by created desc'


class TestConfluenceClient:
    """Tests for the Confluence REST client."""

    async def test_basic_auth(self):
        client, requests = make_confluence(lambda r: httpx.Response(200, json={"results": []}))

        await client.get_spaces()

        expected = base64.b64encode(b"me@example.com:wiki-token").decode()
        assert requests[0].headers["Authorization"] == f"Basic {expected}"
        assert requests[0].url.path == "/rest/api/space"

    async def test_search_pages(self):
        client, requests = make_confluence(lambda r: httpx.Response(200, json=SEARCH_RESPONSE))

        response = await client.search_pages("design", space_key="ENG")

        params = requests[0].url.params
        assert requests[0].url.path == "/rest/api/content/search"
        assert params["cql"] == 'type=page AND text ~ "design" AND space="ENG"'
        assert params["expand"] == "space,version"
        assert params["start"] == "0"
        assert params["limit"] == "25"

        assert [page.id for page in response.results] == ["123", "456"]
        assert response.results[0].last_modified == "2024-05-01T10:00:00.000Z"
        assert response.results[0].links == {"webui": "/spaces/ENG/pages/123"}
        assert response.metadata.total_size == 2
        assert response.metadata.has_next is True
        assert response.metadata.next_page_start == 25

    async def test_search_pages_builds_missing_links(self):
        client, _ = make_confluence(lambda r: httpx.Response(200, json=SEARCH_RESPONSE))

        response = await client.search_pages("design")

        assert response.results[1].links == {"webui": f"{CONFLUENCE_URL}/wiki/spaces/ENG/pages/456"}
        assert response.results[1].last_modified is None

    async def test_search_pages_last_page(self):
        payload = {"results": [], "start": 50, "limit": 25, "size": 0, "_links": {}}
        client, _ = make_confluence(lambda r: httpx.Response(200, json=payload))

        response = await client.search_pages("x", start=50)

        assert response.metadata.has_next is False
        assert response.metadata.next_page_start is None

    async def test_get_page_content(self):
        page = {"id": "123", "body": {"storage": {"value": "<p>Hi</p>"}}}
        client, requests = make_confluence(lambda r: httpx.Response(200, json=page))

        assert await client.get_page_content("123") == page
        assert requests[0].url.params["expand"] == "body.storage,version,ancestors,space"

    async def test_bulk_get_pages_reports_failures_inline(self):
        def responder(request):
            if request.url.path.endswith("/missing"):
                return httpx.Response(404, json={"message": "No content found"})
            return httpx.Response(200, json={"id": "1", "body": {"storage": {"value": "<p>One</p>"}}})

        client, _ = make_confluence(responder)

        response = await client.bulk_get_pages(["1", "missing"])

        assert response.pages[0].content == "<p>One</p>"
        assert response.pages[0].error is None
        assert response.pages[1].id == "missing"
        assert "No content found" in response.pages[1].error
        assert response.metadata == {"successCount": 1, "errorCount": 1}

    async def test_bulk_get_pages_limit(self):
        client, requests = make_confluence(lambda r: httpx.Response(200, json={}))

        with pytest.raises(ValueError):
            await client.bulk_get_pages([str(i) for i in range(11)])
        assert requests == []

    async def test_create_page_with_parent(self):
        client, requests = make_confluence(lambda r: httpx.Response(200, json={"id": "789"}))

        await client.create_page("ENG", "New page", "<p>Body</p>", parent_id="123")

        body = json.loads(requests[0].content)
        assert body["space"] == {"key": "ENG"}
        assert body["body"]["storage"] == {"value": "<p>Body</p>", "representation": "storage"}
        assert body["ancestors"] == [{"id": "123"}]

    async def test_update_page_bumps_version(self):
        client, requests = make_confluence(lambda r: httpx.Response(200, json={"id": "123"}))

        await client.update_page("123", "Title", "<p>v2</p>", version=4)

        assert requests[0].method == "PUT"
        assert json.loads(requests[0].content)["version"] == {"number": 5}

    async def test_page_comments(self):
        def responder(request):
            if request.method == "GET":
                return httpx.Response(200, json={"results": [{"id": "c1"}]})
            return httpx.Response(200, json={"id": "c2"})

        client, requests = make_confluence(responder)

        assert await client.get_comments("123") == [{"id": "c1"}]
        await client.add_comment("123", "<p>Nice</p>")

        assert requests[0].url.path == "/rest/api/content/123/child/comment"
        body = json.loads(requests[1].content)
        assert body["type"] == "comment"
        assert body["container"] == {"id": "123", "type": "page"}


# ============== Tests for remote MCP tools ==============

class TestRemoteTools:
    """Tests for the Jira and Confluence tools on NoteBridgeServer."""

    async def test_remote_tools_listed_when_configured(self, make_app):
        jira, _ = make_jira(lambda r: httpx.Response(200, json={}))
        confluence, _ = make_confluence(lambda r: httpx.Response(200, json={}))
        app = make_app(jira=jira, confluence=confluence)

        names = [tool.name for tool in app.list_tools()]
        resources = [r.name for r in app.list_resources()]

        assert "jira_search_issues" in names
        assert "confluence_bulk_get_pages" in names
        assert resources == ["Vault Statistics", "Jira Issues", "Confluence Pages"]

    async def test_unconfigured_remote_tool(self, app):
        from mcp.shared.exceptions import McpError
        from mcp.types import METHOD_NOT_FOUND

        with pytest.raises(McpError) as exc_info:
            await app.handle_tool_call("jira_search_issues", {"jql": "project = PROJ"})

        assert exc_info.value.error.code == METHOD_NOT_FOUND

    def test_clients_created_from_settings(self, settings):
        from notebridge.config import JiraSettings
        from notebridge.jira import JiraClient
        from notebridge.tools import NoteBridgeServer

        configured = settings.model_copy(update={
            "jira": JiraSettings(_env_file=None, base_url=JIRA_URL, token="secret"),
        })
        app = NoteBridgeServer(configured)

        assert isinstance(app.jira, JiraClient)
        assert app.confluence is None

    async def test_jira_search_tool(self, make_app):
        jira, requests = make_jira(lambda r: httpx.Response(200, json={"issues": [{"key": "PROJ-1"}]}))
        app = make_app(jira=jira)

        result = await app.handle_tool_call("jira_search_issues", {"jql": "project = PROJ"})

        assert json.loads(result[0].text) == {"issues": [{"key": "PROJ-1"}]}
        assert json.loads(requests[0].content)["maxResults"] == 50

    async def test_jira_search_tool_rejects_large_page(self, make_app):
        from mcp.shared.exceptions import McpError
        from mcp.types import INVALID_PARAMS

        jira, requests = make_jira(lambda r: httpx.Response(200, json={}))
        app = make_app(jira=jira)

        with pytest.raises(McpError) as exc_info:
            await app.handle_tool_call("jira_search_issues", {"jql": "x", "maxResults": 500})

        assert exc_info.value.error.code == INVALID_PARAMS
        assert requests == []

    async def test_jira_error_is_internal_error(self, make_app):
        from mcp.shared.exceptions import McpError
        from mcp.types import INTERNAL_ERROR

        jira, _ = make_jira(lambda r: httpx.Response(401, json={"message": "Unauthorized"}))
        app = make_app(jira=jira)

        with pytest.raises(McpError) as exc_info:
            await app.handle_tool_call("jira_get_issue", {"issueKey": "PROJ-1"})

        assert exc_info.value.error.code == INTERNAL_ERROR
        assert "Jira API Error (401)" in exc_info.value.error.message

    async def test_jira_create_issue_tool(self, make_app):
        jira, requests = make_jira(lambda r: httpx.Response(201, json={"key": "PROJ-2"}))
        app = make_app(jira=jira)

        result = await app.handle_tool_call(
            "jira_create_issue", {"projectKey": "PROJ", "issueType": "Task", "summary": "Do it"},
        )

        assert json.loads(result[0].text)["key"] == "PROJ-2"
        assert json.loads(requests[0].content)["fields"]["summary"] == "Do it"

    async def test_confluence_search_tool(self, make_app):
        confluence, _ = make_confluence(lambda r: httpx.Response(200, json=SEARCH_RESPONSE))
        app = make_app(confluence=confluence)

        result = await app.handle_tool_call("confluence_search_pages", {"query": "design", "spaceKey": "ENG"})
        payload = json.loads(result[0].text)

        assert payload["results"][0]["_links"] == {"webui": "/spaces/ENG/pages/123"}
        assert payload["results"][0]["lastModified"] == "2024-05-01T10:00:00.000Z"
        assert payload["metadata"]["hasNext"] is True
        assert payload["metadata"]["nextPageStart"] == 25

    async def test_confluence_search_tool_rejects_blank_query(self, make_app):
        from mcp.shared.exceptions import McpError
        from mcp.types import INVALID_PARAMS

        confluence, requests = make_confluence(lambda r: httpx.Response(200, json=SEARCH_RESPONSE))
        app = make_app(confluence=confluence)

        with pytest.raises(McpError) as exc_info:
            await app.handle_tool_call("confluence_search_pages", {"query": "  "})

        assert exc_info.value.error.code == INVALID_PARAMS
        assert requests == []

    async def test_confluence_bulk_tool_limit(self, make_app):
        from mcp.shared.exceptions import McpError
        from mcp.types import INVALID_PARAMS

        confluence, _ = make_confluence(lambda r: httpx.Response(200, json={}))
        app = make_app(confluence=confluence)

        with pytest.raises(McpError) as exc_info:
            await app.handle_tool_call("confluence_bulk_get_pages", {"pageIds": [str(i) for i in range(11)]})

        assert exc_info.value.error.code == INVALID_PARAMS

    async def test_confluence_bulk_tool(self, make_app):
        page = {"id": "1", "body": {"storage": {"value": "<p>One</p>"}}}
        confluence, _ = make_confluence(lambda r: httpx.Response(200, json=page))
        app = make_app(confluence=confluence)

        result = await app.handle_tool_call("confluence_bulk_get_pages", {"pageIds": ["1", "2"]})
        payload = json.loads(result[0].text)

        assert [p["content"] for p in payload["pages"]] == ["<p>One</p>", "<p>One</p>"]
        assert payload["metadata"] == {"successCount": 2, "errorCount": 0}

    async def test_remote_tools_bypass_cache(self, make_app, settings_factory, temp_vault):
        jira, requests = make_jira(lambda r: httpx.Response(200, json={"issues": []}))
        app = make_app(settings_factory(temp_vault, cache_enabled=True), jira=jira)

        await app.handle_tool_call("jira_search_issues", {"jql": "x"})
        await app.handle_tool_call("jira_search_issues", {"jql": "x"})

        assert len(requests) == 2

    async def test_read_remote_resources(self, make_app):
        jira, jira_requests = make_jira(lambda r: httpx.Response(200, json={"issues": []}))
        confluence, confluence_requests = make_confluence(lambda r: httpx.Response(200, json=SEARCH_RESPONSE))
        app = make_app(jira=jira, confluence=confluence)

        await app.read_resource("jira://issues")
        pages = json.loads(await app.read_resource("confluence://pages"))

        jira_body = json.loads(jira_requests[0].content)
        assert jira_body["jql"] == "order by created DESC"
        assert jira_body["maxResults"] == 10
        assert confluence_requests[0].url.params["cql"] == "type=page order by lastmodified desc"
        assert len(pages["results"]) == 2

    async def test_aclose_closes_clients(self, make_app):
        jira, _ = make_jira(lambda r: httpx.Response(200, json={}))
        app = make_app(jira=jira)

        await app.aclose()

        assert jira._client.is_closed
