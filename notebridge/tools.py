"""
MCP Tools module for notebridge MCP Server.

Contains the tool and resource handlers and the server factory. All state
(settings, vault, cache, remote clients) lives on a NoteBridgeServer
instance, so several servers can run side by side.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from mcp.server import Server
from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ErrorData,
    Resource,
    TextContent,
    Tool,
)
from pydantic import BaseModel, ValidationError

from .cache import ResultCache
from .config import Settings
from .confluence import MAX_BULK_PAGES, RECENT_PAGES_CQL, ConfluenceClient
from .jira import JiraClient
from .models import (
    ConfluenceBulkGetArgs,
    ConfluenceCreatePageArgs,
    ConfluenceGetPageArgs,
    ConfluenceSearchArgs,
    GetNoteArgs,
    JiraCreateIssueArgs,
    JiraGetIssueArgs,
    JiraSearchArgs,
    ListTagsArgs,
    SearchNotesArgs,
    SearchOptions,
)
from .search import get_vault_stats, list_tags, search_notes
from .utils import InvalidQueryError, PathValidationError
from .vault import Vault

logger = structlog.get_logger(__name__)

ArgsT = TypeVar("ArgsT", bound=BaseModel)
ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]

SERVER_NAME = "notebridge"
CACHEABLE_TOOLS = {"search_notes", "get_note", "list_tags"}

VAULT_STATS_URI = "obsidian://vault-stats"
JIRA_ISSUES_URI = "jira://issues"
CONFLUENCE_PAGES_URI = "confluence://pages"


# The SDK's call_tool wrapper reports a failed tool as isError text only,
# so the error kind is carried in the message prefix.
ERROR_LABELS = {
    INVALID_PARAMS: "Invalid params",
    INVALID_REQUEST: "Invalid request",
    METHOD_NOT_FOUND: "Method not found",
    INTERNAL_ERROR: "Internal error",
}


def mcp_error(code: int, message: str) -> McpError:
    """Build an McpError whose message starts with a stable error-kind label."""
    return McpError(ErrorData(code=code, message=f"{ERROR_LABELS[code]}: {message}"))


def parse_args(model: type[ArgsT], arguments: dict[str, Any] | None) -> ArgsT:
    """Validate tool arguments against a pydantic model.

    Raises:
        McpError: INVALID_PARAMS when arguments are missing or malformed
    """
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise mcp_error(INVALID_PARAMS, "Arguments must be an object")
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or 'arguments'}: {err['msg']}" for err in e.errors()
        )
        raise mcp_error(INVALID_PARAMS, f"Invalid arguments: {problems}") from e


def to_json(payload: Any) -> str:
    """Serialize models (or lists/dicts of models) to indented JSON."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    elif isinstance(payload, list):
        payload = [
            item.model_dump(mode="json", by_alias=True, exclude_none=True) if isinstance(item, BaseModel) else item
            for item in payload
        ]
    return json.dumps(payload, indent=2, default=str)


VAULT_TOOLS = [
    Tool(
        name="search_notes",
        description="Search notes by content, tags, or path. Returns ranked matches; content matches include an excerpt.",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query (case-insensitive substring)"},
                "includeTags": {"type": "boolean", "description": "Include tag matches"},
                "includePath": {"type": "boolean", "description": "Include path/title matches"},
                "excludeFolders": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Folders to exclude from search",
                },
                "limit": {"type": "number", "description": "Maximum number of results"},
                "regex": {"type": "boolean", "description": "Treat the query as a regular expression"},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="get_note",
        description="Get note content and metadata",
        inputSchema={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the note (without .md extension)"},
            },
            "required": ["path"],
        },
    ),
    Tool(
        name="list_tags",
        description="Get all tags used in the vault with usage counts",
        inputSchema={
            "type": "object",
            "properties": {
                "minCount": {
                    "type": "number",
                    "description": "Minimum number of times a tag must be used to be included",
                },
            },
        },
    ),
]

JIRA_TOOLS = [
    Tool(
        name="jira_search_issues",
        description="Search for Jira issues using JQL",
        inputSchema={
            "type": "object",
            "properties": {
                "jql": {"type": "string", "description": "JQL search query"},
                "maxResults": {"type": "number", "description": "Maximum number of results to return (default: 50)"},
            },
            "required": ["jql"],
        },
    ),
    Tool(
        name="jira_get_issue",
        description="Get a single Jira issue by key or id",
        inputSchema={
            "type": "object",
            "properties": {
                "issueKey": {"type": "string", "description": "Issue key (e.g. PROJ-123) or id"},
            },
            "required": ["issueKey"],
        },
    ),
    Tool(
        name="jira_create_issue",
        description="Create a new Jira issue",
        inputSchema={
            "type": "object",
            "properties": {
                "projectKey": {"type": "string", "description": "Project key"},
                "issueType": {"type": "string", "description": 'Issue type (e.g., "Bug", "Task")'},
                "summary": {"type": "string", "description": "Issue summary"},
                "description": {"type": "string", "description": "Issue description"},
            },
            "required": ["projectKey", "issueType", "summary"],
        },
    ),
]

CONFLUENCE_TOOLS = [
    Tool(
        name="confluence_search_pages",
        description="Search for Confluence pages with compact results (default limit: 25)",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query"},
                "spaceKey": {"type": "string", "description": "Space key to search in"},
                "start": {"type": "number", "description": "Starting index for pagination (default: 0)"},
                "limit": {"type": "number", "description": "Maximum number of results to return (default: 25)"},
            },
            "required": ["query"],
        },
    ),
    Tool(
        name="confluence_get_page_content",
        description="Get full content for a specific Confluence page",
        inputSchema={
            "type": "object",
            "properties": {
                "pageId": {"type": "string", "description": "ID of the page to fetch"},
            },
            "required": ["pageId"],
        },
    ),
    Tool(
        name="confluence_bulk_get_pages",
        description=f"Get content for multiple Confluence pages (max {MAX_BULK_PAGES})",
        inputSchema={
            "type": "object",
            "properties": {
                "pageIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of page IDs to fetch",
                    "maxItems": MAX_BULK_PAGES,
                },
            },
            "required": ["pageIds"],
        },
    ),
    Tool(
        name="confluence_create_page",
        description="Create a new Confluence page",
        inputSchema={
            "type": "object",
            "properties": {
                "spaceKey": {"type": "string", "description": "Space key"},
                "title": {"type": "string", "description": "Page title"},
                "content": {"type": "string", "description": "Page content in storage format"},
                "parentId": {"type": "string", "description": "Parent page ID"},
            },
            "required": ["spaceKey", "title", "content"],
        },
    ),
]


class NoteBridgeServer:
    """Tool surface over a vault and, when configured, Jira and Confluence."""

    def __init__(
        self,
        settings: Settings,
        *,
        jira: JiraClient | None = None,
        confluence: ConfluenceClient | None = None,
    ):
        self.settings = settings
        self.vault = Vault(settings.vault)
        self.cache = ResultCache(settings.vault.cache_ttl, enabled=settings.vault.cache_enabled)

        if jira is None and settings.jira.configured:
            jira = JiraClient.from_settings(settings.jira)
        if confluence is None and settings.confluence.configured:
            confluence = ConfluenceClient.from_settings(settings.confluence)
        self.jira = jira
        self.confluence = confluence

        self._handlers: dict[str, ToolHandler] = {
            "search_notes": self._search_notes,
            "get_note": self._get_note,
            "list_tags": self._list_tags,
        }
        if self.jira is not None:
            self._handlers.update({
                "jira_search_issues": self._jira_search_issues,
                "jira_get_issue": self._jira_get_issue,
                "jira_create_issue": self._jira_create_issue,
            })
        if self.confluence is not None:
            self._handlers.update({
                "confluence_search_pages": self._confluence_search_pages,
                "confluence_get_page_content": self._confluence_get_page_content,
                "confluence_bulk_get_pages": self._confluence_bulk_get_pages,
                "confluence_create_page": self._confluence_create_page,
            })

        self.server = self._create_server()

    # ============== Registration ==============

    def _create_server(self) -> Server:
        server = Server(SERVER_NAME)

        @server.list_tools()
        async def handle_list_tools() -> list[Tool]:
            return self.list_tools()

        @server.call_tool()
        async def handle_call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            return await self.handle_tool_call(name, arguments)

        @server.list_resources()
        async def handle_list_resources() -> list[Resource]:
            return self.list_resources()

        @server.read_resource()
        async def handle_read_resource(uri) -> str:
            return await self.read_resource(str(uri))

        return server

    def list_tools(self) -> list[Tool]:
        tools = list(VAULT_TOOLS)
        if self.jira is not None:
            tools.extend(JIRA_TOOLS)
        if self.confluence is not None:
            tools.extend(CONFLUENCE_TOOLS)
        return tools

    # ============== Dispatch ==============

    async def handle_tool_call(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Run a tool and return its JSON payload as one text block.

        Raises:
            McpError: METHOD_NOT_FOUND for unknown tools, INVALID_PARAMS for bad
                arguments or missing notes, INTERNAL_ERROR for anything else
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise mcp_error(METHOD_NOT_FOUND, f"Unknown tool: {name}")

        try:
            if name in CACHEABLE_TOOLS:
                text = await self.cache.get_or_load(name, arguments, lambda: handler(arguments))
            else:
                text = await handler(arguments)
        except McpError:
            raise
        except (InvalidQueryError, PathValidationError) as e:
            raise mcp_error(INVALID_PARAMS, str(e)) from e
        except Exception as e:
            logger.exception("tool_failed", tool=name, error=str(e))
            raise mcp_error(INTERNAL_ERROR, str(e) or type(e).__name__) from e

        return [TextContent(type="text", text=text)]

    # ============== Vault Tools ==============

    async def _search_notes(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(SearchNotesArgs, arguments)
        results = await search_notes(
            self.vault,
            args.query,
            SearchOptions(
                include_tags=args.include_tags,
                include_path=args.include_path,
                exclude_folders=args.exclude_folders,
                limit=args.limit,
                regex=args.regex,
            ),
        )
        return to_json(results)

    async def _get_note(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(GetNoteArgs, arguments)
        note = await self.vault.get_note(args.path)
        if note is None:
            raise mcp_error(INVALID_PARAMS, f"Note not found: {args.path}")
        return to_json(note)

    async def _list_tags(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(ListTagsArgs, arguments)
        tags = await list_tags(self.vault)
        return to_json([t for t in tags if t.count >= args.min_count])

    # ============== Jira Tools ==============

    async def _jira_search_issues(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(JiraSearchArgs, arguments)
        return to_json(await self.jira.search_issues(args.jql, args.max_results))

    async def _jira_get_issue(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(JiraGetIssueArgs, arguments)
        return to_json(await self.jira.get_issue(args.issue_key))

    async def _jira_create_issue(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(JiraCreateIssueArgs, arguments)
        issue = await self.jira.create_issue(args.project_key, args.issue_type, args.summary, args.description)
        return to_json(issue)

    # ============== Confluence Tools ==============

    async def _confluence_search_pages(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(ConfluenceSearchArgs, arguments)
        query = args.query.strip()
        if not query:
            raise mcp_error(INVALID_PARAMS, "Search query cannot be empty")
        return to_json(await self.confluence.search_pages(query, args.space_key, args.start, args.limit))

    async def _confluence_get_page_content(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(ConfluenceGetPageArgs, arguments)
        return to_json(await self.confluence.get_page_content(args.page_id))

    async def _confluence_bulk_get_pages(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(ConfluenceBulkGetArgs, arguments)
        if len(args.page_ids) > MAX_BULK_PAGES:
            raise mcp_error(INVALID_PARAMS, f"Cannot fetch more than {MAX_BULK_PAGES} pages at once")
        return to_json(await self.confluence.bulk_get_pages(args.page_ids))

    async def _confluence_create_page(self, arguments: dict[str, Any] | None) -> str:
        args = parse_args(ConfluenceCreatePageArgs, arguments)
        page = await self.confluence.create_page(args.space_key, args.title, args.content, args.parent_id)
        return to_json(page)

    # ============== Resources ==============

    def list_resources(self) -> list[Resource]:
        resources = [
            Resource(
                uri=VAULT_STATS_URI,
                name="Vault Statistics",
                description="Basic statistics about the Obsidian vault",
                mimeType="application/json",
            ),
        ]
        if self.jira is not None:
            resources.append(Resource(
                uri=JIRA_ISSUES_URI,
                name="Jira Issues",
                description="Most recently created Jira issues",
                mimeType="application/json",
            ))
        if self.confluence is not None:
            resources.append(Resource(
                uri=CONFLUENCE_PAGES_URI,
                name="Confluence Pages",
                description="Most recently modified Confluence pages",
                mimeType="application/json",
            ))
        return resources

    async def read_resource(self, uri: str) -> str:
        """Read a resource.

        Raises:
            McpError: INVALID_REQUEST for unknown or unavailable resources
        """
        if uri == VAULT_STATS_URI:
            return to_json(await get_vault_stats(self.vault))
        if uri == JIRA_ISSUES_URI and self.jira is not None:
            return to_json(await self.jira.search_issues("order by created DESC", 10))
        if uri == CONFLUENCE_PAGES_URI and self.confluence is not None:
            return to_json(await self.confluence.search_pages(RECENT_PAGES_CQL))

        raise mcp_error(INVALID_REQUEST, f"Unknown resource: {uri}")

    async def aclose(self) -> None:
        """Close remote clients."""
        if self.jira is not None:
            await self.jira.aclose()
        if self.confluence is not None:
            await self.confluence.aclose()
