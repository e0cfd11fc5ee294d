"""
Confluence REST client for notebridge MCP Server.

Search results are trimmed to page metadata with pagination info; full
bodies are fetched per page or in small bulk batches.
"""

import asyncio
from typing import Any

import httpx
import structlog

from .config import ConfluenceSettings
from .models import (
    BulkContentResponse,
    BulkPage,
    ConfluencePageMetadata,
    PaginatedSearchResponse,
    PaginationMetadata,
)
from .remote import RemoteClient

logger = structlog.get_logger(__name__)

MAX_BULK_PAGES = 10
RECENT_PAGES_CQL = "order by lastmodified desc"


def escape_cql(value: str) -> str:
    """Escape a value for use inside a double-quoted CQL string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_cql(query: str, space_key: str | None = None) -> str:
    """Build a CQL page query; a blank query lists recently modified pages."""
    query = (query or "").strip()
    cql = "type=page"
    if query and not query.startswith("order by"):
        cql += f' AND text ~ "{escape_cql(query)}"'
    if space_key:
        cql += f' AND space="{escape_cql(space_key)}"'
    if not query or query.startswith("order by"):
        cql += f" {query or RECENT_PAGES_CQL}"
    return cql


def storage_body(content: str) -> dict[str, Any]:
    return {"storage": {"value": content, "representation": "storage"}}


class ConfluenceClient(RemoteClient):
    """Thin client for the Confluence REST API (Basic email:token auth)."""

    service = "Confluence"

    def __init__(
        self,
        base_url: str,
        email: str,
        token: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url,
            auth=(email, token),
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: ConfluenceSettings, **kwargs: Any) -> "ConfluenceClient":
        return cls(
            settings.base_url,
            settings.email,
            settings.token.get_secret_value(),
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            **kwargs,
        )

    def api_base_url(self) -> str:
        return f"{self.base_url}/rest/api"

    async def search_pages(
        self,
        query: str,
        space_key: str | None = None,
        start: int = 0,
        limit: int = 25,
    ) -> PaginatedSearchResponse:
        """Search pages and return compact metadata with pagination info."""
        data = await self.request(
            "GET", "/content/search", "searching pages",
            params={"cql": build_cql(query, space_key), "expand": "space,version", "start": start, "limit": limit},
        )

        results = []
        for page in data.get("results", []):
            space = page.get("space") or {}
            links = page.get("_links") or {
                "webui": f"{self.base_url}/wiki/spaces/{space.get('key', '')}/pages/{page['id']}"
            }
            results.append(ConfluencePageMetadata(
                id=str(page["id"]),
                title=page.get("title", ""),
                space=space,
                links=links,
                excerpt=page.get("excerpt") or "",
                last_modified=(page.get("version") or {}).get("when"),
            ))

        has_next = bool((data.get("_links") or {}).get("next"))
        return PaginatedSearchResponse(
            results=results,
            metadata=PaginationMetadata(
                start=data.get("start", start),
                limit=data.get("limit", limit),
                total_size=data.get("size", len(results)),
                has_next=has_next,
                next_page_start=start + limit if has_next else None,
            ),
        )

    async def get_page(self, page_id: str) -> dict[str, Any]:
        return await self.request(
            "GET", f"/content/{page_id}", f"getting page {page_id}",
            params={"expand": "body.storage,version,ancestors,space"},
        )

    async def get_page_content(self, page_id: str) -> dict[str, Any]:
        """Full page including its storage-format body."""
        return await self.get_page(page_id)

    async def bulk_get_pages(self, page_ids: list[str]) -> BulkContentResponse:
        """Fetch up to MAX_BULK_PAGES page bodies; failures are reported per page.

        Raises:
            ValueError: If more than MAX_BULK_PAGES ids are requested
        """
        if len(page_ids) > MAX_BULK_PAGES:
            raise ValueError(f"Cannot fetch more than {MAX_BULK_PAGES} pages at once")

        results = await asyncio.gather(*(self.get_page(page_id) for page_id in page_ids), return_exceptions=True)

        pages: list[BulkPage] = []
        for page_id, result in zip(page_ids, results):
            if isinstance(result, Exception):
                logger.warning("bulk_page_failed", page_id=page_id, error=str(result))
                pages.append(BulkPage(id=page_id, error=str(result)))
            else:
                body = ((result.get("body") or {}).get("storage") or {}).get("value", "")
                pages.append(BulkPage(id=page_id, content=body))

        error_count = sum(1 for page in pages if page.error is not None)
        return BulkContentResponse(
            pages=pages,
            metadata={"successCount": len(pages) - error_count, "errorCount": error_count},
        )

    async def create_page(
        self,
        space_key: str,
        title: str,
        content: str,
        parent_id: str | None = None,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "page",
            "title": title,
            "space": {"key": space_key},
            "body": storage_body(content),
        }
        if parent_id:
            data["ancestors"] = [{"id": parent_id}]
        return await self.request("POST", "/content", f"creating page in space {space_key}", json=data)

    async def update_page(self, page_id: str, title: str, content: str, version: int) -> dict[str, Any]:
        data = {
            "type": "page",
            "title": title,
            "body": storage_body(content),
            "version": {"number": version + 1},
        }
        return await self.request("PUT", f"/content/{page_id}", f"updating page {page_id}", json=data)

    async def get_comments(self, page_id: str) -> list[dict[str, Any]]:
        data = await self.request(
            "GET", f"/content/{page_id}/child/comment", f"getting comments for page {page_id}",
            params={"expand": "body.storage,version"},
        )
        return data.get("results", [])

    async def add_comment(self, page_id: str, content: str) -> dict[str, Any]:
        data = {
            "type": "comment",
            "container": {"id": page_id, "type": "page"},
            "body": storage_body(content),
        }
        return await self.request("POST", "/content", f"adding comment to page {page_id}", json=data)

    async def get_spaces(self) -> list[dict[str, Any]]:
        data = await self.request(
            "GET", "/space", "getting spaces",
            params={"type": "global", "status": "current", "expand": "description"},
        )
        return data.get("results", [])
