"""
Pydantic models for notebridge MCP Server.

Contains data models for notes, search results, tag counts, tool arguments
and the Confluence response shapes returned by the remote client.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class NoteMetadata(BaseModel):
    """Front matter of a note. Unknown keys are preserved as extra fields."""

    model_config = ConfigDict(extra="allow")

    title: str
    tags: list[str] | None = None
    aliases: list[str] | None = None
    created: str | None = None
    modified: str | None = None


class NoteLinks(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: list[str] = Field(default_factory=list)
    from_: list[str] = Field(default_factory=list, alias="from")


class Note(BaseModel):
    """A single Markdown document loaded from the vault."""

    path: str
    name: str
    content: str
    metadata: NoteMetadata
    links: NoteLinks = Field(default_factory=NoteLinks)


MatchType = Literal["content", "tag", "title"]


class SearchResult(BaseModel):
    """Model for a search result."""

    model_config = ConfigDict(populate_by_name=True)

    note: Note
    match_type: MatchType = Field(alias="matchType")
    score: int
    excerpt: str | None = None


class TagCount(BaseModel):
    tag: str
    count: int = Field(ge=0)


class SearchOptions(BaseModel):
    """Options accepted by the search engine."""

    include_tags: bool = False
    include_path: bool = False
    exclude_folders: list[str] = Field(default_factory=list)
    limit: int | None = None
    regex: bool = False


# ============== Tool Arguments ==============

class SearchNotesArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    include_tags: bool = Field(default=False, alias="includeTags")
    include_path: bool = Field(default=False, alias="includePath")
    exclude_folders: list[str] = Field(default_factory=list, alias="excludeFolders")
    limit: int | None = Field(default=None, gt=0)
    regex: bool = False


class GetNoteArgs(BaseModel):
    path: str = Field(min_length=1)


class ListTagsArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_count: int = Field(default=0, ge=0, alias="minCount")


class JiraSearchArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    jql: str
    max_results: int = Field(default=50, gt=0, le=100, alias="maxResults")


class JiraGetIssueArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    issue_key: str = Field(min_length=1, alias="issueKey")


class JiraCreateIssueArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_key: str = Field(alias="projectKey")
    issue_type: str = Field(alias="issueType")
    summary: str
    description: str | None = None


class ConfluenceSearchArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    space_key: str | None = Field(default=None, alias="spaceKey")
    start: int = Field(default=0, ge=0)
    limit: int = Field(default=25, gt=0)


class ConfluenceGetPageArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_id: str = Field(min_length=1, alias="pageId")


class ConfluenceBulkGetArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_ids: list[str] = Field(alias="pageIds")


class ConfluenceCreatePageArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    space_key: str = Field(alias="spaceKey")
    title: str
    content: str
    parent_id: str | None = Field(default=None, alias="parentId")


# ============== Confluence Responses ==============

class ConfluencePageMetadata(BaseModel):
    """Compact page entry returned by the optimized page search."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    space: dict[str, Any]
    links: dict[str, Any] = Field(alias="_links")
    excerpt: str = ""
    last_modified: str | None = Field(default=None, alias="lastModified")


class PaginationMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: int
    limit: int
    total_size: int = Field(alias="totalSize")
    has_next: bool = Field(alias="hasNext")
    next_page_start: int | None = Field(default=None, alias="nextPageStart")


class PaginatedSearchResponse(BaseModel):
    results: list[ConfluencePageMetadata]
    metadata: PaginationMetadata


class BulkPage(BaseModel):
    id: str
    content: str = ""
    error: str | None = None


class BulkContentResponse(BaseModel):
    pages: list[BulkPage]
    metadata: dict[str, int]
