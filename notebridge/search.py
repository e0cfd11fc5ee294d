"""
Search and query functions for notebridge MCP Server.

Contains the search engine, tag aggregation and vault statistics. Every
call walks the vault again; there is no persistent index.
"""

import re

import structlog

from .models import Note, SearchOptions, SearchResult, TagCount
from .utils import InvalidQueryError
from .vault import Vault

logger = structlog.get_logger(__name__)

EXCERPT_CONTEXT = 40

SCORE_CONTENT = 1
SCORE_TAG = 2
SCORE_TITLE = 3


def compile_query(query: str, regex: bool = False) -> re.Pattern[str]:
    """Compile a case-insensitive pattern for a search query.

    Raises:
        InvalidQueryError: If the query is blank or is not a valid regex
    """
    if not query or not query.strip():
        raise InvalidQueryError("Search query cannot be empty")
    try:
        return re.compile(query if regex else re.escape(query), re.IGNORECASE)
    except re.error as e:
        raise InvalidQueryError(f"Invalid search pattern '{query}': {e}") from e


def make_excerpt(content: str, match: re.Match[str]) -> str:
    """Context around a match, EXCERPT_CONTEXT characters on each side."""
    start = max(0, match.start() - EXCERPT_CONTEXT)
    end = min(len(content), match.end() + EXCERPT_CONTEXT)
    return "..." + content[start:end] + "..."


def match_note(note: Note, pattern: re.Pattern[str], options: SearchOptions) -> list[SearchResult]:
    """Evaluate one note: content, then tags, then title/path."""
    results: list[SearchResult] = []

    content_match = pattern.search(note.content)
    if content_match:
        results.append(SearchResult(
            note=note,
            match_type="content",
            score=SCORE_CONTENT,
            excerpt=make_excerpt(note.content, content_match),
        ))

    if options.include_tags and any(pattern.search(tag) for tag in note.metadata.tags or []):
        results.append(SearchResult(note=note, match_type="tag", score=SCORE_TAG))

    if options.include_path and (pattern.search(note.path) or pattern.search(note.metadata.title)):
        results.append(SearchResult(note=note, match_type="title", score=SCORE_TITLE))

    return results


async def search_notes(vault: Vault, query: str, options: SearchOptions | None = None) -> list[SearchResult]:
    """Search notes by content, tags and path/title.

    The limit is checked before each note is visited, so the final count can
    exceed it by the extra matches of the last note. Results are sorted by
    score, highest first; ties keep visiting order.

    Raises:
        InvalidQueryError: If the query is blank or an invalid regex
    """
    options = options or SearchOptions()
    pattern = compile_query(query, options.regex)

    results: list[SearchResult] = []
    seen: set[str] = set()
    visited = 0

    async for note_file in vault.walk(options.exclude_folders):
        if options.limit is not None and len(results) >= options.limit:
            break

        note_path = vault.relative_note_path(note_file)
        if note_path in seen:
            continue

        note = await vault.load(note_path)
        if note is None:
            continue
        seen.add(note_path)
        visited += 1

        results.extend(match_note(note, pattern, options))

    results.sort(key=lambda r: r.score, reverse=True)
    logger.debug("search_completed", query=query, notes_visited=visited, results=len(results))
    return results


async def list_tags(vault: Vault) -> list[TagCount]:
    """Count every tag occurrence across the whole vault.

    Sorted by count descending; ties keep first-seen order.
    """
    counts: dict[str, int] = {}

    async for note_file in vault.walk():
        note = await vault.load(vault.relative_note_path(note_file))
        if note is None or not note.metadata.tags:
            continue
        for tag in note.metadata.tags:
            counts[tag] = counts.get(tag, 0) + 1

    tags = [TagCount(tag=tag, count=count) for tag, count in counts.items()]
    tags.sort(key=lambda t: t.count, reverse=True)
    return tags


async def get_vault_stats(vault: Vault, top: int = 20) -> dict:
    """Get statistics about the vault."""
    stats: dict = {
        "total_notes": 0,
        "total_links": 0,
        "total_tags": 0,
        "by_folder": {},
        "top_tags": [],
    }
    tag_counts: dict[str, int] = {}

    async for note_file in vault.walk():
        note = await vault.load(vault.relative_note_path(note_file))
        if note is None:
            continue

        stats["total_notes"] += 1
        stats["total_links"] += len(note.links.to)

        parts = note.path.split("/")
        folder = parts[0] if len(parts) > 1 else "root"
        stats["by_folder"][folder] = stats["by_folder"].get(folder, 0) + 1

        for tag in note.metadata.tags or []:
            tag_counts[tag] = tag_counts.get(tag, 0) + 1

    stats["total_tags"] = len(tag_counts)
    stats["top_tags"] = [
        {"tag": tag, "count": count}
        for tag, count in sorted(tag_counts.items(), key=lambda x: x[1], reverse=True)[:top]
    ]
    return stats
