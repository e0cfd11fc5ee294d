"""
Vault access for notebridge MCP Server.

Contains the recursive vault walker, the single-note loader and the Vault
class binding both to one configured vault root. Nothing is cached: every
call reads from disk.
"""

import os
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os
import structlog

from .config import VaultSettings
from .models import Note, NoteLinks, NoteMetadata
from .utils import (
    NOTE_SUFFIX,
    extract_links,
    folder_segments,
    is_excluded,
    normalize_string_list,
    parse_frontmatter,
    validate_note_path,
)

logger = structlog.get_logger(__name__)


def _iso_timestamp(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _created_timestamp(stat: os.stat_result) -> float:
    # st_birthtime is missing on most Linux filesystems
    return getattr(stat, "st_birthtime", stat.st_ctime)


async def walk_notes(
    vault_path: Path,
    exclude_folders: list[str] | None = None,
    skip_hidden: bool = False,
) -> AsyncIterator[Path]:
    """Yield absolute paths of all notes under vault_path, depth-first.

    Entries are visited in name order. An entry whose vault-relative path
    contains an excluded folder (matched by whole segments) is skipped and,
    for directories, not descended into. Directory symlinks are not
    followed. Directory read errors propagate.
    """
    exclusions = [segments for segments in map(folder_segments, exclude_folders or []) if segments]

    async def _walk(directory: Path, rel_parts: tuple[str, ...]) -> AsyncIterator[Path]:
        with await aiofiles.os.scandir(directory) as scanner:
            entries = sorted(scanner, key=lambda entry: entry.name)

        for entry in entries:
            if skip_hidden and entry.name.startswith("."):
                continue
            entry_parts = rel_parts + (entry.name,)
            if is_excluded(entry_parts, exclusions):
                continue

            if entry.is_dir(follow_symlinks=False):
                async for note_file in _walk(Path(entry.path), entry_parts):
                    yield note_file
            elif entry.name.endswith(NOTE_SUFFIX):
                yield Path(entry.path)

    async for note_file in _walk(vault_path, ()):
        yield note_file


async def load_note(vault_path: Path, note_path: str) -> Note | None:
    """Load a single note from disk.

    Args:
        vault_path: The vault root
        note_path: Vault-relative path without extension (e.g. "subfolder/note3")

    Returns:
        The Note, or None if the file does not exist. Other I/O errors propagate.
    """
    note_path = note_path.removesuffix(NOTE_SUFFIX)
    full_path = vault_path / f"{note_path}{NOTE_SUFFIX}"

    try:
        async with aiofiles.open(full_path, encoding="utf-8", errors="replace") as f:
            raw = await f.read()
        stat = await aiofiles.os.stat(full_path)
    except FileNotFoundError:
        return None

    frontmatter, content = parse_frontmatter(raw)
    name = PurePosixPath(note_path).name

    title = frontmatter.get("title")
    frontmatter["title"] = str(title) if title not in (None, "") else name
    for key in ("tags", "aliases"):
        if key in frontmatter:
            frontmatter[key] = normalize_string_list(frontmatter[key])
    frontmatter["created"] = _iso_timestamp(_created_timestamp(stat))
    frontmatter["modified"] = _iso_timestamp(stat.st_mtime)

    return Note(
        path=full_path.relative_to(vault_path).as_posix(),
        name=name,
        content=content,
        metadata=NoteMetadata.model_validate(frontmatter),
        links=NoteLinks(to=extract_links(content)),
    )


class Vault:
    """A Markdown vault rooted at a configured directory.

    Holds only immutable configuration, so several instances can coexist.
    """

    def __init__(self, settings: VaultSettings):
        self.settings = settings
        self.vault_path = settings.vault_path

    @property
    def exclude_folders(self) -> list[str]:
        return self.settings.excluded_folders

    def walk(self, extra_excludes: list[str] | None = None) -> AsyncIterator[Path]:
        """Walk the vault with the configured exclusions plus extra_excludes."""
        return walk_notes(
            self.vault_path,
            self.exclude_folders + list(extra_excludes or []),
            skip_hidden=self.settings.skip_hidden,
        )

    def relative_note_path(self, note_file: Path) -> str:
        """Vault-relative POSIX path of a note file, without extension."""
        return note_file.relative_to(self.vault_path).as_posix().removesuffix(NOTE_SUFFIX)

    async def load(self, note_path: str) -> Note | None:
        return await load_note(self.vault_path, note_path)

    async def get_note(self, note_path: str) -> Note | None:
        """Load a note by user-supplied path.

        Raises:
            PathValidationError: If the path is empty or escapes the vault
        """
        note = await self.load(validate_note_path(note_path, self.vault_path))
        if note is None:
            logger.debug("note_not_found", path=note_path)
        return note
