"""
Utility functions and compiled regex patterns for notebridge MCP Server.

Contains front matter and link parsing, folder exclusion helpers,
validation utilities, and pre-compiled patterns.
"""

import re
from pathlib import Path, PurePosixPath
from typing import Any

import structlog
import yaml

logger = structlog.get_logger(__name__)

NOTE_SUFFIX = ".md"

# Pre-compiled regex patterns for performance
FRONTMATTER_PATTERN = re.compile(r'\A---\n(.*?)\n---\n(.*)\Z', re.DOTALL)
WIKILINK_PATTERN = re.compile(r'\[\[(.*?)\]\]')
MARKDOWN_LINK_PATTERN = re.compile(r'\[([^\]\n]+)\]\(([^)\n]+\.md)\)')
FOLDER_SPLIT_PATTERN = re.compile(r'[\\/]+')


# ============== Exceptions ==============

class PathValidationError(Exception):
    """Raised when path validation fails."""
    pass


class InvalidQueryError(Exception):
    """Raised when a search query is empty or cannot be compiled."""
    pass


# ============== Parsing ==============

def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter and body from note content.

    Returns ``(metadata, body)``. Without a front matter block, or when the
    block fails to parse, metadata is ``{"title": ""}`` and body is the
    whole, unsplit input. On success the body is the stripped remainder.
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return {"title": ""}, content

    try:
        metadata = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        logger.warning("frontmatter_parse_failed", error=str(e))
        return {"title": ""}, content

    if metadata is None:
        metadata = {}
    elif not isinstance(metadata, dict):
        logger.warning("frontmatter_parse_failed", error=f"expected a mapping, got {type(metadata).__name__}")
        return {"title": ""}, content

    return {str(key): value for key, value in metadata.items()}, match.group(2).strip()


def extract_links(content: str) -> list[str]:
    """Return link targets found in content, deduplicated.

    Handles [[Target]], [[Target|Alias]] and [Label](path/to/target.md).
    Wiki links come first, each group in order of appearance.
    """
    targets: list[str] = []

    for match in WIKILINK_PATTERN.finditer(content):
        targets.append(match.group(1).split("|")[0])

    for match in MARKDOWN_LINK_PATTERN.finditer(content):
        targets.append(match.group(2).removesuffix(NOTE_SUFFIX))

    return list(dict.fromkeys(t for t in targets if t))


def normalize_string_list(value: Any) -> list[str] | None:
    """Coerce a front matter list field (tags, aliases) to a list of strings."""
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


# ============== Folder Exclusion ==============

def split_folder_list(raw: str) -> list[str]:
    """Split a comma-separated folder list, dropping blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


def folder_segments(folder: str) -> tuple[str, ...]:
    """Normalize an excluded folder ("archive/old/") into path segments."""
    return tuple(part for part in FOLDER_SPLIT_PATTERN.split(folder.strip()) if part and part != ".")


def is_excluded(rel_parts: tuple[str, ...], exclusions: list[tuple[str, ...]]) -> bool:
    """Check whether a vault-relative path contains any excluded segment run.

    Matching is by whole segments: excluding "test" skips "test/" and
    "a/test/b.md" but not "testing/".
    """
    for segments in exclusions:
        width = len(segments)
        if not width:
            continue
        for i in range(len(rel_parts) - width + 1):
            if rel_parts[i:i + width] == segments:
                return True
    return False


# ============== Security Validation ==============

def validate_note_path(path_str: str, vault_path: Path) -> str:
    """Validate that a note path stays within the vault.

    Args:
        path_str: Vault-relative note path, with or without the .md extension
        vault_path: The vault root path

    Returns:
        The normalized POSIX note path without extension

    Raises:
        PathValidationError: If the path is empty or attempts to escape the vault
    """
    if not path_str or not path_str.strip():
        raise PathValidationError("Path cannot be empty")

    normalized = path_str.strip().replace("\\", "/")

    # Reject absolute paths
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        raise PathValidationError("Absolute paths are not allowed")

    # Reject paths with ".." components (path traversal attempt)
    if ".." in PurePosixPath(normalized).parts:
        raise PathValidationError("Path traversal detected: '..' is not allowed")

    full_path = (vault_path / normalized).resolve()
    try:
        full_path.relative_to(vault_path.resolve())
    except ValueError:
        raise PathValidationError(f"Path escapes vault directory: {path_str}")

    return normalized.removesuffix(NOTE_SUFFIX)
