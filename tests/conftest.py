"""
Pytest configuration and fixtures for notebridge tests.
"""

from pathlib import Path

import pytest


NOTE1 = """---
title: Test Note 1
tags:
  - test
  - example
  - documentation
created: 2020-01-01
status: draft
---

# Note 1

This is a test note that links to [[note2]] and [[note3|the third note]].
"""

NOTE2 = """---
title: Test Note 2
tags: [example]
---

Second note. It points back to [Note One](note1.md).
"""

NOTE3 = """---
title: Test Note 3
tags: [test, archived]
---

Archived content kept for testing.
"""


def write_notes(root: Path, files: dict[str, str]) -> Path:
    """Write {relative_path: text} under root, creating folders."""
    for rel_path, text in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def make_settings(vault_path: Path, **overrides):
    """Build Settings for a vault without reading the environment."""
    from notebridge.config import (
        ConfluenceSettings,
        JiraSettings,
        ServerSettings,
        Settings,
        VaultSettings,
    )

    vault_kwargs = {
        "vault_path": vault_path,
        "exclude_folders": "",
        "skip_hidden": False,
        "cache_enabled": False,
        "cache_ttl": 60,
    }
    vault_kwargs.update(overrides)
    return Settings(
        vault=VaultSettings(_env_file=None, **vault_kwargs),
        jira=JiraSettings(_env_file=None, base_url=None, token=None),
        confluence=ConfluenceSettings(_env_file=None, base_url=None, email=None, token=None),
        server=ServerSettings(_env_file=None),
    )


@pytest.fixture
def temp_vault(tmp_path: Path):
    """Create a temporary vault with the three reference notes."""
    vault_path = tmp_path / "vault"
    vault_path.mkdir()
    write_notes(vault_path, {
        "note1.md": NOTE1,
        "note2.md": NOTE2,
        "subfolder/note3.md": NOTE3,
    })
    yield vault_path


@pytest.fixture
def make_vault(tmp_path: Path):
    """Factory building a Vault over an arbitrary set of files."""
    from notebridge.vault import Vault

    def _make(files: dict[str, str], **overrides):
        vault_path = tmp_path / "custom_vault"
        vault_path.mkdir(exist_ok=True)
        write_notes(vault_path, files)
        return Vault(make_settings(vault_path, **overrides).vault)

    return _make


@pytest.fixture
def settings(temp_vault):
    return make_settings(temp_vault)


@pytest.fixture
def vault(settings):
    from notebridge.vault import Vault
    return Vault(settings.vault)


@pytest.fixture
def app(settings):
    """A NoteBridgeServer over the temp vault, without remote services."""
    from notebridge.tools import NoteBridgeServer
    return NoteBridgeServer(settings)


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def make_app(settings):
    """Factory for a NoteBridgeServer with injected remote clients."""
    from notebridge.tools import NoteBridgeServer

    def _make(settings_override=None, **clients):
        return NoteBridgeServer(settings_override or settings, **clients)

    return _make
