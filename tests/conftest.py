"""
Shared fixtures: a temporary vault on disk and the store inside it
"""
import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from vault_media.notices import NoticeBoard
from vault_media.storage import ShardedStore
from vault_media.vault import LocalVault


@pytest.fixture
def vault_dir(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def vault(vault_dir):
    return LocalVault(vault_dir)


@pytest.fixture
def store(vault):
    return ShardedStore(vault, "media")


@pytest.fixture
def notices():
    return NoticeBoard()
