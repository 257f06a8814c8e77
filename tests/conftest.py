# FILE: tests/conftest.py

import os
import sys
import tempfile
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Importing memory_tree.app builds the default app; keep its blob dir out of the repo
os.environ["BLOB_BACKEND"] = "local"
os.environ["LOCAL_BLOB_DIR"] = tempfile.mkdtemp(prefix="memory-tree-blobs-")

import pytest
from fastapi.testclient import TestClient

from memory_tree.app import create_app
from memory_tree.config import Settings
from memory_tree.routes.memories import get_memory_store
from memory_tree.services.blob_store import LocalBlobStore
from memory_tree.services.errors import BlobStoreError
from memory_tree.services.memory_store import MemoryIdGenerator, MemoryStore

# 2023-11-14T22:13:20Z
FIXED_CLOCK_SECONDS = 1_700_000_000.0


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary local object store"""
    return Settings(
        blob_backend="local",
        local_blob_dir=str(tmp_path / "blobs"),
        public_base_url="http://testserver",
        cors_origins=["http://localhost:3000"]
    )


@pytest.fixture
def blob_store(settings):
    """Local object store served at http://testserver/blobs"""
    return LocalBlobStore(settings.local_blob_dir, settings.public_base_url)


@pytest.fixture
def fixed_ids():
    """Deterministic ids starting at 1700000000000"""
    return MemoryIdGenerator(clock=lambda: FIXED_CLOCK_SECONDS)


@pytest.fixture
def memory_store(blob_store, fixed_ids):
    return MemoryStore(blob_store, id_generator=fixed_ids)


@pytest.fixture
def make_client(settings):
    """Build a TestClient whose routes use the given store"""
    clients = []

    def _make(store, app_settings=None):
        app = create_app(app_settings or settings)
        app.dependency_overrides[get_memory_store] = lambda: store
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def api_client(make_client, memory_store):
    """HTTP client for the memories API on a temporary store"""
    return make_client(memory_store)


@pytest.fixture
def sample_image():
    """Small PNG-looking payload"""
    return b"\x89PNG\r\n\x1a\n" + b"ornament" * 16


class UnreachableStore(LocalBlobStore):
    """Every call fails as if the object store were down"""

    async def list(self, prefix=""):
        raise BlobStoreError("object store unreachable")

    async def put(self, pathname, data, content_type=None):
        raise BlobStoreError("object store unreachable")


@pytest.fixture
def unreachable_store(settings):
    """Memory store whose object store is down"""
    return MemoryStore(UnreachableStore(settings.local_blob_dir, settings.public_base_url))
