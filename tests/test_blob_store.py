"""Tests for object store backends"""
import json

import httpx
import pytest

from memory_tree.config import Settings
from memory_tree.services.blob_store import (
    LocalBlobStore,
    VercelBlobStore,
    create_blob_store,
)
from memory_tree.services.errors import BlobStoreError, MemoryNotFoundError
from memory_tree.services.memory_store import MemoryStore

API_URL = "https://blob.example.test"
PUBLIC_HOST = "store.public.blob.example.test"
TOKEN = "vercel_blob_rw_test"


class FakeBlobService:
    """In-memory stand-in for the hosted blob REST API"""

    def __init__(self):
        self.objects = {}
        self.requests = []
        self.fail_with = None

    def url_for(self, pathname):
        return f"https://{PUBLIC_HOST}/{pathname}"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, text="boom")

        if request.url.host == PUBLIC_HOST:
            pathname = request.url.path.lstrip("/")
            if pathname not in self.objects:
                return httpx.Response(404)
            return httpx.Response(200, content=self.objects[pathname])

        assert request.headers["authorization"] == f"Bearer {TOKEN}"

        if request.method == "PUT":
            pathname = request.url.params["pathname"]
            self.objects[pathname] = request.content
            return httpx.Response(200, json={"url": self.url_for(pathname), "pathname": pathname})

        if request.method == "POST" and request.url.path == "/delete":
            for url in json.loads(request.content)["urls"]:
                self.objects.pop(url.split(f"{PUBLIC_HOST}/", 1)[1], None)
            return httpx.Response(200)

        if request.method == "GET":
            prefix = request.url.params.get("prefix", "")
            limit = int(request.url.params.get("limit", "1000"))
            offset = int(request.url.params.get("cursor", "0"))
            names = sorted(p for p in self.objects if p.startswith(prefix))
            page = names[offset:offset + limit]
            has_more = offset + limit < len(names)
            return httpx.Response(200, json={
                "blobs": [
                    {"url": self.url_for(p), "pathname": p, "size": len(self.objects[p]),
                     "uploadedAt": "2025-01-01T00:00:00.000Z"}
                    for p in page
                ],
                "hasMore": has_more,
                "cursor": str(offset + limit) if has_more else None,
            })

        return httpx.Response(405)


@pytest.fixture
def service():
    return FakeBlobService()


@pytest.fixture
def vercel_store(service):
    client = httpx.AsyncClient(transport=httpx.MockTransport(service))
    return VercelBlobStore(TOKEN, api_url=API_URL, client=client)


@pytest.mark.asyncio
async def test_vercel_put_and_read(vercel_store, service):
    blob = await vercel_store.put("memories/images/1.png", b"png-bytes", content_type="image/png")

    assert blob.url == f"https://{PUBLIC_HOST}/memories/images/1.png"
    assert await vercel_store.read(blob.url) == b"png-bytes"

    put_request = service.requests[0]
    assert put_request.headers["x-add-random-suffix"] == "0"
    assert put_request.headers["x-allow-overwrite"] == "1"
    assert put_request.headers["x-content-type"] == "image/png"
    assert service.requests[-1].headers["cache-control"] == "no-cache"


@pytest.mark.asyncio
async def test_vercel_list_follows_pages(vercel_store, service):
    vercel_store.LIST_PAGE_SIZE = 2
    for i in range(5):
        service.objects[f"memories/images/{i}.jpg"] = b"x"
    service.objects["memories/data.json"] = b"[]"

    blobs = await vercel_store.list(prefix="memories/images/")

    assert [b.pathname for b in blobs] == [f"memories/images/{i}.jpg" for i in range(5)]
    assert blobs[0].uploaded_at == "2025-01-01T00:00:00.000Z"


@pytest.mark.asyncio
async def test_vercel_delete(vercel_store, service):
    blob = await vercel_store.put("memories/images/1.png", b"x")
    await vercel_store.delete(blob.url)
    assert service.objects == {}


@pytest.mark.asyncio
async def test_vercel_errors_become_blob_store_errors(vercel_store, service):
    service.fail_with = 503
    with pytest.raises(BlobStoreError):
        await vercel_store.list()
    with pytest.raises(BlobStoreError):
        await vercel_store.put("a.txt", b"x")
    with pytest.raises(BlobStoreError):
        await vercel_store.read(f"https://{PUBLIC_HOST}/a.txt")


def test_vercel_requires_token():
    with pytest.raises(BlobStoreError):
        VercelBlobStore("")


@pytest.mark.asyncio
async def test_memory_store_on_vercel(vercel_store, service, fixed_ids, sample_image):
    store = MemoryStore(vercel_store, id_generator=fixed_ids)

    memory = await store.create_memory(
        image=sample_image, filename="tree.webp", date="2025-12-24", title="Eve"
    )
    assert memory.image_url == f"https://{PUBLIC_HOST}/memories/images/1700000000000.webp"
    assert json.loads(service.objects["memories/data.json"])[0]["title"] == "Eve"
    assert [m.id for m in await store.list_memories()] == [memory.id]

    service.objects["memories/images/1700000000500.jpg"] = sample_image
    result = await store.recover_memories()
    assert result.recovered == 1

    await store.delete_memory(memory.id)
    assert "memories/images/1700000000000.webp" not in service.objects
    assert [m.id for m in await store.list_memories()] == ["1700000000500"]

    with pytest.raises(MemoryNotFoundError):
        await store.delete_memory(memory.id)


@pytest.mark.asyncio
async def test_local_store_round_trip(blob_store):
    blob = await blob_store.put("memories/images/7.png", b"seven")

    assert blob.url == "http://testserver/blobs/memories/images/7.png"
    assert [b.pathname for b in await blob_store.list("memories/")] == ["memories/images/7.png"]
    assert (await blob_store.find("memories/images/7.png")).size == 5

    await blob_store.delete(blob.url)
    assert await blob_store.list() == []
    with pytest.raises(BlobStoreError):
        await blob_store.read(blob.url)


@pytest.mark.asyncio
async def test_local_store_rejects_escaping_paths(blob_store):
    with pytest.raises(BlobStoreError):
        await blob_store.put("../outside.txt", b"x")
    with pytest.raises(BlobStoreError):
        await blob_store.read("http://elsewhere/blobs/memories/data.json")


def test_create_blob_store_picks_backend(tmp_path):
    local = create_blob_store(Settings(blob_backend="local", local_blob_dir=str(tmp_path)))
    assert isinstance(local, LocalBlobStore)

    vercel = create_blob_store(Settings(blob_backend="vercel", blob_read_write_token=TOKEN))
    assert isinstance(vercel, VercelBlobStore)
    assert vercel.api_url == "https://blob.vercel-storage.com"
