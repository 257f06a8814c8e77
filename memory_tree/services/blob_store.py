# FILE: memory_tree/services/blob_store.py
"""
Object store adapters

Two interchangeable backends behind one interface:
- VercelBlobStore: hosted blob REST API (public objects, fixed pathnames)
- LocalBlobStore: a directory on disk, served by the app under /blobs

Objects are addressed by pathname on write and by absolute URL on
read/delete, the same way the hosted API hands them out.
"""
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os
import httpx

from memory_tree.config import Settings
from memory_tree.services.errors import BlobStoreError

logger = logging.getLogger(__name__)

LOCAL_MOUNT_PATH = "/blobs"


@dataclass(frozen=True)
class BlobInfo:
    """A stored object"""
    url: str
    pathname: str
    size: int = 0
    uploaded_at: Optional[str] = None


class BlobStore(ABC):
    """Path-addressable object store"""

    backend_name: str = "abstract"

    @abstractmethod
    async def list(self, prefix: str = "") -> List[BlobInfo]:
        """List every object whose pathname starts with prefix"""

    @abstractmethod
    async def put(self, pathname: str, data: bytes, content_type: Optional[str] = None) -> BlobInfo:
        """Store data at pathname, replacing any existing object"""

    @abstractmethod
    async def delete(self, url: str) -> None:
        """Delete the object at url"""

    @abstractmethod
    async def read(self, url: str) -> bytes:
        """Read object content, bypassing any cache"""

    async def find(self, pathname: str) -> Optional[BlobInfo]:
        """Locate the object stored at exactly this pathname"""
        for blob in await self.list(prefix=pathname):
            if blob.pathname == pathname:
                return blob
        return None

    async def aclose(self) -> None:
        pass


class VercelBlobStore(BlobStore):
    """Hosted blob store over its REST API"""

    backend_name = "vercel"
    API_VERSION = "7"
    LIST_PAGE_SIZE = 1000

    def __init__(
        self,
        token: str,
        api_url: str = "https://blob.vercel-storage.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        if not token:
            raise BlobStoreError("Blob read/write token is required")
        self.api_url = api_url.rstrip('/')
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)
        logger.info(f"Vercel blob store: {self.api_url}")

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "authorization": f"Bearer {self._token}",
            "x-api-version": self.API_VERSION,
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(self, method: str, url: str, parse_json: bool = True, **kwargs) -> Any:
        headers = self._headers(kwargs.pop("headers", None))
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BlobStoreError(
                f"Blob API {method} {url} failed: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise BlobStoreError(f"Blob API {method} {url} error: {e}") from e

        if not parse_json:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BlobStoreError(f"Blob API {method} {url} returned invalid JSON") from e

    async def list(self, prefix: str = "") -> List[BlobInfo]:
        blobs: List[BlobInfo] = []
        cursor: Optional[str] = None

        while True:
            params: Dict[str, Any] = {"prefix": prefix, "limit": self.LIST_PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor

            data = await self._request("GET", self.api_url, params=params)
            for item in data.get("blobs", []):
                blobs.append(BlobInfo(
                    url=item["url"],
                    pathname=item["pathname"],
                    size=item.get("size", 0),
                    uploaded_at=item.get("uploadedAt")
                ))

            cursor = data.get("cursor")
            if not data.get("hasMore") or not cursor:
                break

        logger.debug(f"Listed {len(blobs)} blobs under '{prefix}'")
        return blobs

    async def put(self, pathname: str, data: bytes, content_type: Optional[str] = None) -> BlobInfo:
        headers = {
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
        }
        if content_type:
            headers["x-content-type"] = content_type

        payload = await self._request(
            "PUT",
            f"{self.api_url}/",
            params={"pathname": pathname},
            content=data,
            headers=headers
        )
        if "url" not in payload:
            raise BlobStoreError(f"Blob API put for {pathname} returned no url")

        logger.debug(f"Stored blob: {pathname} ({len(data)} bytes)")
        return BlobInfo(url=payload["url"], pathname=payload.get("pathname", pathname), size=len(data))

    async def delete(self, url: str) -> None:
        await self._request("POST", f"{self.api_url}/delete", parse_json=False, json={"urls": [url]})
        logger.debug(f"Deleted blob: {url}")

    async def read(self, url: str) -> bytes:
        try:
            response = await self._client.get(
                url,
                headers={"Cache-Control": "no-cache", "Pragma": "no-cache"}
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BlobStoreError(f"Blob read {url} failed: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise BlobStoreError(f"Blob read {url} error: {e}") from e
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()


class LocalBlobStore(BlobStore):
    """Directory-backed object store for development and tests"""

    backend_name = "local"

    def __init__(self, root_dir: str, public_base_url: str = "http://localhost:8000"):
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.base_url = f"{public_base_url.rstrip('/')}{LOCAL_MOUNT_PATH}"
        logger.info(f"Local blob store: {self.root_dir} served at {self.base_url}")

    def _path_for(self, pathname: str) -> Path:
        path = (self.root_dir / pathname).resolve()
        if path == self.root_dir or self.root_dir not in path.parents:
            raise BlobStoreError(f"Invalid blob pathname: {pathname}")
        return path

    def _url_for(self, pathname: str) -> str:
        return f"{self.base_url}/{pathname}"

    def _pathname_for(self, url: str) -> str:
        if not url.startswith(self.base_url + "/"):
            raise BlobStoreError(f"URL does not belong to this store: {url}")
        return url[len(self.base_url) + 1:]

    async def list(self, prefix: str = "") -> List[BlobInfo]:
        blobs: List[BlobInfo] = []
        try:
            for path in sorted(self.root_dir.rglob("*")):
                if not path.is_file() or path.name.startswith(".tmp-"):
                    continue
                pathname = path.relative_to(self.root_dir).as_posix()
                if pathname.startswith(prefix):
                    blobs.append(BlobInfo(
                        url=self._url_for(pathname),
                        pathname=pathname,
                        size=path.stat().st_size
                    ))
        except OSError as e:
            raise BlobStoreError(f"Failed to list local blobs: {e}") from e
        return blobs

    async def put(self, pathname: str, data: bytes, content_type: Optional[str] = None) -> BlobInfo:
        path = self._path_for(pathname)
        tmp_path = path.with_name(f".tmp-{uuid.uuid4().hex}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise BlobStoreError(f"Failed to store {pathname}: {e}") from e

        logger.debug(f"Stored local blob: {pathname} ({len(data)} bytes)")
        return BlobInfo(url=self._url_for(pathname), pathname=pathname, size=len(data))

    async def delete(self, url: str) -> None:
        path = self._path_for(self._pathname_for(url))
        try:
            await aiofiles.os.remove(path)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {url}: {e}") from e

    async def read(self, url: str) -> bytes:
        path = self._path_for(self._pathname_for(url))
        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except OSError as e:
            raise BlobStoreError(f"Failed to read {url}: {e}") from e


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the configured object store backend"""
    if settings.blob_backend == "vercel":
        return VercelBlobStore(
            token=settings.blob_read_write_token,
            api_url=settings.blob_api_url,
            timeout=settings.blob_timeout
        )
    return LocalBlobStore(settings.local_blob_dir, settings.public_base_url)
