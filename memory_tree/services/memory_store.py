# FILE: memory_tree/services/memory_store.py
"""
Memory store: photo memories kept as image objects plus one JSON index document

The index document is the single source of truth for which memories exist.
Every mutation is read index -> change in memory -> overwrite whole index.
Mutations are serialized per store instance; separate processes sharing the
same object store still race (last writer wins).
"""
import asyncio
import json
import logging
import math
import re
import time
from datetime import datetime, timezone
from typing import List, Optional

from memory_tree.models.memory import Memory, Position, RecoveryResult
from memory_tree.services.blob_store import BlobStore
from memory_tree.services.errors import (
    BlobStoreError,
    MemoryNotFoundError,
    MemoryValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_INDEX_PATH = "memories/data.json"
DEFAULT_IMAGE_PREFIX = "memories/images/"
DEFAULT_IMAGE_EXTENSION = "jpg"

RECOVERED_TITLE = "Recovered memory {n}"
RECOVERED_DESCRIPTION = "Recovered from image - please edit the title and description"

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


def parse_coordinate(value: Optional[str]) -> float:
    """Lenient float parse of leading numeric text; 0 when absent or unparseable"""
    if value is None:
        return 0.0
    match = _LEADING_FLOAT.match(str(value))
    if not match:
        return 0.0
    number = float(match.group(0))
    if not math.isfinite(number):
        return 0.0
    return number


def image_extension(filename: Optional[str]) -> str:
    """Extension of the uploaded file, 'jpg' when it has none"""
    if not filename or "." not in filename:
        return DEFAULT_IMAGE_EXTENSION
    extension = filename.rsplit(".", 1)[1]
    return extension or DEFAULT_IMAGE_EXTENSION


def id_from_pathname(pathname: str) -> str:
    """Memory id encoded in an image pathname (file name up to the first dot)"""
    filename = pathname.rsplit("/", 1)[-1]
    return filename.split(".", 1)[0]


def date_from_id(memory_id: str, today: Optional[datetime] = None) -> str:
    """Best-guess ISO date for an id minted from epoch milliseconds"""
    today = today or datetime.now(timezone.utc)
    match = _LEADING_INT.match(memory_id)
    if match:
        try:
            moment = datetime.fromtimestamp(int(match.group(0)) / 1000, tz=timezone.utc)
            return moment.date().isoformat()
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Id {memory_id} is not a usable timestamp")
    return today.date().isoformat()


def _utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MemoryIdGenerator:
    """Millisecond-timestamp ids, strictly increasing within a process"""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0

    def __call__(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return str(candidate)


class MemoryStore:
    """Facade over the memory index document and image objects"""

    def __init__(
        self,
        blob_store: BlobStore,
        index_path: str = DEFAULT_INDEX_PATH,
        image_prefix: str = DEFAULT_IMAGE_PREFIX,
        id_generator: Optional[MemoryIdGenerator] = None
    ):
        self.blob_store = blob_store
        self.index_path = index_path
        self.image_prefix = image_prefix if image_prefix.endswith("/") else image_prefix + "/"
        self._new_id = id_generator or MemoryIdGenerator()
        self._write_lock = asyncio.Lock()

    async def _load_index(self) -> List[Memory]:
        """Fetch the index document; empty when it does not exist yet"""
        blob = await self.blob_store.find(self.index_path)
        if blob is None:
            return []

        raw = await self.blob_store.read(blob.url)
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise BlobStoreError(f"Index document {self.index_path} is not valid JSON") from e
        if not isinstance(data, list):
            raise BlobStoreError(f"Index document {self.index_path} is not a JSON array")

        try:
            return [Memory.model_validate(item) for item in data]
        except ValueError as e:
            raise BlobStoreError(f"Index document {self.index_path} holds an invalid record: {e}") from e

    async def _save_index(self, memories: List[Memory]):
        """Replace the whole index document"""
        document = json.dumps([m.to_json() for m in memories], ensure_ascii=False)
        await self.blob_store.put(
            self.index_path,
            document.encode("utf-8"),
            content_type="application/json"
        )
        logger.debug(f"Index saved: {len(memories)} memories")

    async def list_memories(self) -> List[Memory]:
        """All memories in insertion order"""
        return await self._load_index()

    async def create_memory(
        self,
        image: Optional[bytes],
        filename: Optional[str],
        date: Optional[str],
        title: Optional[str],
        description: Optional[str] = None,
        content_type: Optional[str] = None,
        position_x: Optional[str] = None,
        position_y: Optional[str] = None
    ) -> Memory:
        """Upload the image, then append a record to the index"""
        if image is None or not date or not title:
            raise MemoryValidationError("Missing required fields")

        async with self._write_lock:
            memory_id = self._new_id()
            image_path = f"{self.image_prefix}{memory_id}.{image_extension(filename)}"

            # Image first: a failed index write leaves an orphan, never a dangling reference
            image_blob = await self.blob_store.put(image_path, image, content_type=content_type)

            memories = await self._load_index()
            memory = Memory(
                id=memory_id,
                date=date,
                title=title,
                description=description or "",
                image_url=image_blob.url,
                position=Position(x=parse_coordinate(position_x), y=parse_coordinate(position_y)),
                created_at=_utc_now_iso()
            )
            memories.append(memory)
            await self._save_index(memories)

        logger.info(f"Memory created: {memory_id} ({image_path})")
        return memory

    async def delete_memory(self, memory_id: Optional[str]):
        """Remove the image (best effort) and the index entry"""
        if not memory_id:
            raise MemoryValidationError("Missing id")

        async with self._write_lock:
            memories = await self._load_index()
            target = next((m for m in memories if m.id == memory_id), None)
            if target is None:
                raise MemoryNotFoundError(memory_id)

            try:
                await self.blob_store.delete(target.image_url)
            except BlobStoreError as e:
                logger.warning(f"Failed to delete image for memory {memory_id}: {e}")

            await self._save_index([m for m in memories if m.id != memory_id])

        logger.info(f"Memory deleted: {memory_id}")

    async def recover_memories(self) -> RecoveryResult:
        """Rebuild index entries for stored images that no record references"""
        async with self._write_lock:
            memories = await self._load_index()
            known_urls = {m.image_url for m in memories}
            known_ids = {m.id for m in memories}

            blobs = await self.blob_store.list(prefix=self.image_prefix)
            recovered = 0

            for blob in blobs:
                if blob.url in known_urls:
                    continue

                memory_id = id_from_pathname(blob.pathname)
                if not memory_id or memory_id in known_ids:
                    continue

                memories.append(Memory(
                    id=memory_id,
                    date=date_from_id(memory_id),
                    title=RECOVERED_TITLE.format(n=recovered + 1),
                    description=RECOVERED_DESCRIPTION,
                    image_url=blob.url,
                    position=Position(),
                    created_at=_utc_now_iso()
                ))
                known_ids.add(memory_id)
                recovered += 1

            if recovered > 0:
                await self._save_index(memories)

        logger.info(f"Recovery finished: {recovered} recovered, {len(memories)} total")
        return RecoveryResult(recovered=recovered, total=len(memories), memories=memories)
