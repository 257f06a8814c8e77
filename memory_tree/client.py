# FILE: memory_tree/client.py
"""
Memory clients for the tree board

One interface, two backends:
- RemoteMemoryClient: the /api/memories HTTP API
- LocalMemoryClient: a JSON file on this machine (images inlined as data URLs),
  for when no server is available
"""
import base64
import json
import logging
import mimetypes
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from memory_tree.models.memory import Memory, Position, RecoveryResult
from memory_tree.services.errors import MemoryNotFoundError, MemoryTreeError, MemoryValidationError
from memory_tree.services.memory_store import MemoryIdGenerator, image_extension

logger = logging.getLogger(__name__)


class MemoryClientError(MemoryTreeError):
    """Memory API request failed"""

    def __init__(self, status_code: int, message: str, details: Optional[str] = None):
        super().__init__(f"{status_code}: {message}" + (f" ({details})" if details else ""))
        self.status_code = status_code
        self.message = message
        self.details = details


class MemoryClient(ABC):
    """Data access for the board"""

    @abstractmethod
    def list(self) -> List[Memory]:
        """All memories in insertion order"""

    @abstractmethod
    def add(
        self,
        image: bytes,
        filename: str,
        date: str,
        title: str,
        description: str = "",
        position: Optional[Position] = None
    ) -> Memory:
        """Add a memory and return it with its assigned id"""

    @abstractmethod
    def delete(self, memory_id: str) -> None:
        """Remove a memory; MemoryNotFoundError when the id is unknown"""


class RemoteMemoryClient(MemoryClient):
    """Client for the memories HTTP API"""

    def __init__(self, base_url: str, timeout: float = 30.0, client: Optional[httpx.Client] = None):
        self.endpoint = f"{base_url.rstrip('/')}/api/memories"
        self._client = client or httpx.Client(timeout=timeout)

    def _check(self, response: httpx.Response) -> Any:
        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("error", response.reason_phrase) if isinstance(body, dict) else response.reason_phrase
        details = body.get("details") if isinstance(body, dict) else None

        if response.status_code == 400:
            raise MemoryValidationError(message)
        raise MemoryClientError(response.status_code, message, details)

    def list(self) -> List[Memory]:
        data = self._check(self._client.get(self.endpoint, headers={"Cache-Control": "no-cache"}))
        return [Memory.model_validate(item) for item in data]

    def add(
        self,
        image: bytes,
        filename: str,
        date: str,
        title: str,
        description: str = "",
        position: Optional[Position] = None
    ) -> Memory:
        position = position or Position()
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        response = self._client.post(
            self.endpoint,
            files={"image": (filename, image, content_type)},
            data={
                "date": date,
                "title": title,
                "description": description,
                "positionX": str(position.x),
                "positionY": str(position.y),
            }
        )
        memory = Memory.model_validate(self._check(response))
        logger.info(f"Added memory {memory.id}")
        return memory

    def delete(self, memory_id: str) -> None:
        response = self._client.delete(self.endpoint, params={"id": memory_id})
        if response.status_code == 404:
            raise MemoryNotFoundError(memory_id)
        self._check(response)
        logger.info(f"Deleted memory {memory_id}")

    def recover(self) -> RecoveryResult:
        """Ask the server to rebuild entries for orphaned images"""
        result = RecoveryResult.model_validate(self._check(self._client.patch(self.endpoint)))
        logger.info(f"Recovered {result.recovered} memories ({result.total} total)")
        return result

    def close(self):
        self._client.close()


class LocalMemoryClient(MemoryClient):
    """Memories kept in a local JSON file"""

    UPDATABLE_FIELDS = ("date", "title", "description", "position")

    def __init__(self, path: str, id_generator: Optional[MemoryIdGenerator] = None):
        self.path = Path(path)
        self._new_id = id_generator or MemoryIdGenerator()

    def _load(self) -> List[Memory]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return [Memory.model_validate(item) for item in json.load(f)]
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to parse memories in {self.path}: {e}")
            return []

    def _save(self, memories: List[Memory]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump([m.to_json() for m in memories], f, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def list(self) -> List[Memory]:
        return self._load()

    def add(
        self,
        image: bytes,
        filename: str,
        date: str,
        title: str,
        description: str = "",
        position: Optional[Position] = None
    ) -> Memory:
        if not image or not date or not title:
            raise MemoryValidationError("Missing required fields")

        content_type = mimetypes.guess_type(f"x.{image_extension(filename)}")[0] or "image/jpeg"
        encoded = base64.b64encode(image).decode("ascii")

        memories = self._load()
        memory = Memory(
            id=self._new_id(),
            date=date,
            title=title,
            description=description or "",
            image_url=f"data:{content_type};base64,{encoded}",
            position=position or Position(),
            created_at=datetime.now(timezone.utc).isoformat()
        )
        memories.append(memory)
        self._save(memories)
        return memory

    def update(self, memory_id: str, **changes: Any) -> Memory:
        """Edit date/title/description/position in place"""
        unknown = set(changes) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise MemoryValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "title" in changes and not changes["title"]:
            raise MemoryValidationError("Title cannot be empty")

        memories = self._load()
        for i, memory in enumerate(memories):
            if memory.id == memory_id:
                values: Dict[str, Any] = memory.model_dump()
                values.update(changes)
                memories[i] = Memory.model_validate(values)
                self._save(memories)
                return memories[i]

        raise MemoryNotFoundError(memory_id)

    def delete(self, memory_id: str) -> None:
        memories = self._load()
        remaining = [m for m in memories if m.id != memory_id]
        if len(remaining) == len(memories):
            raise MemoryNotFoundError(memory_id)
        self._save(remaining)
