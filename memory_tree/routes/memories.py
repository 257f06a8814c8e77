# FILE: memory_tree/routes/memories.py
"""
Memory endpoints: list, create, delete, recover
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from memory_tree.config import get_settings
from memory_tree.models.memory import DeleteResult
from memory_tree.services.blob_store import create_blob_store
from memory_tree.services.errors import MemoryNotFoundError, MemoryValidationError
from memory_tree.services.memory_store import MemoryStore

logger = logging.getLogger(__name__)
router = APIRouter()

_memory_store: Optional[MemoryStore] = None


def get_memory_store() -> MemoryStore:
    """Get or create the process-wide memory store"""
    global _memory_store
    if _memory_store is None:
        settings = get_settings()
        _memory_store = MemoryStore(
            create_blob_store(settings),
            index_path=settings.memories_index_path,
            image_prefix=settings.memories_image_prefix
        )
    return _memory_store


async def close_memory_store():
    """Release the store's object-store client"""
    global _memory_store
    if _memory_store is not None:
        await _memory_store.blob_store.aclose()
        _memory_store = None


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.get("")
async def list_memories(store: MemoryStore = Depends(get_memory_store)):
    """List all memories in insertion order"""
    try:
        memories = await store.list_memories()
    except Exception:
        logger.error("GET error", exc_info=True)
        return _error(500, "Failed to fetch memories")

    return [m.to_json() for m in memories]


@router.post("", status_code=201)
async def create_memory(
    image: Optional[UploadFile] = File(None),
    date: Optional[str] = Form(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    position_x: Optional[str] = Form(None, alias="positionX"),
    position_y: Optional[str] = Form(None, alias="positionY"),
    store: MemoryStore = Depends(get_memory_store)
):
    """Upload an image and add a memory for it"""
    if image is None or not date or not title:
        return _error(400, "Missing required fields")

    logger.info(f"Create memory: title={title!r}, date={date}, file={image.filename}")

    try:
        content = await image.read()
        memory = await store.create_memory(
            image=content,
            filename=image.filename,
            content_type=image.content_type,
            date=date,
            title=title,
            description=description,
            position_x=position_x,
            position_y=position_y
        )
    except MemoryValidationError:
        return _error(400, "Missing required fields")
    except Exception:
        logger.error("POST error", exc_info=True)
        return _error(500, "Failed to create memory")

    return JSONResponse(status_code=201, content=memory.to_json())


@router.delete("")
async def delete_memory(
    id: Optional[str] = None,
    store: MemoryStore = Depends(get_memory_store)
):
    """Delete a memory and its image"""
    if not id:
        return _error(400, "Missing id")

    try:
        await store.delete_memory(id)
    except MemoryNotFoundError:
        return _error(404, "Memory not found")
    except Exception:
        logger.error("DELETE error", exc_info=True)
        return _error(500, "Failed to delete memory")

    return DeleteResult().model_dump()


@router.patch("")
async def recover_memories(store: MemoryStore = Depends(get_memory_store)):
    """Recreate index entries for orphaned images"""
    try:
        result = await store.recover_memories()
    except Exception as e:
        logger.error(f"PATCH error: {e}", exc_info=True)
        return _error(500, "Failed to recover memories", details=str(e) or "Unknown error")

    return result.to_json()
