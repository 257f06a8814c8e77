# FILE: memory_tree/routes/health.py
"""
Health check endpoint
"""
import logging
from fastapi import APIRouter

from memory_tree import __version__
from memory_tree.config import get_settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """
    Health check endpoint
    Reports which object store backend is configured
    """
    settings = get_settings()

    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.environment,
        "blob_backend": settings.blob_backend
    }
