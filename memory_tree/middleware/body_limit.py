# FILE: memory_tree/middleware/body_limit.py
"""
Body size limit middleware (image uploads)
"""
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject uploads whose declared Content-Length exceeds max_size bytes"""

    def __init__(self, app, max_size: int):
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next):
        if request.method in ("POST", "PUT", "PATCH"):
            content_length = request.headers.get("content-length")
            if content_length is not None:
                try:
                    declared = int(content_length)
                except ValueError:
                    logger.warning(f"Invalid Content-Length on {request.url.path}: {content_length!r}")
                    return JSONResponse(status_code=400, content={"error": "Invalid Content-Length"})

                if declared > self.max_size:
                    logger.warning(f"Upload too large on {request.url.path}: {declared} > {self.max_size}")
                    return JSONResponse(status_code=413, content={"error": "Request body too large"})

        return await call_next(request)
