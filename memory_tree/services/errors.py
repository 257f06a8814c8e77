"""
Memory store exceptions
"""


class MemoryTreeError(Exception):
    """Base error for memory operations"""


class MemoryValidationError(MemoryTreeError):
    """Required input missing or empty"""


class MemoryNotFoundError(MemoryTreeError):
    """No memory with the requested id"""

    def __init__(self, memory_id: str):
        super().__init__(f"Memory not found: {memory_id}")
        self.memory_id = memory_id


class BlobStoreError(MemoryTreeError):
    """Object store unreachable, rejected a request, or returned unreadable data"""
