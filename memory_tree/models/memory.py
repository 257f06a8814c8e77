# FILE: memory_tree/models/memory.py
"""
Memory models
"""
from typing import List
from pydantic import BaseModel, ConfigDict, Field


class Position(BaseModel):
    """Ornament coordinate carried with each memory (not used for placement)"""
    x: float = 0
    y: float = 0


class Memory(BaseModel):
    """One dated photo memory"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    date: str
    title: str
    description: str = ""
    image_url: str = Field(alias="imageUrl")
    position: Position = Field(default_factory=Position)
    created_at: str = Field(default="", alias="createdAt")

    def to_json(self) -> dict:
        """Wire/index representation (camelCase keys)"""
        return self.model_dump(by_alias=True)


class DeleteResult(BaseModel):
    """Delete acknowledgment"""
    success: bool = True


class RecoveryResult(BaseModel):
    """Summary of a recovery pass"""
    success: bool = True
    recovered: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    memories: List[Memory] = Field(default_factory=list)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)
