"""
Pydantic models for request/response validation
"""
from memory_tree.models.memory import *
