# backend/lessonbook/repositories/__init__.py
"""Data access layer. Repositories flush but never commit."""

from .base_repository import BaseRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "RepositoryFactory"]
