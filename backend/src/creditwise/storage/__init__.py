"""Persistence layer: declarative base, engine/session management."""

from creditwise.storage.db import Database
from creditwise.storage.models import Base, utcnow

__all__ = ["Base", "Database", "utcnow"]
