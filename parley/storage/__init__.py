"""File-backed JSON table storage shared by the messaging stores."""

from parley.storage.database import Database

__all__ = ["Database"]
