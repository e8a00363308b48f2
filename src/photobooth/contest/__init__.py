"""Contest entries, gallery submissions, moderation and votes."""

from .service import ContestService, EntryNotFoundError
from .store import ContestFiles, ContestStore

__all__ = ["ContestFiles", "ContestService", "ContestStore", "EntryNotFoundError"]
