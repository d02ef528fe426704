from .service import DatabaseService
from .profile_store import ProfileStore, PostgresProfileStore
from .memory_store import MemoryProfileStore
from .seed import PLACEHOLDER_PROFILES, is_placeholder

__all__ = [
    "DatabaseService",
    "ProfileStore",
    "PostgresProfileStore",
    "MemoryProfileStore",
    "PLACEHOLDER_PROFILES",
    "is_placeholder",
]
