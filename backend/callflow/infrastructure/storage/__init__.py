"""
Storage Infrastructure Package
Session stores and directory providers for the routing engine
"""
from callflow.infrastructure.storage.factory import StorageFactory
from callflow.infrastructure.storage.memory_directory import MemoryDirectoryProvider
from callflow.infrastructure.storage.memory_session_repository import MemorySessionRepository
from callflow.infrastructure.storage.redis_session_repository import RedisSessionRepository
from callflow.infrastructure.storage.supabase_directory import SupabaseDirectoryProvider
from callflow.infrastructure.storage.supabase_session_repository import SupabaseSessionRepository

__all__ = [
    "StorageFactory",
    "MemoryDirectoryProvider",
    "MemorySessionRepository",
    "RedisSessionRepository",
    "SupabaseDirectoryProvider",
    "SupabaseSessionRepository",
]
