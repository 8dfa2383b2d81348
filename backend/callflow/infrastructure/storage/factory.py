"""
Storage Factory
Creates session and directory backends based on configuration
"""
import logging
from typing import Callable, Dict, Optional

from supabase import Client, create_client

from callflow.core.config import ConfigManager, Settings
from callflow.domain.interfaces.directory_provider import DirectoryProvider
from callflow.domain.interfaces.session_repository import SessionRepository
from callflow.infrastructure.storage.memory_directory import MemoryDirectoryProvider
from callflow.infrastructure.storage.memory_session_repository import MemorySessionRepository
from callflow.infrastructure.storage.redis_session_repository import (
    DEFAULT_KEY_PREFIX,
    RedisSessionRepository,
)
from callflow.infrastructure.storage.supabase_directory import SupabaseDirectoryProvider
from callflow.infrastructure.storage.supabase_session_repository import (
    DEFAULT_MAX_RETRIES,
    SupabaseSessionRepository,
)

logger = logging.getLogger(__name__)

SessionBuilder = Callable[["StorageFactory"], SessionRepository]
DirectoryBuilder = Callable[["StorageFactory"], DirectoryProvider]


class StorageFactory:
    """Factory for creating storage backends from settings"""

    _session_backends: Dict[str, SessionBuilder] = {}
    _directory_backends: Dict[str, DirectoryBuilder] = {}

    def __init__(self, settings: Settings, config: ConfigManager):
        self.settings = settings
        self.config = config
        self._supabase: Optional[Client] = None

    @property
    def max_retries(self) -> int:
        return self.config.get_int("storage.append_retries", DEFAULT_MAX_RETRIES)

    def supabase_client(self) -> Client:
        """Shared Supabase client for every Supabase-backed store."""
        if self._supabase is None:
            if not self.settings.supabase_url or not self.settings.supabase_service_key:
                raise RuntimeError(
                    "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set for the supabase backend."
                )
            self._supabase = create_client(
                self.settings.supabase_url,
                self.settings.supabase_service_key
            )
        return self._supabase

    def create_session_repository(self) -> SessionRepository:
        """
        Create the configured session repository.

        Raises:
            ValueError: If the backend is not registered
        """
        backend = self.settings.session_backend
        if backend not in self._session_backends:
            available = ", ".join(self._session_backends.keys())
            raise ValueError(f"Unknown session backend: {backend}. Available: {available}")

        logger.info(f"Session backend: {backend}")
        return self._session_backends[backend](self)

    def create_directory(self) -> DirectoryProvider:
        """
        Create the configured directory provider.

        Raises:
            ValueError: If the backend is not registered
        """
        backend = self.settings.directory_backend
        if backend not in self._directory_backends:
            available = ", ".join(self._directory_backends.keys())
            raise ValueError(f"Unknown directory backend: {backend}. Available: {available}")

        logger.info(f"Directory backend: {backend}")
        return self._directory_backends[backend](self)

    @classmethod
    def register_session_backend(cls, name: str, builder: SessionBuilder) -> None:
        """Register a session backend"""
        cls._session_backends[name] = builder

    @classmethod
    def register_directory_backend(cls, name: str, builder: DirectoryBuilder) -> None:
        """Register a directory backend"""
        cls._directory_backends[name] = builder


# Register built-in backends
StorageFactory.register_session_backend("memory", lambda factory: MemorySessionRepository())
StorageFactory.register_session_backend(
    "redis",
    lambda factory: RedisSessionRepository.from_url(
        factory.settings.redis_url,
        key_prefix=factory.config.get("storage.redis_key_prefix", DEFAULT_KEY_PREFIX),
        max_retries=factory.max_retries
    )
)
StorageFactory.register_session_backend(
    "supabase",
    lambda factory: SupabaseSessionRepository(factory.supabase_client(), max_retries=factory.max_retries)
)

StorageFactory.register_directory_backend("memory", lambda factory: MemoryDirectoryProvider())
StorageFactory.register_directory_backend(
    "supabase",
    lambda factory: SupabaseDirectoryProvider(factory.supabase_client())
)
