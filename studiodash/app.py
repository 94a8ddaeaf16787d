"""
StudioDash application wiring.

Builds the database manager, cache, repositories, module registry and
dashboard service from one ``AppSettings``.
"""

import logging
from typing import Any, Dict, Optional

from plugins import initialize_modules, load_modules

from .config import AppSettings, get_settings
from .core import MemoryCache, ModuleRegistry, get_memory_cache
from .dashboard import DashboardService
from .database import DatabaseManager, check_database_health
from .repositories import Repositories, create_cached_repositories

logger = logging.getLogger(__name__)


class StudioDashApplication:
    """Main application class that wires together all components."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        cache: Optional[MemoryCache] = None,
        registry: Optional[ModuleRegistry] = None,
    ):
        """
        Args:
            settings: Application settings (loaded configuration when None)
            cache: Cache to use (process-wide cache, configured from settings, when None)
            registry: Module registry (process-wide registry when None)
        """
        self.settings = settings or get_settings()
        self._cache = cache
        self._registry = registry

        self.database: Optional[DatabaseManager] = None
        self.cache: Optional[MemoryCache] = None
        self.registry: Optional[ModuleRegistry] = None
        self.repositories: Optional[Repositories] = None
        self.dashboard: Optional[DashboardService] = None
        self.module_status: Dict[str, bool] = {}

        self._initialized = False

    async def initialize(self, create_tables: bool = True) -> None:
        """
        Initialize the database, repositories and feature modules.

        Args:
            create_tables: Whether to create missing tables
        """
        if self._initialized:
            return

        logger.info("Initializing StudioDash application...")

        self.database = DatabaseManager(self.settings.database, self.settings.retry)
        self.database.initialize()
        if create_tables:
            self.database.create_tables()

        self.cache = self._cache if self._cache is not None else self._configure_process_cache()
        self.repositories = create_cached_repositories(
            self.database,
            cache=self.cache,
            default_ttl=self.settings.cache.repository_timeout,
        )

        self.registry = load_modules(self._registry, disabled=self.settings.modules.disabled)
        self.module_status = await initialize_modules(self.registry)

        self.dashboard = DashboardService(self.registry, self.repositories)

        self._initialized = True
        logger.info("StudioDash application initialized successfully")

    def _configure_process_cache(self) -> MemoryCache:
        cache = get_memory_cache()
        cache.default_ttl = self.settings.cache.default_timeout
        cache.enabled = self.settings.cache.enabled
        cache.single_flight = self.settings.cache.single_flight
        return cache

    async def get_health_status(self) -> Dict[str, Any]:
        """Database reachability, cache size and module state."""
        if not self._initialized:
            return {"status": "not_initialized"}

        database_ok = await check_database_health(self.database)
        return {
            "status": "healthy" if database_ok else "unhealthy",
            "database": database_ok,
            "cache_entries": len(self.cache),
            "modules": {module.id: module.enabled for module in self.registry.get_all_modules()},
        }

    def close(self) -> None:
        if self.database is not None:
            self.database.close()
        self._initialized = False

    async def __aenter__(self) -> "StudioDashApplication":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
