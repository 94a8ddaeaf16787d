"""
StudioDash Core Module
======================

Core building blocks of the StudioDash back-end:

- Module registry: feature modules contribute navigation items and dashboard
  widgets; the registry aggregates them for the enabled modules.
- Memory cache: process-wide key/value store with per-entry TTL and lazy expiry.

Author: StudioDash Development Team
License: MIT
"""

import asyncio
import dataclasses
import inspect
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# (repositories, user_id) -> widget payload
WidgetDataSource = Callable[[Any, str], Awaitable[Any]]
InitializeHook = Callable[[], Awaitable[None]]
Compute = Callable[[], Union[Any, Awaitable[Any]]]

WIDGET_WIDTHS = ("full", "half", "third")

_MISSING = object()


# ==================== MODULE DEFINITIONS ====================

@dataclass
class NavItem:
    """Navigation entry contributed by a module."""
    label: str
    href: str
    icon: str
    description: Optional[str] = None


@dataclass
class DashboardWidget:
    """Dashboard widget contributed by a module; lower priority renders first."""
    title: str
    priority: int
    component: str
    width: str = "full"
    data_source: Optional[WidgetDataSource] = None

    def __post_init__(self):
        if self.width not in WIDGET_WIDTHS:
            raise ValueError(f"Widget width must be one of {WIDGET_WIDTHS}, got {self.width!r}")


@dataclass
class Module:
    """A feature module of the dashboard."""
    id: str
    name: str
    description: str
    enabled: bool
    icon: str
    nav_items: List[NavItem] = field(default_factory=list)
    widgets: Optional[List[DashboardWidget]] = None
    initialize: Optional[InitializeHook] = None


# ==================== MODULE REGISTRY ====================

class ModuleRegistry:
    """
    Registry of feature modules.

    Modules are kept in registration order. Re-registering an id replaces the
    stored module in place and logs a warning.
    """

    _instance: Optional['ModuleRegistry'] = None
    _instance_lock = threading.Lock()

    def __init__(self):
        self._modules: Dict[str, Module] = {}
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'ModuleRegistry':
        """Return the process-wide registry, creating it on first use."""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the process-wide registry (used by tests)."""
        with cls._instance_lock:
            cls._instance = None

    def register_module(self, module: Module) -> None:
        """
        Register a module, overwriting any module with the same id.

        Args:
            module: Module definition to store
        """
        with self._lock:
            if module.id in self._modules:
                logger.warning(f"Module with ID {module.id} is already registered. Overwriting.")
            self._modules[module.id] = module
        logger.debug(f"Registered module: {module.id}")

    def get_module(self, module_id: str) -> Optional[Module]:
        with self._lock:
            return self._modules.get(module_id)

    def get_all_modules(self) -> List[Module]:
        with self._lock:
            return list(self._modules.values())

    def get_enabled_modules(self) -> List[Module]:
        with self._lock:
            return [module for module in self._modules.values() if module.enabled]

    def get_all_nav_items(self) -> List[NavItem]:
        """Navigation items of all enabled modules, in registration order."""
        return [item for module in self.get_enabled_modules() for item in module.nav_items]

    def get_all_widgets(self) -> List[DashboardWidget]:
        """Widgets of all enabled modules, ordered by ascending priority."""
        widgets = [widget for module in self.get_enabled_modules() for widget in (module.widgets or [])]
        # sorted() is stable: equal priorities keep registration order
        return sorted(widgets, key=lambda widget: widget.priority)

    def toggle_module_status(self, module_id: str, enabled: bool) -> bool:
        """
        Enable or disable a module.

        Args:
            module_id: Id of the module to change
            enabled: New status

        Returns:
            False if no module has that id, True otherwise
        """
        with self._lock:
            module = self._modules.get(module_id)
            if module is None:
                return False
            self._modules[module_id] = dataclasses.replace(module, enabled=enabled)
        logger.info(f"Module {module_id} {'enabled' if enabled else 'disabled'}")
        return True

    async def initialize_all_modules(self) -> Dict[str, bool]:
        """
        Run the initialize hook of every enabled module, one after another.

        A failing hook is logged and reported as False; the remaining hooks
        still run and the module stays enabled.

        Returns:
            Mapping of module id to hook success, for modules that have a hook
        """
        results: Dict[str, bool] = {}

        for module in self.get_enabled_modules():
            if module.initialize is None:
                continue
            try:
                outcome = module.initialize()
                if inspect.isawaitable(outcome):
                    await outcome
                results[module.id] = True
            except Exception as e:
                logger.error(f"Failed to initialize module {module.id}: {e}", exc_info=True)
                results[module.id] = False

        return results

    def __len__(self) -> int:
        with self._lock:
            return len(self._modules)

    def __contains__(self, module_id: object) -> bool:
        with self._lock:
            return module_id in self._modules


def get_module_registry() -> ModuleRegistry:
    """Get the process-wide module registry."""
    return ModuleRegistry.get_instance()


# ==================== CACHING ====================

@dataclass
class CacheEntry:
    """Cached value with its absolute expiry time."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class MemoryCache:
    """
    In-memory TTL cache.

    Entries expire lazily: an expired entry is removed when it is next looked
    up. ``None`` is a legitimate cached value.

    Concurrent misses for the same key each compute unless ``single_flight``
    is set, in which case they share one computation; a cancelled caller does
    not cancel it for the others. A computation whose key
    is deleted, prefix-invalidated or cleared while it runs still returns its
    result to the caller but does not store it.
    """

    def __init__(
        self,
        default_ttl: float = 60,
        clock: Optional[Callable[[], float]] = None,
        enabled: bool = True,
        single_flight: bool = False,
    ):
        """
        Args:
            default_ttl: Lifetime in seconds used when no TTL is given
            clock: Monotonic time source in seconds
            enabled: When False every read misses and writes are dropped
            single_flight: Share one computation between concurrent misses
        """
        self.default_ttl = default_ttl
        self.enabled = enabled
        self.single_flight = single_flight
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

        # Stale-write tracking: start generation -> number of computations in flight
        self._generation = 0
        self._inflight: Dict[int, int] = {}
        self._deleted_keys: Dict[str, int] = {}
        self._invalidated_prefixes: Dict[str, int] = {}

        self._pending: Dict[str, asyncio.Task] = {}

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return _MISSING
        return entry.value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for ``key`` or ``default``."""
        if not self.enabled:
            return default
        with self._lock:
            value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds`` (default TTL when None)."""
        if not self.enabled:
            return
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = CacheEntry(value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._record_invalidation(self._deleted_keys, key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._record_invalidation(self._invalidated_prefixes, "")
        logger.debug("Memory cache cleared")

    def invalidate_by_prefix(self, prefix: str) -> int:
        """
        Remove every key starting with ``prefix``.

        Returns:
            Number of entries removed
        """
        with self._lock:
            matching = [key for key in self._entries if key.startswith(prefix)]
            for key in matching:
                del self._entries[key]
            self._record_invalidation(self._invalidated_prefixes, prefix)

        if matching:
            logger.debug(f"Invalidated {len(matching)} cache entries with prefix {prefix!r}")
        return len(matching)

    async def get_or_set(self, key: str, compute: Compute, ttl_seconds: Optional[float] = None) -> Any:
        """
        Return the cached value for ``key``, computing and storing it on a miss.

        Args:
            key: Cache key
            compute: Zero-argument callable, sync or async, producing the value
            ttl_seconds: Lifetime of a newly stored value (default TTL when None)

        Returns:
            Cached or freshly computed value

        Exceptions raised by ``compute`` propagate unchanged and nothing is stored.
        """
        if not self.enabled:
            return await self._call(compute)

        single_flight = self.single_flight
        with self._lock:
            value = self._lookup(key)
            if value is not _MISSING:
                return value

            if not single_flight:
                started_at = self._start_computation()
            else:
                # The computation runs as its own task so that cancelling one
                # caller leaves it running for the others
                task = self._pending.get(key)
                if task is None:
                    task = asyncio.ensure_future(self._compute_and_store(key, compute, ttl_seconds))
                    self._pending[key] = task
                    task.add_done_callback(lambda done: self._forget_pending(key, done))

        if single_flight:
            return await asyncio.shield(task)
        return await self._store_result(key, compute, ttl_seconds, started_at)

    async def _compute_and_store(self, key: str, compute: Compute, ttl_seconds: Optional[float]) -> Any:
        with self._lock:
            started_at = self._start_computation()
        return await self._store_result(key, compute, ttl_seconds, started_at)

    async def _store_result(self, key: str, compute: Compute, ttl_seconds: Optional[float], started_at: int) -> Any:
        try:
            value = await self._call(compute)
            with self._lock:
                if self._invalidated_since(key, started_at):
                    logger.debug(f"Cache key {key!r} invalidated during computation; result not stored")
                else:
                    self.set(key, value, ttl_seconds)
            return value
        finally:
            with self._lock:
                self._finish_computation(started_at)

    def _forget_pending(self, key: str, task: asyncio.Task) -> None:
        with self._lock:
            if self._pending.get(key) is task:
                del self._pending[key]
        if not task.cancelled():
            # Mark retrieved so a failure nobody awaited does not warn at GC
            task.exception()

    def _start_computation(self) -> int:
        started_at = self._generation
        self._inflight[started_at] = self._inflight.get(started_at, 0) + 1
        return started_at

    def _finish_computation(self, started_at: int) -> None:
        remaining = self._inflight[started_at] - 1
        if remaining:
            self._inflight[started_at] = remaining
        else:
            del self._inflight[started_at]

        if not self._inflight:
            self._deleted_keys.clear()
            self._invalidated_prefixes.clear()
            return

        # Invalidations no running computation started before can be dropped
        oldest = min(self._inflight)
        for target in (self._deleted_keys, self._invalidated_prefixes):
            for name in [name for name, at in target.items() if at <= oldest]:
                del target[name]

    @staticmethod
    async def _call(compute: Compute) -> Any:
        result = compute()
        if inspect.isawaitable(result):
            result = await result
        return result

    def _record_invalidation(self, target: Dict[str, int], key_or_prefix: str) -> None:
        self._generation += 1
        if self._inflight:
            target[key_or_prefix] = self._generation

    def _invalidated_since(self, key: str, generation: int) -> bool:
        if self._deleted_keys.get(key, 0) > generation:
            return True
        return any(
            key.startswith(prefix) and at > generation
            for prefix, at in self._invalidated_prefixes.items()
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        if not self.enabled or not isinstance(key, str):
            return False
        with self._lock:
            return self._lookup(key) is not _MISSING


memory_cache = MemoryCache()


def get_memory_cache() -> MemoryCache:
    """Get the process-wide memory cache."""
    return memory_cache


# ==================== MODULE EXPORTS ====================

__all__ = [
    "NavItem",
    "DashboardWidget",
    "Module",
    "ModuleRegistry",
    "get_module_registry",
    "CacheEntry",
    "MemoryCache",
    "memory_cache",
    "get_memory_cache",
    "WIDGET_WIDTHS",
]
