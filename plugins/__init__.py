# plugins/__init__.py
"""
StudioDash Feature Modules
==========================

Each feature module of the dashboard lives in its own file and registers a
``Module`` with the process-wide registry when it is imported:

- projects: audio production projects
- expenses: project expenses
- brainstorm: ideas and notes
- files: uploaded project files
- calendar: deadlines and schedules

Usage:
    registry = load_modules(disabled=settings.modules.disabled)
    results = await initialize_modules(registry)

Author: StudioDash Development Team
License: MIT
"""

import importlib
import logging
from typing import Dict, Iterable, List, Optional

from studiodash.core import Module, ModuleRegistry, get_module_registry

logger = logging.getLogger(__name__)

# Import order is registration order
FEATURE_MODULES = [
    "plugins.projects",
    "plugins.expenses",
    "plugins.brainstorm",
    "plugins.files",
    "plugins.calendar",
]


def discover_modules() -> List[Module]:
    """Import every feature module and return their definitions in load order."""
    modules = []
    for path in FEATURE_MODULES:
        feature = importlib.import_module(path)
        modules.append(feature.MODULE)
    return modules


def load_modules(
    registry: Optional[ModuleRegistry] = None,
    disabled: Iterable[str] = (),
) -> ModuleRegistry:
    """
    Register all feature modules and switch off the disabled ones.

    Args:
        registry: Target registry (process-wide registry when None)
        disabled: Module ids to disable

    Returns:
        The populated registry
    """
    if registry is None:
        registry = get_module_registry()

    for module in discover_modules():
        if module.id not in registry:
            registry.register_module(module)

    for module_id in disabled:
        if not registry.toggle_module_status(module_id, False):
            logger.warning(f"Cannot disable unknown module: {module_id}")

    logger.info(f"Loaded {len(registry.get_enabled_modules())} of {len(registry)} modules")
    return registry


async def initialize_modules(registry: Optional[ModuleRegistry] = None) -> Dict[str, bool]:
    """Run every enabled module's initialize hook."""
    if registry is None:
        registry = get_module_registry()
    results = await registry.initialize_all_modules()

    failed = [module_id for module_id, ok in results.items() if not ok]
    if failed:
        logger.error(f"Modules failed to initialize: {', '.join(failed)}")
    else:
        logger.info("All modules initialized")

    return results


__all__ = [
    "FEATURE_MODULES",
    "discover_modules",
    "load_modules",
    "initialize_modules",
]
