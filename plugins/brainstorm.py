"""Brainstorm feature module: ideas and notes."""

import logging
from typing import Any, List

from studiodash.core import DashboardWidget, Module, NavItem, get_module_registry

logger = logging.getLogger(__name__)


async def recent_notes(repositories: Any, user_id: str) -> List[dict]:
    return await repositories.notes.find_recent_for_user(user_id)


async def initialize() -> None:
    logger.info("Brainstorm module initialized")


MODULE = Module(
    id="brainstorm",
    name="Brainstorm",
    description="Organize and capture ideas and notes",
    enabled=True,
    icon="lightbulb",
    nav_items=[
        NavItem(
            label="Brainstorm",
            href="/dashboard/brainstorm",
            icon="lightbulb",
            description="Capture and organize creative ideas",
        ),
    ],
    widgets=[
        DashboardWidget(
            title="Recent Notes",
            priority=30,
            component="RecentNotesWidget",
            width="half",
            data_source=recent_notes,
        ),
    ],
    initialize=initialize,
)

get_module_registry().register_module(MODULE)
