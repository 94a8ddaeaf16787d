"""Projects feature module: audio production projects."""

import logging
from typing import Any, List

from studiodash.core import DashboardWidget, Module, NavItem, get_module_registry

logger = logging.getLogger(__name__)


async def recent_projects(repositories: Any, user_id: str) -> List[dict]:
    return await repositories.projects.find_recent_for_user(user_id)


async def initialize() -> None:
    logger.info("Projects module initialized")


MODULE = Module(
    id="projects",
    name="Projects",
    description="Manage audio production projects",
    enabled=True,
    icon="folder-kanban",
    nav_items=[
        NavItem(
            label="Projects",
            href="/dashboard/projects",
            icon="folder-kanban",
            description="Manage your audio production projects",
        ),
    ],
    widgets=[
        DashboardWidget(
            title="Recent Projects",
            priority=10,
            component="RecentProjectsWidget",
            width="half",
            data_source=recent_projects,
        ),
    ],
    initialize=initialize,
)

get_module_registry().register_module(MODULE)
