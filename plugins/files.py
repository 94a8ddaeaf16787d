"""Files feature module: uploaded project files."""

import logging
from typing import Any, List

from studiodash.core import DashboardWidget, Module, NavItem, get_module_registry

logger = logging.getLogger(__name__)


async def recent_files(repositories: Any, user_id: str) -> List[dict]:
    return await repositories.files.find_recent_for_user(user_id)


async def initialize() -> None:
    logger.info("Files module initialized")


MODULE = Module(
    id="files",
    name="Files",
    description="Access and manage project files",
    enabled=True,
    icon="file",
    nav_items=[
        NavItem(
            label="Files",
            href="/dashboard/files",
            icon="file",
            description="Access and manage your project files",
        ),
    ],
    widgets=[
        DashboardWidget(
            title="Recent Files",
            priority=40,
            component="RecentFilesWidget",
            width="half",
            data_source=recent_files,
        ),
    ],
    initialize=initialize,
)

get_module_registry().register_module(MODULE)
