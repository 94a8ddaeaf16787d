"""Calendar feature module: deadlines and schedules."""

import logging
from typing import Any, List

from studiodash.core import DashboardWidget, Module, NavItem, get_module_registry

logger = logging.getLogger(__name__)


async def upcoming_deadlines(repositories: Any, user_id: str) -> List[dict]:
    return await repositories.tasks.find_upcoming_for_user(user_id)


async def initialize() -> None:
    logger.info("Calendar module initialized")


MODULE = Module(
    id="calendar",
    name="Calendar",
    description="View and manage your deadlines and schedules",
    enabled=True,
    icon="calendar",
    nav_items=[
        NavItem(
            label="Calendar",
            href="/dashboard/calendar",
            icon="calendar",
            description="View and manage your upcoming deadlines",
        ),
    ],
    widgets=[
        # Shown ahead of the expense and note widgets
        DashboardWidget(
            title="Upcoming Deadlines",
            priority=15,
            component="DeadlinesCalendarWidget",
            width="full",
            data_source=upcoming_deadlines,
        ),
    ],
    initialize=initialize,
)

get_module_registry().register_module(MODULE)
