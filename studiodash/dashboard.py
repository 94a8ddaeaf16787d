"""
StudioDash Dashboard Service
============================

Assembles what the dashboard page shows: navigation from the enabled
modules, widget payloads in priority order, and the headline statistics.
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .core import ModuleRegistry, NavItem
from .repositories import Repositories

logger = logging.getLogger(__name__)


class WidgetPayload(BaseModel):
    """A widget ready for rendering."""

    title: str
    component: str
    width: str
    priority: int
    data: Any = None
    error: Optional[str] = Field(None, description="Set when the widget's data source failed")


class DashboardStats(BaseModel):
    """Headline numbers for a user's dashboard."""

    active_projects: int = 0
    pending_tasks: int = 0
    recent_files: int = 0
    total_expenses: float = 0.0


class MonthlyExpense(BaseModel):
    """One bar of the expense chart."""

    month: str = Field(..., description="Abbreviated month and two-digit year, e.g. 'Mar 24'")
    amount: float = 0.0


class DashboardService:
    """Dashboard assembly over a module registry and the cached repositories."""

    def __init__(self, registry: ModuleRegistry, repositories: Repositories, recent_file_days: int = 7):
        self.registry = registry
        self.repositories = repositories
        self.recent_file_days = recent_file_days

    def get_navigation(self) -> List[NavItem]:
        return self.registry.get_all_nav_items()

    async def build_widgets(self, user_id: str) -> List[WidgetPayload]:
        """
        Load the data of every enabled widget, in priority order.

        Data sources run one after another. A failing data source is logged
        and yields a payload with ``error`` set; the other widgets still load.

        Args:
            user_id: User whose dashboard is built

        Returns:
            One payload per widget
        """
        payloads = []

        for widget in self.registry.get_all_widgets():
            data, error = None, None
            if widget.data_source is not None:
                try:
                    data = await widget.data_source(self.repositories, user_id)
                except Exception as e:
                    logger.error(f"Widget '{widget.title}' failed to load: {e}", exc_info=True)
                    error = str(e) or type(e).__name__

            payloads.append(WidgetPayload(
                title=widget.title,
                component=widget.component,
                width=widget.width,
                priority=widget.priority,
                data=data,
                error=error,
            ))

        return payloads

    async def get_stats(self, user_id: str) -> DashboardStats:
        """Active projects, pending tasks, recently uploaded files and total expenses."""
        return DashboardStats(
            active_projects=await self.repositories.projects.count_active_for_user(user_id),
            pending_tasks=await self.repositories.tasks.count_pending_for_user(user_id),
            recent_files=await self.repositories.files.count_recent_for_user(user_id, self.recent_file_days),
            total_expenses=await self.repositories.expenses.get_total_for_user(user_id),
        )

    async def get_expense_chart(
        self, user_id: str, months: int = 6, now: Optional[datetime] = None
    ) -> List[MonthlyExpense]:
        """Expense totals per calendar month, oldest first, ending with the current month."""
        totals = await self.repositories.expenses.get_monthly_totals_for_user(user_id, months, now)
        return [MonthlyExpense(**item) for item in totals]
