"""Expenses feature module: project expense tracking."""

import logging
from typing import Any, Dict, List

from studiodash.core import DashboardWidget, Module, NavItem, get_module_registry

logger = logging.getLogger(__name__)


async def expense_summary(repositories: Any, user_id: str) -> Dict[str, Any]:
    """Per-category totals plus the overall total."""
    categories = await repositories.expenses.get_summary_by_category(user_id)
    return {
        "categories": categories,
        "total": sum(item["total"] for item in categories),
    }


async def recent_expenses(repositories: Any, user_id: str) -> List[dict]:
    return await repositories.expenses.find_recent_by_user_id(user_id)


async def initialize() -> None:
    logger.info("Expenses module initialized")


MODULE = Module(
    id="expenses",
    name="Expenses",
    description="Track and manage project expenses",
    enabled=True,
    icon="dollar-sign",
    nav_items=[
        NavItem(
            label="Expenses",
            href="/dashboard/expenses",
            icon="dollar-sign",
            description="Track and manage your project expenses",
        ),
    ],
    widgets=[
        DashboardWidget(
            title="Expense Summary",
            priority=20,
            component="ExpenseSummaryWidget",
            width="half",
            data_source=expense_summary,
        ),
        DashboardWidget(
            title="Recent Expenses",
            priority=21,
            component="RecentExpensesWidget",
            width="half",
            data_source=recent_expenses,
        ),
    ],
    initialize=initialize,
)

get_module_registry().register_module(MODULE)
