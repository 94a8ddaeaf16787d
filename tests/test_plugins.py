# tests/test_plugins.py
"""
Feature Module Tests
====================

Loading the five dashboard modules, their navigation, widgets, initialize
hooks and data sources.
"""

import logging

import pytest

from plugins import FEATURE_MODULES, discover_modules, initialize_modules, load_modules
from plugins import brainstorm, calendar, expenses, files, projects

from . import ADMIN_EMAIL, SAMPLE_EXPENSE_TOTAL, SAMPLE_PROJECT_NAME


class TestLoading:

    def test_discover_returns_modules_in_load_order(self):
        modules = discover_modules()

        assert [m.id for m in modules] == ["projects", "expenses", "brainstorm", "files", "calendar"]
        assert len(modules) == len(FEATURE_MODULES)

    def test_load_registers_all_modules(self, registry):
        load_modules(registry)

        assert [m.id for m in registry.get_enabled_modules()] == [
            "projects", "expenses", "brainstorm", "files", "calendar"
        ]

    def test_loading_twice_keeps_registry_stable(self, registry):
        load_modules(registry)
        load_modules(registry)

        assert len(registry) == 5

    def test_widgets_in_priority_order(self, registry):
        load_modules(registry)

        widgets = registry.get_all_widgets()

        assert [(w.title, w.priority) for w in widgets] == [
            ("Recent Projects", 10),
            ("Upcoming Deadlines", 15),
            ("Expense Summary", 20),
            ("Recent Expenses", 21),
            ("Recent Notes", 30),
            ("Recent Files", 40),
        ]
        assert [w.width for w in widgets if w.width == "full"] == ["full"]
        assert all(w.data_source is not None for w in widgets)

    def test_navigation(self, registry):
        load_modules(registry)

        nav = registry.get_all_nav_items()

        assert [item.label for item in nav] == ["Projects", "Expenses", "Brainstorm", "Files", "Calendar"]
        assert nav[0].href == "/dashboard/projects"

    def test_disabled_modules(self, registry):
        load_modules(registry, disabled=["files", "calendar"])

        assert [m.id for m in registry.get_enabled_modules()] == ["projects", "expenses", "brainstorm"]
        assert "Recent Files" not in [w.title for w in registry.get_all_widgets()]
        assert files.MODULE.enabled is True

    def test_unknown_disabled_module_is_logged(self, registry, caplog):
        with caplog.at_level(logging.WARNING, logger="plugins"):
            load_modules(registry, disabled=["mixing-desk"])

        assert "Cannot disable unknown module: mixing-desk" in caplog.text
        assert len(registry.get_enabled_modules()) == 5

    def test_default_registry_is_process_wide(self, registry):
        from studiodash.core import get_module_registry

        assert load_modules() is get_module_registry()
        assert "projects" in get_module_registry()


class TestInitialization:

    @pytest.mark.asyncio
    async def test_all_modules_initialize(self, registry, caplog):
        load_modules(registry)

        with caplog.at_level(logging.INFO):
            results = await initialize_modules(registry)

        assert results == {module_id: True for module_id in
                           ["projects", "expenses", "brainstorm", "files", "calendar"]}
        assert "Projects module initialized" in caplog.text
        assert "All modules initialized" in caplog.text

    @pytest.mark.asyncio
    async def test_disabled_modules_skip_initialization(self, registry):
        load_modules(registry, disabled=["brainstorm"])

        results = await initialize_modules(registry)

        assert "brainstorm" not in results


class TestDataSources:

    @pytest.mark.asyncio
    async def test_recent_projects(self, repositories, sample_data):
        result = await projects.recent_projects(repositories, sample_data["member_id"])

        assert [p["name"] for p in result] == [SAMPLE_PROJECT_NAME]

    @pytest.mark.asyncio
    async def test_expense_summary(self, repositories, sample_data):
        result = await expenses.expense_summary(repositories, sample_data["admin_id"])

        assert [item["category"] for item in result["categories"]] == ["software", "studio"]
        assert result["total"] == pytest.approx(SAMPLE_EXPENSE_TOTAL)

    @pytest.mark.asyncio
    async def test_expense_summary_without_expenses(self, repositories, sample_data):
        result = await expenses.expense_summary(repositories, sample_data["member_id"])

        assert result == {"categories": [], "total": 0}

    @pytest.mark.asyncio
    async def test_recent_notes(self, repositories, sample_data):
        result = await brainstorm.recent_notes(repositories, sample_data["admin_id"])

        assert len(result) == 2
        assert result[0]["author"]["email"] == ADMIN_EMAIL

    @pytest.mark.asyncio
    async def test_recent_files(self, repositories, sample_data):
        result = await files.recent_files(repositories, sample_data["admin_id"])

        assert [f["name"] for f in result] == ["main-theme-demo.wav"]

    @pytest.mark.asyncio
    async def test_upcoming_deadlines(self, repositories, sample_data):
        result = await calendar.upcoming_deadlines(repositories, sample_data["admin_id"])

        assert [t["title"] for t in result] == ["Create main theme"]
