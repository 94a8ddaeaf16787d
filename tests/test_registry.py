# tests/test_registry.py
"""
Module Registry Tests
=====================

Registration, ordering, enable/disable and initialization of feature modules.
"""

import logging
from unittest.mock import AsyncMock

import pytest

from studiodash.core import DashboardWidget, ModuleRegistry, get_module_registry

from .conftest import make_module


class TestRegistration:
    """Registering and looking up modules."""

    def test_register_and_get_module(self, registry):
        module = make_module("projects")
        registry.register_module(module)

        assert registry.get_module("projects") is module
        assert registry.get_module("unknown") is None
        assert "projects" in registry
        assert len(registry) == 1

    def test_overwrite_logs_warning_and_keeps_position(self, registry, caplog):
        registry.register_module(make_module("projects"))
        registry.register_module(make_module("expenses"))
        replacement = make_module("projects", nav_labels=["Replaced"])

        with caplog.at_level(logging.WARNING, logger="studiodash.core"):
            registry.register_module(replacement)

        assert "Module with ID projects is already registered. Overwriting." in caplog.text
        assert [m.id for m in registry.get_all_modules()] == ["projects", "expenses"]
        assert registry.get_module("projects") is replacement

    def test_get_all_modules_returns_snapshot(self, registry):
        registry.register_module(make_module("projects"))
        snapshot = registry.get_all_modules()

        registry.register_module(make_module("expenses"))

        assert [m.id for m in snapshot] == ["projects"]

    def test_enabled_filter(self, registry):
        registry.register_module(make_module("projects"))
        registry.register_module(make_module("files", enabled=False))

        assert [m.id for m in registry.get_enabled_modules()] == ["projects"]
        assert len(registry.get_all_modules()) == 2


class TestAggregation:
    """Navigation and widget aggregation."""

    def test_nav_items_follow_registration_order(self, registry):
        registry.register_module(make_module("projects", nav_labels=["List", "Board"]))
        registry.register_module(make_module("files", enabled=False, nav_labels=["Files"]))
        registry.register_module(make_module("expenses", nav_labels=["Expenses"]))

        labels = [item.label for item in registry.get_all_nav_items()]

        assert labels == ["List", "Board", "Expenses"]

    def test_widgets_sorted_by_priority(self, registry):
        registry.register_module(make_module("expenses", widget_priorities=[20, 21]))
        registry.register_module(make_module("projects", widget_priorities=[10]))
        registry.register_module(make_module("calendar", widget_priorities=[15]))

        priorities = [widget.priority for widget in registry.get_all_widgets()]

        assert priorities == [10, 15, 20, 21]

    def test_equal_priorities_keep_registration_order(self, registry):
        registry.register_module(make_module("first", widget_priorities=[5]))
        registry.register_module(make_module("second", widget_priorities=[5]))

        titles = [widget.title for widget in registry.get_all_widgets()]

        assert titles == ["first-5", "second-5"]

    def test_missing_widgets_and_disabled_modules_contribute_nothing(self, registry):
        registry.register_module(make_module("no-widgets", widget_priorities=None))
        registry.register_module(make_module("disabled", enabled=False, widget_priorities=[1]))
        registry.register_module(make_module("projects", widget_priorities=[10]))

        assert [widget.title for widget in registry.get_all_widgets()] == ["projects-10"]

    def test_widget_width_is_validated(self):
        with pytest.raises(ValueError):
            DashboardWidget(title="Bad", priority=1, component="BadWidget", width="quarter")


class TestToggle:
    """Enabling and disabling modules."""

    def test_toggle_unknown_module_returns_false(self, registry):
        registry.register_module(make_module("projects"))

        assert registry.toggle_module_status("unknown", False) is False
        assert [m.id for m in registry.get_enabled_modules()] == ["projects"]

    def test_toggle_replaces_module_with_copy(self, registry):
        original = make_module("projects", widget_priorities=[10])
        registry.register_module(original)

        assert registry.toggle_module_status("projects", False) is True

        stored = registry.get_module("projects")
        assert stored is not original
        assert stored.enabled is False
        assert original.enabled is True
        assert stored.widgets is original.widgets

    def test_disabled_module_disappears_from_views_immediately(self, registry):
        registry.register_module(make_module("projects", nav_labels=["Projects"], widget_priorities=[10]))
        registry.register_module(make_module("files", nav_labels=["Files"], widget_priorities=[40]))

        registry.toggle_module_status("projects", False)

        assert [item.label for item in registry.get_all_nav_items()] == ["Files"]
        assert [widget.priority for widget in registry.get_all_widgets()] == [40]

        registry.toggle_module_status("projects", True)

        assert [item.label for item in registry.get_all_nav_items()] == ["Projects", "Files"]


class TestInitialization:
    """Running module initialize hooks."""

    @pytest.mark.asyncio
    async def test_hooks_run_in_registration_order(self, registry):
        calls = []

        async def hook_for(name):
            calls.append(name)

        registry.register_module(make_module("projects", initialize=lambda: hook_for("projects")))
        registry.register_module(make_module("expenses", initialize=lambda: hook_for("expenses")))

        results = await registry.initialize_all_modules()

        assert calls == ["projects", "expenses"]
        assert results == {"projects": True, "expenses": True}

    @pytest.mark.asyncio
    async def test_failing_hook_is_isolated(self, registry, caplog):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        registry.register_module(make_module("broken", initialize=failing))
        registry.register_module(make_module("projects", initialize=healthy))
        registry.register_module(make_module("no-hook"))

        with caplog.at_level(logging.ERROR, logger="studiodash.core"):
            results = await registry.initialize_all_modules()

        assert results == {"broken": False, "projects": True}
        healthy.assert_awaited_once()
        assert registry.get_module("broken").enabled is True
        assert "Failed to initialize module broken" in caplog.text

    @pytest.mark.asyncio
    async def test_disabled_modules_are_not_initialized(self, registry):
        hook = AsyncMock()
        registry.register_module(make_module("files", enabled=False, initialize=hook))

        results = await registry.initialize_all_modules()

        assert results == {}
        hook.assert_not_awaited()


class TestSingleton:
    """Process-wide registry access."""

    def test_get_instance_returns_same_registry(self, registry):
        assert ModuleRegistry.get_instance() is ModuleRegistry.get_instance()
        assert get_module_registry() is ModuleRegistry.get_instance()

    def test_reset_instance_creates_new_registry(self, registry):
        first = ModuleRegistry.get_instance()
        first.register_module(make_module("projects"))

        ModuleRegistry.reset_instance()

        assert ModuleRegistry.get_instance() is not first
        assert len(ModuleRegistry.get_instance()) == 0

    def test_direct_construction_is_independent(self, registry):
        registry.register_module(make_module("projects"))

        assert "projects" not in ModuleRegistry.get_instance()
