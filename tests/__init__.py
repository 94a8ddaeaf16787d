# tests/__init__.py
"""
StudioDash Test Suite
=====================

Test Structure:
- conftest.py: Shared pytest configuration and fixtures
- test_registry.py: Module registry
- test_cache.py: Memory cache
- test_repositories.py: Cached repository decorator and domain repositories
- test_database.py: Retry helper, database manager and health check
- test_plugins.py: Feature modules and the module loader
- test_dashboard.py: Dashboard service
- test_config.py: Configuration loading and validation
- test_cli.py: Command line interface

Usage:
    # Run all tests
    pytest tests/

    # Run specific test file
    pytest tests/test_cache.py

    # Run with coverage
    pytest --cov=studiodash tests/

Author: StudioDash Development Team
License: MIT
"""

# Test configuration constants
TEST_DATABASE_URL = "sqlite:///:memory:"

# Sample data constants (match studiodash.seed)
ADMIN_EMAIL = "admin@visualharmonics.com"
MEMBER_EMAIL = "john@visualharmonics.com"
SAMPLE_PROJECT_NAME = "Fantasy RPG Soundtrack"
SAMPLE_EXPENSE_TOTAL = 749.99

__all__ = [
    "TEST_DATABASE_URL",
    "ADMIN_EMAIL",
    "MEMBER_EMAIL",
    "SAMPLE_PROJECT_NAME",
    "SAMPLE_EXPENSE_TOTAL",
]
