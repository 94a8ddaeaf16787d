"""
StudioDash - Audio Studio Dashboard Core
========================================

Back-end core of an audio production studio's admin dashboard:

- Module registry: feature modules contribute navigation items and
  prioritized dashboard widgets
- Memory cache: process-wide TTL key/value store
- Cached repositories: memoized reads with namespace invalidation on writes
- Retry with exponential backoff for transient database failures

Usage:
    # Command line
    python -m studiodash modules
    python -m studiodash stats <user-id>

    # Programmatic usage
    >>> from studiodash.app import StudioDashApplication
    >>> async with StudioDashApplication() as application:
    ...     stats = await application.dashboard.get_stats(user_id)

License: MIT
Author: StudioDash Development Team
"""

__version__ = "1.0.0"
__author__ = "StudioDash Development Team"
__license__ = "MIT"


def get_version() -> str:
    return __version__


__all__ = ["__version__", "get_version"]
