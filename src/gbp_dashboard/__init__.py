"""
GBP Dashboard - Google Business Profile management for multiple accounts

Syncs reviews, questions, posts and performance metrics from Google into
DuckDB and provides the actions and analytics behind the dashboard:
1. Connecting accounts and importing locations
2. Syncing locations and replying to reviews (manually or automatically)
3. Answering customer questions and publishing posts
4. Overview statistics, health scores and weekly performance

Usage:
    from gbp_dashboard import config
    from gbp_dashboard.database import DatabaseManager
    from gbp_dashboard.sync import SyncEngine
    from gbp_dashboard.dashboard import DashboardService
"""

__version__ = "1.0.0"

from . import config
from . import utils
from .errors import ActionResult


def get_database_manager(*args, **kwargs):
    """Get a DatabaseManager instance (lazy import)"""
    from .database import DatabaseManager
    return DatabaseManager(*args, **kwargs)


__all__ = [
    "config",
    "utils",
    "ActionResult",
    "__version__",
    "get_database_manager",
]
