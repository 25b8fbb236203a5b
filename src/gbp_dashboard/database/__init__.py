"""
Database module for the GBP Dashboard
Provides DuckDB-based storage for accounts, locations, reviews, questions, posts and metrics
"""
from .manager import DatabaseManager
from .models import Account, Location, Review, Question, Post, PerformanceMetric, SyncRun
from .queries import DashboardQueries

__all__ = [
    "DatabaseManager",
    "Account",
    "Location",
    "Review",
    "Question",
    "Post",
    "PerformanceMetric",
    "SyncRun",
    "DashboardQueries"
]
