"""Dashboard statistics."""

from .dashboard import BookStats, Dashboard, DashboardStats, LoanStats, UserStats

__all__ = ["BookStats", "Dashboard", "DashboardStats", "LoanStats", "UserStats"]
