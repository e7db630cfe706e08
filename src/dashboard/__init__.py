"""HTTP surface for renderers of the live book and simulation results."""

from .web import DashboardPanel, create_dashboard_app

__all__ = ["DashboardPanel", "create_dashboard_app"]
