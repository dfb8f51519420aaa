"""Services package initializer: re-export service classes."""

from .order_service import OrderService
from .report_service import ReportService
from .stats_service import StatsService

__all__ = ["OrderService", "ReportService", "StatsService"]
