from typing import Any, Dict, Optional

from bookstore.auth import RequestContext
from bookstore.errors import Unauthenticated
from bookstore.models import (
    REVENUE_STATUSES,
    Author,
    Book,
    Category,
    Order,
    OrderStatus,
    User,
)
from bookstore.responses import serialize_order_summary
from bookstore.store import EntityStore

RECENT_ORDERS_LIMIT = 5


class StatsService:
    """Entity counts for the whole system and per user"""

    def __init__(self, store: EntityStore):
        self.store = store

    def system_stats(self) -> Dict[str, int]:
        return {
            "totalUsers": self.store.count(User),
            "totalBooks": self.store.count(Book),
            "totalOrders": self.store.count(Order),
            "totalAuthors": self.store.count(Author),
            "totalCategories": self.store.count(Category),
        }

    def user_stats(self, context: Optional[RequestContext]) -> Dict[str, Any]:
        if context is None or not context.is_authenticated:
            raise Unauthenticated("Authentication required")

        user_id = context.user_id
        by_status = {
            status.value: self.store.count(
                Order, [Order.user_id == user_id, Order.status == status]
            )
            for status in OrderStatus
        }
        spent_orders = self.store.find_many(
            Order, filters=[Order.user_id == user_id, Order.status.in_(REVENUE_STATUSES)]
        )
        recent = self.store.find_many(
            Order,
            filters=[Order.user_id == user_id],
            order_by=(Order.created_at.desc(), Order.id.desc()),
            limit=RECENT_ORDERS_LIMIT,
        )
        return {
            "userId": user_id,
            "totalOrders": self.store.count(Order, [Order.user_id == user_id]),
            "ordersByStatus": by_status,
            "totalSpent": sum(order.total_amount for order in spent_orders),
            "recentOrders": [serialize_order_summary(order) for order in recent],
        }
