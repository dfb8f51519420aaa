"""Sales and inventory reports.

Every report is recomputed from order history on each call. Only orders in
``REVENUE_STATUSES`` count as sales; pending and cancelled orders never
contribute. Nothing here writes to the store.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import selectinload

from bookstore.config import Settings, settings as default_settings
from bookstore.identifiers import identifier_clause
from bookstore.models import (
    REVENUE_STATUSES,
    Author,
    Book,
    Category,
    Order,
    OrderItem,
)
from bookstore.services.report_filters import (
    TREND_PERIODS,
    DateRange,
    ReportFilter,
    check_range_for_series,
    iter_periods,
    next_period,
    period_key,
    period_start,
)
from bookstore.store import EntityStore
from bookstore.utils import percent_change, round_half_up, utcnow

logger = logging.getLogger(__name__)

BOOK_DETAIL_OPTIONS = (selectinload(Book.categories), selectinload(Book.authors))

REPORT_ORDER_OPTIONS = (
    selectinload(Order.order_items)
    .selectinload(OrderItem.book)
    .selectinload(Book.categories),
    selectinload(Order.order_items)
    .selectinload(OrderItem.book)
    .selectinload(Book.authors),
)

REPORT_ITEM_OPTIONS = (
    selectinload(OrderItem.order),
    selectinload(OrderItem.book).selectinload(Book.categories),
    selectinload(OrderItem.book).selectinload(Book.authors),
)

CRITICAL_STOCK_LEVEL = 3
MOVEMENT_HISTORY_LIMIT = 10


def _names(entities: Iterable) -> str:
    return ", ".join(entity.name for entity in entities)


def _isoformat(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


def _items_sold(order: Order) -> int:
    return sum(item.quantity for item in order.order_items)


class ReportService:
    def __init__(
        self,
        store: EntityStore,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock

    # Queries

    def _book_clauses(self, report_filter: ReportFilter) -> List[Any]:
        clauses = []
        if report_filter.book is not None:
            clauses.append(identifier_clause(Book, report_filter.book))
        if report_filter.category is not None:
            clauses.append(
                Book.categories.any(identifier_clause(Category, report_filter.category))
            )
        if report_filter.author is not None:
            clauses.append(
                Book.authors.any(identifier_clause(Author, report_filter.author))
            )
        return clauses

    def _order_clauses(self, date_range: DateRange) -> List[Any]:
        return [Order.status.in_(REVENUE_STATUSES), *date_range.clauses(Order.created_at)]

    def _matching_books(self, report_filter: ReportFilter, extra: Iterable = ()) -> List[Book]:
        return self.store.find_many(
            Book,
            filters=[*self._book_clauses(report_filter), *extra],
            options=BOOK_DETAIL_OPTIONS,
        )

    def _revenue_orders(self, report_filter: ReportFilter) -> List[Order]:
        clauses = self._order_clauses(report_filter.date_range)
        if report_filter.filters_books:
            book_ids = [book.id for book in self._matching_books(report_filter)]
            if not book_ids:
                return []
            clauses.append(Order.order_items.any(OrderItem.book_id.in_(book_ids)))
        return self.store.find_many(
            Order,
            filters=clauses,
            options=REPORT_ORDER_OPTIONS,
            order_by=(Order.created_at, Order.id),
        )

    def _sold_items(
        self,
        date_range: DateRange,
        book_ids: Optional[List[int]] = None,
        book_clauses: Iterable = (),
        newest_first: bool = False,
    ) -> List[OrderItem]:
        clauses = [OrderItem.order.has(and_(*self._order_clauses(date_range)))]
        if book_ids is not None:
            clauses.append(OrderItem.book_id.in_(book_ids))
        book_clauses = list(book_clauses)
        if book_clauses:
            clauses.append(OrderItem.book.has(and_(*book_clauses)))
        items = self.store.find_many(
            OrderItem, filters=clauses, options=REPORT_ITEM_OPTIONS, order_by=(OrderItem.id,)
        )
        if newest_first:
            items.sort(key=lambda item: (item.order.created_at, item.id), reverse=True)
        return items

    # Time series

    def time_series(
        self, orders: List[Order], group_by: str, date_range: DateRange = DateRange()
    ) -> List[Dict[str, Any]]:
        """One point per period in range, zero-filled where no order falls."""
        first = date_range.start
        last = date_range.end - timedelta(microseconds=1) if date_range.end else None
        if orders:
            first = first or min(order.created_at for order in orders)
            last = last or max(order.created_at for order in orders)
        else:
            first, last = first or last, last or first
        if first is None:
            return []

        buckets: Dict[str, List[Order]] = {}
        for order in orders:
            key = period_key(period_start(order.created_at, group_by), group_by)
            buckets.setdefault(key, []).append(order)

        series = []
        for _, key, label in iter_periods(first, last, group_by):
            period_orders = buckets.get(key, [])
            revenue = sum(order.total_amount for order in period_orders)
            count = len(period_orders)
            series.append(
                {
                    "period": key,
                    "label": label,
                    "revenue": revenue,
                    "orders": count,
                    "itemsSold": sum(_items_sold(order) for order in period_orders),
                    "averageOrderValue": round_half_up(revenue / count) if count else 0,
                }
            )
        return series

    # Reports

    def compute_revenue(
        self, report_filter: ReportFilter, group_by: Optional[str] = None
    ) -> Dict[str, Any]:
        logger.info(f"Revenue report: filter={report_filter}, groupBy={group_by}")
        check_range_for_series(report_filter.date_range, group_by)
        orders = self._revenue_orders(report_filter)

        book_sales: Dict[int, Dict[str, Any]] = {}
        total_revenue = 0
        total_items = 0
        for order in orders:
            total_revenue += order.total_amount
            for item in order.order_items:
                total_items += item.quantity
                row = book_sales.get(item.book_id)
                if row is None:
                    row = book_sales[item.book_id] = {
                        "bookId": item.book_id,
                        "bookName": item.book.name,
                        "quantitySold": 0,
                        "totalRevenue": 0,
                        "unitPrice": item.unit_price,
                        "categories": _names(item.book.categories),
                        "authors": _names(item.book.authors),
                    }
                row["quantitySold"] += item.quantity
                row["totalRevenue"] += item.total_price

        total_orders = len(orders)
        result = {
            "summary": {
                "totalRevenue": total_revenue,
                "totalOrders": total_orders,
                "totalItemsSold": total_items,
                "averageOrderValue": round_half_up(total_revenue / total_orders)
                if total_orders
                else 0,
            },
            "bookSales": sorted(book_sales.values(), key=lambda row: -row["totalRevenue"]),
            "grandTotal": total_revenue,
        }
        if group_by:
            result["timeSeries"] = self.time_series(orders, group_by, report_filter.date_range)
        return result

    def compute_inventory(self, report_filter: ReportFilter) -> Dict[str, Any]:
        logger.info(f"Inventory report: filter={report_filter}")
        books = self._matching_books(report_filter)
        rows: Dict[int, Dict[str, Any]] = {
            book.id: {
                "bookId": book.id,
                "bookName": book.name,
                "currentStock": book.quantity,
                "quantitySold": 0,
                "revenue": 0,
                "categories": _names(book.categories),
                "authors": _names(book.authors),
                "unitPrice": book.sale_price,
            }
            for book in books
        }

        book_ids = list(rows) if report_filter.filters_books else None
        if rows:
            for item in self._sold_items(report_filter.date_range, book_ids=book_ids):
                row = rows.get(item.book_id)
                if row is not None:
                    row["quantitySold"] += item.quantity
                    row["revenue"] += item.total_price

        inventory = sorted(rows.values(), key=lambda row: -row["quantitySold"])
        low_stock = [
            row for row in inventory if row["currentStock"] < self.settings.low_stock_threshold
        ]
        return {
            "summary": {
                "totalBooks": len(inventory),
                "totalItemsSold": sum(row["quantitySold"] for row in inventory),
                "totalRevenue": sum(row["revenue"] for row in inventory),
                "lowStockCount": len(low_stock),
            },
            "books": inventory,
            "lowStockBooks": low_stock,
        }

    def low_stock(
        self,
        threshold: Optional[int] = None,
        report_filter: ReportFilter = ReportFilter(),
        sort_by: str = "quantity",
    ) -> Dict[str, Any]:
        threshold = threshold or self.settings.low_stock_threshold
        now = self.clock()
        books = self._matching_books(report_filter, extra=[Book.quantity < threshold])

        last_sold: Dict[int, datetime] = {}
        if books:
            for item in self._sold_items(DateRange(), book_ids=[book.id for book in books]):
                sold_at = item.order.created_at
                if item.book_id not in last_sold or sold_at > last_sold[item.book_id]:
                    last_sold[item.book_id] = sold_at

        rows = []
        for book in books:
            sold_at = last_sold.get(book.id)
            rows.append(
                {
                    "bookId": book.id,
                    "documentId": book.document_id,
                    "bookName": book.name,
                    "currentStock": book.quantity,
                    "threshold": threshold,
                    "stockStatus": "OUT_OF_STOCK" if book.quantity == 0 else "LOW_STOCK",
                    "categories": _names(book.categories),
                    "authors": _names(book.authors),
                    "unitPrice": book.sale_price,
                    "lastSoldDate": _isoformat(sold_at),
                    "daysSinceLastSold": (now - sold_at).days if sold_at else None,
                    "_lastSold": sold_at,
                }
            )

        if sort_by == "name":
            rows.sort(key=lambda row: row["bookName"])
        elif sort_by == "lastSold":
            # most recent first, never-sold books last
            rows.sort(
                key=lambda row: (row["_lastSold"] is not None, row["_lastSold"] or datetime.min),
                reverse=True,
            )
        else:
            rows.sort(key=lambda row: row["currentStock"])
        for row in rows:
            del row["_lastSold"]

        return {
            "lowStockBooks": rows,
            "summary": {
                "totalBooksAnalyzed": len(books),
                "outOfStockCount": sum(1 for row in rows if row["currentStock"] == 0),
                "lowStockCount": sum(1 for row in rows if row["currentStock"] > 0),
                "threshold": threshold,
                "criticalBooks": sum(
                    1 for row in rows if row["currentStock"] <= CRITICAL_STOCK_LEVEL
                ),
            },
        }

    def inventory_movement(self, report_filter: ReportFilter) -> Dict[str, Any]:
        logger.info(f"Inventory movement report: filter={report_filter}")
        books = {book.id: book for book in self._matching_books(report_filter)}
        book_ids = list(books) if report_filter.filters_books else None

        stats: Dict[int, Dict[str, Any]] = {}
        total_movements = 0
        if books:
            movements = self._sold_items(
                report_filter.date_range, book_ids=book_ids, newest_first=True
            )
            for movement in movements:
                book = books.get(movement.book_id)
                if book is None:
                    continue
                total_movements += 1
                row = stats.get(book.id)
                if row is None:
                    row = stats[book.id] = {
                        "bookId": book.id,
                        "bookName": book.name,
                        "currentStock": book.quantity,
                        "categories": _names(book.categories),
                        "authors": _names(book.authors),
                        "totalMovements": 0,
                        "totalQuantityMoved": 0,
                        "averageMovementSize": 0,
                        "lastMovementDate": _isoformat(movement.order.created_at),
                        "movements": [],
                    }
                row["totalMovements"] += 1
                row["totalQuantityMoved"] += movement.quantity
                if len(row["movements"]) < MOVEMENT_HISTORY_LIMIT:
                    row["movements"].append(
                        {
                            "date": _isoformat(movement.order.created_at),
                            "quantity": movement.quantity,
                            "orderStatus": movement.order.status.value,
                            "unitPrice": movement.unit_price,
                            "totalPrice": movement.total_price,
                        }
                    )

        movement_data = sorted(stats.values(), key=lambda row: -row["totalQuantityMoved"])
        for row in movement_data:
            row["averageMovementSize"] = round_half_up(
                row["totalQuantityMoved"] / row["totalMovements"]
            )

        return {
            "movementData": movement_data,
            "summary": {
                "totalBooksAnalyzed": len(movement_data),
                "totalMovements": total_movements,
                "totalQuantityMoved": sum(row["totalQuantityMoved"] for row in movement_data),
                "averageMovementPerBook": round_half_up(total_movements / len(movement_data))
                if movement_data
                else 0,
            },
        }

    def revenue_trends(self, period: str = "last30days", group_by: Optional[str] = None) -> Dict[str, Any]:
        days, default_group_by = TREND_PERIODS[period]
        group_by = group_by or default_group_by
        now = self.clock()
        date_range = DateRange(now - timedelta(days=days), now + timedelta(microseconds=1))

        orders = self._revenue_orders(ReportFilter(date_range=date_range))
        series = self.time_series(orders, group_by, date_range)
        total_revenue = sum(point["revenue"] for point in series)
        return {
            "period": period,
            "groupBy": group_by,
            "timeSeries": series,
            "summary": {
                "totalRevenue": total_revenue,
                "totalOrders": sum(point["orders"] for point in series),
                "averageRevenuePerPeriod": round_half_up(total_revenue / len(series))
                if series
                else 0,
            },
        }

    def top_books(self, report_filter: ReportFilter, limit: int = 10) -> Dict[str, Any]:
        items = self._sold_items(
            report_filter.date_range, book_clauses=self._book_clauses(report_filter)
        )

        performance: Dict[int, Dict[str, Any]] = {}
        for item in items:
            row = performance.get(item.book_id)
            if row is None:
                row = performance[item.book_id] = {
                    "bookId": item.book_id,
                    "bookName": item.book.name,
                    "categories": _names(item.book.categories),
                    "authors": _names(item.book.authors),
                    "unitPrice": item.unit_price,
                    "totalRevenue": 0,
                    "quantitySold": 0,
                    "orderCount": 0,
                }
            row["totalRevenue"] += item.total_price
            row["quantitySold"] += item.quantity
            row["orderCount"] += 1

        top = sorted(performance.values(), key=lambda row: -row["totalRevenue"])[:limit]
        return {
            "topBooks": top,
            "summary": {
                "totalBooksAnalyzed": len(performance),
                "totalRevenue": sum(row["totalRevenue"] for row in top),
                "totalQuantitySold": sum(row["quantitySold"] for row in top),
            },
        }

    def dashboard(self) -> Dict[str, Any]:
        now = self.clock()
        current_start = datetime(now.year, now.month, 1)
        next_start = datetime.combine(
            next_period(current_start.date(), "month"), datetime.min.time()
        )
        previous_start = (current_start - timedelta(days=1)).replace(day=1)

        current = self._month_metrics(DateRange(current_start, next_start))
        previous = self._month_metrics(DateRange(previous_start, current_start))

        low_stock_books = self.store.find_many(
            Book,
            filters=[Book.quantity < self.settings.low_stock_threshold],
            order_by=(Book.quantity, Book.id),
            limit=self.settings.dashboard_low_stock_limit,
        )
        return {
            "currentMonth": current,
            "previousMonth": previous,
            "growth": {
                key: percent_change(current[key], previous[key])
                for key in ("revenue", "orders", "itemsSold")
            },
            "lowStockBooks": [
                {
                    "id": book.id,
                    "documentId": book.document_id,
                    "name": book.name,
                    "quantity": book.quantity,
                }
                for book in low_stock_books
            ],
        }

    def _month_metrics(self, date_range: DateRange) -> Dict[str, int]:
        orders = self._revenue_orders(ReportFilter(date_range=date_range))
        return {
            "revenue": sum(order.total_amount for order in orders),
            "orders": len(orders),
            "itemsSold": sum(_items_sold(order) for order in orders),
        }
