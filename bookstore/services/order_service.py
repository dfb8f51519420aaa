"""Order placement.

``create_order`` validates the requested items, then in a single
transaction locks the referenced books, checks stock, deducts inventory and
writes the order with its line items. Any failure leaves books, orders and
order items exactly as they were.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random,
)

from bookstore.auth import RequestContext
from bookstore.config import Settings, settings as default_settings
from bookstore.errors import (
    InsufficientInventory,
    InvalidInput,
    NotFound,
    TransactionFailure,
    Unauthenticated,
)
from bookstore.models import Book, Order, OrderItem, OrderStatus
from bookstore.store import EntityStore

logger = logging.getLogger(__name__)

ORDER_DETAIL_OPTIONS = (
    selectinload(Order.order_items)
    .selectinload(OrderItem.book)
    .selectinload(Book.categories),
    selectinload(Order.order_items)
    .selectinload(OrderItem.book)
    .selectinload(Book.authors),
    selectinload(Order.user),
)


@dataclass(frozen=True)
class OrderLine:
    book_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    book: Book
    quantity: int
    unit_price: int
    total_price: int


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_items(items: Any) -> List[OrderLine]:
    """Check the raw item list; errors name the 1-based item and the field."""
    if not isinstance(items, list) or not items:
        raise InvalidInput(
            "Items are required and must be a non-empty array. "
            "Each item should have book_id and quantity.",
            {"field": "items"},
        )

    lines = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise InvalidInput(
                f"Item {index}: must be an object with book_id and quantity",
                {"itemIndex": index, "field": "item"},
            )
        book_id = item.get("book_id")
        quantity = item.get("quantity")
        if not _is_positive_int(book_id):
            raise InvalidInput(
                f"Item {index}: book_id is required and must be a positive integer",
                {"itemIndex": index, "field": "book_id"},
            )
        if not _is_positive_int(quantity):
            raise InvalidInput(
                f"Item {index}: quantity is required and must be a positive integer",
                {"itemIndex": index, "field": "quantity"},
            )
        lines.append(OrderLine(book_id=book_id, quantity=quantity))
    return lines


def _optional_text(value: Any, field: str) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise InvalidInput(f"{field} must be a string", {"field": field})


def is_transient_error(exc: BaseException) -> bool:
    """Deadlocks and lock wait timeouts: the whole transaction may be retried."""
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc).lower()
    return (
        "deadlock" in message
        or "lock wait timeout" in message
        or "database is locked" in message
    )


class OrderService:
    def __init__(self, store: EntityStore, settings: Settings = default_settings):
        self.store = store
        self.settings = settings

    def create_order(
        self,
        context: Optional[RequestContext],
        items: Any,
        shipping_address: Any = None,
        phone: Any = None,
        notes: Any = None,
    ) -> Order:
        if context is None or not context.is_authenticated:
            raise Unauthenticated(
                "Authentication required. Please provide a valid Bearer token."
            )

        lines = validate_items(items)
        shipping_address = _optional_text(shipping_address, "shipping_address")
        phone = _optional_text(phone, "phone")
        notes = _optional_text(notes, "notes")

        logger.info(
            f"Creating order for user {context.user_id} with {len(lines)} item(s)"
        )

        try:
            for attempt in Retrying(
                retry=retry_if_exception(is_transient_error),
                stop=stop_after_attempt(self.settings.max_retry_attempts),
                wait=wait_random(0.2, 0.8),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    order_id = self._place_once(
                        context.user_id, lines, shipping_address, phone, notes
                    )
        except OperationalError as e:
            logger.error(f"Order for user {context.user_id} failed after retries: {e}")
            raise TransactionFailure(
                "Service busy, please try again later.",
                {"reason": "lock contention"},
                status_code=503,
            ) from e

        logger.info(f"Order {order_id} created for user {context.user_id}")
        return self._load_order(order_id)

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            f"Order transaction attempt {retry_state.attempt_number} hit a lock conflict, retrying"
        )

    def _place_once(
        self,
        user_id: int,
        lines: List[OrderLine],
        shipping_address: Optional[str],
        phone: Optional[str],
        notes: Optional[str],
    ) -> int:
        try:
            return self.store.run_transaction(
                lambda store: self._write_order(
                    store, user_id, lines, shipping_address, phone, notes
                )
            )
        except OperationalError as e:
            if is_transient_error(e):
                raise
            logger.error(f"Store error while creating order: {e}")
            raise TransactionFailure(
                "Failed to create order", {"reason": str(e.orig or e)}
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Store error while creating order: {e}")
            raise TransactionFailure("Failed to create order", {"reason": str(e)}) from e

    def _write_order(
        self,
        store: EntityStore,
        user_id: int,
        lines: List[OrderLine],
        shipping_address: Optional[str],
        phone: Optional[str],
        notes: Optional[str],
    ) -> int:
        books = store.lock_many(Book, (line.book_id for line in lines))

        # 1. Validate every line against the locked stock
        requested = OrderedDict()
        priced_lines = []
        total_amount = 0
        for index, line in enumerate(lines, start=1):
            book = books.get(line.book_id)
            if book is None:
                raise NotFound(
                    f"Book with ID {line.book_id} not found (item {index})",
                    {"bookId": line.book_id, "itemIndex": index},
                    status_code=400,
                )

            available = book.quantity - requested.get(book.id, 0)
            if available < line.quantity:
                logger.warning(
                    f"Not enough stock for book {book.id}: available {available}, requested {line.quantity}"
                )
                raise InsufficientInventory(
                    book.name, book.id, available, line.quantity, index
                )
            requested[book.id] = requested.get(book.id, 0) + line.quantity

            unit_price = book.sale_price
            line_total = unit_price * line.quantity
            total_amount += line_total
            priced_lines.append(
                PricedLine(
                    book=book,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    total_price=line_total,
                )
            )

        # 2. Deduct inventory, one write per book
        for book_id, quantity in requested.items():
            book = books[book_id]
            if not store.decrement(Book, book_id, "quantity", quantity):
                raise InsufficientInventory(book.name, book_id, book.quantity, quantity)
            logger.info(
                f"Updated stock for book {book_id}: {book.quantity} -> {book.quantity - quantity}"
            )

        # 3. Create the order and its items
        order = store.create(
            Order,
            user_id=user_id,
            total_amount=total_amount,
            status=OrderStatus.PENDING,
            shipping_address=shipping_address,
            phone=phone,
            notes=notes,
        )
        for priced in priced_lines:
            store.create(
                OrderItem,
                order_id=order.id,
                book_id=priced.book.id,
                quantity=priced.quantity,
                unit_price=priced.unit_price,
                total_price=priced.total_price,
            )
        return order.id

    def get_order(self, context: Optional[RequestContext], order_id: Any) -> Order:
        """Fetch one of the caller's orders; other users' orders look missing."""
        if context is None or not context.is_authenticated:
            raise Unauthenticated("Authentication required")
        order = self._load_order(order_id)
        if order.user_id != context.user_id:
            logger.info(f"User {context.user_id} asked for order {order_id} owned by another user")
            raise NotFound("Order not found", {"id": str(order_id)})
        return order

    def _load_order(self, order_id: Any) -> Order:
        order = self.store.find_by_id(Order, order_id, options=ORDER_DETAIL_OPTIONS)
        if order is None:
            raise NotFound("Order not found", {"id": str(order_id)})
        return order

    def list_orders(
        self, context: Optional[RequestContext], limit: int = 25, offset: int = 0
    ) -> List[Order]:
        if context is None or not context.is_authenticated:
            raise Unauthenticated("Authentication required")
        return self.store.find_many(
            Order,
            filters=[Order.user_id == context.user_id],
            options=ORDER_DETAIL_OPTIONS,
            order_by=(Order.created_at.desc(), Order.id.desc()),
            limit=limit,
            offset=offset,
        )
