import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from bookstore.auth import ANONYMOUS, RequestContext
from bookstore.errors import (
    InsufficientInventory,
    InvalidInput,
    NotFound,
    TransactionFailure,
    Unauthenticated,
)
from bookstore.models import Book, Order, OrderItem, OrderStatus
from bookstore.services.order_service import OrderService, is_transient_error


@pytest.fixture
def service(store):
    return OrderService(store)


@pytest.fixture
def buyer(seed):
    user = seed.user()
    return RequestContext(user_id=user.id, username=user.username)


def stock_of(session, book_id):
    return session.get(Book, book_id).quantity


def test_anonymous_caller_is_rejected_before_validation(service):
    with pytest.raises(Unauthenticated):
        service.create_order(ANONYMOUS, items=None)


@pytest.mark.parametrize(
    "items,item_index,field",
    [
        (None, None, "items"),
        ([], None, "items"),
        (["oops"], 1, "item"),
        ([{"book_id": 1, "quantity": 1}, {"quantity": 2}], 2, "book_id"),
        ([{"book_id": True, "quantity": 1}], 1, "book_id"),
        ([{"book_id": 1, "quantity": 0}], 1, "quantity"),
        ([{"book_id": 1, "quantity": "2"}], 1, "quantity"),
    ],
)
def test_malformed_items_are_rejected(service, buyer, items, item_index, field):
    with pytest.raises(InvalidInput) as exc_info:
        service.create_order(buyer, items)
    assert exc_info.value.details["field"] == field
    assert exc_info.value.details.get("itemIndex") == item_index


def test_order_is_priced_from_current_sale_price(seed, session, service, buyer):
    book = seed.book("Clean Code", sale_price=50000, quantity=10)

    order = service.create_order(
        buyer, [{"book_id": book.id, "quantity": 3}], shipping_address="12 Main St"
    )

    assert order.status == OrderStatus.PENDING
    assert order.total_amount == 150000
    assert order.shipping_address == "12 Main St"
    assert [(i.book_id, i.quantity, i.unit_price, i.total_price) for i in order.order_items] == [
        (book.id, 3, 50000, 150000)
    ]
    assert order.user.id == buyer.user_id


def test_stock_is_deducted_exactly(seed, session, service, buyer):
    book = seed.book("Refactoring", quantity=10)

    service.create_order(buyer, [{"book_id": book.id, "quantity": 4}])

    assert stock_of(session, book.id) == 6


def test_repeated_book_lines_share_the_stock(seed, session, service, buyer):
    book = seed.book("SICP", sale_price=1000, quantity=5)

    with pytest.raises(InsufficientInventory) as exc_info:
        service.create_order(
            buyer,
            [{"book_id": book.id, "quantity": 3}, {"book_id": book.id, "quantity": 3}],
        )
    assert exc_info.value.details == {
        "bookName": "SICP",
        "bookId": book.id,
        "available": 2,
        "requested": 3,
        "itemIndex": 2,
    }
    assert stock_of(session, book.id) == 5

    order = service.create_order(
        buyer,
        [{"book_id": book.id, "quantity": 2}, {"book_id": book.id, "quantity": 3}],
    )
    assert order.total_amount == 5000
    assert len(order.order_items) == 2
    assert stock_of(session, book.id) == 0


def test_failed_order_leaves_nothing_behind(seed, session, service, buyer):
    in_stock = seed.book("In Stock", quantity=5)
    sold_out = seed.book("Sold Out", quantity=0)

    with pytest.raises(InsufficientInventory) as exc_info:
        service.create_order(
            buyer,
            [
                {"book_id": in_stock.id, "quantity": 2},
                {"book_id": sold_out.id, "quantity": 1},
            ],
        )

    assert exc_info.value.status_code == 400
    assert 'Insufficient inventory for "Sold Out"' in exc_info.value.message
    assert stock_of(session, in_stock.id) == 5
    assert session.query(Order).count() == 0
    assert session.query(OrderItem).count() == 0


def test_unknown_book_is_a_bad_request(seed, session, service, buyer):
    book = seed.book("Exists", quantity=5)

    with pytest.raises(NotFound) as exc_info:
        service.create_order(
            buyer,
            [{"book_id": book.id, "quantity": 1}, {"book_id": 9999, "quantity": 1}],
        )

    assert exc_info.value.status_code == 400
    assert exc_info.value.details == {"bookId": 9999, "itemIndex": 2}
    assert stock_of(session, book.id) == 5


def test_store_failure_rolls_back(seed, session, store, service, buyer, monkeypatch):
    book = seed.book("Fragile", quantity=5)
    original_create = store.create

    def failing_create(model, **data):
        if model is OrderItem:
            raise SQLAlchemyError("disk full")
        return original_create(model, **data)

    monkeypatch.setattr(store, "create", failing_create)

    with pytest.raises(TransactionFailure) as exc_info:
        service.create_order(buyer, [{"book_id": book.id, "quantity": 2}])

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Failed to create order"
    assert stock_of(session, book.id) == 5
    assert session.query(Order).count() == 0


def test_exhausted_lock_retries_report_service_busy(seed, store, buyer, monkeypatch):
    from bookstore.config import Settings

    book = seed.book("Contended", quantity=5)
    service = OrderService(store, Settings(max_retry_attempts=2))
    attempts = []

    def locked(*args, **kwargs):
        attempts.append(1)
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(service, "_write_order", locked)

    with pytest.raises(TransactionFailure) as exc_info:
        service.create_order(buyer, [{"book_id": book.id, "quantity": 1}])

    assert exc_info.value.status_code == 503
    assert len(attempts) == 2


def test_transient_error_detection():
    assert is_transient_error(OperationalError("x", {}, Exception("Deadlock found")))
    assert is_transient_error(
        OperationalError("x", {}, Exception("Lock wait timeout exceeded"))
    )
    assert not is_transient_error(OperationalError("x", {}, Exception("no such table")))
    assert not is_transient_error(ValueError("deadlock"))


def test_get_order_by_document_id(seed, service, buyer):
    book = seed.book("Lookup", quantity=5)
    created = service.create_order(buyer, [{"book_id": book.id, "quantity": 1}])

    assert service.get_order(buyer, created.document_id).id == created.id
    assert service.get_order(buyer, str(created.id)).id == created.id
    with pytest.raises(NotFound) as exc_info:
        service.get_order(buyer, 12345)
    assert exc_info.value.status_code == 404


def test_get_order_requires_the_owner(seed, service, buyer):
    book = seed.book("Private", quantity=5)
    other = seed.user()
    foreign = seed.order(other, [(book, 1)])

    with pytest.raises(Unauthenticated):
        service.get_order(ANONYMOUS, foreign.id)
    with pytest.raises(NotFound) as exc_info:
        service.get_order(buyer, foreign.id)
    assert exc_info.value.message == "Order not found"

    owner = RequestContext(user_id=other.id, username=other.username)
    assert service.get_order(owner, foreign.document_id).id == foreign.id


def test_list_orders_only_returns_callers_orders(seed, service, buyer):
    book = seed.book("Shared", quantity=10)
    other = seed.user()
    seed.order(other, [(book, 1)])

    first = service.create_order(buyer, [{"book_id": book.id, "quantity": 1}])
    second = service.create_order(buyer, [{"book_id": book.id, "quantity": 2}])

    orders = service.list_orders(buyer)
    assert [order.id for order in orders] == [second.id, first.id]
    with pytest.raises(Unauthenticated):
        service.list_orders(ANONYMOUS)
