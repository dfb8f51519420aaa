"""Orders placed at the same time against the same stock."""

import threading
from concurrent.futures import ThreadPoolExecutor

from bookstore.auth import RequestContext
from bookstore.errors import InsufficientInventory
from bookstore.models import Book, Order
from bookstore.services import OrderService
from bookstore.store import EntityStore


def place(session_factory, context, book_id, quantity, barrier):
    session = session_factory()
    try:
        service = OrderService(EntityStore(session))
        barrier.wait()
        try:
            return service.create_order(context, [{"book_id": book_id, "quantity": quantity}]).id
        except InsufficientInventory as e:
            return e
    finally:
        session.close()


def test_concurrent_orders_never_oversell(seed, session_factory):
    book = seed.book("Popular", quantity=10)
    first, second = seed.user(), seed.user()
    book_id = book.id
    contexts = [RequestContext(user_id=first.id), RequestContext(user_id=second.id)]
    seed.close()

    barrier = threading.Barrier(2)
    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(place, session_factory, context, book_id, 6, barrier)
            for context in contexts
        ]
        results = [future.result() for future in futures]

    placed = [result for result in results if isinstance(result, int)]
    rejected = [result for result in results if isinstance(result, InsufficientInventory)]
    assert len(placed) == 1
    assert len(rejected) == 1
    assert rejected[0].details["available"] == 4

    with session_factory() as check:
        assert check.get(Book, book_id).quantity == 4
        assert check.query(Order).count() == 1


def test_many_small_orders_sell_out_exactly(seed, session_factory):
    book = seed.book("Limited", quantity=5)
    users = [seed.user() for _ in range(8)]
    book_id = book.id
    contexts = [RequestContext(user_id=user.id) for user in users]
    seed.close()

    barrier = threading.Barrier(len(contexts))
    with ThreadPoolExecutor(max_workers=len(contexts)) as pool:
        results = list(
            pool.map(lambda ctx: place(session_factory, ctx, book_id, 1, barrier), contexts)
        )

    assert sum(1 for result in results if isinstance(result, int)) == 5
    assert sum(1 for result in results if isinstance(result, InsufficientInventory)) == 3

    with session_factory() as check:
        assert check.get(Book, book_id).quantity == 0
