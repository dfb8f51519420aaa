import pytest

from bookstore.errors import NotFound
from bookstore.models import Book, Category


def test_update_changes_the_row(seed, session, store):
    book = seed.book("Draft Title", sale_price=10000, quantity=3)

    updated = store.run_transaction(
        lambda s: s.update(Book, book.id, name="Final Title", sale_price=12000)
    )

    assert updated.id == book.id
    session.expire_all()
    reloaded = session.get(Book, book.id)
    assert (reloaded.name, reloaded.sale_price, reloaded.quantity) == ("Final Title", 12000, 3)


def test_update_missing_row_is_not_found(store):
    with pytest.raises(NotFound) as exc_info:
        store.update(Category, 404, name="Nowhere")

    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "Category with ID 404 not found"
    assert exc_info.value.details == {"id": 404}


def test_find_by_either_identifier(seed, store):
    category = seed.category("Poetry")

    assert store.find_by_id(Category, category.id).name == "Poetry"
    assert store.find_by_id(Category, category.document_id).id == category.id
    assert store.find_by_id(Category, 999) is None


def test_decrement_never_goes_below_zero(seed, session, store):
    book = seed.book("Scarce", quantity=2)

    assert store.decrement(Book, book.id, "quantity", 2)
    assert not store.decrement(Book, book.id, "quantity", 1)
    session.commit()

    assert session.get(Book, book.id).quantity == 0


def test_lock_many_returns_rows_by_id(seed, store):
    first = seed.book("First")
    second = seed.book("Second")

    locked = store.lock_many(Book, [second.id, first.id, second.id, 999])

    assert sorted(locked) == [first.id, second.id]
    assert locked[first.id].name == "First"
    assert store.lock_many(Book, []) == {}
