"""Pytest configuration: a fresh SQLite database per test plus seeding helpers."""

from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker

from bookstore.auth import hash_token
from bookstore.database import create_db_engine, create_session_factory
from bookstore.models import (
    Author,
    Base,
    Book,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    User,
)
from bookstore.store import EntityStore


class Seeder:
    """Inserts rows and commits immediately.

    Uses its own session with ``expire_on_commit=False`` so reading seeded
    attributes never opens a transaction (SQLite transactions here take the
    database write lock). Seed before using the ``session`` fixture.
    """

    def __init__(self, factory: sessionmaker):
        self.session = factory(expire_on_commit=False)
        self._users = 0

    def _save(self, entity):
        self.session.add(entity)
        self.session.commit()
        return entity

    def user(self, username=None, token=None):
        self._users += 1
        username = username or f"reader{self._users}"
        return self._save(
            User(
                username=username,
                email=f"{username}@example.com",
                api_token_hash=hash_token(token) if token else None,
            )
        )

    def category(self, name):
        return self._save(Category(name=name))

    def author(self, name):
        return self._save(Author(name=name))

    def book(self, name, sale_price=50000, quantity=10, categories=(), authors=(), tags=None):
        return self._save(
            Book(
                name=name,
                sale_price=sale_price,
                quantity=quantity,
                rating=4.5,
                tags=tags,
                categories=list(categories),
                authors=list(authors),
            )
        )

    def order(self, user, lines, status=OrderStatus.DELIVERED, created_at=None):
        created_at = created_at or datetime(2024, 1, 15, 10, 0, 0)
        order = Order(
            user_id=user.id,
            status=status,
            total_amount=sum(book.sale_price * quantity for book, quantity in lines),
            created_at=created_at,
            updated_at=created_at,
        )
        order.order_items = [
            OrderItem(
                book_id=book.id,
                quantity=quantity,
                unit_price=book.sale_price,
                total_price=book.sale_price * quantity,
                created_at=created_at,
            )
            for book, quantity in lines
        ]
        return self._save(order)

    def close(self):
        self.session.close()


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bookstore-test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def seed(session_factory):
    seeder = Seeder(session_factory)
    yield seeder
    seeder.close()


@pytest.fixture
def session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def store(session):
    return EntityStore(session)
