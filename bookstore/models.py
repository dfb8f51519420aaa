from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Float,
    Text,
    Enum,
    JSON,
    ForeignKey,
    Table,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, relationship
import enum

from bookstore.utils import generate_document_id, utcnow

Base = declarative_base()


class OrderStatus(enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Only these statuses count as sold
REVENUE_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED)


book_authors = Table(
    "book_authors",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("books.id"), primary_key=True),
    Column("author_id", Integer, ForeignKey("authors.id"), primary_key=True),
)

book_categories = Table(
    "book_categories",
    Base.metadata,
    Column("book_id", Integer, ForeignKey("books.id"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(32), unique=True, nullable=False, default=generate_document_id)
    username = Column(String(100), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    api_token_hash = Column(String(64), unique=True)
    created_at = Column(DateTime, default=utcnow)

    orders = relationship("Order", back_populates="user")


class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(32), unique=True, nullable=False, default=generate_document_id)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    books = relationship("Book", secondary=book_authors, back_populates="authors")


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(32), unique=True, nullable=False, default=generate_document_id)
    name = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    books = relationship("Book", secondary=book_categories, back_populates="categories")


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(32), unique=True, nullable=False, default=generate_document_id)
    name = Column(String(255), nullable=False)
    sale_price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    rating = Column(Float)
    tags = Column(JSON)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    authors = relationship(
        "Author", secondary=book_authors, back_populates="books", order_by="Author.id"
    )
    categories = relationship(
        "Category", secondary=book_categories, back_populates="books", order_by="Category.id"
    )
    order_items = relationship("OrderItem", back_populates="book")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_books_quantity_non_negative"),
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(32), unique=True, nullable=False, default=generate_document_id)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    total_amount = Column(Integer, nullable=False, default=0)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    shipping_address = Column(Text)
    phone = Column(String(20))
    notes = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    order_items = relationship(
        "OrderItem", back_populates="order", order_by="OrderItem.id"
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    order = relationship("Order", back_populates="order_items")
    book = relationship("Book", back_populates="order_items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


Index("idx_books_quantity", Book.quantity)
Index("idx_orders_user_id", Order.user_id)
Index("idx_orders_status_created_at", Order.status, Order.created_at)
Index("idx_order_items_order_id", OrderItem.order_id)
Index("idx_order_items_book_id", OrderItem.book_id)
