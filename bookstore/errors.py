"""Domain errors.

Each error kind carries the HTTP status it is surfaced with; the API layer
turns any ``BookstoreError`` into ``{"error": {"message", "details"}}``.
"""

from typing import Any, Dict, Optional


class BookstoreError(Exception):
    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "details": self.details}


class Unauthenticated(BookstoreError):
    status_code = 401


class InvalidInput(BookstoreError):
    status_code = 400


class NotFound(BookstoreError):
    status_code = 404


class InsufficientInventory(BookstoreError):
    status_code = 400

    def __init__(
        self,
        book_name: str,
        book_id: int,
        available: int,
        requested: int,
        item_index: Optional[int] = None,
    ):
        message = (
            f'Insufficient inventory for "{book_name}" (ID: {book_id}). '
            f"Available: {available}, Requested: {requested}"
        )
        if item_index is not None:
            message += f" (item {item_index})"
        super().__init__(
            message,
            details={
                "bookName": book_name,
                "bookId": book_id,
                "available": available,
                "requested": requested,
                "itemIndex": item_index,
            },
        )


class TransactionFailure(BookstoreError):
    status_code = 500
