"""Response shaping used by every handler."""

from datetime import date
from typing import Any, Dict, Iterable, Optional

from fastapi.responses import JSONResponse, Response

from bookstore.errors import BookstoreError
from bookstore.schemas import OrderOut, OrderSummaryOut


def envelope(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    body = {"data": data}
    if message:
        body["message"] = message
    return body


def error_response(exc: BookstoreError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def serialize_order(order) -> Dict[str, Any]:
    return OrderOut.model_validate(order).model_dump(mode="json")


def serialize_orders(orders: Iterable) -> list:
    return [serialize_order(order) for order in orders]


def serialize_order_summary(order) -> Dict[str, Any]:
    return OrderSummaryOut.model_validate(order).model_dump(mode="json")


def csv_response(content: str, kind: str, today: date) -> Response:
    filename = f"{kind}-report-{today.isoformat()}.csv"
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
