from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from bookstore.auth import RequestContext, get_request_context
from bookstore.config import settings, get_database_url
from bookstore.database import get_db, get_engine, wait_for_database
from bookstore.errors import BookstoreError
from bookstore.models import Base
from bookstore.responses import csv_response, envelope, error_response, serialize_order, serialize_orders
from bookstore.services import OrderService, ReportService, StatsService
from bookstore.services.csv_export import inventory_csv, revenue_csv
from bookstore.services.report_filters import (
    FORMAT_CHOICES,
    SORT_BY_CHOICES,
    TREND_PERIODS,
    build_filter,
    parse_choice,
    parse_group_by,
    parse_positive_int,
)
from bookstore.store import EntityStore
from bookstore.utils import setup_logging, utcnow

# Setup logging
logger = setup_logging("bookstore", settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting bookstore service...")
    if not wait_for_database(get_database_url(), timeout=settings.wait_for_db_timeout):
        logger.warning("Database not reachable yet, continuing startup")
    if settings.auto_create_tables:
        Base.metadata.create_all(bind=get_engine())

    yield

    # Shutdown
    logger.info("Shutting down bookstore service...")


app = FastAPI(title=settings.app_name, version="1.0.0", debug=settings.debug, lifespan=lifespan)


@app.exception_handler(BookstoreError)
async def bookstore_error_handler(request: Request, exc: BookstoreError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return error_response(exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": {"message": "Internal server error", "details": {}}},
    )


# Dependencies

def get_store(db: Session = Depends(get_db)) -> EntityStore:
    return EntityStore(db)


def get_order_service(store: EntityStore = Depends(get_store)) -> OrderService:
    return OrderService(store)


def get_report_service(store: EntityStore = Depends(get_store)) -> ReportService:
    return ReportService(store)


def get_stats_service(store: EntityStore = Depends(get_store)) -> StatsService:
    return StatsService(store)


def _parse_format(value: Optional[str]) -> str:
    return parse_choice(value, "format", FORMAT_CHOICES, default="json")


@app.get("/health")
def health_check():
    return {"status": "ok"}


# Orders

@app.post("/orders")
def create_order(
    payload: Any = Body(None),
    context: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_order_service),
):
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        payload = payload["data"]
    if not isinstance(payload, dict):
        payload = {}
    order = service.create_order(
        context,
        payload.get("items"),
        shipping_address=payload.get("shipping_address"),
        phone=payload.get("phone"),
        notes=payload.get("notes"),
    )
    return envelope(serialize_order(order), "Order created successfully")


@app.get("/orders")
def list_orders(
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    context: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_order_service),
):
    limit_value = parse_positive_int(limit, "limit", 25)
    offset_value = 0 if offset in (None, "", "0") else parse_positive_int(offset, "offset", 0)
    orders = service.list_orders(context, limit=limit_value, offset=offset_value)
    return envelope(serialize_orders(orders))


@app.get("/orders/{order_id}")
def get_order(
    order_id: str,
    context: RequestContext = Depends(get_request_context),
    service: OrderService = Depends(get_order_service),
):
    return envelope(serialize_order(service.get_order(context, order_id)))


# Reports

@app.get("/reports/revenue")
def revenue_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    date: Optional[str] = Query(None),
    group_by: Optional[str] = Query(None, alias="groupBy"),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    author_id: Optional[str] = Query(None, alias="authorId"),
    format: Optional[str] = Query(None),
    service: ReportService = Depends(get_report_service),
):
    output = _parse_format(format)
    report_filter = build_filter(
        start_date, end_date, date, category_id=category_id, author_id=author_id
    )
    data = service.compute_revenue(report_filter, parse_group_by(group_by))
    if output == "csv":
        return csv_response(revenue_csv(data, settings.currency), "revenue", utcnow().date())
    return envelope(data, "Revenue report generated successfully")


@app.get("/reports/revenue/trends")
def revenue_trends(
    period: Optional[str] = Query(None),
    group_by: Optional[str] = Query(None, alias="groupBy"),
    service: ReportService = Depends(get_report_service),
):
    period_value = parse_choice(period, "period", tuple(TREND_PERIODS), default="last30days")
    data = service.revenue_trends(period_value, parse_group_by(group_by))
    return envelope(data, "Revenue trends generated successfully")


@app.get("/reports/revenue/top-books")
def top_books(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    limit: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    service: ReportService = Depends(get_report_service),
):
    limit_value = parse_positive_int(limit, "limit", 10)
    report_filter = build_filter(start_date, end_date, category_id=category_id)
    data = service.top_books(report_filter, limit_value)
    return envelope(data, "Top performing books retrieved successfully")


@app.get("/reports/inventory")
def inventory_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    author_id: Optional[str] = Query(None, alias="authorId"),
    format: Optional[str] = Query(None),
    service: ReportService = Depends(get_report_service),
):
    output = _parse_format(format)
    report_filter = build_filter(
        start_date, end_date, category_id=category_id, author_id=author_id
    )
    data = service.compute_inventory(report_filter)
    if output == "csv":
        return csv_response(inventory_csv(data, settings.currency), "inventory", utcnow().date())
    return envelope(data, "Inventory report generated successfully")


@app.get("/reports/inventory/low-stock")
def low_stock_report(
    threshold: Optional[str] = Query(None),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    service: ReportService = Depends(get_report_service),
):
    threshold_value = parse_positive_int(threshold, "threshold", settings.low_stock_threshold)
    sort_value = parse_choice(sort_by, "sortBy", SORT_BY_CHOICES, default="quantity")
    report_filter = build_filter(category_id=category_id)
    data = service.low_stock(threshold_value, report_filter, sort_value)
    return envelope(data, "Low stock report generated successfully")


@app.get("/reports/inventory/movement")
def inventory_movement_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    book_id: Optional[str] = Query(None, alias="bookId"),
    category_id: Optional[str] = Query(None, alias="categoryId"),
    service: ReportService = Depends(get_report_service),
):
    # a specific book takes precedence over the category
    if book_id:
        category_id = None
    report_filter = build_filter(start_date, end_date, category_id=category_id, book_id=book_id)
    data = service.inventory_movement(report_filter)
    return envelope(data, "Inventory movement report generated successfully")


@app.get("/reports/dashboard")
def dashboard(service: ReportService = Depends(get_report_service)):
    return envelope(service.dashboard(), "Dashboard data retrieved successfully")


# Stats

@app.get("/stats")
def system_stats(service: StatsService = Depends(get_stats_service)):
    return envelope(service.system_stats())


@app.get("/stats/me")
def my_stats(
    context: RequestContext = Depends(get_request_context),
    service: StatsService = Depends(get_stats_service),
):
    return envelope(service.user_stats(context))


if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
