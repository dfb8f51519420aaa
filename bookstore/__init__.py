"""Bookstore backend: order placement and sales/inventory reports."""

__version__ = "1.0.0"
