"""CSV rendering of the revenue and inventory reports."""

from typing import Any, Dict

import pandas as pd


def _money(value: Any) -> str:
    if value is None or value == "":
        return ""
    return f"{int(value):,}"


def revenue_csv(data: Dict[str, Any], currency: str = "VND") -> str:
    unit_col = f"Unit Price ({currency})"
    total_col = f"Total Revenue ({currency})"
    rows = [
        {
            "Book Name": row["bookName"],
            "Quantity Sold": row["quantitySold"],
            unit_col: _money(row["unitPrice"]),
            total_col: _money(row["totalRevenue"]),
        }
        for row in data["bookSales"]
    ]
    rows.append(
        {
            "Book Name": "GRAND TOTAL",
            "Quantity Sold": data["summary"]["totalItemsSold"],
            unit_col: "",
            total_col: _money(data["grandTotal"]),
        }
    )
    frame = pd.DataFrame(rows, columns=["Book Name", "Quantity Sold", unit_col, total_col])
    return frame.to_csv(index=False)


def inventory_csv(data: Dict[str, Any], currency: str = "VND") -> str:
    columns = [
        "Book Name",
        "Current Stock",
        "Quantity Sold",
        f"Revenue ({currency})",
        "Categories",
        "Authors",
        f"Unit Price ({currency})",
    ]
    frame = pd.DataFrame(
        [
            [
                row["bookName"],
                row["currentStock"],
                row["quantitySold"],
                _money(row["revenue"]),
                row["categories"],
                row["authors"],
                _money(row["unitPrice"]),
            ]
            for row in data["books"]
        ],
        columns=columns,
    )
    return frame.to_csv(index=False)
