import csv
import io

from bookstore.services.csv_export import inventory_csv, revenue_csv


def read_rows(content):
    return list(csv.reader(io.StringIO(content)))


def test_revenue_csv_ends_with_grand_total():
    data = {
        "summary": {"totalItemsSold": 5},
        "grandTotal": 1250000,
        "bookSales": [
            {"bookName": "Emma", "quantitySold": 3, "unitPrice": 250000, "totalRevenue": 750000},
            {"bookName": "Dune, Part One", "quantitySold": 2, "unitPrice": 250000, "totalRevenue": 500000},
        ],
    }

    rows = read_rows(revenue_csv(data))

    assert rows[0] == ["Book Name", "Quantity Sold", "Unit Price (VND)", "Total Revenue (VND)"]
    assert rows[1] == ["Emma", "3", "250,000", "750,000"]
    assert rows[2][0] == "Dune, Part One"
    assert rows[-1] == ["GRAND TOTAL", "5", "", "1,250,000"]


def test_inventory_csv_columns():
    data = {
        "books": [
            {
                "bookName": "Learning Python",
                "currentStock": 20,
                "quantitySold": 1,
                "revenue": 200000,
                "categories": "Technology",
                "authors": "Mark Lutz",
                "unitPrice": 200000,
            }
        ]
    }

    rows = read_rows(inventory_csv(data, currency="USD"))

    assert rows == [
        [
            "Book Name",
            "Current Stock",
            "Quantity Sold",
            "Revenue (USD)",
            "Categories",
            "Authors",
            "Unit Price (USD)",
        ],
        ["Learning Python", "20", "1", "200,000", "Technology", "Mark Lutz", "200,000"],
    ]


def test_empty_inventory_is_header_only():
    rows = read_rows(inventory_csv({"books": []}))
    assert len(rows) == 1
