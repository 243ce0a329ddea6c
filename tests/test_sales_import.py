"""
Tests for the sales CSV import
"""
from decimal import Decimal

import pytest

from steeltrack.core.exceptions import ImportFormatError
from steeltrack.models import Sale
from steeltrack.services.balance import BalanceCalculator
from steeltrack.services.csv_import.sales_import import SalesImporter
from steeltrack.services.sales_service import SalesService

DASHBOARD = (
    "Sale Date,Entry Number,Item Type,Dimensions,Sold To,Quantity Sold,Form,"
    "Item Coating,Item Specifications,Item Form,Item LOT,Item Quality"
)
SALES_DIALOG = (
    "Sale Date,Dimensions,Sold To,Quantity Sold,Form,Entry Number,"
    "Item Type,Item Coating,Item Specifications,Item Form,Item LOT,Item Quality"
)


def _dashboard_row(quantity, sold_to="ACME", serial="100", sale_date="01/02/2024", form="Coil"):
    return f"{sale_date},{serial},E,1.50×120,{sold_to},{quantity},{form},,,,L1,Soft"


def _csv(header, *rows):
    return "\n".join((header,) + rows)


class TestSalesImporter:
    """Test suite for SalesImporter"""

    def test_import_reduces_balance(self, db_session, context, make_lot):
        lot = make_lot(serial_number="100", weight="500")

        result = SalesImporter(db_session, context).import_text(_csv(DASHBOARD, _dashboard_row("200")))

        assert result.success == 1
        assert result.sales_imported == 1
        assert BalanceCalculator(db_session, context).balance_for_lot(lot) == Decimal("300.00")

        sale = SalesService(db_session, context).list_sales(lot.id)[0]
        assert sale["customer_name"] == "ACME"
        assert sale["quantity_sold"] == Decimal("200")
        assert sale["form"] == "Coil"
        assert sale["dimensions_snapshot"] == ["1.50×120"]

    def test_oversell_is_rejected(self, db_session, context, make_lot):
        make_lot(serial_number="100", weight="500")
        SalesImporter(db_session, context).import_text(_csv(DASHBOARD, _dashboard_row("200")))

        result = SalesImporter(db_session, context).import_text(
            _csv(DASHBOARD, _dashboard_row("400", sold_to="Beta"))
        )

        assert result.success == 0
        assert result.failed == 1
        assert result.messages == [
            "Row 2: Quantity 400 exceeds remaining weight 300 for item 100"
        ]
        assert db_session.query(Sale).count() == 1

    def test_rows_in_one_file_share_the_balance(self, db_session, context, make_lot):
        make_lot(serial_number="100", weight="500")
        csv_text = _csv(
            DASHBOARD,
            _dashboard_row("300"),
            _dashboard_row("300", sold_to="Beta"),
        )

        result = SalesImporter(db_session, context).import_text(csv_text)

        assert result.success == 1
        assert result.failed == 1
        assert "exceeds remaining weight 200" in result.messages[0]

    def test_reimport_is_idempotent(self, db_session, context, make_lot):
        make_lot(serial_number="100", weight="500")
        csv_text = _csv(DASHBOARD, _dashboard_row("200"))
        SalesImporter(db_session, context).import_text(csv_text)

        result = SalesImporter(db_session, context).import_text(csv_text)

        assert result.success == 0
        assert result.skipped == 1
        assert result.messages == ["Row 2: Sale already exists for item 100 on 2024-02-01 to ACME"]

    def test_sales_dialog_layout(self, db_session, context, make_lot):
        lot = make_lot(serial_number="100", weight="500")
        row = "2024-02-03,1.50×120,Gamma,100,sheet,100,E,,,,L1,Soft"

        result = SalesImporter(db_session, context).import_text(_csv(SALES_DIALOG, row))

        assert result.success == 1
        sale = SalesService(db_session, context).list_sales(lot.id)[0]
        assert sale["form"] == "Sheet"
        assert sale["customer_name"] == "Gamma"

    def test_blank_form_is_allowed(self, db_session, context, make_lot):
        lot = make_lot(serial_number="100", weight="500")

        result = SalesImporter(db_session, context).import_text(
            _csv(DASHBOARD, _dashboard_row("10", form=""))
        )

        assert result.success == 1
        assert SalesService(db_session, context).list_sales(lot.id)[0]["form"] is None

    def test_row_errors(self, db_session, context, make_lot):
        make_lot(serial_number="100", weight="500")
        rows = (
            _dashboard_row("10", serial="999"),
            _dashboard_row("10", form="Roll"),
            _dashboard_row("abc"),
            _dashboard_row("10", sold_to=""),
            "01/02/2024,100",
        )

        result = SalesImporter(db_session, context).import_text(_csv(DASHBOARD, *rows))

        assert result.failed == 5
        assert result.messages == [
            'Row 2: No inventory item found with Entry Number "999"',
            'Row 3: Invalid form "Roll". Must be one of: Coil, Sheet',
            'Row 4: Invalid quantity "abc". Must be a positive number',
            "Row 5: Missing required fields (Sale Date, Entry Number, Sold To, Quantity Sold)",
            "Row 6: Expected 12 columns, got 2",
        ]

    def test_unknown_layout(self, db_session, context):
        with pytest.raises(ImportFormatError, match="Dashboard format"):
            SalesImporter(db_session, context).import_text("Date,Qty\n1,2")
