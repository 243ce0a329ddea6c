"""
Sales CSV import
"""
from typing import Dict, List

from steeltrack.core.exceptions import ImportFormatError

from .base import BaseImporter, logger, validate_sale_fields
from .parser import format_number, headers_match, is_blank, split_csv_line
from .result import ImportResult

# Two historical export layouts, both 12 columns
DASHBOARD_HEADERS = [
    "Sale Date", "Entry Number", "Item Type", "Dimensions", "Sold To", "Quantity Sold",
    "Form", "Item Coating", "Item Specifications", "Item Form", "Item LOT", "Item Quality",
]
SALES_DIALOG_HEADERS = [
    "Sale Date", "Dimensions", "Sold To", "Quantity Sold", "Form", "Entry Number",
    "Item Type", "Item Coating", "Item Specifications", "Item Form", "Item LOT", "Item Quality",
]

SALE_LAYOUTS: Dict[str, List[str]] = {
    "dashboard": DASHBOARD_HEADERS,
    "sales_dialog": SALES_DIALOG_HEADERS,
}


class SalesImporter(BaseImporter):
    """
    Imports sales against existing stock lots.

    The lot is resolved by serial number. A row matching an existing sale
    is skipped; a row that would oversell the lot is rejected.
    """

    kind = "sales"

    def parse_header(self, header_line: str):
        headers = split_csv_line(header_line)
        for name, expected in SALE_LAYOUTS.items():
            if headers_match(headers, expected):
                logger.info(f"Sales CSV layout detected: {name}")
                return {header.lower(): i for i, header in enumerate(expected)}
        raise ImportFormatError(
            "CSV headers don't match any supported sales format. Expected either:\n"
            f"Dashboard format: {', '.join(DASHBOARD_HEADERS)}\n"
            f"Sales dialog format: {', '.join(SALES_DIALOG_HEADERS)}"
        )

    def process(self, lines: List[str], layout, result: ImportResult) -> None:
        for line_number, line in self.data_rows(lines):
            label = f"Row {line_number}"
            self.guarded(result, label, self.import_row, label, line, layout, result)

    def import_row(self, label: str, line: str, layout: Dict[str, int], result: ImportResult) -> None:
        cells = split_csv_line(line)
        if len(cells) != len(layout):
            result.add_error(f"{label}: Expected {len(layout)} columns, got {len(cells)}")
            return

        sale_date = cells[layout["sale date"]]
        entry_number = cells[layout["entry number"]]
        sold_to = cells[layout["sold to"]]
        quantity = cells[layout["quantity sold"]]
        form = cells[layout["form"]]

        if any(is_blank(v) for v in (sale_date, entry_number, sold_to, quantity)):
            result.add_error(
                f"{label}: Missing required fields (Sale Date, Entry Number, Sold To, Quantity Sold)"
            )
            return

        lot = self.inventory.find_by_serial(entry_number)
        if lot is None:
            result.add_error(f'{label}: No inventory item found with Entry Number "{entry_number}"')
            return

        values, error = validate_sale_fields(sale_date, quantity, form)
        if error:
            result.add_error(f"{label}: {error}")
            return

        if self.sales.find_duplicate(
            lot.id, values["sale_date"], values["form"], sold_to, values["quantity"]
        ) is not None:
            result.add_skip(
                f"{label}: Sale already exists for item {entry_number} on "
                f"{values['sale_date'].isoformat()} to {sold_to}"
            )
            return

        weight = self.inventory.balance.lot_weight(lot)
        remaining = self.tracker.remaining(lot.id, weight)
        if values["quantity"] > remaining:
            result.add_error(
                f"{label}: Quantity {format_number(values['quantity'])} exceeds remaining weight "
                f"{format_number(remaining)} for item {entry_number}"
            )
            return

        self.tracker.reserve(lot.id, values["quantity"])
        try:
            self.sales.create_sale(
                lot,
                sold_to,
                values["quantity"],
                values["form"],
                values["sale_date"],
                self.inventory.dimension_snapshot(lot),
            )
        finally:
            self.tracker.settle(lot.id)
        result.success += 1
        result.sales_imported += 1
