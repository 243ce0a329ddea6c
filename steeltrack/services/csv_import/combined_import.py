"""
Combined inventory and sales CSV import
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from steeltrack.core.exceptions import ImportFormatError
from steeltrack.models import StockLot

from .base import LOT_REQUIRED, BaseImporter, logger, validate_lot_fields, validate_sale_fields
from .inventory_import import INVENTORY_FIELDS, INVENTORY_HEADERS
from .parser import (
    detect_delimiter, format_number, header_mismatches, headers_match, is_blank, split_csv_line
)
from .result import ImportResult

SALE_HEADERS = ["Sale Date", "Sale Dimensions", "Sold To", "Quantity Sold", "Form"]
COMBINED_HEADERS = [
    "Entry Date", "S.No", "Type", "Item Dimensions", "Weight", "Coating",
    "Specifications", "Item Form", "LOT", "Quality", "Balance",
] + SALE_HEADERS


@dataclass
class SaleRow:
    line_number: int
    sale_date: str
    sold_to: str
    quantity: str
    form: str


@dataclass
class ItemGroup:
    """All rows sharing one serial number; inventory columns come from the first"""
    serial_number: str
    fields: Dict[str, str]
    sales: List[SaleRow] = field(default_factory=list)


class CombinedImporter(BaseImporter):
    """
    Imports lots together with their sales.

    Rows are grouped by serial number in first-seen order. An existing lot
    is counted as skipped and only its sales are imported, checked against
    the persisted balance. A new lot is created together with its sales in
    one transaction, each sale checked against the declared weight minus
    the sales already accepted for it in this import.
    """

    kind = "combined"

    def parse_header(self, header_line: str):
        delimiter = detect_delimiter(header_line, len(COMBINED_HEADERS))
        headers = split_csv_line(header_line, delimiter)
        if not headers_match(headers, COMBINED_HEADERS):
            mismatches = header_mismatches(headers, COMBINED_HEADERS)
            raise ImportFormatError(
                "CSV headers don't match expected format.\nMismatches:\n"
                + "\n".join(mismatches)
                + f"\n\nExpected: {', '.join(COMBINED_HEADERS)}"
            )
        delimiter_name = "TAB" if delimiter == "\t" else "COMMA"
        logger.info(f"Combined CSV delimiter: {delimiter_name}")
        return delimiter

    def process(self, lines: List[str], layout, result: ImportResult) -> None:
        for group in self.group_rows(lines, layout, result):
            label = f"Item {group.serial_number}"
            self.guarded(result, label, self.import_item, group, result)

    def group_rows(self, lines: List[str], delimiter: str, result: ImportResult) -> List[ItemGroup]:
        groups: Dict[str, ItemGroup] = {}
        for line_number, line in self.data_rows(lines):
            cells = split_csv_line(line, delimiter)
            if len(cells) != len(COMBINED_HEADERS):
                result.add_error(
                    f"Row {line_number}: Expected {len(COMBINED_HEADERS)} columns, got {len(cells)}"
                )
                continue

            inventory_cells = cells[:len(INVENTORY_HEADERS)]
            sale_date, _, sold_to, quantity, form = cells[len(INVENTORY_HEADERS):]
            serial = inventory_cells[1]
            if is_blank(serial):
                result.add_error(f"Row {line_number}: Missing S.No")
                continue

            group = groups.get(serial)
            if group is None:
                fields = {name: cell for name, cell in zip(INVENTORY_FIELDS, inventory_cells) if name}
                group = groups[serial] = ItemGroup(serial, fields)

            if not any(is_blank(v) for v in (sale_date, sold_to, quantity)):
                group.sales.append(SaleRow(line_number, sale_date, sold_to, quantity, form))
        return list(groups.values())

    def import_item(self, group: ItemGroup, result: ImportResult) -> None:
        existing = self.inventory.find_by_serial(group.serial_number)
        if existing is not None:
            result.add_skip(f"Item {group.serial_number}: Already exists, importing its sales only")
            self.import_sales_for_existing(existing, group, result)
            return
        self.import_new_item(group, result)

    def _sale_values(self, label: str, sale: SaleRow, result: ImportResult):
        values, error = validate_sale_fields(
            sale.sale_date, sale.quantity, sale.form, quantity_label="sale quantity"
        )
        if error:
            result.add_error(f"{label}: {error}")
        return values

    def import_sales_for_existing(self, lot: StockLot, group: ItemGroup, result: ImportResult) -> None:
        label = f"Item {group.serial_number}"
        if not group.sales:
            return
        weight = self.inventory.balance.lot_weight(lot)
        snapshot = self.inventory.dimension_snapshot(lot)

        for sale in group.sales:
            values = self._sale_values(label, sale, result)
            if values is None:
                continue
            if self.sales.find_duplicate(
                lot.id, values["sale_date"], values["form"], sale.sold_to, values["quantity"]
            ) is not None:
                result.add_notice(self._duplicate_message(label, values, sale))
                continue

            remaining = self.tracker.remaining(lot.id, weight)
            if values["quantity"] > remaining:
                result.add_error(
                    f"{label}: Sale quantity {format_number(values['quantity'])} exceeds "
                    f"remaining weight {format_number(remaining)}"
                )
                continue

            self.tracker.reserve(lot.id, values["quantity"])
            try:
                self.sales.create_sale(
                    lot, sale.sold_to, values["quantity"], values["form"], values["sale_date"], snapshot
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                result.add_error(f"{label} sale: {e}")
                continue
            finally:
                self.tracker.settle(lot.id)
            result.sales_imported += 1

    def import_new_item(self, group: ItemGroup, result: ImportResult) -> None:
        label = f"Item {group.serial_number}"
        if any(is_blank(group.fields.get(name)) for name in LOT_REQUIRED):
            result.add_error(f"{label}: Missing required inventory fields")
            return
        values, error = validate_lot_fields(group.fields)
        if error:
            result.add_error(f"{label}: {error}")
            return

        dimensions = values.pop("dimensions")
        weight: Decimal = values["weight"]
        lot = self.inventory.create_lot(values, dimensions, commit=False)
        snapshot = self.inventory.dimension_snapshot(lot)

        accepted: Set[Tuple] = set()
        sales_added = 0
        try:
            for sale in group.sales:
                sale_values = self._sale_values(label, sale, result)
                if sale_values is None:
                    continue
                key = (sale_values["sale_date"], sale_values["form"], sale.sold_to, sale_values["quantity"])
                if key in accepted:
                    result.add_notice(self._duplicate_message(label, sale_values, sale))
                    continue

                remaining = self.tracker.remaining(lot.id, weight)
                if sale_values["quantity"] > remaining:
                    cumulative = self.tracker.pending(lot.id) + sale_values["quantity"]
                    result.add_error(
                        f"{label}: Cumulative sales quantity {format_number(cumulative)} "
                        f"exceeds item weight {format_number(weight)}"
                    )
                    continue

                self.tracker.reserve(lot.id, sale_values["quantity"])
                self.sales.create_sale(
                    lot, sale.sold_to, sale_values["quantity"], sale_values["form"],
                    sale_values["sale_date"], snapshot, commit=False,
                )
                accepted.add(key)
                sales_added += 1

            self.db.commit()
        finally:
            self.tracker.settle(lot.id)

        result.success += 1
        result.inventory_imported += 1
        result.sales_imported += sales_added

    @staticmethod
    def _duplicate_message(label: str, values, sale: SaleRow) -> str:
        return f"{label}: Duplicate sale found for {values['sale_date'].isoformat()} to {sale.sold_to}"
