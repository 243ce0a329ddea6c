"""
Inventory CSV import
"""
from typing import List

from steeltrack.core.exceptions import ImportFormatError

from .base import BaseImporter, logger, validate_lot_fields
from .parser import headers_match, split_csv_line
from .result import ImportResult

INVENTORY_HEADERS = [
    "Entry Date", "S.No", "Type", "Dimensions", "Weight", "Coating",
    "Specifications", "Item Form", "LOT", "Quality", "Balance",
]

# CSV column -> model attribute; Balance is accepted but not imported
INVENTORY_FIELDS = [
    "entry_date", "serial_number", "steel_type", "dimensions", "weight", "coating",
    "specifications", "form", "lot_code", "quality", None,
]


class InventoryImporter(BaseImporter):
    """Imports stock lots; rows whose serial number already exists are skipped"""

    kind = "inventory"

    def parse_header(self, header_line: str):
        headers = split_csv_line(header_line)
        if not headers_match(headers, INVENTORY_HEADERS):
            raise ImportFormatError(
                f"CSV headers don't match expected format. Expected: {', '.join(INVENTORY_HEADERS)}"
            )
        return INVENTORY_FIELDS

    def process(self, lines: List[str], layout, result: ImportResult) -> None:
        for line_number, line in self.data_rows(lines):
            label = f"Row {line_number}"
            self.guarded(result, label, self.import_row, label, line, result)

    def import_row(self, label: str, line: str, result: ImportResult) -> None:
        cells = split_csv_line(line)
        if len(cells) != len(INVENTORY_HEADERS):
            result.add_error(f"{label}: Expected {len(INVENTORY_HEADERS)} columns, got {len(cells)}")
            return

        fields = {name: cell for name, cell in zip(INVENTORY_FIELDS, cells) if name}
        values, error = validate_lot_fields(fields)
        if error:
            result.add_error(f"{label}: {error}")
            return

        serial = values["serial_number"]
        if self.inventory.find_by_serial(serial) is not None:
            result.add_skip(f'{label}: Item with S.No "{serial}" already exists, skipped')
            return

        dimensions = values.pop("dimensions")
        lot = self.inventory.create_lot(values, dimensions)
        result.success += 1
        result.inventory_imported += 1
        logger.debug(f"{label}: imported stock lot {lot.id}")
