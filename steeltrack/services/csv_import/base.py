"""
Base importer
Shared skeleton and field validation for the CSV importers
"""
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from steeltrack.core.exceptions import ImportFormatError, SteelTrackException
from steeltrack.core.logging import get_logger
from steeltrack.core.security import AccessContext
from steeltrack.schemas.inventory import QUALITIES, SALE_FORMS, STEEL_TYPES
from steeltrack.services.balance import BatchBalanceTracker
from steeltrack.services.sales_service import SalesService

from .parser import (
    clean_coating, is_blank, normalize_date, parse_dimensions, parse_positive,
    read_csv_file, split_lines
)
from .result import ImportResult

logger = get_logger("imports")

TOO_FEW_LINES = "CSV file must contain at least a header row and one data row"
LOT_REQUIRED = ("entry_date", "serial_number", "steel_type", "weight", "lot_code", "quality")


def _canonical_choice(value: str, choices: List[str]) -> Optional[str]:
    """Case-insensitive membership; returns the canonical spelling"""
    lowered = value.strip().lower()
    for choice in choices:
        if choice.lower() == lowered:
            return choice
    return None


def validate_lot_fields(fields: Dict[str, str]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Validate the inventory columns of one row

    Returns (values, error_message). values uses model attribute names
    plus a "dimensions" list of (thickness, width) pairs.
    """
    if any(is_blank(fields.get(name)) for name in LOT_REQUIRED):
        return None, "Missing required fields (Entry Date, S.No, Type, Weight, LOT, Quality)"

    entry_date = normalize_date(fields["entry_date"])
    if entry_date is None:
        return None, f'Invalid date format "{fields["entry_date"]}"'

    weight = parse_positive(fields["weight"])
    if weight is None:
        return None, f'Invalid weight "{fields["weight"]}". Must be a positive number'

    steel_type = _canonical_choice(fields["steel_type"], STEEL_TYPES)
    if steel_type is None:
        return None, f'Invalid type "{fields["steel_type"]}". Must be one of: {", ".join(STEEL_TYPES)}'

    quality = _canonical_choice(fields["quality"], QUALITIES)
    if quality is None:
        return None, f'Invalid quality "{fields["quality"]}". Must be one of: {", ".join(QUALITIES)}'

    def optional(name):
        value = fields.get(name)
        return None if is_blank(value) else value

    values = {
        "entry_date": entry_date,
        "serial_number": fields["serial_number"],
        "steel_type": steel_type,
        "weight": weight,
        "lot_code": fields["lot_code"],
        "quality": quality,
        "coating": clean_coating(optional("coating")),
        "specifications": optional("specifications"),
        "form": optional("form"),
        "dimensions": parse_dimensions(fields.get("dimensions")),
    }
    return values, None


def validate_sale_fields(
    sale_date: str, quantity: str, form: Optional[str], quantity_label: str = "quantity"
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Validate date, quantity and form of a sale row

    Returns (values, error_message). A blank form is allowed.
    """
    parsed_date = normalize_date(sale_date)
    if parsed_date is None:
        return None, f'Invalid date format "{sale_date}"'

    parsed_quantity = parse_positive(quantity)
    if parsed_quantity is None:
        return None, f'Invalid {quantity_label} "{quantity}". Must be a positive number'

    parsed_form = None
    if not is_blank(form):
        parsed_form = _canonical_choice(form, SALE_FORMS)
        if parsed_form is None:
            return None, f'Invalid form "{form}". Must be one of: {", ".join(SALE_FORMS)}'

    return {"sale_date": parsed_date, "quantity": parsed_quantity, "form": parsed_form}, None


class BaseImporter:
    """
    Skeleton shared by the importers.

    import_text splits the text, validates the header (raising
    ImportFormatError before any write) and hands the data rows to
    process(). Row problems are recorded on the result, never raised.
    """

    kind = "csv"

    def __init__(self, db: Session, context: AccessContext):
        self.db = db
        self.context = context
        self.sales = SalesService(db, context)
        self.inventory = self.sales.inventory
        self.tracker = BatchBalanceTracker(self.inventory.balance)

    def import_file(self, path: Union[str, Path]) -> ImportResult:
        return self.import_text(read_csv_file(path))

    def import_text(self, text: str) -> ImportResult:
        lines = split_lines(text)
        if len(lines) < 2:
            raise ImportFormatError(TOO_FEW_LINES)

        layout = self.parse_header(lines[0])
        result = ImportResult()
        logger.info(f"Starting {self.kind} import with {len(lines) - 1} data line(s)")
        self.process(lines, layout, result)
        logger.info(
            f"{self.kind.capitalize()} import finished: {result.success} imported, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def parse_header(self, header_line: str):
        raise NotImplementedError

    def process(self, lines: List[str], layout, result: ImportResult) -> None:
        raise NotImplementedError

    @staticmethod
    def data_rows(lines: List[str]) -> Iterator[Tuple[int, str]]:
        """(file line number, line) for every non-blank data line"""
        for line_number, line in enumerate(lines[1:], start=2):
            if line.strip():
                yield line_number, line

    def guarded(self, result: ImportResult, label: str, handler, *args) -> None:
        """Run one row handler; a database or domain error rolls back and is recorded"""
        try:
            handler(*args)
        except (SQLAlchemyError, SteelTrackException) as e:
            self.db.rollback()
            logger.error(f"{label}: {e}")
            result.add_error(f"{label}: {e}")
