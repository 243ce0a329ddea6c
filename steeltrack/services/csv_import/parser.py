"""
CSV parsing helpers shared by the importers
"""
import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from steeltrack.core.config import settings
from steeltrack.core.exceptions import ImportFormatError

DIMENSION_SEPARATOR = "×"
EMPTY_MARKER = "—"

_DMY_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DMY_DASH = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_YMD_DASH = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def read_csv_file(path: Union[str, Path]) -> str:
    """Read a CSV file as text"""
    try:
        return Path(path).read_text(encoding="utf-8-sig")
    except FileNotFoundError as e:
        raise ImportFormatError(f"CSV file not found: {path}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ImportFormatError(f"Could not read CSV file {path}: {e}") from e


def decode_csv_bytes(data: bytes) -> str:
    """Decode uploaded CSV content"""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ImportFormatError("CSV file must be UTF-8 encoded") from e


def split_lines(text: str) -> List[str]:
    """
    Split CSV text into lines trimmed of spaces.

    Tabs are kept so trailing empty cells of tab-delimited rows survive.
    Blank lines are kept so list positions still match file line numbers.
    """
    if text is None:
        raise ImportFormatError("CSV content is empty")
    text = text.lstrip("\ufeff").strip(" \r\n")
    if not text.strip():
        return []
    return [line.strip(" \r") for line in text.splitlines()]


def split_csv_line(line: str, delimiter: str = ",") -> List[str]:
    """
    Split one CSV line honouring double quotes.

    A quote toggles quoted mode and is itself dropped; delimiters inside
    quotes are literal. Doubled quotes are not unescaped. Fields are
    trimmed.
    """
    fields = []
    current = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())
    return fields


def normalize_header(cell: str) -> str:
    return cell.strip().strip('"').strip().lower()


def headers_match(actual: Sequence[str], expected: Sequence[str]) -> bool:
    """Exact, case-insensitive, same-length header comparison"""
    if len(actual) != len(expected):
        return False
    return all(normalize_header(a) == e.lower() for a, e in zip(actual, expected))


def header_mismatches(actual: Sequence[str], expected: Sequence[str]) -> List[str]:
    """Per-column mismatch descriptions, 1-based"""
    problems = []
    for i in range(max(len(actual), len(expected))):
        got = actual[i].strip().strip('"').strip() if i < len(actual) else "MISSING"
        want = expected[i] if i < len(expected) else "EXTRA"
        if i >= len(actual) or i >= len(expected) or got.lower() != want.lower():
            problems.append(f'Column {i + 1}: Got "{got}", Expected "{want}"')
    return problems


def detect_delimiter(header_line: str, column_count: int) -> str:
    """Tab when a tab split yields the expected count, else comma when that does, else tab"""
    if len(split_csv_line(header_line, "\t")) == column_count:
        return "\t"
    if len(split_csv_line(header_line, ",")) == column_count:
        return ","
    return "\t"


def is_blank(value: Optional[str]) -> bool:
    return value is None or value.strip() in ("", EMPTY_MARKER)


def normalize_date(value: str) -> Optional[date]:
    """
    Parse dd/MM/yyyy, dd-MM-yyyy or yyyy-MM-dd.

    Returns None for any other shape or an impossible calendar date.
    """
    if value is None:
        return None
    value = value.strip()
    match = _DMY_SLASH.match(value) or _DMY_DASH.match(value)
    if match:
        day, month, year = (int(part) for part in match.groups())
    else:
        match = _YMD_DASH.match(value)
        if not match:
            return None
        year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_number(value: Optional[str]) -> Optional[Decimal]:
    """Leading-number parse; trailing text after the number is ignored"""
    if value is None:
        return None
    match = _LEADING_NUMBER.match(value)
    if not match:
        return None
    try:
        return Decimal(match.group(0).strip())
    except InvalidOperation:
        return None


def parse_positive(value: Optional[str]) -> Optional[Decimal]:
    number = parse_number(value)
    if number is None or number <= 0:
        return None
    return number


def canonical_thickness(value) -> Decimal:
    exponent = Decimal(1).scaleb(-settings.THICKNESS_DECIMAL_PLACES)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def canonical_width(value) -> int:
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_dimensions(text: Optional[str]) -> List[Tuple[Decimal, int]]:
    """
    Parse "thickness×width" pairs separated by semicolons.

    Unparseable or non-positive pairs are dropped. An empty result becomes a
    single 0×0 dimension.
    """
    dimensions = []
    if not is_blank(text):
        for part in text.split(";"):
            part = part.strip()
            if not part:
                continue
            pieces = re.split(r"[×xX]", part)
            if len(pieces) != 2:
                continue
            thickness = parse_number(pieces[0])
            width = parse_number(pieces[1])
            if thickness is None or width is None or thickness <= 0 or width <= 0:
                continue
            dimensions.append((canonical_thickness(thickness), canonical_width(width)))
    if not dimensions:
        dimensions.append((canonical_thickness(0), 0))
    return dimensions


def format_dimension(thickness, width) -> str:
    return f"{canonical_thickness(thickness)}{DIMENSION_SEPARATOR}{canonical_width(width)}"


def format_dimensions(dimensions) -> str:
    return "; ".join(format_dimension(t, w) for t, w in dimensions)


def clean_coating(value: Optional[str]) -> Optional[str]:
    """Drop the apostrophe spreadsheets prepend to keep text literal"""
    if value and value.startswith("'"):
        return value[1:]
    return value


def format_number(value: Decimal) -> str:
    """Shortest plain rendering of a quantity: 300.00 -> 300, 12.50 -> 12.5"""
    return format(Decimal(value).normalize(), "f")
