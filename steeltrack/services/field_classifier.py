"""
Sensitive field registry and ciphertext detection
"""
import re
from enum import Enum
from typing import Dict

from steeltrack.core.config import settings
from steeltrack.core.crypto import Encrypted, Plain, TaggedValue


class EntityKind(str, Enum):
    """Record kinds carrying sensitive fields"""
    INVENTORY = "inventory"
    SALES = "sales"


class ValueKind(Enum):
    """How a decrypted field is turned back into a value"""
    TEXT = "text"
    NUMBER = "number"
    JSON_LIST = "json_list"


# Attribute name -> value kind, per entity kind. Attribute names follow the
# models: StockLot.steel_type maps to the "type" column.
SENSITIVE_FIELDS: Dict[EntityKind, Dict[str, ValueKind]] = {
    EntityKind.INVENTORY: {
        "serial_number": ValueKind.TEXT,
        "steel_type": ValueKind.TEXT,
        "weight": ValueKind.NUMBER,
        "lot_code": ValueKind.TEXT,
        "customer_name": ValueKind.TEXT,
        "coating": ValueKind.TEXT,
        "specifications": ValueKind.TEXT,
        "form": ValueKind.TEXT,
    },
    EntityKind.SALES: {
        "customer_name": ValueKind.TEXT,
        "quantity_sold": ValueKind.NUMBER,
        "dimensions_snapshot": ValueKind.JSON_LIST,
    },
}

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


def sensitive_fields(kind) -> Dict[str, ValueKind]:
    """Sensitive attributes of an entity kind; unknown kinds raise ValueError"""
    return SENSITIVE_FIELDS[EntityKind(kind)]


def looks_encrypted(value) -> bool:
    """
    Decide whether a stored value is ciphertext.

    Tagged blobs are recognised exactly. Untagged values from older
    releases fall back to the shape heuristic: a base64-alphabet string
    longer than the minimum blob length. That heuristic misreads a long
    base64-looking plaintext as ciphertext; such a value then fails to
    decrypt and is kept as-is.
    """
    if not isinstance(value, str):
        return False
    tag = settings.CIPHERTEXT_TAG
    if tag and value.startswith(tag):
        return True
    if not settings.LEGACY_CIPHERTEXT_DETECTION:
        return False
    return len(value) > settings.LEGACY_CIPHERTEXT_MIN_LENGTH and bool(_BASE64_RE.match(value))


def classify(value) -> TaggedValue:
    if looks_encrypted(value):
        return Encrypted(value)
    return Plain(value)
