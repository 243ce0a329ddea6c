"""
Record Crypto Adapter
Applies the field cipher across the sensitive fields of a record
"""
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from steeltrack.core.crypto import Encrypted
from steeltrack.core.exceptions import DecryptFailure
from steeltrack.core.security import AccessContext
from steeltrack.services.field_classifier import ValueKind, classify, sensitive_fields

logger = logging.getLogger(__name__)


def _serialize(value: Any, value_kind: ValueKind) -> str:
    """JSON payload stored inside the ciphertext"""
    if value_kind is ValueKind.NUMBER:
        number = to_decimal(value)
        if number is not None:
            return format(number.normalize(), "f")
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return json.dumps(value, ensure_ascii=False)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a stored or decrypted number to Decimal, None when not numeric"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _restore(value: Any, value_kind: ValueKind) -> Any:
    """Bring a decrypted or legacy plaintext value back to its logical type"""
    if value is None:
        return None
    if value_kind is ValueKind.NUMBER:
        number = to_decimal(value)
        return value if number is None else number
    if value_kind is ValueKind.JSON_LIST:
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                return value
            return parsed if isinstance(parsed, list) else value
        return value
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


def encrypt_record(record: Dict[str, Any], kind, context: AccessContext) -> Dict[str, Any]:
    """
    Return a copy of record with every present, non-empty sensitive field
    encrypted. Values that are already tagged ciphertext pass through.
    """
    result = dict(record)
    for field, value_kind in sensitive_fields(kind).items():
        value = result.get(field)
        if value is None or value == "":
            continue
        if context.cipher.is_tagged(value):
            continue
        result[field] = context.encrypt(_serialize(value, value_kind))
    return result


def decrypt_strict(value: Any, value_kind: ValueKind, context: AccessContext) -> Any:
    """
    Decrypt one stored value, raising DecryptFailure when ciphertext
    cannot be decrypted. Plaintext is returned in its logical type.
    """
    tagged = classify(value)
    if not isinstance(tagged, Encrypted):
        return _restore(value, value_kind)
    text = context.decrypt(tagged.blob)
    try:
        decoded = json.loads(text, parse_float=Decimal)
    except ValueError:
        decoded = text
    return _restore(decoded, value_kind)


def decrypt_value(value: Any, value_kind: ValueKind, context: AccessContext, field: str = "") -> Any:
    """
    Decrypt one stored value.

    A value that is not ciphertext is returned in its logical type. A value
    that looks like ciphertext but cannot be decrypted is kept as stored.
    """
    try:
        return decrypt_strict(value, value_kind, context)
    except DecryptFailure as e:
        logger.warning(f"Keeping stored value of {field or 'field'}: {e}")
        return value


def decrypt_record(record: Dict[str, Any], kind, context: AccessContext) -> Dict[str, Any]:
    """
    Return a copy of record with sensitive fields decrypted.

    Never raises for a bad field: plaintext passes through and undecryptable
    values are kept as stored.
    """
    result = dict(record)
    for field, value_kind in sensitive_fields(kind).items():
        if field in result:
            result[field] = decrypt_value(result[field], value_kind, context, field)
    return result
