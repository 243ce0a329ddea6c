"""
Encryption maintenance
Status diagnostics, encryption of legacy plaintext rows and re-keying
"""
import logging
from typing import Any, Dict, List, Tuple, Type

from sqlalchemy import select
from sqlalchemy.orm import Session

from steeltrack.core.crypto import Encrypted
from steeltrack.core.exceptions import BusinessLogicError, DecryptFailure
from steeltrack.core.security import AccessContext
from steeltrack.models import Sale, StockLot
from steeltrack.services.field_classifier import EntityKind, classify, sensitive_fields
from steeltrack.services.record_crypto import decrypt_strict, decrypt_value, encrypt_record

logger = logging.getLogger(__name__)

ENTITIES: List[Tuple[EntityKind, Type]] = [
    (EntityKind.INVENTORY, StockLot),
    (EntityKind.SALES, Sale),
]


def _has_value(value) -> bool:
    return value is not None and value != ""


class EncryptionService:
    """Bulk operations over every sensitive value in the store"""

    def __init__(self, db: Session, context: AccessContext):
        self.db = db
        self.context = context

    def encryption_status(self) -> Dict[str, Any]:
        """Count encrypted and plaintext sensitive values per entity field"""
        encrypted: Dict[str, int] = {}
        plaintext: Dict[str, int] = {}
        totals = {}
        for kind, model in ENTITIES:
            rows = self.db.execute(select(model)).scalars().all()
            totals[kind] = len(rows)
            for row in rows:
                for field in sensitive_fields(kind):
                    value = getattr(row, field)
                    if not _has_value(value):
                        continue
                    key = f"{kind.value}.{field}"
                    bucket = encrypted if isinstance(classify(value), Encrypted) else plaintext
                    bucket[key] = bucket.get(key, 0) + 1

        return {
            "total_lots": totals[EntityKind.INVENTORY],
            "total_sales": totals[EntityKind.SALES],
            "has_encrypted_data": bool(encrypted),
            "has_plaintext_data": bool(plaintext),
            "encrypted_values": encrypted,
            "plaintext_values": plaintext,
        }

    def encrypt_legacy_rows(self) -> Dict[str, int]:
        """
        Encrypt every plaintext sensitive value in place.

        Values already encrypted are left alone, so this can be run again
        safely. All changes are committed together.
        """
        counts = {"lots_updated": 0, "sales_updated": 0, "values_encrypted": 0}
        for kind, model in ENTITIES:
            fields = sensitive_fields(kind)
            for row in self.db.execute(select(model)).scalars():
                plain = {}
                for field, value_kind in fields.items():
                    value = getattr(row, field)
                    if _has_value(value) and not isinstance(classify(value), Encrypted):
                        plain[field] = decrypt_value(value, value_kind, self.context, field)
                if not plain:
                    continue
                for field, value in encrypt_record(plain, kind, self.context).items():
                    setattr(row, field, value)
                counts["values_encrypted"] += len(plain)
                counts["lots_updated" if kind is EntityKind.INVENTORY else "sales_updated"] += 1

        self.db.commit()
        logger.info(
            f"Encrypted {counts['values_encrypted']} legacy value(s) in "
            f"{counts['lots_updated']} lot(s) and {counts['sales_updated']} sale(s)"
        )
        return counts

    def rekey(self, new_context: AccessContext, commit: bool = True) -> Dict[str, int]:
        """
        Re-encrypt every sensitive value under a new access code.

        Every value is decrypted before anything is written; a value that
        cannot be decrypted with the current code aborts the whole operation.
        """
        pending = []
        for kind, model in ENTITIES:
            fields = sensitive_fields(kind)
            for row in self.db.execute(select(model)).scalars():
                values = {}
                for field, value_kind in fields.items():
                    value = getattr(row, field)
                    if not _has_value(value):
                        continue
                    try:
                        values[field] = decrypt_strict(value, value_kind, self.context)
                    except DecryptFailure as e:
                        raise BusinessLogicError(
                            f"Cannot re-key: {kind.value} record {row.id} field {field} "
                            f"does not decrypt with the current access code"
                        ) from e
                if values:
                    pending.append((kind, row, values))

        counts = {"lots_updated": 0, "sales_updated": 0}
        for kind, row, values in pending:
            for field, value in encrypt_record(values, kind, new_context).items():
                setattr(row, field, value)
            counts["lots_updated" if kind is EntityKind.INVENTORY else "sales_updated"] += 1

        if commit:
            self.db.commit()
        logger.info(
            f"Re-keyed {counts['lots_updated']} lot(s) and {counts['sales_updated']} sale(s)"
        )
        return counts
