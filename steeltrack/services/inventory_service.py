"""
Inventory Service
Stock lot maintenance: lots, dimensions, completion and DC moves
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, exists, select
from sqlalchemy.orm import Session, selectinload

from steeltrack.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from steeltrack.core.security import AccessContext
from steeltrack.models import Dimension, Sale, StockLot
from steeltrack.schemas.inventory import StockLotCreate, StockLotFilter, StockLotUpdate
from steeltrack.services.balance import BalanceCalculator
from steeltrack.services.csv_import.parser import (
    canonical_thickness, canonical_width, format_dimension
)
from steeltrack.services.field_classifier import EntityKind, ValueKind
from steeltrack.services.record_crypto import decrypt_record, decrypt_value, encrypt_record

logger = logging.getLogger(__name__)

LOT_COLUMNS = (
    "id", "entry_date", "serial_number", "steel_type", "weight", "lot_code", "quality",
    "customer_name", "completed", "at_dc", "coating", "specifications", "form",
    "created_at", "updated_at",
)
LOT_TEXT_FIELDS = ("serial_number", "steel_type", "lot_code", "coating", "specifications", "form")


def dimension_to_dict(dimension: Dimension) -> Dict[str, Any]:
    return {
        "id": dimension.id,
        "thickness": canonical_thickness(dimension.thickness or 0),
        "width": canonical_width(dimension.width or 0),
        "text": format_dimension(dimension.thickness or 0, dimension.width or 0),
    }


def _contains(value, needle: str) -> bool:
    return value is not None and needle.lower() in str(value).lower()


class InventoryService:
    """Service for stock lots and their dimensions"""

    def __init__(self, db: Session, context: AccessContext):
        self.db = db
        self.context = context
        self.balance = BalanceCalculator(db, context)

    # Lookups

    def get_lot(self, stock_lot_id: int) -> StockLot:
        lot = self.db.get(StockLot, stock_lot_id)
        if lot is None:
            raise NotFoundError(f"Stock lot {stock_lot_id} not found")
        return lot

    def lot_to_dict(self, lot: StockLot, include_balance: bool = False) -> Dict[str, Any]:
        """Decrypted view of a lot with its dimensions"""
        record = {column: getattr(lot, column) for column in LOT_COLUMNS}
        record = decrypt_record(record, EntityKind.INVENTORY, self.context)
        dimensions = sorted(lot.dimensions, key=lambda d: (d.thickness or 0, d.width or 0))
        record["dimensions"] = [dimension_to_dict(d) for d in dimensions]
        if include_balance:
            weight = record["weight"] if isinstance(record["weight"], Decimal) else Decimal(0)
            total = self.balance.total_sold(lot.id)
            record["total_sold"] = total
            record["balance"] = self.balance.balance(lot.id, weight)
        return record

    def ensure_editable(self, lot: StockLot) -> None:
        """Lots at the distribution center stay frozen until returned"""
        if lot.at_dc:
            raise BusinessLogicError(
                f"Stock lot {lot.id} is at DC and cannot be changed. Return it from DC first"
            )

    def get_lot_dict(self, stock_lot_id: int, include_balance: bool = True) -> Dict[str, Any]:
        return self.lot_to_dict(self.get_lot(stock_lot_id), include_balance)

    def decrypted_serial(self, lot: StockLot):
        return decrypt_value(lot.serial_number, ValueKind.TEXT, self.context, "serial_number")

    def find_by_serial(self, serial_number: str, exclude_id: Optional[int] = None) -> Optional[StockLot]:
        """
        Find a lot by exact, case-sensitive serial number.

        Serial numbers are encrypted with random salts, so every lot is read
        and decrypted on each call.
        """
        for lot in self.db.execute(select(StockLot).order_by(StockLot.id)).scalars():
            if exclude_id is not None and lot.id == exclude_id:
                continue
            if self.decrypted_serial(lot) == serial_number:
                return lot
        return None

    def dimension_snapshot(self, lot: StockLot) -> List[str]:
        """The lot's current dimensions as "thickness×width" strings"""
        dimensions = sorted(lot.dimensions, key=lambda d: (d.thickness or 0, d.width or 0))
        return [format_dimension(d.thickness, d.width) for d in dimensions]

    # Create / update / delete

    def create_lot(
        self,
        values: Dict[str, Any],
        dimensions: Iterable[Tuple[Decimal, int]],
        commit: bool = True,
    ) -> StockLot:
        """
        Encrypt and insert a lot with its dimensions.

        values uses model attribute names. No duplicate check is made here.
        """
        encrypted = encrypt_record(values, EntityKind.INVENTORY, self.context)
        lot = StockLot(
            entry_date=encrypted["entry_date"],
            serial_number=encrypted["serial_number"],
            steel_type=encrypted["steel_type"],
            weight=encrypted["weight"],
            lot_code=encrypted["lot_code"],
            quality=encrypted["quality"],
            customer_name=encrypted.get("customer_name"),
            coating=encrypted.get("coating") or None,
            specifications=encrypted.get("specifications") or None,
            form=encrypted.get("form") or None,
            completed=bool(values.get("completed", False)),
            at_dc=bool(values.get("at_dc", False)),
        )
        for thickness, width in dimensions:
            lot.dimensions.append(
                Dimension(thickness=canonical_thickness(thickness), width=canonical_width(width))
            )
        self.db.add(lot)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(lot)
        return lot

    def add_lot(self, data: StockLotCreate) -> Dict[str, Any]:
        """Add a stock lot; serial numbers must be unique"""
        values = data.model_dump(exclude={"dimensions"})
        values["steel_type"] = data.steel_type.value
        values["quality"] = data.quality.value
        if self.find_by_serial(values["serial_number"]):
            raise BusinessLogicError(f'Item with S.No "{values["serial_number"]}" already exists')

        lot = self.create_lot(values, [(d.thickness, d.width) for d in data.dimensions])
        logger.info(f"Stock lot {lot.id} added")
        return self.lot_to_dict(lot, include_balance=True)

    def update_lot(self, stock_lot_id: int, data: StockLotUpdate) -> Dict[str, Any]:
        """
        Update a lot. Sensitive fields are re-encrypted; when dimensions are
        given they replace the existing set.
        """
        lot = self.get_lot(stock_lot_id)
        self.ensure_editable(lot)
        changes = data.model_dump(exclude_unset=True, exclude={"dimensions"})
        for key in ("steel_type", "quality"):
            if changes.get(key) is not None:
                changes[key] = getattr(changes[key], "value", changes[key])

        for key in ("entry_date", "serial_number", "steel_type", "weight", "lot_code", "quality"):
            if key in changes and changes[key] is None:
                raise ValidationError(f"{key} cannot be cleared")

        if "serial_number" in changes and self.find_by_serial(changes["serial_number"], exclude_id=lot.id):
            raise BusinessLogicError(f'Item with S.No "{changes["serial_number"]}" already exists')

        if "weight" in changes:
            sold = self.balance.total_sold(lot.id)
            if Decimal(changes["weight"]) < sold:
                raise BusinessLogicError(
                    f"Weight {changes['weight']} is less than quantity already sold {sold}"
                )

        encrypted = encrypt_record(changes, EntityKind.INVENTORY, self.context)
        for key, value in encrypted.items():
            setattr(lot, key, value if value != "" else None)

        if data.dimensions is not None:
            lot.dimensions.clear()
            self.db.flush()
            for dimension in data.dimensions:
                lot.dimensions.append(Dimension(thickness=dimension.thickness, width=dimension.width))

        self.db.commit()
        self.db.refresh(lot)
        logger.info(f"Stock lot {lot.id} updated")
        return self.lot_to_dict(lot, include_balance=True)

    def delete_lot(self, stock_lot_id: int) -> None:
        """Delete a lot; its dimensions and sales go with it"""
        lot = self.get_lot(stock_lot_id)
        self.db.delete(lot)
        self.db.commit()
        logger.info(f"Stock lot {stock_lot_id} deleted")

    # Dimensions

    def add_dimension(self, stock_lot_id: int, thickness, width) -> Dict[str, Any]:
        lot = self.get_lot(stock_lot_id)
        self.ensure_editable(lot)
        dimension = Dimension(thickness=canonical_thickness(thickness), width=canonical_width(width))
        lot.dimensions.append(dimension)
        self.db.commit()
        self.db.refresh(dimension)
        return dimension_to_dict(dimension)

    def remove_dimension(self, stock_lot_id: int, dimension_id: int) -> None:
        lot = self.get_lot(stock_lot_id)
        self.ensure_editable(lot)
        dimension = next((d for d in lot.dimensions if d.id == dimension_id), None)
        if dimension is None:
            raise NotFoundError(f"Dimension {dimension_id} not found on stock lot {stock_lot_id}")
        if len(lot.dimensions) <= 1:
            raise BusinessLogicError("A stock lot must keep at least one dimension")
        lot.dimensions.remove(dimension)
        self.db.commit()

    # Status flags

    def set_lot_completion(self, lot_code: str, completed: bool) -> int:
        """Mark every stock lot sharing a lot code; returns the number updated"""
        updated = 0
        for lot in self.db.execute(select(StockLot)).scalars():
            code = decrypt_value(lot.lot_code, ValueKind.TEXT, self.context, "lot_code")
            if code == lot_code:
                lot.completed = completed
                updated += 1
        self.db.commit()
        logger.info(f"Lot {lot_code}: completion set to {completed} on {updated} stock lot(s)")
        return updated

    def _sale_state(self, lot: StockLot) -> Optional[str]:
        """
        "sold" when the lot has a legacy customer or nothing left,
        "partial" when some of it is sold, None while untouched
        """
        customer = decrypt_value(lot.customer_name, ValueKind.TEXT, self.context, "customer_name")
        if customer and str(customer).strip():
            return "sold"
        weight = self.balance.lot_weight(lot)
        remaining = self.balance.balance(lot.id, weight)
        if remaining <= 0:
            return "sold"
        if remaining != weight:
            return "partial"
        return None

    def set_dc(self, stock_lot_id: int, at_dc: bool) -> Dict[str, Any]:
        """
        Send a lot to the distribution center or bring it back.

        Only lots with their full weight still on hand can be sent.
        """
        lot = self.get_lot(stock_lot_id)
        if at_dc and not lot.at_dc:
            state = self._sale_state(lot)
            if state == "sold":
                raise BusinessLogicError("Cannot send sold item to DC")
            if state == "partial":
                raise BusinessLogicError(
                    "Cannot send partially sold item to DC. Balance must equal weight"
                )
        lot.at_dc = at_dc
        self.db.commit()
        self.db.refresh(lot)
        return self.lot_to_dict(lot, include_balance=True)

    def bulk_set_dc(self, stock_lot_ids: List[int], at_dc: bool) -> List[int]:
        """All or nothing: sending fails when any of the lots is sold or partially sold"""
        lots = self.db.execute(select(StockLot).where(StockLot.id.in_(stock_lot_ids))).scalars().all()
        found = {lot.id for lot in lots}
        missing = [i for i in stock_lot_ids if i not in found]
        if missing:
            raise NotFoundError(f"Stock lots not found: {', '.join(map(str, missing))}")
        if at_dc:
            states = [self._sale_state(lot) for lot in lots if not lot.at_dc]
            sold = states.count("sold")
            if sold:
                raise BusinessLogicError(
                    f"Cannot send sold items to DC: {sold} items are already sold"
                )
            partial = states.count("partial")
            if partial:
                raise BusinessLogicError(
                    f"Cannot send partially sold items to DC: {partial} items have "
                    f"balance below weight"
                )
        for lot in lots:
            lot.at_dc = at_dc
        self.db.commit()
        return sorted(found)

    # Listing

    def lot_balance(self, stock_lot_id: int) -> Dict[str, Any]:
        lot = self.get_lot(stock_lot_id)
        weight = self.balance.lot_weight(lot)
        total = self.balance.total_sold(lot.id)
        return {
            "stock_lot_id": lot.id,
            "weight": weight,
            "total_sold": total,
            "balance": self.balance.balance(lot.id, weight),
        }

    def list_lots(self, filters: Optional[StockLotFilter] = None) -> List[Dict[str, Any]]:
        """
        Decrypted lots with balances, newest entry first.

        Plaintext columns are filtered in SQL; encrypted ones after
        decryption.
        """
        filters = filters or StockLotFilter()
        stmt = select(StockLot).options(selectinload(StockLot.dimensions))

        if filters.date_from:
            stmt = stmt.where(StockLot.entry_date >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(StockLot.entry_date <= filters.date_to)
        if filters.qualities:
            stmt = stmt.where(StockLot.quality.in_(filters.qualities))
        if filters.completed is not None:
            stmt = stmt.where(StockLot.completed == filters.completed)
        if filters.at_dc is not None:
            stmt = stmt.where(StockLot.at_dc == filters.at_dc)

        dimension_bounds = []
        if filters.thickness_min is not None:
            dimension_bounds.append(Dimension.thickness >= filters.thickness_min)
        if filters.thickness_max is not None:
            dimension_bounds.append(Dimension.thickness <= filters.thickness_max)
        if filters.width_min is not None:
            dimension_bounds.append(Dimension.width >= filters.width_min)
        if filters.width_max is not None:
            dimension_bounds.append(Dimension.width <= filters.width_max)
        for bound in dimension_bounds:
            stmt = stmt.where(exists().where(and_(Dimension.stock_lot_id == StockLot.id, bound)))

        stmt = stmt.order_by(StockLot.entry_date.desc(), StockLot.created_at.desc(), StockLot.id.desc())

        results = []
        for lot in self.db.execute(stmt).scalars():
            record = self.lot_to_dict(lot)
            if not self._matches(record, lot, filters):
                continue
            weight = record["weight"] if isinstance(record["weight"], Decimal) else Decimal(0)
            record["total_sold"] = self.balance.total_sold(lot.id)
            record["balance"] = self.balance.balance(lot.id, weight)
            results.append(record)
        return results

    def _matches(self, record: Dict[str, Any], lot: StockLot, filters: StockLotFilter) -> bool:
        if filters.steel_types and record["steel_type"] not in filters.steel_types:
            return False
        for field in LOT_TEXT_FIELDS:
            needle = getattr(filters, field, None)
            if needle and not _contains(record.get(field), needle):
                return False

        weight = record["weight"]
        if filters.weight_min is not None or filters.weight_max is not None:
            if not isinstance(weight, Decimal):
                return False
            if filters.weight_min is not None and weight < filters.weight_min:
                return False
            if filters.weight_max is not None and weight > filters.weight_max:
                return False

        if filters.customer_name:
            customers = [
                decrypt_value(s.customer_name, ValueKind.TEXT, self.context, "customer_name")
                for s in lot.sales
            ]
            customers.append(record.get("customer_name"))
            if not any(_contains(c, filters.customer_name) for c in customers):
                return False
        return True
