"""
Sales Service
Partial sales recorded against stock lots
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from steeltrack.core.exceptions import BusinessLogicError, NotFoundError, ValidationError
from steeltrack.core.security import AccessContext
from steeltrack.models import Sale, StockLot
from steeltrack.schemas.inventory import SaleCreate, SaleUpdate
from steeltrack.services.balance import BalanceCalculator
from steeltrack.services.csv_import.parser import format_number
from steeltrack.services.field_classifier import EntityKind
from steeltrack.services.inventory_service import InventoryService
from steeltrack.services.record_crypto import decrypt_record, encrypt_record, to_decimal

logger = logging.getLogger(__name__)

SALE_COLUMNS = (
    "id", "stock_lot_id", "customer_name", "quantity_sold", "form", "sale_date",
    "dimensions_snapshot", "created_at", "updated_at",
)


class SalesService:
    """Service for sales against stock lots"""

    def __init__(self, db: Session, context: AccessContext):
        self.db = db
        self.context = context
        self.inventory = InventoryService(db, context)
        self.balance: BalanceCalculator = self.inventory.balance

    def sale_to_dict(self, sale: Sale) -> Dict[str, Any]:
        record = {column: getattr(sale, column) for column in SALE_COLUMNS}
        return decrypt_record(record, EntityKind.SALES, self.context)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.db.get(Sale, sale_id)
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found")
        return sale

    def list_sales(self, stock_lot_id: int) -> List[Dict[str, Any]]:
        """Decrypted sales of a lot, most recent first"""
        self.inventory.get_lot(stock_lot_id)
        stmt = (
            select(Sale)
            .where(Sale.stock_lot_id == stock_lot_id)
            .order_by(Sale.sale_date.desc(), Sale.created_at.desc(), Sale.id.desc())
        )
        return [self.sale_to_dict(sale) for sale in self.db.execute(stmt).scalars()]

    def find_duplicate(
        self,
        stock_lot_id: int,
        sale_date: date,
        form: Optional[str],
        customer_name: str,
        quantity: Decimal,
    ) -> Optional[Sale]:
        """
        An existing sale with the same lot, date and form, whose decrypted
        customer and quantity also match
        """
        form_match = Sale.form.is_(None) if form is None else Sale.form == form
        stmt = select(Sale).where(
            Sale.stock_lot_id == stock_lot_id,
            Sale.sale_date == sale_date,
            form_match,
        )
        with self.db.no_autoflush:
            candidates = self.db.execute(stmt).scalars().all()
        for sale in candidates:
            existing = self.sale_to_dict(sale)
            if (
                existing["customer_name"] == customer_name
                and to_decimal(existing["quantity_sold"]) == Decimal(quantity)
            ):
                return sale
        return None

    def create_sale(
        self,
        lot: StockLot,
        customer_name: str,
        quantity: Decimal,
        form: Optional[str],
        sale_date: date,
        dimensions_snapshot: Optional[List[str]] = None,
        commit: bool = True,
    ) -> Sale:
        """
        Encrypt and insert a sale without any balance or duplicate check.

        With commit=False the sale is only added to the session, so balance
        queries do not see it until the caller commits.
        """
        values = {
            "customer_name": customer_name,
            "quantity_sold": quantity,
            "dimensions_snapshot": dimensions_snapshot,
        }
        encrypted = encrypt_record(values, EntityKind.SALES, self.context)
        sale = Sale(
            stock_lot_id=lot.id,
            customer_name=encrypted["customer_name"],
            quantity_sold=encrypted["quantity_sold"],
            dimensions_snapshot=encrypted["dimensions_snapshot"],
            form=form,
            sale_date=sale_date,
        )
        self.db.add(sale)
        if commit:
            self.db.commit()
            self.db.refresh(sale)
        return sale

    def check_quantity(self, lot: StockLot, quantity: Decimal, exclude_sale_id: Optional[int] = None):
        """Raise when quantity exceeds what is left of the lot"""
        remaining = self.balance.balance_for_lot(lot, exclude_sale_id)
        if Decimal(quantity) > remaining:
            raise BusinessLogicError(
                f"Quantity {format_number(quantity)} exceeds remaining weight "
                f"{format_number(remaining)}"
            )

    def add_sale(self, stock_lot_id: int, data: SaleCreate) -> Dict[str, Any]:
        """
        Record a sale

        The quantity must fit in the lot's remaining balance. Without an
        explicit snapshot the lot's current dimensions are used.
        """
        lot = self.inventory.get_lot(stock_lot_id)
        self.inventory.ensure_editable(lot)
        self.check_quantity(lot, data.quantity_sold)
        snapshot = data.dimensions_snapshot
        if snapshot is None:
            snapshot = self.inventory.dimension_snapshot(lot)

        sale = self.create_sale(
            lot,
            data.customer_name,
            data.quantity_sold,
            data.form.value if data.form else None,
            data.sale_date,
            snapshot,
        )
        logger.info(f"Sale {sale.id} recorded against stock lot {lot.id}")
        return self.sale_to_dict(sale)

    def update_sale(self, sale_id: int, data: SaleUpdate) -> Dict[str, Any]:
        """Update a sale; a new quantity is checked against the balance excluding this sale"""
        sale = self.get_sale(sale_id)
        self.inventory.ensure_editable(sale.stock_lot)
        changes = data.model_dump(exclude_unset=True)

        if "quantity_sold" in changes:
            if changes["quantity_sold"] is None:
                raise ValidationError("quantity_sold cannot be cleared")
            self.check_quantity(sale.stock_lot, changes["quantity_sold"], exclude_sale_id=sale.id)
        for key in ("customer_name", "sale_date"):
            if key in changes and changes[key] is None:
                raise ValidationError(f"{key} cannot be cleared")
        if changes.get("form") is not None:
            changes["form"] = getattr(changes["form"], "value", changes["form"])

        encrypted = encrypt_record(changes, EntityKind.SALES, self.context)
        for key, value in encrypted.items():
            setattr(sale, key, value)

        self.db.commit()
        self.db.refresh(sale)
        logger.info(f"Sale {sale.id} updated")
        return self.sale_to_dict(sale)

    def delete_sale(self, sale_id: int) -> None:
        sale = self.get_sale(sale_id)
        self.inventory.ensure_editable(sale.stock_lot)
        self.db.delete(sale)
        self.db.commit()
        logger.info(f"Sale {sale_id} deleted")
