"""
Balance Calculator
Remaining sellable quantity of stock lots
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from steeltrack.core.config import settings
from steeltrack.core.security import AccessContext
from steeltrack.models import Sale, StockLot
from steeltrack.services.field_classifier import ValueKind
from steeltrack.services.record_crypto import decrypt_value, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def quantize_quantity(value) -> Decimal:
    """Round a quantity to the configured decimal places, half up"""
    exponent = Decimal(1).scaleb(-settings.QUANTITY_DECIMAL_PLACES)
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


class BalanceCalculator:
    """
    Computes balances from persisted sales.

    Every call reads and decrypts the current sale rows; nothing is cached.
    """

    def __init__(self, db: Session, context: AccessContext):
        self.db = db
        self.context = context

    def total_sold(self, stock_lot_id: int, exclude_sale_id: Optional[int] = None) -> Decimal:
        """Sum of decrypted sale quantities for a lot, rounded"""
        stmt = select(Sale.id, Sale.quantity_sold).where(Sale.stock_lot_id == stock_lot_id)
        if exclude_sale_id is not None:
            stmt = stmt.where(Sale.id != exclude_sale_id)

        total = ZERO
        with self.db.no_autoflush:
            rows = self.db.execute(stmt).all()
        for sale_id, stored in rows:
            quantity = to_decimal(
                decrypt_value(stored, ValueKind.NUMBER, self.context, "quantity_sold")
            )
            if quantity is None:
                logger.warning(f"Sale {sale_id} has an unreadable quantity, left out of balance")
                continue
            total += quantity
        return quantize_quantity(total)

    def balance(self, stock_lot_id: int, weight, exclude_sale_id: Optional[int] = None) -> Decimal:
        """weight minus total sold, rounded"""
        return quantize_quantity(
            Decimal(weight) - self.total_sold(stock_lot_id, exclude_sale_id)
        )

    def lot_weight(self, lot: StockLot) -> Decimal:
        weight = to_decimal(decrypt_value(lot.weight, ValueKind.NUMBER, self.context, "weight"))
        return weight if weight is not None else ZERO

    def balance_for_lot(self, lot: StockLot, exclude_sale_id: Optional[int] = None) -> Decimal:
        return self.balance(lot.id, self.lot_weight(lot), exclude_sale_id)


class BatchBalanceTracker:
    """
    Balance including writes pending in the current import batch.

    remaining() subtracts both persisted sales and quantities reserved but
    not yet committed. Once a reservation is committed, settle() drops it so
    it is not counted twice.
    """

    def __init__(self, calculator: BalanceCalculator):
        self.calculator = calculator
        self._pending: Dict[int, Decimal] = {}

    def pending(self, stock_lot_id: int) -> Decimal:
        return self._pending.get(stock_lot_id, ZERO)

    def remaining(self, stock_lot_id: int, weight) -> Decimal:
        return quantize_quantity(
            self.calculator.balance(stock_lot_id, weight) - self.pending(stock_lot_id)
        )

    def reserve(self, stock_lot_id: int, quantity) -> None:
        self._pending[stock_lot_id] = self.pending(stock_lot_id) + Decimal(quantity)

    def settle(self, stock_lot_id: int) -> None:
        """Drop reservations once their writes are committed or rolled back"""
        self._pending.pop(stock_lot_id, None)
