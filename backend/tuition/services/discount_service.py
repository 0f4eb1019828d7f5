# tuition/services/discount_service.py
#
# Discount state for one editing session.
#
#   NoDiscount ──select_type──▶ TypeSelected ──set_amount(>0)──▶ AmountEntered
#        ▲                           ▲                                │
#        │                           └────── set_amount(0) ───────────┤
#        └──────────── remove() ◀──── Applied ◀──── apply() ──────────┘
#
# Once applied, type and amount are frozen until remove().

from decimal import Decimal
from typing import Optional
import logging

from tuition.core.exceptions import ValidationError
from tuition.schemas.fees import DiscountState, DiscountStatus, DiscountType
from tuition.services.activity_service import (
    ActivityAuditLog,
    DISCOUNT_REMOVED_ACTION,
    discount_applied_action,
    format_amount,
)
from tuition.services.stage_prices import StagePriceTable
from tuition.utils.money import money, parse_amount, to_decimal

logger = logging.getLogger(__name__)

APPLIED_MESSAGE = "Discount applied successfully."


class DiscountLedger:

    def __init__(
        self,
        audit_log: ActivityAuditLog,
        price_table: Optional[StagePriceTable] = None,
        user: str = "system",
        state: Optional[DiscountState] = None,
    ):
        self.audit_log = audit_log
        self.price_table = price_table or StagePriceTable()
        self.user = user
        self._state = state.model_copy() if state else DiscountState()
        self.error_message = ""
        self.success_message = ""

    # ── Read side ────────────────────────────────────────────
    @property
    def state(self) -> DiscountState:
        return self._state.model_copy()

    @property
    def status(self) -> DiscountStatus:
        if self._state.applied:
            return DiscountStatus.applied
        if self._state.type is None:
            return DiscountStatus.no_discount
        if self._state.amount > 0:
            return DiscountStatus.amount_entered
        return DiscountStatus.type_selected

    @property
    def is_locked(self) -> bool:
        return self._state.applied

    @property
    def applied_amount(self) -> Decimal:
        return self._state.applied_amount if self._state.applied else Decimal("0")

    # ── Inputs ───────────────────────────────────────────────
    def select_type(self, discount_type: Optional[DiscountType]) -> DiscountStatus:
        self._ensure_unlocked()
        self._state.type = DiscountType(discount_type) if discount_type else None
        self.audit_log.append(
            f"Selected discount type {self._state.type.value}" if self._state.type
            else "Cleared discount type",
            self.user,
        )
        return self.status

    def set_amount(self, amount) -> DiscountStatus:
        self._ensure_unlocked()
        value = parse_amount(amount, "Discount amount")
        self._state.amount = value
        self.audit_log.append(f"Changed discount amount to {format_amount(value)}", self.user)
        if value == 0:
            self.error_message = ""
            self.success_message = ""
        return self.status

    # ── Transitions ──────────────────────────────────────────
    def apply(self, current_total, user: Optional[str] = None) -> Decimal:
        """Apply the entered discount. Returns the new total (never below 0)."""
        self.error_message = ""
        self.success_message = ""

        if self.is_locked:
            raise ValidationError("A discount is already applied")
        if self.status is not DiscountStatus.amount_entered:
            self.error_message = "Select a discount type and enter an amount first."
            raise ValidationError(self.error_message)

        current = to_decimal(current_total)
        amount = self._state.amount
        new_total = money(max(Decimal("0"), current - amount))

        self._state.applied = True
        self._state.applied_type = self._state.type
        self._state.applied_amount = amount
        self._state.base_amount_before_discount = current
        self.success_message = APPLIED_MESSAGE

        self.audit_log.append(
            discount_applied_action(amount, self._state.type.value),
            user or self.user,
        )
        logger.debug(f"Discount {amount} ({self._state.type.value}) applied: {current} → {new_total}")
        return new_total

    def remove(self, stage: Optional[str], user: Optional[str] = None) -> Decimal:
        """
        Drop the applied discount and return the total to restore.

        The total goes back to the stage's base price, not to
        current + discount: the operator may have edited the total by hand
        after applying. Stages without a configured price fall back to the
        total recorded when the discount was applied.
        """
        if not self._state.applied:
            raise ValidationError("No discount is applied")

        restored = self.price_table.lookup(stage)
        if restored is None:
            restored = self._state.base_amount_before_discount or Decimal("0")

        self._state = DiscountState()
        self.error_message = ""
        self.success_message = ""
        self.audit_log.append(DISCOUNT_REMOVED_ACTION, user or self.user)
        return money(restored)

    def _ensure_unlocked(self) -> None:
        if self.is_locked:
            raise ValidationError("Discount is applied; remove it before editing")


def preview_discount(current_total, discount_amount) -> tuple[Decimal, Decimal]:
    """(new_total, excess absorbed by the 0 floor) without touching any state."""
    current = to_decimal(current_total)
    amount = to_decimal(discount_amount)
    new_total = max(Decimal("0"), current - amount)
    return money(new_total), money(max(Decimal("0"), amount - current))
