# tuition/services/fee_session.py
#
# In-memory model behind the "school fees" form for one student.
#
# The host page calls the setters on every field edit. Each setter
# records an audit line, recomputes what depends on it and then
# notifies the listeners so the page always holds a live snapshot:
#
#   on_fees_change(profile)
#   on_expenses_change(other_expense_lines, optional_expenses_state)
#
# finalize() hands the final snapshot to the commit protocol.

from datetime import date
from decimal import Decimal
from typing import Any, Callable, List, Optional

from tuition.core.exceptions import ValidationError
from tuition.schemas.fees import (
    CommitResult,
    DiscountStatus,
    DiscountType,
    FeeProfile,
    Installment,
    OptionalExpensesState,
    OtherExpenseLine,
)
from tuition.services.activity_service import ActivityAuditLog, format_amount
from tuition.services.commit_service import commit_fee_setup
from tuition.services.discount_service import DiscountLedger
from tuition.services.installment_service import allocate
from tuition.services.optional_expense_service import OptionalExpenseAggregator
from tuition.services.stage_prices import StagePriceTable
from tuition.utils.money import money, parse_amount, to_decimal

FeesListener = Callable[[FeeProfile], None]
ExpensesListener = Callable[[List[OtherExpenseLine], OptionalExpensesState], None]

INSTALLMENT_FIELDS = ("due_date", "paid", "paid_date")
EXPENSE_LINE_FIELDS = ("expense_type", "quantity", "total_price", "expense_date")


class FeeSetupSession:

    def __init__(
        self,
        student_id: str,
        user: str,
        profile: Optional[FeeProfile] = None,
        expense_lines: Optional[List[OtherExpenseLine]] = None,
        price_table: Optional[StagePriceTable] = None,
        today: Optional[date] = None,
        user_id: Optional[str] = None,
    ):
        self.student_id = student_id
        self.user = user
        self.user_id = user_id
        self.today = today
        self.stage: Optional[str] = None
        self.price_table = price_table or StagePriceTable()
        self.audit_log = ActivityAuditLog()
        self.ledger = DiscountLedger(self.audit_log, self.price_table, user=user)
        self.optional_expenses = OptionalExpenseAggregator()
        self.expense_lines: List[OtherExpenseLine] = list(expense_lines or []) or [OtherExpenseLine()]
        self.profile = (profile or FeeProfile(student_id=student_id)).model_copy(deep=True)
        self._fees_listeners: List[FeesListener] = []
        self._expenses_listeners: List[ExpensesListener] = []
        self._recompute()

    # ── Listeners ────────────────────────────────────────────
    def on_fees_change(self, listener: FeesListener) -> None:
        self._fees_listeners.append(listener)

    def on_expenses_change(self, listener: ExpensesListener) -> None:
        self._expenses_listeners.append(listener)

    def _fees_changed(self) -> None:
        snapshot = self.profile.model_copy(deep=True)
        for listener in self._fees_listeners:
            listener(snapshot)

    def _expenses_changed(self) -> None:
        lines = [line.model_copy() for line in self.expense_lines]
        optional = self.optional_expenses.snapshot()
        for listener in self._expenses_listeners:
            listener(lines, optional)

    # ── Core fee fields ──────────────────────────────────────
    def set_stage(self, stage: str) -> Decimal:
        """Pick the stage; the total follows its base price (0 if unpriced)."""
        self.stage = stage
        price = self.price_table.lookup(stage)
        return self.set_total(price if price is not None else Decimal("0"))

    def set_total(self, amount) -> Decimal:
        value = money(parse_amount(amount, "Total amount"))
        self._change_field("total_amount", value)
        return value

    def set_advance_payment(self, amount) -> Decimal:
        value = money(parse_amount(amount, "Advance payment"))
        self._change_field("advance_payment", value)
        return value

    def set_installment_count(self, count: int) -> int:
        if count is None or int(count) < 1:
            raise ValidationError("Installment count must be at least 1")
        self._change_field("installment_count", int(count))
        return int(count)

    def update_installment(self, index: int, field: str, value: Any) -> None:
        if field not in INSTALLMENT_FIELDS:
            raise ValidationError(f"Installment field '{field}' cannot be edited")
        if not 0 <= index < len(self.profile.installments):
            raise ValidationError(f"No installment #{index + 1}")
        installments = list(self.profile.installments)
        data = installments[index].model_dump()
        data[field] = value
        installments[index] = Installment.model_validate(data)
        self.profile.installments = installments
        self.audit_log.append(f"Edited installment #{index + 1} - {field}: {value}", self.user)
        self._recompute()
        self._fees_changed()

    def _change_field(self, field: str, value: Any) -> None:
        setattr(self.profile, field, value)
        shown = format_amount(value) if isinstance(value, Decimal) else value
        self.audit_log.append(f"Changed {field} to {shown}", self.user)
        self._recompute()
        self._fees_changed()

    def _recompute(self) -> None:
        self.profile.installments = allocate(
            self.profile.total_amount,
            self.profile.advance_payment,
            self.profile.installment_count,
            self.profile.installments,
            today=self.today,
        )

    # ── Discount ─────────────────────────────────────────────
    def select_discount_type(self, discount_type: Optional[DiscountType]) -> DiscountStatus:
        return self.ledger.select_type(discount_type)

    def set_discount_amount(self, amount) -> DiscountStatus:
        return self.ledger.set_amount(amount)

    def apply_discount(self) -> Decimal:
        self.profile.total_amount = self.ledger.apply(self.profile.total_amount, self.user)
        self._recompute()
        self._fees_changed()
        return self.profile.total_amount

    def remove_discount(self) -> Decimal:
        self.profile.total_amount = self.ledger.remove(self.stage, self.user)
        self._recompute()
        self._fees_changed()
        return self.profile.total_amount

    # ── Other expense lines ──────────────────────────────────
    def add_expense_line(self, line: Optional[OtherExpenseLine] = None) -> int:
        self.expense_lines.append(line or OtherExpenseLine())
        self._expenses_changed()
        return len(self.expense_lines) - 1

    def update_expense_line(self, index: int, field: str, value: Any) -> OtherExpenseLine:
        if field not in EXPENSE_LINE_FIELDS:
            raise ValidationError(f"Expense field '{field}' cannot be edited")
        if not 0 <= index < len(self.expense_lines):
            raise ValidationError(f"No expense row #{index + 1}")
        data = self.expense_lines[index].model_dump()
        data[field] = value
        self.expense_lines[index] = OtherExpenseLine.model_validate(data)
        self._expenses_changed()
        return self.expense_lines[index]

    def remove_expense_line(self, index: int) -> bool:
        """Drop a row. The last remaining row is kept; returns False then."""
        if len(self.expense_lines) <= 1:
            return False
        if not 0 <= index < len(self.expense_lines):
            raise ValidationError(f"No expense row #{index + 1}")
        del self.expense_lines[index]
        self._expenses_changed()
        return True

    # ── Optional expenses ────────────────────────────────────
    def toggle_optional(self, category) -> bool:
        enabled = self.optional_expenses.toggle(category)
        name = self.optional_expenses[category].category.value
        self.audit_log.append(f"{'Enabled' if enabled else 'Disabled'} {name}", self.user)
        self._expenses_changed()
        return enabled

    def set_optional_field(self, category, field: str, value: Any) -> Decimal:
        total = self.optional_expenses.set_field(category, field, value)
        entry = self.optional_expenses[category]
        shown = entry.values[field]
        if isinstance(shown, Decimal):
            shown = format_amount(shown)
        self.audit_log.append(f"Changed {entry.category.value}.{field} to {shown}", self.user)
        self._expenses_changed()
        return total

    # ── Totals ───────────────────────────────────────────────
    @property
    def other_expenses_total(self) -> Decimal:
        return money(sum((to_decimal(line.total_price) for line in self.expense_lines), Decimal("0")))

    @property
    def optional_expenses_total(self) -> Decimal:
        return self.optional_expenses.grand_total

    @property
    def grand_total(self) -> Decimal:
        return money(self.profile.total_amount + self.other_expenses_total + self.optional_expenses_total)

    # ── Finalize ─────────────────────────────────────────────
    async def finalize(self, db, academic_year_code: Optional[str] = None) -> CommitResult:
        return await commit_fee_setup(
            db,
            student_id=self.student_id,
            fee_profile=self.profile.model_copy(deep=True),
            discount_state=self.ledger.state,
            expense_lines=list(self.expense_lines),
            optional_expenses=self.optional_expenses,
            audit_log=self.audit_log,
            academic_year_code=academic_year_code,
            user=self.user,
            user_id=self.user_id,
        )
