# tuition/schemas/fees.py

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional
from datetime import date
from decimal import Decimal
from enum import Enum

from tuition.utils.money import local_today


class DiscountType(str, Enum):
    sibling_second      = "sibling-second"        # second child in the family
    sibling_third       = "sibling-third"         # third child onwards
    staff_child         = "staff-child"
    academic_excellence = "academic-excellence"
    special_admin       = "special-admin"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value in LEGACY_DISCOUNT_TYPES:
            return cls(LEGACY_DISCOUNT_TYPES[value])
        return None


# Values sent by the old fees form.
LEGACY_DISCOUNT_TYPES = {
    "brother-second":    "sibling-second",
    "brother-third":     "sibling-third",
    "employee-children": "staff-child",
    "special":           "special-admin",
}


class DiscountStatus(str, Enum):
    no_discount    = "no_discount"
    type_selected  = "type_selected"
    amount_entered = "amount_entered"
    applied        = "applied"


class OptionalCategory(str, Enum):
    transportation    = "transportation"
    uniform           = "uniform"
    digital_platforms = "digital_platforms"
    trips             = "trips"
    events            = "events"
    books             = "books"


# ── Fee profile & installments ───────────────────────────────
class Installment(BaseModel):
    id: Optional[str] = None              # set once persisted
    installment_number: int = Field(ge=1)
    amount: Decimal
    due_date: date
    paid: bool = False
    paid_date: Optional[date] = None


class FeeProfile(BaseModel):
    """One per student per academic year."""
    id: Optional[str] = None
    student_id: Optional[str] = None
    total_amount: Decimal = Field(default=Decimal("0"), ge=0)
    installment_count: int = Field(default=1, ge=1)
    advance_payment: Decimal = Field(default=Decimal("0"), ge=0)
    installments: List[Installment] = []


class DiscountState(BaseModel):
    """
    Session-only discount state. At commit time it becomes a
    financial transaction row, never part of the stored tuition total.
    """
    type: Optional[DiscountType] = None
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    applied: bool = False
    applied_type: Optional[DiscountType] = None
    applied_amount: Decimal = Decimal("0")
    base_amount_before_discount: Optional[Decimal] = None

    @field_validator("type", "applied_type", mode="before")
    @classmethod
    def accept_legacy_type(cls, v):
        if isinstance(v, str):
            return LEGACY_DISCOUNT_TYPES.get(v, v)
        return v


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    timestamp: str
    user: str


class OtherExpenseLine(BaseModel):
    """Free-form expense row, not tied to the optional categories."""
    id: Optional[str] = None
    expense_type: str = ""
    quantity: int = Field(default=1, ge=0)
    total_price: Decimal = Field(default=Decimal("0"), ge=0)
    expense_date: date = Field(default_factory=local_today)

    @property
    def is_billable(self) -> bool:
        return bool(self.expense_type.strip()) and self.total_price > 0


# ── Optional expenses ────────────────────────────────────────
class OptionalCategoryInput(BaseModel):
    """What the UI sends for one optional category."""
    enabled: bool = False
    fields: Dict[str, Any] = {}


class OptionalCategoryState(BaseModel):
    category: OptionalCategory
    label: str
    enabled: bool
    fields: Dict[str, Any]
    quantity: int
    total: Decimal


class OptionalExpensesState(BaseModel):
    categories: List[OptionalCategoryState]
    grand_total: Decimal


# ── Commit ───────────────────────────────────────────────────
class CommitResult(BaseModel):
    success: bool
    fee_id: Optional[str] = None
    academic_year_code: Optional[str] = None
    stored_total: Optional[Decimal] = None     # pre-discount total written
    discount_amount: Decimal = Decimal("0")
    installments_written: int = 0
    warnings: List[str] = []
    error_kind: Optional[str] = None
    error_status: Optional[int] = None       # HTTP status of the failure
    error: Optional[str] = None


# ── Request / response bodies ────────────────────────────────
class InstallmentPreviewRequest(BaseModel):
    total_amount: Decimal = Field(ge=0)
    advance_payment: Decimal = Field(default=Decimal("0"), ge=0)
    installment_count: int = Field(default=1, ge=1)
    previous_installments: List[Installment] = []


class InstallmentPreviewResponse(BaseModel):
    installments: List[Installment]
    scheduled_total: Decimal
    expected_total: Decimal
    mismatch: bool


class DiscountPreviewRequest(BaseModel):
    current_total: Decimal = Field(ge=0)
    discount_amount: Decimal = Field(ge=0)


class DiscountPreviewResponse(BaseModel):
    new_total: Decimal
    discount_amount: Decimal
    absorbed_excess: Decimal       # part of the discount floored away at 0


class FeeSetupRequest(BaseModel):
    """Final snapshot of an editing session, sent on 'Save and finish'."""
    student_id: str = Field(min_length=1)
    academic_year_code: Optional[str] = None
    fee_profile: FeeProfile
    # Omitted by older clients: the discount is then read back from audit_log.
    discount: Optional[DiscountState] = None
    audit_log: List[AuditEntry] = []
    other_expenses: List[OtherExpenseLine] = []
    optional_expenses: Dict[OptionalCategory, OptionalCategoryInput] = {}
