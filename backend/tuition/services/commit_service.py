# tuition/services/commit_service.py
#
# "Save and finish" for a student's fee setup.
#
# Not one database transaction but a fixed sequence of writes:
#
#   1. resolve the active academic year      ─┐
#   2. work out the pre-discount total         │ mandatory: any failure
#   3. insert school_fees                      │ stops here and the setup
#   4. insert fee_installments                ─┘ counts as failed
#   5. insert other_expenses (free-form rows) ─┐
#   6. insert the discount transaction         │ best-effort: failures are
#   7. insert optional expense rows           ─┘ logged and returned as warnings
#
# The stored tuition total is ALWAYS the undiscounted figure. The
# discount lives in financial_transactions on its own.
#
# If step 4 fails, the fee record from step 3 is deleted again so no
# school_fees row without installments is left behind.

from decimal import Decimal
from typing import List, Optional, Sequence
import logging

from tuition.core.exceptions import (
    FeeSetupError,
    MandatoryWriteError,
    NoActiveYearError,
    OptionalWriteError,
    ValidationError,
)
from tuition.schemas.fees import (
    CommitResult,
    DiscountState,
    FeeProfile,
    OtherExpenseLine,
)
from tuition.services.activity_service import ActivityAuditLog, format_amount, log_activity
from tuition.services.optional_expense_service import OptionalExpenseAggregator
from tuition.core.config import settings
from tuition.utils.money import local_today, money, to_decimal

logger = logging.getLogger(__name__)

DISCOUNT_TRANSACTION_TYPE = "خصم"


async def commit_fee_setup(
    db,
    student_id: str,
    fee_profile: FeeProfile,
    discount_state: Optional[DiscountState],
    expense_lines: Sequence[OtherExpenseLine],
    optional_expenses: OptionalExpenseAggregator,
    audit_log: Optional[ActivityAuditLog] = None,
    academic_year_code: Optional[str] = None,
    user: Optional[str] = None,
    user_id: Optional[str] = None,
) -> CommitResult:
    """
    Run the whole sequence and report the outcome.

    Mandatory-step errors come back as success=False with error_kind set;
    they are not raised, so the caller always gets a CommitResult.
    """
    try:
        return await _run_commit(
            db, student_id, fee_profile, discount_state, expense_lines,
            optional_expenses, audit_log, academic_year_code, user, user_id,
        )
    except FeeSetupError as e:
        logger.error(f"Fee setup for student {student_id} failed [{e.kind}]: {e.message}")
        return CommitResult(
            success=False, error_kind=e.kind, error_status=e.status_code, error=e.message,
        )


async def _run_commit(
    db,
    student_id: str,
    fee_profile: FeeProfile,
    discount_state: Optional[DiscountState],
    expense_lines: Sequence[OtherExpenseLine],
    optional_expenses: OptionalExpenseAggregator,
    audit_log: Optional[ActivityAuditLog],
    academic_year_code: Optional[str],
    user: Optional[str],
    user_id: Optional[str],
) -> CommitResult:
    _validate(student_id, fee_profile)

    # 1. Active academic year
    year_code = academic_year_code or _resolve_active_year(db)

    # 2. Pre-discount total
    discount = resolve_discount_amount(discount_state, audit_log)
    original_total = money(to_decimal(fee_profile.total_amount) + discount)

    # 3. Fee record (mandatory)
    try:
        fee = db.insert("school_fees", {
            "student_id":         student_id,
            "academic_year_code": year_code,
            "total_amount":       float(original_total),
            "installment_count":  fee_profile.installment_count,
            "advance_payment":    float(fee_profile.advance_payment or 0),
        })
    except Exception as e:
        raise MandatoryWriteError("school fees", e)
    fee_id = fee.get("id")
    if not fee_id:
        raise MandatoryWriteError("school fees", RuntimeError("store returned no id"))

    # 4. Installments (mandatory)
    try:
        written = db.insert_many("fee_installments", [
            {
                "fee_id":             fee_id,
                "installment_number": inst.installment_number,
                "amount":             float(inst.amount),
                "due_date":           inst.due_date.isoformat(),
                "paid":               inst.paid,
                "paid_date":          inst.paid_date.isoformat() if inst.paid_date else None,
            }
            for inst in fee_profile.installments
        ])
    except Exception as e:
        _compensate_fee_record(db, fee_id)
        raise MandatoryWriteError("installments", e)

    # 5-7. Best-effort writes
    warnings: List[str] = []
    for step in (
        lambda: _insert_other_expenses(db, student_id, year_code, expense_lines),
        lambda: _insert_discount_transaction(db, student_id, year_code, discount),
        lambda: _insert_optional_expenses(db, student_id, year_code, optional_expenses),
    ):
        try:
            step()
        except OptionalWriteError as e:
            logger.error(f"Fee setup {fee_id}: {e.message} (continuing)")
            warnings.append(e.message)

    await log_activity(
        db,
        action="fee.setup_committed",
        user_id=user_id,
        entity_type="school_fees",
        entity_id=fee_id,
        metadata={
            "student_id": student_id,
            "academic_year_code": year_code,
            "committed_by": user,
            "total": float(original_total),
            "discount": float(discount),
            "warnings": warnings,
            "trail": [e.model_dump() for e in (audit_log or [])],
        },
    )

    logger.info(
        f"Fee setup {fee_id} saved for student {student_id} ({year_code}): "
        f"total {format_amount(original_total)}, {len(fee_profile.installments)} installments"
        + (f", {len(warnings)} warning(s)" if warnings else "")
    )
    return CommitResult(
        success=True,
        fee_id=str(fee_id),
        academic_year_code=year_code,
        stored_total=original_total,
        discount_amount=discount,
        installments_written=len(written) or len(fee_profile.installments),
        warnings=warnings,
    )


def resolve_discount_amount(
    discount_state: Optional[DiscountState],
    audit_log: Optional[ActivityAuditLog],
) -> Decimal:
    """
    Discount currently in force. The structured state is authoritative;
    the audit trail is only parsed when no state was supplied at all.
    """
    if discount_state is not None:
        return money(discount_state.applied_amount) if discount_state.applied else Decimal("0")
    if audit_log is not None:
        return money(audit_log.last_discount_amount())
    return Decimal("0")


# ── Internal helpers ─────────────────────────────────────────

def _validate(student_id: str, fee_profile: FeeProfile) -> None:
    if not student_id:
        raise ValidationError("A student id is required")
    if not fee_profile.total_amount or fee_profile.total_amount <= 0:
        raise ValidationError("Enter the tuition fees before saving")
    if not fee_profile.installments:
        raise ValidationError("The fee setup has no installments")


def _resolve_active_year(db) -> str:
    try:
        year = db.get_active_academic_year()
    except Exception as e:
        raise NoActiveYearError(f"Could not load the active academic year: {e}")
    if not year or not year.get("year_code"):
        raise NoActiveYearError()
    return year["year_code"]


def _compensate_fee_record(db, fee_id: str) -> None:
    try:
        db.delete("school_fees", fee_id)
        logger.warning(f"Removed fee record {fee_id} after installment write failed")
    except Exception as e:
        logger.error(f"Could not remove orphaned fee record {fee_id}: {e}")


def _insert_other_expenses(db, student_id: str, year_code: str, lines: Sequence[OtherExpenseLine]) -> None:
    rows = [
        {
            "student_id":         student_id,
            "academic_year_code": year_code,
            "expense_type":       line.expense_type.strip(),
            "quantity":           line.quantity,
            "total_price":        float(line.total_price),
            "date":               line.expense_date.isoformat(),
        }
        for line in lines if line.is_billable
    ]
    if not rows:
        return
    try:
        db.insert_many("other_expenses", rows)
    except Exception as e:
        raise OptionalWriteError("other expenses", e)


def _insert_discount_transaction(db, student_id: str, year_code: str, discount: Decimal) -> None:
    if discount <= 0:
        return
    try:
        db.insert("financial_transactions", {
            "student_id":         student_id,
            "academic_year_code": year_code,
            "transaction_type":   DISCOUNT_TRANSACTION_TYPE,
            "amount":             float(discount),
            "description":        f"Discount {format_amount(discount)} {settings.CURRENCY_LABEL}",
            "transaction_date":   local_today().isoformat(),
            "payment_method":     DISCOUNT_TRANSACTION_TYPE,
        })
    except Exception as e:
        raise OptionalWriteError("discount transaction", e)


def _insert_optional_expenses(db, student_id: str, year_code: str, optional: OptionalExpenseAggregator) -> None:
    today = local_today().isoformat()
    rows = [
        {
            "student_id":         student_id,
            "academic_year_code": year_code,
            "expense_type":       category.label,
            "quantity":           category.quantity,
            "total_price":        float(category.total),
            "date":               today,
        }
        for category in optional.enabled_categories()
    ]
    if not rows:
        return
    try:
        db.insert_many("other_expenses", rows)
    except Exception as e:
        raise OptionalWriteError("optional expenses", e)
