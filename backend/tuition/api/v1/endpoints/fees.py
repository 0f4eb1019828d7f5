# tuition/api/v1/endpoints/fees.py
#
# HTTP surface for the fee setup form.
#
# The preview endpoints are pure calculations; the form calls them on
# every edit. /setup is the "Save and finish" button: it takes the final
# snapshot of the form and runs the commit protocol against Supabase.

from typing import Dict
from fastapi import APIRouter, Depends, HTTPException

from tuition.core.database import FeeDB
from tuition.core.security import CurrentUser, FINANCE_ROLES, get_current_user, require_roles
from tuition.schemas.common import APIResponse
from tuition.schemas.fees import (
    CommitResult,
    DiscountPreviewRequest, DiscountPreviewResponse,
    FeeSetupRequest,
    InstallmentPreviewRequest, InstallmentPreviewResponse,
    OptionalCategory, OptionalCategoryInput, OptionalExpensesState,
)
from tuition.services.activity_service import ActivityAuditLog
from tuition.services.commit_service import commit_fee_setup
from tuition.services.discount_service import preview_discount
from tuition.services.installment_service import allocate, schedule_summary
from tuition.services.optional_expense_service import OptionalExpenseAggregator

router = APIRouter(tags=["Fee Setup"])

def get_fee_db() -> FeeDB:
    return FeeDB()


# ═══════════════════════════════════════════════════════════
# LIVE PREVIEWS
# ═══════════════════════════════════════════════════════════

@router.post("/installments/preview", response_model=APIResponse[InstallmentPreviewResponse])
async def preview_installments(
    body: InstallmentPreviewRequest,
    user: CurrentUser = Depends(get_current_user),
):
    installments = allocate(
        body.total_amount,
        body.advance_payment,
        body.installment_count,
        body.previous_installments,
    )
    return APIResponse(data=schedule_summary(installments, body.total_amount, body.advance_payment))


@router.post("/discounts/preview", response_model=APIResponse[DiscountPreviewResponse])
async def preview_discount_total(
    body: DiscountPreviewRequest,
    user: CurrentUser = Depends(get_current_user),
):
    new_total, absorbed = preview_discount(body.current_total, body.discount_amount)
    return APIResponse(data=DiscountPreviewResponse(
        new_total=new_total,
        discount_amount=body.discount_amount,
        absorbed_excess=absorbed,
    ))


@router.post("/optional-expenses/preview", response_model=APIResponse[OptionalExpensesState])
async def preview_optional_expenses(
    body: Dict[OptionalCategory, OptionalCategoryInput],
    user: CurrentUser = Depends(get_current_user),
):
    return APIResponse(data=OptionalExpenseAggregator.from_inputs(body).snapshot())


# ═══════════════════════════════════════════════════════════
# FINALIZE
# ═══════════════════════════════════════════════════════════

@router.post("/setup", response_model=APIResponse[CommitResult], status_code=201)
async def finalize_fee_setup(
    body: FeeSetupRequest,
    user: CurrentUser = Depends(require_roles(*FINANCE_ROLES)),
    db: FeeDB = Depends(get_fee_db),
):
    """
    Saves the fee record and installments (both required), then other
    expenses, the discount transaction and optional expenses (best-effort).
    A best-effort failure still returns 201, with the problem in `warnings`.
    """
    profile = body.fee_profile.model_copy(update={
        "installments": allocate(
            body.fee_profile.total_amount,
            body.fee_profile.advance_payment,
            body.fee_profile.installment_count,
            body.fee_profile.installments,
        ),
    })

    result = await commit_fee_setup(
        db,
        student_id=body.student_id,
        fee_profile=profile,
        discount_state=body.discount,
        expense_lines=body.other_expenses,
        optional_expenses=OptionalExpenseAggregator.from_inputs(body.optional_expenses),
        audit_log=ActivityAuditLog(body.audit_log),
        academic_year_code=body.academic_year_code,
        user=user.audit_name,
        user_id=user.user_id,
    )
    if not result.success:
        raise HTTPException(
            status_code=result.error_status or 500,
            detail=result.error,
        )

    return APIResponse(
        data=result,
        message="Fee setup saved" + (" with warnings" if result.warnings else ""),
        warnings=result.warnings,
    )
