# tuition/services/installment_service.py
#
# Turns (total, advance, count) into an installment schedule.
# Pure functions only: no DB, no logging, no clock unless `today`
# is left to default. Safe to call on every keystroke.

from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence

from tuition.core.config import settings
from tuition.core.exceptions import ValidationError
from tuition.schemas.fees import Installment, InstallmentPreviewResponse
from tuition.utils.money import money, round_whole, to_decimal, local_today

MISMATCH_TOLERANCE = Decimal("0.01")


def default_due_date(position: int, today: Optional[date] = None) -> date:
    """
    First installment falls due on day 1 of FIRST_INSTALLMENT_MONTH of the
    current year; each later one a month after the previous.
    """
    today = today or local_today()
    months = settings.FIRST_INSTALLMENT_MONTH - 1 + position
    return date(today.year + months // 12, months % 12 + 1, 1)


def allocate(
    total,
    advance,
    count: int,
    previous_schedule: Sequence[Installment] = (),
    today: Optional[date] = None,
) -> List[Installment]:
    """
    Split (total - advance) over `count` installments.

    Every slot but the last gets the per-installment amount rounded to a
    whole unit; the last slot takes whatever is left, so the schedule
    always sums to the remaining balance exactly. Due dates, paid flags
    and persisted ids are carried over from `previous_schedule` by
    position.
    """
    if count is None or count < 1:
        raise ValidationError("Installment count must be at least 1")

    remaining = max(to_decimal(total) - to_decimal(advance), Decimal("0"))
    per_installment = round_whole(remaining / count)
    today = today or local_today()

    schedule: List[Installment] = []
    allocated = Decimal("0")

    for i in range(count):
        existing = previous_schedule[i] if i < len(previous_schedule) else None

        if i == count - 1:
            amount = remaining - allocated
        else:
            amount = per_installment
        allocated += amount

        schedule.append(Installment(
            id=existing.id if existing else None,
            installment_number=i + 1,
            amount=money(amount),
            due_date=existing.due_date if existing and existing.due_date else default_due_date(i, today),
            paid=existing.paid if existing else False,
            paid_date=existing.paid_date if existing else None,
        ))

    return schedule


def schedule_summary(installments: Sequence[Installment], total, advance) -> InstallmentPreviewResponse:
    """Scheduled vs expected sum; `mismatch` flags a schedule that no longer reconciles."""
    scheduled = money(sum((i.amount for i in installments), Decimal("0")))
    expected = money(max(to_decimal(total) - to_decimal(advance), Decimal("0")))
    return InstallmentPreviewResponse(
        installments=list(installments),
        scheduled_total=scheduled,
        expected_total=expected,
        mismatch=abs(scheduled - expected) > MISMATCH_TOLERANCE,
    )
