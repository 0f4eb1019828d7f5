from datetime import date
from decimal import Decimal

import pytest

from tuition.core.exceptions import ValidationError
from tuition.schemas.fees import DiscountType, OtherExpenseLine
from tuition.services.fee_session import FeeSetupSession


@pytest.fixture
def session(today):
    return FeeSetupSession(student_id="stu-1", user="Accountant", today=today)


def test_new_session_has_one_blank_expense_row_and_one_installment(session):
    assert len(session.expense_lines) == 1
    assert len(session.profile.installments) == 1
    assert session.profile.installments[0].amount == Decimal("0.00")


def test_stage_sets_total_and_schedule(session):
    session.set_stage("الصف الثاني الإعدادي")
    session.set_installment_count(4)
    session.set_advance_payment(5000)

    assert session.profile.total_amount == Decimal("35000.00")
    assert [i.amount for i in session.profile.installments] == [Decimal("7500.00")] * 4
    actions = [e.action for e in session.audit_log]
    assert actions == [
        "Changed total_amount to 35000",
        "Changed installment_count to 4",
        "Changed advance_payment to 5000",
    ]


def test_unpriced_stage_sets_zero_total(session):
    assert session.set_stage("Nursery") == Decimal("0")


def test_installment_edits_survive_total_changes(session):
    session.set_total(30000)
    session.set_installment_count(3)
    session.update_installment(0, "paid", True)
    session.update_installment(1, "due_date", "2025-10-15")

    session.set_total(27000)

    first, second, _ = session.profile.installments
    assert first.paid is True
    assert second.due_date == date(2025, 10, 15)
    assert second.amount == Decimal("9000.00")
    assert "Edited installment #1 - paid: True" in [e.action for e in session.audit_log]


def test_only_schedule_fields_of_an_installment_are_editable(session):
    with pytest.raises(ValidationError):
        session.update_installment(0, "amount", 5)
    with pytest.raises(ValidationError):
        session.update_installment(7, "paid", True)


def test_discount_round_trip_restores_stage_price(session):
    session.set_stage("KG1")
    session.set_total(20000)
    session.select_discount_type(DiscountType.sibling_second)
    session.set_discount_amount(500)

    assert session.apply_discount() == Decimal("19500.00")
    assert sum(i.amount for i in session.profile.installments) == Decimal("19500.00")

    session.set_total(19000)            # manual edit after applying
    assert session.remove_discount() == Decimal("20000.00")


def test_expense_rows_keep_at_least_one(session):
    session.add_expense_line()
    assert session.remove_expense_line(0) is True
    assert session.remove_expense_line(0) is False
    assert len(session.expense_lines) == 1


def test_grand_total_adds_every_source(session):
    session.set_total(30000)
    session.update_expense_line(0, "expense_type", "Lab fee")
    session.update_expense_line(0, "total_price", "250")
    session.add_expense_line(OtherExpenseLine(expense_type="Club", total_price=Decimal("100")))
    session.toggle_optional("transportation")
    session.set_optional_field("transportation", "months", 2)

    assert session.other_expenses_total == Decimal("350.00")
    assert session.optional_expenses_total == Decimal("1000.00")
    assert session.grand_total == Decimal("31350.00")


def test_listeners_receive_live_snapshots(session):
    fees_seen, expenses_seen = [], []
    session.on_fees_change(fees_seen.append)
    session.on_expenses_change(lambda lines, optional: expenses_seen.append(optional.grand_total))

    session.set_total(12000)
    session.toggle_optional("books")

    assert fees_seen[-1].total_amount == Decimal("12000.00")
    assert expenses_seen == [Decimal("200.00")]

    fees_seen[-1].total_amount = Decimal("1")     # a snapshot, not the live model
    assert session.profile.total_amount == Decimal("12000.00")


@pytest.mark.asyncio
async def test_finalize_commits_the_original_total(session, fake_db):
    session.set_stage("ابتدائي")
    session.set_installment_count(2)
    session.select_discount_type(DiscountType.academic_excellence)
    session.set_discount_amount(1000)
    session.apply_discount()
    session.toggle_optional("digital_platforms")

    result = await session.finalize(fake_db)

    assert result.success is True
    assert result.stored_total == Decimal("30000.00")
    assert result.discount_amount == Decimal("1000.00")
    assert fake_db.tables["school_fees"][0]["total_amount"] == 30000.0
    assert [i["amount"] for i in fake_db.tables["fee_installments"]] == [14500.0, 14500.0]
    assert fake_db.tables["other_expenses"][0]["expense_type"] == "منصات رقمية"


def test_optional_and_discount_edits_reach_the_trail(session):
    session.toggle_optional("books")
    session.set_optional_field("books", "quantity", 3)
    session.set_optional_field("books", "price", "150")
    session.toggle_optional("books")
    session.select_discount_type(DiscountType.staff_child)
    session.set_discount_amount(400)

    assert [e.action for e in session.audit_log] == [
        "Enabled books",
        "Changed books.quantity to 3",
        "Changed books.price to 150",
        "Disabled books",
        "Selected discount type staff-child",
        "Changed discount amount to 400",
    ]
    assert all(e.user == "Accountant" for e in session.audit_log)


def test_non_finite_totals_are_rejected(session):
    for bad in ("NaN", "Infinity"):
        with pytest.raises(ValidationError):
            session.set_total(bad)
        with pytest.raises(ValidationError):
            session.set_advance_payment(bad)
    assert session.profile.total_amount == Decimal("0")
    assert len(session.audit_log) == 0
