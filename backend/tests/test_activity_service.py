from decimal import Decimal

import pytest

from tuition.schemas.fees import AuditEntry
from tuition.services.activity_service import (
    ActivityAuditLog,
    discount_applied_action,
    format_amount,
    log_activity,
)


def test_append_stamps_user_and_time():
    log = ActivityAuditLog()

    entry = log.append("Changed total_amount to 30000", "Accountant")

    assert entry.user == "Accountant"
    assert entry.timestamp
    assert len(log) == 1


def test_entries_are_read_only_copies():
    log = ActivityAuditLog()
    log.append("Changed installment_count to 3", "Accountant")

    snapshot = log.entries()
    log.append("Changed advance_payment to 500", "Accountant")

    assert len(snapshot) == 1
    with pytest.raises(Exception):
        snapshot[0].action = "tampered"


def test_last_discount_amount_reads_the_most_recent_application():
    log = ActivityAuditLog()
    log.append(discount_applied_action(300, "sibling-second"), "a")
    log.append("Removed discount", "a")
    log.append(discount_applied_action(Decimal("450.5"), "special-admin"), "a")

    assert log.last_discount_amount() == Decimal("450.50")


def test_removal_cancels_an_earlier_discount():
    log = ActivityAuditLog()
    log.append(discount_applied_action(300, "sibling-second"), "a")
    log.append("Removed discount", "a")

    assert log.last_discount_amount() == Decimal("0")


def test_legacy_trail_wording_is_understood():
    log = ActivityAuditLog([
        AuditEntry(action="تغيير totalAmount إلى 30000", timestamp="1/9/2024", user="u"),
        AuditEntry(action="تطبيق خصم 1500 جنيه - نوع: brother-second", timestamp="1/9/2024", user="u"),
    ])

    assert log.last_discount_amount() == Decimal("1500")


def test_format_amount():
    assert format_amount(Decimal("500.00")) == "500"
    assert format_amount("333.5") == "333.50"


class _BrokenDB:
    def insert(self, table, payload):
        raise RuntimeError("store down")


@pytest.mark.asyncio
async def test_log_activity_never_raises():
    await log_activity(_BrokenDB(), action="fee.setup_committed", entity_id="fee-1")


@pytest.mark.asyncio
async def test_log_activity_writes_activity_row(fake_db):
    await log_activity(fake_db, action="fee.setup_committed", user_id="u-1", metadata={"k": 1})

    row = fake_db.tables["activity_logs"][0]
    assert row["action"] == "fee.setup_committed"
    assert row["metadata"] == {"k": 1}
