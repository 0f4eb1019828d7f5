# tuition/services/activity_service.py
#
# Two kinds of activity record live here:
#
# ActivityAuditLog: the in-session change feed shown next to the fee
#   form. Every mutation of the fee state appends one line. Nothing is
#   ever edited or removed.
#
# log_activity(): the durable row in activity_logs, written once a
#   setup is committed. Never raises.

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, List, Optional, Tuple
import logging

from tuition.core.config import settings
from tuition.schemas.fees import AuditEntry
from tuition.utils.money import local_timestamp, to_decimal

logger = logging.getLogger(__name__)

# Wording is part of the contract: last_discount_amount() parses it back.
DISCOUNT_APPLIED_ACTION = "Applied discount {amount} {currency} - type: {type}"
DISCOUNT_REMOVED_ACTION = "Removed discount"

_APPLIED_PATTERNS = (
    re.compile(r"Applied discount (\d+(?:\.\d+)?)"),
    re.compile(r"تطبيق خصم (\d+(?:\.\d+)?) جنيه"),    # trails written by the old UI
)
_REMOVED_PATTERNS = (
    re.compile(r"^Removed discount"),
    re.compile(r"^إزالة الخصم"),
)


def format_amount(value) -> str:
    """500 → '500', 500.5 → '500.50'."""
    d = to_decimal(value)
    return str(d.quantize(Decimal("1"))) if d == d.to_integral_value() else f"{d:.2f}"


class ActivityAuditLog:
    """Append-only list of timestamped actions for one editing session."""

    def __init__(self, entries: Optional[List[AuditEntry]] = None):
        self._entries: List[AuditEntry] = list(entries or [])

    def append(self, action: str, user: str) -> AuditEntry:
        entry = AuditEntry(action=action, timestamp=local_timestamp(), user=user)
        self._entries.append(entry)
        return entry

    def entries(self) -> Tuple[AuditEntry, ...]:
        return tuple(self._entries)

    def __iter__(self) -> Iterator[AuditEntry]:
        return iter(self.entries())

    def __len__(self) -> int:
        return len(self._entries)

    def last_discount_amount(self) -> Decimal:
        """
        Amount of the discount still in force according to the trail, or 0.

        Only the most recent discount entry counts: a removal after an
        application cancels it. Fallback for snapshots that carry no
        structured discount state.
        """
        for entry in reversed(self._entries):
            if any(p.search(entry.action) for p in _REMOVED_PATTERNS):
                return Decimal("0")
            for pattern in _APPLIED_PATTERNS:
                match = pattern.search(entry.action)
                if match:
                    return to_decimal(match.group(1))
        return Decimal("0")


def discount_applied_action(amount, discount_type: str) -> str:
    return DISCOUNT_APPLIED_ACTION.format(
        amount=format_amount(amount),
        currency=settings.CURRENCY_LABEL,
        type=discount_type,
    )


async def log_activity(
    db,
    action: str,
    user_id: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    metadata: Optional[dict] = None,
) -> None:
    """
    Durable audit row. Never raises: logging must never
    block or break the main operation.

    Action format: 'entity.verb', e.g. 'fee.setup_committed'.
    """
    try:
        db.insert("activity_logs", {
            "user_id": str(user_id) if user_id else None,
            "action": action,
            "entity_type": entity_type,
            "entity_id": str(entity_id) if entity_id else None,
            "metadata": metadata or {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        })
    except Exception as e:
        logger.error(f"Failed to write activity log [{action}]: {e}")
