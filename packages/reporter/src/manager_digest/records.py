"""Typed views over the raw documents read from the store.

Documents are untyped mappings; these classes pin down which fields are
read and what each one falls back to when it is missing or malformed.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from manager_digest.formatting import to_decimal

APPROVED_STATUS = "approved"


class TransactionDirection(str, Enum):
    """Which collection a transaction record comes from."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


def _clean_str(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def _from_epoch(seconds: Any, nanos: Any = 0) -> datetime | None:
    if isinstance(seconds, bool) or not isinstance(seconds, int | float):
        return None
    if seconds <= 0:
        return None
    extra = nanos / 1e9 if isinstance(nanos, int | float) and not isinstance(nanos, bool) else 0
    try:
        return datetime.fromtimestamp(seconds + extra, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored creation timestamp into an aware datetime.

    Accepts datetimes (naive ones are taken as UTC), Firestore-style
    ``{"seconds": ..., "nanos": ...}`` mappings or objects, and epoch
    seconds. Returns None for anything else.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanos", value.get("nanoseconds", value.get("_nanoseconds", 0)))
        return _from_epoch(seconds, nanos)
    if hasattr(value, "seconds"):
        return _from_epoch(getattr(value, "seconds"), getattr(value, "nanos", 0))
    return _from_epoch(value)


@dataclass(frozen=True)
class ManagerRecord:
    """A manager document: one payment method, its chat and its balance."""

    id: str
    method: str
    destination_id: str
    balance: Decimal = Decimal("0")

    @property
    def is_complete(self) -> bool:
        """True when both the method label and the destination are present."""
        return bool(self.method and self.destination_id)

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "ManagerRecord":
        return cls(
            id=doc_id,
            method=_clean_str(data.get("payment")),
            destination_id=_clean_str(data.get("groupId")),
            balance=to_decimal(data.get("balance")),
        )


@dataclass(frozen=True)
class TransactionRecord:
    """An approved-or-not deposit or withdrawal request."""

    method: str
    status: str
    amount: Decimal = Decimal("0")
    created_at: datetime | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == APPROVED_STATUS

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> "TransactionRecord":
        return cls(
            method=_clean_str(data.get("method")),
            status=_clean_str(data.get("status")),
            amount=to_decimal(data.get("amount")),
            created_at=parse_timestamp(data.get("createdAt")),
        )


@dataclass
class StatsResult:
    """Approved totals for one payment method over one window."""

    deposit_total: Decimal = field(default_factory=lambda: Decimal("0"))
    withdraw_total: Decimal = field(default_factory=lambda: Decimal("0"))

    def add(self, direction: TransactionDirection, amount: Decimal) -> None:
        if direction is TransactionDirection.DEPOSIT:
            self.deposit_total += amount
        else:
            self.withdraw_total += amount
