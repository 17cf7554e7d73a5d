from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator


# Single wire format for every timestamp, e.g. "2024-09-03T16:00:00.000Z"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"


def _to_millis(value: datetime) -> datetime:
    # The wire carries milliseconds; finer digits are dropped on the way in too
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        value = value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
        return _to_millis(value)
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    try:
        parsed = datetime.strptime(value, TIMESTAMP_FORMAT).astimezone(UTC)
    except ValueError as exc:
        raise ValueError(f"timestamp {value!r} does not match {TIMESTAMP_FORMAT}") from exc
    return _to_millis(parsed)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_money(value: Any) -> Decimal:
    # bool is an int subclass; never a valid amount
    if isinstance(value, bool):
        raise ValueError("amount must be a number, got bool")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"amount {value!r} is not a decimal number") from exc
    else:
        raise ValueError(f"amount must be a number, got {type(value).__name__}")
    if not amount.is_finite():
        raise ValueError(f"amount must be finite, got {value!r}")
    return amount


def format_money(value: Decimal) -> str:
    return format(value, "f")


Timestamp = Annotated[
    datetime,
    BeforeValidator(parse_timestamp),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]

# JSON-mode dumps render amounts as strings; request bodies go through
# codec.dumps, which writes them as bare numbers
Money = Annotated[
    Decimal,
    BeforeValidator(parse_money),
    PlainSerializer(format_money, return_type=str, when_used="json"),
]


class WireModel(BaseModel):
    """Base for everything that crosses the wire; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)


# -------- Resources --------
class Account(WireModel):
    id: StrictInt
    name: StrictStr
    balance: Money
    created_at: Timestamp
    updated_at: Timestamp


class Envelope(WireModel):
    id: StrictInt
    name: StrictStr
    amount: Money
    created_at: Timestamp
    updated_at: Timestamp


class Goal(WireModel):
    """
    Savings goal.

    Derived values (not on the wire)
    - progress: accumulated / target, 0 when the target is 0.
    - is_completed: accumulated >= target.
    - days_remaining(): whole days left until `target_date` (None without one).
    """

    id: StrictInt
    name: StrictStr
    target_amount: Money
    accumulated_amount: Money
    target_date: Optional[Timestamp] = None
    created_at: Timestamp
    updated_at: Timestamp

    @property
    def progress(self) -> Decimal:
        if self.target_amount == 0:
            return Decimal(0)
        return self.accumulated_amount / self.target_amount

    @property
    def is_completed(self) -> bool:
        return self.accumulated_amount >= self.target_amount

    def days_remaining(self, now: Optional[datetime] = None) -> Optional[int]:
        if self.target_date is None:
            return None
        current = parse_timestamp(now) if now is not None else datetime.now(UTC)
        delta = self.target_date - current
        # Truncate toward zero so "due later today" counts as 0 days
        return int(delta.total_seconds() / 86400)


# -------- Requests --------
class _NamedRequest(WireModel):
    name: StrictStr = Field(..., description="Display name; must be non-blank")

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        return v


class AccountRequest(_NamedRequest):
    """Body of accounts create/update."""

    balance: Money


class EnvelopeRequest(_NamedRequest):
    """Body of envelopes create/update."""

    amount: Money


class GoalRequest(_NamedRequest):
    """Body of goals create/update. A new goal starts with nothing accumulated."""

    target_amount: Money
    accumulated_amount: Money = Decimal(0)
    target_date: Optional[Timestamp] = None


class TokenRequest(WireModel):
    id_token: StrictStr


class TokenResponse(WireModel):
    token: StrictStr = Field(..., min_length=1)


class EmptyRequest(WireModel):
    pass


class EmptyResponse(WireModel):
    pass


__all__ = [
    "Account",
    "AccountRequest",
    "EmptyRequest",
    "EmptyResponse",
    "Envelope",
    "EnvelopeRequest",
    "Goal",
    "GoalRequest",
    "Money",
    "Timestamp",
    "TIMESTAMP_FORMAT",
    "TokenRequest",
    "TokenResponse",
    "WireModel",
    "format_money",
    "format_timestamp",
    "parse_money",
    "parse_timestamp",
]
