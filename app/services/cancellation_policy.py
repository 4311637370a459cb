"""Cancellation fee rules.

A professional's policy is a list of notice bands: cancelling with less than
``threshold_hours`` of notice costs ``fee_percentage`` of the service amount.
The tightest band that still contains the actual notice wins, so with bands
at 48h and 24h a cancellation 30h out pays the 48h rate, 24h out (exactly)
still pays the 48h rate and 48h out (exactly) pays nothing.

Three outcomes are kept apart on purpose: the professional has no policy,
the policy yields a (possibly 0%) charge, or the appointment cannot be
evaluated at all (bad start time, already started).
"""
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Protocol

from app.core.config import settings

PolicyKind = Literal["no_policy", "charge", "not_cancellable"]


@dataclass(frozen=True)
class CancellationPolicyRule:
    threshold_hours: float
    fee_percentage: float


@dataclass(frozen=True)
class ChargeInfo:
    percentage: float
    amount: float
    time_until_appointment: float


@dataclass(frozen=True)
class PolicyOutcome:
    kind: PolicyKind
    charge: ChargeInfo | None = None
    reason: str | None = None

    @property
    def has_policy(self) -> bool:
        return self.kind == "charge"

    @property
    def charge_amount(self) -> float:
        return self.charge.amount if self.charge else 0.0


NO_POLICY = PolicyOutcome(kind="no_policy")


class PolicyProfile(Protocol):
    cancellation_policy_enabled: bool
    cancellation_24h_charge_percentage: float | None
    cancellation_48h_charge_percentage: float | None


def _round_half_up(value: Decimal, exp: str = "1") -> Decimal:
    return value.quantize(Decimal(exp), rounding=ROUND_HALF_UP)


def round_currency(amount: float) -> float:
    return float(_round_half_up(Decimal(str(amount)), "0.01"))


def to_cents(dollars: float | None) -> int:
    return int(_round_half_up(Decimal(str(dollars or 0)) * 100))


def _as_utc(value: datetime | str) -> datetime | None:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def rules_from_profile(profile: PolicyProfile | None) -> list[CancellationPolicyRule] | None:
    """Rules for a professional, widest band first; None when no policy is configured."""
    if profile is None or not profile.cancellation_policy_enabled:
        return None
    pct_24 = profile.cancellation_24h_charge_percentage
    pct_48 = profile.cancellation_48h_charge_percentage
    if pct_24 is None:
        pct_24 = settings.default_cancellation_24h_percentage
    if pct_48 is None:
        pct_48 = settings.default_cancellation_48h_percentage
    return [
        CancellationPolicyRule(threshold_hours=48, fee_percentage=pct_48),
        CancellationPolicyRule(threshold_hours=24, fee_percentage=pct_24),
    ]


def match_rule(
    rules: list[CancellationPolicyRule], hours_until: float
) -> CancellationPolicyRule | None:
    applicable = [r for r in rules if hours_until < r.threshold_hours]
    if not applicable:
        return None
    return min(applicable, key=lambda r: r.threshold_hours)


def evaluate_cancellation(
    appointment_start: datetime | str,
    service_amount: float,
    rules: list[CancellationPolicyRule] | None,
    now: datetime | None = None,
    grace_hours: float | None = None,
) -> PolicyOutcome:
    start = _as_utc(appointment_start)
    if start is None:
        return PolicyOutcome(kind="not_cancellable", reason="Appointment start time could not be read.")

    current = _as_utc(now) if now is not None else datetime.now(UTC)
    hours_until = (start - current).total_seconds() / 3600
    grace = settings.cancellation_grace_hours if grace_hours is None else grace_hours
    if hours_until < -grace:
        return PolicyOutcome(kind="not_cancellable", reason="Appointment has already started.")

    if not rules:
        return NO_POLICY

    rule = match_rule(rules, hours_until)
    percentage = float(rule.fee_percentage) if rule else 0.0
    percentage = min(max(percentage, 0.0), 100.0)
    amount = round_currency(percentage / 100 * service_amount)
    return PolicyOutcome(
        kind="charge",
        charge=ChargeInfo(percentage=percentage, amount=amount, time_until_appointment=hours_until),
    )


def split_cancellation_fee(
    fee_cents: int, deposit_cents: int, service_price_cents: int
) -> tuple[int, int]:
    """(deposit_fee, balance_fee) in cents, split in proportion to the deposit's share."""
    if deposit_cents <= 0 or service_price_cents <= 0:
        return 0, fee_cents
    deposit_fee = int(_round_half_up(Decimal(deposit_cents) / Decimal(service_price_cents) * fee_cents))
    deposit_fee = min(deposit_fee, fee_cents)
    return deposit_fee, fee_cents - deposit_fee


def calculate_refund_amount(
    total_paid: float, service_fee: float, charge_amount: float, is_professional: bool
) -> float:
    # Professionals cancelling refund everything; clients forfeit the platform fee and any charge
    if is_professional:
        return round_currency(total_paid)
    return round_currency(max(0.0, total_paid - service_fee - charge_amount))


def post_cancellation_status(charge_amount: float, failed: bool = False, refunded: bool = True) -> str:
    if failed:
        return "failed"
    if charge_amount > 0:
        return "partially_refunded"
    if refunded:
        return "refunded"
    return "cancelled"
