"""
Fee Calculator
==============

Formula (per booking subtotal ``S``)
------------------------------------
    processing_fee = S x processing_fee_percent / 100 + processing_fee_flat
    commission     = S x commission_percent / 100
    net_earnings   = S - processing_fee - commission

* Every amount is rounded **half-up to the cent** before it is combined,
  so ``net = gross - fee - commission`` holds exactly on the rounded
  values and repeated calls are identical.
* The rider is charged the subtotal; both fees come out of the driver's
  side and are shown to the rider for transparency.
* A zero subtotal (free ride) carries no fees.

Complexity: O(1) per calculation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .errors import ConfigurationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0.00")


def to_money(value: Decimal | float | int | str) -> Decimal:
    """Round to currency-minor-unit precision (half-up)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FeePolicy:
    processing_fee_percent: Decimal = Decimal("2.9")
    processing_fee_flat: Decimal = Decimal("0.30")
    commission_percent: Decimal = Decimal("10")


@dataclass(frozen=True)
class RiderCharge:
    subtotal: Decimal
    processing_fee: Decimal
    commission: Decimal
    total: Decimal


@dataclass(frozen=True)
class EarningsBreakdown:
    gross_earnings: Decimal
    processing_fee: Decimal
    commission: Decimal
    net_earnings: Decimal

    @property
    def total_fees(self) -> Decimal:
        return self.processing_fee + self.commission

    def __add__(self, other: "EarningsBreakdown") -> "EarningsBreakdown":
        return EarningsBreakdown(
            gross_earnings=self.gross_earnings + other.gross_earnings,
            processing_fee=self.processing_fee + other.processing_fee,
            commission=self.commission + other.commission,
            net_earnings=self.net_earnings + other.net_earnings,
        )


NO_EARNINGS = EarningsBreakdown(ZERO, ZERO, ZERO, ZERO)


# ── Calculator ────────────────────────────────────────────────────────


class FeeCalculator:
    """Pure fee arithmetic for one validated :class:`FeePolicy`."""

    def __init__(self, policy: FeePolicy, minimum_fare: Decimal = Decimal("1.00")):
        self.policy = policy
        self.minimum_fare = to_money(minimum_fare)
        self._validate()

    def _validate(self) -> None:
        p = self.policy
        if p.processing_fee_percent < 0 or p.commission_percent < 0:
            raise ConfigurationError("Fee percentages must not be negative")
        if p.processing_fee_flat < 0:
            raise ConfigurationError("Flat processing fee must not be negative")
        if p.processing_fee_percent + p.commission_percent >= HUNDRED:
            raise ConfigurationError(
                "Processing fee and commission together must stay below 100%"
            )
        # Net grows with the subtotal, so the minimum fare is the worst case.
        if self._breakdown(self.minimum_fare).net_earnings < 0:
            raise ConfigurationError(
                f"Fee policy leaves a negative net at the minimum fare "
                f"{self.minimum_fare}"
            )

    def processing_fee(self, subtotal: Decimal) -> Decimal:
        if subtotal == 0:
            return ZERO
        percent = to_money(subtotal * self.policy.processing_fee_percent / HUNDRED)
        return percent + to_money(self.policy.processing_fee_flat)

    def commission(self, subtotal: Decimal) -> Decimal:
        return to_money(subtotal * self.policy.commission_percent / HUNDRED)

    def _breakdown(self, subtotal: Decimal) -> EarningsBreakdown:
        gross = to_money(subtotal)
        if gross < 0:
            raise ValueError("Subtotal must not be negative")
        fee = self.processing_fee(gross)
        commission = self.commission(gross)
        return EarningsBreakdown(
            gross_earnings=gross,
            processing_fee=fee,
            commission=commission,
            net_earnings=gross - fee - commission,
        )

    def rider_total(self, subtotal: Decimal) -> RiderCharge:
        """The rider is charged the subtotal; fees are shown but come out of the driver's share."""
        b = self._breakdown(subtotal)
        return RiderCharge(
            subtotal=b.gross_earnings,
            processing_fee=b.processing_fee,
            commission=b.commission,
            total=b.gross_earnings,
        )

    def driver_net(self, subtotal: Decimal) -> EarningsBreakdown:
        b = self._breakdown(subtotal)
        if b.net_earnings < 0:
            raise ConfigurationError(
                f"Fee policy yields a negative net for subtotal {b.gross_earnings}"
            )
        return b
