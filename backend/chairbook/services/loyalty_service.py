# Overview: Loyalty ledger arithmetic: tiers, accrual, redemption bounds and discounts.

"""
Loyalty Ledger

All functions here are pure: they take the balance and amounts as arguments
and never touch the database. Settlement applies the results atomically.

RULES:
- Tiers: bronze [0, 500), silver [500, 1000), gold [1000, inf)
- Accrual multiplier: bronze 1.0, silver 1.5, gold 2.0 points per whole
  currency unit of the cash-equivalent charge
- Redemption: 100 points = 10.00 of discount (10 points per 1.00)
- Redemption is offered only once the balance reaches 100 points
- A sale never redeems more points than needed to bring it to zero

Money is in integer cents throughout.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from ..errors import InsufficientPoints, RedemptionBelowThreshold, ValidationFailed


REDEMPTION_THRESHOLD = 100
# 100 points -> 1000 cents, i.e. one point is worth 10 cents
CENTS_PER_POINT = 10


@dataclass(frozen=True)
class Tier:
    name: str
    min_points: int
    accrual_multiplier: Decimal


BRONZE = Tier("bronze", 0, Decimal("1.0"))
SILVER = Tier("silver", 500, Decimal("1.5"))
GOLD = Tier("gold", 1000, Decimal("2.0"))
TIERS = (GOLD, SILVER, BRONZE)


def tier_of(points: int) -> Tier:
    if points < 0:
        raise ValidationFailed("Point balance cannot be negative")
    for tier in TIERS:
        if points >= tier.min_points:
            return tier
    return BRONZE


def accrual_rate(points: int) -> Decimal:
    return tier_of(points).accrual_multiplier


def discount_from_points(points: int) -> int:
    """Discount in cents for a number of redeemed points (points / 100 * 10.00)."""
    if points < 0:
        raise ValidationFailed("Points to redeem cannot be negative")
    return points * CENTS_PER_POINT


def max_redeemable(points: int, total_cents: int) -> int:
    """
    Largest redemption allowed on a ticket: min(points, floor(total / 10 * 100)).

    The result never exceeds the balance and its discount never exceeds the
    ticket total.
    """
    if total_cents <= 0 or points <= 0:
        return 0
    return min(points, total_cents // CENTS_PER_POINT)


def points_earned(cash_cents: int, balance_before: int) -> int:
    """
    Points accrued on the cash-equivalent part of a sale.

    floor(cash_amount * accrual_rate), where the tier is taken from the
    balance the customer had when the sale started.
    """
    if cash_cents <= 0:
        return 0
    rate = accrual_rate(balance_before)
    earned = (Decimal(cash_cents) * rate / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR)
    return int(earned)


def check_redemption(balance: int, requested: int, total_cents: int) -> int:
    """
    Validate a redemption request and return the discount in cents.

    Raises:
        ValidationFailed: requested is not a positive integer, or exceeds what
            the ticket can absorb
        RedemptionBelowThreshold: balance has not reached the threshold
        InsufficientPoints: requested exceeds the balance
    """
    if isinstance(requested, bool) or not isinstance(requested, int) or requested <= 0:
        raise ValidationFailed("redeem_points must be a positive integer")

    if balance < REDEMPTION_THRESHOLD:
        raise RedemptionBelowThreshold(
            f"Customer has {balance} points; at least {REDEMPTION_THRESHOLD} are needed to redeem",
            details={"balance": balance, "threshold": REDEMPTION_THRESHOLD},
        )

    if requested > balance:
        raise InsufficientPoints(
            f"Cannot redeem {requested} points; balance is {balance}",
            details={"balance": balance, "requested": requested},
        )

    ceiling = max_redeemable(balance, total_cents)
    if requested > ceiling:
        raise ValidationFailed(
            f"Cannot redeem {requested} points on this ticket; maximum is {ceiling}",
            details={"max_redeemable": ceiling},
        )

    return discount_from_points(requested)


def redemption_eligibility(balance: int, total_cents: int) -> dict:
    """Describe what the terminal may offer for this balance and ticket."""
    if balance < REDEMPTION_THRESHOLD:
        return {
            "eligible": False,
            "reason": f"At least {REDEMPTION_THRESHOLD} points are needed to redeem ({balance} available)",
            "max_redeemable": 0,
        }
    ceiling = max_redeemable(balance, total_cents)
    return {
        "eligible": ceiling > 0,
        "reason": None if ceiling > 0 else "Ticket total is zero",
        "max_redeemable": ceiling,
        "max_discount_cents": discount_from_points(ceiling),
    }


def loyalty_status(balance: int) -> dict:
    tier = tier_of(balance)
    next_tier = None
    for candidate in reversed(TIERS):
        if candidate.min_points > balance:
            next_tier = candidate
            break
    return {
        "points": balance,
        "tier": tier.name,
        "accrual_multiplier": str(tier.accrual_multiplier),
        "can_redeem": balance >= REDEMPTION_THRESHOLD,
        "redeemable_value_cents": discount_from_points(balance) if balance >= REDEMPTION_THRESHOLD else 0,
        "next_tier": next_tier.name if next_tier else None,
        "points_to_next_tier": (next_tier.min_points - balance) if next_tier else 0,
    }
