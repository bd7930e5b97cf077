# Overview: Pytest coverage for loyalty tiers, accrual and redemption bounds.

import random

import pytest

from chairbook.errors import InsufficientPoints, RedemptionBelowThreshold, ValidationFailed
from chairbook.services import loyalty_service
from chairbook.services.loyalty_service import (
    check_redemption,
    discount_from_points,
    loyalty_status,
    max_redeemable,
    points_earned,
    redemption_eligibility,
    tier_of,
)


@pytest.mark.parametrize("points, tier", [
    (0, "bronze"),
    (499, "bronze"),
    (500, "silver"),
    (999, "silver"),
    (1000, "gold"),
    (25000, "gold"),
])
def test_tier_boundaries(points, tier):
    assert tier_of(points).name == tier


def test_negative_balance_is_rejected():
    with pytest.raises(ValidationFailed):
        tier_of(-1)


def test_hundred_points_are_worth_ten_currency_units():
    assert discount_from_points(100) == 1000
    assert discount_from_points(250) == 2500
    assert discount_from_points(0) == 0


def test_max_redeemable_is_capped_by_balance_and_ticket():
    assert max_redeemable(600, 20000) == 600
    assert max_redeemable(600, 2500) == 250
    assert max_redeemable(0, 2500) == 0
    assert max_redeemable(600, 0) == 0


def test_max_redeemable_bounds_hold_for_any_balance_and_total():
    rng = random.Random(20260917)
    for _ in range(2000):
        points = rng.randint(0, 5000)
        total = rng.randint(0, 100000)
        redeemable = max_redeemable(points, total)
        assert 0 <= redeemable <= points
        assert discount_from_points(redeemable) <= total


class TestAccrual:

    def test_bronze_earns_one_point_per_unit(self):
        assert points_earned(2550, 0) == 25

    def test_silver_multiplier(self):
        # 180.00 at 1.5x
        assert points_earned(18000, 600) == 270

    def test_gold_multiplier(self):
        assert points_earned(1000, 1000) == 20

    def test_fractions_are_floored(self):
        assert points_earned(99, 0) == 0
        assert points_earned(101, 500) == 1

    def test_nothing_earned_on_free_ticket(self):
        assert points_earned(0, 800) == 0


class TestRedemption:

    def test_below_threshold_is_refused_not_clamped(self):
        with pytest.raises(RedemptionBelowThreshold) as exc:
            check_redemption(99, 50, 10000)
        assert exc.value.details == {"balance": 99, "threshold": 100}

    def test_more_than_balance(self):
        with pytest.raises(InsufficientPoints):
            check_redemption(150, 200, 10000)

    def test_more_than_ticket_can_absorb(self):
        with pytest.raises(ValidationFailed) as exc:
            check_redemption(600, 300, 2500)
        assert exc.value.details["max_redeemable"] == 250

    def test_zero_or_bogus_request(self):
        with pytest.raises(ValidationFailed):
            check_redemption(600, 0, 20000)
        with pytest.raises(ValidationFailed):
            check_redemption(600, True, 20000)

    def test_valid_redemption_returns_discount(self):
        assert check_redemption(600, 200, 20000) == 2000
        assert check_redemption(100, 100, 1000) == 1000

    def test_eligibility_explains_refusal(self):
        refusal = redemption_eligibility(99, 20000)
        assert refusal["eligible"] is False
        assert "100" in refusal["reason"]

        offer = redemption_eligibility(600, 2500)
        assert offer["eligible"] is True
        assert offer["max_redeemable"] == 250
        assert offer["max_discount_cents"] == 2500


def test_loyalty_status_reports_next_tier():
    status = loyalty_status(450)
    assert status["tier"] == "bronze"
    assert status["next_tier"] == "silver"
    assert status["points_to_next_tier"] == 50
    assert status["can_redeem"] is True
    assert status["redeemable_value_cents"] == 4500

    top = loyalty_status(1200)
    assert top["tier"] == "gold"
    assert top["next_tier"] is None
    assert top["points_to_next_tier"] == 0

    assert loyalty_service.loyalty_status(40)["can_redeem"] is False
