"""
Tests for game rules: outcome verification and payout sizing.

Run: python -m pytest test_game_rules.py -v
"""

import itertools
from decimal import Decimal

import pytest

from game_rules import (
    DICE, PLINKO, PLINKO_MULTIPLIERS, EXACT_MULTIPLIER, WINNINGS_ONLY,
    SettlementRequest, exact_multiplier_payout, resolve_round, size_payout,
    to_decimal, valid_prediction, verify_dice_result, verify_plinko_result,
    winnings_only_payout,
)

PLAYER = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class TestToDecimal:

    def test_float_goes_through_str(self):
        assert to_decimal(0.3) == Decimal("0.3")
        assert to_decimal(1.5) == Decimal("1.5")

    def test_rejects_junk(self):
        assert to_decimal(None) is None
        assert to_decimal(True) is None
        assert to_decimal("abc") is None
        assert to_decimal("NaN") is None
        assert to_decimal(float("inf")) is None

    def test_numeric_string(self):
        assert to_decimal("10000") == Decimal("10000")


class TestPlinkoVerification:

    @pytest.mark.parametrize("m", ["110", "41", "10", "5", "3", "1.5", "1", "0.5", "0.3"])
    def test_every_table_entry_is_valid(self, m):
        assert verify_plinko_result(Decimal(m))
        assert verify_plinko_result(float(m))

    @pytest.mark.parametrize("m", [0, 2, 100, 1.4999, 0.31, -1, 111, "x", None])
    def test_values_outside_table_are_invalid(self, m):
        assert not verify_plinko_result(m)

    def test_table_order(self):
        assert PLINKO_MULTIPLIERS[0] == Decimal("110")
        assert PLINKO_MULTIPLIERS[-1] == Decimal("0.3")

    @pytest.mark.parametrize("m", ["3", "110", "0.3", b"3"])
    def test_numeric_strings_are_not_table_members(self, m):
        assert not verify_plinko_result(m)
        assert not resolve_round(SettlementRequest.plinko(PLAYER, 10000, m, "g-s")).valid


class TestDiceVerification:

    def test_matches_direct_sum_comparison(self):
        faces = range(1, 7)
        for d1, d2, d3 in itertools.product(faces, faces, faces):
            total = d1 + d2 + d3
            for target in (3, 9, 10, 18):
                assert verify_dice_result(d1, d2, d3, target, "over") == (total > target)
                assert verify_dice_result(d1, d2, d3, target, "under") == (total < target)
                assert verify_dice_result(d1, d2, d3, target, "exact") == (total == target)

    @pytest.mark.parametrize("faces", [(0, 3, 3), (7, 1, 1), (1, 1, -2), (1, 6, 9)])
    def test_out_of_range_face_always_false(self, faces):
        for mode in ("over", "under", "exact"):
            for target in range(0, 25):
                assert not verify_dice_result(*faces, target, mode)

    def test_unknown_mode_fails_closed(self):
        assert not verify_dice_result(6, 6, 6, 3, "higher")
        assert not verify_dice_result(6, 6, 6, 3, None)

    @pytest.mark.parametrize("target, mode", [
        (2, "over"), (18, "over"), (3, "under"), (19, "under"), (2, "exact"), (19, "exact"),
    ])
    def test_sure_thing_targets_rejected(self, target, mode):
        assert not valid_prediction(target, mode)
        assert not verify_dice_result(1, 1, 1, target, mode)
        assert not verify_dice_result(6, 6, 6, target, mode)

    def test_target_bounds_accepted(self):
        assert valid_prediction(3, "over") and valid_prediction(17, "over")
        assert valid_prediction(4, "under") and valid_prediction(18, "under")
        assert valid_prediction(3, "exact") and valid_prediction(18, "exact")
        assert not valid_prediction(10, "sideways")


class TestPayoutSizing:

    def test_exact_multiplier(self):
        assert exact_multiplier_payout(Decimal("10000"), Decimal("3")) == Decimal("30000")

    def test_winnings_only(self):
        assert winnings_only_payout(Decimal("10000"), Decimal("3")) == Decimal("20000")

    def test_winnings_only_floors_at_zero(self):
        assert winnings_only_payout(Decimal("10000"), Decimal("0.5")) == Decimal("0")

    def test_size_payout_dispatches_on_policy(self):
        bet, m = Decimal("10000"), Decimal("1.5")
        assert size_payout(EXACT_MULTIPLIER, bet, m) == Decimal("15000")
        assert size_payout(WINNINGS_ONLY, bet, m) == Decimal("5000")


class TestResolveRound:

    def test_plinko_win(self):
        req = SettlementRequest.plinko(PLAYER, 10000, 3, "g-1")
        outcome = resolve_round(req)
        assert outcome.valid and outcome.won
        assert outcome.multiplier == Decimal("3")

    def test_plinko_below_one_is_loss(self):
        outcome = resolve_round(SettlementRequest.plinko(PLAYER, 10000, 0.5, "g-2"))
        assert outcome.valid and not outcome.won
        assert outcome.multiplier == Decimal("0.5")

    def test_plinko_invalid_multiplier(self):
        outcome = resolve_round(SettlementRequest.plinko(PLAYER, 10000, 2, "g-3"))
        assert not outcome.valid and not outcome.won

    def test_dice_exact_win_pays_thirty(self):
        req = SettlementRequest.dice_roll(PLAYER, 10000, (2, 3, 4), 9, "exact", "g-4")
        outcome = resolve_round(req)
        assert req.dice_sum == 9
        assert outcome.won
        assert outcome.multiplier == Decimal("30")

    def test_dice_over_win_pays_range_multiplier(self):
        req = SettlementRequest.dice_roll(PLAYER, 10000, (6, 6, 1), 10, "over", "g-5")
        outcome = resolve_round(req)
        assert outcome.won
        assert outcome.multiplier == Decimal("1.8")

    def test_dice_loss(self):
        req = SettlementRequest.dice_roll(PLAYER, 10000, (1, 1, 1), 10, "over", "g-6")
        outcome = resolve_round(req)
        assert outcome.valid and not outcome.won

    def test_dice_malformed(self):
        for dice, mode in (((0, 3, 3), "exact"), ((1, 2), "exact"), ((1, 2, 3), "sideways")):
            outcome = resolve_round(
                SettlementRequest.dice_roll(PLAYER, 10000, dice, 6, mode, "g-7"))
            assert not outcome.valid and not outcome.won

    def test_dice_under_nineteen_is_malformed(self):
        req = SettlementRequest.dice_roll(PLAYER, 10000, (6, 6, 6), 19, "under", "g-10")
        outcome = resolve_round(req)
        assert not outcome.valid and not outcome.won

    def test_configured_dice_multipliers(self):
        req = SettlementRequest.dice_roll(PLAYER, 10000, (2, 3, 4), 9, "exact", "g-8")
        outcome = resolve_round(req, dice_exact_multiplier=Decimal("25"))
        assert outcome.multiplier == Decimal("25")

    def test_unknown_game_type(self):
        req = SettlementRequest(PLAYER, Decimal("10000"), "g-9", "roulette")
        assert not resolve_round(req).valid

    def test_game_type_constants(self):
        assert SettlementRequest.plinko(PLAYER, 1, 1, "a").game_type == PLINKO
        assert SettlementRequest.dice_roll(PLAYER, 1, (1, 1, 1), 3, "exact", "b").game_type == DICE
