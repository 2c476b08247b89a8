"""
Game rules: outcome verification and payout sizing.

Plinko:  the submitted multiplier must be an exact member of the board's
         payout table. >= 1 is a win.
Dice:    three faces in [1, 6], player picks a target and a mode
         (over / under / exact) against the face sum (3..18). A target
         that makes the bet a sure win or a sure loss is malformed.

Malformed outcomes never raise; they resolve as "not a win".
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Sequence, Tuple

PLINKO = "plinko"
DICE = "dice"

PLINKO_MULTIPLIERS = tuple(Decimal(m) for m in
                           ("110", "41", "10", "5", "3", "1.5", "1", "0.5", "0.3"))

DICE_EXACT_MULTIPLIER = Decimal("30")
DICE_RANGE_MULTIPLIER = Decimal("1.8")

# Allowed target per mode, inclusive. Face sums run 3..18.
DICE_PREDICTION_RANGES = {"over": (3, 17), "under": (4, 18), "exact": (3, 18)}

EXACT_MULTIPLIER = "exact_multiplier"
WINNINGS_ONLY = "winnings_only"
PAYOUT_POLICIES = (EXACT_MULTIPLIER, WINNINGS_ONLY)

ZERO = Decimal("0")


def to_decimal(value) -> Optional[Decimal]:
    """Decimal from a number or numeric string; None if it isn't one.

    Floats go through str() so 0.3 becomes Decimal("0.3"), not the binary
    expansion. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    return d if d.is_finite() else None


# -----------------------------------------------------------------
# Outcome verification
# -----------------------------------------------------------------

def _is_number(value) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def verify_plinko_result(multiplier) -> bool:
    """Exact table membership. Only numeric values count; "3" is not 3."""
    if not _is_number(multiplier):
        return False
    m = to_decimal(multiplier)
    return m is not None and m in PLINKO_MULTIPLIERS


def _valid_face(face) -> bool:
    return isinstance(face, int) and not isinstance(face, bool) and 1 <= face <= 6


def valid_prediction(prediction, bet_type) -> bool:
    """Target must leave both outcomes possible for the mode (over 2 can't lose)."""
    if not isinstance(prediction, int) or isinstance(prediction, bool):
        return False
    bounds = DICE_PREDICTION_RANGES.get(bet_type)
    return bounds is not None and bounds[0] <= prediction <= bounds[1]


def verify_dice_result(dice1, dice2, dice3, prediction, bet_type) -> bool:
    if not (_valid_face(dice1) and _valid_face(dice2) and _valid_face(dice3)):
        return False
    if not valid_prediction(prediction, bet_type):
        return False
    total = dice1 + dice2 + dice3
    if bet_type == "over":
        return total > prediction
    if bet_type == "under":
        return total < prediction
    if bet_type == "exact":
        return total == prediction
    return False


# -----------------------------------------------------------------
# Payout sizing
# -----------------------------------------------------------------

def exact_multiplier_payout(bet: Decimal, multiplier: Decimal) -> Decimal:
    """Total return including the stake."""
    return max(ZERO, bet * multiplier)


def winnings_only_payout(bet: Decimal, multiplier: Decimal) -> Decimal:
    return max(ZERO, bet * multiplier - bet)


def size_payout(policy: str, bet: Decimal, multiplier: Decimal) -> Decimal:
    if policy == WINNINGS_ONLY:
        return winnings_only_payout(bet, multiplier)
    return exact_multiplier_payout(bet, multiplier)


# -----------------------------------------------------------------
# Requests and outcomes
# -----------------------------------------------------------------

@dataclass
class SettlementRequest:
    player_address: str
    bet_amount: Decimal
    game_id: str
    game_type: str
    # plinko
    multiplier: Optional[Decimal] = None
    # dice
    dice: Tuple = field(default_factory=tuple)
    prediction: Optional[int] = None
    bet_type: Optional[str] = None

    @classmethod
    def plinko(cls, player_address, bet_amount, multiplier, game_id):
        return cls(player_address=player_address, bet_amount=to_decimal(bet_amount),
                   game_id=game_id, game_type=PLINKO, multiplier=multiplier)

    @classmethod
    def dice_roll(cls, player_address, bet_amount, dice: Sequence, prediction,
                  bet_type, game_id):
        return cls(player_address=player_address, bet_amount=to_decimal(bet_amount),
                   game_id=game_id, game_type=DICE, dice=tuple(dice),
                   prediction=prediction, bet_type=bet_type)

    @property
    def dice_sum(self) -> Optional[int]:
        if len(self.dice) == 3 and all(_valid_face(d) for d in self.dice):
            return sum(self.dice)
        return None


@dataclass
class RoundOutcome:
    won: bool
    multiplier: Decimal
    valid: bool = True


def resolve_round(request: SettlementRequest,
                  dice_exact_multiplier: Decimal = DICE_EXACT_MULTIPLIER,
                  dice_range_multiplier: Decimal = DICE_RANGE_MULTIPLIER) -> RoundOutcome:
    """Verify the submitted outcome and look up its multiplier.

    Unknown game types and malformed outcomes come back as an invalid loss.
    """
    if request.game_type == PLINKO:
        if not verify_plinko_result(request.multiplier):
            return RoundOutcome(won=False, multiplier=ZERO, valid=False)
        m = to_decimal(request.multiplier)
        return RoundOutcome(won=m >= 1, multiplier=m)

    if request.game_type == DICE:
        if len(request.dice) != 3:
            return RoundOutcome(won=False, multiplier=ZERO, valid=False)
        d1, d2, d3 = request.dice
        valid = (all(_valid_face(d) for d in request.dice)
                 and valid_prediction(request.prediction, request.bet_type))
        if not valid:
            return RoundOutcome(won=False, multiplier=ZERO, valid=False)
        if not verify_dice_result(d1, d2, d3, request.prediction, request.bet_type):
            return RoundOutcome(won=False, multiplier=ZERO)
        if request.bet_type == "exact":
            return RoundOutcome(won=True, multiplier=dice_exact_multiplier)
        return RoundOutcome(won=True, multiplier=dice_range_multiplier)

    return RoundOutcome(won=False, multiplier=ZERO, valid=False)
