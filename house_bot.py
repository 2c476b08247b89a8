"""
House Bot
=========
Payout authorization and treasury automation for the Solana gaming backend.

Two independent triggers share one LedgerState:
  - Settlement: one call per game round (plinko / dice), run in parallel by
    the request layer. Verify the outcome, size the payout, gate it through
    the Balance Guard, transfer, count, audit, notify.
  - Treasury cycle: a timer thread runs claim -> buyback -> burn|hold over
    the creator fees. Single-flight; an overlapping fire is dropped.

Usage:
    bot = HouseBot(BotConfig())
    bot.startup()
    bot.start()
    result = bot.settle(SettlementRequest.plinko(player, 10000, 3, "g-1"))
"""

import os
import time
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from logging.handlers import RotatingFileHandler
from typing import Callable, Optional
from dotenv import load_dotenv

load_dotenv()

from game_rules import (
    DICE, DICE_EXACT_MULTIPLIER, DICE_RANGE_MULTIPLIER, EXACT_MULTIPLIER,
    PAYOUT_POLICIES, SettlementRequest, resolve_round, size_payout, to_decimal,
)
from house_data.stats_report import final_stats_lines, log_lines, treasury_stats_lines
from house_data.transaction_log import TransactionLog
from house_errors import (
    AuthorizationDenied, BalanceError, BurnError, ClaimError, CollaboratorFailure,
    ConfigError, FailureReason, HouseBotError, QuoteError, SwapError,
    TransferError, ValidationError,
)
from jupiter_client import JupiterClient
from ledger_state import EventBus, EventType, LedgerState
from solana_wallet import SOL_MINT, SolanaWallet, network_name

ZERO = Decimal("0")
HUNDRED = Decimal("100")

PUMPFUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
JUPITER_API = "https://quote-api.jup.ag/v6"


# -----------------------------------------------------------------
# Config
# -----------------------------------------------------------------

@dataclass
class BotConfig:
    # Solana
    rpc_url: str = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
    rpc_timeout: float = float(os.getenv("RPC_TIMEOUT", "10"))
    rpc_max_retries: int = int(os.getenv("RPC_MAX_RETRIES", "3"))
    rpc_retry_delay: float = float(os.getenv("RPC_RETRY_DELAY", "1.0"))
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10"))
    private_key: str = os.getenv("WALLET_PRIVATE_KEY", "")
    keypair_file: str = os.getenv("WALLET_KEYPAIR_FILE", "")
    token_mint: str = os.getenv("TOKEN_MINT_ADDRESS", "")
    use_sol: bool = os.getenv("USE_SOL", "false").lower() == "true"
    token_decimals: int = int(os.getenv("TOKEN_DECIMALS", "9"))
    dry_run: bool = os.getenv("DRY_RUN", "false").lower() == "true"

    # Game
    min_bet: Decimal = Decimal(os.getenv("MIN_BET", "10000"))
    max_bet: Decimal = Decimal(os.getenv("MAX_BET", "1000000"))
    payout_policy: str = os.getenv("PAYOUT_POLICY", EXACT_MULTIPLIER)
    dice_exact_multiplier: Decimal = DICE_EXACT_MULTIPLIER
    dice_range_multiplier: Decimal = DICE_RANGE_MULTIPLIER

    # Payout safety
    dust_threshold: Decimal = Decimal(os.getenv("MIN_PAYOUT", "0.0001"))
    max_payout_per_hour: Decimal = Decimal(os.getenv("MAX_PAYOUT_PER_HOUR", "100"))
    min_reserve: Decimal = Decimal(os.getenv("MIN_RESERVE_BALANCE", "1"))

    # Fee claim
    fee_claim_enabled: bool = os.getenv("FEE_CLAIM_ENABLED", "true").lower() == "true"
    claim_check_interval: float = float(os.getenv("CLAIM_CHECK_INTERVAL", "30"))
    min_claim_amount: Decimal = Decimal(os.getenv("MIN_CLAIM_AMOUNT", "0.001"))
    pumpfun_program_id: str = os.getenv("PUMPFUN_PROGRAM_ID", PUMPFUN_PROGRAM_ID)

    # Buyback
    buyback_enabled: bool = os.getenv("BUYBACK_ENABLED", "true").lower() == "true"
    buyback_percentage: Decimal = Decimal(os.getenv("BUYBACK_PERCENTAGE", "100"))
    min_buyback_amount: Decimal = Decimal(os.getenv("MIN_BUYBACK_AMOUNT", "0.0005"))
    slippage_bps: int = int(os.getenv("SLIPPAGE_BPS", "300"))
    jupiter_api: str = os.getenv("JUPITER_API", JUPITER_API)
    burn_tokens: bool = os.getenv("BURN_TOKENS", "false").lower() == "true"
    reserve_sol: Decimal = Decimal(os.getenv("RESERVE_SOL", "0.01"))
    burn_settle_delay: float = 2.0

    # Notifications
    discord_webhook: str = os.getenv("DISCORD_WEBHOOK", "")
    telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    telegram_chat_id: str = os.getenv("TELEGRAM_CHAT_ID", "")
    notify_timeout: float = float(os.getenv("NOTIFY_TIMEOUT", "5"))

    # Logging / audit
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: str = os.getenv("LOG_DIR", "logs")
    game_log_file: str = "game.log"
    treasury_log_file: str = "claim-buyback.log"
    transaction_log: str = os.getenv("TRANSACTION_LOG", "transactions.jsonl")
    summary_interval: int = int(os.getenv("SUMMARY_INTERVAL", "10"))

    @property
    def needs_token_mint(self) -> bool:
        return not self.use_sol or self.fee_claim_enabled

    def validate(self):
        errors = []
        if not self.private_key and not self.keypair_file:
            errors.append("WALLET_PRIVATE_KEY or WALLET_KEYPAIR_FILE must be set")
        if self.needs_token_mint and (
                not self.token_mint or self.token_mint.startswith("YOUR_")):
            errors.append("TOKEN_MINT_ADDRESS must be set")
        if self.payout_policy not in PAYOUT_POLICIES:
            errors.append("payout_policy must be one of {}".format(", ".join(PAYOUT_POLICIES)))
        if self.min_bet <= 0:
            errors.append("min_bet must be > 0")
        if self.min_bet > self.max_bet:
            errors.append("min_bet ({}) > max_bet ({})".format(self.min_bet, self.max_bet))
        if self.dust_threshold < 0:
            errors.append("dust_threshold must be >= 0")
        if self.max_payout_per_hour <= 0:
            errors.append("max_payout_per_hour must be > 0")
        if self.min_reserve < 0:
            errors.append("min_reserve must be >= 0")
        if self.claim_check_interval <= 0:
            errors.append("claim_check_interval must be > 0")
        if self.min_claim_amount < 0:
            errors.append("min_claim_amount must be >= 0")
        if self.buyback_percentage <= 0 or self.buyback_percentage > HUNDRED:
            errors.append("buyback_percentage must be in (0, 100]")
        if self.slippage_bps < 0:
            errors.append("slippage_bps must be >= 0")
        if self.reserve_sol < 0:
            errors.append("reserve_sol must be >= 0")
        return errors


# -----------------------------------------------------------------
# Logging
# -----------------------------------------------------------------

LOG_DIR = "logs"
LOGGER_NAME = "house_bot"


def setup_logging(level="INFO", log_dir=LOG_DIR, game_log_file="game.log",
                  treasury_log_file="claim-buyback.log"):
    os.makedirs(log_dir, exist_ok=True)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%H:%M:%S")
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    fh = RotatingFileHandler(os.path.join(log_dir, "house_bot.log"),
                             maxBytes=10 * 1024 * 1024, backupCount=5)
    fh.setFormatter(fmt)
    logger.addHandler(fh)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    session_path = os.path.join(log_dir, "house_bot_{}".format(ts) + ".log")
    sh = logging.FileHandler(session_path, mode="w")
    sh.setFormatter(fmt)
    logger.addHandler(sh)
    # Per-component files; records still propagate to the handlers above
    for child_name, filename in (("game", game_log_file), ("treasury", treasury_log_file)):
        child = logger.getChild(child_name)
        child.handlers.clear()
        cfh = RotatingFileHandler(os.path.join(log_dir, filename),
                                  maxBytes=10 * 1024 * 1024, backupCount=5)
        cfh.setFormatter(fmt)
        child.addHandler(cfh)
    logger.info("  Session log: {}".format(session_path))
    return logger


# -----------------------------------------------------------------
# Settlement result
# -----------------------------------------------------------------

@dataclass
class SettlementResult:
    won: bool
    payout_amount: Decimal = ZERO
    settlement_ref: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    game_id: str = ""
    game_type: str = ""
    bet_amount: Decimal = ZERO
    multiplier: Decimal = ZERO
    dice_sum: Optional[int] = None
    detail: str = ""

    @property
    def paid(self) -> bool:
        return self.settlement_ref is not None

    @property
    def profit(self) -> Decimal:
        return self.payout_amount - self.bet_amount

    def to_dict(self) -> dict:
        data = {
            "won": self.won,
            "payout": self.payout_amount,
            "profit": self.profit,
            "signature": self.settlement_ref,
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "game_id": self.game_id,
            "game_type": self.game_type,
            "bet": self.bet_amount,
            "multiplier": self.multiplier,
        }
        if self.game_type == DICE:
            data["sum"] = self.dice_sum
        if self.detail:
            data["detail"] = self.detail
        return data


# -----------------------------------------------------------------
# Balance Guard
# -----------------------------------------------------------------

@dataclass
class GuardDecision:
    allowed: bool
    reason: Optional[FailureReason] = None
    detail: str = ""
    balance: Optional[Decimal] = None


class BalanceGuard:
    """
    Allow/deny a prospective payout.

    Order: balance read, reserve floor, hourly cap. The balance is an
    advisory snapshot of the on-chain account, not a lease; the transfer
    itself is the final arbiter of sufficiency.
    """

    def __init__(self, config, ledger, wallet, logger):
        self.config = config
        self.ledger = ledger
        self.wallet = wallet
        self.logger = logger

    def _check_reserve(self, amount: Decimal) -> GuardDecision:
        try:
            balance = self.wallet.get_balance()
        except BalanceError as e:
            self.logger.error("  GUARD | balance read failed: {}".format(e))
            return GuardDecision(False, FailureReason.INSUFFICIENT_BALANCE,
                                 "balance unavailable: {}".format(e))
        if balance - amount < self.config.min_reserve:
            return GuardDecision(
                False, FailureReason.INSUFFICIENT_BALANCE,
                "balance {} - payout {} < reserve {}".format(
                    balance, amount, self.config.min_reserve),
                balance)
        return GuardDecision(True, balance=balance)

    def can_payout(self, amount: Decimal) -> GuardDecision:
        """Pure check: reads state, changes nothing beyond rolling an expired window."""
        decision = self._check_reserve(amount)
        if not decision.allowed:
            return decision
        headroom = self.ledger.hourly_headroom(self.config.max_payout_per_hour)
        if amount > headroom:
            return GuardDecision(
                False, FailureReason.HOURLY_CAP_EXCEEDED,
                "payout {} > hourly headroom {}".format(amount, headroom),
                decision.balance)
        return decision

    def admit(self, amount: Decimal) -> float:
        """Check and reserve hourly headroom in one step. Raises AuthorizationDenied.

        Returns the window the reservation belongs to. The caller owns the
        reservation: commit it after a successful transfer, release it
        (with that window) after a failed one.
        """
        decision = self._check_reserve(amount)
        if not decision.allowed:
            raise AuthorizationDenied(decision.reason, decision.detail)
        window = self.ledger.reserve_payout(amount, self.config.max_payout_per_hour)
        if window is None:
            raise AuthorizationDenied(
                FailureReason.HOURLY_CAP_EXCEEDED,
                "payout {} exceeds hourly cap {}".format(
                    amount, self.config.max_payout_per_hour))
        return window


# -----------------------------------------------------------------
# Payout Authorizer
# -----------------------------------------------------------------

class PayoutAuthorizer:
    """Settles one game round: verify, size, guard, transfer, count, audit, notify."""

    def __init__(self, config, ledger, guard, wallet, audit_log, event_bus, logger):
        self.config = config
        self.ledger = ledger
        self.guard = guard
        self.wallet = wallet
        self.audit_log = audit_log
        self.event_bus = event_bus
        self.logger = logger

    def _validate(self, request: SettlementRequest):
        if not request.player_address:
            raise ValidationError("player address is required")
        if not request.game_id:
            raise ValidationError("game id is required")
        bet = to_decimal(request.bet_amount)
        if bet is None:
            raise ValidationError("bet amount is not a number")
        request.bet_amount = bet
        if bet <= 0:
            raise ValidationError("bet amount must be positive")
        if bet < self.config.min_bet or bet > self.config.max_bet:
            raise ValidationError("Bet must be between {} and {}".format(
                self.config.min_bet, self.config.max_bet))

    def settle(self, request: SettlementRequest) -> SettlementResult:
        try:
            self._validate(request)
        except ValidationError as e:
            self.logger.warning("  REJECTED | {} | {}".format(request.game_id, e))
            return SettlementResult(
                won=False, failure_reason=FailureReason.INVALID_BET,
                game_id=request.game_id, game_type=request.game_type,
                detail=str(e))

        bet = request.bet_amount
        outcome = resolve_round(request, self.config.dice_exact_multiplier,
                                self.config.dice_range_multiplier)
        result = SettlementResult(
            won=outcome.won, game_id=request.game_id, game_type=request.game_type,
            bet_amount=bet, multiplier=outcome.multiplier, dice_sum=request.dice_sum)

        if not outcome.valid:
            self.ledger.record_round(bet, False)
            result.failure_reason = FailureReason.INVALID_OUTCOME
            result.detail = "outcome failed verification"
            self.logger.warning("  INVALID OUTCOME | {} | {} | counted as loss".format(
                request.game_type.upper(), request.game_id))
            return result

        payout = ZERO
        if outcome.won:
            payout = size_payout(self.config.payout_policy, bet, outcome.multiplier)
            if payout <= 0:
                result.won = False

        self.ledger.record_round(bet, result.won)
        self.logger.info("  {} | {} | {} | bet {} | x{} | {}".format(
            request.game_type.upper(), request.game_id, request.player_address[:8],
            bet, outcome.multiplier, "WIN" if result.won else "LOSS"))

        if not result.won:
            return result
        return self.authorize_payout(result, request.player_address, payout)

    def authorize_payout(self, result: SettlementResult, player: str,
                         amount: Decimal) -> SettlementResult:
        """Gate and execute the transfer for a won round. One audit entry per call."""
        entry = {
            "type": "game_payout",
            "player": player,
            "game_id": result.game_id,
            "game_type": result.game_type,
            "bet": result.bet_amount,
            "multiplier": result.multiplier,
            "amount": amount,
            "currency": self.wallet.currency,
        }

        if amount < self.config.dust_threshold:
            return self._deny(result, entry, AuthorizationDenied(
                FailureReason.PAYOUT_TOO_SMALL,
                "payout {} below dust threshold {}".format(
                    amount, self.config.dust_threshold)))

        try:
            window = self.guard.admit(amount)
        except AuthorizationDenied as e:
            return self._deny(result, entry, e)

        self.logger.info("  💸 PAYOUT | {} {} -> {}".format(
            amount, self.wallet.currency, player[:8]))
        try:
            signature = self.wallet.transfer(player, amount)
        except CollaboratorFailure as e:
            self.ledger.release_payout(amount, window)
            self.logger.error("  ❌ PAYOUT FAILED | {} | {}".format(result.game_id, e))
            self.audit_log.append(dict(entry, status="failed",
                                       reason=FailureReason.TRANSFER_FAILED.value,
                                       error=str(e)))
            result.failure_reason = FailureReason.TRANSFER_FAILED
            result.detail = str(e)
            return result

        self.ledger.commit_payout(amount)
        result.payout_amount = amount
        result.settlement_ref = signature
        self.audit_log.append(dict(entry, status="success", signature=signature))
        self.logger.info("  ✅ PAYOUT SENT | {} | {}".format(result.game_id, signature))

        self.event_bus.emit(EventType.GAME_PAYOUT, {
            "player": player,
            "game_type": result.game_type,
            "game_id": result.game_id,
            "bet": result.bet_amount,
            "payout": amount,
            "profit": amount - result.bet_amount,
            "signature": signature,
            "currency": self.wallet.currency,
            "total_payouts": self.ledger.snapshot()["game"]["total_payouts"],
        })
        return result

    def _deny(self, result, entry, denial: AuthorizationDenied) -> SettlementResult:
        self.logger.warning("  ⛔ PAYOUT DENIED | {} | {} | {}".format(
            result.game_id, denial.reason.value, denial.detail))
        self.audit_log.append(dict(entry, status="failed",
                                   reason=denial.reason.value, error=denial.detail))
        result.failure_reason = denial.reason
        result.detail = denial.detail
        return result


# -----------------------------------------------------------------
# Treasury Cycle Controller
# -----------------------------------------------------------------

class TreasuryPhase(Enum):
    IDLE = "idle"
    CHECK_FEES = "check_fees"
    CLAIM = "claim"
    BUYBACK = "buyback"
    BURN_OR_HOLD = "burn_or_hold"


@dataclass
class TreasuryCyclePass:
    claimable_amount: Decimal = ZERO
    claimed_amount: Decimal = ZERO
    buyback_spend: Decimal = ZERO
    tokens_received: Decimal = ZERO
    burned: bool = False
    # nothing_to_claim | claim_failed | claimed | buyback_skipped |
    # buyback_failed | held | burned | burn_failed
    outcome: str = "nothing_to_claim"
    claim_ref: Optional[str] = None
    swap_ref: Optional[str] = None
    burn_ref: Optional[str] = None
    error: str = ""
    started_at: float = field(default_factory=time.time)

    @property
    def claimed(self) -> bool:
        return self.claimed_amount > 0

    def to_dict(self) -> dict:
        return {
            "claimable": self.claimable_amount,
            "claimed": self.claimed_amount,
            "bought": self.buyback_spend,
            "tokens": self.tokens_received,
            "burned": self.burned,
            "outcome": self.outcome,
            "claim_ref": self.claim_ref,
            "swap_ref": self.swap_ref,
            "burn_ref": self.burn_ref,
            "error": self.error,
        }


class TreasuryCycleController:
    """
    One claim -> buyback -> burn|hold pass per call.

    Each phase only runs if the one before it produced something. A
    successful claim is never rolled back; a failed buyback leaves the SOL
    in the wallet for the next pass.
    """

    def __init__(self, config, ledger, wallet, swap_client, audit_log, event_bus, logger,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.ledger = ledger
        self.wallet = wallet
        self.swap_client = swap_client
        self.audit_log = audit_log
        self.event_bus = event_bus
        self.logger = logger
        self._sleep = sleep
        self._run_lock = threading.Lock()
        self.phase = TreasuryPhase.IDLE
        self.cycle_count = 0
        self.skipped_runs = 0

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def run_treasury_cycle(self) -> Optional[TreasuryCyclePass]:
        """Run one pass. Returns None if a pass is already in flight."""
        if not self._run_lock.acquire(blocking=False):
            self.skipped_runs += 1
            self.logger.warning("  ⏭️  Treasury cycle already running, skipping")
            return None
        try:
            self.cycle_count += 1
            return self._run_pass()
        finally:
            self.phase = TreasuryPhase.IDLE
            self._run_lock.release()

    def _run_pass(self) -> TreasuryCyclePass:
        p = TreasuryCyclePass()

        # ── CheckFees ──
        self.phase = TreasuryPhase.CHECK_FEES
        self.logger.info("🔍 Checking for claimable fees...")
        try:
            claimable = self.wallet.query_claimable_fees()
        except CollaboratorFailure as e:
            self.logger.error("❌ Fee check failed: {}".format(e))
            p.error = str(e)
            return p
        p.claimable_amount = claimable
        if claimable <= 0 or claimable < self.config.min_claim_amount:
            self.logger.info("💤 Nothing to claim ({:.6f} SOL < min {})".format(
                claimable, self.config.min_claim_amount))
            return p
        self.logger.info("💰 Found {:.6f} SOL in claimable fees".format(claimable))

        # ── Claim ──
        self.phase = TreasuryPhase.CLAIM
        if not self._claim(p):
            return p

        try:
            self._buyback(p)
            if p.tokens_received > 0:
                self.phase = TreasuryPhase.BURN_OR_HOLD
                self._burn_or_hold(p)
        finally:
            self._emit(p)
            log_lines(self.logger, treasury_stats_lines(
                self.ledger.snapshot(), self.config.burn_tokens))
        return p

    def _claim(self, p: TreasuryCyclePass) -> bool:
        self.logger.info("💸 Claiming fees...")
        try:
            claim = self.wallet.claim_fees()
        except CollaboratorFailure as e:
            self.logger.error("❌ Claim failed: {}".format(e))
            p.outcome = "claim_failed"
            p.error = str(e)
            self.audit_log.append({"type": "fee_claim", "status": "failed",
                                   "amount": p.claimable_amount, "error": str(e)})
            return False
        if claim.amount <= 0:
            self.logger.warning("⚠️  Claim returned nothing")
            p.outcome = "claim_failed"
            p.error = "claim returned zero"
            self.audit_log.append({"type": "fee_claim", "status": "failed",
                                   "amount": p.claimable_amount, "error": p.error})
            return False

        self.ledger.record_claim(claim.amount)
        p.claimed_amount = claim.amount
        p.claim_ref = claim.ref
        p.outcome = "claimed"
        self.audit_log.append({"type": "fee_claim", "status": "success",
                               "amount": claim.amount, "signature": claim.ref})
        self.logger.info("✅ Claimed {:.6f} SOL | {}".format(claim.amount, claim.ref))
        return True

    def _buyback(self, p: TreasuryCyclePass):
        if not self.config.buyback_enabled:
            self.logger.info("  Buyback disabled, claimed SOL stays in wallet")
            return
        self.phase = TreasuryPhase.BUYBACK
        buyback_amount = p.claimed_amount * self.config.buyback_percentage / HUNDRED
        after_reserve = buyback_amount - self.config.reserve_sol
        if after_reserve < self.config.min_buyback_amount:
            self.logger.info("⚠️  Buyback amount too small ({:.6f} SOL after reserve)".format(
                after_reserve))
            p.outcome = "buyback_skipped"
            return

        self.logger.info("🔄 Buying back with {:.6f} SOL ({}% of claim, {} SOL reserved)".format(
            after_reserve, self.config.buyback_percentage, self.config.reserve_sol))
        try:
            quote = self.swap_client.get_swap_quote(
                SOL_MINT, self.config.token_mint, after_reserve, self.config.slippage_bps)
            swap = self.swap_client.execute_swap(quote)
        except CollaboratorFailure as e:
            self.logger.error("❌ Buyback failed: {}".format(e))
            p.outcome = "buyback_failed"
            p.error = str(e)
            self.audit_log.append({"type": "buyback", "status": "failed",
                                   "sol_amount": after_reserve, "error": str(e)})
            return

        self.ledger.record_buyback(after_reserve, swap.tokens_received)
        p.buyback_spend = after_reserve
        p.tokens_received = swap.tokens_received
        p.swap_ref = swap.ref
        p.outcome = "held"
        self.audit_log.append({"type": "buyback", "status": "success",
                               "sol_amount": after_reserve,
                               "tokens_received": swap.tokens_received,
                               "signature": swap.ref})
        self.logger.info("✅ Buyback complete | {:.6f} SOL -> ~{:.2f} tokens | {}".format(
            after_reserve, swap.tokens_received, swap.ref))

    def _burn_or_hold(self, p: TreasuryCyclePass):
        if not self.config.burn_tokens:
            self.logger.info("💰 Tokens held in wallet")
            return
        # Let the swap finalize before the token account is debited
        self._sleep(self.config.burn_settle_delay)
        self.logger.info("🔥 Burning {:.2f} tokens...".format(p.tokens_received))
        try:
            ref = self.wallet.burn(p.tokens_received)
        except CollaboratorFailure as e:
            self.logger.error("❌ Burn failed: {}".format(e))
            p.outcome = "burn_failed"
            p.error = str(e)
            self.audit_log.append({"type": "burn", "status": "failed",
                                   "amount": p.tokens_received, "error": str(e)})
            return
        self.ledger.record_burn(p.tokens_received)
        p.burned = True
        p.burn_ref = ref
        p.outcome = "burned"
        self.audit_log.append({"type": "burn", "status": "success",
                               "amount": p.tokens_received, "signature": ref})
        self.logger.info("✅ Tokens burned | {}".format(ref))

    def _emit(self, p: TreasuryCyclePass):
        data = p.to_dict()
        data["stats"] = self.ledger.snapshot()["bot"]
        self.event_bus.emit(EventType.TREASURY_CYCLE, data)


# -----------------------------------------------------------------
# Scheduler
# -----------------------------------------------------------------

class TreasuryScheduler:
    """First pass immediately, then one every `interval` seconds on a daemon thread."""

    def __init__(self, run_cycle: Callable, interval: float, logger):
        self.run_cycle = run_cycle
        self.interval = interval
        self.logger = logger
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="treasury-cycle", daemon=True)
        self._thread.start()
        self.logger.info("  Treasury scheduler started (every {}s)".format(self.interval))

    def stop(self, timeout: float = 5.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self):
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                self.logger.error("❌ Bot cycle error: {}".format(e))
            self.logger.info("⏱️  Next check in {} seconds".format(self.interval))
            if self._stop_event.wait(self.interval):
                break


# -----------------------------------------------------------------
# House Bot
# -----------------------------------------------------------------

class HouseBot:
    def __init__(self, config=None, wallet=None, swap_client=None, notifier=None,
                 ledger=None, audit_log=None, event_bus=None, logger=None):
        self.config = config or BotConfig()
        errors = self.config.validate()
        if errors:
            raise ConfigError("Invalid configuration: {}".format("; ".join(errors)))

        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.ledger = ledger or LedgerState()
        self.event_bus = event_bus or EventBus()
        self.audit_log = audit_log or TransactionLog(self.config.transaction_log)
        self.wallet = wallet or SolanaWallet(self.config, self.logger.getChild("wallet"))
        self.swap_client = swap_client or JupiterClient(self.config, self.wallet)
        self.notifier = notifier
        if self.notifier is not None:
            self.notifier.attach(self.event_bus)

        self.guard = BalanceGuard(self.config, self.ledger, self.wallet,
                                  self.logger.getChild("game"))
        self.authorizer = PayoutAuthorizer(
            self.config, self.ledger, self.guard, self.wallet, self.audit_log,
            self.event_bus, self.logger.getChild("game"))
        self.treasury = TreasuryCycleController(
            self.config, self.ledger, self.wallet, self.swap_client, self.audit_log,
            self.event_bus, self.logger.getChild("treasury"))
        self.scheduler = TreasuryScheduler(
            self._scheduled_cycle, self.config.claim_check_interval,
            self.logger.getChild("treasury"))
        self.start_time = time.time()

    # ── Lifecycle ──

    def startup(self) -> Decimal:
        """Fail fast on anything that would make payouts unsafe. Returns the balance."""
        mode = "DRY RUN" if self.config.dry_run else "LIVE"
        self.logger.info("=" * 70)
        self.logger.info("  SOLANA HOUSE BOT | Mode: {} | Network: {}".format(
            mode, network_name(self.config.rpc_url)))
        self.logger.info("  Wallet: {}".format(self.wallet.address))
        self.logger.info("=" * 70)

        try:
            balance = self.wallet.get_balance()
        except BalanceError as e:
            raise ConfigError("Cannot read wallet balance: {}".format(e)) from e
        self.logger.info("  Balance: {} {}".format(balance, self.wallet.currency))
        if balance < self.config.min_reserve:
            self.logger.warning("⚠️  Low balance! {} < reserve {}".format(
                balance, self.config.min_reserve))

        if self.config.token_mint and self.config.needs_token_mint:
            if not self.wallet.verify_token_mint():
                raise ConfigError("Token mint not found: {}".format(self.config.token_mint))
            self.logger.info("  ✅ Token mint verified: {}".format(self.config.token_mint))

        self.logger.info("  Bets: {} - {} | Policy: {} | Hourly cap: {} | Reserve: {}".format(
            self.config.min_bet, self.config.max_bet, self.config.payout_policy,
            self.config.max_payout_per_hour, self.config.min_reserve))
        self.logger.info("  Fee claim: {} | Buyback: {} ({}%) | Burn: {} | Every {}s".format(
            "ON" if self.config.fee_claim_enabled else "OFF",
            "ON" if self.config.buyback_enabled else "OFF",
            self.config.buyback_percentage,
            "ON" if self.config.burn_tokens else "OFF",
            self.config.claim_check_interval))
        return balance

    def start(self):
        if self.notifier is not None:
            self.notifier.start()
        if self.config.fee_claim_enabled:
            self.scheduler.start()
        else:
            self.logger.info("  Fee claim disabled, treasury scheduler not started")

    def stop(self):
        self.scheduler.stop()
        if self.notifier is not None:
            self.notifier.stop()
        self._print_summary("FINAL")

    # ── Core surface ──

    def settle(self, request: SettlementRequest) -> SettlementResult:
        return self.authorizer.settle(request)

    def run_treasury_cycle(self) -> Optional[TreasuryCyclePass]:
        return self.treasury.run_treasury_cycle()

    def get_stats(self) -> dict:
        return self.ledger.snapshot()

    def get_health(self) -> dict:
        return {
            "status": "ok",
            "wallet": self.wallet.address,
            "network": network_name(self.config.rpc_url),
            "uptime": round(time.time() - self.start_time, 1),
            "services": {
                "gaming": True,
                "fee_claim": self.config.fee_claim_enabled,
                "buyback": self.config.buyback_enabled,
                "burn": self.config.burn_tokens,
                "notifications": bool(self.notifier and self.notifier.enabled),
                "scheduler": self.scheduler.running,
            },
        }

    def get_wallet_balance(self) -> dict:
        return {"balance": self.wallet.get_balance(), "currency": self.wallet.currency}

    # ── Internals ──

    def _scheduled_cycle(self):
        self.treasury.run_treasury_cycle()
        interval = self.config.summary_interval
        if interval > 0 and self.treasury.cycle_count % interval == 0:
            self._print_summary("CYCLE {}".format(self.treasury.cycle_count))

    def _print_summary(self, label=""):
        sep = "=" * 70
        self.logger.info(sep)
        self.logger.info("  SUMMARY " + label)
        self.logger.info(sep)
        log_lines(self.logger, final_stats_lines(
            self.get_stats(), self.config.fee_claim_enabled, self.config.burn_tokens))
        self.logger.info("  Treasury cycles: {} (skipped {})".format(
            self.treasury.cycle_count, self.treasury.skipped_runs))
        self.logger.info(sep)


__all__ = [
    "AuthorizationDenied", "BalanceError", "BalanceGuard", "BotConfig", "BurnError",
    "ClaimError", "CollaboratorFailure", "ConfigError", "FailureReason", "GuardDecision",
    "HouseBot", "HouseBotError", "PayoutAuthorizer", "QuoteError", "SettlementResult",
    "SwapError", "TransferError", "TreasuryCycleController", "TreasuryCyclePass",
    "TreasuryPhase", "TreasuryScheduler", "ValidationError", "setup_logging",
]
