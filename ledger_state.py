"""
Ledger State and Event Bus for the House Bot
============================================

Shared, process-lifetime financial counters for the gaming backend and the
fee-claim / buyback bot, plus the outbound event bus that decouples
notifications from settlement and treasury state transitions.

Architecture:
- Settlement requests run in parallel (one thread per inbound round)
- The treasury cycle runs on its own background thread
- Both mutate the same LedgerState; every read-modify-write happens under
  a single threading.Lock, so no increment can be lost
- The hourly payout window is rolled lazily on each payout attempt, not by
  a separate timer

The EventBus is a plain pub/sub: the core emits GAME_PAYOUT and
TREASURY_CYCLE events, the notifier subscribes. Handler exceptions are
logged and swallowed so a broken webhook can never change a core outcome.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger("house_bot.ledger")

HOURLY_WINDOW_SECONDS = 3600.0

ZERO = Decimal("0")


# ─────────────────────────────────────────────────────────────────
# Event Types (for the event bus)
# ─────────────────────────────────────────────────────────────────

class EventType(Enum):
    GAME_PAYOUT = "game_payout"          # Winner paid out
    TREASURY_CYCLE = "treasury_cycle"    # Claim + buyback + burn summary


# ─────────────────────────────────────────────────────────────────
# Ledger State (Thread-Safe)
# ─────────────────────────────────────────────────────────────────

class LedgerState:
    """
    Thread-safe counters for game and bot statistics.

    The Payout Authorizer and the Treasury Cycle Controller are the only
    writers. All reads/writes are protected by one threading.Lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._lock = threading.Lock()
        self._clock = clock

        # ── Game stats ──
        self.total_games: int = 0
        self.total_wagered: Decimal = ZERO
        self.total_payouts: Decimal = ZERO
        self.wins: int = 0
        self.losses: int = 0

        # ── Hourly payout window ──
        self.hourly_payout_total: Decimal = ZERO
        self.hourly_window_start: float = clock()

        # ── Bot stats ──
        self.total_claimed: Decimal = ZERO
        self.total_buyback_spent: Decimal = ZERO
        self.total_tokens_bought: Decimal = ZERO
        self.total_tokens_burned: Decimal = ZERO
        self.claim_count: int = 0
        self.buyback_count: int = 0
        self.last_claim_time: Optional[datetime] = None
        self.last_buyback_time: Optional[datetime] = None

    # ── Game rounds ──

    def record_round(self, bet_amount: Decimal, won: bool):
        """Count one settled round. Games, wager and win/loss move together."""
        with self._lock:
            self.total_games += 1
            self.total_wagered += bet_amount
            if won:
                self.wins += 1
            else:
                self.losses += 1

    # ── Hourly window ──

    def _roll_window_locked(self, now: float):
        if now - self.hourly_window_start > HOURLY_WINDOW_SECONDS:
            logger.debug("Hourly payout window reset (was {})".format(
                self.hourly_payout_total))
            self.hourly_payout_total = ZERO
            self.hourly_window_start = now

    def hourly_headroom(self, hourly_cap: Decimal) -> Decimal:
        """Remaining payout volume in the current window (rolls it if expired)."""
        with self._lock:
            self._roll_window_locked(self._clock())
            return hourly_cap - self.hourly_payout_total

    def reserve_payout(self, amount: Decimal, hourly_cap: Decimal) -> Optional[float]:
        """Check the hourly cap and claim headroom for `amount` in one step.

        Returns the start of the window the headroom was taken from, or
        None (and changes nothing) when the payout would exceed the cap.
        A reservation must later be committed with commit_payout() or
        returned with release_payout(amount, window).
        """
        with self._lock:
            self._roll_window_locked(self._clock())
            if self.hourly_payout_total + amount > hourly_cap:
                return None
            self.hourly_payout_total += amount
            return self.hourly_window_start

    def release_payout(self, amount: Decimal, window: float):
        """Return reserved headroom. A no-op once that window has rolled over."""
        with self._lock:
            if window != self.hourly_window_start:
                return
            self.hourly_payout_total = max(ZERO, self.hourly_payout_total - amount)

    def commit_payout(self, amount: Decimal):
        with self._lock:
            self.total_payouts += amount

    # ── Treasury ──

    def record_claim(self, amount: Decimal):
        with self._lock:
            self.total_claimed += amount
            self.claim_count += 1
            self.last_claim_time = datetime.now(timezone.utc)

    def record_buyback(self, spent: Decimal, tokens: Decimal):
        with self._lock:
            self.total_buyback_spent += spent
            self.total_tokens_bought += tokens
            self.buyback_count += 1
            self.last_buyback_time = datetime.now(timezone.utc)

    def record_burn(self, tokens: Decimal):
        with self._lock:
            self.total_tokens_burned += tokens

    # ── Snapshot ──

    def snapshot(self) -> dict:
        """Consistent copy of every counter, split like the /stats payload."""
        with self._lock:
            return {
                "game": {
                    "total_games": self.total_games,
                    "total_wagered": self.total_wagered,
                    "total_payouts": self.total_payouts,
                    "wins": self.wins,
                    "losses": self.losses,
                    "hourly_payout_total": self.hourly_payout_total,
                    "hourly_window_start": datetime.fromtimestamp(
                        self.hourly_window_start, timezone.utc).isoformat(),
                },
                "bot": {
                    "total_claimed": self.total_claimed,
                    "total_buyback_spent": self.total_buyback_spent,
                    "total_tokens_bought": self.total_tokens_bought,
                    "total_tokens_burned": self.total_tokens_burned,
                    "claim_count": self.claim_count,
                    "buyback_count": self.buyback_count,
                    "last_claim_time": (self.last_claim_time.isoformat()
                                        if self.last_claim_time else None),
                    "last_buyback_time": (self.last_buyback_time.isoformat()
                                          if self.last_buyback_time else None),
                },
            }


# ─────────────────────────────────────────────────────────────────
# Event Bus (Thread-Safe)
# ─────────────────────────────────────────────────────────────────

class EventBus:
    """
    Fan-out of GAME_PAYOUT / TREASURY_CYCLE events to their subscribers.

    Settlement threads and the treasury thread both emit. Subscribers run
    on the emitting thread, outside the lock; a subscriber that raises is
    logged and skipped.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Dict[EventType, List[Callable]] = {t: [] for t in EventType}

    def subscribe(self, event_type: EventType, handler: Callable):
        with self._lock:
            self._handlers[event_type].append(handler)

    def emit(self, event_type: EventType, data: dict):
        with self._lock:
            handlers = tuple(self._handlers[event_type])
        for handler in handlers:
            try:
                handler(event_type, data)
            except Exception as e:
                logger.error("Subscriber failed on {}: {}".format(event_type.value, e))
