"""
Notification Dispatcher
=======================
Fans core events out to chat webhooks:
- Discord: POST {"content": message} to DISCORD_WEBHOOK
- Telegram: POST sendMessage (Markdown) to the configured bot/chat

This module is non-blocking and fault-tolerant:
- Events are queued by the EventBus handler and delivered on a daemon
  worker thread, so a slow webhook never holds up a settlement
- The queue is bounded; events are dropped when it is full or when no
  worker is running
- Every delivery is wrapped in try/except; failures are logged and dropped
- A channel is enabled only when its credentials are set

Usage:
    notifier = Notifier(config)
    notifier.attach(event_bus)
    notifier.start()
    ...
    notifier.stop()
"""

import logging
import queue
import threading
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from ledger_state import EventType

logger = logging.getLogger("house_bot.notify")

SOLSCAN_TX = "https://solscan.io/tx/"
TELEGRAM_API = "https://api.telegram.org"
QUEUE_SIZE = 1000

# Treasury pass outcome -> (emoji, headline)
TREASURY_HEADLINES = {
    "held": ("✅", "CLAIM & BUYBACK COMPLETE!"),
    "burned": ("✅", "CLAIM & BUYBACK COMPLETE!"),
    "burn_failed": ("⚠️", "BUYBACK DONE, BURN FAILED"),
    "buyback_failed": ("⚠️", "FEES CLAIMED, BUYBACK FAILED"),
    "buyback_skipped": ("💰", "FEES CLAIMED!"),
    "claimed": ("💰", "FEES CLAIMED!"),
}
BOUGHT_OUTCOMES = ("held", "burned", "burn_failed")


def short_address(address: str) -> str:
    if not address or len(address) <= 8:
        return address or ""
    return "{}...{}".format(address[:4], address[-4:])


def solscan_link(ref: str) -> str:
    return SOLSCAN_TX + ref


# -----------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------

def _unit(data) -> str:
    return "SOL" if data.get("currency") == "SOL" else "tokens"


def render_telegram(event_type: EventType, data: Dict[str, Any]) -> Optional[str]:
    if event_type == EventType.GAME_PAYOUT:
        profit = Decimal(data["profit"])
        return (
            "🎮 *WINNER PAID!*\n\n"
            "🎲 Game: {game}\n"
            "👤 Player: `{player}`\n"
            "💰 Payout: {payout:.4f} {unit}\n"
            "🎯 Bet: {bet:.4f}\n"
            "{emoji} Profit: {profit:.4f}\n"
            "📊 Total Payouts: {total:.4f}\n\n"
            "🔗 [View on Solscan]({link})\n"
            "`{sig}`"
        ).format(
            game=data["game_type"].upper(),
            player=short_address(data["player"]),
            payout=Decimal(data["payout"]),
            unit=_unit(data),
            bet=Decimal(data["bet"]),
            emoji="📈" if profit > 0 else "📉",
            profit=profit,
            total=Decimal(data["total_payouts"]),
            link=solscan_link(data["signature"]),
            sig=data["signature"],
        )

    if event_type == EventType.TREASURY_CYCLE:
        outcome = data.get("outcome", "held")
        stats = data["stats"]
        lines = [
            "{} *{}*".format(*TREASURY_HEADLINES.get(outcome, ("💰", "FEES CLAIMED!"))),
            "",
            "💰 Claimed: {:.6f} SOL".format(Decimal(data["claimed"])),
        ]
        if outcome in BOUGHT_OUTCOMES:
            lines.append("🔄 Buyback: {:.6f} SOL".format(Decimal(data["bought"])))
            lines.append("💎 Tokens: {:.2f} {}".format(
                Decimal(data["tokens"]), "🔥 BURNED" if data["burned"] else "💰 HELD"))
        elif outcome == "buyback_skipped":
            lines.append("⏭️ Buyback skipped (below minimum after reserve)")
        if data.get("error"):
            lines.append("⚠️ Error: {}".format(data["error"]))
        lines.extend([
            "",
            "📊 *Session Stats:*",
            "   Claims: {} ({:.6f} SOL)".format(
                stats["claim_count"], Decimal(stats["total_claimed"])),
            "   Buybacks: {} ({:.6f} SOL)".format(
                stats["buyback_count"], Decimal(stats["total_buyback_spent"])),
            "   Tokens Bought: {:.2f}".format(Decimal(stats["total_tokens_bought"])),
        ])
        if data["burned"]:
            lines.append("   Tokens Burned: {:.2f}".format(
                Decimal(stats["total_tokens_burned"])))
        if data.get("claim_ref"):
            lines.extend(["", "🔗 [View on Solscan]({})".format(
                solscan_link(data["claim_ref"]))])
        return "\n".join(lines)

    return None


def render_discord(event_type: EventType, data: Dict[str, Any]) -> Optional[str]:
    if event_type == EventType.GAME_PAYOUT:
        return (
            "🎮 **Winner Paid!** {game} | {player}\n"
            "💰 Payout: {payout:.4f} {unit} (bet {bet:.4f})\n"
            "🔗 {link}"
        ).format(
            game=data["game_type"].upper(),
            player=short_address(data["player"]),
            payout=Decimal(data["payout"]),
            unit=_unit(data),
            bet=Decimal(data["bet"]),
            link=solscan_link(data["signature"]),
        )

    if event_type == EventType.TREASURY_CYCLE:
        outcome = data.get("outcome", "held")
        emoji, headline = TREASURY_HEADLINES.get(outcome, ("💰", "FEES CLAIMED!"))
        lines = [
            "{} **{}**".format(emoji, headline.title()),
            "💰 Claimed: {:.6f} SOL".format(Decimal(data["claimed"])),
        ]
        if outcome in BOUGHT_OUTCOMES:
            lines.append("🔄 Buyback: {:.6f} SOL".format(Decimal(data["bought"])))
            lines.append("💎 Tokens: {:.2f} {}".format(
                Decimal(data["tokens"]), "(burned)" if data["burned"] else "(held)"))
        elif outcome == "buyback_skipped":
            lines.append("⏭️ Buyback skipped")
        if data.get("error"):
            lines.append("⚠️ {}".format(data["error"]))
        stats = data["stats"]
        lines.append("📊 Total: {} claims, {} buybacks".format(
            stats["claim_count"], stats["buyback_count"]))
        return "\n".join(lines)

    return None


# -----------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------

class Notifier:
    """Delivers rendered events to Discord and Telegram. Never raises."""

    def __init__(self, config, session=None):
        self.config = config
        self.timeout = config.notify_timeout
        self.session = session or requests.Session()
        self.discord_enabled = bool(config.discord_webhook)
        self.telegram_enabled = bool(config.telegram_bot_token and config.telegram_chat_id)
        self._queue: "queue.Queue" = queue.Queue(maxsize=QUEUE_SIZE)
        self._thread: Optional[threading.Thread] = None
        self.sent = 0
        self.failed = 0
        self.dropped = 0

        if not self.discord_enabled and not self.telegram_enabled:
            logger.info("  Notifications disabled (no Discord webhook / Telegram bot set)")

    @property
    def enabled(self) -> bool:
        return self.discord_enabled or self.telegram_enabled

    def attach(self, event_bus):
        for event_type in EventType:
            event_bus.subscribe(event_type, self.handle_event)

    # ── Worker ──

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._worker, name="notifier", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0):
        """Drain whatever is queued, then stop the worker."""
        if self._thread is None:
            return
        self._queue.put(None)
        self._thread.join(timeout)
        self._thread = None

    def handle_event(self, event_type: EventType, data: Dict[str, Any]):
        """EventBus handler: enqueue and return immediately. Dropped with no worker running."""
        if not self.enabled:
            return
        if self._thread is None:
            self.dropped += 1
            logger.debug("  Notifier not running, dropped {}".format(event_type.value))
            return
        try:
            self._queue.put_nowait((event_type, data))
        except queue.Full:
            self.dropped += 1
            logger.warning("⚠️ Notification queue full, dropped {}".format(event_type.value))

    def _worker(self):
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self.deliver(*item)
            finally:
                self._queue.task_done()

    # ── Delivery ──

    def deliver(self, event_type: EventType, data: Dict[str, Any]):
        if self.discord_enabled:
            try:
                message = render_discord(event_type, data)
                if message:
                    self._post(self.config.discord_webhook, {"content": message})
            except Exception as e:
                self.failed += 1
                logger.error("❌ Discord notification failed: {}".format(e))

        if self.telegram_enabled:
            try:
                message = render_telegram(event_type, data)
                if message:
                    url = "{}/bot{}/sendMessage".format(
                        TELEGRAM_API, self.config.telegram_bot_token)
                    self._post(url, {
                        "chat_id": self.config.telegram_chat_id,
                        "text": message,
                        "parse_mode": "Markdown",
                        "disable_web_page_preview": False,
                    })
            except Exception as e:
                self.failed += 1
                logger.error("❌ Telegram notification failed: {}".format(e))

    def _post(self, url: str, payload: dict):
        resp = self.session.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        self.sent += 1
