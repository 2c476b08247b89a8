"""
Tests for the Notification Dispatcher.

Run: python -m pytest test_notifier.py -v
"""

import logging
from decimal import Decimal
from unittest.mock import MagicMock

import requests

from house_bot import BotConfig, TreasuryCycleController
from house_errors import SwapError
from ledger_state import EventBus, EventType, LedgerState
from notifier import (
    QUEUE_SIZE, Notifier, render_discord, render_telegram, short_address, solscan_link,
)
from solana_wallet import ClaimResult

PLAYER = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


def make_config(discord="", telegram_token="", telegram_chat=""):
    config = BotConfig()
    config.discord_webhook = discord
    config.telegram_bot_token = telegram_token
    config.telegram_chat_id = telegram_chat
    config.notify_timeout = 5
    return config


def payout_event():
    return {
        "player": PLAYER,
        "game_type": "plinko",
        "game_id": "g-1",
        "bet": Decimal("10000"),
        "payout": Decimal("30000"),
        "profit": Decimal("20000"),
        "signature": "5igSig",
        "currency": "SOL",
        "total_payouts": Decimal("45000"),
    }


def treasury_event(burned=False, outcome=None, error=""):
    return {
        "claimable": Decimal("1.0"),
        "claimed": Decimal("1.0"),
        "bought": Decimal("0.99"),
        "tokens": Decimal("5000"),
        "burned": burned,
        "outcome": outcome or ("burned" if burned else "held"),
        "claim_ref": "claimSig",
        "swap_ref": "swapSig",
        "burn_ref": "burnSig" if burned else None,
        "error": error,
        "stats": {
            "claim_count": 3,
            "buyback_count": 2,
            "total_claimed": Decimal("2.5"),
            "total_buyback_spent": Decimal("1.98"),
            "total_tokens_bought": Decimal("10000"),
            "total_tokens_burned": Decimal("5000"),
        },
    }


class TestRendering:

    def test_short_address(self):
        assert short_address(PLAYER) == "9xQe...VFin"
        assert short_address("abc") == "abc"

    def test_solscan_link(self):
        assert solscan_link("abc") == "https://solscan.io/tx/abc"

    def test_telegram_payout(self):
        msg = render_telegram(EventType.GAME_PAYOUT, payout_event())
        assert "*WINNER PAID!*" in msg
        assert "Game: PLINKO" in msg
        assert "`9xQe...VFin`" in msg
        assert "Payout: 30000.0000 SOL" in msg
        assert "📈 Profit: 20000.0000" in msg
        assert "Total Payouts: 45000.0000" in msg
        assert "https://solscan.io/tx/5igSig" in msg

    def test_telegram_payout_token_unit(self):
        data = payout_event()
        data["currency"] = "TOKEN"
        assert "30000.0000 tokens" in render_telegram(EventType.GAME_PAYOUT, data)

    def test_telegram_treasury_held(self):
        msg = render_telegram(EventType.TREASURY_CYCLE, treasury_event())
        assert "*CLAIM & BUYBACK COMPLETE!*" in msg
        assert "Claimed: 1.000000 SOL" in msg
        assert "Buyback: 0.990000 SOL" in msg
        assert "Tokens: 5000.00 💰 HELD" in msg
        assert "Claims: 3 (2.500000 SOL)" in msg
        assert "Tokens Burned" not in msg

    def test_telegram_treasury_burned(self):
        msg = render_telegram(EventType.TREASURY_CYCLE, treasury_event(burned=True))
        assert "🔥 BURNED" in msg
        assert "Tokens Burned: 5000.00" in msg

    def test_discord_treasury(self):
        msg = render_discord(EventType.TREASURY_CYCLE, treasury_event())
        assert "**Claim & Buyback Complete!**" in msg
        assert "(held)" in msg
        assert "Total: 3 claims, 2 buybacks" in msg

    def test_discord_payout(self):
        msg = render_discord(EventType.GAME_PAYOUT, payout_event())
        assert "PLINKO" in msg
        assert "https://solscan.io/tx/5igSig" in msg


class TestTreasuryOutcomes:

    def _failed_buyback(self):
        data = treasury_event(outcome="buyback_failed", error="slippage tolerance exceeded")
        data["bought"] = Decimal("0")
        data["tokens"] = Decimal("0")
        return data

    def test_telegram_buyback_failed(self):
        msg = render_telegram(EventType.TREASURY_CYCLE, self._failed_buyback())
        assert msg.startswith("⚠️ *FEES CLAIMED, BUYBACK FAILED*")
        assert "COMPLETE" not in msg
        assert "Claimed: 1.000000 SOL" in msg
        assert "Buyback:" not in msg
        assert "Error: slippage tolerance exceeded" in msg

    def test_discord_buyback_failed(self):
        msg = render_discord(EventType.TREASURY_CYCLE, self._failed_buyback())
        assert msg.startswith("⚠️ **Fees Claimed, Buyback Failed**")
        assert "Complete" not in msg
        assert "slippage tolerance exceeded" in msg

    def test_buyback_skipped(self):
        data = treasury_event(outcome="buyback_skipped")
        data["bought"] = Decimal("0")
        data["tokens"] = Decimal("0")
        msg = render_telegram(EventType.TREASURY_CYCLE, data)
        assert msg.startswith("💰 *FEES CLAIMED!*")
        assert "Buyback skipped" in msg
        assert "Tokens:" not in msg

    def test_claim_only(self):
        data = treasury_event(outcome="claimed")
        data["bought"] = Decimal("0")
        data["tokens"] = Decimal("0")
        msg = render_discord(EventType.TREASURY_CYCLE, data)
        assert msg.startswith("💰 **Fees Claimed!**")
        assert "Buyback" not in msg.split("📊")[0]

    def test_burn_failed_shows_held_tokens(self):
        data = treasury_event(outcome="burn_failed", error="insufficient funds")
        msg = render_telegram(EventType.TREASURY_CYCLE, data)
        assert msg.startswith("⚠️ *BUYBACK DONE, BURN FAILED*")
        assert "Tokens: 5000.00 💰 HELD" in msg
        assert "Error: insufficient funds" in msg

    def test_swap_failure_pass_is_not_announced_as_complete(self):
        config = BotConfig()
        config.token_mint = "TokenMint1111111111111111111111111111111111"
        config.min_claim_amount = Decimal("0.001")
        config.buyback_enabled = True
        config.buyback_percentage = Decimal("100")
        config.reserve_sol = Decimal("0.01")
        config.min_buyback_amount = Decimal("0.0005")
        wallet = MagicMock()
        wallet.query_claimable_fees.return_value = Decimal("1.0")
        wallet.claim_fees.return_value = ClaimResult(Decimal("1.0"), "claim-sig")
        swap = MagicMock()
        swap.execute_swap.side_effect = SwapError("route expired")
        bus = EventBus()
        events = []
        bus.subscribe(EventType.TREASURY_CYCLE, lambda t, d: events.append(d))
        controller = TreasuryCycleController(
            config, LedgerState(), wallet, swap, MagicMock(), bus,
            logging.getLogger("test_notifier"), sleep=MagicMock())

        controller.run_treasury_cycle()

        msg = render_telegram(EventType.TREASURY_CYCLE, events[0])
        assert "COMPLETE" not in msg
        assert "BUYBACK FAILED" in msg
        assert "route expired" in msg


class TestDelivery:

    def test_disabled_without_credentials(self):
        session = MagicMock()
        notifier = Notifier(make_config(), session=session)
        assert not notifier.enabled
        notifier.handle_event(EventType.GAME_PAYOUT, payout_event())
        notifier.deliver(EventType.GAME_PAYOUT, payout_event())
        session.post.assert_not_called()

    def test_telegram_needs_chat_id(self):
        notifier = Notifier(make_config(telegram_token="tok"), session=MagicMock())
        assert not notifier.telegram_enabled

    def test_deliver_both_channels(self):
        session = MagicMock()
        notifier = Notifier(make_config("https://discord/hook", "tok", "42"), session=session)
        notifier.deliver(EventType.TREASURY_CYCLE, treasury_event())

        assert session.post.call_count == 2
        discord_call, telegram_call = session.post.call_args_list
        assert discord_call[0][0] == "https://discord/hook"
        assert "content" in discord_call[1]["json"]
        assert telegram_call[0][0] == "https://api.telegram.org/bottok/sendMessage"
        body = telegram_call[1]["json"]
        assert body["chat_id"] == "42"
        assert body["parse_mode"] == "Markdown"
        assert telegram_call[1]["timeout"] == 5
        assert notifier.sent == 2

    def test_failure_is_swallowed(self):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.ConnectionError("down")
        notifier = Notifier(make_config("https://discord/hook", "tok", "42"), session=session)
        notifier.deliver(EventType.GAME_PAYOUT, payout_event())
        assert notifier.failed == 2
        assert notifier.sent == 0

    def test_http_error_is_swallowed(self):
        session = MagicMock()
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError("429")
        session.post.return_value = resp
        notifier = Notifier(make_config(discord="https://discord/hook"), session=session)
        notifier.deliver(EventType.GAME_PAYOUT, payout_event())
        assert notifier.failed == 1

    def test_worker_delivers_bus_events(self):
        session = MagicMock()
        notifier = Notifier(make_config(discord="https://discord/hook"), session=session)
        bus = EventBus()
        notifier.attach(bus)
        notifier.start()
        try:
            bus.emit(EventType.GAME_PAYOUT, payout_event())
            bus.emit(EventType.TREASURY_CYCLE, treasury_event())
        finally:
            notifier.stop()
        assert session.post.call_count == 2

    def test_events_dropped_without_worker(self):
        notifier = Notifier(make_config(discord="https://discord/hook"), session=MagicMock())
        for _ in range(50):
            notifier.handle_event(EventType.GAME_PAYOUT, payout_event())
        assert notifier._queue.qsize() == 0
        assert notifier.dropped == 50

    def test_events_dropped_after_stop(self):
        session = MagicMock()
        notifier = Notifier(make_config(discord="https://discord/hook"), session=session)
        notifier.start()
        notifier.stop()
        notifier.handle_event(EventType.GAME_PAYOUT, payout_event())
        assert notifier._queue.qsize() == 0
        assert notifier.dropped == 1
        session.post.assert_not_called()

    def test_full_queue_drops_instead_of_growing(self):
        notifier = Notifier(make_config(discord="https://discord/hook"), session=MagicMock())
        notifier._thread = MagicMock()  # stands in for a stalled worker
        for _ in range(QUEUE_SIZE + 5):
            notifier.handle_event(EventType.GAME_PAYOUT, payout_event())
        assert notifier._queue.qsize() == QUEUE_SIZE
        assert notifier.dropped == 5
