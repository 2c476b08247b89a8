"""
Jupiter Aggregator Client
=========================
Quote + swap for the buyback bot.

- get_swap_quote(): GET {JUPITER_API}/quote
- execute_swap():   POST {JUPITER_API}/swap, then hand the returned base64
                    transaction to the wallet for signing and submission

Failures surface as QuoteError / SwapError. The quote is a read and is
retried with backoff; the swap is submitted exactly once.
"""

import base64
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict

import requests

from house_errors import QuoteError, SwapError
from solana_wallet import api_retry, from_base_units, sol_to_lamports

logger = logging.getLogger("house_bot.treasury")


@dataclass
class SwapResult:
    tokens_received: Decimal
    ref: str


class JupiterClient:
    """Client for the Jupiter swap REST API."""

    def __init__(self, config, wallet, session=None):
        self.config = config
        self.wallet = wallet
        self.base_url = config.jupiter_api.rstrip("/")
        self.timeout = config.http_timeout
        self.session = session or requests.Session()

    def get_swap_quote(self, from_mint: str, to_mint: str, amount: Decimal,
                       slippage_bps: int) -> Dict[str, Any]:
        """Quote for swapping `amount` SOL of from_mint into to_mint."""
        params = {
            "inputMint": from_mint,
            "outputMint": to_mint,
            "amount": str(sol_to_lamports(amount)),
            "slippageBps": str(slippage_bps),
        }

        def _fetch():
            resp = self.session.get(
                f"{self.base_url}/quote", params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()

        try:
            data = api_retry(_fetch, max_retries=self.config.rpc_max_retries,
                             base_delay=self.config.rpc_retry_delay, logger=logger)
        except Exception as e:
            raise QuoteError(f"Failed to get quote: {e}") from e
        if not data or data.get("error"):
            raise QuoteError("Failed to get quote: {}".format(
                (data or {}).get("error", "Unknown error")))
        if "outAmount" not in data:
            raise QuoteError("Quote has no outAmount")
        return data

    def expected_tokens(self, quote: Dict[str, Any]) -> Decimal:
        return from_base_units(quote["outAmount"], self.config.token_decimals)

    def execute_swap(self, quote: Dict[str, Any]) -> SwapResult:
        if self.config.dry_run:
            tokens = self.expected_tokens(quote)
            logger.info("    [DRY] swap -> {:.2f} tokens".format(tokens))
            return SwapResult(tokens, self.wallet.dry_ref("SWAP"))
        try:
            resp = self.session.post(
                f"{self.base_url}/swap",
                json={
                    "quoteResponse": quote,
                    "userPublicKey": self.wallet.address,
                    "wrapAndUnwrapSol": True,
                    "dynamicComputeUnitLimit": True,
                    "prioritizationFeeLamports": "auto",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            swap_data = resp.json()
        except Exception as e:
            raise SwapError(f"Swap request failed: {e}") from e
        if not swap_data or not swap_data.get("swapTransaction"):
            raise SwapError("Failed to get swap transaction")

        try:
            raw = base64.b64decode(swap_data["swapTransaction"])
            logger.info("📤 Sending swap transaction...")
            txid = self.wallet.send_raw_transaction(raw)
        except Exception as e:
            raise SwapError(f"Swap submission failed: {e}") from e
        return SwapResult(self.expected_tokens(quote), txid)
