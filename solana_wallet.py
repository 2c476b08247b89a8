"""
Solana wallet collaborator for the House Bot.

Everything that touches the chain goes through here: balance reads,
SOL / SPL-token payouts, the creator-fee vault (query + claim), burns and
submitting the swap transactions built by the Jupiter client.

Every failure is wrapped in the matching CollaboratorFailure subclass so
the core never sees a library exception. Read-only RPC calls are retried
with backoff; anything that moves funds is submitted exactly once.
"""

import json
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN

import base58
import requests
from solana.rpc.api import Client
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction, VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    BurnParams, burn, get_associated_token_address,
    TransferParams as TokenTransferParams, transfer as token_transfer,
)

from house_errors import (
    BalanceError, BurnError, ClaimError, ConfigError, TransferError,
)

LAMPORTS_PER_SOL = 1_000_000_000
SOL_MINT = "So11111111111111111111111111111111111111112"
FEE_VAULT_SEED = b"fee"

ZERO = Decimal("0")


# -----------------------------------------------------------------
# API Retry
# -----------------------------------------------------------------

def api_retry(func, max_retries=3, base_delay=1.0, logger=None):
    """Call func(), backing off on transient failures. Read-only calls only."""
    for attempt in range(max_retries):
        try:
            return func()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            if status != 429 and not 500 <= status < 600:
                raise
            if attempt == max_retries - 1:
                raise
            factor = 4 if status == 429 else 2
            time.sleep(base_delay * (factor ** attempt))
        except Exception as e:
            if attempt == max_retries - 1:
                raise
            if logger:
                logger.debug("  Retry {}/{} after: {}".format(
                    attempt + 1, max_retries, str(e)[:80]))
            time.sleep(base_delay * (2 ** attempt))
    return None


# -----------------------------------------------------------------
# Unit helpers
# -----------------------------------------------------------------

def lamports_to_sol(lamports) -> Decimal:
    return Decimal(int(lamports)) / Decimal(LAMPORTS_PER_SOL)


def sol_to_lamports(amount: Decimal) -> int:
    return int((Decimal(amount) * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))


def to_base_units(amount: Decimal, decimals: int) -> int:
    return int((Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(
        rounding=ROUND_DOWN))


def from_base_units(raw, decimals: int) -> Decimal:
    return Decimal(int(raw)) / (Decimal(10) ** decimals)


def network_name(rpc_url: str) -> str:
    return "devnet" if "devnet" in rpc_url else "mainnet"


def load_keypair(config) -> Keypair:
    """Keypair from a JSON keypair file, a JSON byte array, or a base58 string."""
    try:
        if config.keypair_file:
            with open(config.keypair_file, "r", encoding="utf-8") as f:
                return Keypair.from_bytes(bytes(json.load(f)))
        key = (config.private_key or "").strip()
        if not key:
            raise ValueError("no private key configured")
        if key.startswith("[") and key.endswith("]"):
            return Keypair.from_bytes(bytes(json.loads(key)))
        return Keypair.from_bytes(base58.b58decode(key))
    except Exception as e:
        raise ConfigError("Failed to load wallet keypair: {}".format(e)) from e


@dataclass
class ClaimResult:
    amount: Decimal
    ref: str


# -----------------------------------------------------------------
# Wallet
# -----------------------------------------------------------------

class SolanaWallet:
    def __init__(self, config, logger, client=None, keypair=None):
        self.config = config
        self.logger = logger
        self.keypair = keypair or load_keypair(config)
        self.pubkey = self.keypair.pubkey()
        self.mint = None
        if config.token_mint:
            try:
                self.mint = Pubkey.from_string(config.token_mint)
            except ValueError as e:
                raise ConfigError("Invalid token mint {}: {}".format(
                    config.token_mint, e)) from e
        self.client = client or Client(
            config.rpc_url, commitment=Confirmed, timeout=config.rpc_timeout)
        self._dry_counter = 0

    @property
    def address(self) -> str:
        return str(self.pubkey)

    @property
    def currency(self) -> str:
        return "SOL" if self.config.use_sol else "TOKEN"

    def _retry(self, func):
        return api_retry(func, max_retries=self.config.rpc_max_retries,
                         base_delay=self.config.rpc_retry_delay, logger=self.logger)

    def _require_mint(self, error_cls):
        if self.mint is None:
            raise error_cls("TOKEN_MINT_ADDRESS not configured")
        return self.mint

    def dry_ref(self, label) -> str:
        self._dry_counter += 1
        return "DRY-{}-{}-{}".format(label, int(time.time() * 1000), self._dry_counter)

    def _send_and_confirm(self, instructions) -> str:
        blockhash = self.client.get_latest_blockhash().value.blockhash
        message = Message(instructions, self.pubkey)
        tx = Transaction([self.keypair], message, blockhash)
        sig = self.client.send_raw_transaction(bytes(tx)).value
        self.client.confirm_transaction(sig, Confirmed)
        return str(sig)

    # ── Balances ──

    def get_balance(self) -> Decimal:
        """Spendable balance in the payout asset (SOL or the project token)."""
        try:
            if self.config.use_sol:
                resp = self._retry(lambda: self.client.get_balance(self.pubkey))
                return lamports_to_sol(resp.value)
            mint = self._require_mint(BalanceError)
            ata = get_associated_token_address(self.pubkey, mint)
            resp = self._retry(lambda: self.client.get_token_account_balance(ata))
            return from_base_units(resp.value.amount, self.config.token_decimals)
        except BalanceError:
            raise
        except Exception as e:
            raise BalanceError("Balance read failed: {}".format(e)) from e

    def verify_token_mint(self) -> bool:
        mint = self._require_mint(ConfigError)
        try:
            resp = self._retry(lambda: self.client.get_account_info(mint))
        except Exception as e:
            raise ConfigError("Token mint lookup failed: {}".format(e)) from e
        return resp.value is not None

    # ── Payouts ──

    def transfer(self, destination: str, amount: Decimal) -> str:
        """Send `amount` of the payout asset to `destination`. Returns the signature."""
        if amount <= 0:
            raise TransferError("Transfer amount must be positive, got {}".format(amount))
        try:
            dest = Pubkey.from_string(destination)
        except ValueError as e:
            raise TransferError("Invalid destination {}: {}".format(destination, e)) from e
        if self.config.dry_run:
            ref = self.dry_ref("PAYOUT")
            self.logger.info("    [DRY] transfer {} {} -> {}".format(
                amount, self.currency, destination[:8]))
            return ref
        try:
            if self.config.use_sol:
                ix = transfer(TransferParams(
                    from_pubkey=self.pubkey, to_pubkey=dest,
                    lamports=sol_to_lamports(amount)))
            else:
                mint = self._require_mint(TransferError)
                ix = token_transfer(TokenTransferParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=get_associated_token_address(self.pubkey, mint),
                    dest=get_associated_token_address(dest, mint),
                    owner=self.pubkey,
                    amount=to_base_units(amount, self.config.token_decimals)))
            return self._send_and_confirm([ix])
        except TransferError:
            raise
        except Exception as e:
            raise TransferError("Transfer failed: {}".format(e)) from e

    # ── Creator fees ──

    def fee_vault_address(self) -> Pubkey:
        mint = self._require_mint(ClaimError)
        program_id = Pubkey.from_string(self.config.pumpfun_program_id)
        vault, _bump = Pubkey.find_program_address(
            [FEE_VAULT_SEED, bytes(mint), bytes(self.pubkey)], program_id)
        return vault

    def query_claimable_fees(self) -> Decimal:
        """SOL sitting in the creator-fee vault (0 if none)."""
        try:
            vault = self.fee_vault_address()
            resp = self._retry(lambda: self.client.get_balance(vault))
            return lamports_to_sol(resp.value or 0)
        except ClaimError:
            raise
        except Exception as e:
            raise ClaimError("Fee vault read failed: {}".format(e)) from e

    def claim_fees(self) -> ClaimResult:
        """Claim everything in the fee vault. Returns the claimed amount and signature."""
        amount = self.query_claimable_fees()
        if amount <= 0:
            return ClaimResult(ZERO, "")
        if self.config.dry_run:
            self.logger.info("    [DRY] claim {:.6f} SOL".format(amount))
            return ClaimResult(amount, self.dry_ref("CLAIM"))
        try:
            vault = self.fee_vault_address()
            ix = Instruction(
                Pubkey.from_string(self.config.pumpfun_program_id),
                b"",
                [
                    AccountMeta(self.pubkey, is_signer=True, is_writable=True),
                    AccountMeta(vault, is_signer=False, is_writable=True),
                    AccountMeta(self.mint, is_signer=False, is_writable=False),
                ])
            sig = self._send_and_confirm([ix])
        except Exception as e:
            raise ClaimError("Claim failed: {}".format(e)) from e
        return ClaimResult(amount, sig)

    # ── Burn ──

    def burn(self, amount: Decimal) -> str:
        if amount <= 0:
            raise BurnError("Burn amount must be positive, got {}".format(amount))
        if self.config.dry_run:
            self.logger.info("    [DRY] burn {:.2f} tokens".format(amount))
            return self.dry_ref("BURN")
        try:
            mint = self._require_mint(BurnError)
            ix = burn(BurnParams(
                program_id=TOKEN_PROGRAM_ID,
                account=get_associated_token_address(self.pubkey, mint),
                mint=mint,
                owner=self.pubkey,
                amount=to_base_units(amount, self.config.token_decimals)))
            return self._send_and_confirm([ix])
        except BurnError:
            raise
        except Exception as e:
            raise BurnError("Burn failed: {}".format(e)) from e

    # ── Swaps ──

    def send_raw_transaction(self, tx_bytes: bytes) -> str:
        """Sign a serialized versioned transaction with the house key and submit it."""
        tx = VersionedTransaction.from_bytes(tx_bytes)
        signed = VersionedTransaction(tx.message, [self.keypair])
        sig = self.client.send_raw_transaction(
            bytes(signed), opts=TxOpts(skip_preflight=True, max_retries=2)).value
        self.client.confirm_transaction(sig, Confirmed)
        return str(sig)
