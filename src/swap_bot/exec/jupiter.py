"""Jupiter aggregator client, price feed and live swap executor."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from swap_bot.config import Settings
from swap_bot.exec.errors import JupiterAPIError, PriceFeedError, SolanaRPCError, SwapError
from swap_bot.exec.solana_rpc import SolanaRPCClient
from swap_bot.types import PriceQuote, Side, SwapResult
from swap_bot.utils.clock import Clock, SystemClock
from swap_bot.utils.logging import get_logger, log_swap_execution

PRICE_CONFIDENCE = 95.0

# Takes a base64 unsigned transaction, returns it signed (base64).
Signer = Callable[[str], str]


@dataclass(frozen=True, slots=True)
class TokenInfo:
    symbol: str
    mint: str
    decimals: int

    def to_atomic(self, amount: float) -> int:
        return int(round(amount * 10**self.decimals))

    def from_atomic(self, amount: int | str) -> float:
        return int(amount) / 10**self.decimals


TOKENS: dict[str, TokenInfo] = {
    "SOL": TokenInfo("SOL", "So11111111111111111111111111111111111111112", 9),
    "USDC": TokenInfo("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
}


def resolve_pair(pair_id: str) -> tuple[TokenInfo, TokenInfo]:
    """Split `BASE/QUOTE` into token descriptors."""
    base_symbol, _, quote_symbol = pair_id.upper().partition("/")
    base = TOKENS.get(base_symbol)
    quote = TOKENS.get(quote_symbol)
    if base is None or quote is None:
        raise PriceFeedError(f"unsupported_pair: {pair_id}")
    return base, quote


class JupiterClient:
    """Thin client for the Jupiter quote and swap endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._base_url = settings.jupiter_api_url.rstrip("/")
        self._http = http_client
        self._logger = get_logger("swap_bot.exec.jupiter")

    def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        *,
        swap_mode: str = "ExactIn",
    ) -> dict[str, Any]:
        """Fetch a route quote. `amount` is in atomic units of the fixed side."""
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "swapMode": swap_mode,
            "onlyDirectRoutes": "false",
            "restrictIntermediateTokens": "true",
        }
        payload = self._request("GET", "/quote", params=params)
        if "outAmount" not in payload or "inAmount" not in payload:
            raise JupiterAPIError("invalid_quote_response")
        return payload

    def get_swap_transaction(self, quote: dict[str, Any], user_public_key: str) -> str:
        """Build the swap transaction for `quote`; returns it base64-encoded, unsigned."""
        body = {
            "userPublicKey": user_public_key,
            "quoteResponse": quote,
            "wrapAndUnwrapSol": True,
            "computeUnitPriceMicroLamports": self._settings.priority_fee_micro_lamports,
            "asLegacyTransaction": False,
            "dynamicComputeUnitLimit": True,
        }
        payload = self._request("POST", "/swap", json=body)
        transaction = payload.get("swapTransaction")
        if not isinstance(transaction, str) or not transaction:
            raise JupiterAPIError("missing_swap_transaction")
        return transaction

    @retry(
        retry=retry_if_exception_type(JupiterAPIError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            if self._http is not None:
                response = self._http.request(method, url, **kwargs)
                response.raise_for_status()
            else:
                with httpx.Client(timeout=self._settings.http_timeout) as client:
                    response = client.request(method, url, **kwargs)
                    response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("jupiter_request_failed", path=path, error=str(exc))
            raise JupiterAPIError(str(exc)) from exc

        if not isinstance(payload, dict):
            raise JupiterAPIError("unexpected_response_shape")
        return payload


class JupiterPriceFeed:
    """Prices the base token by quoting one unit of the quote token."""

    def __init__(self, client: JupiterClient, clock: Clock | None = None) -> None:
        self._client = client
        self._clock = clock or SystemClock()
        self.last_price: float | None = None

    def get_price(self, pair_id: str) -> PriceQuote:
        base, quote_token = resolve_pair(pair_id)
        quote = self._client.get_quote(
            quote_token.mint,
            base.mint,
            quote_token.to_atomic(1.0),
            slippage_bps=50,
        )
        received = base.from_atomic(quote["outAmount"])
        spent = quote_token.from_atomic(quote["inAmount"])
        if received <= 0:
            raise PriceFeedError("zero_out_amount")
        price = spent / received
        self.last_price = price
        return PriceQuote(price=price, confidence=PRICE_CONFIDENCE, timestamp_ms=self._clock.now_ms())

    def current_price(self) -> float | None:
        return self.last_price


class JupiterSwapExecutor:
    """Live swaps: quote, build, sign externally, send and confirm."""

    def __init__(
        self,
        client: JupiterClient,
        rpc: SolanaRPCClient,
        signer: Signer,
        *,
        pair_id: str,
        wallet_public_key: str,
        confirm_timeout: float = 60.0,
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._rpc = rpc
        self._signer = signer
        self._pair_id = pair_id
        self._base, self._quote = resolve_pair(pair_id)
        self._wallet = wallet_public_key
        self._confirm_timeout = confirm_timeout
        self._clock = clock or SystemClock()
        self._logger = get_logger("swap_bot.exec.jupiter")

    def swap(self, amount: float, direction: Side, max_slippage_bps: int) -> SwapResult:
        """Swap `amount` base-token units; buys fix the output, sells fix the input."""
        if amount <= 0:
            raise SwapError("amount_must_be_positive")
        atomic = self._base.to_atomic(amount)
        if direction == "buy":
            quote = self._client.get_quote(
                self._quote.mint, self._base.mint, atomic, max_slippage_bps, swap_mode="ExactOut"
            )
            fill_price = self._quote.from_atomic(quote["inAmount"]) / self._base.from_atomic(quote["outAmount"])
        else:
            quote = self._client.get_quote(
                self._base.mint, self._quote.mint, atomic, max_slippage_bps, swap_mode="ExactIn"
            )
            fill_price = self._quote.from_atomic(quote["outAmount"]) / self._base.from_atomic(quote["inAmount"])

        unsigned = self._client.get_swap_transaction(quote, self._wallet)
        signed = self._signer(unsigned)
        try:
            signature = self._rpc.send_transaction(signed)
            log_swap_execution(
                self._logger,
                pair_id=self._pair_id,
                side=direction,
                amount=amount,
                price=fill_price,
                transaction_id=signature,
            )
            self._rpc.confirm_transaction(signature, self._confirm_timeout, self._clock)
        except SolanaRPCError as exc:
            raise SwapError(f"swap_not_confirmed: {exc}") from exc

        return SwapResult(transaction_id=signature, side=direction, amount=amount, fill_price=fill_price)
