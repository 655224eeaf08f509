"""Minimal Solana JSON-RPC client and wallet valuation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from swap_bot.exec.errors import SolanaRPCError
from swap_bot.utils.clock import Clock
from swap_bot.utils.logging import get_logger

LAMPORTS_PER_SOL = 1_000_000_000
_CONFIRMED = {"confirmed", "finalized"}


class _RPCTransportError(SolanaRPCError):
    """Network-level failure; safe to retry."""


class SolanaRPCClient:
    """JSON-RPC calls needed for balances, submission and confirmation."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._http = http_client
        self._request_id = 0
        self._logger = get_logger("swap_bot.exec.solana_rpc")

    def get_balance(self, public_key: str) -> int:
        """Native balance in lamports."""
        result = self._call("getBalance", [public_key, {"commitment": "confirmed"}])
        try:
            return int(result["value"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SolanaRPCError(f"getBalance: malformed_response: {exc}") from exc

    def get_token_balance(self, owner: str, mint: str) -> float:
        """Sum of UI amounts over the owner's token accounts for `mint`."""
        result = self._call(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed"}],
        )
        total = 0.0
        try:
            for account in result.get("value", []):
                info = account["account"]["data"]["parsed"]["info"]
                total += float(info["tokenAmount"].get("uiAmount") or 0.0)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise SolanaRPCError(f"getTokenAccountsByOwner: malformed_response: {exc}") from exc
        return total

    def send_transaction(self, signed_transaction: str) -> str:
        """Submit a base64 signed transaction and return its signature."""
        return str(
            self._call(
                "sendTransaction",
                [
                    signed_transaction,
                    {
                        "encoding": "base64",
                        "skipPreflight": True,
                        "preflightCommitment": "processed",
                        "maxRetries": 3,
                    },
                ],
            )
        )

    def get_signature_status(self, signature: str) -> dict[str, Any] | None:
        result = self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        statuses = result.get("value") or [None]
        return statuses[0]

    def confirm_transaction(
        self,
        signature: str,
        timeout_seconds: float,
        clock: Clock,
        *,
        poll_seconds: float = 2.0,
    ) -> None:
        """Poll until the signature is confirmed. Raises on failure or timeout."""
        deadline = clock.now_ms() + int(timeout_seconds * 1000)
        while True:
            status = self.get_signature_status(signature)
            if status is not None:
                if status.get("err") is not None:
                    raise SolanaRPCError(f"transaction_failed: {status['err']}")
                if status.get("confirmationStatus") in _CONFIRMED:
                    self._logger.info("transaction_confirmed", signature=signature)
                    return
            if clock.now_ms() >= deadline:
                raise SolanaRPCError(f"confirmation_timeout: {signature}")
            clock.sleep(poll_seconds)

    def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        body = self._post(payload)
        error = body.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise SolanaRPCError(f"{method}: {message}")
        if "result" not in body:
            raise SolanaRPCError(f"{method}: missing_result")
        return body["result"]

    @retry(
        retry=retry_if_exception_type(_RPCTransportError),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            if self._http is not None:
                response = self._http.post(self._rpc_url, json=payload)
                response.raise_for_status()
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(self._rpc_url, json=payload)
                    response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.warning("rpc_request_failed", method=payload["method"], error=str(exc))
            raise _RPCTransportError(str(exc)) from exc
        if not isinstance(body, dict):
            raise SolanaRPCError("unexpected_response_shape")
        return body


class SolanaWalletBalance:
    """Values the wallet's SOL and quote-token holdings in quote currency."""

    def __init__(
        self,
        rpc: SolanaRPCClient,
        wallet_public_key: str,
        quote_mint: str,
        price_source: Callable[[], float | None],
    ) -> None:
        self._rpc = rpc
        self._wallet = wallet_public_key
        self._quote_mint = quote_mint
        self._price_source = price_source
        self._logger = get_logger("swap_bot.exec.solana_rpc")

    def get_balance(self) -> float:
        sol = self._rpc.get_balance(self._wallet) / LAMPORTS_PER_SOL
        quote = self._rpc.get_token_balance(self._wallet, self._quote_mint)
        price = self._price_source()
        if price is None:
            self._logger.warning("wallet_valuation_without_price", sol=sol, quote=quote)
            return quote
        return quote + sol * price
