"""Errors raised by execution-side adapters."""

from __future__ import annotations


class PriceFeedError(Exception):
    """Raised when a price cannot be obtained."""


class SwapError(Exception):
    """Raised when a swap is rejected, fails or cannot be confirmed."""


class SolanaRPCError(Exception):
    """Raised when a Solana JSON-RPC call fails at transport or protocol level."""


class JupiterAPIError(PriceFeedError, SwapError):
    """Raised when the Jupiter aggregator API request fails."""
