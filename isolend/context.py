"""Explicit read/write client context passed to every service."""
from __future__ import annotations

from dataclasses import dataclass

from .chains.evm import EvmClient
from .config import AppConfig
from .errors import SubmissionError
from .interfaces.chain import ChainReader, WalletClient


@dataclass(frozen=True)
class ClientContext:
    """Chain reader, optional signing wallet, and the connected account."""

    reader: ChainReader
    wallet: WalletClient | None = None
    account: str = ""

    @property
    def is_connected(self) -> bool:
        return bool(self.account)

    def require_wallet(self) -> WalletClient:
        if self.wallet is None:
            raise SubmissionError("Wallet not connected: configure wallet.private_key to send transactions")
        return self.wallet


def build_context(config: AppConfig) -> ClientContext:
    """Build a context from configuration. Without a private key the context is read-only."""
    client = EvmClient(
        config.chain,
        private_key=config.wallet.private_key,
        account=config.wallet.address,
    )
    return ClientContext(
        reader=client,
        wallet=client if client.can_sign else None,
        account=client.account,
    )
