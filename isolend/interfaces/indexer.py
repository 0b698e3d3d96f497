"""Indexer protocol: pool discovery and transaction history."""
from typing import Protocol

from ..models import ActivityEvent, IndexedSnapshot


class Indexer(Protocol):
    """Abstract interface for the protocol event indexer."""

    async def list_pool_addresses(self) -> list[str]: ...

    async def fetch_activity(
        self, user: str | None = None, pool: str | None = None
    ) -> list[ActivityEvent]: ...

    async def fetch_pool_snapshots(self, address: str | None = None) -> list[IndexedSnapshot]: ...
