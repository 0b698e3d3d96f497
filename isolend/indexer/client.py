"""GraphQL indexer client: pool discovery, activity and pool history."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import IndexerConfig
from ..models import ActivityEvent, IndexedSnapshot
from .parser import EVENT_COLLECTIONS, parse_activity, parse_pool_addresses, parse_pool_snapshots

logger = logging.getLogger(__name__)

LENDING_POOLS_QUERY = """
query {
  lendingPools {
    items { id router borrowToken collateralToken sharesToken ltv }
  }
}
"""

_EVENT_FIELDS = "id amount timestamp txHash user lendingPool"


def _activity_query() -> str:
    blocks = []
    for collection, _, amount_field in EVENT_COLLECTIONS:
        fields = _EVENT_FIELDS if amount_field == "amount" else f"{_EVENT_FIELDS} {amount_field}"
        blocks.append(f"  {collection} {{ items {{ {fields} }} }}")
    return "query {\n" + "\n".join(blocks) + "\n}\n"


ACTIVITY_QUERY = _activity_query()

POOL_SNAPSHOTS_QUERY = """
query {
  poolSnapshots {
    items {
      id timestamp blockNumber lendingPool router
      totalSupplyAssets totalBorrowAssets totalCollateral
      availableLiquidity supplyAPR borrowRate utilization eventType
    }
  }
}
"""


class GraphQLIndexer:
    """Query the protocol indexer over HTTP."""

    def __init__(self, config: IndexerConfig) -> None:
        self.url = config.url
        self.timeout = config.timeout

    async def query(self, query: str) -> dict[str, Any]:
        """POST one GraphQL query and return its ``data`` object.

        Raises:
            RuntimeError: non-200 response or GraphQL errors.
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        async with aiohttp.ClientSession(connector=connector) as session:
            async with session.post(
                self.url,
                json={"query": query},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    raise RuntimeError(f"Indexer request failed: HTTP {response.status}")
                payload = await response.json()

        if payload.get("errors"):
            raise RuntimeError(f"Indexer error: {payload['errors'][0].get('message', payload['errors'][0])}")
        return payload.get("data") or {}

    async def list_pool_addresses(self) -> list[str]:
        data = await self.query(LENDING_POOLS_QUERY)
        addresses = parse_pool_addresses(data)
        logger.debug("Indexer listed %d pools", len(addresses))
        return addresses

    async def fetch_activity(
        self, user: str | None = None, pool: str | None = None
    ) -> list[ActivityEvent]:
        data = await self.query(ACTIVITY_QUERY)
        return parse_activity(data, user=user, pool=pool)

    async def fetch_pool_snapshots(self, address: str | None = None) -> list[IndexedSnapshot]:
        data = await self.query(POOL_SNAPSHOTS_QUERY)
        return parse_pool_snapshots(data, address)
