"""Chain client protocols: contract reads and wallet writes."""
from typing import Any, Protocol, Sequence

from ..models import ContractCall, TxReceipt


class ChainReader(Protocol):
    """Abstract interface for read-only contract calls."""

    async def read_contract(
        self,
        address: str,
        abi: Sequence[dict[str, Any]],
        function: str,
        args: Sequence[Any] = (),
    ) -> Any: ...


class WalletClient(Protocol):
    """Abstract interface for signing, submitting and confirming transactions."""

    @property
    def account(self) -> str: ...

    async def send_transaction(self, call: ContractCall) -> str: ...

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt: ...
