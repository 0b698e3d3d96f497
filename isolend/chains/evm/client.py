"""EVM JSON-RPC client with endpoint fallback for reads."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from ...config import ChainConfig
from ...errors import SubmissionError
from ...models import ContractCall, TxReceipt

logger = logging.getLogger(__name__)


class EvmClient:
    """EVM RPC client: contract reads with automatic endpoint fallback, signed writes."""

    def __init__(self, config: ChainConfig, private_key: str = "", account: str = "") -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.chain_id = config.chain_id
        self.poll_interval = config.receipt_poll_interval
        self.current_rpc_index = 0
        self._providers: dict[int, AsyncWeb3] = {}

        self._signer = Account.from_key(private_key) if private_key else None
        if self._signer is not None:
            self._account = self._signer.address
        else:
            self._account = Web3.to_checksum_address(account) if account else ""

    @property
    def account(self) -> str:
        return self._account

    @property
    def can_sign(self) -> bool:
        return self._signer is not None

    def _web3(self, index: int) -> AsyncWeb3:
        if index not in self._providers:
            self._providers[index] = AsyncWeb3(
                AsyncHTTPProvider(
                    self.endpoints[index], request_kwargs={"timeout": self.timeout}
                )
            )
        return self._providers[index]

    @staticmethod
    def _bind(w3: AsyncWeb3, address: str, abi: Sequence[dict[str, Any]], function: str, args: Sequence[Any]):
        contract = w3.eth.contract(address=Web3.to_checksum_address(address), abi=list(abi))
        return getattr(contract.functions, function)(*[_checksum(a) for a in args])

    async def read_contract(
        self,
        address: str,
        abi: Sequence[dict[str, Any]],
        function: str,
        args: Sequence[Any] = (),
    ) -> Any:
        """Call a view function, falling back to alternative endpoints on transport errors.

        A contract revert is raised immediately; another endpoint would
        return the same revert.
        """
        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                fn = self._bind(self._web3(rpc_index), address, abi, function, args)
                result = await fn.call()
            except ContractLogicError:
                raise
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed on %s: %s", rpc_url, function, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

            if rpc_index != self.current_rpc_index:
                logger.info("Switched to RPC endpoint: %s", rpc_url)
                self.current_rpc_index = rpc_index
            return result

        raise RuntimeError(f"All RPC endpoints failed. Last error: {last_error}")

    async def send_transaction(self, call: ContractCall) -> str:
        """Sign and broadcast a contract write on the current endpoint.

        No fallback here: rebroadcasting on another endpoint after an
        ambiguous failure could submit the same action twice.
        """
        if self._signer is None:
            raise SubmissionError("No signing key configured for this wallet")

        w3 = self._web3(self.current_rpc_index)
        try:
            fn = self._bind(w3, call.address, call.abi, call.function, call.args)
            nonce = await w3.eth.get_transaction_count(self._account, "pending")
            tx = await fn.build_transaction(
                {
                    "from": self._account,
                    "nonce": nonce,
                    "chainId": self.chain_id,
                    "value": call.value,
                }
            )
            signed = self._signer.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(str(e)) from e

        hex_hash = Web3.to_hex(tx_hash)
        logger.info("Submitted %s on %s: %s", call.function, call.address, hex_hash)
        return hex_hash

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        """Poll until the transaction is mined. There is no client-side timeout."""
        w3 = self._web3(self.current_rpc_index)
        while True:
            try:
                receipt = await w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except Exception as e:
                logger.warning("Receipt poll for %s failed: %s", tx_hash, e)
                receipt = None

            if receipt is not None:
                return TxReceipt(
                    tx_hash=tx_hash,
                    status=int(receipt["status"]),
                    block_number=int(receipt.get("blockNumber", 0) or 0),
                )
            await asyncio.sleep(self.poll_interval)


def _checksum(value: Any) -> Any:
    """Checksum every address string inside an argument, struct members included."""
    if isinstance(value, str) and value.startswith("0x") and len(value) == 42:
        return Web3.to_checksum_address(value)
    if isinstance(value, dict):
        return {k: _checksum(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_checksum(v) for v in value)
    return value
