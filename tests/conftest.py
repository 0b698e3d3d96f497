"""Shared test fixtures, an in-memory chain and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest

from isolend.config import (
    AppConfig,
    ChainConfig,
    DashboardConfig,
    IndexerConfig,
    ProtocolConfig,
    ThresholdsConfig,
    WalletConfig,
)
from isolend.context import ClientContext
from isolend.errors import SubmissionError
from isolend.models import ContractCall, IndexedSnapshot, Price, TokenInfo, TxReceipt

# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

POOL = "0x1000000000000000000000000000000000000001"
ROUTER = "0x2000000000000000000000000000000000000002"
FACTORY = "0x3000000000000000000000000000000000000003"
IRM = "0x4000000000000000000000000000000000000004"
ORACLE = "0x5000000000000000000000000000000000000005"
SHARES = "0x6000000000000000000000000000000000000006"
USDC = "0x7000000000000000000000000000000000000007"
WETH = "0x8000000000000000000000000000000000000008"
WBTC = "0x9000000000000000000000000000000000000009"
ACCOUNT = "0xa00000000000000000000000000000000000000a"
POSITION = "0xb00000000000000000000000000000000000000b"
SECOND_POOL = "0xc00000000000000000000000000000000000000c"
SECOND_ROUTER = "0xd00000000000000000000000000000000000000d"
ZERO = "0x0000000000000000000000000000000000000000"

WAD = 10**18

# ---------------------------------------------------------------------------
# In-memory chain
# ---------------------------------------------------------------------------


def _norm(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, (list, tuple)):
        return tuple(_norm(v) for v in value)
    return value


class FakeChain:
    """ChainReader answering from a table keyed by (address, function, args)."""

    def __init__(self) -> None:
        self.values: dict[tuple, Any] = {}
        self.calls: list[tuple[str, str, tuple]] = []

    def set(self, address: str, function: str, value: Any, *args: Any) -> None:
        self.values[(address.lower(), function, _norm(args))] = value

    async def read_contract(self, address, abi, function, args=()):
        self.calls.append((address, function, tuple(args)))
        key = (address.lower(), function, _norm(tuple(args)))
        if key not in self.values:
            raise RuntimeError(f"All RPC endpoints failed. Last error: no data for {function}{tuple(args)}")
        value = self.values[key]
        if isinstance(value, Exception):
            raise value
        return value

    def count(self, function: str) -> int:
        return sum(1 for _, fn, _ in self.calls if fn == function)


class FakeWallet:
    """WalletClient recording every submission and receipt wait in order."""

    def __init__(self, account: str = ACCOUNT) -> None:
        self._account = account
        self.sent: list[ContractCall] = []
        self.log: list[tuple[str, str]] = []
        self.fail_next: dict[str, Exception] = {}
        self.reverted: set[str] = set()

    @property
    def account(self) -> str:
        return self._account

    async def send_transaction(self, call: ContractCall) -> str:
        self.log.append(("send", call.function))
        error = self.fail_next.pop(call.function, None)
        if error is not None:
            raise error
        self.sent.append(call)
        return f"0x{len(self.sent):064x}"

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        self.log.append(("receipt", tx_hash))
        return TxReceipt(tx_hash=tx_hash, status=0 if tx_hash in self.reverted else 1, block_number=1)


def rejected(message: str = "User rejected the request.") -> SubmissionError:
    return SubmissionError(f"{message}\nRequest Arguments: from 0xa000...")


# ---------------------------------------------------------------------------
# Chain state fixtures
# ---------------------------------------------------------------------------


def stage_pool(
    chain: FakeChain,
    total_supply: int = 1_000_000 * 10**6,
    total_borrow: int = 500_000 * 10**6,
    borrow_rate: int = WAD // 10,
    reserve_factor: int = WAD // 10,
    ltv: int = 75 * 10**16,
    usdc_price: int | None = 10**8,
    weth_price: int | None = 3000 * 10**8,
) -> None:
    """One USDC pool with WETH collateral: 1M supplied, 500K borrowed, 10% borrow rate."""
    chain.set(POOL, "router", ROUTER)
    for fn, value in {
        "borrowToken": USDC,
        "collateralToken": WETH,
        "totalSupplyAssets": total_supply,
        "totalBorrowAssets": total_borrow,
        "totalBorrowShares": total_borrow,
        "sharesToken": SHARES,
        "ltv": ltv,
        "factory": FACTORY,
    }.items():
        chain.set(ROUTER, fn, value)

    for token, symbol, name, decimals in (
        (USDC, "USDC", "USD Coin", 6),
        (WETH, "WETH", "Wrapped Ether", 18),
        (WBTC, "WBTC", "Wrapped Bitcoin", 8),
    ):
        chain.set(token, "symbol", symbol)
        chain.set(token, "name", name)
        chain.set(token, "decimals", decimals)

    chain.set(SHARES, "totalSupply", 1_000_000 * WAD)
    chain.set(FACTORY, "interestRateModel", IRM)
    chain.set(FACTORY, "tokenDataStream", ORACLE)
    chain.set(IRM, "calculateBorrowRate", borrow_rate, ROUTER, total_supply, total_borrow)
    chain.set(IRM, "tokenReserveFactor", reserve_factor, ROUTER)

    for token, price in ((USDC, usdc_price), (WETH, weth_price), (WBTC, 60_000 * 10**8)):
        if price is not None:
            chain.set(ORACLE, "latestRoundData", (1, price, 0, 0, 1), token)
            chain.set(ORACLE, "decimals", 8, token)


def stage_second_pool(chain: FakeChain) -> None:
    """A second USDC/WETH pool with the same totals, sharing the factory and rate model."""
    chain.set(SECOND_POOL, "router", SECOND_ROUTER)
    for fn in (
        "borrowToken",
        "collateralToken",
        "totalSupplyAssets",
        "totalBorrowAssets",
        "totalBorrowShares",
        "sharesToken",
        "ltv",
        "factory",
    ):
        chain.set(SECOND_ROUTER, fn, chain.values[(ROUTER.lower(), fn, ())])
    chain.set(
        IRM,
        "calculateBorrowRate",
        WAD // 10,
        SECOND_ROUTER,
        1_000_000 * 10**6,
        500_000 * 10**6,
    )
    chain.set(IRM, "tokenReserveFactor", WAD // 10, SECOND_ROUTER)


def stage_account(
    chain: FakeChain,
    deposit_shares: int = 100_000 * WAD,
    borrow_shares: int = 200 * 10**6,
    collateral: int = 10 * WAD,
    has_position: bool = True,
    wallet_usdc: int = 5_000 * 10**6,
    wallet_weth: int = 2 * WAD,
) -> None:
    """ACCOUNT: 100K USDC deposited, 10 WETH collateral, 200 USDC borrowed."""
    chain.set(SHARES, "balanceOf", deposit_shares, ACCOUNT)
    chain.set(ROUTER, "addressPositions", POSITION if has_position else ZERO, ACCOUNT)
    chain.set(ROUTER, "userBorrowShares", borrow_shares if has_position else 0, ACCOUNT)
    chain.set(WETH, "balanceOf", collateral, POSITION)
    chain.set(WBTC, "balanceOf", 0, POSITION)
    chain.set(USDC, "balanceOf", wallet_usdc, ACCOUNT)
    chain.set(WETH, "balanceOf", wallet_weth, ACCOUNT)
    chain.set(USDC, "allowance", 0, ACCOUNT, POOL)
    chain.set(WETH, "allowance", 0, ACCOUNT, POOL)
    chain.set(SHARES, "allowance", 0, ACCOUNT, POOL)


@pytest.fixture()
def chain() -> FakeChain:
    fake = FakeChain()
    stage_pool(fake)
    stage_account(fake)
    return fake


@pytest.fixture()
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture()
def context(chain: FakeChain, wallet: FakeWallet) -> ClientContext:
    return ClientContext(reader=chain, wallet=wallet, account=ACCOUNT)


@pytest.fixture()
def read_only_context(chain: FakeChain) -> ClientContext:
    return ClientContext(reader=chain, account=ACCOUNT)


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def usdc() -> TokenInfo:
    return TokenInfo(address=USDC, symbol="USDC", name="USD Coin", decimals=6)


@pytest.fixture()
def weth() -> TokenInfo:
    return TokenInfo(address=WETH, symbol="WETH", name="Wrapped Ether", decimals=18)


@pytest.fixture()
def usd_price() -> Price:
    return Price(10**8, 8)


@pytest.fixture()
def eth_price() -> Price:
    return Price(3000 * 10**8, 8)


def indexed_snapshot(timestamp: int, supply: int, borrow: int, collateral: int = 0) -> IndexedSnapshot:
    return IndexedSnapshot(
        timestamp=timestamp,
        lending_pool=POOL,
        router=ROUTER,
        total_supply_assets=supply,
        total_borrow_assets=borrow,
        total_collateral=collateral,
        supply_apr=WAD // 20,
        borrow_rate=WAD // 10,
    )


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        chain=ChainConfig(rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"), rpc_timeout=10),
        indexer=IndexerConfig(url="https://indexer.example.com/", timeout=5),
        protocol=ProtocolConfig(pool_addresses=(POOL,)),
        dashboard=DashboardConfig(poll_interval_seconds=5.0, thresholds=ThresholdsConfig()),
        wallet=WalletConfig(address=ACCOUNT),
    )


SAMPLE_YAML = textwrap.dedent("""\
    chain:
      rpc_endpoints: ["https://rpc.example.com", "https://rpc2.example.com"]
      rpc_timeout: 10
      chain_id: 421614
    indexer:
      url: "https://indexer.example.com/"
      timeout: 15
    protocol:
      pool_addresses: ["0x1000000000000000000000000000000000000001"]
      collateral_tokens:
        - symbol: WETH
          address: "0x8000000000000000000000000000000000000008"
          decimals: 18
        - symbol: WBTC
          address: "0x9000000000000000000000000000000000000009"
          decimals: 8
      stable_symbols: [USDC]
      swap_fee_tier: 500
    dashboard:
      poll_interval_seconds: 10
      thresholds:
        danger: 1.2
        at_risk: 1.6
    wallet:
      address: "0xa00000000000000000000000000000000000000a"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
