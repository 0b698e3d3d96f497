"""ABI fragments for the contracts the dashboard reads from and writes to."""
from __future__ import annotations

from typing import Any


def _view(name: str, inputs: list[tuple[str, str]], outputs: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


def _write(name: str, inputs: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "nonpayable",
        "inputs": inputs,
        "outputs": [],
    }


def _arg(name: str, type_: str) -> dict[str, Any]:
    return {"name": name, "type": type_}


LENDING_POOL_ABI: tuple[dict[str, Any], ...] = (
    _view("router", [], [("", "address")]),
    _write("supplyLiquidity", [_arg("_user", "address"), _arg("_amount", "uint256")]),
    _write("withdrawLiquidity", [_arg("_shares", "uint256")]),
    _write("supplyCollateral", [_arg("_user", "address"), _arg("_amount", "uint256")]),
    _write("withdrawCollateral", [_arg("_amount", "uint256")]),
    _write("borrowDebt", [_arg("_amount", "uint256")]),
    _write(
        "repayWithSelectedToken",
        [
            {
                "name": "_params",
                "type": "tuple",
                "components": [
                    _arg("user", "address"),
                    _arg("token", "address"),
                    _arg("shares", "uint256"),
                    _arg("amountOutMinimum", "uint256"),
                    _arg("fromPosition", "bool"),
                    _arg("fee", "uint24"),
                ],
            }
        ],
    ),
    _write(
        "swapTokenByPosition",
        [
            {
                "name": "_params",
                "type": "tuple",
                "components": [
                    _arg("tokenIn", "address"),
                    _arg("tokenOut", "address"),
                    _arg("amountIn", "uint256"),
                    _arg("amountOutMinimum", "uint256"),
                    _arg("fee", "uint24"),
                ],
            }
        ],
    ),
)

LENDING_POOL_ROUTER_ABI: tuple[dict[str, Any], ...] = (
    _view("borrowToken", [], [("", "address")]),
    _view("collateralToken", [], [("", "address")]),
    _view("sharesToken", [], [("", "address")]),
    _view("totalSupplyAssets", [], [("", "uint256")]),
    _view("totalBorrowAssets", [], [("", "uint256")]),
    _view("totalBorrowShares", [], [("", "uint256")]),
    _view("ltv", [], [("", "uint256")]),
    _view("factory", [], [("", "address")]),
    _view("addressPositions", [("_user", "address")], [("", "address")]),
    _view("userBorrowShares", [("_user", "address")], [("", "uint256")]),
)

LENDING_POOL_FACTORY_ABI: tuple[dict[str, Any], ...] = (
    _view("interestRateModel", [], [("", "address")]),
    _view("tokenDataStream", [], [("", "address")]),
)

INTEREST_RATE_MODEL_ABI: tuple[dict[str, Any], ...] = (
    _view(
        "calculateBorrowRate",
        [("_router", "address"), ("_totalSupply", "uint256"), ("_totalBorrow", "uint256")],
        [("", "uint256")],
    ),
    _view("tokenReserveFactor", [("_router", "address")], [("", "uint256")]),
)

TOKEN_DATA_STREAM_ABI: tuple[dict[str, Any], ...] = (
    _view("decimals", [("_token", "address")], [("", "uint256")]),
    _view(
        "latestRoundData",
        [("_token", "address")],
        [
            ("roundId", "uint80"),
            ("price", "uint256"),
            ("startedAt", "uint256"),
            ("updatedAt", "uint256"),
            ("answeredInRound", "uint80"),
        ],
    ),
)

ERC20_ABI: tuple[dict[str, Any], ...] = (
    _view("symbol", [], [("", "string")]),
    _view("name", [], [("", "string")]),
    _view("decimals", [], [("", "uint8")]),
    _view("totalSupply", [], [("", "uint256")]),
    _view("balanceOf", [("account", "address")], [("", "uint256")]),
    _view("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")]),
    _write("approve", [_arg("spender", "address"), _arg("amount", "uint256")]),
)

MAX_UINT256 = 2**256 - 1
