"""Build reviewable action requests from pool, position and wallet state."""
from __future__ import annotations

import logging

from ..chains.evm.abis import ERC20_ABI, LENDING_POOL_ABI
from ..context import ClientContext
from ..fixed_point import assets_to_shares
from ..models import ContractCall, PoolSnapshot, Position
from ..risk import position_max_borrowable
from .transactions import ActionKind, ActionRequest, AmountLimit, Precondition

logger = logging.getLogger(__name__)

DEFAULT_SWAP_FEE_TIER = 3000


class ActionBuilder:
    """Turn a user intent into an :class:`ActionRequest` with its limits attached."""

    def __init__(self, context: ClientContext, swap_fee_tier: int = DEFAULT_SWAP_FEE_TIER) -> None:
        self._context = context
        self.swap_fee_tier = swap_fee_tier

    @property
    def account(self) -> str:
        return self._context.account

    async def wallet_balance(self, token: str) -> int:
        balance = await self._context.reader.read_contract(
            token, ERC20_ABI, "balanceOf", (self.account,)
        )
        return int(balance)

    def _call(self, pool: PoolSnapshot, function: str, *args) -> ContractCall:
        return ContractCall(
            address=pool.pool_address, abi=LENDING_POOL_ABI, function=function, args=args
        )

    async def supply(self, pool: PoolSnapshot, amount: int) -> ActionRequest:
        token = pool.borrow_token
        balance = await self.wallet_balance(token.address)
        return ActionRequest(
            action=ActionKind.SUPPLY,
            pool_address=pool.pool_address,
            amount=amount,
            call=self._call(pool, "supplyLiquidity", self.account, amount),
            approval_token=token.address,
            limits=(AmountLimit(balance, f"Insufficient {token.symbol} balance"),),
        )

    def withdraw(self, pool: PoolSnapshot, position: Position, shares: int) -> ActionRequest:
        """Withdraw liquidity. ``shares`` is denominated in pool shares, not assets."""
        return ActionRequest(
            action=ActionKind.WITHDRAW,
            pool_address=pool.pool_address,
            amount=shares,
            call=self._call(pool, "withdrawLiquidity", shares),
            approval_token=pool.shares_token,
            limits=(AmountLimit(position.deposit_shares, "Exceeds deposited shares"),),
        )

    async def supply_collateral(self, pool: PoolSnapshot, amount: int) -> ActionRequest:
        token = pool.collateral_token
        balance = await self.wallet_balance(token.address)
        return ActionRequest(
            action=ActionKind.SUPPLY_COLLATERAL,
            pool_address=pool.pool_address,
            amount=amount,
            call=self._call(pool, "supplyCollateral", self.account, amount),
            approval_token=token.address,
            limits=(AmountLimit(balance, f"Insufficient {token.symbol} balance"),),
        )

    def withdraw_collateral(self, pool: PoolSnapshot, position: Position, amount: int) -> ActionRequest:
        held = position.collateral_balance(pool.collateral_token.address)
        return ActionRequest(
            action=ActionKind.WITHDRAW_COLLATERAL,
            pool_address=pool.pool_address,
            amount=amount,
            call=self._call(pool, "withdrawCollateral", amount),
            limits=(AmountLimit(held, "Exceeds collateral balance"),),
        )

    def borrow(self, pool: PoolSnapshot, position: Position, amount: int) -> ActionRequest:
        """Borrow against the position's collateral.

        Checked in order: pool liquidity, remaining capacity, then that a
        position with collateral exists at all. Capacity is only checked
        once there is collateral to borrow against.
        """
        has_collateral = position.has_position and bool(position.collaterals)
        capacity = position_max_borrowable(position)
        limits = [AmountLimit(pool.liquidity, "Insufficient liquidity in pool")]
        if has_collateral:
            limits.append(AmountLimit(capacity, "Exceeds maximum borrowable amount"))
        logger.debug(
            "Borrow %d from %s: liquidity=%d capacity=%d", amount, pool.pool_address, pool.liquidity, capacity
        )
        return ActionRequest(
            action=ActionKind.BORROW,
            pool_address=pool.pool_address,
            amount=amount,
            call=self._call(pool, "borrowDebt", amount),
            limits=tuple(limits),
            preconditions=(Precondition(has_collateral, "Supply collateral first"),),
        )

    async def repay(self, pool: PoolSnapshot, position: Position, amount: int) -> ActionRequest:
        """Repay debt from the wallet with the borrow token.

        The contract takes borrow shares. Repaying the full debt sends the
        position's exact share balance so no dust is left behind.
        """
        token = pool.borrow_token
        balance = await self.wallet_balance(token.address)
        if amount >= position.borrow_amount:
            shares = position.borrow_shares
        else:
            shares = assets_to_shares(amount, pool.total_borrow_shares, pool.total_borrow_assets)

        params = {
            "user": self.account,
            "token": token.address,
            "shares": shares,
            "amountOutMinimum": 0,
            "fromPosition": False,
            "fee": self.swap_fee_tier,
        }
        return ActionRequest(
            action=ActionKind.REPAY,
            pool_address=pool.pool_address,
            amount=amount,
            call=self._call(pool, "repayWithSelectedToken", params),
            approval_token=token.address,
            limits=(
                AmountLimit(position.borrow_amount, "Exceeds outstanding debt"),
                AmountLimit(balance, f"Insufficient {token.symbol} balance"),
            ),
            preconditions=(Precondition(shares > 0, "Amount too small to repay"),),
        )

    def swap_collateral(
        self,
        pool: PoolSnapshot,
        position: Position,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int = 0,
    ) -> ActionRequest:
        """Swap collateral held by the position contract. No approval is needed."""
        params = {
            "tokenIn": token_in,
            "tokenOut": token_out,
            "amountIn": amount_in,
            "amountOutMinimum": min_amount_out,
            "fee": self.swap_fee_tier,
        }
        return ActionRequest(
            action=ActionKind.SWAP_COLLATERAL,
            pool_address=pool.pool_address,
            amount=amount_in,
            call=self._call(pool, "swapTokenByPosition", params),
            limits=(AmountLimit(position.collateral_balance(token_in), "Exceeds collateral balance"),),
            preconditions=(
                Precondition(position.has_position, "No position in this pool"),
                Precondition(token_in.lower() != token_out.lower(), "Select two different tokens"),
            ),
        )
