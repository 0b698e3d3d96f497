"""Transaction orchestrator: allowance check → approval → action → confirmation."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable

from ..chains.evm.abis import ERC20_ABI, MAX_UINT256
from ..context import ClientContext
from ..errors import FlowStateError, TransactionReverted
from ..models import ContractCall

logger = logging.getLogger(__name__)


class FlowPhase(str, Enum):
    IDLE = "idle"
    REVIEWING = "reviewing"
    APPROVING = "approving"
    EXECUTING = "executing"
    SUCCESS = "success"
    ERROR = "error"


class ActionKind(str, Enum):
    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    SUPPLY_COLLATERAL = "supply-collateral"
    WITHDRAW_COLLATERAL = "withdraw-collateral"
    BORROW = "borrow"
    REPAY = "repay"
    SWAP_COLLATERAL = "swap-collateral"


@dataclass(frozen=True)
class AmountLimit:
    """Upper bound on the requested amount, with the message shown when exceeded."""

    maximum: int
    message: str


@dataclass(frozen=True)
class Precondition:
    satisfied: bool
    message: str


@dataclass(frozen=True)
class ActionRequest:
    """One user action, ready for review."""

    action: ActionKind
    pool_address: str
    amount: int
    call: ContractCall
    approval_token: str | None = None
    limits: tuple[AmountLimit, ...] = ()
    preconditions: tuple[Precondition, ...] = ()

    @property
    def spender(self) -> str:
        return self.pool_address


@dataclass(frozen=True)
class TransactionFlow:
    """Immutable state of one multi-step action."""

    action: ActionKind
    phase: FlowPhase = FlowPhase.IDLE
    request: ActionRequest | None = None
    approval_hash: str | None = None
    action_hash: str | None = None
    needs_approval: bool = False
    approval_confirmed: bool = False
    error: str | None = None
    validation_error: str | None = None

    @property
    def in_flight(self) -> bool:
        return self.phase in (FlowPhase.APPROVING, FlowPhase.EXECUTING)


CANCELLABLE_PHASES = frozenset({FlowPhase.IDLE, FlowPhase.SUCCESS, FlowPhase.ERROR})

Listener = Callable[[TransactionFlow], None]
SuccessHook = Callable[[ActionRequest], Awaitable[None]]


def validate_request(request: ActionRequest) -> str | None:
    """Return the first client-side validation failure, or None."""
    if request.amount <= 0:
        return "Enter an amount greater than zero"
    for limit in request.limits:
        if request.amount > limit.maximum:
            return limit.message
    for condition in request.preconditions:
        if not condition.satisfied:
            return condition.message
    return None


def first_line(error: BaseException) -> str:
    text = str(error).strip()
    return text.split("\n")[0] if text else type(error).__name__


class TransactionOrchestrator:
    """Drive one action slot through its transaction lifecycle.

    Commands: :meth:`review`, :meth:`submit`, :meth:`retry`, :meth:`cancel`.
    The current state is exposed read-only through :attr:`flow`.
    """

    def __init__(
        self,
        context: ClientContext,
        action: ActionKind,
        on_success: SuccessHook | None = None,
    ) -> None:
        self._context = context
        self._flow = TransactionFlow(action=action)
        self._on_success = on_success
        self._listeners: list[Listener] = []
        self._busy = False

    @property
    def flow(self) -> TransactionFlow:
        return self._flow

    @property
    def busy(self) -> bool:
        """True from the allowance check until the flow settles."""
        return self._busy

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _transition(self, **changes) -> None:
        previous = self._flow.phase
        self._flow = replace(self._flow, **changes)
        if self._flow.phase != previous:
            logger.info("%s: %s → %s", self._flow.action.value, previous.value, self._flow.phase.value)
        for listener in self._listeners:
            try:
                listener(self._flow)
            except Exception as e:
                logger.error("Flow listener failed: %s", e)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def review(self, request: ActionRequest) -> TransactionFlow:
        """idle/reviewing → reviewing, or back to idle with a validation error.

        A rejected request also drops any previously reviewed one, so a
        later :meth:`submit` can never send an amount the user replaced.
        """
        if self._busy:
            raise FlowStateError(f"Cannot review while {self._flow.action.value} is being submitted")
        if self._flow.phase not in (FlowPhase.IDLE, FlowPhase.REVIEWING):
            raise FlowStateError(f"Cannot review while {self._flow.phase.value}")
        if request.action != self._flow.action:
            raise FlowStateError(
                f"Request for {request.action.value} sent to the {self._flow.action.value} slot"
            )

        problem = validate_request(request)
        if problem:
            logger.info("%s rejected: %s", request.action.value, problem)
            self._transition(phase=FlowPhase.IDLE, request=None, validation_error=problem)
            return self._flow

        self._transition(
            phase=FlowPhase.REVIEWING,
            request=request,
            validation_error=None,
            error=None,
            approval_hash=None,
            action_hash=None,
            needs_approval=False,
            approval_confirmed=False,
        )
        return self._flow

    async def submit(self) -> TransactionFlow:
        """Run the reviewed request to success or error."""
        if self._busy or self._flow.phase != FlowPhase.REVIEWING:
            raise FlowStateError(f"Cannot submit while {self._flow.phase.value}")
        return await self._run()

    async def retry(self) -> TransactionFlow:
        """error → reviewing, then resume from the allowance check."""
        if self._busy or self._flow.phase != FlowPhase.ERROR:
            raise FlowStateError(f"Cannot retry while {self._flow.phase.value}")
        self._transition(phase=FlowPhase.REVIEWING, error=None, action_hash=None)
        return await self._run()

    def cancel(self) -> TransactionFlow:
        """Back to idle. Only allowed from idle, success or error."""
        if self._busy or self._flow.phase not in CANCELLABLE_PHASES:
            raise FlowStateError(f"Cannot cancel while {self._flow.phase.value}")
        self._transition(
            phase=FlowPhase.IDLE,
            request=None,
            approval_hash=None,
            action_hash=None,
            needs_approval=False,
            approval_confirmed=False,
            error=None,
            validation_error=None,
        )
        return self._flow

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _needs_approval(self, request: ActionRequest) -> bool:
        if request.approval_token is None or self._flow.approval_confirmed:
            return False
        allowance = await self._context.reader.read_contract(
            request.approval_token,
            ERC20_ABI,
            "allowance",
            (self._context.account, request.spender),
        )
        return int(allowance) < request.amount

    async def _approve(self, request: ActionRequest) -> None:
        wallet = self._context.require_wallet()
        self._transition(phase=FlowPhase.APPROVING, needs_approval=True)
        approve = ContractCall(
            address=request.approval_token,
            abi=ERC20_ABI,
            function="approve",
            args=(request.spender, MAX_UINT256),
        )
        tx_hash = await wallet.send_transaction(approve)
        self._transition(approval_hash=tx_hash)

        # The action must not be sent before the approval is mined.
        receipt = await wallet.wait_for_receipt(tx_hash)
        if not receipt.succeeded:
            raise TransactionReverted(tx_hash)
        self._transition(approval_confirmed=True)

    async def _execute(self, request: ActionRequest) -> None:
        wallet = self._context.require_wallet()
        self._transition(phase=FlowPhase.EXECUTING)
        tx_hash = await wallet.send_transaction(request.call)
        self._transition(action_hash=tx_hash)

        receipt = await wallet.wait_for_receipt(tx_hash)
        if not receipt.succeeded:
            raise TransactionReverted(tx_hash)

    async def _run(self) -> TransactionFlow:
        request = self._flow.request
        if request is None:
            raise FlowStateError("No reviewed request to submit")

        self._busy = True
        try:
            try:
                if await self._needs_approval(request):
                    await self._approve(request)
                await self._execute(request)
            except Exception as e:
                message = first_line(e)
                logger.error("%s failed: %s", request.action.value, message)
                self._transition(phase=FlowPhase.ERROR, error=message)
                return self._flow

            self._transition(phase=FlowPhase.SUCCESS)
        finally:
            self._busy = False

        if self._on_success is not None:
            try:
                await self._on_success(request)
            except Exception as e:
                logger.error("Refresh after %s failed: %s", request.action.value, e)
        return self._flow
