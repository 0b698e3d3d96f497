"""Service modules"""
from .dashboard import Dashboard
from .pool_service import PoolSnapshotReader
from .position_service import PositionAggregator
from .transactions import ActionKind, FlowPhase, TransactionOrchestrator

__all__ = [
    "Dashboard",
    "PoolSnapshotReader",
    "PositionAggregator",
    "ActionKind",
    "FlowPhase",
    "TransactionOrchestrator",
]
