"""Governance: approval gate, strategies and persisted decisions."""

from .approval import (
    APPROVED_STATES,
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalResponse,
    ApprovalScope,
    ApprovalState,
    ApprovalStrategy,
    CallbackApprovalStrategy,
    DenyAllStrategy,
    PendingApprovalStrategy,
    PolicyApprovalStrategy,
)
from .gate import ApprovalGate
from .store import (
    AutoApprovedTool,
    DecisionStore,
    InMemoryDecisionStore,
    RedisDecisionStore,
    create_decision_store,
)

__all__ = [
    # Gate
    "ApprovalGate",
    # Models
    "ApprovalScope",
    "ApprovalState",
    "APPROVED_STATES",
    "ApprovalRequest",
    "ApprovalResponse",
    "ApprovalOutcome",
    # Strategies
    "ApprovalStrategy",
    "CallbackApprovalStrategy",
    "DenyAllStrategy",
    "PendingApprovalStrategy",
    "PolicyApprovalStrategy",
    # Stores
    "AutoApprovedTool",
    "DecisionStore",
    "InMemoryDecisionStore",
    "RedisDecisionStore",
    "create_decision_store",
]
