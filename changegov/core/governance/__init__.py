"""Change request governance: decision/lane states, errors and side-effect outcomes.

The DecisionEngine itself lives in ``changegov.core.governance.engine``.
"""

from .states import (
    DecisionStatus,
    Lane,
    LaneRule,
    LANE_RULES,
    ALLOWED_LANE_MOVES,
    DELIVERY_ORDER,
    can_move_lane,
    parse_decision,
    parse_decision_outcome,
    parse_lane,
    governance_fields_in,
)
from .errors import (
    GovernanceError,
    InvalidInputError,
    PermissionDeniedError,
    NotFoundError,
    GovernanceConflictError,
    ConcurrencyConflictError,
    ConfigurationError,
)
from .outcome import Outcome, SideEffectWarning

__all__ = [
    "DecisionStatus",
    "Lane",
    "LaneRule",
    "LANE_RULES",
    "ALLOWED_LANE_MOVES",
    "DELIVERY_ORDER",
    "can_move_lane",
    "parse_decision",
    "parse_decision_outcome",
    "parse_lane",
    "governance_fields_in",
    "GovernanceError",
    "InvalidInputError",
    "PermissionDeniedError",
    "NotFoundError",
    "GovernanceConflictError",
    "ConcurrencyConflictError",
    "ConfigurationError",
    "Outcome",
    "SideEffectWarning",
]
