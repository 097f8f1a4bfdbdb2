"""Decision and delivery-lane states for change requests.

A change request moves on two axes. The decision axis records governance
approval; the delivery lane records where the work sits operationally.

Decision axis:

    ┌───────┐ submit ┌───────────┐ decide ┌──────────┐
    │ DRAFT │───────►│ SUBMITTED │───────►│ APPROVED │
    └───────┘        └─────┬─────┘        └──────────┘
        ▲                  │              ┌──────────┐
        │ submit           ├─────────────►│ REJECTED │
    ┌───┴────┐             │              └──────────┘
    │ REWORK │◄────────────┘ rework / request changes
    └────────┘

Delivery lanes:

    INTAKE ◄─► ANALYSIS ──► REVIEW ◄─► IN_PROGRESS ◄─► IMPLEMENTED ◄─► CLOSED

Manual lane moves are checked against LANE_RULES via can_move_lane().
Governance operations (submit, decide) apply the fixed lane effects in
SUBMIT_LANES and DECISION_LANE_EFFECTS instead.
"""

import re
from enum import Enum
from typing import Dict, FrozenSet, Iterable, NamedTuple, Optional, Set, Tuple, Union


class DecisionStatus(str, Enum):
    """Governance decision state of a change request."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REWORK = "rework"


class Lane(str, Enum):
    """Delivery lane of a change request."""

    INTAKE = "intake"
    ANALYSIS = "analysis"
    REVIEW = "review"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    CLOSED = "closed"


class LaneRule(NamedTuple):
    """A legal manual lane move for a decision state."""
    decision: DecisionStatus
    from_lane: Lane
    to_lane: Lane


# Delivery order once a change is approved
DELIVERY_ORDER: Tuple[Lane, ...] = (
    Lane.REVIEW,
    Lane.IN_PROGRESS,
    Lane.IMPLEMENTED,
    Lane.CLOSED,
)


def _build_lane_rules() -> list[LaneRule]:
    rules: list[LaneRule] = []
    for decision in (DecisionStatus.DRAFT, DecisionStatus.REWORK):
        rules.append(LaneRule(decision, Lane.INTAKE, Lane.ANALYSIS))
        rules.append(LaneRule(decision, Lane.ANALYSIS, Lane.INTAKE))

    rules.append(LaneRule(DecisionStatus.APPROVED, Lane.ANALYSIS, Lane.REVIEW))
    for current, following in zip(DELIVERY_ORDER, DELIVERY_ORDER[1:]):
        rules.append(LaneRule(DecisionStatus.APPROVED, current, following))
        rules.append(LaneRule(DecisionStatus.APPROVED, following, current))

    # SUBMITTED and REJECTED have no manual moves
    return rules


LANE_RULES: list[LaneRule] = _build_lane_rules()

# Lookup table: decision -> allowed (from, to) pairs
ALLOWED_LANE_MOVES: Dict[DecisionStatus, FrozenSet[Tuple[Lane, Lane]]] = {
    decision: frozenset(
        (rule.from_lane, rule.to_lane) for rule in LANE_RULES if rule.decision is decision
    )
    for decision in DecisionStatus
}

# Decision states from which submit is allowed
SUBMITTABLE_STATES: Set[DecisionStatus] = {
    DecisionStatus.DRAFT,
    DecisionStatus.REWORK,
}

# Outcomes a decider may record
DECISION_OUTCOMES: Set[DecisionStatus] = {
    DecisionStatus.APPROVED,
    DecisionStatus.REJECTED,
    DecisionStatus.REWORK,
}

# Lane effects of governance operations
SUBMIT_LANES: Tuple[Lane, Lane] = (Lane.ANALYSIS, Lane.REVIEW)
DECISION_LANE_EFFECTS: Dict[DecisionStatus, Lane] = {
    DecisionStatus.APPROVED: Lane.IN_PROGRESS,
    DecisionStatus.REJECTED: Lane.ANALYSIS,
    DecisionStatus.REWORK: Lane.ANALYSIS,
}

# Lanes from which a draft may be deleted
DELETABLE_LANES: Set[Lane] = {Lane.INTAKE, Lane.ANALYSIS}

LANE_ALIASES: Dict[str, Lane] = {
    "in-progress": Lane.IN_PROGRESS,
    "in progress": Lane.IN_PROGRESS,
    "inprogress": Lane.IN_PROGRESS,
    "new": Lane.INTAKE,
}


def _clean(raw: object) -> str:
    if raw is None:
        return ""
    if isinstance(raw, Enum):
        raw = raw.value
    return str(raw).strip().lower()


def parse_decision(raw: object) -> DecisionStatus:
    """Normalize an external decision value. Empty or unknown values read as DRAFT."""
    value = _clean(raw)
    try:
        return DecisionStatus(value)
    except ValueError:
        return DecisionStatus.DRAFT


def parse_decision_outcome(raw: object) -> Optional[DecisionStatus]:
    """Normalize a requested decision outcome; None if it is not one."""
    value = _clean(raw)
    if value in ("approve", "approved"):
        return DecisionStatus.APPROVED
    if value in ("reject", "rejected"):
        return DecisionStatus.REJECTED
    if value in ("rework", "changes_requested", "request_changes"):
        return DecisionStatus.REWORK
    return None


def parse_lane(raw: object) -> Optional[Lane]:
    """Normalize an external lane value, resolving aliases. None if unknown."""
    value = _clean(raw)
    if not value:
        return None
    if value in LANE_ALIASES:
        return LANE_ALIASES[value]
    try:
        return Lane(value.replace("-", "_").replace(" ", "_"))
    except ValueError:
        return None


def can_move_lane(
    decision: Union[DecisionStatus, str, None],
    from_lane: Union[Lane, str, None],
    to_lane: Union[Lane, str, None],
) -> bool:
    """Check whether a manual lane move is legal for the given decision state.

    Moving to the same lane, or to no lane at all, is always a legal no-op.
    """
    target_name = _clean(to_lane)
    if not target_name or target_name == _clean(from_lane):
        return True

    target = parse_lane(to_lane)
    source = parse_lane(from_lane)
    if target is None:
        return False
    if source is target:
        return True
    if source is None:
        return False

    return (source, target) in ALLOWED_LANE_MOVES[parse_decision(decision)]


# Fields owned by governance operations; rejected on plain edit paths
GOVERNANCE_FIELDS: Set[str] = {
    "status",
    "decision_status",
    "delivery_status",
    "approval_chain_id",
}
GOVERNANCE_PREFIXES: Tuple[str, ...] = ("decision_", "approved_", "rejected_")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def governance_fields_in(keys: Iterable[str], *, allow: Iterable[str] = ()) -> list[str]:
    """Return the keys that name governance fields, in snake or camel case.

    Args:
        keys: Payload keys to inspect
        allow: Snake-case field names the caller is permitted to send
    """
    allowed = set(allow)
    found = []
    for key in keys:
        name = _snake(str(key))
        if name in allowed:
            continue
        if name in GOVERNANCE_FIELDS or name.startswith(GOVERNANCE_PREFIXES):
            found.append(key)
    return found
