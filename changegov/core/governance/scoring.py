"""Derived impact scores for change requests.

Scores are 0-100 proxies built from the impact analysis (cost, days) and the
number of linked work items. They are advisory only and recomputed
best-effort after governance transitions.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from changegov.db.base import utcnow
from changegov.db.models import ChangeRequest

# Per linked item weights
WBS_ITEM_EFFORT = 25
WBS_ITEM_SCOPE = 12
SCHEDULE_ITEM_WEIGHT = 18

# Blend of the overall score
SCHEDULE_WEIGHT = 0.40
COST_WEIGHT = 0.35
SCOPE_WEIGHT = 0.25


@dataclass(frozen=True)
class ChangeScores:
    ai_cost: int
    ai_schedule: int
    ai_scope: int
    ai_score: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "ai_cost": self.ai_cost,
            "ai_schedule": self.ai_schedule,
            "ai_scope": self.ai_scope,
            "ai_score": self.ai_score,
        }


def _round(value: float) -> int:
    # Half-up, so 0.5 steps do not flip between even neighbours
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: int = 0, high: int = 100) -> int:
    if not math.isfinite(value):
        value = 0
    return int(max(low, min(high, value)))


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _ids(links: Dict[str, Any], key: str) -> List[str]:
    values = links.get(key)
    if not isinstance(values, list):
        return []
    return [str(v) for v in values if v is not None and str(v).strip()]


def compute_change_scores(
    impact_analysis: Optional[Dict[str, Any]],
    links: Optional[Dict[str, Any]],
) -> ChangeScores:
    """Compute cost, schedule, scope and overall scores for a change request."""
    impact = impact_analysis if isinstance(impact_analysis, dict) else {}
    link_map = links if isinstance(links, dict) else {}

    wbs_count = len(_ids(link_map, "wbs_ids"))
    schedule_count = len(_ids(link_map, "schedule_ids"))

    linked_scope = _clamp(wbs_count * WBS_ITEM_SCOPE)
    linked_cost = _clamp(_round(wbs_count * WBS_ITEM_EFFORT / 2))
    linked_schedule = _clamp(_round(schedule_count * SCHEDULE_ITEM_WEIGHT / 1.6))

    cost = _number(impact.get("cost"))
    days = _number(impact.get("days"))
    cost_boost = _clamp(_round(math.log10(cost + 10) * 18)) if cost > 0 else 0
    schedule_boost = _clamp(_round(abs(days) * 6)) if days != 0 else 0

    ai_cost = _clamp(_round(linked_cost * 0.75 + cost_boost * 0.25))
    ai_schedule = _clamp(_round(linked_schedule * 0.75 + schedule_boost * 0.25))
    ai_scope = linked_scope
    ai_score = _clamp(_round(
        ai_schedule * SCHEDULE_WEIGHT + ai_cost * COST_WEIGHT + ai_scope * SCOPE_WEIGHT
    ))

    return ChangeScores(ai_cost=ai_cost, ai_schedule=ai_schedule, ai_scope=ai_scope, ai_score=ai_score)


def refresh_change_scores(db: Session, change: ChangeRequest) -> ChangeScores:
    """Recompute and store derived scores. Does not touch the version token."""
    scores = compute_change_scores(change.impact_analysis, change.links)
    try:
        db.execute(
            update(ChangeRequest)
            .where(ChangeRequest.id == change.id)
            .values(**scores.as_dict(), ai_computed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return scores
