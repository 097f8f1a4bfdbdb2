"""Tests for ChangeRequest.amount extraction."""

import pytest

from changegov.db.models import ChangeRequest


def _change(**fields) -> ChangeRequest:
    return ChangeRequest(title="Amount check", **fields)


class TestChangeAmount:

    def test_impact_cost_wins(self):
        change = _change(impact_analysis={"cost": "7500.50"}, estimated_cost=100, budget_delta=200)
        assert change.amount == 7500.5

    def test_falls_back_to_estimated_cost(self):
        assert _change(impact_analysis={"days": 3}, estimated_cost=1200).amount == 1200

    def test_falls_back_to_budget_delta(self):
        assert _change(budget_delta=-250).amount == -250

    @pytest.mark.parametrize("impact", [None, {}, {"cost": "n/a"}, {"cost": float("nan")}, {"cost": True}, "oops"])
    def test_defaults_to_zero(self, impact):
        assert _change(impact_analysis=impact).amount == 0
