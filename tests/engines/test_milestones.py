"""
Tests for the negotiation-milestone tracker.

Covers:
- Threshold lookup
- First calculation, ties and regressions (no alerts)
- Forward transitions under both alert policies
- Threshold table validation
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from provisioning_engines.milestones import (
    MilestoneThreshold,
    MilestoneThresholds,
    build_alert_message,
    milestone_for,
    track_milestone,
)
from provisioning_kernel.domain.analysis import AlertType, MilestoneState
from provisioning_kernel.domain.values import AlertPolicy, Milestone
from provisioning_kernel.exceptions import MilestoneTableError


@pytest.fixture
def thresholds(reference_data) -> MilestoneThresholds:
    return reference_data.milestones


def _state(milestone: Milestone, pct: str) -> MilestoneState:
    return MilestoneState(contract_id="CTR-1", milestone=milestone, percentage=Decimal(pct))


class TestMilestoneFor:
    @pytest.mark.parametrize(
        "pct,milestone",
        [
            ("0", Milestone.INICIAL),
            ("29.99", Milestone.INICIAL),
            ("30", Milestone.FAVORAVEL),
            ("50", Milestone.MUITO_FAVORAVEL),
            ("69.9", Milestone.MUITO_FAVORAVEL),
            ("70", Milestone.OTIMO),
            ("90", Milestone.PREMIUM),
            ("99.99", Milestone.PREMIUM),
            ("100", Milestone.TOTAL),
        ],
    )
    def test_highest_threshold_reached(self, thresholds, pct, milestone):
        assert milestone_for(Decimal(pct), thresholds) is milestone

    def test_guidance_loaded_from_configuration(self, thresholds):
        assert "Premium" in thresholds.guidance_for(Milestone.PREMIUM)


class TestNoAlert:
    """Situations that never raise an alert."""

    def test_first_calculation(self, thresholds):
        evaluation = track_milestone("CTR-1", Decimal("95"), None, thresholds)

        assert evaluation.alerts == ()
        assert evaluation.is_first_calculation
        assert evaluation.recorded_milestone is Milestone.PREMIUM

    def test_tie(self, thresholds):
        evaluation = track_milestone(
            "CTR-1", Decimal("45"), _state(Milestone.FAVORAVEL, "31"), thresholds,
        )

        assert evaluation.alerts == ()
        assert not evaluation.transitioned
        assert evaluation.next_state.percentage == Decimal("45")

    def test_regression_keeps_recorded_milestone(self, thresholds):
        evaluation = track_milestone(
            "CTR-1", Decimal("20"), _state(Milestone.OTIMO, "75"), thresholds,
        )

        assert evaluation.alerts == ()
        assert evaluation.regressed
        assert evaluation.observed_milestone is Milestone.INICIAL
        assert evaluation.recorded_milestone is Milestone.OTIMO
        assert evaluation.next_state.milestone is Milestone.OTIMO


class TestForwardTransition:
    def test_single_step(self, thresholds):
        evaluation = track_milestone(
            "CTR-1", Decimal("52"), _state(Milestone.FAVORAVEL, "40"), thresholds,
        )

        assert len(evaluation.alerts) == 1
        alert = evaluation.alerts[0]
        assert alert.previous_milestone is Milestone.FAVORAVEL
        assert alert.new_milestone is Milestone.MUITO_FAVORAVEL
        assert alert.alert_type is AlertType.MILESTONE_CHANGE
        assert alert.previous_percentage == Decimal("40")
        assert alert.new_percentage == Decimal("52")

    def test_skip_per_threshold_emits_each_crossing_in_order(self, thresholds):
        """favoravel -> premium crosses three thresholds."""
        evaluation = track_milestone(
            "CTR-1",
            Decimal("91"),
            _state(Milestone.FAVORAVEL, "40.2"),
            thresholds,
            policy=AlertPolicy.PER_THRESHOLD,
        )

        steps = [(a.previous_milestone, a.new_milestone) for a in evaluation.alerts]
        assert steps == [
            (Milestone.FAVORAVEL, Milestone.MUITO_FAVORAVEL),
            (Milestone.MUITO_FAVORAVEL, Milestone.OTIMO),
            (Milestone.OTIMO, Milestone.PREMIUM),
        ]
        assert evaluation.alerts[-1].alert_type is AlertType.PREMIUM_REACHED
        assert evaluation.recorded_milestone is Milestone.PREMIUM

    def test_skip_direct_emits_single_alert(self, thresholds):
        evaluation = track_milestone(
            "CTR-1",
            Decimal("91"),
            _state(Milestone.FAVORAVEL, "40.2"),
            thresholds,
            policy=AlertPolicy.DIRECT,
        )

        assert len(evaluation.alerts) == 1
        alert = evaluation.alerts[0]
        assert alert.previous_milestone is Milestone.FAVORAVEL
        assert alert.new_milestone is Milestone.PREMIUM

    def test_total_is_terminal(self, thresholds):
        evaluation = track_milestone(
            "CTR-1", Decimal("100"), _state(Milestone.PREMIUM, "95"), thresholds,
        )

        assert evaluation.alerts[0].alert_type is AlertType.TOTAL_REACHED
        assert evaluation.recorded_milestone.is_terminal

        again = track_milestone("CTR-1", Decimal("100"), evaluation.next_state, thresholds)
        assert again.alerts == ()


class TestAlertMessage:
    def test_message_is_deterministic(self):
        message = build_alert_message(
            "CTR-9", Milestone.OTIMO, Milestone.PREMIUM, Decimal("75"), Decimal("91.5"),
        )

        assert message == (
            "Contract CTR-9 moved from otimo (75.00%) to premium (91.50%) provision."
            " Premium negotiation window reached."
        )

    def test_plain_transition_has_no_suffix(self):
        message = build_alert_message(
            "CTR-9", Milestone.INICIAL, Milestone.FAVORAVEL, Decimal("19"), Decimal("33"),
        )

        assert message.endswith("(33.00%) provision.")


class TestThresholdValidation:
    def test_descending_thresholds_rejected(self, thresholds):
        entries = list(thresholds.thresholds)
        entries[2] = replace(entries[2], threshold=Decimal("20"))

        with pytest.raises(MilestoneTableError, match="must exceed"):
            MilestoneThresholds(thresholds=tuple(entries))

    def test_first_threshold_must_be_zero(self, thresholds):
        entries = list(thresholds.thresholds)
        entries[0] = replace(entries[0], threshold=Decimal("5"))

        with pytest.raises(MilestoneTableError, match="first threshold"):
            MilestoneThresholds(thresholds=tuple(entries))

    def test_missing_milestone_rejected(self):
        with pytest.raises(MilestoneTableError, match="every milestone"):
            MilestoneThresholds(thresholds=(
                MilestoneThreshold(Milestone.INICIAL, Decimal("0")),
                MilestoneThreshold(Milestone.TOTAL, Decimal("100")),
            ))

    def test_threshold_above_hundred_rejected(self, thresholds):
        entries = list(thresholds.thresholds)
        entries[-1] = replace(entries[-1], threshold=Decimal("120"))

        with pytest.raises(MilestoneTableError, match="exceeds 100"):
            MilestoneThresholds(thresholds=tuple(entries))
