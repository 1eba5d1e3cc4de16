"""
Module: provisioning_engines.milestones
Responsibility:
    Track negotiation milestones (momentos de negociacao) of a contract as
    its adjusted provision percentage crosses configured thresholds, and
    produce the alerts for forward transitions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Thresholds are configuration: ascending, one per milestone in the
      enum order, the first at 0.
    - The observed milestone is the highest milestone whose threshold is
      <= the current percentage.
    - The recorded milestone only moves forward.  A lower observed
      milestone produces no alert and keeps the recorded one.
    - No alert on the first calculation or on a tie.
    - Alert messages are a deterministic function of contract, milestones
      and percentages.

Failure modes:
    - MilestoneTableError on malformed thresholds.

Audit relevance:
    ``MilestoneEvaluation.alerts`` becomes the append-only alert trail; with
    the per-threshold policy every crossed threshold is recorded in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from provisioning_engines.tracer import traced_engine
from provisioning_kernel.domain.analysis import AlertType, MilestoneAlert, MilestoneState
from provisioning_kernel.domain.values import AlertPolicy, Milestone
from provisioning_kernel.exceptions import MilestoneTableError
from provisioning_kernel.logging_config import get_logger

logger = get_logger("engines.milestones")


@dataclass(frozen=True)
class MilestoneThreshold:
    milestone: Milestone
    threshold: Decimal
    guidance: str = ""


@dataclass(frozen=True)
class MilestoneThresholds:
    """Ascending threshold table, one entry per milestone."""

    thresholds: tuple[MilestoneThreshold, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "thresholds", tuple(self.thresholds))

        if tuple(t.milestone for t in self.thresholds) != tuple(Milestone):
            raise MilestoneTableError(
                "milestones", "thresholds must list every milestone once, in order",
            )
        if self.thresholds[0].threshold != Decimal("0"):
            raise MilestoneTableError("milestones", "the first threshold must be 0")

        previous: MilestoneThreshold | None = None
        for entry in self.thresholds:
            if not isinstance(entry.threshold, Decimal):
                raise MilestoneTableError(
                    "milestones", f"threshold of {entry.milestone.value} is not a Decimal",
                )
            if entry.threshold > Decimal("100"):
                raise MilestoneTableError(
                    "milestones", f"threshold of {entry.milestone.value} exceeds 100",
                )
            if previous is not None and entry.threshold <= previous.threshold:
                raise MilestoneTableError(
                    "milestones",
                    f"threshold of {entry.milestone.value} must exceed "
                    f"{previous.milestone.value}'s",
                )
            previous = entry

    def threshold_of(self, milestone: Milestone) -> Decimal:
        return self.thresholds[milestone.rank].threshold

    def guidance_for(self, milestone: Milestone) -> str:
        return self.thresholds[milestone.rank].guidance

    def milestone_for(self, percentage: Decimal) -> Milestone:
        reached = self.thresholds[0].milestone
        for entry in self.thresholds:
            if entry.threshold <= percentage:
                reached = entry.milestone
            else:
                break
        return reached


def milestone_for(percentage: Decimal, thresholds: MilestoneThresholds) -> Milestone:
    """Highest milestone whose threshold is <= ``percentage``."""
    return thresholds.milestone_for(percentage)


@dataclass(frozen=True)
class MilestoneEvaluation:
    """
    Outcome of comparing a new percentage with the recorded milestone.

    ``recorded_milestone`` is what the contract's milestone state should hold
    after this evaluation; it never ranks below the previous one.
    """

    contract_id: str
    previous_state: MilestoneState | None
    observed_milestone: Milestone
    recorded_milestone: Milestone
    percentage: Decimal
    alerts: tuple[MilestoneAlert, ...] = ()

    @property
    def is_first_calculation(self) -> bool:
        return self.previous_state is None

    @property
    def transitioned(self) -> bool:
        return (
            self.previous_state is not None
            and self.recorded_milestone.rank > self.previous_state.milestone.rank
        )

    @property
    def regressed(self) -> bool:
        return (
            self.previous_state is not None
            and self.observed_milestone.rank < self.previous_state.milestone.rank
        )

    @property
    def next_state(self) -> MilestoneState:
        return MilestoneState(
            contract_id=self.contract_id,
            milestone=self.recorded_milestone,
            percentage=self.percentage,
        )


def build_alert_message(
    contract_id: str,
    previous_milestone: Milestone,
    new_milestone: Milestone,
    previous_percentage: Decimal,
    new_percentage: Decimal,
) -> str:
    """Deterministic human-readable alert text."""
    message = (
        f"Contract {contract_id} moved from {previous_milestone.value} "
        f"({previous_percentage:.2f}%) to {new_milestone.value} "
        f"({new_percentage:.2f}%) provision."
    )
    if new_milestone is Milestone.TOTAL:
        message += " Provision is total: the bank treats the debt as unrecoverable."
    elif new_milestone is Milestone.PREMIUM:
        message += " Premium negotiation window reached."
    return message


def _alert(
    contract_id: str,
    previous_milestone: Milestone,
    new_milestone: Milestone,
    previous_percentage: Decimal,
    new_percentage: Decimal,
) -> MilestoneAlert:
    return MilestoneAlert(
        contract_id=contract_id,
        alert_type=AlertType.for_milestone(new_milestone),
        previous_milestone=previous_milestone,
        new_milestone=new_milestone,
        previous_percentage=previous_percentage,
        new_percentage=new_percentage,
        message=build_alert_message(
            contract_id,
            previous_milestone,
            new_milestone,
            previous_percentage,
            new_percentage,
        ),
    )


@traced_engine(
    "milestone_tracker",
    "1.0",
    fingerprint_fields=("contract_id", "current_percentage", "previous_state", "policy"),
)
def track_milestone(
    contract_id: str,
    current_percentage: Decimal,
    previous_state: MilestoneState | None,
    thresholds: MilestoneThresholds,
    policy: AlertPolicy = AlertPolicy.PER_THRESHOLD,
) -> MilestoneEvaluation:
    """
    Decide whether the contract advanced to a new milestone.

    Args:
        contract_id: Contract reference carried on alerts.
        current_percentage: Adjusted provision percentage of this run.
        previous_state: Recorded milestone state, or None on the first run.
        thresholds: Configured milestone thresholds.
        policy: PER_THRESHOLD emits one alert per crossed threshold in
            order; DIRECT emits a single alert from the previous to the new
            milestone.

    Returns:
        MilestoneEvaluation with zero or more alerts.
    """
    observed = thresholds.milestone_for(current_percentage)

    if previous_state is None:
        return MilestoneEvaluation(
            contract_id=contract_id,
            previous_state=None,
            observed_milestone=observed,
            recorded_milestone=observed,
            percentage=current_percentage,
        )

    recorded = previous_state.milestone
    if observed.rank <= recorded.rank:
        if observed.rank < recorded.rank:
            logger.info(
                "milestone_regression_ignored",
                extra={
                    "contract_id": contract_id,
                    "recorded": recorded.value,
                    "observed": observed.value,
                    "percentage": str(current_percentage),
                },
            )
        return MilestoneEvaluation(
            contract_id=contract_id,
            previous_state=previous_state,
            observed_milestone=observed,
            recorded_milestone=recorded,
            percentage=current_percentage,
        )

    if policy is AlertPolicy.DIRECT:
        steps = [(recorded, observed)]
    else:
        crossed = list(Milestone)[recorded.rank:observed.rank + 1]
        steps = list(zip(crossed, crossed[1:]))

    alerts = tuple(
        _alert(
            contract_id,
            step_from,
            step_to,
            previous_state.percentage,
            current_percentage,
        )
        for step_from, step_to in steps
    )

    logger.info(
        "milestone_advanced",
        extra={
            "contract_id": contract_id,
            "from_milestone": recorded.value,
            "to_milestone": observed.value,
            "alert_count": len(alerts),
            "policy": policy.value,
        },
    )
    return MilestoneEvaluation(
        contract_id=contract_id,
        previous_state=previous_state,
        observed_milestone=observed,
        recorded_milestone=observed,
        percentage=current_percentage,
        alerts=alerts,
    )
