"""
ORM-Level Immutability Enforcement for provisioning records.

===============================================================================
WHY THIS EXISTS
===============================================================================

Provisioning analyses are the audit trail of how a contract's provision
evolved: a re-run appends a new analysis, it never edits an old one.  Alerts
are notifications of a transition that happened; their content is history,
only the read flag belongs to the user.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                  | Rule
------------------------|-------------------------------------------------------
ProvisioningAnalysis    | ALWAYS immutable, never deleted
ProvisionAlert          | Only is_read / read_at may change, never deleted
ContractMilestoneState  | milestone may only move forward (MilestoneRegressionError)

===============================================================================
USAGE
===============================================================================

    from provisioning_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from provisioning_kernel.domain.values import Milestone
from provisioning_kernel.exceptions import (
    ImmutabilityViolationError,
    MilestoneRegressionError,
)
from provisioning_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **fields,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [attr.key for attr in inspect(target).attrs if attr.history.has_changes()]


def _check_analysis_immutability(mapper, connection, target):
    """Provisioning analyses are append-only."""
    changed = _changed_fields(target)
    if not changed:
        return
    raise _blocked(
        "ProvisioningAnalysis",
        str(target.id),
        "UPDATE",
        f"Provisioning analyses are append-only (attempted: {', '.join(changed)})",
        fields=changed,
    )


def _check_analysis_delete(mapper, connection, target):
    raise _blocked(
        "ProvisioningAnalysis",
        str(target.id),
        "DELETE",
        "Provisioning analyses cannot be deleted",
    )


def _check_alert_immutability(mapper, connection, target):
    """Only the read lifecycle of an alert may change."""
    from provisioning_kernel.models.alert import ALERT_MUTABLE_FIELDS

    for key in _changed_fields(target):
        if key in ALERT_MUTABLE_FIELDS:
            continue
        raise _blocked(
            "ProvisionAlert",
            str(target.id),
            "UPDATE",
            f"Cannot modify field '{key}' on a provision alert",
            field=key,
        )


def _check_alert_delete(mapper, connection, target):
    raise _blocked(
        "ProvisionAlert",
        str(target.id),
        "DELETE",
        "Provision alerts cannot be deleted",
    )


def _check_milestone_state_progression(mapper, connection, target):
    """The recorded milestone of a contract never moves backwards."""
    history = inspect(target).attrs.milestone.history
    if not history.deleted or not history.added:
        return

    recorded = Milestone(history.deleted[0])
    attempted = Milestone(history.added[0])
    if attempted.rank >= recorded.rank:
        return

    logger.error(
        "milestone_regression_blocked",
        extra={
            "contract_id": target.contract_id,
            "recorded": recorded.value,
            "attempted": attempted.value,
        },
    )
    raise MilestoneRegressionError(
        contract_id=target.contract_id,
        recorded=recorded.value,
        attempted=attempted.value,
    )


def _check_milestone_state_delete(mapper, connection, target):
    raise _blocked(
        "ContractMilestoneState",
        str(target.id),
        "DELETE",
        "Milestone state cannot be deleted",
    )


def _listeners():
    from provisioning_kernel.models.alert import ProvisionAlertModel
    from provisioning_kernel.models.analysis import ProvisioningAnalysisModel
    from provisioning_kernel.models.milestone_state import ContractMilestoneStateModel

    return (
        (ProvisioningAnalysisModel, "before_update", _check_analysis_immutability),
        (ProvisioningAnalysisModel, "before_delete", _check_analysis_delete),
        (ProvisionAlertModel, "before_update", _check_alert_immutability),
        (ProvisionAlertModel, "before_delete", _check_alert_delete),
        (ContractMilestoneStateModel, "before_update", _check_milestone_state_progression),
        (ContractMilestoneStateModel, "before_delete", _check_milestone_state_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
