"""
provisioning_services -- Stateful orchestration over the provisioning engines.

Architecture:
    provisioning_services/ sits above provisioning_engines and
    provisioning_config.  Nothing in kernel/, engines/ or config/ imports
    from provisioning_services.

Invariants:
    - Clock injection: only this layer reads time.
    - Flush only: callers own commit and rollback.
    - SAVEPOINT isolation per contract in batch recalculation.
"""

from provisioning_services.batch_recalculation import (
    BatchItemResult,
    BatchItemStatus,
    BatchRecalculator,
    BatchRunResult,
    BatchRunStatus,
)
from provisioning_services.provisioning_service import (
    SYSTEM_ACTOR_ID,
    ProvisioningRunResult,
    ProvisioningService,
)

__all__ = [
    "BatchItemResult",
    "BatchItemStatus",
    "BatchRecalculator",
    "BatchRunResult",
    "BatchRunStatus",
    "ProvisioningRunResult",
    "ProvisioningService",
    "SYSTEM_ACTOR_ID",
]
