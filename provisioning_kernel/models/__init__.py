"""SQLAlchemy ORM models for provisioning persistence."""

from provisioning_kernel.models.alert import ALERT_MUTABLE_FIELDS, ProvisionAlertModel
from provisioning_kernel.models.analysis import ProvisioningAnalysisModel
from provisioning_kernel.models.milestone_state import ContractMilestoneStateModel

__all__ = [
    "ALERT_MUTABLE_FIELDS",
    "ContractMilestoneStateModel",
    "ProvisionAlertModel",
    "ProvisioningAnalysisModel",
]
