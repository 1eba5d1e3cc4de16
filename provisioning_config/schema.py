"""
Configuration Schema (``provisioning_config.schema``).

Responsibility
--------------
Frozen dataclasses mirroring the YAML fragment files of a reference-data
set.  These are the raw, parsed definitions; ``provisioning_config.compiler``
turns them into the typed engine structures (``BandTable``, ``StageTable``,
``MilestoneThresholds`` ...).

Architecture position
---------------------
**Config layer** -- pure data.  No I/O, no engine imports.

Invariants enforced
-------------------
* All definitions are immutable (``frozen=True``).
* Percentages are kept as strings until compilation so no float ever
  touches a regulatory value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class ConfigIdentity:
    """Identity block from ``root.yaml``."""

    config_id: str
    version: int
    regulation: str
    effective_from: date
    effective_to: date | None = None
    description: str = ""


@dataclass(frozen=True)
class BandRowDef:
    lower_bound: int
    upper_bound: int | None
    percentages: tuple[tuple[str, str], ...]  # (classification token, percentage)


@dataclass(frozen=True)
class BandTableDef:
    regime: str
    rows: tuple[BandRowDef, ...]
    source: str = ""


@dataclass(frozen=True)
class StageDef:
    stage: str
    regime: str
    lower_bound: int
    upper_bound: int | None
    label: str
    description: str = ""


@dataclass(frozen=True)
class MilestoneDef:
    milestone: str
    threshold: str
    guidance: str = ""


@dataclass(frozen=True)
class OperationTypeDef:
    name: str
    classification: str
    description: str = ""


@dataclass(frozen=True)
class PoliciesDef:
    observation_period_days: int = 180
    write_off_months: tuple[tuple[str, int], ...] = ()
    default_write_off_months: int = 18
    settlement_premium_threshold: str = "90"
    settlement_premium_proposal_percentage: str = "10"
    attention_min_days: int = 30
    attention_max_days: int = 90
    high_provision_percentage: str = "30"
    insufficient_collateral_percentage: str = "50"
    prolonged_delay_months: int = 6
    pd_by_credit_stage: tuple[tuple[int, str], ...] = ((1, "5"), (2, "20"), (3, "80"))
    base_lgd_percentage: str = "45"
    collateral_lgd_reduction_percentage: str = "70"
    provisioning_marks: tuple[str, ...] = ("50", "60", "70", "80", "90", "100")


@dataclass(frozen=True)
class ProvisioningConfigurationSet:
    """All fragments of one reference-data set plus their checksum."""

    identity: ConfigIdentity
    expected_loss: BandTableDef
    incurred_loss: BandTableDef
    stages: tuple[StageDef, ...]
    milestones: tuple[MilestoneDef, ...]
    operation_types: tuple[OperationTypeDef, ...]
    policies: PoliciesDef = field(default_factory=PoliciesDef)
    checksum: str = ""

    @property
    def config_id(self) -> str:
        return self.identity.config_id

    @property
    def version(self) -> int:
        return self.identity.version
