"""
provisioning_config.assembler -- composes YAML fragments into one configuration set.

Responsibility:
    Humans edit small, well-owned YAML fragments.  This module composes
    them into a single ``ProvisioningConfigurationSet``.

Fragment structure::

    sets/bcb352/
    +-- root.yaml             # Identity, regulation, effective dates
    +-- expected_loss.yaml    # Days bands, 0-90 days
    +-- incurred_loss.yaml    # Months bands, beyond 90 days
    +-- stages.yaml           # Stage A..H intervals
    +-- milestones.yaml       # Negotiation milestone thresholds + guidance
    +-- operation_types.yaml  # Operation type -> C1..C5
    +-- policies.yaml         # Observation window, write-off, settlement

Invariants enforced:
    - ``root.yaml`` must exist in every fragment directory.
    - A deterministic SHA-256 checksum is computed over all raw fragment
      data.

Failure modes:
    - ``AssemblyError`` -- fragment missing or a required field unparseable.
    - ``yaml.YAMLError`` (propagated from loader) -- invalid YAML syntax.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from provisioning_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_band_table,
    parse_identity,
    parse_milestone,
    parse_operation_type,
    parse_policies,
    parse_stage,
)
from provisioning_config.schema import ProvisioningConfigurationSet
from provisioning_kernel.exceptions import ProvisioningError

REQUIRED_FRAGMENTS = (
    "root.yaml",
    "expected_loss.yaml",
    "incurred_loss.yaml",
    "stages.yaml",
    "milestones.yaml",
    "operation_types.yaml",
)


class AssemblyError(ProvisioningError):
    """A fragment directory is incomplete or a fragment cannot be parsed."""

    code: str = "ASSEMBLY_FAILED"


def assemble_from_directory(fragment_dir: Path) -> ProvisioningConfigurationSet:
    """
    Compose the fragments of ``fragment_dir`` into one configuration set.

    ``policies.yaml`` is optional; defaults apply when absent.
    """
    if not fragment_dir.is_dir():
        raise AssemblyError(f"Configuration set directory not found: {fragment_dir}")

    for name in REQUIRED_FRAGMENTS:
        if not (fragment_dir / name).exists():
            raise AssemblyError(f"Missing fragment {name} in {fragment_dir}")

    raw: dict[str, Any] = {
        name.removesuffix(".yaml"): load_yaml_file(fragment_dir / name)
        for name in REQUIRED_FRAGMENTS
    }
    policies_file = fragment_dir / "policies.yaml"
    raw["policies"] = load_yaml_file(policies_file) if policies_file.exists() else {}

    try:
        return ProvisioningConfigurationSet(
            identity=parse_identity(raw["root"]),
            expected_loss=parse_band_table(raw["expected_loss"]),
            incurred_loss=parse_band_table(raw["incurred_loss"]),
            stages=tuple(parse_stage(s) for s in raw["stages"].get("stages", [])),
            milestones=tuple(
                parse_milestone(m) for m in raw["milestones"].get("milestones", [])
            ),
            operation_types=tuple(
                parse_operation_type(o)
                for o in raw["operation_types"].get("operation_types", [])
            ),
            policies=parse_policies(raw["policies"]),
            checksum=compute_checksum(raw),
        )
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise AssemblyError(
            f"Cannot assemble configuration set {fragment_dir.name}: {exc!r}"
        ) from exc
