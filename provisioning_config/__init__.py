"""
provisioning_config -- single public entrypoint for provisioning reference data.

Responsibility:
    Provides the ONLY way to obtain reference data at runtime through
    ``get_active_config()``.  Returns a ``ProvisioningReferenceData`` -- the
    read-only bundle every engine call receives.  YAML loading is internal
    build/test tooling and never exposed to callers.

Architecture position:
    Configuration -- YAML-driven reference-data pipeline, load-time
    validation.  This package sits above ``provisioning_engines`` and below
    ``provisioning_services``.  The engines MUST NEVER import from
    ``provisioning_config``.

Invariants enforced:
    - Single entrypoint: all runtime reference data flows through
      ``get_active_config()``.
    - Load-time validation: band tables, stages, milestones, operation
      types and policies must pass ``validate_configuration`` before a
      bundle is produced.
    - Deterministic compilation: same YAML fragments always produce the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration set directory is missing.
    - ``AssemblyError`` -- a required fragment is missing or unparseable.
    - ``ReferenceDataError`` subclasses -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``PROVISIONING_CONFIG_TRACE`` log entry containing the config_id,
    version, checksum and table sizes.  The same checksum is stored on every
    persisted analysis.
"""

from __future__ import annotations

from pathlib import Path

from provisioning_config.assembler import AssemblyError, assemble_from_directory
from provisioning_config.compiler import compile_reference_data
from provisioning_config.validator import ConfigValidationResult, validate_configuration
from provisioning_engines.reference_data import ProvisioningReferenceData
from provisioning_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DEFAULT_SET_NAME = "bcb352"


def get_active_config(
    set_name: str = DEFAULT_SET_NAME,
    config_dir: Path | None = None,
) -> ProvisioningReferenceData:
    """The ONLY public reference-data entrypoint.

    Guarantees:
        - The returned bundle has passed ``validate_configuration``.
        - A ``PROVISIONING_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - This function does NOT cache bundles across calls; callers hold
          the returned bundle for the duration of a batch.

    Args:
        set_name: Name of the configuration set directory.
        config_dir: Override path to the configuration sets directory.
            Defaults to provisioning_config/sets/.

    Raises:
        FileNotFoundError: If the configuration set directory does not exist.
        AssemblyError: If a fragment is missing or cannot be parsed.
        ReferenceDataError: If validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    fragment_dir = sets_dir / set_name
    if not fragment_dir.is_dir():
        raise FileNotFoundError(f"Configuration set not found: {fragment_dir}")

    config_set = assemble_from_directory(fragment_dir)

    validation = validate_configuration(config_set)
    for warning in validation.warnings:
        _logger.warning(
            "config_validation_warning",
            extra={"config_set_id": config_set.config_id, "warning": warning},
        )
    validation.raise_for_errors()

    reference_data = compile_reference_data(config_set)

    # INVARIANT: compiled checksum must match assembled source checksum.
    assert reference_data.checksum == config_set.checksum, (
        f"Checksum drift: compiled={reference_data.checksum!r} "
        f"!= source={config_set.checksum!r}"
    )

    _logger.info(
        "PROVISIONING_CONFIG_TRACE",
        extra={
            "trace_type": "PROVISIONING_CONFIG_TRACE",
            "config_set_id": reference_data.config_id,
            "config_set_version": reference_data.config_version,
            "checksum": reference_data.checksum,
            "regulation": config_set.identity.regulation,
            "expected_loss_band_count": len(reference_data.rate_tables.expected_loss.rows),
            "incurred_loss_band_count": len(reference_data.rate_tables.incurred_loss.rows),
            "operation_type_count": len(reference_data.operation_types),
        },
    )

    return reference_data


__all__ = [
    "AssemblyError",
    "ConfigValidationResult",
    "DEFAULT_SET_NAME",
    "get_active_config",
    "validate_configuration",
]
