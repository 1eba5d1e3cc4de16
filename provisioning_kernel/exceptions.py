"""
Typed Exception Hierarchy for the Provisioning Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every error has a TYPED exception class, a machine-readable ``code`` class
attribute, and structured fields instead of a bare message string, so callers
catch by type and report by code:

    try:
        reference_data = get_active_config("bcb352")
    except BandTableError as e:
        log.error("bad table", extra={"table": e.table, "code": e.code})

The pure engines never raise these for business outcomes: they return
``CalculationResult`` failures instead (see ``domain/results.py``).  The
exceptions below cover configuration loading, persistence and lookups, i.e.
the imperative shell around the engines.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ProvisioningError (base)
    |
    +-- ReferenceDataError
    |   +-- BandTableError
    |   +-- StageTableError
    |   +-- MilestoneTableError
    |   +-- OperationTypeTableError
    |
    +-- RecordNotFoundError
    |   +-- AnalysisNotFoundError
    |   +-- AlertNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError
        +-- MilestoneRegressionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Reference data  | INVALID_BAND_TABLE          | Band rows overlap, gap, decrease, miss a column
                | INVALID_STAGE_TABLE         | Stage boundary not on a band boundary
                | INVALID_MILESTONE_TABLE     | Thresholds not ascending / unknown milestone
                | INVALID_OPERATION_TYPES     | Operation type mapped to unknown classification
----------------|-----------------------------|-----------------------------------------
Lookup          | ANALYSIS_NOT_FOUND          | No analysis for contract / id
                | ALERT_NOT_FOUND             | Alert id doesn't exist
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only record
                | MILESTONE_REGRESSION        | Recorded milestone moved backwards
"""


class ProvisioningError(Exception):
    """
    Base exception for all provisioning kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "PROVISIONING_ERROR"


# Reference data exceptions


class ReferenceDataError(ProvisioningError):
    """Base exception for invalid regulatory reference data."""

    code: str = "REFERENCE_DATA_ERROR"

    def __init__(self, table: str, reason: str):
        self.table = table
        self.reason = reason
        super().__init__(f"Invalid reference table '{table}': {reason}")


class BandTableError(ReferenceDataError):
    """A provisioning band table is malformed."""

    code: str = "INVALID_BAND_TABLE"


class StageTableError(ReferenceDataError):
    """The stage table does not align with the band tables."""

    code: str = "INVALID_STAGE_TABLE"


class MilestoneTableError(ReferenceDataError):
    """The milestone threshold table is malformed."""

    code: str = "INVALID_MILESTONE_TABLE"


class OperationTypeTableError(ReferenceDataError):
    """The operation-type to classification table is malformed."""

    code: str = "INVALID_OPERATION_TYPES"


# Lookup exceptions


class RecordNotFoundError(ProvisioningError):
    """Base exception for missing persisted records."""

    code: str = "RECORD_NOT_FOUND"


class AnalysisNotFoundError(RecordNotFoundError):
    """No provisioning analysis exists for the requested contract."""

    code: str = "ANALYSIS_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"No provisioning analysis for contract: {contract_id}")


class AlertNotFoundError(RecordNotFoundError):
    """Alert with given ID was not found."""

    code: str = "ALERT_NOT_FOUND"

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")


# Immutability exceptions


class ImmutabilityError(ProvisioningError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Provisioning analyses are never mutated; alerts only change their
    read flag; neither is ever deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class MilestoneRegressionError(ImmutabilityError):
    """The recorded negotiation milestone of a contract was moved backwards."""

    code: str = "MILESTONE_REGRESSION"

    def __init__(self, contract_id: str, recorded: str, attempted: str):
        self.contract_id = contract_id
        self.recorded = recorded
        self.attempted = attempted
        super().__init__(
            f"Milestone of contract {contract_id} cannot regress "
            f"from {recorded} to {attempted}"
        )
