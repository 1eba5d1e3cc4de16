"""
Configuration Loader (``provisioning_config.loader``).

Responsibility
--------------
Loads individual YAML fragment files and parses them into typed
``provisioning_config.schema`` dataclass instances.  This is **build/test
tooling only** -- no service should call this directly.  The single public
entry point for runtime config is ``provisioning_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Percentages are normalized to strings (YAML floats included) so the
  compiler builds ``Decimal`` values from their textual form.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from provisioning_config.schema import (
    BandRowDef,
    BandTableDef,
    ConfigIdentity,
    MilestoneDef,
    OperationTypeDef,
    PoliciesDef,
    StageDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_percentage(value: Any) -> str:
    """Normalize a YAML percentage (int, float or string) to its text form."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Cannot parse percentage from {value!r}")
    if isinstance(value, (int, float, str)):
        return str(value).strip()
    raise ValueError(f"Cannot parse percentage from {value!r}")


def parse_bound(value: Any) -> int | None:
    """Band/stage bound; ``null`` (or absent) means unbounded."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Cannot parse bound from {value!r}")
    return int(value)


def parse_identity(data: dict[str, Any]) -> ConfigIdentity:
    return ConfigIdentity(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        regulation=data.get("regulation", ""),
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        description=data.get("description", ""),
    )


def parse_band_table(data: dict[str, Any]) -> BandTableDef:
    """Parse a band table fragment (``regime`` plus ``bands`` list)."""
    rows = []
    for band in data["bands"]:
        percentages = band["percentages"]
        rows.append(BandRowDef(
            lower_bound=int(band["from"]),
            upper_bound=parse_bound(band.get("to")),
            percentages=tuple(
                (str(token), parse_percentage(pct))
                for token, pct in sorted(percentages.items())
            ),
        ))
    return BandTableDef(
        regime=data["regime"],
        rows=tuple(rows),
        source=data.get("source", ""),
    )


def parse_stage(data: dict[str, Any]) -> StageDef:
    return StageDef(
        stage=str(data["stage"]),
        regime=data["regime"],
        lower_bound=int(data["from"]),
        upper_bound=parse_bound(data.get("to")),
        label=data["label"],
        description=data.get("description", ""),
    )


def parse_milestone(data: dict[str, Any]) -> MilestoneDef:
    return MilestoneDef(
        milestone=data["milestone"],
        threshold=parse_percentage(data["threshold"]),
        guidance=" ".join(str(data.get("guidance", "")).split()),
    )


def parse_operation_type(data: dict[str, Any]) -> OperationTypeDef:
    return OperationTypeDef(
        name=data["name"],
        classification=str(data["classification"]),
        description=data.get("description", ""),
    )


def parse_policies(data: dict[str, Any]) -> PoliciesDef:
    write_off = data.get("write_off", {})
    settlement = data.get("settlement", {})
    indicators = data.get("risk_indicators", {})
    attention = indicators.get("attention_days", {})
    expected_loss = data.get("expected_loss", {})
    pd_by_stage = expected_loss.get("pd_by_credit_stage", {1: "5", 2: "20", 3: "80"})
    return PoliciesDef(
        observation_period_days=int(
            data.get("restructuring", {}).get("observation_period_days", 180)
        ),
        write_off_months=tuple(
            (str(token), int(months))
            for token, months in sorted(write_off.get("months_by_classification", {}).items())
        ),
        default_write_off_months=int(write_off.get("default_months", 18)),
        settlement_premium_threshold=parse_percentage(
            settlement.get("premium_threshold", "90")
        ),
        settlement_premium_proposal_percentage=parse_percentage(
            settlement.get("premium_proposal_percentage", "10")
        ),
        attention_min_days=int(attention.get("from", 30)),
        attention_max_days=int(attention.get("to", 90)),
        high_provision_percentage=parse_percentage(
            indicators.get("high_provision_percentage", "30")
        ),
        insufficient_collateral_percentage=parse_percentage(
            indicators.get("insufficient_collateral_percentage", "50")
        ),
        prolonged_delay_months=int(indicators.get("prolonged_delay_months", 6)),
        pd_by_credit_stage=tuple(
            (int(stage), parse_percentage(pd)) for stage, pd in sorted(pd_by_stage.items())
        ),
        base_lgd_percentage=parse_percentage(expected_loss.get("base_lgd_percentage", "45")),
        collateral_lgd_reduction_percentage=parse_percentage(
            expected_loss.get("collateral_lgd_reduction_percentage", "70")
        ),
        provisioning_marks=tuple(
            parse_percentage(mark)
            for mark in data.get("provisioning_marks", ["50", "60", "70", "80", "90", "100"])
        ),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
