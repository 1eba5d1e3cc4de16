"""
Module: provisioning_engines.settlement
Responsibility:
    Suggest a settlement (acordo) amount from the provision already booked
    by the bank.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - provision >= premium threshold -> proposal = balance * premium share.
    - otherwise proposal = balance - provision value.
    - 0 <= proposal <= balance; amounts quantized to cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from provisioning_engines.tracer import traced_engine

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SettlementPolicy:
    premium_threshold: Decimal = Decimal("90")
    premium_proposal_percentage: Decimal = Decimal("10")


@dataclass(frozen=True)
class SettlementProposal:
    proposal_value: Decimal
    proposal_percentage: Decimal
    discount_percentage: Decimal
    premium_rule_applied: bool


@traced_engine(
    "settlement",
    "1.0",
    fingerprint_fields=("outstanding_balance", "provision_percentage", "provision_value"),
)
def calculate_settlement_proposal(
    outstanding_balance: Decimal,
    provision_percentage: Decimal,
    provision_value: Decimal,
    policy: SettlementPolicy = SettlementPolicy(),
) -> SettlementProposal:
    """Proposal amount plus its share of (and discount on) the balance."""
    if outstanding_balance <= 0:
        return SettlementProposal(
            proposal_value=Decimal("0.00"),
            proposal_percentage=Decimal("0.00"),
            discount_percentage=Decimal("0.00"),
            premium_rule_applied=False,
        )

    premium = provision_percentage >= policy.premium_threshold
    if premium:
        proposal = outstanding_balance * policy.premium_proposal_percentage / HUNDRED
    else:
        proposal = outstanding_balance - provision_value
    proposal = min(outstanding_balance, max(Decimal("0"), proposal))
    proposal = proposal.quantize(CENT, rounding=ROUND_HALF_UP)

    share = (proposal / outstanding_balance * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    return SettlementProposal(
        proposal_value=proposal,
        proposal_percentage=share,
        discount_percentage=HUNDRED - share,
        premium_rule_applied=premium,
    )
