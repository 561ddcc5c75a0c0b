"""
config.py - Protocol parameters

One frozen dataclass carries every tunable number of a deployment. The
defaults are the values the protocol ships with; a deployment may override
any of them when constructing LendingProtocol.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta

from .core import BPS_DENOMINATOR, INITIAL_TRUST_SCORE, MAX_CIRCLE_MEMBERS, MAX_TRUST_SCORE


@dataclass(frozen=True, slots=True)
class ProtocolParameters:
    """
    Deployment-wide parameters.

    Rates and ratios are basis points (10000 = 100%).
    """
    default_min_collateral_ratio_bps: int = 15000
    base_rate_bps: int = 200
    optimal_utilization_bps: int = 8000
    slope1_bps: int = 400
    slope2_bps: int = 7500
    bidding_period: timedelta = timedelta(days=7)
    stake_to_loan_ratio_pct: int = 200
    liquidation_dispute_window: timedelta = timedelta(hours=24)
    max_circle_members: int = MAX_CIRCLE_MEMBERS
    initial_trust_score: int = INITIAL_TRUST_SCORE
    protocol_version: int = 1

    def __post_init__(self):
        if self.default_min_collateral_ratio_bps < BPS_DENOMINATOR:
            raise ValueError(
                f"default_min_collateral_ratio_bps must be >= {BPS_DENOMINATOR}, "
                f"got {self.default_min_collateral_ratio_bps}"
            )
        for name in ('base_rate_bps', 'optimal_utilization_bps', 'slope1_bps', 'slope2_bps'):
            value = getattr(self, name)
            if not 0 <= value <= BPS_DENOMINATOR:
                raise ValueError(f"{name} must be within [0, {BPS_DENOMINATOR}], got {value}")
        if self.bidding_period <= timedelta(0):
            raise ValueError("bidding_period must be positive")
        if self.stake_to_loan_ratio_pct < 100:
            raise ValueError(
                f"stake_to_loan_ratio_pct must be at least 100, got {self.stake_to_loan_ratio_pct}"
            )
        if self.liquidation_dispute_window < timedelta(0):
            raise ValueError("liquidation_dispute_window cannot be negative")
        if not 0 < self.max_circle_members <= MAX_CIRCLE_MEMBERS:
            raise ValueError(
                f"max_circle_members must be within (0, {MAX_CIRCLE_MEMBERS}], "
                f"got {self.max_circle_members}"
            )
        if not 0 <= self.initial_trust_score <= MAX_TRUST_SCORE:
            raise ValueError(f"initial_trust_score out of range: {self.initial_trust_score}")
        if self.protocol_version < 1:
            raise ValueError(f"protocol_version must be >= 1, got {self.protocol_version}")


DEFAULT_PARAMETERS = ProtocolParameters()
