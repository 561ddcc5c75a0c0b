"""
interest_rate.py - Utilization-based interest rate curve

ARCHITECTURE:
=============

1. FROZEN DATACLASS: InterestRateModel - the curve parameters (singleton record)

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - calculate_rate(model, utilization_bps) -> rate_bps
   - calculate_accrued_interest(principal, rate_bps, seconds) -> interest
   - calculate_utilization(total_loans, available_liquidity) -> bps

3. ADAPTER: load_rate_model(view) - the only read of the singleton

4. OPERATIONS (compute_*): admin setters and rate proposals

Key Formulas:
    u <= optimal:  rate = base + u * slope1 / optimal
    u >  optimal:  rate = base + slope1 + (u - optimal) * slope2 / (10000 - optimal)
    interest = principal * rate * seconds / (10000 * 31_536_000)

All divisions truncate. The curve is continuous at the kink and
non-decreasing in utilization.

Rate proposals are stored for governance tooling outside this package.
Nothing here executes a proposal; setters take effect immediately.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, List, Optional

from ..core import (
    LedgerView, PendingTransaction, RecordChange, AdminCapability,
    BPS_DENOMINATOR, SECONDS_PER_YEAR, INTEREST_RATE_MODEL_KEY, GOVERNANCE_KEY,
    InvalidParameter, ProposalNotFound,
    build_transaction, admin_origin, user_origin, make_event, require_account,
)
from .admin import require_active, require_admin


@dataclass(frozen=True, slots=True)
class InterestRateModel:
    """Curve parameters, all in basis points."""
    base_rate_bps: int
    optimal_utilization_bps: int
    slope1_bps: int
    slope2_bps: int
    last_update: datetime


@dataclass(frozen=True, slots=True)
class RateProposal:
    """A proposed set of curve parameters. Stored, never executed."""
    id: int
    proposer: str
    base_rate_bps: int
    optimal_utilization_bps: int
    slope1_bps: int
    slope2_bps: int
    created_at: datetime
    votes_for: int = 0
    votes_against: int = 0
    executed: bool = False


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_rate(model: InterestRateModel, utilization_bps: int) -> int:
    """
    Borrow rate in bps for a utilization in bps.

    Utilization is clamped to [0, 10000]. A kink at 0 or 10000 collapses
    the curve to a single segment.
    """
    u = max(0, min(BPS_DENOMINATOR, utilization_bps))
    optimal = model.optimal_utilization_bps

    if u <= optimal:
        if optimal == 0:
            return model.base_rate_bps
        return model.base_rate_bps + u * model.slope1_bps // optimal

    excess = u - optimal
    return (
        model.base_rate_bps
        + model.slope1_bps
        + excess * model.slope2_bps // (BPS_DENOMINATOR - optimal)
    )


def calculate_accrued_interest(principal: int, rate_bps: int, seconds: int) -> int:
    """Simple interest over a 365-day year, truncated."""
    if principal <= 0 or rate_bps <= 0 or seconds <= 0:
        return 0
    return principal * rate_bps * seconds // (BPS_DENOMINATOR * SECONDS_PER_YEAR)


def calculate_utilization(total_loans: int, available_liquidity: int) -> int:
    """Share of pool liquidity lent out, in bps. An empty pool is 0% utilized."""
    denominator = total_loans + available_liquidity
    if total_loans <= 0 or denominator <= 0:
        return 0
    return min(BPS_DENOMINATOR, total_loans * BPS_DENOMINATOR // denominator)


# ============================================================================
# ADAPTERS
# ============================================================================

def load_rate_model(view: LedgerView) -> Optional[InterestRateModel]:
    raw = view.get_record(INTEREST_RATE_MODEL_KEY)
    if raw is None:
        return None
    return InterestRateModel(**raw)


def _require_bps(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= BPS_DENOMINATOR:
        raise InvalidParameter(f"{name} must be an integer within [0, {BPS_DENOMINATOR}], got {value!r}")


def _update_model(
    view: LedgerView,
    caller: str,
    operation: str,
    updates: Dict[str, int],
) -> PendingTransaction:
    old = view.get_record(INTEREST_RATE_MODEL_KEY)
    now = view.current_time
    new = {**old, **updates, 'last_update': now}
    events = [make_event("RateModelUpdated", now, admin=caller, **updates)]
    return build_transaction(
        view, [], [RecordChange(INTEREST_RATE_MODEL_KEY, old, new)], events,
        admin_origin(caller, operation),
    )


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_update_base_rate(
    view: LedgerView, caller: str, cap: AdminCapability, base_rate_bps: int
) -> PendingTransaction:
    require_admin(view, caller, cap)
    _require_bps("base_rate_bps", base_rate_bps)
    return _update_model(view, caller, "update_base_rate", {'base_rate_bps': base_rate_bps})


def compute_update_optimal_utilization(
    view: LedgerView, caller: str, cap: AdminCapability, optimal_utilization_bps: int
) -> PendingTransaction:
    require_admin(view, caller, cap)
    _require_bps("optimal_utilization_bps", optimal_utilization_bps)
    return _update_model(
        view, caller, "update_optimal_utilization",
        {'optimal_utilization_bps': optimal_utilization_bps},
    )


def compute_update_slopes(
    view: LedgerView, caller: str, cap: AdminCapability, slope1_bps: int, slope2_bps: int
) -> PendingTransaction:
    require_admin(view, caller, cap)
    _require_bps("slope1_bps", slope1_bps)
    _require_bps("slope2_bps", slope2_bps)
    return _update_model(
        view, caller, "update_slopes",
        {'slope1_bps': slope1_bps, 'slope2_bps': slope2_bps},
    )


def compute_propose_rate_update(
    view: LedgerView,
    caller: str,
    base_rate_bps: int,
    optimal_utilization_bps: int,
    slope1_bps: int,
    slope2_bps: int,
) -> PendingTransaction:
    """Store a RateProposal. No operation ever executes it."""
    require_active(view)
    require_account(view, caller)
    _require_bps("base_rate_bps", base_rate_bps)
    _require_bps("optimal_utilization_bps", optimal_utilization_bps)
    _require_bps("slope1_bps", slope1_bps)
    _require_bps("slope2_bps", slope2_bps)

    old = view.get_record(GOVERNANCE_KEY)
    now = view.current_time
    proposal = RateProposal(
        id=old['next_id'],
        proposer=caller,
        base_rate_bps=base_rate_bps,
        optimal_utilization_bps=optimal_utilization_bps,
        slope1_bps=slope1_bps,
        slope2_bps=slope2_bps,
        created_at=now,
    )
    new = {
        'next_id': old['next_id'] + 1,
        'proposals': old['proposals'] + [asdict(proposal)],
    }
    events = [make_event("RateProposalCreated", now, proposal_id=proposal.id, proposer=caller)]
    return build_transaction(
        view, [], [RecordChange(GOVERNANCE_KEY, old, new)], events,
        user_origin(caller, "propose_rate_update"),
    )


# ============================================================================
# GETTERS
# ============================================================================

def current_rate(view: LedgerView, utilization_bps: int) -> int:
    model = load_rate_model(view)
    if model is None:
        return 0
    return calculate_rate(model, utilization_bps)


def list_rate_proposals(view: LedgerView) -> List[RateProposal]:
    raw = view.get_record(GOVERNANCE_KEY)
    if raw is None:
        return []
    return [RateProposal(**p) for p in raw['proposals']]


def get_rate_proposal(view: LedgerView, proposal_id: int) -> RateProposal:
    for proposal in list_rate_proposals(view):
        if proposal.id == proposal_id:
            return proposal
    raise ProposalNotFound(f"no rate proposal with id {proposal_id}")

