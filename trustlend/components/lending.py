"""
lending.py - LendingEngine: collateralized positions, pool liquidity, liquidation

ARCHITECTURE:
=============

1. FROZEN DATACLASSES (typed snapshots of records):
   - LendingPool: per-asset liquidity and aggregates
   - LendingPosition: one owner's collateral and debt in one asset
   - LiquidityShare: one supplier's claim on a pool
   - LoanRequest: a borrower's standing offer for a peer-funded loan
   - PeerLoan: a fulfilled request, owed to its lender outside the pool

2. PURE CALCULATION FUNCTIONS (calculate_*):
   - No LedgerView, plain integers in and out

3. ADAPTERS (load_*): typed reads of lending records

4. OPERATIONS (compute_*): each returns one PendingTransaction

Funds:
    collateral sits in vault:<ASSET>
    pool liquidity and reserves sit in pool:<ASSET>
    peer loans go from lender to borrower and are repaid to the lender

Pool accounting (pool loans only):
    available_liquidity + total_loans == total_supplied
    pool wallet balance == available_liquidity + reserves

Key Formulas:
    debt = pool principal + pool interest + peer principal + peer interest
    required = debt * min_collateral_ratio_bps / 10000
    borrow allowed while collateral - reserved >= required(debt + amount)
    liquidatable while collateral < required(debt)

Pool loans accrue at the pool's current utilization rate, peer loans at the
rate agreed in the request. Both accrue whenever the position is touched.
Repayments settle the pool loan before the peer loan and interest before
principal. Paid pool interest becomes reserves; peer interest goes to the
lender. A peer loan's due time is recorded, not enforced.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple, Any

from ..core import (
    LedgerView, Move, PendingTransaction, RecordChange, AdminCapability,
    BPS_DENOMINATOR, LOAN_REQUEST_REGISTRY_KEY,
    InsufficientCollateral, Undercollateralized, NotLiquidatable, PoolNotFound,
    PoolAlreadyExists, PoolExhausted, NoOutstandingLoan, LoanRequestNotFound,
    LoanRequestExists, LoanAlreadyFulfilled, NotAuthorized, InsufficientPool,
    InvalidParameter,
    position_key, pool_key, liquidity_share_key, loan_request_key, peer_loan_key,
    pool_wallet, vault_wallet,
    required_collateral, elapsed_seconds, require_positive, require_account, require_funds,
    build_transaction, user_origin, admin_origin, make_event,
)
from ..config import ProtocolParameters, DEFAULT_PARAMETERS
from .admin import require_active, require_admin, tvl_change
from .interest_rate import (
    InterestRateModel, load_rate_model, calculate_rate, calculate_accrued_interest,
    calculate_utilization,
)
from .trust import credit_limit, get_score


MAX_COLLATERAL_RATIO_BPS = 100_000


@dataclass(frozen=True, slots=True)
class LendingPool:
    asset: str
    total_collateral: int
    total_loans: int
    available_liquidity: int
    min_collateral_ratio_bps: int
    reserves: int
    total_supplied: int


@dataclass(frozen=True, slots=True)
class LendingPosition:
    owner: str
    asset: str
    collateral: int
    loan_principal: int
    accrued_interest: int
    last_update: Optional[datetime]

    @property
    def debt(self) -> int:
        return self.loan_principal + self.accrued_interest


@dataclass(frozen=True, slots=True)
class LiquidityShare:
    owner: str
    asset: str
    supplied: int


@dataclass(frozen=True, slots=True)
class LoanRequest:
    id: int
    borrower: str
    asset: str
    amount: int
    rate_bps: int
    duration: int
    collateral_amount: int
    fulfilled: bool
    fulfiller: Optional[str]
    cancelled: bool
    created_at: datetime

    @property
    def is_open(self) -> bool:
        return not self.fulfilled and not self.cancelled


@dataclass(frozen=True, slots=True)
class PeerLoan:
    request_id: int
    borrower: str
    lender: str
    asset: str
    principal: int
    accrued_interest: int
    rate_bps: int
    due_at: datetime
    last_update: datetime

    @property
    def debt(self) -> int:
        return self.principal + self.accrued_interest


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_max_borrow(collateral: int, min_ratio_bps: int) -> int:
    """
    Largest total debt D with required_collateral(D) <= collateral.

    required_collateral truncates, so D may exceed collateral * 10000 / ratio
    by the truncation slack.
    """
    return ((collateral + 1) * BPS_DENOMINATOR - 1) // min_ratio_bps


def calculate_borrowing_capacity(collateral: int, debt: int, min_ratio_bps: int) -> int:
    """Further principal the position could draw, floored at zero."""
    headroom = calculate_max_borrow(collateral, min_ratio_bps) - debt
    return max(0, headroom)


def calculate_health_factor_bps(collateral: int, debt: int, min_ratio_bps: int) -> Optional[int]:
    """
    Collateral over required collateral, in bps.

    10000 is exactly at the threshold; below 10000 the position is
    liquidatable. None when there is no debt.
    """
    required = required_collateral(debt, min_ratio_bps)
    if debt <= 0 or required <= 0:
        return None
    return collateral * BPS_DENOMINATOR // required


def is_liquidatable(collateral: int, debt: int, min_ratio_bps: int) -> bool:
    return debt > 0 and collateral < required_collateral(debt, min_ratio_bps)


# ============================================================================
# ADAPTERS
# ============================================================================

def load_pool(view: LedgerView, asset_symbol: str) -> Optional[LendingPool]:
    raw = view.get_record(pool_key(asset_symbol))
    return LendingPool(**raw) if raw is not None else None


def load_liquidity_share(view: LedgerView, owner: str, asset_symbol: str) -> Optional[LiquidityShare]:
    raw = view.get_record(liquidity_share_key(owner, asset_symbol))
    return LiquidityShare(**raw) if raw is not None else None


def load_loan_request(view: LedgerView, borrower: str) -> Optional[LoanRequest]:
    raw = view.get_record(loan_request_key(borrower))
    return LoanRequest(**raw) if raw is not None else None


def _require_pool(view: LedgerView, asset_symbol: str) -> Dict[str, Any]:
    raw = view.get_record(pool_key(asset_symbol))
    if raw is None:
        raise PoolNotFound(f"no lending pool for {asset_symbol}")
    return raw


def _empty_position(owner: str, asset_symbol: str, now: datetime) -> Dict[str, Any]:
    return asdict(LendingPosition(
        owner=owner, asset=asset_symbol, collateral=0,
        loan_principal=0, accrued_interest=0, last_update=now,
    ))


def _pool_rate(model: InterestRateModel, pool: Dict[str, Any]) -> int:
    return calculate_rate(
        model, calculate_utilization(pool['total_loans'], pool['available_liquidity'])
    )


def _accrue(
    view: LedgerView, position: Dict[str, Any], pool: Dict[str, Any]
) -> Tuple[Dict[str, Any], int]:
    """Position with interest rolled in up to now, and the interest added."""
    now = view.current_time
    seconds = elapsed_seconds(position['last_update'], now)
    interest = calculate_accrued_interest(
        position['loan_principal'], _pool_rate(load_rate_model(view), pool), seconds
    )
    accrued = {
        **position,
        'accrued_interest': position['accrued_interest'] + interest,
        'last_update': now,
    }
    return accrued, interest


def _accrue_peer(view: LedgerView, loan: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
    """Peer loan with interest at its agreed rate rolled in up to now."""
    now = view.current_time
    interest = calculate_accrued_interest(
        loan['principal'], loan['rate_bps'], elapsed_seconds(loan['last_update'], now)
    )
    accrued = {
        **loan,
        'accrued_interest': loan['accrued_interest'] + interest,
        'last_update': now,
    }
    return accrued, interest


def _load_peer(
    view: LedgerView, borrower: str, asset_symbol: str
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Committed peer loan record and its accrued copy, or (None, None)."""
    old = view.get_record(peer_loan_key(borrower, asset_symbol))
    if old is None:
        return None, None
    accrued, _ = _accrue_peer(view, old)
    return old, accrued


def _pool_debt(position: Dict[str, Any]) -> int:
    return position['loan_principal'] + position['accrued_interest']


def _peer_debt(loan: Optional[Dict[str, Any]]) -> int:
    return loan['principal'] + loan['accrued_interest'] if loan else 0


def _open_request_lock(view: LedgerView, owner: str, asset_symbol: str) -> int:
    """Collateral reserved by owner's open loan request in this asset."""
    request = load_loan_request(view, owner)
    if request is None or not request.is_open or request.asset != asset_symbol:
        return 0
    return request.collateral_amount


def _contract_id(operation: str, owner: str, asset_symbol: str) -> str:
    return f"{operation}:{owner}:{asset_symbol}"


# ============================================================================
# POOL ADMINISTRATION
# ============================================================================

def _require_ratio(min_collateral_ratio_bps: int) -> None:
    if (
        isinstance(min_collateral_ratio_bps, bool)
        or not isinstance(min_collateral_ratio_bps, int)
        or not BPS_DENOMINATOR <= min_collateral_ratio_bps <= MAX_COLLATERAL_RATIO_BPS
    ):
        raise InvalidParameter(
            f"min_collateral_ratio_bps must be within [{BPS_DENOMINATOR}, "
            f"{MAX_COLLATERAL_RATIO_BPS}], got {min_collateral_ratio_bps!r}"
        )


def compute_create_lending_pool(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    asset_symbol: str,
    min_collateral_ratio_bps: Optional[int] = None,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    require_admin(view, caller, cap)
    view.get_unit(asset_symbol)
    if view.has_record(pool_key(asset_symbol)):
        raise PoolAlreadyExists(f"lending pool for {asset_symbol} already exists")
    if min_collateral_ratio_bps is None:
        min_collateral_ratio_bps = params.default_min_collateral_ratio_bps
    _require_ratio(min_collateral_ratio_bps)

    pool = LendingPool(
        asset=asset_symbol,
        total_collateral=0,
        total_loans=0,
        available_liquidity=0,
        min_collateral_ratio_bps=min_collateral_ratio_bps,
        reserves=0,
        total_supplied=0,
    )
    events = [make_event(
        "PoolCreated", view.current_time,
        asset=asset_symbol, min_collateral_ratio_bps=min_collateral_ratio_bps,
    )]
    return build_transaction(
        view, [], [RecordChange(pool_key(asset_symbol), None, asdict(pool))], events,
        admin_origin(caller, "create_lending_pool"),
    )


def compute_set_min_collateral_ratio(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    asset_symbol: str,
    min_collateral_ratio_bps: int,
) -> PendingTransaction:
    require_admin(view, caller, cap)
    old = _require_pool(view, asset_symbol)
    _require_ratio(min_collateral_ratio_bps)
    new = {**old, 'min_collateral_ratio_bps': min_collateral_ratio_bps}
    events = [make_event(
        "MinCollateralRatioUpdated", view.current_time,
        asset=asset_symbol,
        old_ratio_bps=old['min_collateral_ratio_bps'],
        new_ratio_bps=min_collateral_ratio_bps,
    )]
    return build_transaction(
        view, [], [RecordChange(pool_key(asset_symbol), old, new)], events,
        admin_origin(caller, "set_min_collateral_ratio"),
    )


def compute_collect_reserves(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    asset_symbol: str,
    amount: int,
) -> PendingTransaction:
    """Pay accumulated interest reserves out to the admin."""
    require_admin(view, caller, cap)
    require_positive("amount", amount)
    old = _require_pool(view, asset_symbol)
    if old['reserves'] < amount:
        raise InsufficientPool(
            f"{asset_symbol} reserves are {old['reserves']}, cannot collect {amount}"
        )
    new = {**old, 'reserves': old['reserves'] - amount}
    moves = [Move(amount, asset_symbol, pool_wallet(asset_symbol), caller,
                  _contract_id("collect_reserves", caller, asset_symbol))]
    events = [make_event("ReservesCollected", view.current_time, admin=caller, asset=asset_symbol, amount=amount)]
    return build_transaction(
        view, moves, [RecordChange(pool_key(asset_symbol), old, new)], events,
        admin_origin(caller, "collect_reserves"),
    )


# ============================================================================
# LIQUIDITY
# ============================================================================

def compute_supply_liquidity(
    view: LedgerView, caller: str, asset_symbol: str, amount: int
) -> PendingTransaction:
    require_active(view)
    require_positive("amount", amount)
    require_account(view, caller)
    old_pool = _require_pool(view, asset_symbol)
    require_funds(view, caller, asset_symbol, amount)

    key = liquidity_share_key(caller, asset_symbol)
    old_share = view.get_record(key)
    supplied = old_share['supplied'] if old_share else 0
    new_share = asdict(LiquidityShare(owner=caller, asset=asset_symbol, supplied=supplied + amount))
    new_pool = {
        **old_pool,
        'available_liquidity': old_pool['available_liquidity'] + amount,
        'total_supplied': old_pool['total_supplied'] + amount,
    }

    moves = [Move(amount, asset_symbol, caller, pool_wallet(asset_symbol),
                  _contract_id("supply_liquidity", caller, asset_symbol))]
    changes = [
        RecordChange(key, old_share, new_share),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
        tvl_change(view, amount),
    ]
    events = [make_event(
        "LiquiditySupplied", view.current_time,
        supplier=caller, asset=asset_symbol, amount=amount, supplied=new_share['supplied'],
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "supply_liquidity"))


def compute_withdraw_liquidity(
    view: LedgerView, caller: str, asset_symbol: str, amount: int
) -> PendingTransaction:
    """
    Withdraw supplied liquidity.

    Limited by the caller's own share and by what is not currently lent out.
    """
    require_active(view)
    require_positive("amount", amount)
    old_pool = _require_pool(view, asset_symbol)
    key = liquidity_share_key(caller, asset_symbol)
    old_share = view.get_record(key)
    supplied = old_share['supplied'] if old_share else 0
    if supplied < amount:
        raise InsufficientPool(f"{caller} supplied {supplied} {asset_symbol}, cannot withdraw {amount}")
    if old_pool['available_liquidity'] < amount:
        raise InsufficientPool(
            f"{asset_symbol} pool has {old_pool['available_liquidity']} available, "
            f"cannot withdraw {amount}"
        )

    new_share = {**old_share, 'supplied': supplied - amount}
    new_pool = {
        **old_pool,
        'available_liquidity': old_pool['available_liquidity'] - amount,
        'total_supplied': old_pool['total_supplied'] - amount,
    }
    moves = [Move(amount, asset_symbol, pool_wallet(asset_symbol), caller,
                  _contract_id("withdraw_liquidity", caller, asset_symbol))]
    changes = [
        RecordChange(key, old_share, new_share),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
        tvl_change(view, -amount),
    ]
    events = [make_event(
        "LiquidityWithdrawn", view.current_time,
        supplier=caller, asset=asset_symbol, amount=amount, supplied=new_share['supplied'],
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "withdraw_liquidity"))


# ============================================================================
# COLLATERAL
# ============================================================================

def compute_deposit_collateral(
    view: LedgerView, caller: str, asset_symbol: str, amount: int
) -> PendingTransaction:
    """Move amount from caller into the vault, creating the position on first use."""
    require_active(view)
    require_positive("amount", amount)
    require_account(view, caller)
    old_pool = _require_pool(view, asset_symbol)
    require_funds(view, caller, asset_symbol, amount)

    now = view.current_time
    key = position_key(caller, asset_symbol)
    old_position = view.get_record(key)
    position, _ = _accrue(view, old_position or _empty_position(caller, asset_symbol, now), old_pool)
    new_position = {**position, 'collateral': position['collateral'] + amount}
    new_pool = {**old_pool, 'total_collateral': old_pool['total_collateral'] + amount}

    moves = [Move(amount, asset_symbol, caller, vault_wallet(asset_symbol),
                  _contract_id("deposit_collateral", caller, asset_symbol))]
    changes = [
        RecordChange(key, old_position, new_position),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
        tvl_change(view, amount),
    ]
    events = [make_event(
        "CollateralDeposited", now,
        owner=caller, asset=asset_symbol, amount=amount, collateral=new_position['collateral'],
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "deposit_collateral"))


def compute_withdraw_collateral(
    view: LedgerView, caller: str, asset_symbol: str, amount: int
) -> PendingTransaction:
    """
    Return amount of collateral to caller.

    Raises:
        InsufficientCollateral: collateral < amount, or the withdrawal would
            release collateral reserved by an open loan request
        Undercollateralized: with outstanding debt, collateral - amount
            falls below debt * min_ratio / 10000
    """
    require_active(view)
    require_positive("amount", amount)
    old_pool = _require_pool(view, asset_symbol)
    key = position_key(caller, asset_symbol)
    old_position = view.get_record(key)
    if old_position is None or old_position['collateral'] < amount:
        held = old_position['collateral'] if old_position else 0
        raise InsufficientCollateral(f"{caller} holds {held} {asset_symbol} collateral, cannot withdraw {amount}")

    position, _ = _accrue(view, old_position, old_pool)
    _, peer = _load_peer(view, caller, asset_symbol)
    debt = _pool_debt(position) + _peer_debt(peer)
    remaining = position['collateral'] - amount
    required = required_collateral(debt, old_pool['min_collateral_ratio_bps'])
    if debt > 0 and remaining < required:
        raise Undercollateralized(
            f"withdrawing {amount} leaves {remaining} collateral, debt of {debt} requires {required}"
        )
    locked = _open_request_lock(view, caller, asset_symbol)
    if locked and remaining < required + locked:
        raise InsufficientCollateral(
            f"{locked} {asset_symbol} collateral is reserved by an open loan request"
        )

    new_position = {**position, 'collateral': remaining}
    new_pool = {**old_pool, 'total_collateral': old_pool['total_collateral'] - amount}
    moves = [Move(amount, asset_symbol, vault_wallet(asset_symbol), caller,
                  _contract_id("withdraw_collateral", caller, asset_symbol))]
    changes = [
        RecordChange(key, old_position, new_position),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
        tvl_change(view, -amount),
    ]
    events = [make_event(
        "CollateralWithdrawn", view.current_time,
        owner=caller, asset=asset_symbol, amount=amount, collateral=remaining,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "withdraw_collateral"))


# ============================================================================
# BORROW / REPAY
# ============================================================================

def compute_borrow(
    view: LedgerView, caller: str, asset_symbol: str, amount: int
) -> PendingTransaction:
    """
    Draw amount from the pool against posted collateral.

    Interest on both the pool and the peer loan is rolled in before the
    check, and collateral reserved by an open loan request does not count.
    """
    require_active(view)
    require_positive("amount", amount)
    old_pool = _require_pool(view, asset_symbol)
    key = position_key(caller, asset_symbol)
    old_position = view.get_record(key)
    if old_position is None:
        raise InsufficientCollateral(f"{caller} has no {asset_symbol} collateral")

    position, _ = _accrue(view, old_position, old_pool)
    _, peer = _load_peer(view, caller, asset_symbol)
    new_debt = _pool_debt(position) + _peer_debt(peer) + amount
    required = required_collateral(new_debt, old_pool['min_collateral_ratio_bps'])
    locked = _open_request_lock(view, caller, asset_symbol)
    free = position['collateral'] - locked
    if free < required:
        raise InsufficientCollateral(
            f"debt of {new_debt} requires {required} collateral, {caller} has {free} free "
            f"({locked} reserved by an open loan request)"
        )
    new_loan = position['loan_principal'] + amount
    if old_pool['available_liquidity'] < amount:
        raise PoolExhausted(
            f"{asset_symbol} pool has {old_pool['available_liquidity']} available, cannot lend {amount}"
        )

    new_position = {**position, 'loan_principal': new_loan}
    new_pool = {
        **old_pool,
        'total_loans': old_pool['total_loans'] + amount,
        'available_liquidity': old_pool['available_liquidity'] - amount,
    }
    moves = [Move(amount, asset_symbol, pool_wallet(asset_symbol), caller,
                  _contract_id("borrow", caller, asset_symbol))]
    changes = [
        RecordChange(key, old_position, new_position),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
    ]
    events = [make_event(
        "Borrowed", view.current_time,
        borrower=caller, asset=asset_symbol, amount=amount, loan_principal=new_loan,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "borrow"))


def compute_repay(
    view: LedgerView, caller: str, asset_symbol: str, amount: int
) -> PendingTransaction:
    """
    Repay up to amount of debt.

    The payment is capped at the total debt; only the capped amount leaves
    the caller's wallet. The pool loan is settled first: its interest goes
    to reserves, its principal restores pool liquidity. Whatever remains
    pays the peer loan, interest then principal, straight to the lender.
    """
    require_active(view)
    require_positive("amount", amount)
    old_pool = _require_pool(view, asset_symbol)
    key = position_key(caller, asset_symbol)
    old_position = view.get_record(key)
    if old_position is None:
        raise NoOutstandingLoan(f"{caller} has no {asset_symbol} loan")

    position, _ = _accrue(view, old_position, old_pool)
    old_peer, peer = _load_peer(view, caller, asset_symbol)
    pool_debt = _pool_debt(position)
    debt = pool_debt + _peer_debt(peer)
    if debt == 0:
        raise NoOutstandingLoan(f"{caller} has no {asset_symbol} loan")

    actual = min(amount, debt)
    require_funds(view, caller, asset_symbol, actual)
    to_pool = min(actual, pool_debt)
    to_lender = actual - to_pool
    interest_paid = min(to_pool, position['accrued_interest'])
    principal_paid = to_pool - interest_paid

    new_position = {
        **position,
        'loan_principal': position['loan_principal'] - principal_paid,
        'accrued_interest': position['accrued_interest'] - interest_paid,
    }
    new_pool = {
        **old_pool,
        'total_loans': old_pool['total_loans'] - principal_paid,
        'available_liquidity': old_pool['available_liquidity'] + principal_paid,
        'reserves': old_pool['reserves'] + interest_paid,
    }
    contract_id = _contract_id("repay", caller, asset_symbol)
    moves = []
    if to_pool > 0:
        moves.append(Move(to_pool, asset_symbol, caller, pool_wallet(asset_symbol), contract_id))
    changes = [
        RecordChange(key, old_position, new_position),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
    ]

    peer_interest_paid = peer_principal_paid = 0
    remaining = _pool_debt(new_position)
    if peer is not None:
        peer_interest_paid = min(to_lender, peer['accrued_interest'])
        peer_principal_paid = to_lender - peer_interest_paid
        new_peer = {
            **peer,
            'principal': peer['principal'] - peer_principal_paid,
            'accrued_interest': peer['accrued_interest'] - peer_interest_paid,
        }
        changes.append(RecordChange(peer_loan_key(caller, asset_symbol), old_peer, new_peer))
        remaining += _peer_debt(new_peer)
        if to_lender > 0:
            moves.append(Move(to_lender, asset_symbol, caller, peer['lender'], contract_id))

    events = [make_event(
        "Repaid", view.current_time,
        borrower=caller, asset=asset_symbol, amount=actual,
        interest_paid=interest_paid, principal_paid=principal_paid,
        peer_interest_paid=peer_interest_paid, peer_principal_paid=peer_principal_paid,
        remaining=remaining,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "repay"))


def compute_accrue_interest(
    view: LedgerView, caller: str, owner: str, asset_symbol: str
) -> PendingTransaction:
    """Roll pending pool and peer interest into owner's records. Anyone may call this."""
    require_active(view)
    old_pool = _require_pool(view, asset_symbol)
    key = position_key(owner, asset_symbol)
    old_position = view.get_record(key)
    peer_key = peer_loan_key(owner, asset_symbol)
    old_peer = view.get_record(peer_key)
    has_pool_loan = old_position is not None and old_position['loan_principal'] > 0
    has_peer_loan = old_peer is not None and old_peer['principal'] > 0
    if not (has_pool_loan or has_peer_loan):
        raise NoOutstandingLoan(f"{owner} has no {asset_symbol} loan")

    new_position, interest = _accrue(view, old_position, old_pool)
    changes = [RecordChange(key, old_position, new_position)]
    peer_interest = 0
    accrued_interest = new_position['accrued_interest']
    if old_peer is not None:
        new_peer, peer_interest = _accrue_peer(view, old_peer)
        changes.append(RecordChange(peer_key, old_peer, new_peer))
        accrued_interest += new_peer['accrued_interest']

    events = [make_event(
        "InterestAccrued", view.current_time,
        owner=owner, asset=asset_symbol, interest=interest + peer_interest,
        peer_interest=peer_interest, accrued_interest=accrued_interest,
    )]
    return build_transaction(view, [], changes, events, user_origin(caller, "accrue_interest"))


# ============================================================================
# PEER LOAN REQUESTS
# ============================================================================

def compute_create_loan_request(
    view: LedgerView,
    caller: str,
    asset_symbol: str,
    amount: int,
    rate_bps: int,
    duration: int,
    collateral_amount: int,
) -> PendingTransaction:
    """
    Publish a request for a peer-funded loan.

    collateral_amount must already be posted and free: collateral not
    needed to carry the caller's current debt. It stays reserved until the
    request is fulfilled or cancelled. duration is in seconds and runs from
    fulfillment. A borrower carries at most one peer loan per asset.
    """
    require_active(view)
    require_positive("amount", amount)
    require_positive("rate_bps", rate_bps)
    require_positive("duration", duration)
    require_positive("collateral_amount", collateral_amount)
    pool = _require_pool(view, asset_symbol)

    existing = load_loan_request(view, caller)
    if existing is not None and existing.is_open:
        raise LoanRequestExists(f"{caller} already has open loan request {existing.id}")
    peer = get_peer_loan(view, caller, asset_symbol)
    if peer is not None and peer.debt > 0:
        raise LoanRequestExists(
            f"{caller} still owes {peer.debt} {asset_symbol} on peer loan {peer.request_id}"
        )

    collateral = get_position(view, caller, asset_symbol).collateral
    debt = total_debt(view, caller, asset_symbol)
    free = collateral - required_collateral(debt, pool['min_collateral_ratio_bps'])
    if free < collateral_amount:
        raise InsufficientCollateral(
            f"{caller} has {max(free, 0)} free {asset_symbol} collateral, request needs {collateral_amount}"
        )

    now = view.current_time
    old_registry = view.get_record(LOAN_REQUEST_REGISTRY_KEY)
    request = LoanRequest(
        id=old_registry['next_id'],
        borrower=caller,
        asset=asset_symbol,
        amount=amount,
        rate_bps=rate_bps,
        duration=duration,
        collateral_amount=collateral_amount,
        fulfilled=False,
        fulfiller=None,
        cancelled=False,
        created_at=now,
    )
    new_registry = {**old_registry, 'next_id': request.id + 1}
    key = loan_request_key(caller)
    changes = [
        RecordChange(key, view.get_record(key), asdict(request)),
        RecordChange(LOAN_REQUEST_REGISTRY_KEY, old_registry, new_registry),
    ]
    events = [make_event(
        "LoanRequested", now,
        request_id=request.id, borrower=caller, asset=asset_symbol, amount=amount,
        rate_bps=rate_bps, duration=duration, collateral_amount=collateral_amount,
    )]
    return build_transaction(view, [], changes, events, user_origin(caller, "create_loan_request"))


def compute_cancel_loan_request(view: LedgerView, caller: str) -> PendingTransaction:
    require_active(view)
    key = loan_request_key(caller)
    old = view.get_record(key)
    if old is None or old['cancelled'] or old['fulfilled']:
        raise LoanRequestNotFound(f"{caller} has no open loan request")
    new = {**old, 'cancelled': True}
    events = [make_event("LoanRequestCancelled", view.current_time, request_id=old['id'], borrower=caller)]
    return build_transaction(
        view, [], [RecordChange(key, old, new)], events,
        user_origin(caller, "cancel_loan_request"),
    )


def compute_fulfill_loan(view: LedgerView, caller: str, borrower: str) -> PendingTransaction:
    """
    Fund borrower's open request from caller's wallet.

    The fulfiller's funds go straight to the borrower and never enter the
    pool. The borrower now owes the fulfiller a PeerLoan accruing at the
    request's rate and due duration seconds from now.
    """
    require_active(view)
    key = loan_request_key(borrower)
    old_request = view.get_record(key)
    if old_request is None or old_request['cancelled']:
        raise LoanRequestNotFound(f"{borrower} has no open loan request")
    if old_request['fulfilled']:
        raise LoanAlreadyFulfilled(
            f"loan request {old_request['id']} was fulfilled by {old_request['fulfiller']}"
        )
    if caller == borrower:
        raise NotAuthorized(f"{caller} cannot fulfill its own loan request")
    require_account(view, caller)

    asset_symbol = old_request['asset']
    amount = old_request['amount']
    require_funds(view, caller, asset_symbol, amount)
    pool = _require_pool(view, asset_symbol)
    if view.get_record(position_key(borrower, asset_symbol)) is None:
        raise Undercollateralized(f"{borrower} has no {asset_symbol} collateral")
    collateral = get_position(view, borrower, asset_symbol).collateral
    new_debt = total_debt(view, borrower, asset_symbol) + amount
    required = required_collateral(new_debt, pool['min_collateral_ratio_bps'])
    if collateral < required:
        raise Undercollateralized(
            f"{borrower} holds {collateral} collateral, debt of {new_debt} requires {required}"
        )

    now = view.current_time
    loan = PeerLoan(
        request_id=old_request['id'],
        borrower=borrower,
        lender=caller,
        asset=asset_symbol,
        principal=amount,
        accrued_interest=0,
        rate_bps=old_request['rate_bps'],
        due_at=now + timedelta(seconds=old_request['duration']),
        last_update=now,
    )
    loan_key = peer_loan_key(borrower, asset_symbol)
    new_request = {**old_request, 'fulfilled': True, 'fulfiller': caller}

    moves = [Move(amount, asset_symbol, caller, borrower,
                  _contract_id("fulfill_loan", borrower, asset_symbol))]
    changes = [
        RecordChange(key, old_request, new_request),
        RecordChange(loan_key, view.get_record(loan_key), asdict(loan)),
    ]
    events = [make_event(
        "LoanFulfilled", now,
        request_id=old_request['id'], borrower=borrower, fulfiller=caller,
        asset=asset_symbol, amount=amount, rate_bps=loan.rate_bps, due_at=loan.due_at,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "fulfill_loan"))


# ============================================================================
# LIQUIDATION
# ============================================================================

def compute_liquidate(
    view: LedgerView,
    caller: str,
    user: str,
    asset_symbol: str,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    """
    Repay user's whole debt and seize all of user's collateral.

    Allowed while collateral < debt * min_ratio / 10000, where debt covers
    the pool and the peer loan with interest; a position exactly at the
    threshold is safe. The liquidator pays the pool debt into the pool and
    the peer debt to the lender. The emitted event carries a dispute
    deadline for off-ledger review; nothing here enforces it.
    """
    require_active(view)
    if caller == user:
        raise NotAuthorized(f"{caller} cannot liquidate its own position")
    require_account(view, caller)
    old_pool = _require_pool(view, asset_symbol)
    key = position_key(user, asset_symbol)
    old_position = view.get_record(key)
    if old_position is None:
        raise NotLiquidatable(f"{user} has no {asset_symbol} position")

    now = view.current_time
    position, _ = _accrue(view, old_position, old_pool)
    old_peer, peer = _load_peer(view, user, asset_symbol)
    loan = position['loan_principal']
    interest = position['accrued_interest']
    collateral = position['collateral']
    pool_debt = loan + interest
    peer_debt = _peer_debt(peer)
    debt = pool_debt + peer_debt
    ratio = old_pool['min_collateral_ratio_bps']
    if not is_liquidatable(collateral, debt, ratio):
        raise NotLiquidatable(
            f"{user} holds {collateral} collateral against debt {debt}, "
            f"threshold is {required_collateral(debt, ratio)}"
        )
    # a lender liquidating its own borrower takes the collateral in place of payment
    to_lender = peer_debt if peer is not None and peer['lender'] != caller else 0
    require_funds(view, caller, asset_symbol, pool_debt + to_lender)

    contract_id = _contract_id("liquidate", user, asset_symbol)
    moves = []
    if pool_debt > 0:
        moves.append(Move(pool_debt, asset_symbol, caller, pool_wallet(asset_symbol), contract_id))
    if to_lender > 0:
        moves.append(Move(to_lender, asset_symbol, caller, peer['lender'], contract_id))
    if collateral > 0:
        moves.append(Move(collateral, asset_symbol, vault_wallet(asset_symbol), caller, contract_id))

    new_position = {**position, 'collateral': 0, 'loan_principal': 0, 'accrued_interest': 0}
    new_pool = {
        **old_pool,
        'total_collateral': old_pool['total_collateral'] - collateral,
        'total_loans': old_pool['total_loans'] - loan,
        'available_liquidity': old_pool['available_liquidity'] + loan,
        'reserves': old_pool['reserves'] + interest,
    }
    changes = [
        RecordChange(key, old_position, new_position),
        RecordChange(pool_key(asset_symbol), old_pool, new_pool),
        tvl_change(view, -collateral),
    ]
    if peer is not None:
        changes.append(RecordChange(
            peer_loan_key(user, asset_symbol), old_peer,
            {**peer, 'principal': 0, 'accrued_interest': 0},
        ))
    events = [make_event(
        "Liquidated", now,
        liquidator=caller, user=user, asset=asset_symbol,
        debt_repaid=debt, peer_debt_repaid=peer_debt,
        lender=peer['lender'] if peer is not None else None,
        collateral_seized=collateral,
        dispute_deadline=now + params.liquidation_dispute_window,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "liquidate"))


# ============================================================================
# GETTERS
# ============================================================================

def get_pool(view: LedgerView, asset_symbol: str) -> LendingPool:
    pool = load_pool(view, asset_symbol)
    if pool is None:
        raise PoolNotFound(f"no lending pool for {asset_symbol}")
    return pool


def get_position(view: LedgerView, owner: str, asset_symbol: str) -> LendingPosition:
    """owner's position with interest projected to now; all zeros if none exists."""
    raw = view.get_record(position_key(owner, asset_symbol))
    pool = view.get_record(pool_key(asset_symbol))
    if raw is None:
        return LendingPosition(owner, asset_symbol, 0, 0, 0, None)
    if pool is None or load_rate_model(view) is None:
        return LendingPosition(**raw)
    accrued, _ = _accrue(view, raw, pool)
    return LendingPosition(**accrued)


def get_liquidity_share(view: LedgerView, owner: str, asset_symbol: str) -> int:
    share = load_liquidity_share(view, owner, asset_symbol)
    return share.supplied if share else 0


def get_loan_request(view: LedgerView, borrower: str) -> Optional[LoanRequest]:
    return load_loan_request(view, borrower)


def get_peer_loan(view: LedgerView, borrower: str, asset_symbol: str) -> Optional[PeerLoan]:
    """borrower's peer loan in asset_symbol with interest projected to now."""
    _, accrued = _load_peer(view, borrower, asset_symbol)
    return PeerLoan(**accrued) if accrued is not None else None


def total_debt(view: LedgerView, owner: str, asset_symbol: str) -> int:
    """Pool debt plus peer debt, interest projected to now."""
    peer = get_peer_loan(view, owner, asset_symbol)
    return get_position(view, owner, asset_symbol).debt + (peer.debt if peer else 0)


def utilization(view: LedgerView, asset_symbol: str) -> int:
    pool = get_pool(view, asset_symbol)
    return calculate_utilization(pool.total_loans, pool.available_liquidity)


def current_borrow_rate(view: LedgerView, asset_symbol: str) -> int:
    model = load_rate_model(view)
    if model is None:
        return 0
    return calculate_rate(model, utilization(view, asset_symbol))


def health_factor_bps(view: LedgerView, owner: str, asset_symbol: str) -> Optional[int]:
    pool = get_pool(view, asset_symbol)
    collateral = get_position(view, owner, asset_symbol).collateral
    return calculate_health_factor_bps(
        collateral, total_debt(view, owner, asset_symbol), pool.min_collateral_ratio_bps
    )


def borrowing_capacity(view: LedgerView, owner: str, asset_symbol: str) -> int:
    """Further pool borrowing the position supports, the same test borrow applies."""
    pool = get_pool(view, asset_symbol)
    free = get_position(view, owner, asset_symbol).collateral - _open_request_lock(view, owner, asset_symbol)
    return calculate_borrowing_capacity(
        free, total_debt(view, owner, asset_symbol), pool.min_collateral_ratio_bps
    )


def credit_limit_hint(view: LedgerView, owner: str, asset_symbol: str) -> int:
    """Borrowing capacity scaled by owner's trust score."""
    return credit_limit(borrowing_capacity(view, owner, asset_symbol), get_score(view, owner))
