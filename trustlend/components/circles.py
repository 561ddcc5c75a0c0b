"""
circles.py - CircleEngine: pooled group lending by staking and bidding

A circle is owned by the account that created it; every account owns at
most one. Members join by staking at least min_contribution of the circle's
asset. Stakes of all circles of one asset are held together in the
circles:<ASSET> wallet and accounted per circle in CircleStake records:

    circle.total_pool == sum(stake.stake_amount for its members)

The owner opens bidding rounds (7 days by default, a new round replaces the
previous one). Members bid for pool funds backed by their stake:

    stake_amount >= amount * 200 / 100

The owner then pays out the first unaccepted bid of a chosen member. The
payout is charged against all stakes pro rata, so the pool identity above
keeps holding; the winner's `received` total records what was drawn.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Any

from ..core import (
    LedgerView, Move, PendingTransaction, RecordChange,
    CIRCLE_REGISTRY_KEY,
    CircleNotFound, CircleExists, CircleInactive, CircleFull, AlreadyMember, NotMember,
    InsufficientStake, InsufficientPool, BiddingClosed, BidNotFound, InvalidParameter,
    InvalidAmount,
    circle_key, circle_stake_key, bidding_round_key, circle_wallet,
    require_positive, require_account, require_funds,
    build_transaction, user_origin, make_event,
)
from ..config import ProtocolParameters, DEFAULT_PARAMETERS
from .admin import require_active


@dataclass(frozen=True, slots=True)
class Circle:
    id: int
    owner: str
    name: str
    asset: str
    members: Tuple[str, ...]
    max_members: int
    total_pool: int
    min_contribution: int
    active: bool
    created_at: datetime


@dataclass(frozen=True, slots=True)
class CircleStake:
    circle_id: int
    member: str
    stake_amount: int
    staked_at: datetime
    received: int = 0


@dataclass(frozen=True, slots=True)
class Bid:
    bidder: str
    amount: int
    rate_bps: int
    accepted: bool
    submitted_at: datetime


@dataclass(frozen=True, slots=True)
class BiddingRound:
    circle_id: int
    round_number: int
    bids: Tuple[Bid, ...]
    start_time: datetime
    end_time: datetime
    active: bool

    def is_open(self, now: datetime) -> bool:
        return self.active and now <= self.end_time


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_min_stake(amount: int, stake_to_loan_ratio_pct: int = 200) -> int:
    return amount * stake_to_loan_ratio_pct // 100


def calculate_pro_rata_charges(stakes: List[Tuple[str, int]], amount: int) -> Dict[str, int]:
    """
    Split amount across stakes in proportion to their size.

    Each member is charged the floor of its share; the units left over are
    charged one at a time in member order. No member is charged more than
    its stake. Requires 0 <= amount <= sum of stakes.
    """
    total = sum(stake for _, stake in stakes)
    if amount > total:
        raise InsufficientPool(f"cannot charge {amount} against stakes totalling {total}")
    if amount == 0 or total == 0:
        return {member: 0 for member, _ in stakes}

    charges = {member: amount * stake // total for member, stake in stakes}
    remainder = amount - sum(charges.values())
    for member, stake in stakes:
        if remainder == 0:
            break
        if stake - charges[member] > 0:
            charges[member] += 1
            remainder -= 1
    return charges


# ============================================================================
# ADAPTERS
# ============================================================================

def load_circle(view: LedgerView, owner: str) -> Optional[Circle]:
    raw = view.get_record(circle_key(owner))
    if raw is None:
        return None
    return Circle(**{**raw, 'members': tuple(raw['members'])})


def load_stake(view: LedgerView, circle_id: int, member: str) -> Optional[CircleStake]:
    raw = view.get_record(circle_stake_key(circle_id, member))
    return CircleStake(**raw) if raw is not None else None


def load_bidding_round(view: LedgerView, owner: str) -> Optional[BiddingRound]:
    raw = view.get_record(bidding_round_key(owner))
    if raw is None:
        return None
    return BiddingRound(**{**raw, 'bids': tuple(Bid(**b) for b in raw['bids'])})


def _require_circle(view: LedgerView, owner: str) -> Dict[str, Any]:
    raw = view.get_record(circle_key(owner))
    if raw is None:
        raise CircleNotFound(f"{owner} owns no circle")
    return raw


def _require_active_circle(view: LedgerView, owner: str) -> Dict[str, Any]:
    raw = _require_circle(view, owner)
    if not raw['active']:
        raise CircleInactive(f"circle {raw['id']} of {owner} is inactive")
    return raw


def _contract_id(operation: str, circle_id: int) -> str:
    return f"{operation}:circle:{circle_id}"


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_create_circle(
    view: LedgerView,
    caller: str,
    asset_symbol: str,
    name: str,
    max_members: int,
    min_contribution: int,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    require_active(view)
    require_account(view, caller)
    view.get_unit(asset_symbol)
    if (
        isinstance(max_members, bool)
        or not isinstance(max_members, int)
        or not 0 < max_members <= params.max_circle_members
    ):
        raise InvalidParameter(
            f"max_members must be within (0, {params.max_circle_members}], got {max_members!r}"
        )
    require_positive("min_contribution", min_contribution)
    key = circle_key(caller)
    if view.has_record(key):
        raise CircleExists(f"{caller} already owns a circle")

    now = view.current_time
    old_registry = view.get_record(CIRCLE_REGISTRY_KEY)
    circle = Circle(
        id=old_registry['next_id'],
        owner=caller,
        name=name,
        asset=asset_symbol,
        members=(caller,),
        max_members=max_members,
        total_pool=0,
        min_contribution=min_contribution,
        active=True,
        created_at=now,
    )
    state = asdict(circle)
    state['members'] = [caller]
    new_registry = {
        'next_id': circle.id + 1,
        'owners': old_registry['owners'] + [caller],
    }
    changes = [
        RecordChange(key, None, state),
        RecordChange(CIRCLE_REGISTRY_KEY, old_registry, new_registry),
    ]
    events = [make_event(
        "CircleCreated", now,
        circle_id=circle.id, owner=caller, name=name, asset=asset_symbol,
        max_members=max_members, min_contribution=min_contribution,
    )]
    return build_transaction(view, [], changes, events, user_origin(caller, "create_circle"))


def compute_join_circle(
    view: LedgerView, caller: str, owner: str, stake_amount: int
) -> PendingTransaction:
    """
    Join owner's circle with an initial stake.

    Emits MemberJoined and StakeDeposited.
    """
    require_active(view)
    require_positive("stake_amount", stake_amount)
    require_account(view, caller)
    old_circle = _require_active_circle(view, owner)
    if caller in old_circle['members']:
        raise AlreadyMember(f"{caller} is already a member of circle {old_circle['id']}")
    if len(old_circle['members']) >= old_circle['max_members']:
        raise CircleFull(f"circle {old_circle['id']} has {old_circle['max_members']} members")
    if stake_amount < old_circle['min_contribution']:
        raise InsufficientStake(
            f"stake {stake_amount} is below the minimum contribution {old_circle['min_contribution']}"
        )
    asset_symbol = old_circle['asset']
    require_funds(view, caller, asset_symbol, stake_amount)

    now = view.current_time
    circle_id = old_circle['id']
    stake = CircleStake(circle_id=circle_id, member=caller, stake_amount=stake_amount, staked_at=now)
    new_circle = {
        **old_circle,
        'members': old_circle['members'] + [caller],
        'total_pool': old_circle['total_pool'] + stake_amount,
    }
    stake_key = circle_stake_key(circle_id, caller)
    moves = [Move(stake_amount, asset_symbol, caller, circle_wallet(asset_symbol),
                  _contract_id("join_circle", circle_id))]
    changes = [
        RecordChange(circle_key(owner), old_circle, new_circle),
        RecordChange(stake_key, view.get_record(stake_key), asdict(stake)),
    ]
    events = [
        make_event("MemberJoined", now, circle_id=circle_id, member=caller),
        make_event(
            "StakeDeposited", now,
            circle_id=circle_id, member=caller, amount=stake_amount, stake_amount=stake_amount,
        ),
    ]
    return build_transaction(view, moves, changes, events, user_origin(caller, "join_circle"))


def compute_add_stake(
    view: LedgerView, caller: str, owner: str, amount: int
) -> PendingTransaction:
    """Top up the caller's stake in owner's circle. The owner may stake too."""
    require_active(view)
    require_positive("amount", amount)
    old_circle = _require_active_circle(view, owner)
    if caller not in old_circle['members']:
        raise NotMember(f"{caller} is not a member of circle {old_circle['id']}")
    asset_symbol = old_circle['asset']
    require_funds(view, caller, asset_symbol, amount)

    now = view.current_time
    circle_id = old_circle['id']
    stake_key = circle_stake_key(circle_id, caller)
    old_stake = view.get_record(stake_key)
    if old_stake is None:
        new_stake = asdict(CircleStake(circle_id=circle_id, member=caller, stake_amount=amount, staked_at=now))
    else:
        new_stake = {**old_stake, 'stake_amount': old_stake['stake_amount'] + amount}
    new_circle = {**old_circle, 'total_pool': old_circle['total_pool'] + amount}

    moves = [Move(amount, asset_symbol, caller, circle_wallet(asset_symbol),
                  _contract_id("add_stake", circle_id))]
    changes = [
        RecordChange(circle_key(owner), old_circle, new_circle),
        RecordChange(stake_key, old_stake, new_stake),
    ]
    events = [make_event(
        "StakeDeposited", now,
        circle_id=circle_id, member=caller, amount=amount, stake_amount=new_stake['stake_amount'],
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "add_stake"))


def compute_start_bidding_round(
    view: LedgerView,
    caller: str,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    """Open a new round on the caller's circle, superseding any previous one."""
    require_active(view)
    circle = _require_active_circle(view, caller)

    now = view.current_time
    key = bidding_round_key(caller)
    old_round = view.get_record(key)
    round_number = old_round['round_number'] + 1 if old_round else 1
    new_round = {
        'circle_id': circle['id'],
        'round_number': round_number,
        'bids': [],
        'start_time': now,
        'end_time': now + params.bidding_period,
        'active': True,
    }
    events = [make_event(
        "BiddingRoundStarted", now,
        circle_id=circle['id'], round_number=round_number, end_time=new_round['end_time'],
    )]
    return build_transaction(
        view, [], [RecordChange(key, old_round, new_round)], events,
        user_origin(caller, "start_bidding_round"),
    )


def compute_submit_bid(
    view: LedgerView,
    caller: str,
    owner: str,
    amount: int,
    rate_bps: int,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    require_active(view)
    require_positive("amount", amount)
    if isinstance(rate_bps, bool) or not isinstance(rate_bps, int) or rate_bps < 0:
        raise InvalidAmount(f"rate_bps must be a non-negative integer, got {rate_bps!r}")
    circle = _require_circle(view, owner)
    circle_id = circle['id']
    if caller not in circle['members']:
        raise NotMember(f"{caller} is not a member of circle {circle_id}")
    stake = load_stake(view, circle_id, caller)
    if stake is None:
        raise InsufficientStake(f"{caller} has no stake in circle {circle_id}")
    needed = calculate_min_stake(amount, params.stake_to_loan_ratio_pct)
    if stake.stake_amount < needed:
        raise InsufficientStake(
            f"bid of {amount} needs a stake of {needed}, {caller} staked {stake.stake_amount}"
        )
    if circle['total_pool'] < amount:
        raise InsufficientPool(f"circle {circle_id} pool holds {circle['total_pool']}, bid is {amount}")

    now = view.current_time
    key = bidding_round_key(owner)
    old_round = view.get_record(key)
    if old_round is None or not old_round['active'] or now > old_round['end_time']:
        raise BiddingClosed(f"circle {circle_id} has no open bidding round")

    bid = Bid(bidder=caller, amount=amount, rate_bps=rate_bps, accepted=False, submitted_at=now)
    new_round = {**old_round, 'bids': old_round['bids'] + [asdict(bid)]}
    events = [make_event(
        "BidSubmitted", now,
        circle_id=circle_id, round_number=old_round['round_number'],
        bidder=caller, amount=amount, rate_bps=rate_bps,
    )]
    return build_transaction(
        view, [], [RecordChange(key, old_round, new_round)], events,
        user_origin(caller, "submit_bid"),
    )


def compute_distribute_funds(view: LedgerView, caller: str, winner: str) -> PendingTransaction:
    """
    Pay out winner's oldest unaccepted bid from the caller's circle.

    The bid need not come from the current round's time window; a closed
    round can still be settled. The amount is charged to stakes pro rata.
    """
    require_active(view)
    old_circle = _require_circle(view, caller)
    circle_id = old_circle['id']
    key = bidding_round_key(caller)
    old_round = view.get_record(key)
    index = None
    if old_round is not None:
        for i, bid in enumerate(old_round['bids']):
            if bid['bidder'] == winner and not bid['accepted']:
                index = i
                break
    if index is None:
        raise BidNotFound(f"{winner} has no unaccepted bid in circle {circle_id}")
    bid = old_round['bids'][index]
    amount = bid['amount']
    if old_circle['total_pool'] < amount:
        raise InsufficientPool(
            f"circle {circle_id} pool holds {old_circle['total_pool']}, bid is {amount}"
        )

    old_stakes: Dict[str, Dict[str, Any]] = {}
    for member in old_circle['members']:
        raw = view.get_record(circle_stake_key(circle_id, member))
        if raw is not None:
            old_stakes[member] = raw
    charges = calculate_pro_rata_charges(
        [(member, raw['stake_amount']) for member, raw in old_stakes.items()], amount
    )

    changes = []
    for member, raw in old_stakes.items():
        new = {**raw, 'stake_amount': raw['stake_amount'] - charges[member]}
        if member == winner:
            new['received'] = raw['received'] + amount
        if new != raw:
            changes.append(RecordChange(circle_stake_key(circle_id, member), raw, new))

    new_bids = list(old_round['bids'])
    new_bids[index] = {**bid, 'accepted': True}
    changes.append(RecordChange(key, old_round, {**old_round, 'bids': new_bids}))
    changes.append(RecordChange(
        circle_key(caller), old_circle, {**old_circle, 'total_pool': old_circle['total_pool'] - amount}
    ))

    asset_symbol = old_circle['asset']
    moves = [Move(amount, asset_symbol, circle_wallet(asset_symbol), winner,
                  _contract_id("distribute_funds", circle_id))]
    events = [make_event(
        "FundsDistributed", view.current_time,
        circle_id=circle_id, round_number=old_round['round_number'],
        winner=winner, amount=amount, rate_bps=bid['rate_bps'],
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "distribute_funds"))


def compute_deactivate_circle(view: LedgerView, caller: str) -> PendingTransaction:
    """Close the caller's circle to joins and bids. Stakes stay in place."""
    require_active(view)
    old_circle = _require_active_circle(view, caller)
    changes = [RecordChange(circle_key(caller), old_circle, {**old_circle, 'active': False})]
    key = bidding_round_key(caller)
    old_round = view.get_record(key)
    if old_round is not None and old_round['active']:
        changes.append(RecordChange(key, old_round, {**old_round, 'active': False}))
    events = [make_event("CircleDeactivated", view.current_time, circle_id=old_circle['id'], owner=caller)]
    return build_transaction(view, [], changes, events, user_origin(caller, "deactivate_circle"))


# ============================================================================
# GETTERS
# ============================================================================

def get_circle(view: LedgerView, owner: str) -> Circle:
    circle = load_circle(view, owner)
    if circle is None:
        raise CircleNotFound(f"{owner} owns no circle")
    return circle


def get_circle_stake(view: LedgerView, owner: str, member: str) -> int:
    """member's stake in owner's circle; 0 when there is none."""
    circle = load_circle(view, owner)
    if circle is None:
        return 0
    stake = load_stake(view, circle.id, member)
    return stake.stake_amount if stake else 0


def get_bidding_round(view: LedgerView, owner: str) -> Optional[BiddingRound]:
    return load_bidding_round(view, owner)


def is_member(view: LedgerView, owner: str, member: str) -> bool:
    circle = load_circle(view, owner)
    return bool(circle and member in circle.members)


def list_circle_owners(view: LedgerView) -> List[str]:
    raw = view.get_record(CIRCLE_REGISTRY_KEY)
    return list(raw['owners']) if raw else []
