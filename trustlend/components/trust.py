"""
trust.py - TrustEngine: per-account reputation and endorsement graph

A TrustScore is created by its owner, starts at 500 and stays within
[0, 1000]. Every adjustment saturates at the bounds instead of failing:

    successful transaction  +5
    failed transaction      -20
    endorsement received    +10

Each account may endorse another at most once and never itself.

Lending reads scores through credit_limit(); nothing in this module
moves funds.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Optional, Tuple

from ..core import (
    LedgerView, PendingTransaction, RecordChange, AdminCapability,
    MAX_TRUST_SCORE, TRUST_DELTA_SUCCESS, TRUST_DELTA_FAILURE, TRUST_DELTA_ENDORSEMENT,
    AccountNotRegistered, AlreadyEndorsed, SelfEndorsement, InvalidTrustScore, InvalidAmount,
    trust_score_key, saturating_add, require_account,
    build_transaction, user_origin, admin_origin, make_event,
)
from ..config import ProtocolParameters, DEFAULT_PARAMETERS
from .admin import require_active, require_admin


@dataclass(frozen=True, slots=True)
class TrustScore:
    owner: str
    score: int
    successful_transactions: int
    failed_transactions: int
    total_borrowed: int
    total_repaid: int
    endorsers: Tuple[str, ...] = field(default_factory=tuple)
    last_update: Optional[datetime] = None


def load_trust_score(view: LedgerView, owner: str) -> Optional[TrustScore]:
    raw = view.get_record(trust_score_key(owner))
    if raw is None:
        return None
    return TrustScore(**{**raw, 'endorsers': tuple(raw['endorsers'])})


def _require_score(view: LedgerView, owner: str) -> dict:
    raw = view.get_record(trust_score_key(owner))
    if raw is None:
        raise AccountNotRegistered(f"{owner} has no trust score")
    return raw


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def credit_limit(base_limit: int, score: int) -> int:
    """Scale base_limit by score / 1000, truncating."""
    return base_limit * score // MAX_TRUST_SCORE


def reputation_level(score: int) -> int:
    if score >= 900:
        return 5
    if score >= 750:
        return 4
    if score >= 600:
        return 3
    if score >= 400:
        return 2
    if score >= 200:
        return 1
    return 0


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_register_trust_score(
    view: LedgerView,
    caller: str,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    require_active(view)
    require_account(view, caller)
    key = trust_score_key(caller)
    if view.has_record(key):
        raise InvalidTrustScore(f"{caller} already has a trust score")

    now = view.current_time
    score = TrustScore(
        owner=caller,
        score=params.initial_trust_score,
        successful_transactions=0,
        failed_transactions=0,
        total_borrowed=0,
        total_repaid=0,
        last_update=now,
    )
    state = asdict(score)
    state['endorsers'] = []
    events = [make_event("TrustScoreRegistered", now, owner=caller, score=score.score)]
    return build_transaction(
        view, [], [RecordChange(key, None, state)], events,
        user_origin(caller, "register_trust_score"),
    )


def compute_endorse(view: LedgerView, caller: str, endorsed: str) -> PendingTransaction:
    """Caller vouches for endorsed, raising endorsed's score by 10 (saturating)."""
    require_active(view)
    if caller == endorsed:
        raise SelfEndorsement(f"{caller} cannot endorse itself")
    _require_score(view, caller)
    old = _require_score(view, endorsed)
    if caller in old['endorsers']:
        raise AlreadyEndorsed(f"{caller} already endorsed {endorsed}")

    now = view.current_time
    new = {
        **old,
        'score': saturating_add(old['score'], TRUST_DELTA_ENDORSEMENT),
        'endorsers': old['endorsers'] + [caller],
        'last_update': now,
    }
    events = [make_event(
        "Endorsed", now, endorser=caller, endorsed=endorsed, new_score=new['score'],
    )]
    return build_transaction(
        view, [], [RecordChange(trust_score_key(endorsed), old, new)], events,
        user_origin(caller, "endorse"),
    )


def compute_record_transaction(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    account: str,
    success: bool,
) -> PendingTransaction:
    """Apply the +5 / -20 outcome adjustment to account's score."""
    require_admin(view, caller, cap)
    old = _require_score(view, account)

    now = view.current_time
    if success:
        new = {
            **old,
            'score': saturating_add(old['score'], TRUST_DELTA_SUCCESS),
            'successful_transactions': old['successful_transactions'] + 1,
        }
    else:
        new = {
            **old,
            'score': saturating_add(old['score'], TRUST_DELTA_FAILURE),
            'failed_transactions': old['failed_transactions'] + 1,
        }
    new['last_update'] = now
    events = [make_event(
        "TrustScoreUpdated", now,
        account=account, success=bool(success), old_score=old['score'], new_score=new['score'],
    )]
    return build_transaction(
        view, [], [RecordChange(trust_score_key(account), old, new)], events,
        admin_origin(caller, "record_transaction"),
    )


def compute_record_loan_activity(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    account: str,
    borrowed: int = 0,
    repaid: int = 0,
) -> PendingTransaction:
    require_admin(view, caller, cap)
    for name, value in (('borrowed', borrowed), ('repaid', repaid)):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidAmount(f"{name} must be a non-negative integer, got {value!r}")
    if borrowed == 0 and repaid == 0:
        raise InvalidAmount("nothing to record")
    old = _require_score(view, account)

    now = view.current_time
    new = {
        **old,
        'total_borrowed': old['total_borrowed'] + borrowed,
        'total_repaid': old['total_repaid'] + repaid,
        'last_update': now,
    }
    events = [make_event("LoanActivityRecorded", now, account=account, borrowed=borrowed, repaid=repaid)]
    return build_transaction(
        view, [], [RecordChange(trust_score_key(account), old, new)], events,
        admin_origin(caller, "record_loan_activity"),
    )


# ============================================================================
# GETTERS
# ============================================================================

def get_score(view: LedgerView, owner: str) -> int:
    """Current score; 0 when owner never registered."""
    score = load_trust_score(view, owner)
    return score.score if score else 0


def has_endorsed(view: LedgerView, endorser: str, endorsed: str) -> bool:
    score = load_trust_score(view, endorsed)
    return bool(score and endorser in score.endorsers)
