"""
payments.py - PaymentEscrow: payer-to-payee transfers held in escrow

A payment moves the amount from the payer into escrow:<ASSET> and waits.
The payee completes it (escrow pays the payee) or the payer cancels it
(escrow refunds the payer). Status moves only out of PENDING:

    PENDING -> COMPLETED | CANCELLED

FAILED exists for an external failure path and is never set here.

Payees must have opened a PaymentAccount for the asset before they can be
paid; the payer's account is opened on first use. For every account:

    escrow_balance == sum(amount of its own PENDING outgoing payments)
"""

from __future__ import annotations
from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Optional, Tuple, Dict, Any

from ..core import (
    LedgerView, Move, PendingTransaction, RecordChange, PaymentStatus,
    PAYMENT_REGISTRY_KEY,
    PaymentNotFound, InvalidPaymentStatus, NotAuthorized, AccountNotRegistered,
    InvalidParameter,
    payment_key, payment_account_key, escrow_wallet,
    require_positive, require_account, require_funds,
    build_transaction, user_origin, make_event,
)
from .admin import require_active


@dataclass(frozen=True, slots=True)
class Payment:
    id: int
    payer: str
    payee: str
    asset: str
    amount: int
    status: PaymentStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class PaymentAccount:
    owner: str
    asset: str
    incoming: Tuple[int, ...] = field(default_factory=tuple)
    outgoing: Tuple[int, ...] = field(default_factory=tuple)
    escrow_balance: int = 0
    total_sent: int = 0
    total_received: int = 0


def load_payment(view: LedgerView, payment_id: int) -> Optional[Payment]:
    raw = view.get_record(payment_key(payment_id))
    if raw is None:
        return None
    return Payment(**{**raw, 'status': PaymentStatus(raw['status'])})


def load_payment_account(view: LedgerView, owner: str, asset_symbol: str) -> Optional[PaymentAccount]:
    raw = view.get_record(payment_account_key(owner, asset_symbol))
    if raw is None:
        return None
    return PaymentAccount(**{**raw, 'incoming': tuple(raw['incoming']), 'outgoing': tuple(raw['outgoing'])})


def _new_account(owner: str, asset_symbol: str) -> Dict[str, Any]:
    return {
        'owner': owner,
        'asset': asset_symbol,
        'incoming': [],
        'outgoing': [],
        'escrow_balance': 0,
        'total_sent': 0,
        'total_received': 0,
    }


def _contract_id(operation: str, payment_id: int) -> str:
    return f"{operation}:payment:{payment_id}"


def _load_for_settlement(view: LedgerView, payment_id: int) -> Dict[str, Any]:
    raw = view.get_record(payment_key(payment_id))
    if raw is None:
        raise PaymentNotFound(f"no payment with id {payment_id}")
    return raw


def _require_pending(raw: Dict[str, Any]) -> None:
    if raw['status'] != PaymentStatus.PENDING.value:
        raise InvalidPaymentStatus(f"payment {raw['id']} is {raw['status']}, not PENDING")


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_open_payment_account(view: LedgerView, caller: str, asset_symbol: str) -> PendingTransaction:
    """Opt in to receiving payments in asset_symbol."""
    require_active(view)
    require_account(view, caller)
    view.get_unit(asset_symbol)
    key = payment_account_key(caller, asset_symbol)
    if view.has_record(key):
        raise InvalidParameter(f"{caller} already has a {asset_symbol} payment account")
    events = [make_event("PaymentAccountOpened", view.current_time, owner=caller, asset=asset_symbol)]
    return build_transaction(
        view, [], [RecordChange(key, None, _new_account(caller, asset_symbol))], events,
        user_origin(caller, "open_payment_account"),
    )


def compute_create_payment(
    view: LedgerView,
    caller: str,
    asset_symbol: str,
    payee: str,
    amount: int,
    description: str = "",
) -> PendingTransaction:
    """
    Escrow amount from caller for payee.

    Raises:
        InvalidAmount: amount is not a positive integer
        InvalidParameter: caller pays itself
        AccountNotRegistered: payee has no payment account for the asset
        InsufficientFunds: caller cannot cover amount
    """
    require_active(view)
    require_positive("amount", amount)
    require_account(view, caller)
    if caller == payee:
        raise InvalidParameter(f"{caller} cannot pay itself")
    payee_key = payment_account_key(payee, asset_symbol)
    old_payee = view.get_record(payee_key)
    if old_payee is None:
        raise AccountNotRegistered(f"{payee} has no {asset_symbol} payment account")
    require_funds(view, caller, asset_symbol, amount)

    now = view.current_time
    old_registry = view.get_record(PAYMENT_REGISTRY_KEY)
    payment = Payment(
        id=old_registry['next_id'],
        payer=caller,
        payee=payee,
        asset=asset_symbol,
        amount=amount,
        status=PaymentStatus.PENDING,
        created_at=now,
        description=description,
    )
    state = asdict(payment)
    state['status'] = payment.status.value

    payer_key = payment_account_key(caller, asset_symbol)
    old_payer = view.get_record(payer_key)
    payer = old_payer or _new_account(caller, asset_symbol)
    new_payer = {
        **payer,
        'outgoing': payer['outgoing'] + [payment.id],
        'escrow_balance': payer['escrow_balance'] + amount,
    }
    new_payee = {**old_payee, 'incoming': old_payee['incoming'] + [payment.id]}

    moves = [Move(amount, asset_symbol, caller, escrow_wallet(asset_symbol),
                  _contract_id("create_payment", payment.id))]
    changes = [
        RecordChange(payment_key(payment.id), None, state),
        RecordChange(payer_key, old_payer, new_payer),
        RecordChange(payee_key, old_payee, new_payee),
        RecordChange(PAYMENT_REGISTRY_KEY, old_registry, {**old_registry, 'next_id': payment.id + 1}),
    ]
    events = [make_event(
        "PaymentCreated", now,
        payment_id=payment.id, payer=caller, payee=payee, asset=asset_symbol, amount=amount,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "create_payment"))


def compute_complete_payment(view: LedgerView, caller: str, payment_id: int) -> PendingTransaction:
    require_active(view)
    old = _load_for_settlement(view, payment_id)
    if caller != old['payee']:
        raise NotAuthorized(f"only payee {old['payee']} can complete payment {payment_id}")
    _require_pending(old)
    asset_symbol = old['asset']
    payee_key = payment_account_key(old['payee'], asset_symbol)
    old_payee = view.get_record(payee_key)
    if old_payee is None or payment_id not in old_payee['incoming']:
        raise PaymentNotFound(f"payment {payment_id} is not pending for {caller}")
    payer_key = payment_account_key(old['payer'], asset_symbol)
    old_payer = view.get_record(payer_key)

    now = view.current_time
    amount = old['amount']
    new_payer = {
        **old_payer,
        'outgoing': [i for i in old_payer['outgoing'] if i != payment_id],
        'escrow_balance': old_payer['escrow_balance'] - amount,
        'total_sent': old_payer['total_sent'] + amount,
    }
    new_payee = {
        **old_payee,
        'incoming': [i for i in old_payee['incoming'] if i != payment_id],
        'total_received': old_payee['total_received'] + amount,
    }
    new = {**old, 'status': PaymentStatus.COMPLETED.value, 'completed_at': now}

    moves = [Move(amount, asset_symbol, escrow_wallet(asset_symbol), caller,
                  _contract_id("complete_payment", payment_id))]
    changes = [
        RecordChange(payment_key(payment_id), old, new),
        RecordChange(payer_key, old_payer, new_payer),
        RecordChange(payee_key, old_payee, new_payee),
    ]
    events = [make_event(
        "PaymentCompleted", now,
        payment_id=payment_id, payer=old['payer'], payee=caller, amount=amount,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "complete_payment"))


def compute_cancel_payment(view: LedgerView, caller: str, payment_id: int) -> PendingTransaction:
    """Refund a PENDING payment from escrow to its payer."""
    require_active(view)
    old = _load_for_settlement(view, payment_id)
    if caller != old['payer']:
        raise NotAuthorized(f"only payer {old['payer']} can cancel payment {payment_id}")
    _require_pending(old)
    asset_symbol = old['asset']
    payer_key = payment_account_key(caller, asset_symbol)
    old_payer = view.get_record(payer_key)
    if old_payer is None or payment_id not in old_payer['outgoing']:
        raise PaymentNotFound(f"payment {payment_id} is not pending for {caller}")
    payee_key = payment_account_key(old['payee'], asset_symbol)
    old_payee = view.get_record(payee_key)

    amount = old['amount']
    new_payer = {
        **old_payer,
        'outgoing': [i for i in old_payer['outgoing'] if i != payment_id],
        'escrow_balance': old_payer['escrow_balance'] - amount,
    }
    new_payee = {**old_payee, 'incoming': [i for i in old_payee['incoming'] if i != payment_id]}
    new = {**old, 'status': PaymentStatus.CANCELLED.value}

    moves = [Move(amount, asset_symbol, escrow_wallet(asset_symbol), caller,
                  _contract_id("cancel_payment", payment_id))]
    changes = [
        RecordChange(payment_key(payment_id), old, new),
        RecordChange(payer_key, old_payer, new_payer),
        RecordChange(payee_key, old_payee, new_payee),
    ]
    events = [make_event(
        "PaymentCancelled", view.current_time,
        payment_id=payment_id, payer=caller, payee=old['payee'], amount=amount,
    )]
    return build_transaction(view, moves, changes, events, user_origin(caller, "cancel_payment"))


# ============================================================================
# GETTERS
# ============================================================================

def get_payment(view: LedgerView, payment_id: int) -> Payment:
    payment = load_payment(view, payment_id)
    if payment is None:
        raise PaymentNotFound(f"no payment with id {payment_id}")
    return payment


def get_payment_account(view: LedgerView, owner: str, asset_symbol: str) -> Optional[PaymentAccount]:
    return load_payment_account(view, owner, asset_symbol)


def escrow_balance(view: LedgerView, owner: str, asset_symbol: str) -> int:
    account = load_payment_account(view, owner, asset_symbol)
    return account.escrow_balance if account else 0
