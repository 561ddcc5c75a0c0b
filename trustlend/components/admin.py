"""
admin.py - ProtocolAdmin: global configuration, pause switch, admin transfer

The ProtocolConfig singleton is the gate every other component consults:
require_active() raises NotInitialized before initialization and
ProtocolPaused while the protocol is paused. Privileged operations take an
AdminCapability and pass only while the capability's digest matches the one
recorded in the config and its owner is the caller.

Total value locked is maintained here as a single number: collateral posted
plus liquidity supplied, across all assets, in base units.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from ..core import (
    LedgerView, PendingTransaction, RecordChange, AdminCapability,
    PROTOCOL_CONFIG_KEY, CIRCLE_REGISTRY_KEY, PAYMENT_REGISTRY_KEY,
    LOAN_REQUEST_REGISTRY_KEY, GOVERNANCE_KEY, INTEREST_RATE_MODEL_KEY,
    NotInitialized, AlreadyInitialized, ProtocolPaused, NotAuthorized,
    InvalidParameter,
    build_transaction, admin_origin, make_event, token_digest, require_account,
)
from ..config import ProtocolParameters, DEFAULT_PARAMETERS


@dataclass(frozen=True, slots=True)
class ProtocolConfig:
    """Snapshot of the global configuration singleton."""
    admin: str
    admin_digest: str
    version: int
    paused: bool
    total_value_locked: int
    initialized_at: datetime


def load_protocol_config(view: LedgerView) -> Optional[ProtocolConfig]:
    raw = view.get_record(PROTOCOL_CONFIG_KEY)
    if raw is None:
        return None
    return ProtocolConfig(**raw)


def require_initialized(view: LedgerView) -> ProtocolConfig:
    config = load_protocol_config(view)
    if config is None:
        raise NotInitialized("protocol has not been initialized")
    return config


def require_active(view: LedgerView) -> ProtocolConfig:
    """The gate: initialized and not paused."""
    config = require_initialized(view)
    if config.paused:
        raise ProtocolPaused("protocol is paused")
    return config


def require_admin(view: LedgerView, caller: str, cap: Optional[AdminCapability]) -> ProtocolConfig:
    """Check that caller holds the live admin capability."""
    config = require_initialized(view)
    if cap is None or not isinstance(cap, AdminCapability):
        raise NotAuthorized(f"{caller} presented no admin capability")
    if cap.owner != caller or caller != config.admin:
        raise NotAuthorized(f"{caller} is not the protocol admin")
    if cap.digest != config.admin_digest:
        raise NotAuthorized("admin capability has been revoked")
    return config


def _initial_rate_model(params: ProtocolParameters, now: datetime) -> Dict[str, Any]:
    """Rate model record seeded from params, in InterestRateModel field order."""
    return {
        'base_rate_bps': params.base_rate_bps,
        'optimal_utilization_bps': params.optimal_utilization_bps,
        'slope1_bps': params.slope1_bps,
        'slope2_bps': params.slope2_bps,
        'last_update': now,
    }


def tvl_change(view: LedgerView, delta: int) -> RecordChange:
    """Record change adjusting total value locked by delta."""
    old = view.get_record(PROTOCOL_CONFIG_KEY)
    new = {**old, 'total_value_locked': old['total_value_locked'] + delta}
    return RecordChange(PROTOCOL_CONFIG_KEY, old, new)


# ============================================================================
# OPERATIONS
# ============================================================================

def compute_initialize_protocol(
    view: LedgerView,
    caller: str,
    token: str,
    params: ProtocolParameters = DEFAULT_PARAMETERS,
) -> PendingTransaction:
    """
    Create the config singleton, the rate model and the id registries.

    caller becomes admin; token is the secret of the AdminCapability the
    caller receives, only its digest is stored.
    """
    if view.has_record(PROTOCOL_CONFIG_KEY):
        raise AlreadyInitialized("protocol is already initialized")
    require_account(view, caller)
    if not token:
        raise InvalidParameter("admin token cannot be empty")

    now = view.current_time
    config = ProtocolConfig(
        admin=caller,
        admin_digest=token_digest(token),
        version=params.protocol_version,
        paused=False,
        total_value_locked=0,
        initialized_at=now,
    )
    changes = [
        RecordChange(PROTOCOL_CONFIG_KEY, None, asdict(config)),
        RecordChange(INTEREST_RATE_MODEL_KEY, None, _initial_rate_model(params, now)),
        RecordChange(GOVERNANCE_KEY, None, {'next_id': 1, 'proposals': []}),
        RecordChange(CIRCLE_REGISTRY_KEY, None, {'next_id': 1, 'owners': []}),
        RecordChange(PAYMENT_REGISTRY_KEY, None, {'next_id': 1}),
        RecordChange(LOAN_REQUEST_REGISTRY_KEY, None, {'next_id': 1}),
    ]
    events = [make_event("ProtocolInitialized", now, admin=caller, version=config.version)]
    return build_transaction(view, [], changes, events, admin_origin(caller, "initialize_protocol"))


def compute_set_paused(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    paused: bool,
) -> PendingTransaction:
    require_admin(view, caller, cap)
    old = view.get_record(PROTOCOL_CONFIG_KEY)
    new = {**old, 'paused': bool(paused)}
    events = [make_event("PauseChanged", view.current_time, admin=caller, paused=bool(paused))]
    return build_transaction(
        view, [], [RecordChange(PROTOCOL_CONFIG_KEY, old, new)], events,
        admin_origin(caller, "set_paused"),
    )


def compute_transfer_admin(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    new_admin: str,
    new_token: str,
) -> PendingTransaction:
    """
    Hand admin rights to new_admin.

    The config records the digest of new_token, which revokes cap.
    """
    require_admin(view, caller, cap)
    require_account(view, new_admin)
    if new_admin == caller:
        raise InvalidParameter("new admin must differ from the current admin")
    if not new_token:
        raise InvalidParameter("admin token cannot be empty")
    old = view.get_record(PROTOCOL_CONFIG_KEY)
    new = {**old, 'admin': new_admin, 'admin_digest': token_digest(new_token)}
    events = [make_event("AdminTransferred", view.current_time, old_admin=caller, new_admin=new_admin)]
    return build_transaction(
        view, [], [RecordChange(PROTOCOL_CONFIG_KEY, old, new)], events,
        admin_origin(caller, "transfer_admin"),
    )


def compute_upgrade_version(
    view: LedgerView,
    caller: str,
    cap: AdminCapability,
    new_version: int,
) -> PendingTransaction:
    config = require_admin(view, caller, cap)
    if isinstance(new_version, bool) or not isinstance(new_version, int) or new_version <= config.version:
        raise InvalidParameter(
            f"version must increase: current {config.version}, got {new_version}"
        )
    old = view.get_record(PROTOCOL_CONFIG_KEY)
    new = {**old, 'version': new_version}
    events = [make_event(
        "ProtocolUpgraded", view.current_time,
        admin=caller, old_version=config.version, new_version=new_version,
    )]
    return build_transaction(
        view, [], [RecordChange(PROTOCOL_CONFIG_KEY, old, new)], events,
        admin_origin(caller, "upgrade_version"),
    )


# ============================================================================
# GETTERS
# ============================================================================

def is_paused(view: LedgerView) -> bool:
    config = load_protocol_config(view)
    return bool(config and config.paused)


def total_value_locked(view: LedgerView) -> int:
    config = load_protocol_config(view)
    return config.total_value_locked if config else 0
