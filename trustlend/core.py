"""
Core types and pure functions for the lending protocol ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, RecordChange, ProtocolEvent,
   PendingTransaction, Transaction, Unit, AdminCapability
3. Exceptions: LedgerError, ProtocolError and the protocol error taxonomy
4. Record keys: one helper per entity table
5. Integer arithmetic helpers: basis points, saturating clamp, elapsed seconds
6. Unit factories: asset()

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Optional, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Balances are integral token amounts carried as Decimal so that moves stay
# exact. The context is configured once at module load.
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption of asset units.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

UNIT_TYPE_ASSET = "ASSET"

# 10000 bps = 100%
BPS_DENOMINATOR = 10000

# 365-day simple-interest year
SECONDS_PER_YEAR = 31_536_000

MIN_TRUST_SCORE = 0
MAX_TRUST_SCORE = 1000
INITIAL_TRUST_SCORE = 500
TRUST_DELTA_SUCCESS = 5
TRUST_DELTA_FAILURE = -20
TRUST_DELTA_ENDORSEMENT = 10

MAX_CIRCLE_MEMBERS = 100

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-12")

DECIMAL_ROUNDING = {
    UNIT_TYPE_ASSET: ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, Decimal]

# A single entity record (position, pool, circle, payment, ...).
RecordState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Compute functions accept a LedgerView to declare that they only read.
    The Ledger class implements this protocol but also provides mutation
    methods; tests may pass any object with the same shape.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Return the balance of a specific unit in a wallet.

        Returns Decimal("0") if the wallet holds none of the unit.
        """
        ...

    def get_record(self, key: str) -> Optional[RecordState]:
        """Return a deep copy of the record stored under key, or None."""
        ...

    def has_record(self, key: str) -> bool:
        """Return True if a record exists under key."""
        ...

    def is_registered(self, wallet_id: str) -> bool:
        """Return True if the wallet is registered."""
        ...

    @property
    def next_sequence(self) -> int:
        """Sequence number the next applied transaction will receive."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (balances, registration, stale records).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"
    ADMIN = "admin"


class PaymentStatus(Enum):
    """Payment states. FAILED is reserved for an external failure path."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a move would cause a wallet balance to fall below the unit's minimum."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class StaleRecord(LedgerError):
    """Raised when a record changed between reading it and committing a change to it."""
    pass


class ProtocolError(LedgerError):
    """Base class for protocol rule violations. Every subclass is one error kind."""
    pass


class NotInitialized(ProtocolError):
    pass


class AlreadyInitialized(ProtocolError):
    pass


class ProtocolPaused(ProtocolError):
    pass


class NotAuthorized(ProtocolError):
    pass


class InvalidAmount(ProtocolError):
    """Zero, negative or otherwise malformed amount."""
    pass


class InvalidParameter(ProtocolError):
    """Out-of-range configuration value (rates, ratios, versions)."""
    pass


class AccountNotRegistered(ProtocolError):
    """The counterparty has not opted in to the record type the operation needs."""
    pass


class InsufficientCollateral(ProtocolError):
    pass


class Undercollateralized(ProtocolError):
    pass


class NotLiquidatable(ProtocolError):
    pass


class PoolNotFound(ProtocolError):
    pass


class PoolAlreadyExists(ProtocolError):
    pass


class PoolExhausted(ProtocolError):
    pass


class NoOutstandingLoan(ProtocolError):
    pass


class LoanRequestNotFound(ProtocolError):
    pass


class LoanRequestExists(ProtocolError):
    pass


class LoanAlreadyFulfilled(ProtocolError):
    pass


class InsufficientStake(ProtocolError):
    pass


class InsufficientPool(ProtocolError):
    pass


class BiddingClosed(ProtocolError):
    pass


class BidNotFound(ProtocolError):
    pass


class CircleNotFound(ProtocolError):
    pass


class CircleExists(ProtocolError):
    pass


class CircleInactive(ProtocolError):
    pass


class CircleFull(ProtocolError):
    pass


class AlreadyMember(ProtocolError):
    pass


class NotMember(ProtocolError):
    pass


class PaymentNotFound(ProtocolError):
    pass


class InvalidPaymentStatus(ProtocolError):
    pass


class AlreadyEndorsed(ProtocolError):
    pass


class SelfEndorsement(ProtocolError):
    pass


class InvalidTrustScore(ProtocolError):
    pass


class ProposalNotFound(ProtocolError):
    pass


# ============================================================================
# RECORD KEYS
# ============================================================================
#
# Every entity table is a keyed map: (owner[, asset]) -> record.
#

PROTOCOL_CONFIG_KEY = "protocol_config"
INTEREST_RATE_MODEL_KEY = "interest_rate_model"
GOVERNANCE_KEY = "governance"
CIRCLE_REGISTRY_KEY = "circle_registry"
PAYMENT_REGISTRY_KEY = "payment_registry"
LOAN_REQUEST_REGISTRY_KEY = "loan_request_registry"


def position_key(owner: str, asset_symbol: str) -> str:
    return f"lending_position:{owner}:{asset_symbol}"


def pool_key(asset_symbol: str) -> str:
    return f"lending_pool:{asset_symbol}"


def liquidity_share_key(owner: str, asset_symbol: str) -> str:
    return f"liquidity_share:{owner}:{asset_symbol}"


def loan_request_key(borrower: str) -> str:
    return f"loan_request:{borrower}"


def peer_loan_key(borrower: str, asset_symbol: str) -> str:
    return f"peer_loan:{borrower}:{asset_symbol}"


def trust_score_key(owner: str) -> str:
    return f"trust_score:{owner}"


def circle_key(owner: str) -> str:
    return f"circle:{owner}"


def circle_stake_key(circle_id: int, member: str) -> str:
    return f"circle_stake:{circle_id}:{member}"


def bidding_round_key(owner: str) -> str:
    return f"bidding_round:{owner}"


def payment_key(payment_id: int) -> str:
    return f"payment:{payment_id}"


def payment_account_key(owner: str, asset_symbol: str) -> str:
    return f"payment_account:{owner}:{asset_symbol}"


# Protocol-held wallets

def pool_wallet(asset_symbol: str) -> str:
    return f"pool:{asset_symbol}"


def vault_wallet(asset_symbol: str) -> str:
    return f"vault:{asset_symbol}"


def escrow_wallet(asset_symbol: str) -> str:
    return f"escrow:{asset_symbol}"


def circle_wallet(asset_symbol: str) -> str:
    return f"circles:{asset_symbol}"


# ============================================================================
# INTEGER ARITHMETIC
# ============================================================================

def required_collateral(debt: int, min_ratio_bps: int) -> int:
    """Collateral needed to carry debt at min_ratio_bps (truncating)."""
    return debt * min_ratio_bps // BPS_DENOMINATOR


def saturating_add(value: int, delta: int, lo: int = MIN_TRUST_SCORE, hi: int = MAX_TRUST_SCORE) -> int:
    """Add delta to value and clamp into [lo, hi]."""
    return max(lo, min(hi, value + delta))


def elapsed_seconds(start: Optional[datetime], end: datetime) -> int:
    """Whole seconds from start to end; 0 if start is None or after end."""
    if start is None or end <= start:
        return 0
    return int((end - start).total_seconds())


def require_positive(name: str, value: int) -> None:
    """Raise InvalidAmount unless value is a positive int."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise InvalidAmount(f"{name} must be positive, got {value}")


def require_account(view: LedgerView, account: str) -> None:
    """Raise AccountNotRegistered unless the account has opened a wallet."""
    if not account or not view.is_registered(account):
        raise AccountNotRegistered(f"account {account!r} is not registered")


def wallet_amount(view: LedgerView, wallet_id: str, asset_symbol: str) -> int:
    """Whole-unit balance of asset_symbol held by wallet_id."""
    return int(view.get_balance(wallet_id, asset_symbol))


def require_funds(view: LedgerView, wallet_id: str, asset_symbol: str, amount: int) -> None:
    """Raise InsufficientFunds unless wallet_id holds at least amount."""
    balance = wallet_amount(view, wallet_id, asset_symbol)
    if balance < amount:
        raise InsufficientFunds(
            f"{wallet_id} holds {balance} {asset_symbol}, needs {amount}"
        )


# ============================================================================
# CAPABILITIES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AdminCapability:
    """
    Proof of admin rights.

    Issued only by protocol initialization and admin transfer. The ledger
    stores a digest of the token; a capability is honoured only while its
    digest matches the live one and its owner is the caller.
    """
    owner: str
    token: str = field(repr=False)

    @property
    def digest(self) -> str:
        return token_digest(self.token)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source (USER_ACTION or ADMIN)
        source_id: The caller that submitted the operation
        operation: Name of the protocol operation (e.g., "borrow")
    """
    origin_type: OriginType
    source_id: str
    operation: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.operation:
            parts.append(f"op={self.operation}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# RECORD CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class RecordChange:
    """
    Record of an entity change with complete before/after snapshots.

    old_state is None when the record is created by this change. The ledger
    rejects a change whose old_state no longer matches the committed record.
    """
    key: str
    old_state: Optional[RecordState]
    new_state: RecordState

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Fields that differ between old and new state, as (old, new) tuples."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ProtocolEvent:
    """
    Immutable event emitted by a state-changing operation.

    The event log is the only channel through which indexers observe the
    protocol. data holds the mutated identifiers and amounts as sorted pairs.
    """
    name: str
    timestamp: datetime
    data: Tuple[Tuple[str, Any], ...] = ()

    @property
    def data_dict(self) -> Dict[str, Any]:
        return dict(self.data)

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.data)
        return f"{self.name}({fields} @ {self.timestamp.isoformat()})"


def make_event(name: str, timestamp: datetime, /, **data: Any) -> ProtocolEvent:
    """Build a ProtocolEvent with its payload frozen in key order."""
    return ProtocolEvent(name=name, timestamp=timestamp, data=tuple(sorted(data.items())))


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The symbol of the asset being transferred (e.g., "USDC").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, int) and not isinstance(self.quantity, bool):
            object.__setattr__(self, 'quantity', Decimal(self.quantity))
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal or int, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """Canonical string for a Decimal: Decimal("1.0") and Decimal("1") agree."""
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order or Decimal scale.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    record_changes: Tuple[RecordChange, ...],
    events: Tuple[ProtocolEvent, ...],
    origin: TransactionOrigin,
    sequence: int = 0,
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based on the semantic content (moves, record changes, events, origin)
    and the ledger sequence the intent was built against, so two identical
    operations submitted one after the other remain distinct while the same
    built intent is never applied twice.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [
        f"seq:{sequence}",
        f"origin:{origin.origin_type.value}:{origin.source_id}",
    ]
    if origin.operation:
        content_parts.append(f"op:{origin.operation}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for rc in sorted(record_changes, key=lambda r: r.key):
        content_parts.append(
            f"record:{rc.key}|{_canonicalize(rc.old_state)}|{_canonicalize(rc.new_state)}"
        )

    for ev in events:
        content_parts.append(f"event:{ev.name}|{_canonicalize(dict(ev.data))}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Built by a compute_* function from a read-only view and submitted to
    Ledger.execute(), which validates and applies it atomically.

    Attributes:
        moves: Value transfers between wallets
        record_changes: Entity record changes (with old and new snapshots)
        events: Events to append to the event log on commit
        origin: Who submitted this and which operation it is
        timestamp: View time when the intent was built
        sequence: Ledger sequence number at build time
        intent_id: Content-addressable hash of the intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    record_changes: Tuple[RecordChange, ...]
    events: Tuple[ProtocolEvent, ...]
    origin: TransactionOrigin
    timestamp: datetime
    sequence: int = 0
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.record_changes, self.events, self.origin, self.sequence
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if there is nothing to move, change or emit."""
        return not self.moves and not self.record_changes and not self.events

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({len(self.moves)} moves, "
            f"{len(self.record_changes)} records, {len(self.events)} events, {self.origin})"
        )


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    record_changes: Optional[List[RecordChange]] = None,
    events: Optional[List[ProtocolEvent]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves, record changes and events.

    This is the standard way to create transactions. Record snapshots are
    deep-copied so later mutation of the caller's dicts cannot leak in.

    Example:
        def compute_touch(view, owner):
            key = trust_score_key(owner)
            old = view.get_record(key)
            new = {**old, "last_update": view.current_time}
            return build_transaction(view, [], [RecordChange(key, old, new)])
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.USER_ACTION,
            source_id="anonymous",
        )

    copied_changes: Tuple[RecordChange, ...] = ()
    if record_changes:
        copied_changes = tuple(
            RecordChange(
                key=rc.key,
                old_state=copy.deepcopy(rc.old_state),
                new_state=copy.deepcopy(rc.new_state),
            )
            for rc in record_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        record_changes=copied_changes,
        events=tuple(events or ()),
        origin=origin,
        timestamp=view.current_time,
        sequence=view.next_sequence,
    )


def user_origin(caller: str, operation: str) -> TransactionOrigin:
    return TransactionOrigin(OriginType.USER_ACTION, caller, operation)


def admin_origin(caller: str, operation: str) -> TransactionOrigin:
    return TransactionOrigin(OriginType.ADMIN, caller, operation)


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Value transfers between wallets
        record_changes: Entity record changes
        events: Events emitted by the operation
        origin: Who/what created this transaction
        timestamp: When the PendingTransaction was built
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
    """
    moves: Tuple[Move, ...]
    record_changes: Tuple[RecordChange, ...]
    events: Tuple[ProtocolEvent, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.record_changes and not self.events:
            raise ValueError("Transaction must have moves, record_changes, or events")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   execution_time : ' + str(self.execution_time))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.record_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Record Changes (' + str(len(self.record_changes)) + '):')}│")
            for rc in self.record_changes:
                lines.append(f"│{pad('   [' + rc.key + ']')}│")
                for field_name, (old_val, new_val) in rc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        if self.events:
            lines.append(f"├{bar}┤")
            for ev in self.events:
                lines.append(f"│{pad('   event: ' + repr(ev))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of an asset type held in wallets.

    Attributes:
        symbol: Short identifier for the unit (e.g., "USDC").
        name: Human-readable name for the unit.
        unit_type: Category of the unit.
        min_balance: Minimum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    decimal_places: Optional[int] = None

    def round(self, value: Decimal) -> Decimal:
        """Round a value to this unit's decimal precision."""
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(quantizer, rounding=rounding_mode)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def asset(symbol: str, name: str) -> Unit:
    """
    Create a fungible asset unit.

    Amounts are whole base units (decimal_places=0) and wallets cannot go
    negative: every outflow must be covered by the holder's balance.
    """
    if not symbol or not symbol.strip():
        raise ValueError("asset symbol cannot be empty")
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_ASSET,
        min_balance=Decimal("0"),
        decimal_places=0,
    )
