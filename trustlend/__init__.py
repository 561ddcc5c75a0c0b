"""
trustlend - Collateralized lending, staking circles, trust scores and payment escrow

All state lives in a double-entry Ledger. Each protocol operation is a pure
compute_* function that reads the ledger and returns a PendingTransaction;
the ledger applies it atomically or not at all.

Usage:
    from trustlend import LendingProtocol, Move, build_transaction, SYSTEM_WALLET

    protocol = LendingProtocol()
    protocol.list_asset("USDC", "USD Coin")
    for account in ("admin", "alice", "bob"):
        protocol.open_account(account)

    # Fund wallets via SYSTEM_WALLET (proper issuance)
    funding = build_transaction(protocol.ledger, [
        Move(50000, "USDC", SYSTEM_WALLET, "alice", "initial_balance"),
        Move(50000, "USDC", SYSTEM_WALLET, "bob", "initial_balance"),
    ])
    protocol.ledger.execute(funding)

    cap = protocol.initialize_protocol("admin")
    protocol.create_lending_pool("admin", cap, "USDC", 15000)

    protocol.supply_liquidity("bob", "USDC", 30000)
    protocol.deposit_collateral("alice", "USDC", 20000)
    protocol.borrow("alice", "USDC", 13333)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    RecordChange,
    ProtocolEvent,
    AdminCapability,
    PaymentStatus,
    build_transaction,
    make_event,
    Unit,
    asset,
    ExecuteResult,
    SYSTEM_WALLET,
    BPS_DENOMINATOR,
    SECONDS_PER_YEAR,
    MIN_TRUST_SCORE,
    MAX_TRUST_SCORE,
    INITIAL_TRUST_SCORE,
    required_collateral,
    pool_wallet,
    vault_wallet,
    escrow_wallet,
    circle_wallet,
    # Errors
    LedgerError,
    InsufficientFunds,
    UnitNotRegistered,
    WalletNotRegistered,
    StaleRecord,
    ProtocolError,
    NotInitialized,
    AlreadyInitialized,
    ProtocolPaused,
    NotAuthorized,
    InvalidAmount,
    InvalidParameter,
    AccountNotRegistered,
    InsufficientCollateral,
    Undercollateralized,
    NotLiquidatable,
    PoolNotFound,
    PoolAlreadyExists,
    PoolExhausted,
    NoOutstandingLoan,
    LoanRequestNotFound,
    LoanRequestExists,
    LoanAlreadyFulfilled,
    InsufficientStake,
    InsufficientPool,
    BiddingClosed,
    BidNotFound,
    CircleNotFound,
    CircleExists,
    CircleInactive,
    CircleFull,
    AlreadyMember,
    NotMember,
    PaymentNotFound,
    InvalidPaymentStatus,
    AlreadyEndorsed,
    SelfEndorsement,
    InvalidTrustScore,
    ProposalNotFound,
)

# Ledger
from .ledger import Ledger

# Configuration
from .config import ProtocolParameters, DEFAULT_PARAMETERS

# Interest rates
from .components.interest_rate import (
    InterestRateModel,
    RateProposal,
    calculate_rate,
    calculate_accrued_interest,
    calculate_utilization,
)

# Trust
from .components.trust import TrustScore, credit_limit, reputation_level

# Lending
from .components.lending import (
    LendingPool,
    LendingPosition,
    LiquidityShare,
    LoanRequest,
    PeerLoan,
    calculate_max_borrow,
    calculate_borrowing_capacity,
    calculate_health_factor_bps,
    is_liquidatable,
)

# Circles
from .components.circles import (
    Circle,
    CircleStake,
    Bid,
    BiddingRound,
    calculate_min_stake,
    calculate_pro_rata_charges,
)

# Payments
from .components.payments import Payment, PaymentAccount

# Admin
from .components.admin import ProtocolConfig

# Facade
from .protocol import LendingProtocol

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin', 'OriginType',
    'RecordChange', 'ProtocolEvent', 'AdminCapability', 'PaymentStatus',
    'build_transaction', 'make_event', 'Unit', 'asset', 'ExecuteResult',
    'SYSTEM_WALLET', 'BPS_DENOMINATOR', 'SECONDS_PER_YEAR',
    'MIN_TRUST_SCORE', 'MAX_TRUST_SCORE', 'INITIAL_TRUST_SCORE',
    'required_collateral', 'pool_wallet', 'vault_wallet', 'escrow_wallet', 'circle_wallet',
    # Errors
    'LedgerError', 'InsufficientFunds',
    'UnitNotRegistered', 'WalletNotRegistered', 'StaleRecord',
    'ProtocolError', 'NotInitialized', 'AlreadyInitialized', 'ProtocolPaused', 'NotAuthorized',
    'InvalidAmount', 'InvalidParameter', 'AccountNotRegistered',
    'InsufficientCollateral', 'Undercollateralized', 'NotLiquidatable',
    'PoolNotFound', 'PoolAlreadyExists', 'PoolExhausted', 'NoOutstandingLoan',
    'LoanRequestNotFound', 'LoanRequestExists', 'LoanAlreadyFulfilled',
    'InsufficientStake', 'InsufficientPool', 'BiddingClosed', 'BidNotFound',
    'CircleNotFound', 'CircleExists', 'CircleInactive', 'CircleFull', 'AlreadyMember', 'NotMember',
    'PaymentNotFound', 'InvalidPaymentStatus',
    'AlreadyEndorsed', 'SelfEndorsement', 'InvalidTrustScore', 'ProposalNotFound',
    # Ledger
    'Ledger',
    # Configuration
    'ProtocolParameters', 'DEFAULT_PARAMETERS',
    # Interest rates
    'InterestRateModel', 'RateProposal',
    'calculate_rate', 'calculate_accrued_interest', 'calculate_utilization',
    # Trust
    'TrustScore', 'credit_limit', 'reputation_level',
    # Lending
    'LendingPool', 'LendingPosition', 'LiquidityShare', 'LoanRequest', 'PeerLoan',
    'calculate_max_borrow', 'calculate_borrowing_capacity', 'calculate_health_factor_bps',
    'is_liquidatable',
    # Circles
    'Circle', 'CircleStake', 'Bid', 'BiddingRound',
    'calculate_min_stake', 'calculate_pro_rata_charges',
    # Payments
    'Payment', 'PaymentAccount',
    # Admin
    'ProtocolConfig',
    # Facade
    'LendingProtocol',
]

__version__ = '1.0.0'
