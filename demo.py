#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: a TrustLend deployment step by step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL SEE:
  1-3:  Setup       - Ledger, listed asset, accounts, initialization
  4-6:  Lending     - Liquidity, collateral, borrowing, interest, repayment
  7:    Liquidation - A position pushed past its threshold
  8:    Peer Loans  - A request funded by another account, repaid to it
  9:    Trust       - Scores, endorsements, credit limits
  10:   Circles     - Staking, bidding, pro rata payout
  11:   Payments    - Escrow, completion, cancellation
  12:   Invariants  - Conservation and pool accounting

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
import sys

from trustlend import (
    Ledger, LendingProtocol, AdminCapability, Move, ExecuteResult,
    build_transaction, SYSTEM_WALLET,
    InsufficientCollateral, NotLiquidatable, InsufficientStake,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    asset: str = "USDC"
    initial_balance: int = 100_000
    supplied_liquidity: int = 60_000
    collateral: int = 20_000
    admin_token: str = "tutorial-admin"


CONFIG = DemoConfig()
ACCOUNTS = ("admin", "alice", "bob", "carol", "dave")

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_pool(protocol: LendingProtocol):
    pool = protocol.get_pool(CONFIG.asset)
    print(f"Available liquidity: {pool.available_liquidity:>10,}")
    print(f"Total loans:         {pool.total_loans:>10,}")
    print(f"Total collateral:    {pool.total_collateral:>10,}")
    print(f"Reserves:            {pool.reserves:>10,}")
    print(f"Utilization:         {protocol.utilization(CONFIG.asset) / 100:>9.2f}%")
    print(f"Borrow rate:         {protocol.current_borrow_rate(CONFIG.asset) / 100:>9.2f}%")


# ============================================================================
# PHASE 1: SETUP
# ============================================================================

def step_01_deployment() -> LendingProtocol:
    step_header(1, "The Deployment",
        "A protocol is a facade over one Ledger; assets and accounts are registered first.")

    ledger = Ledger("tutorial", initial_time=CONFIG.start_time, verbose=False)
    protocol = LendingProtocol(ledger)
    protocol.list_asset(CONFIG.asset, "USD Coin")
    for account in ACCOUNTS:
        protocol.open_account(account)
        tx = build_transaction(ledger, [
            Move(CONFIG.initial_balance, CONFIG.asset, SYSTEM_WALLET, account, f"faucet:{account}")
        ])
        assert ledger.execute(tx) == ExecuteResult.APPLIED

    section_header("Wallets")
    for wallet in sorted(ledger.list_wallets()):
        print(f"{wallet:<16} {int(ledger.get_balance(wallet, CONFIG.asset)):>10,}")
    print("""
    pool:, vault:, escrow: and circles: wallets hold protocol funds.
    The system wallet's negative balance is everything issued so far.
    """)
    return protocol


def step_02_initialize(protocol: LendingProtocol) -> AdminCapability:
    step_header(2, "Initialization",
        "The first caller becomes admin and receives the only AdminCapability.")

    cap = protocol.initialize_protocol("admin", CONFIG.admin_token)
    config = protocol.get_config()
    print(f"Admin:    {config.admin}")
    print(f"Version:  {config.version}")
    print(f"Paused:   {config.paused}")
    print(f"Digest:   {config.admin_digest[:16]}...  (the token itself is never stored)")
    return cap


def step_03_pool(protocol: LendingProtocol, cap: AdminCapability):
    step_header(3, "A Lending Pool", "The admin opens a USDC pool with a 150% minimum ratio.")
    protocol.create_lending_pool("admin", cap, CONFIG.asset, 15000)
    model = protocol.get_rate_model()
    print(f"Base rate {model.base_rate_bps} bps, kink at {model.optimal_utilization_bps} bps,")
    print(f"slopes {model.slope1_bps} / {model.slope2_bps} bps")
    for u in (0, 4000, 8000, 9000, 10000):
        print(f"  utilization {u / 100:>6.2f}% -> rate {protocol.rate(u) / 100:>6.2f}%")


# ============================================================================
# PHASE 2: LENDING
# ============================================================================

def step_04_supply_and_collateral(protocol: LendingProtocol):
    step_header(4, "Liquidity and Collateral",
        "Suppliers fund the pool; borrowers lock collateral in the vault.")
    protocol.supply_liquidity("dave", CONFIG.asset, CONFIG.supplied_liquidity)
    protocol.deposit_collateral("alice", CONFIG.asset, CONFIG.collateral)
    print(f"alice can borrow up to {protocol.borrowing_capacity('alice', CONFIG.asset):,}")
    print(f"Total value locked: {protocol.total_value_locked():,}")


def step_05_borrow(protocol: LendingProtocol):
    step_header(5, "Borrowing", "Loans are limited by collateral * 10000 / min_ratio.")
    capacity = protocol.borrowing_capacity("alice", CONFIG.asset)
    try:
        protocol.borrow("alice", CONFIG.asset, capacity + 1)
    except InsufficientCollateral as exc:
        print(f"borrow({capacity + 1:,}) rejected: {exc}")
    protocol.borrow("alice", CONFIG.asset, 10_000)
    print("borrow(10,000) applied")
    section_header("Pool")
    show_pool(protocol)


def step_06_interest(protocol: LendingProtocol):
    step_header(6, "Interest", "Interest accrues on principal at the pool's current rate.")
    protocol.ledger.advance_time(protocol.ledger.current_time + timedelta(days=365))
    position = protocol.get_position("alice", CONFIG.asset)
    print(f"After one year alice owes {position.loan_principal:,} + {position.accrued_interest:,} interest")
    paid = protocol.repay("alice", CONFIG.asset, 1_000_000)
    print(f"repay(1,000,000) took only {paid:,}: payments are capped at the debt")
    section_header("Pool")
    show_pool(protocol)


def step_07_liquidation(protocol: LendingProtocol, cap: AdminCapability):
    step_header(7, "Liquidation",
        "A position is liquidatable only while collateral < debt * ratio / 10000.")
    protocol.deposit_collateral("bob", CONFIG.asset, 15_000)
    protocol.borrow("bob", CONFIG.asset, 10_000)
    print(f"bob health factor: {protocol.health_factor_bps('bob', CONFIG.asset)} bps (exactly at threshold)")
    try:
        protocol.liquidate("carol", "bob", CONFIG.asset)
    except NotLiquidatable as exc:
        print(f"liquidate rejected: {exc}")

    protocol.set_min_collateral_ratio("admin", cap, CONFIG.asset, 16000)
    print(f"After raising the ratio: {protocol.health_factor_bps('bob', CONFIG.asset)} bps")
    protocol.liquidate("carol", "bob", CONFIG.asset)
    event = protocol.events("Liquidated")[-1].data_dict
    print(f"carol repaid {event['debt_repaid']:,} and seized {event['collateral_seized']:,}")
    print(f"Dispute window closes at {event['dispute_deadline']}")
    protocol.set_min_collateral_ratio("admin", cap, CONFIG.asset, 15000)



def step_08_peer_loan(protocol: LendingProtocol):
    step_header(8, "Peer Loans",
        "A fulfilled request is owed to its lender at the agreed rate, outside the pool.")
    protocol.create_loan_request("alice", CONFIG.asset, 5_000, 900, 90 * 86_400, 10_000)
    print(f"alice reserved 10,000 collateral; borrowing capacity now "
          f"{protocol.borrowing_capacity('alice', CONFIG.asset):,}")
    protocol.fulfill_loan("dave", "alice")
    loan = protocol.get_peer_loan("alice", CONFIG.asset)
    print(f"dave lent {loan.principal:,} at {loan.rate_bps} bps, due {loan.due_at}")

    protocol.ledger.advance_time(loan.due_at)
    owed = protocol.total_debt("alice", CONFIG.asset)
    before = protocol.balance("dave", CONFIG.asset)
    protocol.repay("alice", CONFIG.asset, owed)
    print(f"alice repaid {owed:,}; dave received {protocol.balance('dave', CONFIG.asset) - before:,}")
    print(f"Pool utilization stayed at {protocol.utilization(CONFIG.asset)} bps")


# ============================================================================
# PHASE 3: SOCIAL FEATURES
# ============================================================================

def step_09_trust(protocol: LendingProtocol, cap: AdminCapability):
    step_header(9, "Trust", "Scores start at 500 and move with endorsements and outcomes.")
    for account in ("alice", "bob", "carol"):
        protocol.register_trust_score(account)
    protocol.endorse("bob", "alice")
    protocol.endorse("carol", "alice")
    protocol.record_transaction("admin", cap, "alice", True)
    protocol.record_transaction("admin", cap, "bob", False)
    for account in ("alice", "bob", "carol"):
        print(
            f"{account:<6} score {protocol.trust_score(account):>4}  "
            f"level {protocol.reputation_level(account)}  "
            f"limit on 10,000: {protocol.credit_limit(account, 10_000):>6,}"
        )
    print(f"alice's trust-scaled borrowing hint: {protocol.credit_limit_hint('alice', CONFIG.asset):,}")


def step_10_circles(protocol: LendingProtocol):
    step_header(10, "Lending Circles", "Members stake, bid against their stake and share payouts pro rata.")
    protocol.create_circle("carol", CONFIG.asset, "Neighbourhood fund", 5, 500)
    protocol.join_circle("alice", "carol", 6000)
    protocol.join_circle("dave", "carol", 2000)
    protocol.start_bidding_round("carol")
    try:
        protocol.submit_bid("dave", "carol", 1001, 400)
    except InsufficientStake as exc:
        print(f"dave's bid rejected: {exc}")
    protocol.submit_bid("alice", "carol", 3000, 400)
    amount = protocol.distribute_funds("carol", "alice")
    print(f"alice received {amount:,} from the circle")
    for member in ("alice", "dave"):
        print(f"  {member:<6} stake now {protocol.get_circle_stake('carol', member):,}")
    print(f"Circle pool: {protocol.get_circle('carol').total_pool:,}")


def step_11_payments(protocol: LendingProtocol):
    step_header(11, "Escrowed Payments", "Funds wait in escrow until the payee completes or the payer cancels.")
    protocol.open_payment_account("bob", CONFIG.asset)
    first = protocol.create_payment("alice", CONFIG.asset, "bob", 750, "garden work")
    second = protocol.create_payment("alice", CONFIG.asset, "bob", 300, "duplicate invoice")
    print(f"Escrow holds {protocol.balance('escrow:' + CONFIG.asset, CONFIG.asset):,}")
    protocol.complete_payment("bob", first)
    protocol.cancel_payment("alice", second)
    for payment_id in (first, second):
        payment = protocol.get_payment(payment_id)
        print(f"  payment {payment_id}: {payment.status.value:<9} {payment.amount:>5,}  {payment.description}")


def step_12_invariants(protocol: LendingProtocol):
    step_header(12, "Invariants", "Every committed operation preserves the accounting identities.")
    result = protocol.ledger.verify_double_entry()
    pool = protocol.get_pool(CONFIG.asset)
    print(f"Double entry holds:                    {result['valid']}")
    print(f"available + loans == supplied:         "
          f"{pool.available_liquidity + pool.total_loans == pool.total_supplied}")
    print(f"pool wallet == available + reserves:   "
          f"{protocol.balance('pool:' + CONFIG.asset, CONFIG.asset) == pool.available_liquidity + pool.reserves}")
    print(f"vault wallet == total collateral:      "
          f"{protocol.balance('vault:' + CONFIG.asset, CONFIG.asset) == pool.total_collateral}")
    print(f"Events logged:                         {len(protocol.events())}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("=" * 70)
    print("       TRUSTLEND - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    protocol = step_01_deployment()
    wait_for_enter()
    cap = step_02_initialize(protocol)
    wait_for_enter()
    step_03_pool(protocol, cap)
    wait_for_enter()

    step_04_supply_and_collateral(protocol)
    wait_for_enter()
    step_05_borrow(protocol)
    wait_for_enter()
    step_06_interest(protocol)
    wait_for_enter()
    step_07_liquidation(protocol, cap)
    wait_for_enter()
    step_08_peer_loan(protocol)
    wait_for_enter()

    step_09_trust(protocol, cap)
    wait_for_enter()
    step_10_circles(protocol)
    wait_for_enter()
    step_11_payments(protocol)
    wait_for_enter()

    step_12_invariants(protocol)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See trustlend/components/*.py for the operations
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
