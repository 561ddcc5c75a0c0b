"""
helpers.py - Shared builders for protocol tests

- fund(): issue an asset to a wallet from the system wallet
- make_protocol(): listed asset, funded accounts, optional pool
- advance(): move the ledger clock forward
"""

from datetime import datetime, timedelta

from trustlend import (
    Ledger, LendingProtocol, Move, ExecuteResult, ProtocolParameters,
    build_transaction, SYSTEM_WALLET,
)


START = datetime(2025, 1, 1)
ACCOUNTS = ("admin", "alice", "bob", "carol", "dave")
ADMIN_TOKEN = "admin-secret"


def fund(ledger: Ledger, wallet: str, asset_symbol: str, amount: int) -> None:
    """Issue amount of asset_symbol to wallet from the system wallet."""
    tx = build_transaction(ledger, [
        Move(amount, asset_symbol, SYSTEM_WALLET, wallet, f"issue:{wallet}")
    ])
    assert ledger.execute(tx) == ExecuteResult.APPLIED


def make_protocol(initialize: bool = True, balance: int = 100_000, **params) -> LendingProtocol:
    """Protocol with USDC listed and ACCOUNTS funded; initialized with a 150% pool by default."""
    protocol = LendingProtocol(
        Ledger("test", initial_time=START, verbose=False),
        ProtocolParameters(**params),
    )
    protocol.list_asset("USDC", "USD Coin")
    for account in ACCOUNTS:
        protocol.open_account(account)
        fund(protocol.ledger, account, "USDC", balance)
    if initialize:
        cap = protocol.initialize_protocol("admin", ADMIN_TOKEN)
        protocol.create_lending_pool("admin", cap, "USDC", 15000)
    return protocol


def advance(protocol: LendingProtocol, **delta) -> None:
    protocol.ledger.advance_time(protocol.ledger.current_time + timedelta(**delta))
