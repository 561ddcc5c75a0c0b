"""
Components module - one module per protocol component.

Each module holds frozen dataclasses for its records, pure calculate_*
functions, load_* adapters, compute_* operations returning a
PendingTransaction, and read-only getters:

- admin: protocol config, pause switch, admin capability
- interest_rate: utilization-based rate curve and rate proposals
- trust: trust scores and endorsements
- lending: collateral, pool liquidity, borrowing, loan requests, liquidation
- circles: staking circles and bidding rounds
- payments: escrowed payments
"""

from . import admin, interest_rate, trust, lending, circles, payments

__all__ = ['admin', 'interest_rate', 'trust', 'lending', 'circles', 'payments']
