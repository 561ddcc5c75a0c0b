"""
protocol.py - LendingProtocol: one entry point per protocol operation

LendingProtocol wires the pure compute_* functions of the components to a
single Ledger. Every operation:

1. builds a PendingTransaction from the ledger's read-only view
   (precondition failures raise here, before anything is submitted)
2. submits it to Ledger.execute(), which applies it atomically
3. raises the ledger's rejection reason if execution is rejected

so a call either returns with all of its effects committed or raises with
none of them. Operations take the caller identity as first argument.

Deployment setup (listing assets, opening accounts) sits outside the
protocol gate and goes straight to the ledger.
"""

from __future__ import annotations
import logging
import secrets
from typing import Any, Callable, Dict, List, Optional

from .core import (
    AdminCapability, ExecuteResult, LedgerError, PendingTransaction, ProtocolEvent,
    asset, pool_wallet, vault_wallet, escrow_wallet, circle_wallet,
)
from .config import ProtocolParameters, DEFAULT_PARAMETERS
from .ledger import Ledger
from .components import admin, circles, interest_rate, lending, payments, trust


logger = logging.getLogger(__name__)


class LendingProtocol:
    """
    Facade over one protocol deployment.

    Example:
        protocol = LendingProtocol()
        protocol.list_asset("USDC", "USD Coin")
        for account in ("admin", "alice", "bob"):
            protocol.open_account(account)
        cap = protocol.initialize_protocol("admin")
        protocol.create_lending_pool("admin", cap, "USDC")
    """

    def __init__(
        self,
        ledger: Optional[Ledger] = None,
        params: ProtocolParameters = DEFAULT_PARAMETERS,
    ):
        self.ledger = ledger if ledger is not None else Ledger("trustlend", verbose=False)
        self.params = params

    # ========================================================================
    # DEPLOYMENT SETUP
    # ========================================================================

    def list_asset(self, symbol: str, name: str) -> None:
        """Register an asset and the protocol wallets that hold it."""
        self.ledger.register_unit(asset(symbol, name))
        for wallet in (pool_wallet(symbol), vault_wallet(symbol), escrow_wallet(symbol), circle_wallet(symbol)):
            self.ledger.register_wallet(wallet)
        logger.info("Asset listed", extra={"event": "trustlend.asset_listed", "asset": symbol})

    def open_account(self, account: str) -> str:
        return self.ledger.register_wallet(account)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _run(
        self,
        operation: str,
        caller: str,
        compute: Callable[..., PendingTransaction],
        *args: Any,
        **kwargs: Any,
    ) -> PendingTransaction:
        try:
            pending = compute(self.ledger, caller, *args, **kwargs)
        except LedgerError as exc:
            logger.warning(
                "%s rejected", operation,
                extra={
                    "event": f"trustlend.{operation}_rejected",
                    "caller": caller,
                    "error": type(exc).__name__,
                    "reason": str(exc),
                },
            )
            raise

        result = self.ledger.execute(pending)
        if result == ExecuteResult.REJECTED:
            error_cls, reason = self.ledger.last_rejection
            logger.warning(
                "%s rejected by ledger", operation,
                extra={
                    "event": f"trustlend.{operation}_rejected",
                    "caller": caller,
                    "error": error_cls.__name__,
                    "reason": reason,
                },
            )
            raise error_cls(reason)

        logger.debug(
            "%s applied", operation,
            extra={"event": f"trustlend.{operation}", "caller": caller, "result": result.value},
        )
        return pending

    @staticmethod
    def _event_value(pending: PendingTransaction, name: str, key: str) -> Any:
        for event in pending.events:
            if event.name == name:
                return event.data_dict[key]
        raise KeyError(f"{name} event carries no {key}")

    # ========================================================================
    # PROTOCOL ADMIN
    # ========================================================================

    def initialize_protocol(self, caller: str, token: Optional[str] = None) -> AdminCapability:
        """Make caller the admin and return its capability."""
        token = token or secrets.token_hex(16)
        self._run("initialize_protocol", caller, admin.compute_initialize_protocol, token, self.params)
        logger.info("Protocol initialized", extra={"event": "trustlend.initialized", "admin": caller})
        return AdminCapability(owner=caller, token=token)

    def set_paused(self, caller: str, cap: AdminCapability, paused: bool) -> None:
        self._run("set_paused", caller, admin.compute_set_paused, cap, paused)
        logger.info("Pause switch set", extra={"event": "trustlend.paused", "paused": bool(paused)})

    def transfer_admin(
        self, caller: str, cap: AdminCapability, new_admin: str, new_token: Optional[str] = None
    ) -> AdminCapability:
        """Hand admin rights over. cap stops working; the returned capability belongs to new_admin."""
        new_token = new_token or secrets.token_hex(16)
        self._run("transfer_admin", caller, admin.compute_transfer_admin, cap, new_admin, new_token)
        logger.info(
            "Admin transferred",
            extra={"event": "trustlend.admin_transferred", "old_admin": caller, "new_admin": new_admin},
        )
        return AdminCapability(owner=new_admin, token=new_token)

    def upgrade_version(self, caller: str, cap: AdminCapability, new_version: int) -> None:
        self._run("upgrade_version", caller, admin.compute_upgrade_version, cap, new_version)
        logger.info("Protocol upgraded", extra={"event": "trustlend.upgraded", "version": new_version})

    def is_paused(self) -> bool:
        return admin.is_paused(self.ledger)

    def get_config(self) -> Optional[admin.ProtocolConfig]:
        return admin.load_protocol_config(self.ledger)

    def total_value_locked(self) -> int:
        return admin.total_value_locked(self.ledger)

    # ========================================================================
    # INTEREST RATE MODEL
    # ========================================================================

    def update_base_rate(self, caller: str, cap: AdminCapability, base_rate_bps: int) -> None:
        self._run("update_base_rate", caller, interest_rate.compute_update_base_rate, cap, base_rate_bps)
        logger.info("Base rate updated", extra={"event": "trustlend.rate_updated", "base_rate_bps": base_rate_bps})

    def update_optimal_utilization(self, caller: str, cap: AdminCapability, optimal_utilization_bps: int) -> None:
        self._run(
            "update_optimal_utilization", caller,
            interest_rate.compute_update_optimal_utilization, cap, optimal_utilization_bps,
        )
        logger.info(
            "Optimal utilization updated",
            extra={"event": "trustlend.rate_updated", "optimal_utilization_bps": optimal_utilization_bps},
        )

    def update_slopes(self, caller: str, cap: AdminCapability, slope1_bps: int, slope2_bps: int) -> None:
        self._run("update_slopes", caller, interest_rate.compute_update_slopes, cap, slope1_bps, slope2_bps)
        logger.info(
            "Rate slopes updated",
            extra={"event": "trustlend.rate_updated", "slope1_bps": slope1_bps, "slope2_bps": slope2_bps},
        )

    def propose_rate_update(
        self,
        caller: str,
        base_rate_bps: int,
        optimal_utilization_bps: int,
        slope1_bps: int,
        slope2_bps: int,
    ) -> int:
        pending = self._run(
            "propose_rate_update", caller, interest_rate.compute_propose_rate_update,
            base_rate_bps, optimal_utilization_bps, slope1_bps, slope2_bps,
        )
        return self._event_value(pending, "RateProposalCreated", "proposal_id")

    def get_rate_model(self) -> Optional[interest_rate.InterestRateModel]:
        return interest_rate.load_rate_model(self.ledger)

    def rate(self, utilization_bps: int) -> int:
        return interest_rate.current_rate(self.ledger, utilization_bps)

    def get_rate_proposal(self, proposal_id: int) -> interest_rate.RateProposal:
        return interest_rate.get_rate_proposal(self.ledger, proposal_id)

    def list_rate_proposals(self) -> List[interest_rate.RateProposal]:
        return interest_rate.list_rate_proposals(self.ledger)

    # ========================================================================
    # TRUST
    # ========================================================================

    def register_trust_score(self, caller: str) -> None:
        self._run("register_trust_score", caller, trust.compute_register_trust_score, self.params)

    def endorse(self, caller: str, endorsed: str) -> None:
        self._run("endorse", caller, trust.compute_endorse, endorsed)

    def record_transaction(self, caller: str, cap: AdminCapability, account: str, success: bool) -> None:
        self._run("record_transaction", caller, trust.compute_record_transaction, cap, account, success)

    def record_loan_activity(
        self, caller: str, cap: AdminCapability, account: str, borrowed: int = 0, repaid: int = 0
    ) -> None:
        self._run(
            "record_loan_activity", caller, trust.compute_record_loan_activity,
            cap, account, borrowed, repaid,
        )

    def get_trust_score(self, owner: str) -> Optional[trust.TrustScore]:
        return trust.load_trust_score(self.ledger, owner)

    def trust_score(self, owner: str) -> int:
        return trust.get_score(self.ledger, owner)

    def has_endorsed(self, endorser: str, endorsed: str) -> bool:
        return trust.has_endorsed(self.ledger, endorser, endorsed)

    def reputation_level(self, owner: str) -> int:
        return trust.reputation_level(trust.get_score(self.ledger, owner))

    def credit_limit(self, owner: str, base_limit: int) -> int:
        return trust.credit_limit(base_limit, trust.get_score(self.ledger, owner))

    # ========================================================================
    # LENDING
    # ========================================================================

    def create_lending_pool(
        self,
        caller: str,
        cap: AdminCapability,
        asset_symbol: str,
        min_collateral_ratio_bps: Optional[int] = None,
    ) -> None:
        self._run(
            "create_lending_pool", caller, lending.compute_create_lending_pool,
            cap, asset_symbol, min_collateral_ratio_bps, self.params,
        )
        logger.info("Lending pool created", extra={"event": "trustlend.pool_created", "asset": asset_symbol})

    def set_min_collateral_ratio(
        self, caller: str, cap: AdminCapability, asset_symbol: str, min_collateral_ratio_bps: int
    ) -> None:
        self._run(
            "set_min_collateral_ratio", caller, lending.compute_set_min_collateral_ratio,
            cap, asset_symbol, min_collateral_ratio_bps,
        )
        logger.info(
            "Minimum collateral ratio updated",
            extra={
                "event": "trustlend.min_ratio_updated",
                "asset": asset_symbol,
                "min_collateral_ratio_bps": min_collateral_ratio_bps,
            },
        )

    def collect_reserves(self, caller: str, cap: AdminCapability, asset_symbol: str, amount: int) -> None:
        self._run("collect_reserves", caller, lending.compute_collect_reserves, cap, asset_symbol, amount)
        logger.info(
            "Reserves collected",
            extra={"event": "trustlend.reserves_collected", "asset": asset_symbol, "amount": amount},
        )

    def supply_liquidity(self, caller: str, asset_symbol: str, amount: int) -> None:
        self._run("supply_liquidity", caller, lending.compute_supply_liquidity, asset_symbol, amount)

    def withdraw_liquidity(self, caller: str, asset_symbol: str, amount: int) -> None:
        self._run("withdraw_liquidity", caller, lending.compute_withdraw_liquidity, asset_symbol, amount)

    def deposit_collateral(self, caller: str, asset_symbol: str, amount: int) -> None:
        self._run("deposit_collateral", caller, lending.compute_deposit_collateral, asset_symbol, amount)

    def withdraw_collateral(self, caller: str, asset_symbol: str, amount: int) -> None:
        self._run("withdraw_collateral", caller, lending.compute_withdraw_collateral, asset_symbol, amount)

    def borrow(self, caller: str, asset_symbol: str, amount: int) -> None:
        self._run("borrow", caller, lending.compute_borrow, asset_symbol, amount)

    def repay(self, caller: str, asset_symbol: str, amount: int) -> int:
        """Repay up to amount; returns what was actually taken."""
        pending = self._run("repay", caller, lending.compute_repay, asset_symbol, amount)
        return self._event_value(pending, "Repaid", "amount")

    def accrue_interest(self, caller: str, owner: str, asset_symbol: str) -> int:
        pending = self._run("accrue_interest", caller, lending.compute_accrue_interest, owner, asset_symbol)
        return self._event_value(pending, "InterestAccrued", "interest")

    def create_loan_request(
        self,
        caller: str,
        asset_symbol: str,
        amount: int,
        rate_bps: int,
        duration: int,
        collateral_amount: int,
    ) -> int:
        pending = self._run(
            "create_loan_request", caller, lending.compute_create_loan_request,
            asset_symbol, amount, rate_bps, duration, collateral_amount,
        )
        return self._event_value(pending, "LoanRequested", "request_id")

    def cancel_loan_request(self, caller: str) -> None:
        self._run("cancel_loan_request", caller, lending.compute_cancel_loan_request)

    def fulfill_loan(self, caller: str, borrower: str) -> None:
        self._run("fulfill_loan", caller, lending.compute_fulfill_loan, borrower)

    def liquidate(self, caller: str, user: str, asset_symbol: str) -> None:
        pending = self._run("liquidate", caller, lending.compute_liquidate, user, asset_symbol, self.params)
        data = pending.events[0].data_dict
        logger.warning(
            "Position liquidated",
            extra={
                "event": "trustlend.liquidation",
                "liquidator": caller,
                "user": user,
                "asset": asset_symbol,
                "debt_repaid": data['debt_repaid'],
                "peer_debt_repaid": data['peer_debt_repaid'],
                "collateral_seized": data['collateral_seized'],
            },
        )

    def get_pool(self, asset_symbol: str) -> lending.LendingPool:
        return lending.get_pool(self.ledger, asset_symbol)

    def get_position(self, owner: str, asset_symbol: str) -> lending.LendingPosition:
        return lending.get_position(self.ledger, owner, asset_symbol)

    def get_liquidity_share(self, owner: str, asset_symbol: str) -> int:
        return lending.get_liquidity_share(self.ledger, owner, asset_symbol)

    def get_loan_request(self, borrower: str) -> Optional[lending.LoanRequest]:
        return lending.get_loan_request(self.ledger, borrower)

    def get_peer_loan(self, borrower: str, asset_symbol: str) -> Optional[lending.PeerLoan]:
        return lending.get_peer_loan(self.ledger, borrower, asset_symbol)

    def total_debt(self, owner: str, asset_symbol: str) -> int:
        """Pool and peer debt of owner in asset_symbol, interest included."""
        return lending.total_debt(self.ledger, owner, asset_symbol)

    def utilization(self, asset_symbol: str) -> int:
        return lending.utilization(self.ledger, asset_symbol)

    def current_borrow_rate(self, asset_symbol: str) -> int:
        return lending.current_borrow_rate(self.ledger, asset_symbol)

    def health_factor_bps(self, owner: str, asset_symbol: str) -> Optional[int]:
        return lending.health_factor_bps(self.ledger, owner, asset_symbol)

    def borrowing_capacity(self, owner: str, asset_symbol: str) -> int:
        return lending.borrowing_capacity(self.ledger, owner, asset_symbol)

    def credit_limit_hint(self, owner: str, asset_symbol: str) -> int:
        return lending.credit_limit_hint(self.ledger, owner, asset_symbol)

    # ========================================================================
    # CIRCLES
    # ========================================================================

    def create_circle(
        self, caller: str, asset_symbol: str, name: str, max_members: int, min_contribution: int
    ) -> int:
        pending = self._run(
            "create_circle", caller, circles.compute_create_circle,
            asset_symbol, name, max_members, min_contribution, self.params,
        )
        return self._event_value(pending, "CircleCreated", "circle_id")

    def join_circle(self, caller: str, owner: str, stake_amount: int) -> None:
        self._run("join_circle", caller, circles.compute_join_circle, owner, stake_amount)

    def add_stake(self, caller: str, owner: str, amount: int) -> None:
        self._run("add_stake", caller, circles.compute_add_stake, owner, amount)

    def start_bidding_round(self, caller: str) -> int:
        pending = self._run("start_bidding_round", caller, circles.compute_start_bidding_round, self.params)
        return self._event_value(pending, "BiddingRoundStarted", "round_number")

    def submit_bid(self, caller: str, owner: str, amount: int, rate_bps: int) -> None:
        self._run("submit_bid", caller, circles.compute_submit_bid, owner, amount, rate_bps, self.params)

    def distribute_funds(self, caller: str, winner: str) -> int:
        pending = self._run("distribute_funds", caller, circles.compute_distribute_funds, winner)
        return self._event_value(pending, "FundsDistributed", "amount")

    def deactivate_circle(self, caller: str) -> None:
        self._run("deactivate_circle", caller, circles.compute_deactivate_circle)

    def get_circle(self, owner: str) -> circles.Circle:
        return circles.get_circle(self.ledger, owner)

    def get_circle_stake(self, owner: str, member: str) -> int:
        return circles.get_circle_stake(self.ledger, owner, member)

    def get_bidding_round(self, owner: str) -> Optional[circles.BiddingRound]:
        return circles.get_bidding_round(self.ledger, owner)

    def is_member(self, owner: str, member: str) -> bool:
        return circles.is_member(self.ledger, owner, member)

    def circle_owners(self) -> List[str]:
        return circles.list_circle_owners(self.ledger)

    # ========================================================================
    # PAYMENTS
    # ========================================================================

    def open_payment_account(self, caller: str, asset_symbol: str) -> None:
        self._run("open_payment_account", caller, payments.compute_open_payment_account, asset_symbol)

    def create_payment(
        self, caller: str, asset_symbol: str, payee: str, amount: int, description: str = ""
    ) -> int:
        pending = self._run(
            "create_payment", caller, payments.compute_create_payment,
            asset_symbol, payee, amount, description,
        )
        return self._event_value(pending, "PaymentCreated", "payment_id")

    def complete_payment(self, caller: str, payment_id: int) -> None:
        self._run("complete_payment", caller, payments.compute_complete_payment, payment_id)

    def cancel_payment(self, caller: str, payment_id: int) -> None:
        self._run("cancel_payment", caller, payments.compute_cancel_payment, payment_id)

    def get_payment(self, payment_id: int) -> payments.Payment:
        return payments.get_payment(self.ledger, payment_id)

    def get_payment_account(self, owner: str, asset_symbol: str) -> Optional[payments.PaymentAccount]:
        return payments.get_payment_account(self.ledger, owner, asset_symbol)

    def escrow_balance(self, owner: str, asset_symbol: str) -> int:
        return payments.escrow_balance(self.ledger, owner, asset_symbol)

    # ========================================================================
    # LEDGER READS
    # ========================================================================

    def balance(self, account: str, asset_symbol: str) -> int:
        return int(self.ledger.get_balance(account, asset_symbol))

    def events(self, name: Optional[str] = None) -> List[ProtocolEvent]:
        return self.ledger.events(name)

    def snapshot(self) -> Dict[str, Any]:
        return self.ledger.snapshot()
