"""
test_lending.py - Unit tests for collateralized lending

Tests:
- Pure calculations (max borrow, capacity, health factor, liquidation test)
- Pool administration and reserves
- Liquidity supply and withdrawal
- Collateral deposit and withdrawal
- Borrow and repay, interest accrual
- Peer loan requests
- Liquidation
"""

import pytest
from datetime import timedelta

from trustlend import (
    calculate_max_borrow, calculate_borrowing_capacity, calculate_health_factor_bps, is_liquidatable,
    AdminCapability, InsufficientCollateral, Undercollateralized, NotLiquidatable, PoolNotFound,
    PoolAlreadyExists, PoolExhausted, NoOutstandingLoan, LoanRequestNotFound, LoanRequestExists,
    LoanAlreadyFulfilled, NotAuthorized, InsufficientPool, InvalidParameter, InvalidAmount,
    ProtocolPaused, InsufficientFunds,
)

from tests.helpers import START, advance


ONE_YEAR = dict(days=365)


def _borrower(protocol, collateral=20_000, loan=0, who="alice"):
    protocol.deposit_collateral(who, "USDC", collateral)
    if loan:
        protocol.borrow(who, "USDC", loan)


class TestPureFunctions:

    def test_max_borrow(self):
        assert calculate_max_borrow(20_000, 15000) == 13333
        assert calculate_max_borrow(15_000, 15000) == 10000
        assert calculate_max_borrow(0, 15000) == 0

    def test_capacity_floors_at_zero(self):
        assert calculate_borrowing_capacity(20_000, 0, 15000) == 13333
        assert calculate_borrowing_capacity(20_000, 13333, 15000) == 0
        assert calculate_borrowing_capacity(10_000, 13333, 15000) == 0

    def test_health_factor(self):
        assert calculate_health_factor_bps(15_000, 10_000, 15000) == 10000
        assert calculate_health_factor_bps(20_000, 10_000, 15000) == 13333
        assert calculate_health_factor_bps(20_000, 0, 15000) is None

    def test_liquidation_is_strict(self):
        assert not is_liquidatable(15_000, 10_000, 15000)
        assert is_liquidatable(14_999, 10_000, 15000)
        assert not is_liquidatable(0, 0, 15000)


class TestPoolAdministration:

    def test_pool_created_empty(self, protocol):
        pool = protocol.get_pool("USDC")
        assert pool.min_collateral_ratio_bps == 15000
        assert (pool.total_collateral, pool.total_loans, pool.available_liquidity) == (0, 0, 0)

    def test_duplicate_pool(self, protocol, cap):
        with pytest.raises(PoolAlreadyExists):
            protocol.create_lending_pool("admin", cap, "USDC")

    @pytest.mark.parametrize("ratio", [9999, 100_001])
    def test_ratio_bounds(self, protocol, cap, ratio):
        protocol.list_asset("ETH", "Ether")
        with pytest.raises(InvalidParameter):
            protocol.create_lending_pool("admin", cap, "ETH", ratio)

    def test_default_ratio(self, protocol, cap):
        protocol.list_asset("ETH", "Ether")
        protocol.create_lending_pool("admin", cap, "ETH")
        assert protocol.get_pool("ETH").min_collateral_ratio_bps == 15000

    def test_unknown_pool(self, protocol):
        with pytest.raises(PoolNotFound):
            protocol.get_pool("ETH")

    def test_only_admin_creates_pools(self, protocol):
        protocol.list_asset("ETH", "Ether")
        with pytest.raises(NotAuthorized):
            protocol.create_lending_pool("alice", AdminCapability("alice", "x"), "ETH")

    def test_set_min_collateral_ratio(self, protocol, cap):
        protocol.set_min_collateral_ratio("admin", cap, "USDC", 20000)
        assert protocol.get_pool("USDC").min_collateral_ratio_bps == 20000
        assert protocol.borrowing_capacity("alice", "USDC") == 0


class TestLiquidity:

    def test_supply(self, liquid_protocol):
        pool = liquid_protocol.get_pool("USDC")
        assert pool.available_liquidity == 50_000
        assert pool.total_supplied == 50_000
        assert liquid_protocol.get_liquidity_share("dave", "USDC") == 50_000
        assert liquid_protocol.balance("pool:USDC", "USDC") == 50_000
        assert liquid_protocol.total_value_locked() == 50_000

    def test_withdraw(self, liquid_protocol):
        liquid_protocol.withdraw_liquidity("dave", "USDC", 20_000)
        assert liquid_protocol.get_liquidity_share("dave", "USDC") == 30_000
        assert liquid_protocol.balance("dave", "USDC") == 70_000
        assert liquid_protocol.total_value_locked() == 30_000

    def test_withdraw_more_than_share(self, liquid_protocol):
        with pytest.raises(InsufficientPool):
            liquid_protocol.withdraw_liquidity("alice", "USDC", 1)

    def test_withdraw_lent_out_liquidity(self, liquid_protocol):
        _borrower(liquid_protocol, loan=13_333)
        with pytest.raises(InsufficientPool):
            liquid_protocol.withdraw_liquidity("dave", "USDC", 40_000)
        liquid_protocol.withdraw_liquidity("dave", "USDC", 36_667)
        assert liquid_protocol.get_pool("USDC").available_liquidity == 0

    def test_supply_without_funds(self, liquid_protocol):
        with pytest.raises(InsufficientFunds):
            liquid_protocol.supply_liquidity("alice", "USDC", 100_001)


class TestCollateral:

    def test_deposit_creates_position(self, protocol):
        protocol.deposit_collateral("alice", "USDC", 20_000)
        position = protocol.get_position("alice", "USDC")
        assert position.collateral == 20_000
        assert position.debt == 0
        assert protocol.balance("alice", "USDC") == 80_000
        assert protocol.balance("vault:USDC", "USDC") == 20_000
        assert protocol.get_pool("USDC").total_collateral == 20_000
        assert protocol.total_value_locked() == 20_000

    def test_missing_position_reads_zero(self, protocol):
        position = protocol.get_position("bob", "USDC")
        assert (position.collateral, position.loan_principal, position.last_update) == (0, 0, None)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount(self, protocol, amount):
        with pytest.raises(InvalidAmount):
            protocol.deposit_collateral("alice", "USDC", amount)

    def test_withdraw_without_loan(self, protocol):
        protocol.deposit_collateral("alice", "USDC", 20_000)
        protocol.withdraw_collateral("alice", "USDC", 20_000)
        assert protocol.balance("alice", "USDC") == 100_000
        assert protocol.total_value_locked() == 0

    def test_withdraw_more_than_held(self, protocol):
        protocol.deposit_collateral("alice", "USDC", 100)
        with pytest.raises(InsufficientCollateral):
            protocol.withdraw_collateral("alice", "USDC", 101)

    def test_withdraw_below_ratio(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        with pytest.raises(Undercollateralized):
            liquid_protocol.withdraw_collateral("alice", "USDC", 5_001)
        liquid_protocol.withdraw_collateral("alice", "USDC", 5_000)
        assert liquid_protocol.get_position("alice", "USDC").collateral == 15_000

    def test_paused_protocol_rejects_deposit(self, protocol, cap):
        protocol.set_paused("admin", cap, True)
        with pytest.raises(ProtocolPaused):
            protocol.deposit_collateral("alice", "USDC", 100)


    def test_interest_counts_against_withdrawal(self, liquid_protocol):
        _borrower(liquid_protocol, collateral=15_000, loan=9_000)
        advance(liquid_protocol, **ONE_YEAR)
        # debt 9261 requires 13891
        with pytest.raises(Undercollateralized):
            liquid_protocol.withdraw_collateral("alice", "USDC", 1_110)
        liquid_protocol.withdraw_collateral("alice", "USDC", 1_109)
        with pytest.raises(NotLiquidatable):
            liquid_protocol.liquidate("bob", "alice", "USDC")


class TestBorrow:

    def test_borrow_up_to_ratio(self, liquid_protocol):
        _borrower(liquid_protocol)
        liquid_protocol.borrow("alice", "USDC", 13_333)
        assert liquid_protocol.get_position("alice", "USDC").loan_principal == 13_333
        assert liquid_protocol.balance("alice", "USDC") == 80_000 + 13_333
        pool = liquid_protocol.get_pool("USDC")
        assert (pool.total_loans, pool.available_liquidity) == (13_333, 36_667)

    def test_borrow_past_ratio(self, liquid_protocol):
        _borrower(liquid_protocol)
        with pytest.raises(InsufficientCollateral):
            liquid_protocol.borrow("alice", "USDC", 13_334)
        assert liquid_protocol.get_position("alice", "USDC").loan_principal == 0

    def test_borrow_in_steps(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        liquid_protocol.borrow("alice", "USDC", 3_333)
        with pytest.raises(InsufficientCollateral):
            liquid_protocol.borrow("alice", "USDC", 1)

    def test_borrow_without_position(self, liquid_protocol):
        with pytest.raises(InsufficientCollateral):
            liquid_protocol.borrow("alice", "USDC", 1)

    def test_pool_exhausted(self, protocol):
        _borrower(protocol)
        with pytest.raises(PoolExhausted):
            protocol.borrow("alice", "USDC", 100)

    def test_capacity_and_health(self, liquid_protocol):
        _borrower(liquid_protocol)
        assert liquid_protocol.borrowing_capacity("alice", "USDC") == 13_333
        assert liquid_protocol.health_factor_bps("alice", "USDC") is None
        liquid_protocol.borrow("alice", "USDC", 10_000)
        assert liquid_protocol.borrowing_capacity("alice", "USDC") == 3_333
        assert liquid_protocol.health_factor_bps("alice", "USDC") == 13333

    def test_credit_limit_hint_scales_by_trust(self, liquid_protocol):
        _borrower(liquid_protocol)
        assert liquid_protocol.credit_limit_hint("alice", "USDC") == 0
        liquid_protocol.register_trust_score("alice")
        assert liquid_protocol.credit_limit_hint("alice", "USDC") == 6_666


    def test_interest_counts_against_borrowing(self, liquid_protocol):
        _borrower(liquid_protocol, collateral=15_000, loan=9_000)
        advance(liquid_protocol, **ONE_YEAR)
        # utilization 18% -> 200 + 1800 * 400 / 8000 = 290 bps, 261 on 9000
        assert liquid_protocol.total_debt("alice", "USDC") == 9_261
        assert liquid_protocol.borrowing_capacity("alice", "USDC") == 739
        with pytest.raises(InsufficientCollateral):
            liquid_protocol.borrow("alice", "USDC", 1_000)
        liquid_protocol.borrow("alice", "USDC", 739)
        with pytest.raises(NotLiquidatable):
            liquid_protocol.liquidate("bob", "alice", "USDC")

    def test_reserved_collateral_cannot_back_a_borrow(self, liquid_protocol):
        _borrower(liquid_protocol)
        liquid_protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        assert liquid_protocol.borrowing_capacity("alice", "USDC") == 6_667
        with pytest.raises(InsufficientCollateral):
            liquid_protocol.borrow("alice", "USDC", 6_668)
        liquid_protocol.borrow("alice", "USDC", 6_667)
        liquid_protocol.cancel_loan_request("alice")
        assert liquid_protocol.borrowing_capacity("alice", "USDC") == 6_666


class TestRepay:

    def test_full_repay(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        assert liquid_protocol.repay("alice", "USDC", 10_000) == 10_000
        position = liquid_protocol.get_position("alice", "USDC")
        assert position.debt == 0
        assert liquid_protocol.get_pool("USDC").available_liquidity == 50_000

    def test_overpayment_is_capped(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        assert liquid_protocol.repay("alice", "USDC", 15_000) == 10_000
        assert liquid_protocol.balance("alice", "USDC") == 80_000

    def test_partial_repay(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        liquid_protocol.repay("alice", "USDC", 4_000)
        assert liquid_protocol.get_position("alice", "USDC").loan_principal == 6_000
        assert liquid_protocol.events("Repaid")[-1].data_dict['remaining'] == 6_000

    def test_nothing_owed(self, liquid_protocol):
        with pytest.raises(NoOutstandingLoan):
            liquid_protocol.repay("alice", "USDC", 1)
        _borrower(liquid_protocol)
        with pytest.raises(NoOutstandingLoan):
            liquid_protocol.repay("alice", "USDC", 1)

    def test_interest_goes_to_reserves(self, liquid_protocol, cap):
        _borrower(liquid_protocol, loan=10_000)
        advance(liquid_protocol, **ONE_YEAR)
        # utilization 20% -> 200 + 2000 * 400 / 8000 = 300 bps
        assert liquid_protocol.get_position("alice", "USDC").accrued_interest == 300
        assert liquid_protocol.repay("alice", "USDC", 20_000) == 10_300
        event = liquid_protocol.events("Repaid")[-1].data_dict
        assert (event['interest_paid'], event['principal_paid']) == (300, 10_000)
        pool = liquid_protocol.get_pool("USDC")
        assert pool.reserves == 300
        assert liquid_protocol.balance("pool:USDC", "USDC") == pool.available_liquidity + pool.reserves

        liquid_protocol.collect_reserves("admin", cap, "USDC", 300)
        assert liquid_protocol.get_pool("USDC").reserves == 0
        assert liquid_protocol.balance("admin", "USDC") == 100_300

    def test_collect_more_than_reserves(self, liquid_protocol, cap):
        with pytest.raises(InsufficientPool):
            liquid_protocol.collect_reserves("admin", cap, "USDC", 1)

    def test_interest_paid_before_principal(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        advance(liquid_protocol, **ONE_YEAR)
        liquid_protocol.repay("alice", "USDC", 200)
        position = liquid_protocol.get_position("alice", "USDC")
        assert (position.loan_principal, position.accrued_interest) == (10_000, 100)


class TestAccrueInterest:

    def test_anyone_can_accrue(self, liquid_protocol):
        _borrower(liquid_protocol, loan=10_000)
        advance(liquid_protocol, **ONE_YEAR)
        assert liquid_protocol.accrue_interest("carol", "alice", "USDC") == 300
        assert liquid_protocol.accrue_interest("carol", "alice", "USDC") == 0

    def test_no_loan(self, liquid_protocol):
        with pytest.raises(NoOutstandingLoan):
            liquid_protocol.accrue_interest("carol", "alice", "USDC")

    def test_current_borrow_rate(self, liquid_protocol):
        assert liquid_protocol.current_borrow_rate("USDC") == 200
        _borrower(liquid_protocol, loan=10_000)
        assert liquid_protocol.utilization("USDC") == 2000
        assert liquid_protocol.current_borrow_rate("USDC") == 300


class TestLoanRequests:

    def test_create_request(self, protocol):
        _borrower(protocol)
        request_id = protocol.create_loan_request("alice", "USDC", 5_000, 800, 30 * 86_400, 10_000)
        request = protocol.get_loan_request("alice")
        assert request.id == request_id
        assert request.is_open
        assert request.fulfiller is None

    def test_request_needs_free_collateral(self, protocol):
        _borrower(protocol, collateral=5_000)
        with pytest.raises(InsufficientCollateral):
            protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 5_001)

    def test_one_open_request(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        with pytest.raises(LoanRequestExists):
            protocol.create_loan_request("alice", "USDC", 1_000, 800, 86_400, 1_000)

    @pytest.mark.parametrize("field", ["amount", "rate", "duration", "collateral"])
    def test_request_fields_positive(self, protocol, field):
        _borrower(protocol)
        args = {"amount": 5_000, "rate": 800, "duration": 86_400, "collateral": 10_000}
        args[field] = 0
        with pytest.raises(InvalidAmount):
            protocol.create_loan_request(
                "alice", "USDC", args["amount"], args["rate"], args["duration"], args["collateral"],
            )

    def test_reserved_collateral_cannot_be_withdrawn(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        with pytest.raises(InsufficientCollateral):
            protocol.withdraw_collateral("alice", "USDC", 10_001)
        protocol.withdraw_collateral("alice", "USDC", 10_000)

    def test_cancel_then_recreate(self, protocol):
        _borrower(protocol)
        first = protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        protocol.cancel_loan_request("alice")
        assert protocol.get_loan_request("alice").cancelled
        with pytest.raises(LoanRequestNotFound):
            protocol.cancel_loan_request("alice")
        second = protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        assert second == first + 1

    def test_fulfill(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        protocol.fulfill_loan("bob", "alice")

        request = protocol.get_loan_request("alice")
        assert request.fulfilled and request.fulfiller == "bob"
        assert protocol.balance("bob", "USDC") == 95_000
        assert protocol.balance("alice", "USDC") == 85_000
        loan = protocol.get_peer_loan("alice", "USDC")
        assert (loan.lender, loan.principal, loan.rate_bps) == ("bob", 5_000, 800)
        assert loan.due_at == START + timedelta(seconds=86_400)
        assert protocol.get_position("alice", "USDC").loan_principal == 0
        assert protocol.total_debt("alice", "USDC") == 5_000
        assert protocol.get_liquidity_share("bob", "USDC") == 0
        pool = protocol.get_pool("USDC")
        assert (pool.total_loans, pool.total_supplied, pool.available_liquidity) == (0, 0, 0)
        assert protocol.total_value_locked() == 20_000

    def test_fulfiller_cannot_drain_pool(self, liquid_protocol):
        _borrower(liquid_protocol)
        liquid_protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        liquid_protocol.fulfill_loan("bob", "alice")
        with pytest.raises(InsufficientPool):
            liquid_protocol.withdraw_liquidity("bob", "USDC", 5_000)
        assert liquid_protocol.get_liquidity_share("dave", "USDC") == 50_000
        assert liquid_protocol.balance("pool:USDC", "USDC") == 50_000
        assert liquid_protocol.utilization("USDC") == 0

    def test_repaid_request_returns_to_fulfiller(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        protocol.fulfill_loan("bob", "alice")
        assert protocol.repay("alice", "USDC", 5_000) == 5_000
        assert protocol.balance("bob", "USDC") == 100_000
        assert protocol.balance("pool:USDC", "USDC") == 0
        assert protocol.get_peer_loan("alice", "USDC").debt == 0
        event = protocol.events("Repaid")[-1].data_dict
        assert (event['peer_principal_paid'], event['remaining']) == (5_000, 0)

    def test_peer_interest_at_agreed_rate(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 1000, 365 * 86_400, 10_000)
        protocol.fulfill_loan("bob", "alice")
        advance(protocol, **ONE_YEAR)

        assert protocol.get_peer_loan("alice", "USDC").accrued_interest == 500
        assert protocol.utilization("USDC") == 0
        assert protocol.accrue_interest("carol", "alice", "USDC") == 500
        assert protocol.repay("alice", "USDC", 10_000) == 5_500
        assert protocol.balance("bob", "USDC") == 100_500
        assert protocol.get_pool("USDC").reserves == 0
        event = protocol.events("Repaid")[-1].data_dict
        assert (event['peer_interest_paid'], event['peer_principal_paid']) == (500, 5_000)

    def test_repay_settles_pool_loan_first(self, liquid_protocol):
        _borrower(liquid_protocol, collateral=30_000, loan=5_000)
        liquid_protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        liquid_protocol.fulfill_loan("bob", "alice")
        liquid_protocol.repay("alice", "USDC", 7_000)

        assert liquid_protocol.get_position("alice", "USDC").loan_principal == 0
        assert liquid_protocol.get_peer_loan("alice", "USDC").principal == 3_000
        assert liquid_protocol.balance("bob", "USDC") == 97_000
        assert liquid_protocol.get_pool("USDC").available_liquidity == 50_000

    def test_outstanding_peer_loan_blocks_new_request(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 5_000)
        protocol.fulfill_loan("bob", "alice")
        with pytest.raises(LoanRequestExists):
            protocol.create_loan_request("alice", "USDC", 1_000, 800, 86_400, 1_000)
        protocol.repay("alice", "USDC", 5_000)
        protocol.create_loan_request("alice", "USDC", 1_000, 800, 86_400, 1_000)

    def test_peer_debt_counts_against_borrowing(self, liquid_protocol):
        _borrower(liquid_protocol)
        liquid_protocol.create_loan_request("alice", "USDC", 10_000, 800, 86_400, 15_000)
        liquid_protocol.fulfill_loan("bob", "alice")
        assert liquid_protocol.borrowing_capacity("alice", "USDC") == 3_333
        with pytest.raises(InsufficientCollateral):
            liquid_protocol.borrow("alice", "USDC", 3_334)
        with pytest.raises(Undercollateralized):
            liquid_protocol.withdraw_collateral("alice", "USDC", 5_001)

    def test_fulfill_twice(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        protocol.fulfill_loan("bob", "alice")
        with pytest.raises(LoanAlreadyFulfilled):
            protocol.fulfill_loan("carol", "alice")

    def test_fulfill_own_request(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        with pytest.raises(NotAuthorized):
            protocol.fulfill_loan("alice", "alice")

    def test_fulfill_cancelled_or_missing(self, protocol):
        with pytest.raises(LoanRequestNotFound):
            protocol.fulfill_loan("bob", "alice")
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 800, 86_400, 10_000)
        protocol.cancel_loan_request("alice")
        with pytest.raises(LoanRequestNotFound):
            protocol.fulfill_loan("bob", "alice")

    def test_fulfill_beyond_ratio(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 15_000, 800, 86_400, 10_000)
        with pytest.raises(Undercollateralized):
            protocol.fulfill_loan("bob", "alice")
        assert protocol.balance("bob", "USDC") == 100_000


class TestLiquidation:

    def _at_threshold(self, protocol):
        _borrower(protocol, collateral=15_000, loan=10_000)

    def test_exact_threshold_is_safe(self, liquid_protocol):
        self._at_threshold(liquid_protocol)
        assert liquid_protocol.health_factor_bps("alice", "USDC") == 10000
        with pytest.raises(NotLiquidatable):
            liquid_protocol.liquidate("bob", "alice", "USDC")

    def test_liquidate_below_threshold(self, liquid_protocol, cap):
        self._at_threshold(liquid_protocol)
        liquid_protocol.set_min_collateral_ratio("admin", cap, "USDC", 15001)
        liquid_protocol.liquidate("bob", "alice", "USDC")

        position = liquid_protocol.get_position("alice", "USDC")
        assert (position.collateral, position.debt) == (0, 0)
        assert liquid_protocol.balance("bob", "USDC") == 105_000
        pool = liquid_protocol.get_pool("USDC")
        assert (pool.total_collateral, pool.total_loans, pool.available_liquidity) == (0, 0, 50_000)

        event = liquid_protocol.events("Liquidated")[-1].data_dict
        assert event['debt_repaid'] == 10_000
        assert event['collateral_seized'] == 15_000
        assert event['dispute_deadline'] == START + timedelta(hours=24)

    def test_interest_can_tip_a_position(self, liquid_protocol):
        self._at_threshold(liquid_protocol)
        advance(liquid_protocol, days=30)
        liquid_protocol.liquidate("bob", "alice", "USDC")
        assert liquid_protocol.get_pool("USDC").reserves > 0

    def test_self_liquidation(self, liquid_protocol, cap):
        self._at_threshold(liquid_protocol)
        liquid_protocol.set_min_collateral_ratio("admin", cap, "USDC", 15001)
        with pytest.raises(NotAuthorized):
            liquid_protocol.liquidate("alice", "alice", "USDC")

    def test_no_position(self, liquid_protocol):
        with pytest.raises(NotLiquidatable):
            liquid_protocol.liquidate("bob", "alice", "USDC")

    def _peer_loan(self, protocol):
        _borrower(protocol)
        protocol.create_loan_request("alice", "USDC", 5_000, 1000, 30 * 86_400, 10_000)
        protocol.fulfill_loan("bob", "alice")

    def test_past_due_peer_loan_stays_safe(self, protocol):
        self._peer_loan(protocol)
        advance(protocol, days=31)
        with pytest.raises(NotLiquidatable):
            protocol.liquidate("carol", "alice", "USDC")

    def test_peer_debt_is_paid_to_lender(self, liquid_protocol, cap):
        self._peer_loan(liquid_protocol)
        advance(liquid_protocol, days=30)
        liquid_protocol.set_min_collateral_ratio("admin", cap, "USDC", 40002)
        liquid_protocol.liquidate("carol", "alice", "USDC")

        # 5000 * 1000 bps over 30 days = 41
        assert liquid_protocol.balance("bob", "USDC") == 100_041
        assert liquid_protocol.balance("carol", "USDC") == 100_000 - 5_041 + 20_000
        assert liquid_protocol.balance("pool:USDC", "USDC") == 50_000
        assert liquid_protocol.get_pool("USDC").reserves == 0
        assert liquid_protocol.total_debt("alice", "USDC") == 0
        event = liquid_protocol.events("Liquidated")[-1].data_dict
        assert (event['debt_repaid'], event['peer_debt_repaid'], event['lender']) == (5_041, 5_041, "bob")

    def test_lender_takes_collateral_in_place_of_payment(self, protocol, cap):
        self._peer_loan(protocol)
        protocol.set_min_collateral_ratio("admin", cap, "USDC", 40002)
        protocol.liquidate("bob", "alice", "USDC")
        assert protocol.balance("bob", "USDC") == 95_000 + 20_000
        assert protocol.get_peer_loan("alice", "USDC").debt == 0
