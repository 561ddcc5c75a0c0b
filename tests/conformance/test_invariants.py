"""
Protocol Invariant Conformance Tests

INVARIANTS:
    borrow / withdraw_collateral succeed ⟹ collateral >= loan * ratio / 10000
    circle.total_pool = Σ member stakes
    0 <= trust score <= 1000
    payment status leaves PENDING at most once
    deposit n then withdraw n restores the depositor's balance
    calculate_rate is non-decreasing in utilization
"""

from datetime import datetime

from hypothesis import given, settings
from hypothesis import strategies as st

from trustlend import (
    AdminCapability, PaymentStatus, LedgerError, InterestRateModel,
    calculate_rate, calculate_accrued_interest,
)
from trustlend.core import saturating_add

from tests.conformance.strategies import (
    make_world, actions, apply_action, is_collateralized, CIRCLE_OWNER,
)
from tests.helpers import ACCOUNTS, ADMIN_TOKEN, make_protocol


bps = st.integers(min_value=0, max_value=10_000)


class TestCollateralInvariant:

    @given(actions(max_size=30))
    @settings(max_examples=60, deadline=None)
    def test_borrow_and_withdraw_never_leave_a_shortfall(self, acts):
        protocol = make_world()
        for act in acts:
            error = apply_action(protocol, act)
            op, who, _ = act
            if error is None and op in ("borrow", "withdraw"):
                assert is_collateralized(protocol, who)

    @given(st.integers(min_value=1, max_value=60_000), st.integers(min_value=1, max_value=60_000))
    @settings(max_examples=60, deadline=None)
    def test_borrow_boundary(self, collateral, amount):
        protocol = make_protocol(balance=200_000)
        protocol.supply_liquidity("dave", "USDC", 200_000)
        protocol.deposit_collateral("alice", "USDC", collateral)
        try:
            protocol.borrow("alice", "USDC", amount)
            borrowed = True
        except LedgerError:
            borrowed = False
        assert borrowed == (amount * 15000 // 10000 <= collateral)


class TestCircleInvariant:

    @given(st.lists(
        st.tuples(st.sampled_from(["join", "add_stake", "bid", "distribute"]),
                  st.sampled_from(ACCOUNTS), st.integers(min_value=1, max_value=20_000)),
        max_size=30,
    ))
    @settings(max_examples=60, deadline=None)
    def test_pool_equals_sum_of_stakes(self, acts):
        protocol = make_world()
        for act in acts:
            apply_action(protocol, act)
            circle = protocol.get_circle(CIRCLE_OWNER)
            stakes = [protocol.get_circle_stake(CIRCLE_OWNER, m) for m in circle.members]
            assert circle.total_pool == sum(stakes)
            assert all(stake >= 0 for stake in stakes)


class TestTrustBounds:

    @given(st.lists(st.tuples(st.booleans(), st.sampled_from(ACCOUNTS)), max_size=80))
    @settings(max_examples=40, deadline=None)
    def test_scores_stay_in_range(self, outcomes):
        protocol = make_protocol()
        cap = AdminCapability("admin", ADMIN_TOKEN)
        for account in ACCOUNTS:
            protocol.register_trust_score(account)
        for success, account in outcomes:
            protocol.record_transaction("admin", cap, account, success)
            assert 0 <= protocol.trust_score(account) <= 1000

    @given(st.integers(min_value=0, max_value=1000), st.integers(min_value=-50, max_value=50))
    def test_saturating_step(self, score, delta):
        assert saturating_add(score, delta) == max(0, min(1000, score + delta))


class TestPaymentTransitions:

    @given(st.lists(
        st.tuples(st.sampled_from(["pay", "complete", "cancel"]),
                  st.sampled_from(ACCOUNTS), st.integers(min_value=1, max_value=5_000)),
        max_size=30,
    ))
    @settings(max_examples=60, deadline=None)
    def test_status_leaves_pending_once(self, acts):
        protocol = make_world()
        settled = {}
        for act in acts:
            apply_action(protocol, act)
            payment_id = 1
            while True:
                try:
                    payment = protocol.get_payment(payment_id)
                except LedgerError:
                    break
                assert payment.status is not PaymentStatus.FAILED
                assert (payment.completed_at is not None) == (payment.status is PaymentStatus.COMPLETED)
                if payment_id in settled:
                    assert payment.status is settled[payment_id]
                elif payment.status is not PaymentStatus.PENDING:
                    settled[payment_id] = payment.status
                payment_id += 1
        for account in ACCOUNTS:
            record = protocol.get_payment_account(account, "USDC")
            if record is not None:
                pending = sum(protocol.get_payment(i).amount for i in record.outgoing)
                assert record.escrow_balance == pending


class TestRoundTrip:

    @given(st.integers(min_value=1, max_value=100_000))
    @settings(max_examples=40, deadline=None)
    def test_deposit_then_withdraw(self, amount):
        protocol = make_protocol()
        protocol.deposit_collateral("alice", "USDC", amount)
        protocol.withdraw_collateral("alice", "USDC", amount)
        assert protocol.balance("alice", "USDC") == 100_000
        assert protocol.get_position("alice", "USDC").collateral == 0
        assert protocol.get_pool("USDC").total_collateral == 0
        assert protocol.total_value_locked() == 0

    @given(st.integers(min_value=1, max_value=100_000))
    @settings(max_examples=40, deadline=None)
    def test_supply_then_withdraw(self, amount):
        protocol = make_protocol()
        protocol.supply_liquidity("alice", "USDC", amount)
        protocol.withdraw_liquidity("alice", "USDC", amount)
        assert protocol.balance("alice", "USDC") == 100_000
        assert protocol.get_pool("USDC").total_supplied == 0


class TestRateModel:

    @given(bps, bps, bps, bps, bps, bps)
    def test_rate_is_monotone(self, base, optimal, slope1, slope2, u1, u2):
        model = InterestRateModel(base, optimal, slope1, slope2, datetime(2025, 1, 1))
        low, high = sorted((u1, u2))
        assert calculate_rate(model, low) <= calculate_rate(model, high)

    @given(bps, bps, bps, bps)
    def test_rate_bounds(self, base, optimal, slope1, slope2):
        model = InterestRateModel(base, optimal, slope1, slope2, datetime(2025, 1, 1))
        assert calculate_rate(model, 0) == base
        assert calculate_rate(model, 10_000) <= base + slope1 + slope2

    @given(st.integers(min_value=0, max_value=10**9), bps, st.integers(min_value=0, max_value=10**8))
    def test_accrued_interest_is_monotone_in_time(self, principal, rate, seconds):
        earlier = calculate_accrued_interest(principal, rate, seconds)
        later = calculate_accrued_interest(principal, rate, seconds + 1)
        assert 0 <= earlier <= later
