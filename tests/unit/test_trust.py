"""
test_trust.py - Unit tests for trust scores and endorsements

Tests:
- Registration (initial score, duplicates)
- Endorsement rules (self, duplicates, unregistered parties)
- Saturating outcome adjustments
- Loan activity totals
- credit_limit and reputation_level
- compute_* functions against a FakeView
"""

import pytest
from datetime import datetime

from trustlend import (
    AdminCapability, credit_limit, reputation_level,
    SelfEndorsement, AlreadyEndorsed, AccountNotRegistered, InvalidTrustScore,
    NotAuthorized, InvalidAmount, NotInitialized,
)
from trustlend.components import trust
from trustlend.core import trust_score_key

from tests.fake_view import FakeView


class TestRegistration:

    def test_initial_score(self, protocol):
        protocol.register_trust_score("alice")
        score = protocol.get_trust_score("alice")
        assert score.score == 500
        assert score.endorsers == ()
        assert score.successful_transactions == 0

    def test_register_twice(self, protocol):
        protocol.register_trust_score("alice")
        with pytest.raises(InvalidTrustScore):
            protocol.register_trust_score("alice")

    def test_unregistered_score_reads_zero(self, protocol):
        assert protocol.trust_score("alice") == 0
        assert protocol.get_trust_score("alice") is None

    def test_configured_initial_score(self):
        from tests.helpers import make_protocol
        protocol = make_protocol(initial_trust_score=700)
        protocol.register_trust_score("alice")
        assert protocol.trust_score("alice") == 700

    def test_requires_initialized_protocol(self, bare_protocol):
        with pytest.raises(NotInitialized):
            bare_protocol.register_trust_score("alice")


class TestEndorse:

    def test_endorse_adds_ten(self, protocol):
        protocol.register_trust_score("alice")
        protocol.register_trust_score("bob")
        protocol.endorse("alice", "bob")
        assert protocol.trust_score("bob") == 510
        assert protocol.get_trust_score("bob").endorsers == ("alice",)
        assert protocol.has_endorsed("alice", "bob")
        assert not protocol.has_endorsed("bob", "alice")
        assert protocol.trust_score("alice") == 500

    def test_self_endorsement(self, protocol):
        protocol.register_trust_score("alice")
        with pytest.raises(SelfEndorsement):
            protocol.endorse("alice", "alice")

    def test_double_endorsement(self, protocol):
        protocol.register_trust_score("alice")
        protocol.register_trust_score("bob")
        protocol.endorse("alice", "bob")
        with pytest.raises(AlreadyEndorsed):
            protocol.endorse("alice", "bob")
        assert protocol.trust_score("bob") == 510

    def test_endorsed_must_have_score(self, protocol):
        protocol.register_trust_score("alice")
        with pytest.raises(AccountNotRegistered):
            protocol.endorse("alice", "bob")

    def test_endorser_must_have_score(self, protocol):
        protocol.register_trust_score("bob")
        with pytest.raises(AccountNotRegistered):
            protocol.endorse("alice", "bob")

    def test_endorsement_saturates(self):
        view = FakeView(records={
            trust_score_key("alice"): _score_record("alice", 500),
            trust_score_key("bob"): _score_record("bob", 995),
        })
        pending = trust.compute_endorse(_active(view), "alice", "bob")
        new_state = pending.record_changes[0].new_state
        assert new_state['score'] == 1000


class TestOutcomes:

    def test_success_and_failure(self, protocol, cap):
        protocol.register_trust_score("alice")
        protocol.record_transaction("admin", cap, "alice", True)
        assert protocol.trust_score("alice") == 505
        protocol.record_transaction("admin", cap, "alice", False)
        assert protocol.trust_score("alice") == 485
        score = protocol.get_trust_score("alice")
        assert (score.successful_transactions, score.failed_transactions) == (1, 1)

    def test_failures_saturate_at_zero(self, protocol, cap):
        protocol.register_trust_score("alice")
        for _ in range(30):
            protocol.record_transaction("admin", cap, "alice", False)
        assert protocol.trust_score("alice") == 0
        assert protocol.get_trust_score("alice").failed_transactions == 30

    def test_requires_admin(self, protocol):
        protocol.register_trust_score("alice")
        with pytest.raises(NotAuthorized):
            protocol.record_transaction("alice", AdminCapability("alice", "x"), "alice", True)

    def test_loan_activity_totals(self, protocol, cap):
        protocol.register_trust_score("alice")
        protocol.record_loan_activity("admin", cap, "alice", borrowed=1000)
        protocol.record_loan_activity("admin", cap, "alice", repaid=400)
        score = protocol.get_trust_score("alice")
        assert (score.total_borrowed, score.total_repaid) == (1000, 400)

    def test_loan_activity_needs_an_amount(self, protocol, cap):
        protocol.register_trust_score("alice")
        with pytest.raises(InvalidAmount):
            protocol.record_loan_activity("admin", cap, "alice")
        with pytest.raises(InvalidAmount):
            protocol.record_loan_activity("admin", cap, "alice", borrowed=-1)


class TestPureFunctions:

    def test_credit_limit(self):
        assert credit_limit(10_000, 500) == 5000
        assert credit_limit(10_000, 1000) == 10_000
        assert credit_limit(333, 1) == 0

    @pytest.mark.parametrize("score,level", [
        (1000, 5), (900, 5), (899, 4), (750, 4), (749, 3), (600, 3),
        (599, 2), (400, 2), (399, 1), (200, 1), (199, 0), (0, 0),
    ])
    def test_reputation_level(self, score, level):
        assert reputation_level(score) == level

    def test_protocol_reputation_level(self, protocol):
        protocol.register_trust_score("alice")
        assert protocol.reputation_level("alice") == 2
        assert protocol.credit_limit("alice", 1000) == 500


# ============================================================================
# HELPERS
# ============================================================================

def _score_record(owner: str, score: int) -> dict:
    return {
        'owner': owner,
        'score': score,
        'successful_transactions': 0,
        'failed_transactions': 0,
        'total_borrowed': 0,
        'total_repaid': 0,
        'endorsers': [],
        'last_update': datetime(2025, 1, 1),
    }


def _active(view: FakeView) -> FakeView:
    view._records['protocol_config'] = {
        'admin': 'admin',
        'admin_digest': '',
        'version': 1,
        'paused': False,
        'total_value_locked': 0,
        'initialized_at': datetime(2025, 1, 1),
    }
    return view
