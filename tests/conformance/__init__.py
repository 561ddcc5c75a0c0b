"""
Conformance Test Suite

Normative behavior of the protocol, organized by invariant:
1. test_conservation.py - Double-entry and pool accounting identities
2. test_atomicity.py - A failed operation leaves no trace
3. test_idempotency.py - Duplicate and stale execution handling
4. test_determinism.py - Identical inputs produce identical ledgers
5. test_invariants.py - Collateral, circle, trust, payment and rate invariants

These tests use hypothesis for property-based testing.
"""
