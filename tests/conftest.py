"""
conftest.py - Shared pytest fixtures for protocol tests

Provides common fixtures used across unit, conformance and functional tests:
- An initialized protocol with a USDC lending pool
- The same protocol before initialization
- The admin capability
- A pool that already holds supplied liquidity
"""

import pytest

from trustlend import AdminCapability

from tests.helpers import make_protocol, ADMIN_TOKEN


@pytest.fixture
def protocol():
    """Initialized protocol with a USDC pool at a 150% minimum ratio."""
    return make_protocol()


@pytest.fixture
def bare_protocol():
    """Protocol with funded accounts that has not been initialized."""
    return make_protocol(initialize=False)


@pytest.fixture
def cap(protocol):
    return AdminCapability("admin", ADMIN_TOKEN)


@pytest.fixture
def liquid_protocol(protocol):
    """Initialized protocol whose USDC pool holds 50000 supplied by dave."""
    protocol.supply_liquidity("dave", "USDC", 50_000)
    return protocol
