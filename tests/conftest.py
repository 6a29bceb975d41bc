"""
conftest.py - Shared pytest fixtures for fee ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Standalone ledgers (fee 1, fee 0)
- A funded chain with a deployed contract
- The three-deposit scenario used throughout the scenario tests
"""

import pytest

from fee_ledger import Chain, Ledger


OWNER = "owner"
ADDRESS1 = "address1"
ADDRESS2 = "address2"
RECEIVER = "receiver"
CONTRACT = "fee-ledger"

# Starting native balances for the funded chain.
INITIAL_BALANCES = {
    OWNER: 4,
    ADDRESS1: 5,
    ADDRESS2: 6,
    RECEIVER: 0,
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_chain(balances=None) -> Chain:
    """Create a quiet chain with registered, funded accounts."""
    chain = Chain("test", verbose=False)
    for address, balance in (balances or INITIAL_BALANCES).items():
        chain.register_account(address)
        chain.fund(address, balance)
    return chain


def run_deposit_scenario(chain: Chain, contract: str) -> None:
    """address1→receiver 3, address2→receiver 4, owner→address1 2."""
    chain.call(contract, ADDRESS1, "deposit", RECEIVER, payment=3)
    chain.call(contract, ADDRESS2, "deposit", RECEIVER, payment=4)
    chain.call(contract, OWNER, "deposit", ADDRESS1, payment=2)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Standalone ledger owned by OWNER with fee 1."""
    return Ledger(OWNER, initial_fee=1, verbose=False)


@pytest.fixture
def free_ledger():
    """Standalone ledger owned by OWNER with fee 0."""
    return Ledger(OWNER, initial_fee=0, verbose=False)


@pytest.fixture
def scenario_ledger(ledger):
    """Fee-1 ledger after the three-deposit scenario."""
    ledger.deposit(ADDRESS1, RECEIVER, 3)
    ledger.deposit(ADDRESS2, RECEIVER, 4)
    ledger.deposit(OWNER, ADDRESS1, 2)
    return ledger


# =============================================================================
# CHAIN FIXTURES
# =============================================================================

@pytest.fixture
def chain():
    """Chain with owner=4, address1=5, address2=6, receiver=0."""
    return make_chain()


@pytest.fixture
def contract(chain):
    """Fee ledger deployed by OWNER with fee 1."""
    return chain.deploy(OWNER, 1, address=CONTRACT)


@pytest.fixture
def scenario_chain(chain, contract):
    """Chain after the three-deposit scenario against the fee-1 contract."""
    run_deposit_scenario(chain, contract)
    return chain
