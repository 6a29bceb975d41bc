"""
Atomicity Conformance Tests

INVARIANT: Calls are all-or-nothing.

    ∀ call C:
        C succeeds ⟹ all of its storage writes, balance moves and payouts apply
        C fails ⟹ storage, balances and the call log are exactly as before

Partial application is impossible by construction.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fee_ledger import (
    Ledger, LedgerError, TransferFailure, InsufficientPayment,
)

from .strategies import OWNER, PARTICIPANTS, apply, make_chain, operation, operation_sequence


def observable_state(chain, contract):
    ledger = chain.get_contract(contract)
    return (
        dict(chain.balances),
        ledger.storage.snapshot(),
        len(ledger.call_log),
        len(chain.move_log),
    )


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(prefix=operation_sequence(), op=operation())
    @settings(max_examples=200, deadline=None)
    def test_rejected_call_changes_nothing(self, prefix, op):
        """
        PROPERTY: Whatever state a chain is in, a rejected call leaves it unchanged.
        """
        chain, contract = make_chain()
        for earlier in prefix:
            apply(chain, contract, earlier)

        before = observable_state(chain, contract)
        if not apply(chain, contract, op):
            assert observable_state(chain, contract) == before

    @given(prefix=operation_sequence(), victim=st.sampled_from(PARTICIPANTS))
    @settings(max_examples=100, deadline=None)
    def test_failed_payout_rolls_back_withdraw(self, prefix, victim):
        """
        PROPERTY: A withdraw whose payout cannot be delivered leaves reserves,
        collected fees and balances untouched.
        """
        chain, contract = make_chain()
        for earlier in prefix:
            apply(chain, contract, earlier)

        chain.block_account(victim)
        before = observable_state(chain, contract)
        try:
            chain.call(contract, victim, "withdraw")
        except LedgerError:
            assert observable_state(chain, contract) == before
        else:
            # Nothing was owed, so no payout was attempted.
            ledger = chain.get_contract(contract)
            assert victim == OWNER
            assert ledger.get_collected_fees() == 0
            assert ledger.get_reserve_for_address(OWNER) == 0


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_failed_fee_payout_restores_reserve_payout(self):
        """The owner's reserve payout is undone when the fee payout fails."""
        sent = []

        class FailSecond:
            def send(self, recipient, amount):
                if sent:
                    raise TransferFailure("second payout refused")
                sent.append((recipient, amount))

        ledger = Ledger(OWNER, initial_fee=2, transfer=FailSecond(), verbose=False)
        ledger.deposit("alice", OWNER, 5)
        before = ledger.storage.snapshot()

        with pytest.raises(TransferFailure):
            ledger.withdraw(OWNER)

        assert ledger.storage.snapshot() == before
        assert len(ledger.call_log) == 2

    def test_unexpected_error_in_transfer_rolls_back(self):
        class Broken:
            def send(self, recipient, amount):
                raise RuntimeError("transport down")

        ledger = Ledger(OWNER, initial_fee=1, transfer=Broken(), verbose=False)
        ledger.deposit("alice", "bob", 4)

        with pytest.raises(RuntimeError):
            ledger.withdraw("bob")
        assert ledger.get_reserve_for_address("bob") == 3

    def test_rejected_deposit_refunds_payment(self):
        chain, contract = make_chain(initial_fee=5)
        before = observable_state(chain, contract)
        with pytest.raises(InsufficientPayment):
            chain.call(contract, "alice", "deposit", "bob", payment=5)
        assert observable_state(chain, contract) == before
