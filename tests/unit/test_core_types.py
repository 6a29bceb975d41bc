"""
test_core_types.py - Unit tests for core data structures

Tests:
- Amount and address validation
- CallContext, Payout, Move validation
- CallRecord identity and display
- Storage snapshot diffing
- Exception hierarchy and stable messages
"""

import pytest

from fee_ledger import (
    CallContext, CallRecord, Endpoint, Move, Payout, PayoutKind, StorageChange,
    LedgerError, Unauthorized, InsufficientPayment, NothingToClaim, InvalidAmount,
    TransferFailure,
)
from fee_ledger.core import (
    validate_amount, validate_address, diff_snapshots, _compute_call_id,
)


class TestValidateAmount:
    """Tests for validate_amount."""

    def test_zero_allowed(self):
        assert validate_amount(0) == 0

    def test_arbitrary_precision(self):
        huge = 10 ** 60
        assert validate_amount(huge) == huge

    def test_negative_rejected(self):
        with pytest.raises(InvalidAmount, match="non-negative"):
            validate_amount(-1)

    def test_float_rejected(self):
        with pytest.raises(InvalidAmount, match="integer"):
            validate_amount(1.5)

    def test_bool_rejected(self):
        """bool subclasses int but is never a valid amount."""
        with pytest.raises(InvalidAmount):
            validate_amount(True)

    def test_invalid_amount_is_value_error(self):
        """Callers catching ValueError also see InvalidAmount."""
        with pytest.raises(ValueError):
            validate_amount(-5)

    def test_name_in_message(self):
        with pytest.raises(InvalidAmount, match="payment"):
            validate_amount(-1, "payment")


class TestValidateAddress:

    def test_valid(self):
        assert validate_address("alice") == "alice"

    @pytest.mark.parametrize("value", ["", "   ", None, 42])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="cannot be empty"):
            validate_address(value)


class TestCallContext:
    """Tests for CallContext."""

    def test_defaults_to_no_payment(self):
        ctx = CallContext("alice")
        assert ctx.caller == "alice"
        assert ctx.payment == 0

    def test_with_payment(self):
        assert CallContext("alice", 7).payment == 7

    def test_negative_payment_rejected(self):
        with pytest.raises(InvalidAmount):
            CallContext("alice", -1)

    def test_empty_caller_rejected(self):
        with pytest.raises(ValueError):
            CallContext("")

    def test_immutable(self):
        ctx = CallContext("alice", 1)
        with pytest.raises(AttributeError):
            ctx.payment = 2


class TestMove:
    """Tests for Move validation."""

    def test_valid_move(self):
        move = Move(5, "alice", "bob", "deposit")
        assert move.quantity == 5
        assert "alice→bob" in repr(move)

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError, match="zero"):
            Move(0, "alice", "bob", "deposit")

    def test_negative_quantity_rejected(self):
        with pytest.raises(InvalidAmount):
            Move(-3, "alice", "bob", "deposit")

    def test_same_source_and_dest_rejected(self):
        with pytest.raises(ValueError, match="different"):
            Move(1, "alice", "alice", "deposit")

    @pytest.mark.parametrize("source,dest,reference", [
        ("", "bob", "ref"),
        ("alice", "", "ref"),
        ("alice", "bob", ""),
    ])
    def test_empty_fields_rejected(self, source, dest, reference):
        with pytest.raises(ValueError, match="cannot be empty"):
            Move(1, source, dest, reference)


class TestPayout:

    def test_repr_names_kind(self):
        payout = Payout("owner", 3, PayoutKind.COLLECTED_FEES)
        assert "owner" in repr(payout)
        assert "collected_fees" in repr(payout)


class TestCallRecord:
    """Tests for CallRecord."""

    def _record(self, sequence=0, payment=3):
        return CallRecord(
            endpoint=Endpoint.DEPOSIT,
            context=CallContext("alice", payment),
            args=("bob",),
            storage_changes=(StorageChange("reserveForAddress[bob]", None, 2),),
            payouts=(),
            sequence_number=sequence,
        )

    def test_call_id_auto_computed(self):
        record = self._record()
        assert len(record.call_id) == 16

    def test_call_id_deterministic(self):
        assert self._record().call_id == self._record().call_id

    def test_call_id_depends_on_sequence(self):
        assert self._record(sequence=0).call_id != self._record(sequence=1).call_id

    def test_call_id_depends_on_payment(self):
        assert self._record(payment=3).call_id != self._record(payment=4).call_id

    def test_call_id_matches_helper(self):
        record = self._record()
        expected = _compute_call_id(0, Endpoint.DEPOSIT, CallContext("alice", 3), ("bob",))
        assert record.call_id == expected

    def test_paid_out(self):
        record = CallRecord(
            endpoint=Endpoint.WITHDRAW,
            context=CallContext("owner"),
            args=(),
            storage_changes=(),
            payouts=(
                Payout("owner", 2, PayoutKind.RESERVE),
                Payout("owner", 3, PayoutKind.COLLECTED_FEES),
            ),
            sequence_number=4,
        )
        assert record.paid_out() == 5

    def test_repr_shows_changes(self):
        text = repr(self._record())
        assert "deposit('bob')" in text
        assert "reserveForAddress[bob]: None → 2" in text


class TestDiffSnapshots:

    def test_no_changes(self):
        assert diff_snapshots({"fee": 1}, {"fee": 1}) == ()

    def test_added_changed_removed(self):
        before = {"fee": 1, "reserveForAddress[a]": 4}
        after = {"fee": 2, "collectedFees": 1}
        changes = diff_snapshots(before, after)
        assert changes == (
            StorageChange("collectedFees", None, 1),
            StorageChange("fee", 1, 2),
            StorageChange("reserveForAddress[a]", 4, None),
        )


class TestExceptions:
    """Rejections carry stable messages and share a base class."""

    def test_messages(self):
        assert str(Unauthorized()) == "Endpoint can only be called by owner"
        assert str(InsufficientPayment()) == "Payments must be greater than fee"
        assert str(NothingToClaim()) == "Nothing to claim"

    @pytest.mark.parametrize("exc_type", [
        Unauthorized, InsufficientPayment, NothingToClaim, TransferFailure, InvalidAmount,
    ])
    def test_all_are_ledger_errors(self, exc_type):
        assert issubclass(exc_type, LedgerError)
