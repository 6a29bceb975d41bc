"""
ledger.py - Fee/Escrow Accounting Ledger

The Ledger class is the accounting state machine. Depositors pay native
currency to credit a receiver's withdrawable reserve; a per-deposit fee is
skimmed off into a separate balance that only the owner collects.

Key responsibilities:
    - Implements LedgerView for read-only queries
    - Executes every mutating call atomically (storage is restored on any error)
    - Serializes calls with a re-entrant lock
    - Settles withdrawals through an injected TransferPrimitive
    - Always logs successful calls, enabling clone() and replay()

Caller identity and attached payment are explicit arguments. The ledger never
reads ambient call context, so it can be driven directly in tests or through a
runtime such as fee_ledger.chain.Chain.
"""

from __future__ import annotations
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from .core import (
    # Types
    Address, Amount, CallContext, CallRecord, Endpoint, Payout, PayoutKind,
    TransferPrimitive,
    # Constants
    FEE_KEY, COLLECTED_FEES_KEY, RESERVE_KEY,
    # Exceptions
    LedgerError, Unauthorized, InsufficientPayment, NothingToClaim,
    # Helpers
    validate_address, validate_amount, diff_snapshots,
)
from .storage import MapMapper, MemoryStorage, SingleValueMapper, Storage


class PayoutOutbox:
    """
    TransferPrimitive that records payouts instead of moving funds.

    Used when the ledger runs without a runtime (unit tests, clone(), replay()).
    """

    def __init__(self):
        self.sent: List[Tuple[Address, Amount]] = []

    def send(self, recipient: Address, amount: Amount) -> None:
        self.sent.append((recipient, amount))

    def total_sent_to(self, recipient: Address) -> Amount:
        return sum(amount for who, amount in self.sent if who == recipient)


# Endpoint body: (ledger, context, payouts, *args) -> None
_Handler = Callable[..., None]


class Ledger:
    """
    Single-owner fee ledger with reserves per receiver.

    State:
        fee                         - charged on every deposit
        collectedFees               - fee revenue not yet withdrawn by the owner
        reserveForAddress[receiver] - amount owed to each receiver

    Thread Safety:
        Every call holds an internal re-entrant lock from start to finish.
        A payout that re-enters the ledger (for example a recipient calling
        withdraw() again from inside send()) observes the already-cleared
        reserve.

    Example:
        ledger = Ledger("owner", initial_fee=1, verbose=False)
        ledger.deposit("alice", "bob", 3)
        ledger.get_reserve_for_address("bob")   # 2
        ledger.get_collected_fees()             # 1
        ledger.withdraw("bob")                  # pays 2 to bob
    """

    def __init__(
        self,
        owner: Address,
        initial_fee: Amount = 0,
        storage: Optional[Storage] = None,
        transfer: Optional[TransferPrimitive] = None,
        name: str = "fee-ledger",
        verbose: bool = True,
    ):
        """
        Create (deploy) a ledger.

        Args:
            owner: Identity allowed to change the fee and collect fees
            initial_fee: Starting fee, non-negative (zero allowed)
            storage: Storage backend (default: fresh MemoryStorage)
            transfer: Payout primitive (default: PayoutOutbox)
            name: Ledger identifier used in output
            verbose: Print a line for every applied or rejected call

        Raises:
            InvalidAmount: If initial_fee is negative or not an integer
            ValueError: If owner is empty
        """
        self._setup(owner, storage, transfer, name, verbose)
        self._run(Endpoint.INIT, CallContext(owner), (initial_fee,), Ledger._init)

    def _setup(
        self,
        owner: Address,
        storage: Optional[Storage],
        transfer: Optional[TransferPrimitive],
        name: str,
        verbose: bool,
    ) -> None:
        self._owner = validate_address(owner, "owner")
        self.name = name
        self.verbose = verbose
        self.storage: Storage = storage if storage is not None else MemoryStorage()
        self.transfer: TransferPrimitive = transfer if transfer is not None else PayoutOutbox()
        self.call_log: List[CallRecord] = []
        self._next_sequence: int = 0
        self._lock = threading.RLock()
        self._fee = SingleValueMapper(self.storage, FEE_KEY)
        self._collected_fees = SingleValueMapper(self.storage, COLLECTED_FEES_KEY)
        self._reserves = MapMapper(self.storage, RESERVE_KEY)

    @classmethod
    def load(
        cls,
        owner: Address,
        storage: Storage,
        transfer: Optional[TransferPrimitive] = None,
        name: str = "fee-ledger",
        verbose: bool = True,
    ) -> Ledger:
        """
        Attach to a ledger whose state already lives in storage.

        init is not re-run; the call log starts empty.
        """
        ledger = cls.__new__(cls)
        ledger._setup(owner, storage, transfer, name, verbose)
        return ledger

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def owner(self) -> Address:
        return self._owner

    def get_fee(self) -> Amount:
        with self._lock:
            return self._fee.get()

    def get_collected_fees(self) -> Amount:
        with self._lock:
            return self._collected_fees.get()

    def get_reserve_for_address(self, receiver: Address) -> Amount:
        with self._lock:
            return self._reserves.get(receiver)

    def reserves(self) -> Dict[Address, Amount]:
        """Copy of all present reserve entries."""
        with self._lock:
            return dict(self._reserves.items())

    def total_held(self) -> Amount:
        """Collected fees plus every reserve: the value the ledger owes out."""
        with self._lock:
            return self._collected_fees.get() + self._reserves.total()

    def verify_conservation(self, expected_total: Optional[Amount] = None) -> Dict[str, Any]:
        """
        Verify that the ledger's balances are consistent.

        Checks that no balance is negative and, when expected_total is given
        (normally net deposits minus payouts, or the contract account's native
        balance), that collected fees plus reserves equal it.

        Returns:
            Dict with keys:
            - 'valid': bool
            - 'total_held': collected fees + sum of reserves
            - 'collected_fees': current collected fees
            - 'reserves': copy of the reserves mapping
            - 'discrepancies': list of human-readable problems

        Example:
            result = ledger.verify_conservation(chain.get_balance(contract))
            assert result['valid'], result['discrepancies']
        """
        with self._lock:
            collected = self._collected_fees.get()
            reserves = dict(self._reserves.items())
            fee = self._fee.get()

        discrepancies: List[str] = []
        if fee < 0:
            discrepancies.append(f"fee is negative: {fee}")
        if collected < 0:
            discrepancies.append(f"collectedFees is negative: {collected}")
        for receiver, amount in reserves.items():
            if amount <= 0:
                discrepancies.append(f"reserve for {receiver} is not positive: {amount}")

        total = collected + sum(reserves.values())
        if expected_total is not None and total != expected_total:
            discrepancies.append(f"total held {total} != expected {expected_total}")

        return {
            'valid': len(discrepancies) == 0,
            'total_held': total,
            'collected_fees': collected,
            'reserves': reserves,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # ENDPOINTS (Mutating)
    # ========================================================================

    def set_fee(self, caller: Address, new_fee: Amount) -> None:
        """
        Replace the per-deposit fee. Owner only.

        Raises:
            Unauthorized: If caller is not the owner
            InvalidAmount: If new_fee is negative or not an integer
        """
        self._run(Endpoint.SET_FEE, CallContext(caller), (new_fee,), Ledger._set_fee)

    configure_fee = set_fee

    def deposit(self, caller: Address, receiver: Address, payment: Amount) -> None:
        """
        Split a payment into the current fee and a reserve for receiver.

        Any caller may deposit for any receiver, including themselves and
        the owner.

        Raises:
            InsufficientPayment: If payment does not strictly exceed the fee
            InvalidAmount: If payment is negative or not an integer
        """
        self._run(Endpoint.DEPOSIT, CallContext(caller, payment), (receiver,), Ledger._deposit)

    def withdraw(self, caller: Address) -> None:
        """
        Pay out the caller's reserve, plus all collected fees if the caller is the owner.

        The reserve is cleared before its payout is sent, and the reserve payout
        completes before collected fees are touched.

        Raises:
            NothingToClaim: If a non-owner caller has no reserve
            TransferFailure: If the runtime cannot deliver a payout (call is rolled back)
        """
        self._run(Endpoint.WITHDRAW, CallContext(caller), (), Ledger._withdraw)

    # ------------------------------------------------------------------------
    # Endpoint bodies. Run inside _run(), which owns locking and rollback.
    # ------------------------------------------------------------------------

    def _init(self, context: CallContext, payouts: List[Payout], initial_fee: Amount) -> None:
        self._fee.set(validate_amount(initial_fee, "initial_fee"))

    def _set_fee(self, context: CallContext, payouts: List[Payout], new_fee: Amount) -> None:
        self._require_owner(context.caller)
        self._fee.set(validate_amount(new_fee, "fee"))

    def _deposit(self, context: CallContext, payouts: List[Payout], receiver: Address) -> None:
        validate_address(receiver, "receiver")
        # Read once: the same value gates the payment and is credited.
        fee = self._fee.get()
        if context.payment <= fee:
            raise InsufficientPayment()
        if fee:
            self._collected_fees.update(lambda collected: collected + fee)
        self._reserves.add(receiver, context.payment - fee)

    def _withdraw(self, context: CallContext, payouts: List[Payout]) -> None:
        caller = context.caller
        is_owner = caller == self._owner
        amount = self._reserves.get(caller)
        if not is_owner and amount == 0:
            raise NothingToClaim()

        self._reserves.clear(caller)
        self._pay(payouts, caller, amount, PayoutKind.RESERVE)

        if is_owner:
            fees = self._collected_fees.get()
            self._collected_fees.clear()
            self._pay(payouts, caller, fees, PayoutKind.COLLECTED_FEES)

    def _require_owner(self, caller: Address) -> None:
        if caller != self._owner:
            raise Unauthorized()

    def _pay(self, payouts: List[Payout], recipient: Address, amount: Amount, kind: PayoutKind) -> None:
        if amount == 0:
            return
        self.transfer.send(recipient, amount)
        payouts.append(Payout(recipient=recipient, amount=amount, kind=kind))

    # ========================================================================
    # CALL EXECUTION
    # ========================================================================

    def _run(
        self,
        endpoint: Endpoint,
        context: CallContext,
        args: Tuple[Any, ...],
        handler: _Handler,
    ) -> CallRecord:
        """
        Execute one endpoint atomically and log it.

        Storage, the call log and the sequence counter are captured before the
        handler runs and restored if it raises, so nested calls made from a
        payout are undone together with the outer call. The exception then
        propagates unchanged.
        """
        with self._lock:
            before = self.storage.snapshot()
            log_length = len(self.call_log)
            sequence = self._next_sequence
            payouts: List[Payout] = []
            try:
                handler(self, context, payouts, *args)
            except Exception as exc:
                self.storage.restore(before)
                del self.call_log[log_length:]
                self._next_sequence = sequence
                if self.verbose:
                    print(f"✗ REJECTED {endpoint.value} from {context.caller}: {exc}")
                raise

            record = CallRecord(
                endpoint=endpoint,
                context=context,
                args=args,
                storage_changes=diff_snapshots(before, self.storage.snapshot()),
                payouts=tuple(payouts),
                sequence_number=self._next_sequence,
            )
            self._next_sequence += 1
            self.call_log.append(record)

            if self.verbose:
                self._print_call_result(record)
            return record

    def _print_call_result(self, record: CallRecord) -> None:
        args = ", ".join(repr(a) for a in record.args)
        line = f"✓ {self.name} #{record.sequence_number} {record.endpoint.value}({args}) from {record.context.caller}"
        if record.context.payment:
            line += f" with {record.context.payment}"
        for payout in record.payouts:
            line += f" | {payout!r}"
        print(line)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent deep copy of this ledger.

        The clone gets its own MemoryStorage and a fresh PayoutOutbox, so
        withdrawals on the clone never reach the source ledger's runtime.
        """
        with self._lock:
            cloned = Ledger.load(
                self._owner,
                MemoryStorage(self.storage.snapshot()),
                name=self.name,
                verbose=self.verbose,
            )
            cloned.call_log = list(self.call_log)
            cloned._next_sequence = self._next_sequence
            return cloned

    def replay(self) -> Ledger:
        """
        Rebuild a ledger by re-running the call log from init.

        Each replayed call must reproduce the recorded call id, storage changes
        and payouts, and the rebuilt storage must equal the current storage.
        Payouts are sent to a PayoutOutbox, so effects that a reentrant
        transfer primitive produced during the original run show up as
        divergence.

        Raises:
            LedgerError: If the log does not start with init, a replayed call
                         fails, or the replayed state differs from the record
        """
        if not self.call_log or self.call_log[0].endpoint is not Endpoint.INIT:
            raise LedgerError("Cannot replay: call log does not start with init")

        first = self.call_log[0]
        new_ledger = Ledger(
            owner=self._owner,
            initial_fee=first.args[0],
            name=f"{self.name}_replayed",
            verbose=self.verbose,
        )
        handlers = {
            Endpoint.SET_FEE: Ledger._set_fee,
            Endpoint.DEPOSIT: Ledger._deposit,
            Endpoint.WITHDRAW: Ledger._withdraw,
        }
        for record in self.call_log[1:]:
            try:
                replayed = new_ledger._run(record.endpoint, record.context, record.args, handlers[record.endpoint])
            except LedgerError as exc:
                raise LedgerError(f"Replay failed at call {record.call_id}: {exc}") from exc
            if (
                replayed.call_id != record.call_id
                or replayed.storage_changes != record.storage_changes
                or replayed.payouts != record.payouts
            ):
                raise LedgerError(f"Replay diverged at call {record.call_id}")
        if new_ledger.storage.snapshot() != self.storage.snapshot():
            raise LedgerError("Replay diverged: rebuilt storage differs from current storage")
        return new_ledger

    def __repr__(self) -> str:
        return (
            f"Ledger({self.name!r}, owner={self._owner!r}, fee={self.get_fee()}, "
            f"collected_fees={self.get_collected_fees()}, reserves={len(self.reserves())})"
        )
