"""
Core types and pure functions for the fee ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access, TransferPrimitive for payouts
2. Immutable data structures: CallContext, Payout, StorageChange, CallRecord, Move
3. Exceptions: LedgerError and the rejection types raised by ledger endpoints
4. Type aliases and storage key layout
5. Validation helpers for amounts and addresses

Nothing in this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import hashlib
from typing import (
    Dict, List, Optional, Any, Protocol,
    Tuple, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Native currency moved by the runtime. Only one asset exists.
NATIVE_TOKEN = "EGLD"

# Reserved account for issuance on the chain runtime.
# The system account is exempt from balance validation.
SYSTEM_ACCOUNT = "system"

# Persisted storage layout.
FEE_KEY = "fee"
COLLECTED_FEES_KEY = "collectedFees"
RESERVE_KEY = "reserveForAddress"

# Stable rejection messages. Existing callers match on these strings.
ERR_NOT_OWNER = "Endpoint can only be called by owner"
ERR_INSUFFICIENT_PAYMENT = "Payments must be greater than fee"
ERR_NOTHING_TO_CLAIM = "Nothing to claim"
ERR_NON_PAYABLE = "function does not accept EGLD payment"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque account identity (wallet or contract address).
Address = str

# Native-currency amount. Python ints are arbitrary precision.
Amount = int

# Raw key-value contents of a storage backend.
StorageSnapshot = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Query code (CLI, reconciliation helpers, tests) accepts a LedgerView to
    declare that it never mutates the ledger. The Ledger class implements this
    protocol alongside its mutating endpoints.
    """

    @property
    def owner(self) -> Address:
        """Return the identity fixed at ledger creation."""
        ...

    def get_fee(self) -> Amount:
        """Return the current per-deposit fee."""
        ...

    def get_collected_fees(self) -> Amount:
        """Return fee revenue not yet withdrawn by the owner (0 if none)."""
        ...

    def get_reserve_for_address(self, receiver: Address) -> Amount:
        """Return the withdrawable balance of a receiver (0 if none)."""
        ...


@runtime_checkable
class TransferPrimitive(Protocol):
    """
    Funds-transfer primitive supplied by the ledger runtime.

    send() either delivers the full amount or raises TransferFailure.
    The ledger rolls back its own storage when that happens; the runtime is
    responsible for undoing anything it already delivered within the call.
    """

    def send(self, recipient: Address, amount: Amount) -> None:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class Endpoint(Enum):
    """Mutating entry points of the ledger, named as the runtime exposes them."""
    INIT = "init"
    SET_FEE = "setFee"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class PayoutKind(Enum):
    """
    Which balance a payout settles.

    RESERVE: the caller's own reserve.
    COLLECTED_FEES: the owner's accumulated fee revenue.
    """
    RESERVE = "reserve"
    COLLECTED_FEES = "collected_fees"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class Unauthorized(LedgerError):
    """Raised when a non-owner calls an owner-only endpoint."""

    def __init__(self, message: str = ERR_NOT_OWNER):
        super().__init__(message)


class InsufficientPayment(LedgerError):
    """Raised when a deposit's payment does not strictly exceed the fee."""

    def __init__(self, message: str = ERR_INSUFFICIENT_PAYMENT):
        super().__init__(message)


class NothingToClaim(LedgerError):
    """Raised when a non-owner withdraws without any reserve."""

    def __init__(self, message: str = ERR_NOTHING_TO_CLAIM):
        super().__init__(message)


class TransferFailure(LedgerError):
    """Raised by the runtime when funds cannot be delivered to a recipient."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a runtime account cannot cover a move."""
    pass


class InvalidAmount(LedgerError, ValueError):
    """Raised when an amount is negative or not an integer."""
    pass


class UnknownEndpoint(LedgerError):
    """Raised when the runtime is asked to dispatch an endpoint that does not exist."""
    pass


class AccountNotRegistered(LedgerError):
    """Raised when the runtime is asked about an account it has never seen."""
    pass


class ConfigError(LedgerError):
    """Raised when configuration values cannot be parsed."""
    pass


# ============================================================================
# VALIDATION
# ============================================================================

def validate_amount(value: Any, name: str = "amount") -> Amount:
    """
    Check that a value is a non-negative integer amount.

    bool is rejected even though it subclasses int.

    Raises:
        InvalidAmount: If the value is not an int or is negative.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {value}")
    return value


def validate_address(value: Any, name: str = "address") -> Address:
    """Check that an identity is a non-empty string."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} cannot be empty")
    return value


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class CallContext:
    """
    Authenticated call metadata delivered by the runtime.

    Attributes:
        caller: Identity that signed the call.
        payment: Native currency attached to the call (0 for none).
    """
    caller: Address
    payment: Amount = 0

    def __post_init__(self):
        validate_address(self.caller, "caller")
        validate_amount(self.payment, "payment")


@dataclass(frozen=True, slots=True)
class Payout:
    """A single settlement issued by withdraw()."""
    recipient: Address
    amount: Amount
    kind: PayoutKind

    def __repr__(self) -> str:
        return f"Payout({self.amount} {NATIVE_TOKEN} → {self.recipient} [{self.kind.value}])"


@dataclass(frozen=True, slots=True)
class StorageChange:
    """
    Before/after value of one storage key during a call.

    None on either side means the key was absent.
    """
    key: str
    old_value: Optional[Amount]
    new_value: Optional[Amount]


@dataclass(frozen=True, slots=True)
class Move:
    """
    A transfer of native currency between two runtime accounts.

    Attributes:
        quantity: Amount to transfer (must be positive).
        source: Account debited.
        dest: Account credited.
        reference: Why the move happened ("issuance", "call:deposit", "payout").
    """
    quantity: Amount
    source: Address
    dest: Address
    reference: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.reference or not self.reference.strip():
            raise ValueError("Move reference cannot be empty")
        validate_amount(self.quantity, "Move quantity")
        if self.quantity == 0:
            raise ValueError("Move quantity cannot be zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {NATIVE_TOKEN}: {self.source}→{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Independent of dict insertion order.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(item) for item in value) + "]"
    return f"R:{value!r}"


def _compute_call_id(
    sequence_number: int,
    endpoint: Endpoint,
    context: CallContext,
    args: Tuple[Any, ...],
) -> str:
    """
    Deterministic identifier for an executed call.

    Two ledgers that process the same calls in the same order produce the
    same call ids, which is what replay() relies on.
    """
    content = "|".join([
        f"seq:{sequence_number}",
        f"endpoint:{endpoint.value}",
        f"caller:{context.caller}",
        f"payment:{context.payment}",
        f"args:{_canonicalize(args)}",
    ])
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class CallRecord:
    """
    Executed, immutable record of a successful ledger call.

    Attributes:
        endpoint: Which endpoint ran.
        context: Caller identity and attached payment.
        args: Endpoint arguments besides the context (e.g. receiver, new fee).
        storage_changes: Keys touched by the call with their old and new values.
        payouts: Settlements issued (withdraw only).
        sequence_number: Monotonic position within the ledger's call log.
        call_id: Content hash (auto-computed).
    """
    endpoint: Endpoint
    context: CallContext
    args: Tuple[Any, ...]
    storage_changes: Tuple[StorageChange, ...]
    payouts: Tuple[Payout, ...]
    sequence_number: int
    call_id: str = field(default="")

    def __post_init__(self):
        if not self.call_id:
            object.__setattr__(
                self, 'call_id',
                _compute_call_id(self.sequence_number, self.endpoint, self.context, self.args)
            )

    def paid_out(self) -> Amount:
        """Total value this call sent out of the ledger."""
        return sum(p.amount for p in self.payouts)

    def __repr__(self) -> str:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        args = ", ".join(repr(a) for a in self.args)
        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Call #' + str(self.sequence_number) + ': ' + self.endpoint.value + '(' + args + ')')}│",
            f"├{bar}┤",
            f"│{pad('   call_id  : ' + self.call_id)}│",
            f"│{pad('   caller   : ' + self.context.caller)}│",
            f"│{pad('   payment  : ' + str(self.context.payment))}│",
        ]
        if self.storage_changes:
            lines.append(f"├{bar}┤")
            for sc in self.storage_changes:
                lines.append(f"│{pad(f'   {sc.key}: {sc.old_value!r} → {sc.new_value!r}')}│")
        if self.payouts:
            lines.append(f"├{bar}┤")
            for payout in self.payouts:
                lines.append(f"│{pad('   ' + repr(payout))}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def diff_snapshots(before: StorageSnapshot, after: StorageSnapshot) -> Tuple[StorageChange, ...]:
    """
    Compute the storage keys that differ between two snapshots.

    Returns:
        StorageChange entries sorted by key.
    """
    changes: List[StorageChange] = []
    for key in sorted(set(before) | set(after)):
        old_val = before.get(key)
        new_val = after.get(key)
        if old_val != new_val:
            changes.append(StorageChange(key=key, old_value=old_val, new_value=new_val))
    return tuple(changes)
