"""
fee_ledger - Escrow Ledger with Per-Deposit Fees

Depositors pay native currency to credit a receiver's withdrawable reserve.
A configurable fee is skimmed from every deposit and accumulates for the
ledger owner, who collects it on withdraw.

Usage:
    from fee_ledger import Chain

    chain = Chain(verbose=False)
    for name in ("owner", "alice", "bob"):
        chain.register_account(name)
    chain.fund("alice", 10)

    contract = chain.deploy("owner", initial_fee=1)
    chain.call(contract, "alice", "deposit", "bob", payment=3)
    chain.call(contract, "bob", "withdraw")        # bob receives 2
    chain.call(contract, "owner", "withdraw")      # owner receives the fee, 1

The Ledger can also be driven directly, with caller and payment passed in:

    from fee_ledger import Ledger

    ledger = Ledger("owner", initial_fee=1, verbose=False)
    ledger.deposit("alice", "bob", 3)
    ledger.withdraw("bob")
"""

# Core types
from .core import (
    LedgerView,
    TransferPrimitive,
    CallContext,
    CallRecord,
    Payout,
    PayoutKind,
    StorageChange,
    Move,
    Endpoint,
    LedgerError,
    Unauthorized,
    InsufficientPayment,
    NothingToClaim,
    TransferFailure,
    InsufficientFunds,
    InvalidAmount,
    UnknownEndpoint,
    AccountNotRegistered,
    ConfigError,
    NATIVE_TOKEN,
    SYSTEM_ACCOUNT,
    FEE_KEY,
    COLLECTED_FEES_KEY,
    RESERVE_KEY,
    ERR_NOT_OWNER,
    ERR_INSUFFICIENT_PAYMENT,
    ERR_NOTHING_TO_CLAIM,
)

# Storage
from .storage import (
    Storage,
    MemoryStorage,
    SingleValueMapper,
    MapMapper,
)

# Ledger
from .ledger import Ledger, PayoutOutbox

# Runtime
from .chain import Chain, ContractTransfer

# Config
from .config import LedgerConfig

__all__ = [
    # Core
    'LedgerView', 'TransferPrimitive',
    'CallContext', 'CallRecord', 'Payout', 'PayoutKind', 'StorageChange', 'Move', 'Endpoint',
    'LedgerError', 'Unauthorized', 'InsufficientPayment', 'NothingToClaim',
    'TransferFailure', 'InsufficientFunds', 'InvalidAmount', 'UnknownEndpoint',
    'AccountNotRegistered', 'ConfigError',
    'NATIVE_TOKEN', 'SYSTEM_ACCOUNT', 'FEE_KEY', 'COLLECTED_FEES_KEY', 'RESERVE_KEY',
    'ERR_NOT_OWNER', 'ERR_INSUFFICIENT_PAYMENT', 'ERR_NOTHING_TO_CLAIM',
    # Storage
    'Storage', 'MemoryStorage', 'SingleValueMapper', 'MapMapper',
    # Ledger
    'Ledger', 'PayoutOutbox',
    # Runtime
    'Chain', 'ContractTransfer',
    # Config
    'LedgerConfig',
]

__version__ = '1.0.0'
