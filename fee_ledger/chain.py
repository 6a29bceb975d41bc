"""
chain.py - In-process ledger runtime

The Chain plays the part of the host that a deployed fee ledger runs on:

    - Holds native-currency balances for accounts (double-entry: every move
      debits one account and credits another, so total supply never changes)
    - Deploys Ledger instances, each with its own contract account
    - Delivers calls with an authenticated caller and an attached payment
    - Provides the funds-transfer primitive used by withdraw()
    - Gives every call an all-or-nothing boundary across balances and storage

Funds enter the chain only through SYSTEM_ACCOUNT, which is exempt from
balance validation and therefore holds the negative of everything issued.

Example:
    chain = Chain(verbose=False)
    for name in ("owner", "alice", "bob"):
        chain.register_account(name)
    chain.fund("alice", 10)

    contract = chain.deploy("owner", initial_fee=1)
    chain.call(contract, "alice", "deposit", "bob", payment=3)
    chain.query(contract, "getReserveForAddress", "bob")   # 2
    chain.call(contract, "bob", "withdraw")
    chain.get_balance("bob")                               # 2
"""

from __future__ import annotations
import threading
from typing import Any, Dict, List, Optional, Set

from .core import (
    Address, Amount, Move,
    NATIVE_TOKEN, SYSTEM_ACCOUNT, ERR_NON_PAYABLE,
    LedgerError, TransferFailure, InsufficientFunds,
    UnknownEndpoint, AccountNotRegistered,
    validate_address, validate_amount,
)
from .ledger import Ledger
from .storage import MemoryStorage


class ContractTransfer:
    """
    TransferPrimitive that pays out of one contract's account on a Chain.

    Any failure to apply the move surfaces as TransferFailure.
    """

    def __init__(self, chain: Chain, contract: Address):
        self.chain = chain
        self.contract = contract

    def send(self, recipient: Address, amount: Amount) -> None:
        try:
            self.chain._apply_move(Move(amount, self.contract, recipient, "payout"))
        except TransferFailure:
            raise
        except LedgerError as exc:
            raise TransferFailure(f"payout to {recipient} failed: {exc}") from exc


# endpoint name -> accepts payment
_ENDPOINTS = {
    "setFee": False,
    "deposit": True,
    "withdraw": False,
}

_VIEWS = ("getFee", "getCollectedFees", "getReserveForAddress")


class Chain:
    """
    Native-currency accounts plus the contracts deployed on them.

    Thread Safety:
        call(), fund() and deploy() hold a chain-wide re-entrant lock, so calls
        are fully serialized.
    """

    def __init__(self, name: str = "chain", verbose: bool = True):
        """
        Create an empty chain.

        Args:
            name: Chain identifier used in contract addresses and output
            verbose: Print every move and every ledger call (default: True)
        """
        self.name = name
        self.verbose = verbose
        self.balances: Dict[Address, Amount] = {SYSTEM_ACCOUNT: 0}
        self.contracts: Dict[Address, Ledger] = {}
        self.blocked: Set[Address] = set()
        self.move_log: List[Move] = []
        self._next_contract: int = 0
        self._lock = threading.RLock()

    # ========================================================================
    # ACCOUNTS
    # ========================================================================

    def register_account(self, address: Address) -> Address:
        """
        Register a new account with zero balance.

        Raises:
            ValueError: If the account is already registered or the address is empty
        """
        validate_address(address)
        with self._lock:
            if address in self.balances:
                raise ValueError(f"Account {address} already registered")
            self.balances[address] = 0
            return address

    def is_registered(self, address: Address) -> bool:
        return address in self.balances

    def list_accounts(self) -> Set[Address]:
        return set(self.balances)

    def get_balance(self, address: Address) -> Amount:
        """
        Native balance of an account.

        Raises:
            AccountNotRegistered: If the account does not exist
        """
        if address not in self.balances:
            raise AccountNotRegistered(f"Account {address} not registered")
        return self.balances[address]

    def fund(self, address: Address, amount: Amount) -> None:
        """
        Issue native currency from SYSTEM_ACCOUNT to an account.

        Raises:
            ValueError: If address is SYSTEM_ACCOUNT itself
            AccountNotRegistered: If the account does not exist
        """
        validate_amount(amount, "amount")
        if address == SYSTEM_ACCOUNT:
            raise ValueError(f"Cannot fund the {SYSTEM_ACCOUNT} account")
        with self._lock:
            self._require_account(address)
            if amount:
                self._apply_move(Move(amount, SYSTEM_ACCOUNT, address, "issuance"))

    def block_account(self, address: Address) -> None:
        """Make an account refuse incoming funds. Payouts to it raise TransferFailure."""
        self._require_account(address)
        self.blocked.add(address)

    def unblock_account(self, address: Address) -> None:
        self.blocked.discard(address)

    def total_supply(self) -> Amount:
        """Sum of every balance, SYSTEM_ACCOUNT included. Always zero."""
        return sum(self.balances[a] for a in sorted(self.balances))

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify conservation across the chain and every deployed contract.

        Checks:
        - total supply (including SYSTEM_ACCOUNT) is zero
        - no account other than SYSTEM_ACCOUNT is negative
        - each contract account holds exactly its ledger's collected fees
          plus reserves

        Returns:
            Dict with 'valid', 'supply', 'issued' and 'discrepancies'.
        """
        discrepancies: List[str] = []
        supply = self.total_supply()
        if supply != 0:
            discrepancies.append(f"total supply is {supply}, expected 0")
        for address, balance in sorted(self.balances.items()):
            if address != SYSTEM_ACCOUNT and balance < 0:
                discrepancies.append(f"{address} balance is negative: {balance}")
        for address, ledger in sorted(self.contracts.items()):
            result = ledger.verify_conservation(expected_total=self.balances[address])
            discrepancies.extend(f"{address}: {d}" for d in result['discrepancies'])
        return {
            'valid': len(discrepancies) == 0,
            'supply': supply,
            'issued': -self.balances[SYSTEM_ACCOUNT],
            'discrepancies': discrepancies,
        }

    def _require_account(self, address: Address) -> None:
        if address not in self.balances:
            raise AccountNotRegistered(f"Account {address} not registered")

    def _apply_move(self, move: Move) -> None:
        """
        Apply a single move.

        Raises:
            AccountNotRegistered: If either side is unknown
            TransferFailure: If the destination refuses funds
            InsufficientFunds: If the source cannot cover the move
        """
        self._require_account(move.source)
        self._require_account(move.dest)
        if move.dest in self.blocked:
            raise TransferFailure(f"{move.dest} cannot receive {NATIVE_TOKEN}")
        if move.source != SYSTEM_ACCOUNT and self.balances[move.source] < move.quantity:
            raise InsufficientFunds(
                f"{move.source}: balance {self.balances[move.source]} < {move.quantity}"
            )
        self.balances[move.source] -= move.quantity
        self.balances[move.dest] += move.quantity
        self.move_log.append(move)
        if self.verbose:
            print(f"  ↳ {move!r} [{move.reference}]")

    # ========================================================================
    # CONTRACTS
    # ========================================================================

    def deploy(
        self,
        owner: Address,
        initial_fee: Amount = 0,
        address: Optional[Address] = None,
    ) -> Address:
        """
        Deploy a fee ledger owned by owner.

        Args:
            owner: Deployer account, becomes the ledger owner
            initial_fee: Starting fee
            address: Contract address (default: "<chain>-contract-<n>")

        Returns:
            The new contract address
        """
        with self._lock:
            self._require_account(owner)
            if address is None:
                address = f"{self.name}-contract-{self._next_contract}"
            self.register_account(address)
            self._next_contract += 1
            try:
                ledger = Ledger(
                    owner,
                    initial_fee,
                    storage=MemoryStorage(),
                    transfer=ContractTransfer(self, address),
                    name=address,
                    verbose=self.verbose,
                )
            except Exception:
                del self.balances[address]
                raise
            self.contracts[address] = ledger
            return address

    def attach(self, address: Address, ledger: Ledger) -> None:
        """
        Install an existing ledger at address, rebinding its payouts to this chain.

        Used when restoring a chain from saved state.
        """
        with self._lock:
            if address not in self.balances:
                self.register_account(address)
            ledger.transfer = ContractTransfer(self, address)
            self.contracts[address] = ledger

    def get_contract(self, address: Address) -> Ledger:
        if address not in self.contracts:
            raise AccountNotRegistered(f"No contract deployed at {address}")
        return self.contracts[address]

    def call(
        self,
        contract: Address,
        caller: Address,
        endpoint: str,
        *args: Any,
        payment: Amount = 0,
    ) -> None:
        """
        Deliver an authenticated call to a contract.

        The payment is moved from caller to the contract account first, then
        the endpoint runs with the caller and payment passed explicitly. If
        anything fails, balances and contract storage are restored and the
        error propagates.

        Raises:
            UnknownEndpoint: If the endpoint does not exist
            LedgerError: If payment is attached to a non-payable endpoint
            InsufficientFunds: If the caller cannot cover the payment
            Unauthorized, InsufficientPayment, NothingToClaim, TransferFailure:
                From the ledger itself
        """
        if endpoint not in _ENDPOINTS:
            raise UnknownEndpoint(f"Unknown endpoint: {endpoint}")
        validate_amount(payment, "payment")
        if payment and not _ENDPOINTS[endpoint]:
            raise LedgerError(ERR_NON_PAYABLE)

        with self._lock:
            ledger = self.get_contract(contract)
            self._require_account(caller)

            balances_before = dict(self.balances)
            moves_before = len(self.move_log)
            storage_before = ledger.storage.snapshot()
            try:
                if payment:
                    self._apply_move(Move(payment, caller, contract, f"call:{endpoint}"))
                if endpoint == "setFee":
                    ledger.set_fee(caller, *args)
                elif endpoint == "deposit":
                    ledger.deposit(caller, *args, payment)
                else:
                    ledger.withdraw(caller, *args)
            except Exception:
                self.balances = balances_before
                del self.move_log[moves_before:]
                ledger.storage.restore(storage_before)
                raise

    def query(self, contract: Address, view: str, *args: Any) -> Amount:
        """
        Run a read-only view on a contract.

        Raises:
            UnknownEndpoint: If the view does not exist
        """
        ledger = self.get_contract(contract)
        if view == "getFee":
            return ledger.get_fee()
        if view == "getCollectedFees":
            return ledger.get_collected_fees()
        if view == "getReserveForAddress":
            return ledger.get_reserve_for_address(*args)
        raise UnknownEndpoint(f"Unknown view: {view} (expected one of {', '.join(_VIEWS)})")

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize accounts and contract storage.

        Amounts are written as decimal strings.
        """
        with self._lock:
            return {
                'name': self.name,
                'next_contract': self._next_contract,
                'balances': {a: str(b) for a, b in sorted(self.balances.items())},
                'blocked': sorted(self.blocked),
                'contracts': {
                    address: {
                        'owner': ledger.owner,
                        'storage': {k: str(v) for k, v in sorted(ledger.storage.snapshot().items())},
                    }
                    for address, ledger in sorted(self.contracts.items())
                },
            }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], verbose: bool = True) -> Chain:
        """Rebuild a chain saved with to_dict(). Call logs are not restored."""
        chain = cls(name=data.get('name', 'chain'), verbose=verbose)
        chain._next_contract = int(data.get('next_contract', 0))
        chain.balances = {a: int(b) for a, b in data.get('balances', {}).items()}
        chain.balances.setdefault(SYSTEM_ACCOUNT, 0)
        chain.blocked = set(data.get('blocked', []))
        for address, contract in data.get('contracts', {}).items():
            storage = MemoryStorage({k: int(v) for k, v in contract['storage'].items()})
            ledger = Ledger.load(contract['owner'], storage, name=address, verbose=verbose)
            chain.attach(address, ledger)
        return chain
