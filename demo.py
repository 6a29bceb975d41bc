#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Fee Ledger Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - The chain, funded accounts, deploying the ledger
  4-6:  Deposits     - Splitting payments, rejections, fee changes
  7-9:  Settlement   - Withdrawals, the owner's dual payout, failed payouts
  10:   Audit        - Call log, replay and the conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass, field
from typing import Dict
import sys

from fee_ledger import (
    Chain, SYSTEM_ACCOUNT, LedgerError, TransferFailure,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    owner: str = "owner"
    initial_fee: int = 1
    new_fee: int = 2
    balances: Dict[str, int] = field(default_factory=lambda: {
        "owner": 4,
        "address1": 5,
        "address2": 6,
        "receiver": 0,
    })


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_state(chain: Chain, contract: str):
    ledger = chain.get_contract(contract)
    print(f"fee:            {ledger.get_fee()}")
    print(f"collectedFees:  {ledger.get_collected_fees()}")
    print(f"reserves:       {ledger.reserves()}")
    print(f"contract holds: {chain.get_balance(contract)}")
    for address in CONFIG.balances:
        print(f"  {address:<10} {chain.get_balance(address)}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_chain():
    """Create a chain and fund the participants."""
    step_header(1, "The Chain",
        "Understand where native currency comes from.")

    print("""
    The ledger runs on a Chain that holds native balances. Every balance
    change is a Move from one account to another. Funds enter only through
    the system account, whose balance goes negative by exactly what it issued.
    """)
    wait_for_enter()

    chain = Chain("tutorial", verbose=True)
    for address, balance in CONFIG.balances.items():
        print(f">>> chain.register_account({address!r}); chain.fund({address!r}, {balance})")
        chain.register_account(address)
        chain.fund(address, balance)

    section_header("Key Insight")
    print(f"system balance: {chain.get_balance(SYSTEM_ACCOUNT)}")
    print(f"total supply:   {chain.total_supply()} (always zero)")
    return chain


def step_02_deploy(chain: Chain):
    """Deploy the fee ledger."""
    step_header(2, "Deploying the Ledger",
        "The deployer becomes the owner; the fee is set at creation.")

    print(f">>> chain.deploy({CONFIG.owner!r}, initial_fee={CONFIG.initial_fee}, address='fee-ledger')")
    contract = chain.deploy(CONFIG.owner, CONFIG.initial_fee, address="fee-ledger")

    section_header("Initial State")
    show_state(chain, contract)
    return contract


def step_03_views(chain: Chain, contract: str):
    """Read-only views."""
    step_header(3, "Views",
        "Queries never change state, and unknown receivers read as zero.")

    for view, args in (("getFee", ()), ("getCollectedFees", ()), ("getReserveForAddress", ("nobody",))):
        print(f">>> chain.query(contract, {view!r}{''.join(', ' + repr(a) for a in args)})"
              f"  ->  {chain.query(contract, view, *args)}")


# ============================================================================
# PHASE 2: DEPOSITS (Steps 4-6)
# ============================================================================

def step_04_deposits(chain: Chain, contract: str):
    """Three deposits split into fee and reserve."""
    step_header(4, "Deposits",
        "A deposit pays the fee to the owner's pot and the rest to a receiver.")

    chain.call(contract, "address1", "deposit", "receiver", payment=3)
    chain.call(contract, "address2", "deposit", "receiver", payment=4)
    chain.call(contract, "owner", "deposit", "address1", payment=2)

    section_header("State After Deposits")
    show_state(chain, contract)


def step_05_rejections(chain: Chain, contract: str):
    """Rejected calls change nothing."""
    step_header(5, "Rejections",
        "A rejected call leaves balances and storage exactly as they were.")

    attempts = [
        ("address2", "deposit", ("receiver",), CONFIG.initial_fee),
        ("address1", "setFee", (0,), 0),
        ("address2", "withdraw", (), 0),
    ]
    for caller, endpoint, args, payment in attempts:
        try:
            chain.call(contract, caller, endpoint, *args, payment=payment)
        except LedgerError as exc:
            print(f"    {caller} {endpoint}: {exc}")

    section_header("State Unchanged")
    show_state(chain, contract)


def step_06_fee_change(chain: Chain, contract: str):
    """The owner raises the fee."""
    step_header(6, "Changing the Fee",
        "A new fee applies to later deposits only.")

    chain.call(contract, CONFIG.owner, "setFee", CONFIG.new_fee)
    chain.fund("address2", 5)
    chain.call(contract, "address2", "deposit", "receiver", payment=CONFIG.new_fee + 2)
    show_state(chain, contract)


# ============================================================================
# PHASE 3: SETTLEMENT (Steps 7-9)
# ============================================================================

def step_07_withdraw(chain: Chain, contract: str):
    """Receivers withdraw their reserves."""
    step_header(7, "Withdrawals",
        "Withdraw pays the whole reserve and removes the entry.")

    chain.call(contract, "receiver", "withdraw")
    chain.call(contract, "address1", "withdraw")
    show_state(chain, contract)


def step_08_failed_payout(chain: Chain, contract: str):
    """A payout the chain refuses rolls the call back."""
    step_header(8, "Failed Payouts",
        "If a payout cannot be delivered, the whole withdraw is undone.")

    chain.call(contract, "address2", "deposit", "address2", payment=CONFIG.new_fee + 1)
    chain.block_account("address2")
    try:
        chain.call(contract, "address2", "withdraw")
    except TransferFailure as exc:
        print(f"    rejected: {exc}")
    chain.unblock_account("address2")
    print(f"reserve kept: {chain.query(contract, 'getReserveForAddress', 'address2')}")
    chain.call(contract, "address2", "withdraw")


def step_09_owner_withdraw(chain: Chain, contract: str):
    """The owner collects the fees."""
    step_header(9, "Owner Settlement",
        "The owner's withdraw pays their own reserve, then all collected fees.")

    chain.call(contract, CONFIG.owner, "withdraw")
    show_state(chain, contract)


# ============================================================================
# PHASE 4: AUDIT (Step 10)
# ============================================================================

def step_10_audit(chain: Chain, contract: str):
    """Call log, replay and conservation."""
    step_header(10, "Audit",
        "The call log reproduces the state, and nothing was created or lost.")

    ledger = chain.get_contract(contract)
    for record in ledger.call_log:
        print(record)

    replayed = ledger.replay()
    section_header("Replay")
    print(f"replayed storage matches: {replayed.storage.snapshot() == ledger.storage.snapshot()}")

    section_header("Conservation")
    result = chain.verify_conservation()
    print(f"valid: {result['valid']}  supply: {result['supply']}  issued: {result['issued']}")
    for problem in result['discrepancies']:
        print(f"  ✗ {problem}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       FEE LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    chain = step_01_chain()
    wait_for_enter()

    contract = step_02_deploy(chain)
    wait_for_enter()

    step_03_views(chain, contract)
    wait_for_enter()

    step_04_deposits(chain, contract)
    wait_for_enter()

    step_05_rejections(chain, contract)
    wait_for_enter()

    step_06_fee_change(chain, contract)
    wait_for_enter()

    step_07_withdraw(chain, contract)
    wait_for_enter()

    step_08_failed_payout(chain, contract)
    wait_for_enter()

    step_09_owner_withdraw(chain, contract)
    wait_for_enter()

    step_10_audit(chain, contract)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - Drive the same flow from the shell: fee-ledger --help
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
