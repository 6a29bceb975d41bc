"""
fee_ledger/cli.py

fee-ledger: command line interactor for a fee ledger on a local chain.

Registered in pyproject.toml as:

    [project.scripts]
    fee-ledger = "fee_ledger.cli:cli"

State (accounts, balances, deployed contract storage and the current contract
address) is kept in a JSON file between invocations.

Usage:
    fee-ledger deploy -f 1                          Deploy with fee 1
    fee-ledger fund -a alice -v 10                  Issue 10 to alice
    fee-ledger deposit -s alice -r bob -v 3         alice pays 3 for bob
    fee-ledger withdraw -s bob                      bob claims his reserve
    fee-ledger set-fee -f 0                         Owner changes the fee
    fee-ledger collected-fees                       Show collected fees
    fee-ledger reserve-for-address -s bob           Show bob's reserve

Exit codes:
    0  Success
    1  Call rejected by the ledger or runtime
    2  Usage error
"""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from .chain import Chain
from .config import LedgerConfig
from .core import LedgerError


def _load_state(path: Path, verbose: bool) -> Tuple[Chain, Optional[str]]:
    if not path.exists():
        return Chain(verbose=verbose), None
    data = json.loads(path.read_text(encoding="utf-8"))
    return Chain.from_dict(data["chain"], verbose=verbose), data.get("contract")


def _save_state(path: Path, chain: Chain, contract: Optional[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"contract": contract, "chain": chain.to_dict()}
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _ensure_account(chain: Chain, address: str) -> None:
    if not chain.is_registered(address):
        chain.register_account(address)


def _fail(exc: Exception) -> None:
    click.echo(f"error: {exc}", err=True)
    sys.exit(1)


class _Session:
    """Loaded config and chain for one CLI invocation."""

    def __init__(self, config: LedgerConfig):
        self.config = config
        self.chain, self.contract = _load_state(config.state_path, config.verbose)

    def require_contract(self) -> str:
        if self.contract is None:
            _fail(LedgerError("no contract deployed; run 'fee-ledger deploy' first"))
        return self.contract

    def save(self) -> None:
        _save_state(self.config.state_path, self.chain, self.contract)


@click.group()
@click.version_option(package_name="fee-ledger")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="TOML config file (default: fee_ledger.toml if present).")
@click.option("--state", "state_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="State file, overrides the config value.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], state_path: Optional[Path]) -> None:
    """
    Fee ledger interactor.

    \b
    Commands:
      deploy                Deploy contract
      fund                  Issue native currency to an account
      deposit               Deposit EGLD for a receiver
      withdraw              Withdraw reserve (and fees, for the owner)
      set-fee               Set new fee, only owner allowed
      fee                   Show the current fee
      collected-fees        See the fees collected
      reserve-for-address   See the sum reserved for a specific address
      balance               Show an account's native balance
    """
    try:
        config = LedgerConfig.load(config_path)
    except (LedgerError, ValueError) as exc:
        _fail(exc)
    if state_path is not None:
        config = LedgerConfig(
            state_path=state_path,
            owner=config.owner,
            initial_fee=config.initial_fee,
            verbose=config.verbose,
        )
    ctx.obj = _Session(config)


@cli.command("deploy")
@click.option("-f", "--value", "fee", type=click.IntRange(min=0), default=None,
              help="The value of the contract fee.")
@click.option("--owner", default=None, help="Deployer account (default: config owner).")
@click.pass_obj
def deploy_command(session: _Session, fee: Optional[int], owner: Optional[str]) -> None:
    """Deploy contract."""
    owner = owner or session.config.owner
    fee = session.config.initial_fee if fee is None else fee
    try:
        _ensure_account(session.chain, owner)
        session.contract = session.chain.deploy(owner, fee)
    except (LedgerError, ValueError) as exc:
        _fail(exc)
    session.save()
    click.echo(f"new address: {session.contract}")


@cli.command("fund")
@click.option("-a", "--address", required=True, help="Account to fund.")
@click.option("-v", "--value", type=click.IntRange(min=1), required=True, help="Amount to issue.")
@click.pass_obj
def fund_command(session: _Session, address: str, value: int) -> None:
    """Issue native currency to an account."""
    try:
        _ensure_account(session.chain, address)
        session.chain.fund(address, value)
    except (LedgerError, ValueError) as exc:
        _fail(exc)
    session.save()
    click.echo(f"balance: {session.chain.get_balance(address)}")


@cli.command("set-fee")
@click.option("-f", "--value", "fee", type=click.IntRange(min=0), required=True,
              help="The value of the contract fee.")
@click.option("-s", "--sender", default=None, help="Caller (default: config owner).")
@click.pass_obj
def set_fee_command(session: _Session, fee: int, sender: Optional[str]) -> None:
    """Set new fee, only owner allowed."""
    contract = session.require_contract()
    sender = sender or session.config.owner
    try:
        _ensure_account(session.chain, sender)
        session.chain.call(contract, sender, "setFee", fee)
    except (LedgerError, ValueError) as exc:
        _fail(exc)
    session.save()
    click.echo(f"fee: {session.chain.query(contract, 'getFee')}")


@cli.command("deposit")
@click.option("-s", "--sender", required=True, help="The sender of the deposit sum.")
@click.option("-r", "--receiver", required=True, help="The receiver of the deposit sum.")
@click.option("-v", "--value", type=click.IntRange(min=0), required=True,
              help="The value of the deposit sum.")
@click.pass_obj
def deposit_command(session: _Session, sender: str, receiver: str, value: int) -> None:
    """Deposit EGLD for a receiver."""
    contract = session.require_contract()
    try:
        _ensure_account(session.chain, sender)
        _ensure_account(session.chain, receiver)
        session.chain.call(contract, sender, "deposit", receiver, payment=value)
    except (LedgerError, ValueError) as exc:
        _fail(exc)
    session.save()
    click.echo(f"reserve: {session.chain.query(contract, 'getReserveForAddress', receiver)}")


@cli.command("withdraw")
@click.option("-s", "--sender", required=True, help="The sender of the withdraw request.")
@click.pass_obj
def withdraw_command(session: _Session, sender: str) -> None:
    """Withdraw reserve (and collected fees, for the owner)."""
    contract = session.require_contract()
    try:
        _ensure_account(session.chain, sender)
        session.chain.call(contract, sender, "withdraw")
    except (LedgerError, ValueError) as exc:
        _fail(exc)
    session.save()
    click.echo(f"balance: {session.chain.get_balance(sender)}")


@cli.command("fee")
@click.pass_obj
def fee_command(session: _Session) -> None:
    """Show the current fee."""
    click.echo(f"fee: {session.chain.query(session.require_contract(), 'getFee')}")


@cli.command("collected-fees")
@click.pass_obj
def collected_fees_command(session: _Session) -> None:
    """See the fees collected."""
    click.echo(f"fees: {session.chain.query(session.require_contract(), 'getCollectedFees')}")


@cli.command("reserve-for-address")
@click.option("-s", "--sender", required=True, help="Address to look up.")
@click.pass_obj
def reserve_for_address_command(session: _Session, sender: str) -> None:
    """See the sum reserved for a specific address."""
    contract = session.require_contract()
    click.echo(f"reserve: {session.chain.query(contract, 'getReserveForAddress', sender)}")


@cli.command("balance")
@click.option("-a", "--address", required=True, help="Account to look up.")
@click.pass_obj
def balance_command(session: _Session, address: str) -> None:
    """Show an account's native balance."""
    try:
        click.echo(f"balance: {session.chain.get_balance(address)}")
    except (LedgerError, ValueError) as exc:
        _fail(exc)


if __name__ == "__main__":
    cli()
