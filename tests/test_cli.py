"""
test_cli.py - Tests for the fee-ledger command line

Drives the interactor through click's CliRunner against a state file in a
temporary directory, following the deploy / deposit / withdraw flow.
"""

import json

import pytest
from click.testing import CliRunner

from fee_ledger.cli import cli


@pytest.fixture
def state(tmp_path):
    return tmp_path / "state.json"


@pytest.fixture
def run(state):
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, ["--state", str(state), *args], env={"FEE_LEDGER_VERBOSE": "false"})

    return invoke


@pytest.fixture
def deployed(run):
    """Deployed fee-1 contract with owner=4, address1=5, address2=6."""
    assert run("deploy", "-f", "1").exit_code == 0
    for address, value in (("owner", 4), ("address1", 5), ("address2", 6)):
        assert run("fund", "-a", address, "-v", str(value)).exit_code == 0
    return run


class TestDeploy:

    def test_deploy_prints_address(self, run, state):
        result = run("deploy", "-f", "1")
        assert result.exit_code == 0
        assert result.output.strip() == "new address: chain-contract-0"
        assert json.loads(state.read_text())["contract"] == "chain-contract-0"

    def test_deploy_default_fee_is_zero(self, run):
        run("deploy")
        assert run("fee").output.strip() == "fee: 0"

    def test_negative_fee_is_usage_error(self, run):
        assert run("deploy", "-f", "-1").exit_code == 2

    def test_commands_need_contract(self, run):
        result = run("collected-fees")
        assert result.exit_code == 1
        assert "no contract deployed" in result.output


class TestFlow:
    """deploy, deposit, withdraw as separate invocations sharing state."""

    def test_deposit(self, deployed):
        result = deployed("deposit", "-s", "address1", "-r", "receiver", "-v", "3")
        assert result.exit_code == 0
        assert result.output.strip() == "reserve: 2"
        assert deployed("collected-fees").output.strip() == "fees: 1"
        assert deployed("balance", "-a", "address1").output.strip() == "balance: 2"

    def test_deposit_too_small_rejected(self, deployed):
        result = deployed("deposit", "-s", "address1", "-r", "receiver", "-v", "1")
        assert result.exit_code == 1
        assert "Payments must be greater than fee" in result.output
        assert deployed("balance", "-a", "address1").output.strip() == "balance: 5"

    def test_withdraw(self, deployed):
        deployed("deposit", "-s", "address1", "-r", "receiver", "-v", "3")
        deployed("deposit", "-s", "address2", "-r", "receiver", "-v", "4")

        result = deployed("withdraw", "-s", "receiver")
        assert result.exit_code == 0
        assert result.output.strip() == "balance: 5"
        assert deployed("reserve-for-address", "-s", "receiver").output.strip() == "reserve: 0"

        owner = deployed("withdraw", "-s", "owner")
        assert owner.output.strip() == "balance: 6"
        assert deployed("collected-fees").output.strip() == "fees: 0"

    def test_nothing_to_claim(self, deployed):
        result = deployed("withdraw", "-s", "address2")
        assert result.exit_code == 1
        assert "Nothing to claim" in result.output

    def test_set_fee_owner(self, deployed):
        result = deployed("set-fee", "-f", "2")
        assert result.exit_code == 0
        assert result.output.strip() == "fee: 2"

    def test_set_fee_non_owner(self, deployed):
        result = deployed("set-fee", "-f", "2", "-s", "address1")
        assert result.exit_code == 1
        assert "Endpoint can only be called by owner" in result.output
        assert deployed("fee").output.strip() == "fee: 1"

    def test_unknown_balance(self, deployed):
        assert deployed("balance", "-a", "ghost").exit_code == 1

    def test_fund_system_account_rejected(self, deployed):
        result = deployed("fund", "-a", "system", "-v", "5")
        assert result.exit_code == 1
        assert "error: Cannot fund the system account" in result.output
        assert deployed("balance", "-a", "system").output.strip() == "balance: -15"

    def test_blank_receiver_rejected(self, deployed):
        result = deployed("deposit", "-s", "address1", "-r", " ", "-v", "3")
        assert result.exit_code == 1
        assert "cannot be empty" in result.output


class TestConfigFile:

    def test_config_owner_used(self, tmp_path, state):
        config = tmp_path / "fee_ledger.toml"
        config.write_text('[fee_ledger]\nowner = "alice"\ninitial_fee = 3\n', encoding="utf-8")
        runner = CliRunner()
        args = ["--config", str(config), "--state", str(state)]

        assert runner.invoke(cli, [*args, "deploy"]).exit_code == 0
        assert runner.invoke(cli, [*args, "fee"]).output.strip() == "fee: 3"
        assert runner.invoke(cli, [*args, "set-fee", "-f", "0"]).exit_code == 0

    def test_bad_config_exits_1(self, tmp_path, state):
        config = tmp_path / "fee_ledger.toml"
        config.write_text("[fee_ledger]\nbogus = 1\n", encoding="utf-8")
        result = CliRunner().invoke(cli, ["--config", str(config), "--state", str(state), "fee"])
        assert result.exit_code == 1
        assert "Unknown config keys" in result.output
