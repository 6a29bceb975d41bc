"""
config.py - Settings for the fee-ledger command line

Values come from, in increasing priority:
    1. LedgerConfig defaults
    2. the [fee_ledger] table of a TOML file
    3. FEE_LEDGER_* environment variables

Example config.toml:

    [fee_ledger]
    state_path = "state/fee_ledger.json"
    owner = "owner"
    initial_fee = 1
    verbose = false
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
import os
from pathlib import Path
import tomllib
from typing import Any, Dict, Mapping, Optional, Union

from .core import Amount, ConfigError, InvalidAmount, validate_amount

DEFAULT_CONFIG_PATH = "fee_ledger.toml"
CONFIG_TABLE = "fee_ledger"

ENV_STATE = "FEE_LEDGER_STATE"
ENV_OWNER = "FEE_LEDGER_OWNER"
ENV_VERBOSE = "FEE_LEDGER_VERBOSE"

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def coerce_flag(value: Any, name: str) -> bool:
    """Coerce a bool or a yes/no style string into a bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class LedgerConfig:
    """Configuration for CLI runs. Modify these to point at another state file."""
    state_path: Path = Path("fee_ledger_state.json")
    owner: str = "owner"
    initial_fee: Amount = 0
    verbose: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LedgerConfig:
        """
        Build a config from a plain mapping, validating every field.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        config = cls()
        if "state_path" in data:
            config = replace(config, state_path=Path(str(data["state_path"])))
        if "owner" in data:
            owner = data["owner"]
            if not isinstance(owner, str) or not owner.strip():
                raise ConfigError("owner must be a non-empty string")
            config = replace(config, owner=owner)
        if "initial_fee" in data:
            try:
                config = replace(config, initial_fee=validate_amount(data["initial_fee"], "initial_fee"))
            except InvalidAmount as exc:
                raise ConfigError(str(exc)) from exc
        if "verbose" in data:
            config = replace(config, verbose=coerce_flag(data["verbose"], "verbose"))
        return config

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> LedgerConfig:
        """
        Load configuration from a TOML file and the environment.

        Args:
            path: TOML file. If None, DEFAULT_CONFIG_PATH is used when it exists.
            environ: Environment mapping (default: os.environ)

        Raises:
            ConfigError: If an explicit path is missing or any value is invalid
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}

        if path is not None:
            config_path = Path(path)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_path}")
        else:
            config_path = Path(DEFAULT_CONFIG_PATH)

        if config_path.exists():
            try:
                document = tomllib.loads(config_path.read_text(encoding="utf-8"))
            except tomllib.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
            data.update(document.get(CONFIG_TABLE, {}))

        if environ.get(ENV_STATE):
            data["state_path"] = environ[ENV_STATE]
        if environ.get(ENV_OWNER):
            data["owner"] = environ[ENV_OWNER]
        if environ.get(ENV_VERBOSE):
            data["verbose"] = environ[ENV_VERBOSE]

        return cls.from_mapping(data)
