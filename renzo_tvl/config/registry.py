"""
Deployment registry: contract addresses and operator delegators.

The registry is static for the life of the process. It is read once from a
YAML file (the bundled renzo.yaml unless a path is given):

    rpc_url: https://...
    contracts:
      RESTAKE_MANAGER: "0x..."
      ...
    operators:
      - {name: Figment, od: "0x...", pod: "0x..."}
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml
from web3 import Web3

from ..errors import ConfigError

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent / "renzo.yaml"

REQUIRED_CONTRACTS = (
    "RESTAKE_MANAGER",
    "EZETH_TOKEN",
    "DEPOSIT_QUEUE",
    "WITHDRAW_QUEUE",
    "BALANCE_RATE_PROVIDER",
)


def _checksum(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ConfigError(f"{what}: expected an address string, got {value!r}")
    try:
        return Web3.to_checksum_address(value)
    except ValueError as e:
        raise ConfigError(f"{what}: invalid address {value!r}") from e


@dataclass(frozen=True)
class OperatorRecord:
    name: str
    delegator: str
    pod: str

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "OperatorRecord":
        # YAML uses the short keys 'od' / 'pod'; 'delegator' is accepted too.
        name = d.get("name")
        if not name:
            raise ConfigError(f"operator entry without a name: {d!r}")
        delegator = d.get("od", d.get("delegator"))
        return OperatorRecord(
            name=str(name),
            delegator=_checksum(delegator, f"operator {name} od"),
            pod=_checksum(d.get("pod"), f"operator {name} pod"),
        )


@dataclass(frozen=True)
class ProtocolRegistry:
    contracts: Mapping[str, str]
    operators: Tuple[OperatorRecord, ...]
    rpc_url: Optional[str] = None

    def address(self, name: str) -> str:
        try:
            return self.contracts[name]
        except KeyError:
            raise ConfigError(f"contract {name} is not in the registry") from None

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "ProtocolRegistry":
        if not isinstance(d, dict):
            raise ConfigError("registry must be a mapping")

        raw_contracts = d.get("contracts") or {}
        missing = [c for c in REQUIRED_CONTRACTS if c not in raw_contracts]
        if missing:
            raise ConfigError(f"registry is missing contracts: {', '.join(missing)}")
        contracts = {
            name: _checksum(addr, f"contract {name}")
            for name, addr in raw_contracts.items()
        }

        operators = tuple(OperatorRecord.from_dict(o) for o in d.get("operators") or [])
        names = [o.name for o in operators]
        if len(set(names)) != len(names):
            raise ConfigError("operator names must be unique")

        return ProtocolRegistry(
            contracts=MappingProxyType(contracts),
            operators=operators,
            rpc_url=d.get("rpc_url"),
        )


def load_registry(path: Optional[Union[str, Path]] = None) -> ProtocolRegistry:
    path = Path(path) if path is not None else DEFAULT_REGISTRY_PATH
    try:
        with path.open("r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"registry file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"registry file {path} is not valid YAML: {e}") from e
    return ProtocolRegistry.from_dict(data)
