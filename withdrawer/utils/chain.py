import json
import os
from functools import lru_cache
from typing import Dict, Optional

from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractCustomError, ContractLogicError

from .config import BUFFER, MULTIPLIER


def add_gas_buffer(
    gas_estimate: int, multiplier: Optional[float] = None, buffer: Optional[int] = None
) -> int:
    if multiplier is not None:
        if multiplier < 1.0:
            raise ValueError("`multiplier` should be >= 1.0 to ensure sufficient gas")
        effective_multiplier = multiplier
    else:
        effective_multiplier = MULTIPLIER

    # Use provided buffer, fallback to global BUFFER if not provided
    if buffer is not None:
        if buffer < 0:
            raise ValueError("`buffer` must be non-negative")
        effective_buffer = buffer
    else:
        effective_buffer = BUFFER

    return int(gas_estimate * effective_multiplier) + effective_buffer


@lru_cache(maxsize=None)
def get_abi(path: str) -> list:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"ABI file not found: {path}")

    with open(path, "r") as file:
        abi = json.load(file)

    return abi


def _error_signatures(contract: Contract) -> Dict[HexBytes, str]:
    """4-byte selector to `Name(type,...)` for every custom error in the ABI."""
    signatures = {}

    for item in contract.abi:
        if item.get("type") != "error":
            continue

        input_types = ",".join(inp["type"] for inp in item.get("inputs", []))
        signature = f"{item['name']}({input_types})"
        signatures[HexBytes(Web3.keccak(text=signature)[:4])] = signature

    return signatures


def describe_contract_error(contract: Contract, error: Exception) -> str:
    """
    Human readable revert reason for a failed call to `contract`.

    Custom errors are matched by selector against the contract's ABI, e.g.
    a `checkWithdrawal` revert on the portal becomes
    `"OptimismPortal_ProofNotOldEnough()"`. Reverts with a reason string
    return that string; anything else its `str()`.
    """
    if isinstance(error, ContractCustomError):
        data = getattr(error, "data", None) or error.args[0]
        signature = _error_signatures(contract).get(HexBytes(data)[:4])

        if signature:
            return signature

    if isinstance(error, ContractLogicError) and error.message:
        return error.message

    return str(error)
