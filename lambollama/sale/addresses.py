"""
Account address helpers.
"""

import uuid
from typing import Optional

from eth_utils import is_address, keccak, to_checksum_address

from lambollama.sale.errors import InvalidInput

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Conventional placeholder address for the chain's native currency
NATIVE_ASSET = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"


def normalize_address(address: Optional[str]) -> str:
    """
    Checksum an address, treating None as the zero address.

    Raises:
        InvalidInput: If the value is not a 20-byte hex address
    """
    if address is None:
        return ZERO_ADDRESS
    if not is_address(address):
        raise InvalidInput(f"Invalid EVM address: {address}")
    return to_checksum_address(address)


def is_zero_address(address: Optional[str]) -> bool:
    return address is None or normalize_address(address) == ZERO_ADDRESS


def new_contract_address(kind: str, deployer: str) -> str:
    """Derive a fresh, unique address for a contract deployed by deployer."""
    seed = f"{kind}:{normalize_address(deployer)}:{uuid.uuid4().hex}"
    return to_checksum_address(keccak(text=seed)[-20:])
