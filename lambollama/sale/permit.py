"""
EIP-2612 permit signatures.

A token holder signs an EIP-712 Permit(owner, spender, value, nonce, deadline)
message in the token's domain; anyone can submit it to set the allowance
without a transaction from the holder.
"""

from typing import Any, Dict, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data

from lambollama.sale.addresses import normalize_address

DEFAULT_CHAIN_ID = 1
PERMIT_VERSION = "1"

PERMIT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


def permit_typed_data(
    token_name: str,
    token_address: str,
    chain_id: int,
    owner: str,
    spender: str,
    value: int,
    nonce: int,
    deadline: int
) -> Dict[str, Any]:
    return {
        "types": PERMIT_TYPES,
        "primaryType": "Permit",
        "domain": {
            "name": token_name,
            "version": PERMIT_VERSION,
            "chainId": chain_id,
            "verifyingContract": normalize_address(token_address),
        },
        "message": {
            "owner": normalize_address(owner),
            "spender": normalize_address(spender),
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        },
    }


def permit_message(*args) -> SignableMessage:
    """EIP-712 signable message for the permit_typed_data() arguments."""
    return encode_typed_data(full_message=permit_typed_data(*args))


def sign_permit(
    private_key: Union[bytes, str],
    token_name: str,
    token_address: str,
    chain_id: int,
    spender: str,
    value: int,
    nonce: int,
    deadline: int
) -> bytes:
    """Sign a permit as the holder of private_key."""
    owner = Account.from_key(private_key).address
    signable = permit_message(token_name, token_address, chain_id, owner, spender, value, nonce, deadline)
    return bytes(Account.sign_message(signable, private_key=private_key).signature)


def recover_permit_signer(signature: Union[bytes, str], *args) -> str:
    """Address that signed the permit described by the permit_typed_data() arguments."""
    return Account.recover_message(permit_message(*args), signature=signature)
