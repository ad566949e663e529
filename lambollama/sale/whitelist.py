"""
Whitelist signatures for early presale participation.

The whitelist signer signs keccak256(address) (Solidity's
keccak256(abi.encodePacked(address))) as an EIP-191 personal message; the
presale recovers the signer from the signature and compares.
"""

import logging
from typing import Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_canonical_address

from lambollama.sale.addresses import normalize_address

logger = logging.getLogger(__name__)

Signature = Union[bytes, str]


def whitelist_message_hash(address: str) -> bytes:
    return keccak(to_canonical_address(address))


def sign_whitelist(private_key: Union[bytes, str], address: str) -> bytes:
    """Issue a whitelist signature for address with the signer's private key."""
    signable = encode_defunct(primitive=whitelist_message_hash(address))
    return bytes(Account.sign_message(signable, private_key=private_key).signature)


class WhitelistVerifier:
    """Checks whitelist signatures against a single trusted signer."""

    def __init__(self, signer: str):
        self.signer = normalize_address(signer)

    def recover(self, address: str, signature: Signature) -> str:
        signable = encode_defunct(primitive=whitelist_message_hash(address))
        return Account.recover_message(signable, signature=signature)

    def verify(self, address: str, signature: Signature) -> bool:
        """
        Check that signature was issued by the whitelist signer for address.

        Malformed signatures count as invalid.
        """
        try:
            recovered = self.recover(address, signature)
        except Exception as e:
            logger.debug(f"Unreadable whitelist signature for {address}: {e}")
            return False
        return normalize_address(recovered) == self.signer
