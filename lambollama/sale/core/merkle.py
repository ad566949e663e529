"""
Merkle proof verification for airdrop claims.

Leaves are keccak256(abi.encodePacked(address, uint256 amount)) and each
level hashes its pair in sorted order, the layout OpenZeppelin's MerkleProof
and merkletreejs (sortPairs) agree on.
"""

from typing import Iterable, Union

from eth_utils import keccak, to_bytes, to_canonical_address

Hash = Union[bytes, str]


def as_bytes(value: Hash) -> bytes:
    if isinstance(value, bytes):
        return value
    return to_bytes(hexstr=value)


def leaf_hash(address: str, amount: int) -> bytes:
    """Hash an (address, amount) claim the way the contract packs it."""
    return keccak(to_canonical_address(address) + amount.to_bytes(32, byteorder="big"))


def hash_pair(a: bytes, b: bytes) -> bytes:
    left, right = (a, b) if a <= b else (b, a)
    return keccak(left + right)


def process_proof(proof: Iterable[Hash], leaf: bytes) -> bytes:
    computed = leaf
    for sibling in proof:
        computed = hash_pair(computed, as_bytes(sibling))
    return computed


def verify_proof(proof: Iterable[Hash], root: Hash, leaf: bytes) -> bool:
    return process_proof(proof, leaf) == as_bytes(root)
