"""
Shared constants and builders for the sale tests.
"""

from typing import Dict, List, Sequence, Tuple

from eth_account import Account
from eth_utils import encode_hex, to_wei

from lambollama.sale.core.merkle import hash_pair, leaf_hash

# Deterministic test accounts
OWNER_KEY = "0x" + "11" * 32
ALICE_KEY = "0x" + "22" * 32
BOB_KEY = "0x" + "33" * 32
CAROL_KEY = "0x" + "44" * 32
FUNDS_KEY = "0x" + "55" * 32
SIGNER_KEY = "0x" + "66" * 32

OWNER = Account.from_key(OWNER_KEY).address
ALICE = Account.from_key(ALICE_KEY).address
BOB = Account.from_key(BOB_KEY).address
CAROL = Account.from_key(CAROL_KEY).address
FUNDS_WALLET = Account.from_key(FUNDS_KEY).address
SIGNER = Account.from_key(SIGNER_KEY).address

DAY = 24 * 60 * 60


def ether(value) -> int:
    return to_wei(value, "ether")


def build_levels(leaves: Sequence[bytes]) -> List[List[bytes]]:
    """Sorted-pair tree; an odd node at the end of a level moves up unchanged."""
    if not leaves:
        raise ValueError("No leaves to build tree")
    levels = [list(leaves)]
    cur = levels[0]
    while len(cur) > 1:
        nxt = []
        for i in range(0, len(cur), 2):
            if i + 1 < len(cur):
                nxt.append(hash_pair(cur[i], cur[i + 1]))
            else:
                nxt.append(cur[i])
        levels.append(nxt)
        cur = nxt
    return levels


def build_claims(rows: Sequence[Tuple[str, int]]) -> Tuple[str, Dict[str, List[str]]]:
    """Root and hex proofs for (address, amount) rows."""
    leaves = [leaf_hash(address, amount) for address, amount in rows]
    levels = build_levels(leaves)

    def proof_for(idx: int) -> List[str]:
        proof = []
        pos = idx
        for level in levels[:-1]:
            sib = pos ^ 1
            if sib < len(level):
                proof.append(encode_hex(level[sib]))
            pos //= 2
        return proof

    proofs = {address: proof_for(i) for i, (address, _) in enumerate(rows)}
    return encode_hex(levels[-1][0]), proofs
