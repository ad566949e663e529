"""
One-time airdrop authorised by Merkle proofs.

The owner publishes the root of a tree of (address, amount) leaves. Each
address can claim its amount once by presenting the proof for its leaf.
"""

import logging
from typing import Optional, Sequence

from eth_utils import encode_hex
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lambollama.sale.addresses import is_zero_address, normalize_address
from lambollama.sale.base import BaseContract, current_timestamp
from lambollama.sale.core.merkle import Hash, as_bytes, leaf_hash, verify_proof
from lambollama.sale.core.retry import with_retries
from lambollama.sale.database import AirdropAllocation, DatabaseManager
from lambollama.sale.errors import AlreadyClaimed, InvalidInput, InvalidMerkleProof, InvalidTokenAddress
from lambollama.sale.token import Token, check_amount

logger = logging.getLogger(__name__)


def _root_hex(root: Hash) -> str:
    raw = as_bytes(root)
    if len(raw) != 32:
        raise InvalidInput(f"Merkle root must be 32 bytes, got {len(raw)}")
    return encode_hex(raw)


class MerkleAirdrop(BaseContract):
    KIND = "merkle_airdrop"

    def __init__(
        self,
        db_manager: DatabaseManager,
        owner: str,
        token: Token,
        merkle_root: Hash,
        address: Optional[str] = None
    ):
        super().__init__(db_manager, owner, address)
        self.token = token
        self.initial_root = merkle_root

    @with_retries()
    async def deploy(self) -> "MerkleAirdrop":
        if self.token is None or is_zero_address(self.token.address):
            raise InvalidTokenAddress("MerkleAirdrop: zero token address")
        async with self.transaction() as session:
            await self._register(session, token_address=self.token.address,
                                 merkle_root=_root_hex(self.initial_root))
        return self

    async def _claim_record(self, session: AsyncSession, account: str) -> Optional[AirdropAllocation]:
        result = await session.execute(
            select(AirdropAllocation).where(
                AirdropAllocation.contract_address == self.address,
                AirdropAllocation.recipient == account
            )
        )
        return result.scalar_one_or_none()

    @with_retries()
    async def claim(self, caller: str, amount: int, proof: Sequence[Hash], now: Optional[int] = None) -> int:
        """
        Claim amount for caller with a proof of the (caller, amount) leaf.

        Raises:
            AlreadyClaimed: caller already claimed
            InvalidMerkleProof: proof does not lead to the current root
        """
        check_amount(amount)
        now = current_timestamp(now)
        caller = normalize_address(caller)

        async with self.transaction() as session:
            if await self._claim_record(session, caller) is not None:
                raise AlreadyClaimed(f"{caller} already claimed")

            state = await self._state(session)
            if not verify_proof(proof, state.merkle_root, leaf_hash(caller, amount)):
                logger.warning(f"Invalid merkle proof from {caller} for {amount}")
                raise InvalidMerkleProof(f"Proof for {caller} does not match root {state.merkle_root}")

            session.add(AirdropAllocation(
                contract_address=self.address,
                recipient=caller,
                amount=amount,
                claimed_amount=amount,
                claimed=True
            ))
            await self.token._transfer(session, self.address, caller, amount)
            await self._emit(session, "Claimed", now, participant=caller, amount=amount)

        return amount

    @with_retries()
    async def set_merkle_root(self, caller: str, root: Hash):
        """Replace the root. Claims already made stay claimed."""
        self._require_owner(caller)
        async with self.transaction() as session:
            state = await self._state(session)
            state.merkle_root = _root_hex(root)
            await self._emit(session, "MerkleRootSet", current_timestamp(), participant=self.owner,
                             details={"root": state.merkle_root})

    async def merkle_root(self) -> str:
        async with self.db_manager.async_session() as session:
            return (await self._state(session)).merkle_root

    async def claimed(self, account: str) -> bool:
        async with self.db_manager.async_session() as session:
            return await self._claim_record(session, normalize_address(account)) is not None
