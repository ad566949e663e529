"""
Shared plumbing for the sale contracts.

A contract here is an object that owns a slice of the ledger database and
changes it only through its operations. Each write operation runs as a single
database transaction under the ledger-wide write lock, so it either commits
everything or nothing and no two write operations interleave.
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lambollama.sale.addresses import new_contract_address, normalize_address
from lambollama.sale.database import ContractState, DatabaseManager, LedgerEvent
from lambollama.sale.errors import NotOwner

logger = logging.getLogger(__name__)


def current_timestamp(now: Optional[int] = None) -> int:
    """Block timestamp stand-in: the given value, or wall-clock seconds."""
    return int(time.time()) if now is None else int(now)


class BaseContract:
    """
    Base class for ledger-backed contracts.

    Subclasses set KIND and call _register() from their deploy method.
    """

    KIND = "contract"

    def __init__(self, db_manager: DatabaseManager, owner: str, address: Optional[str] = None):
        self.db_manager = db_manager
        self.owner = normalize_address(owner)
        self.address = normalize_address(address) if address else new_contract_address(self.KIND, self.owner)

    @asynccontextmanager
    async def transaction(self):
        """Serialized, all-or-nothing unit of work on this contract's ledger."""
        async with self.db_manager.transaction() as session:
            yield session

    async def _register(self, session: AsyncSession, **fields) -> ContractState:
        state = ContractState(
            address=self.address,
            kind=self.KIND,
            owner=self.owner,
            fixed=False,
            tokens_deposited=False,
            total_raw=0,
            total_effective=0,
            **fields
        )
        session.add(state)
        logger.info(f"Deployed {self.KIND} at {self.address} (owner {self.owner})")
        return state

    async def _state(self, session: AsyncSession) -> ContractState:
        result = await session.execute(
            select(ContractState).where(ContractState.address == self.address)
        )
        state = result.scalar_one_or_none()
        if state is None:
            raise RuntimeError(f"{self.KIND} at {self.address} has not been deployed")
        return state

    async def get_state(self) -> Dict[str, Any]:
        async with self.db_manager.async_session() as session:
            return (await self._state(session)).to_dict()

    def _require_owner(self, caller: str):
        if normalize_address(caller) != self.owner:
            logger.warning(f"Rejected owner-only call on {self.KIND} {self.address} from {caller}")
            raise NotOwner(f"Caller {caller} is not the owner")

    async def _emit(
        self,
        session: AsyncSession,
        name: str,
        timestamp: int,
        participant: Optional[str] = None,
        amount: Optional[int] = None,
        effective_amount: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> LedgerEvent:
        event = LedgerEvent(
            contract_address=self.address,
            name=name,
            participant=participant,
            amount=amount,
            effective_amount=effective_amount,
            timestamp=timestamp,
            details=json.dumps(details) if details else None
        )
        session.add(event)
        logger.info(
            f"{self.KIND} {self.address} emitted {name}: participant={participant}, "
            f"amount={amount}, effective_amount={effective_amount}"
        )
        return event

    async def get_events(self, name: Optional[str] = None):
        """Events emitted by this contract, oldest first."""
        async with self.db_manager.async_session() as session:
            query = select(LedgerEvent).where(LedgerEvent.contract_address == self.address)
            if name is not None:
                query = query.where(LedgerEvent.name == name)
            result = await session.execute(query.order_by(LedgerEvent.id))
            return [event.to_dict() for event in result.scalars().all()]
