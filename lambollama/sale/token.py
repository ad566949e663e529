"""
ERC20-style token ledger.

Balances and allowances live in the sale database so that contract
operations can move tokens inside their own transaction. The underscore
methods take the caller's session and never open a transaction themselves.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lambollama.sale.addresses import NATIVE_ASSET, is_zero_address, normalize_address
from lambollama.sale.base import BaseContract, current_timestamp
from lambollama.sale.core.retry import with_retries
from lambollama.sale.database import DatabaseManager, TokenAllowance, TokenBalance, TokenInfo, TokenNonce
from lambollama.sale.errors import (
    ExpiredSignature,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidInput,
    InvalidSigner,
    ZeroAddress,
)
from lambollama.sale.permit import DEFAULT_CHAIN_ID, recover_permit_signer

logger = logging.getLogger(__name__)


def check_amount(amount: int):
    if amount < 0:
        raise InvalidInput(f"Negative token amount {amount}")


class Token(BaseContract):
    """
    Fungible token with balances, allowances and a single owner.

    Args:
        db_manager: Ledger database
        owner: Owner of the token contract (receives the initial supply)
        name: Token name
        symbol: Token symbol
        decimals: Display decimals
        address: Fixed address, derived when omitted
        chain_id: Chain id of the permit signing domain
    """

    KIND = "token"

    def __init__(
        self,
        db_manager: DatabaseManager,
        owner: str,
        name: str,
        symbol: str,
        decimals: int = 18,
        address: Optional[str] = None,
        chain_id: int = DEFAULT_CHAIN_ID
    ):
        super().__init__(db_manager, owner, address)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.chain_id = chain_id

    @classmethod
    def native(cls, db_manager: DatabaseManager, owner: str) -> "Token":
        """The chain's native currency, modelled as a token at the placeholder address."""
        return cls(db_manager, owner, "Ether", "ETH", address=NATIVE_ASSET)

    @with_retries()
    async def deploy(self, initial_supply: int = 0) -> "Token":
        """Register the token, minting initial_supply to the owner when non-zero."""
        async with self.transaction() as session:
            session.add(TokenInfo(
                address=self.address,
                name=self.name,
                symbol=self.symbol,
                decimals=self.decimals,
                owner=self.owner,
                total_supply=0
            ))
            await session.flush()
            if initial_supply:
                await self._mint(session, self.owner, initial_supply)
        logger.info(f"Deployed token {self.symbol} at {self.address}, initial supply {initial_supply}")
        return self

    # Session-level operations

    async def _info(self, session: AsyncSession) -> TokenInfo:
        info = await session.get(TokenInfo, self.address)
        if info is None:
            raise RuntimeError(f"Token {self.symbol} at {self.address} has not been deployed")
        return info

    async def _balance_row(self, session: AsyncSession, holder: str) -> TokenBalance:
        result = await session.execute(
            select(TokenBalance).where(
                TokenBalance.token_address == self.address,
                TokenBalance.holder == holder
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = TokenBalance(token_address=self.address, holder=holder, balance=0)
            session.add(row)
        return row

    async def _allowance_row(self, session: AsyncSession, owner: str, spender: str) -> TokenAllowance:
        result = await session.execute(
            select(TokenAllowance).where(
                TokenAllowance.token_address == self.address,
                TokenAllowance.owner == owner,
                TokenAllowance.spender == spender
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = TokenAllowance(token_address=self.address, owner=owner, spender=spender, amount=0)
            session.add(row)
        return row

    async def _mint(self, session: AsyncSession, to: str, amount: int):
        check_amount(amount)
        if is_zero_address(to):
            raise ZeroAddress("Cannot mint to the zero address")
        to = normalize_address(to)
        info = await self._info(session)
        row = await self._balance_row(session, to)
        row.balance += amount
        info.total_supply += amount
        await self._emit(session, "Transfer", current_timestamp(), participant=to, amount=amount,
                         details={"token": self.address, "from": None, "to": to})

    async def _transfer(self, session: AsyncSession, sender: str, to: str, amount: int):
        check_amount(amount)
        if is_zero_address(to):
            raise ZeroAddress("Cannot transfer to the zero address")
        sender, to = normalize_address(sender), normalize_address(to)
        source = await self._balance_row(session, sender)
        if source.balance < amount:
            raise InsufficientBalance(
                f"{sender} holds {source.balance} {self.symbol}, cannot transfer {amount}"
            )
        source.balance -= amount
        target = await self._balance_row(session, to)
        target.balance += amount
        await self._emit(session, "Transfer", current_timestamp(), participant=to, amount=amount,
                         details={"token": self.address, "from": sender, "to": to})

    async def _spend_allowance(self, session: AsyncSession, owner: str, spender: str, amount: int):
        check_amount(amount)
        owner, spender = normalize_address(owner), normalize_address(spender)
        row = await self._allowance_row(session, owner, spender)
        if row.amount < amount:
            raise InsufficientAllowance(
                f"{spender} may spend {row.amount} {self.symbol} of {owner}, needs {amount}"
            )
        row.amount -= amount

    async def _balance_of(self, session: AsyncSession, holder: str) -> int:
        result = await session.execute(
            select(TokenBalance.balance).where(
                TokenBalance.token_address == self.address,
                TokenBalance.holder == normalize_address(holder)
            )
        )
        return result.scalar_one_or_none() or 0

    # Public operations

    @with_retries()
    async def mint(self, to: str, amount: int):
        async with self.transaction() as session:
            await self._mint(session, to, amount)

    @with_retries()
    async def transfer(self, sender: str, to: str, amount: int):
        async with self.transaction() as session:
            await self._transfer(session, sender, to, amount)

    @with_retries()
    async def approve(self, owner: str, spender: str, amount: int):
        check_amount(amount)
        if is_zero_address(spender):
            raise ZeroAddress("Cannot approve the zero address")
        async with self.transaction() as session:
            row = await self._allowance_row(session, normalize_address(owner), normalize_address(spender))
            row.amount = amount
            await self._emit(session, "Approval", current_timestamp(), participant=normalize_address(owner),
                             amount=amount, details={"token": self.address, "spender": normalize_address(spender)})

    async def _nonce_row(self, session: AsyncSession, owner: str) -> TokenNonce:
        result = await session.execute(
            select(TokenNonce).where(
                TokenNonce.token_address == self.address,
                TokenNonce.owner == owner
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = TokenNonce(token_address=self.address, owner=owner, nonce=0)
            session.add(row)
        return row

    @with_retries()
    async def permit(
        self,
        owner: str,
        spender: str,
        value: int,
        deadline: int,
        signature,
        now: Optional[int] = None
    ):
        """
        Set an allowance from the holder's EIP-2612 signature.

        Each signature is bound to the holder's current nonce, which the
        permit consumes, so it can be used only once.

        Raises:
            ExpiredSignature: now is past the deadline
            InvalidSigner: signature was not made by owner for these values
        """
        check_amount(value)
        now = current_timestamp(now)
        if now > deadline:
            raise ExpiredSignature(f"Permit deadline {deadline} passed at {now}")
        if is_zero_address(spender):
            raise ZeroAddress("Cannot approve the zero address")
        owner, spender = normalize_address(owner), normalize_address(spender)

        async with self.transaction() as session:
            nonce_row = await self._nonce_row(session, owner)
            nonce = nonce_row.nonce or 0
            try:
                signer = recover_permit_signer(
                    signature, self.name, self.address, self.chain_id, owner, spender, value, nonce, deadline
                )
            except Exception as e:
                raise InvalidSigner(f"Unreadable permit signature for {owner}: {e}") from e
            if normalize_address(signer) != owner:
                logger.warning(f"Permit for {owner} signed by {signer}")
                raise InvalidSigner(f"Permit signed by {signer}, not {owner}")

            nonce_row.nonce = nonce + 1
            row = await self._allowance_row(session, owner, spender)
            row.amount = value
            await self._emit(session, "Approval", now, participant=owner, amount=value,
                             details={"token": self.address, "spender": spender, "nonce": nonce})

    async def nonces(self, owner: str) -> int:
        """Nonce the next permit of owner must be signed with."""
        async with self.db_manager.async_session() as session:
            result = await session.execute(
                select(TokenNonce.nonce).where(
                    TokenNonce.token_address == self.address,
                    TokenNonce.owner == normalize_address(owner)
                )
            )
            return result.scalar_one_or_none() or 0

    @with_retries()
    async def transfer_from(self, spender: str, owner: str, to: str, amount: int):
        async with self.transaction() as session:
            await self._spend_allowance(session, owner, spender, amount)
            await self._transfer(session, owner, to, amount)

    @with_retries()
    async def transfer_ownership(self, caller: str, new_owner: str):
        self._require_owner(caller)
        if is_zero_address(new_owner):
            raise ZeroAddress("New owner is the zero address")
        async with self.transaction() as session:
            info = await self._info(session)
            info.owner = normalize_address(new_owner)
        logger.info(f"Token {self.symbol} ownership moved from {self.owner} to {new_owner}")
        self.owner = normalize_address(new_owner)

    async def balance_of(self, holder: str) -> int:
        async with self.db_manager.async_session() as session:
            return await self._balance_of(session, holder)

    async def allowance(self, owner: str, spender: str) -> int:
        async with self.db_manager.async_session() as session:
            result = await session.execute(
                select(TokenAllowance.amount).where(
                    TokenAllowance.token_address == self.address,
                    TokenAllowance.owner == normalize_address(owner),
                    TokenAllowance.spender == normalize_address(spender)
                )
            )
            return result.scalar_one_or_none() or 0

    async def total_supply(self) -> int:
        async with self.db_manager.async_session() as session:
            return (await self._info(session)).total_supply
