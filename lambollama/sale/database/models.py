"""
Database models for the sale ledger.

This module defines all database models used by the sale contracts,
including contract state, contributions, vesting schedules, airdrop
allocations, token balances and the event log.
"""

import json
from datetime import datetime
from typing import Dict, Any

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()

MAX_UINT256 = 2 ** 256 - 1


class Uint256(TypeDecorator):
    """SQLAlchemy type for uint256 token amounts, stored as decimal text"""
    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert int to its decimal string when storing in database"""
        if value is None:
            return None
        value = int(value)
        if value < 0 or value > MAX_UINT256:
            raise ValueError(f"Value {value} out of uint256 range")
        return str(value)

    def process_result_value(self, value, dialect):
        """Convert decimal string back to int when loading from database"""
        if value is None:
            return None
        return int(value)


class ContractState(Base):
    """Deployment parameters and aggregate totals of one contract."""

    __tablename__ = "sale_contracts"

    address = Column(String(42), primary_key=True)
    kind = Column(String(32), index=True)  # "presale", "vesting", "airdrop", "merkle_airdrop"
    owner = Column(String(42))
    token_address = Column(String(42))
    fixed = Column(Boolean, default=False)
    tokens_deposited = Column(Boolean, default=False)
    total_raw = Column(Uint256, default=0)  # totalEth
    total_effective = Column(Uint256, default=0)  # totalEthEffective
    merkle_root = Column(String(66), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "address": self.address,
            "kind": self.kind,
            "owner": self.owner,
            "token_address": self.token_address,
            "fixed": self.fixed,
            "tokens_deposited": self.tokens_deposited,
            "total_raw": self.total_raw,
            "total_effective": self.total_effective,
            "merkle_root": self.merkle_root
        }


class Contribution(Base):
    """Contribution record of one participant in one presale."""

    __tablename__ = "sale_contributions"
    __table_args__ = (UniqueConstraint("contract_address", "participant"),)

    id = Column(Integer, primary_key=True)
    contract_address = Column(String(42), index=True)
    participant = Column(String(42), index=True)
    amount = Column(Uint256, default=0)
    effective_amount = Column(Uint256, default=0)
    claimed = Column(Boolean, default=False)
    claimed_bonus_tokens = Column(Uint256, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "participant": self.participant,
            "amount": self.amount,
            "effective_amount": self.effective_amount,
            "claimed": self.claimed,
            "claimed_bonus_tokens": self.claimed_bonus_tokens
        }


class VestingSchedule(Base):
    """Linear vesting schedule of one beneficiary."""

    __tablename__ = "sale_vesting_schedules"
    __table_args__ = (UniqueConstraint("contract_address", "beneficiary"),)

    id = Column(Integer, primary_key=True)
    contract_address = Column(String(42), index=True)
    beneficiary = Column(String(42), index=True)
    total_amount = Column(Uint256)
    start = Column(Integer)
    duration = Column(Integer)
    claimed_amount = Column(Uint256, default=0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "beneficiary": self.beneficiary,
            "total_amount": self.total_amount,
            "start": self.start,
            "duration": self.duration,
            "claimed_amount": self.claimed_amount
        }


class AirdropAllocation(Base):
    """Tokens allocated to an airdrop recipient and how much was released."""

    __tablename__ = "sale_airdrop_allocations"
    __table_args__ = (UniqueConstraint("contract_address", "recipient"),)

    id = Column(Integer, primary_key=True)
    contract_address = Column(String(42), index=True)
    recipient = Column(String(42), index=True)
    amount = Column(Uint256, default=0)
    claimed_amount = Column(Uint256, default=0)
    claimed = Column(Boolean, default=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "recipient": self.recipient,
            "amount": self.amount,
            "claimed_amount": self.claimed_amount,
            "claimed": self.claimed
        }


class TokenInfo(Base):
    """Metadata and supply of a token."""

    __tablename__ = "sale_tokens"

    address = Column(String(42), primary_key=True)
    name = Column(String(255))
    symbol = Column(String(32))
    decimals = Column(Integer, default=18)
    owner = Column(String(42), nullable=True)
    total_supply = Column(Uint256, default=0)


class TokenBalance(Base):
    __tablename__ = "sale_token_balances"
    __table_args__ = (UniqueConstraint("token_address", "holder"),)

    id = Column(Integer, primary_key=True)
    token_address = Column(String(42), index=True)
    holder = Column(String(42), index=True)
    balance = Column(Uint256, default=0)


class TokenAllowance(Base):
    __tablename__ = "sale_token_allowances"
    __table_args__ = (UniqueConstraint("token_address", "owner", "spender"),)

    id = Column(Integer, primary_key=True)
    token_address = Column(String(42), index=True)
    owner = Column(String(42), index=True)
    spender = Column(String(42))
    amount = Column(Uint256, default=0)


class LedgerEvent(Base):
    """Record of an event emitted by a contract operation."""

    __tablename__ = "sale_events"

    id = Column(Integer, primary_key=True)
    contract_address = Column(String(42), index=True)
    name = Column(String(64), index=True)  # "DepositReceived", "Claimed", "RecipientSet", ...
    participant = Column(String(42), index=True, nullable=True)
    amount = Column(Uint256, nullable=True)
    effective_amount = Column(Uint256, nullable=True)
    timestamp = Column(Integer, index=True)
    details = Column(Text, nullable=True)  # JSON string for additional data

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        result = {
            "contract_address": self.contract_address,
            "name": self.name,
            "participant": self.participant,
            "amount": self.amount,
            "effective_amount": self.effective_amount,
            "timestamp": self.timestamp
        }

        if self.details:
            try:
                result["details"] = json.loads(self.details)
            except (json.JSONDecodeError, TypeError):
                result["details"] = self.details

        return result


class TokenNonce(Base):
    """Permit nonce of a token holder."""

    __tablename__ = "sale_token_nonces"
    __table_args__ = (UniqueConstraint("token_address", "owner"),)

    id = Column(Integer, primary_key=True)
    token_address = Column(String(42), index=True)
    owner = Column(String(42), index=True)
    nonce = Column(Integer, default=0)
