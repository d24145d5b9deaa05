from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
from uuid import UUID, uuid4
from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel

# Money columns hold integer cents so every backend stores them exactly.

class User(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    full_name: str
    email: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

class Account(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    account_number: str = Field(index=True, unique=True, max_length=32)
    user_id: UUID = Field(index=True)
    account_type: str = Field(max_length=32)
    balance: int = Field(default=0, ge=0, sa_type=BigInteger)
    status: str = Field(max_length=16)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: Optional[datetime] = None
    version: int = Field(default=1)

class LedgerEntry(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC), index=True)
    # No foreign key: entries outlive the account they belong to.
    account_id: UUID = Field(index=True)
    related_account_id: Optional[UUID] = Field(default=None, index=True)
    kind: str = Field(max_length=32)
    amount: int = Field(sa_type=BigInteger)
    description: str = ""
    reference_number: str = Field(unique=True, index=True, max_length=32)
    status: str = Field(max_length=16)

class IdempotencyRecord(SQLModel, table=True):
    route: str = Field(primary_key=True)
    key: str = Field(primary_key=True)
    request_signature: str
    response_payload: str
