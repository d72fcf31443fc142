"""SQLAlchemy ORM models for the on-device store."""
import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from attention_wallet.infrastructure.database.base import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class QueuedTransaction(Base):
    __tablename__ = "queued_transactions"

    local_id = Column(String(64), primary_key=True)
    seq = Column(Integer, nullable=False, unique=True, index=True)
    profile_id = Column(String(36), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # earn, spend, refund
    amount = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False)
    proof_ref = Column(Text)
    app_name = Column(String(100))
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    synced = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class BackupSnapshot(Base):
    __tablename__ = "backup_snapshots"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    profile_id = Column(String(36), nullable=False, index=True)
    reason = Column(String(255), nullable=False)
    version = Column(String(20), nullable=False)
    transaction_count = Column(Integer, nullable=False, default=0)
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class BillingSession(Base):
    __tablename__ = "billing_sessions"

    profile_id = Column(String(36), primary_key=True)
    app_name = Column(String(100), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    tokens_charged = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
