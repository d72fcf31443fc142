"""Domain models for the token ledger."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from attention_wallet.domain.common.clock import ensure_aware, utcnow

from .exceptions import InsufficientBalanceError


class ProfileRole(str, Enum):
    GUARDIAN = "guardian"
    WARD = "ward"


class TransactionType(str, Enum):
    EARN = "earn"
    SPEND = "spend"
    REFUND = "refund"


LEDGER_FIELDS = ("balance", "total_earned", "total_spent", "total_refunded")


@dataclass(slots=True)
class Profile:
    id: str
    role: str
    balance: int = 0
    total_earned: int = 0
    total_spent: int = 0
    total_refunded: int = 0
    updated_at: Optional[datetime] = None

    def apply(self, transaction: "Transaction") -> "Profile":
        """Return the profile as it looks after committing ``transaction``."""
        amount = transaction.amount
        if transaction.type is TransactionType.EARN:
            return replace(
                self,
                balance=self.balance + amount,
                total_earned=self.total_earned + amount,
            )
        if transaction.type is TransactionType.REFUND:
            return replace(
                self,
                balance=self.balance + amount,
                total_refunded=self.total_refunded + amount,
            )
        if transaction.type is TransactionType.SPEND:
            if self.balance < amount:
                raise InsufficientBalanceError(self.balance, amount)
            return replace(
                self,
                balance=self.balance - amount,
                total_spent=self.total_spent + amount,
            )
        raise ValueError(f"未知交易类型: {transaction.type!r}")

    def ledger_fields(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in LEDGER_FIELDS}

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "balance": self.balance,
            "total_earned": self.total_earned,
            "total_spent": self.total_spent,
            "total_refunded": self.total_refunded,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Profile":
        updated_at = data.get("updated_at")
        return cls(
            id=data.get("id"),
            role=data.get("role", ProfileRole.WARD.value),
            balance=data.get("balance"),
            total_earned=data.get("total_earned"),
            total_spent=data.get("total_spent"),
            total_refunded=data.get("total_refunded", 0),
            updated_at=ensure_aware(datetime.fromisoformat(updated_at)) if updated_at else None,
        )


@dataclass(slots=True)
class Transaction:
    profile_id: str
    type: TransactionType
    amount: int
    description: str
    timestamp: datetime
    id: Optional[str] = None
    proof_ref: Optional[str] = None
    app_name: Optional[str] = None
    client_ref: Optional[str] = None

    @classmethod
    def new(
        cls,
        profile_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        *,
        proof_ref: Optional[str] = None,
        app_name: Optional[str] = None,
    ) -> "Transaction":
        return cls(
            profile_id=profile_id,
            type=type,
            amount=amount,
            description=description,
            timestamp=utcnow(),
            proof_ref=proof_ref,
            app_name=app_name,
        )

    @property
    def signed_amount(self) -> int:
        if self.type is TransactionType.SPEND:
            return -self.amount
        return self.amount

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "type": self.type.value if isinstance(self.type, TransactionType) else self.type,
            "amount": self.amount,
            "description": self.description,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "proof_ref": self.proof_ref,
            "app_name": self.app_name,
            "client_ref": self.client_ref,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Transaction":
        raw_type = data.get("type")
        try:
            tx_type: Any = TransactionType(raw_type)
        except ValueError:
            # 保留原始值，交由完整性校验判定
            tx_type = raw_type
        timestamp = data.get("timestamp")
        return cls(
            id=data.get("id"),
            profile_id=data.get("profile_id"),
            type=tx_type,
            amount=data.get("amount"),
            description=data.get("description", ""),
            timestamp=ensure_aware(datetime.fromisoformat(timestamp)) if timestamp else utcnow(),
            proof_ref=data.get("proof_ref"),
            app_name=data.get("app_name"),
            client_ref=data.get("client_ref"),
        )


@dataclass(slots=True)
class QueuedTransaction:
    local_id: str
    seq: int
    transaction: Transaction
    synced: bool = False
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
