"""SQLAlchemy database models for the SMS wallet service."""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer,
    String, Table, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class NominationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCESS = "success"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


user_approvers = Table(
    "user_approvers",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
    Column("approver_id", Integer, ForeignKey("users.id"), primary_key=True),
    UniqueConstraint("user_id", "approver_id", name="uq_user_approver"),
)


class User(Base):
    """Registered wallet holder, keyed by phone number."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(32), nullable=False, unique=True, index=True)
    username = Column(String(64), nullable=False, unique=True, index=True)
    wallet_id = Column(String(128), nullable=False)
    wallet_address = Column(String(128), nullable=False)
    registration_name = Column(String(128), nullable=True, index=True)
    requires_approval = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    approvers = relationship(
        "User",
        secondary=user_approvers,
        primaryjoin=id == user_approvers.c.user_id,
        secondaryjoin=id == user_approvers.c.approver_id,
        lazy="selectin",
    )


class Nomination(Base):
    """Pending proposal for a user to become another user's cosigner."""
    __tablename__ = "nominations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nominator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    nominee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String(16), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=NominationStatus.PENDING.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    nominator = relationship("User", foreign_keys=[nominator_id])
    nominee = relationship("User", foreign_keys=[nominee_id])


class Transaction(Base):
    """A transfer held for cosigner quorum."""
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_name = Column(String(128), nullable=False)
    destination_address = Column(String(128), nullable=False)
    amount = Column(String(32), nullable=False)
    token = Column(String(16), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.PENDING.value)
    transfer_id = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("User", foreign_keys=[owner_id])
    approvals = relationship("Approval", back_populates="transaction")


class Approval(Base):
    """One cosigner's pending vote on a transaction."""
    __tablename__ = "approvals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String(16), nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transaction = relationship("Transaction", back_populates="approvals")
    approver = relationship("User", foreign_keys=[approver_id])


class Payment(Base):
    """Payment request; ``recipient`` is the party asked to pay."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    code = Column(String(16), nullable=False, index=True)
    amount = Column(String(32), nullable=False)
    token = Column(String(16), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    transfer_id = Column(String(128), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    requester = relationship("User", foreign_keys=[requester_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
