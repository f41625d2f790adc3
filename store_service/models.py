import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, JSON, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    # Stored naive so SQLite and Postgres round-trip the same value
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class Account(Base):
    __tablename__ = "accounts"
    uid = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    failed_attempts = Column(Integer, default=0, nullable=False)
    locked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    tokens = relationship("AuthToken", back_populates="account")

class AuthToken(Base):
    __tablename__ = "auth_tokens"
    token = Column(String(64), primary_key=True)
    uid = Column(String(32), ForeignKey("accounts.uid"), nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    account = relationship("Account", back_populates="tokens")

class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (UniqueConstraint("collection", "doc_id", name="uq_collection_doc"),)
    id = Column(Integer, primary_key=True, index=True)
    collection = Column(String(100), index=True, nullable=False)
    doc_id = Column(String(64), nullable=False, default=new_id)
    data = Column(JSON, nullable=False)  # camelCase document body
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
