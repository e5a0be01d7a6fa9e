"""Database models for accounts and the user document store."""
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from phrasecards.models.base import Base, TimestampMixin


class Account(Base, TimestampMixin):
    """Identity account model."""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String(256), nullable=True)  # None for federated-only accounts
    provider = Column(String, nullable=False, default="password")  # password, federated
    provider_subject = Column(String, nullable=True, unique=True)

    # Relationships
    record = relationship("UserRecord", back_populates="account", uselist=False)
    reset_tokens = relationship("PasswordResetToken", back_populates="account")


class UserRecord(Base, TimestampMixin):
    """User document: email, creation time and the settings document."""

    __tablename__ = "user_records"

    user_id = Column(String(36), ForeignKey("accounts.id"), primary_key=True)
    email = Column(String, nullable=False)
    settings = Column(JSON, nullable=False)  # serialized UserProgressState

    # Relationships
    account = relationship("Account", back_populates="record")
    outcomes = relationship("QuestionOutcome", back_populates="record")


class QuestionOutcome(Base, TimestampMixin):
    """Latest outcome per (user, language, question)."""

    __tablename__ = "question_outcomes"

    id = Column(String, primary_key=True)  # f"{language}_{question_id}" scoped by user
    user_id = Column(String(36), ForeignKey("user_records.user_id"), primary_key=True)
    question_id = Column(String, nullable=False)
    language = Column(String, nullable=False, index=True)
    result = Column(String, nullable=False)  # success, failed
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "language", "question_id", name="uq_user_language_question"),
    )

    # Relationships
    record = relationship("UserRecord", back_populates="outcomes")


class PasswordResetToken(Base, TimestampMixin):
    """One-time password reset token."""

    __tablename__ = "password_reset_tokens"

    token = Column(String(64), primary_key=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    account = relationship("Account", back_populates="reset_tokens")
