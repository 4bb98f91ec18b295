"""SQLAlchemy models for bankrecon database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    JSON,
    CheckConstraint,
    Index,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Account(Base):
    """Bank account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    bank_name = Column(String, nullable=False)
    currency = Column(String(3), default="VND", nullable=False)
    last_import_config = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    transactions = relationship("Transaction", back_populates="account", cascade="all, delete-orphan")
    import_batches = relationship("ImportBatch", back_populates="account", cascade="all, delete-orphan")
    checkpoints = relationship("BalanceCheckpoint", back_populates="account", cascade="all, delete-orphan")


class ImportBatch(Base):
    """Statement import batch model."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    file_name = Column(String, nullable=False)
    total_rows = Column(Integer, default=0, nullable=False)
    successful_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)
    duplicate_count = Column(Integer, default=0, nullable=False)
    status = Column(String, default="processing", nullable=False)
    error_log = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('processing', 'completed', 'failed', 'rolled_back')",
            name="ck_import_batch_status",
        ),
    )

    # Relationships
    account = relationship("Account", back_populates="import_batches")


class BalanceCheckpoint(Base):
    """Declared balance checkpoint model."""

    __tablename__ = "balance_checkpoints"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    checkpoint_date = Column(Date, nullable=False)
    declared_balance = Column(Numeric(15, 2), nullable=False)
    calculated_balance = Column(Numeric(15, 2), default=0, nullable=False)
    adjustment_amount = Column(Numeric(15, 2), default=0, nullable=False)
    is_reconciled = Column(Boolean, default=False, nullable=False)
    batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    # One checkpoint per account per day
    __table_args__ = (
        UniqueConstraint("account_id", "checkpoint_date", name="uq_account_checkpoint_date"),
    )

    # Relationships
    account = relationship("Account", back_populates="checkpoints")


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    unique_id = Column(String, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    date = Column(Date, nullable=False)
    description = Column(String(500), nullable=True)
    debit_amount = Column(Numeric(15, 2), nullable=True)
    credit_amount = Column(Numeric(15, 2), nullable=True)
    balance = Column(Numeric(15, 2), nullable=True)
    bank_reference = Column(String(100), nullable=True)
    branch = Column(String(100), nullable=True)
    sequence = Column(Integer, default=0, nullable=False)
    batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    source_file_name = Column(String, nullable=True)
    is_balance_adjustment = Column(Boolean, default=False, nullable=False)
    checkpoint_id = Column(Integer, ForeignKey("balance_checkpoints.id"), nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    # Exactly one of debit/credit is set and positive. Sequence is indexed
    # but not unique: renumbering rewrites it row by row.
    __table_args__ = (
        UniqueConstraint("account_id", "unique_id", name="uq_account_unique_id"),
        CheckConstraint(
            "(debit_amount IS NOT NULL AND debit_amount > 0 AND credit_amount IS NULL)"
            " OR (credit_amount IS NOT NULL AND credit_amount > 0 AND debit_amount IS NULL)",
            name="ck_transaction_one_side",
        ),
        Index("ix_transactions_account_date_sequence", "account_id", "date", "sequence"),
        Index("ix_transactions_batch_id", "batch_id"),
    )

    # Relationships
    account = relationship("Account", back_populates="transactions")


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
