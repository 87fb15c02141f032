"""DB engine, session helpers and ORM models for the reimbursement forms service.

Three related tables hold the data: ``forms`` -> ``transactions`` -> ``receipts``.
Deleting a form's children is done by the service layer, not by the database.
"""

from collections.abc import Iterator

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from reimburse.core.utils import utcnow

Base = declarative_base()


class User(Base):
    """A user known to the identity provider; forms copy its fields at submission time."""

    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(Text, nullable=False)
    name = Column(Text, nullable=True)


class Form(Base):
    """A reimbursement request submitted by a user."""

    __tablename__ = "forms"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    form_type = Column(String(64), nullable=False, default="REIMBURSEMENT")
    submitter_email = Column(Text, nullable=False)
    submitter_name = Column(Text, nullable=False)
    reimbursed_name = Column(Text, nullable=False)
    reimbursed_email = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class Transaction(Base):
    """One expense line item of a form."""

    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    form_id = Column(Integer, ForeignKey("forms.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    account_line = Column(Text, nullable=False)
    department = Column(Text, nullable=False)
    place_vendor = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False)


class Receipt(Base):
    """A file attached to a transaction, stored as base64 with its MIME type."""

    __tablename__ = "receipts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)
    name = Column(Text, nullable=False, default="")
    file_type = Column(Text, nullable=False)
    base64_content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


def get_engine(url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine using the configured database URL."""
    from reimburse.core.settings import get_settings

    url = url or get_settings().database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create every table that does not exist yet."""
    Base.metadata.create_all(bind or engine)


def get_session() -> Iterator[Session]:
    """Yield a SQLAlchemy session for one request and close it afterwards."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
