"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults (static pool for SQLite)
- Test database support
- Table definitions for the entitlement store and the business data
  the assistant tools operate on
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Date, Boolean, Float, JSON, Text, Index, UniqueConstraint, text
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from contractorai.core.config import settings

logger = logging.getLogger("contractorai")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests re-initialize per case)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)

    Commits on success, rolls back on any exception.
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def reset_database():
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This is destructive! Only use in tests.
    """
    drop_all_tables()
    create_all_tables()


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("database.check_failed", extra={"error_message": str(e)})
        return False


# Entitlement store: one row per (user_id, platform)
user_subscriptions = Table(
    'user_subscriptions',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('platform', String(20), nullable=False),  # native | web
    Column('is_active', Boolean, nullable=False, server_default='0'),
    Column('product_id', String(200), nullable=True),
    Column('entitlement_id', String(200), nullable=True),
    Column('expires_at', DateTime(timezone=True), nullable=True),
    Column('will_renew', Boolean, nullable=False, server_default='0'),
    Column('linked_from_platform', String(20), nullable=True),
    Column('app_user_id', String(200), nullable=True),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'platform', name='uq_user_subscriptions_user_platform'),
    Index('idx_user_subscriptions_active', 'user_id', 'is_active'),
)

# RevenueCat webhook idempotency
billing_webhook_events = Table(
    'billing_webhook_events',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('event_id', String(100), nullable=False, unique=True, index=True),
    Column('event_type', String(100), nullable=False, index=True),
    Column('user_id', String(100), nullable=True, index=True),
    Column('received_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('payload_hash', String(64), nullable=False),  # SHA256 of the raw body
    Column('processed', Boolean, nullable=False, server_default='0', index=True),
    Column('processed_at', DateTime(timezone=True), nullable=True),
    Column('error', Text, nullable=True),
)

# CRM clients
clients = Table(
    'clients',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('name', String(200), nullable=False),
    Column('email', String(200), nullable=True),
    Column('phone', String(50), nullable=True),
    Column('company', String(200), nullable=True),
    Column('address', Text, nullable=True),
    Column('city', String(100), nullable=True),
    Column('state', String(50), nullable=True),
    Column('zip', String(20), nullable=True),
    Column('status', String(30), nullable=False, server_default='active'),
    Column('notes', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_clients_user_name', 'user_id', 'name'),
)

projects = Table(
    'projects',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('client_id', String(64), nullable=True, index=True),
    Column('client_name', String(200), nullable=True),
    Column('name', String(200), nullable=False),
    Column('description', Text, nullable=True),
    Column('status', String(30), nullable=False, server_default='active'),
    Column('budget', Float, nullable=True),
    Column('start_date', Date, nullable=True),
    Column('end_date', Date, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_projects_user_created', 'user_id', 'created_at'),
)

tasks = Table(
    'tasks',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('project_id', String(64), nullable=False, index=True),
    Column('title', String(300), nullable=False),
    Column('status', String(30), nullable=False, server_default='todo'),
    Column('due_date', Date, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

calendar_events = Table(
    'calendar_events',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('title', String(300), nullable=False),
    Column('description', Text, nullable=True),
    Column('start_date', DateTime(timezone=True), nullable=False),
    Column('end_date', DateTime(timezone=True), nullable=True),
    Column('location', Text, nullable=True),
    Column('all_day', Boolean, nullable=False, server_default='0'),
    Column('event_type', String(50), nullable=False, server_default='meeting'),
    Column('project_id', String(64), nullable=True),
    Column('client_id', String(64), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_calendar_events_user_start', 'user_id', 'start_date'),
)

employees = Table(
    'employees',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('name', String(200), nullable=False),
    Column('email', String(200), nullable=True),
    Column('phone', String(50), nullable=True),
    Column('job_title', String(200), nullable=True),
    Column('hourly_rate', Float, nullable=True),
    Column('status', String(30), nullable=False, server_default='active'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

finance_expenses = Table(
    'finance_expenses',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('amount', Float, nullable=False),
    Column('category', String(100), nullable=False),
    Column('description', Text, nullable=False),
    Column('vendor', String(200), nullable=False, server_default='Unknown'),
    Column('notes', Text, nullable=True),
    Column('date', Date, nullable=False),
    Column('project_id', String(64), nullable=True),
    Column('status', String(30), nullable=False, server_default='processed'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_finance_expenses_user_date', 'user_id', 'date'),
)

payments = Table(
    'payments',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('amount', Float, nullable=False),
    Column('source', String(200), nullable=False),
    Column('description', Text, nullable=True),
    Column('method', String(50), nullable=True),
    Column('date', Date, nullable=False),
    Column('client_id', String(64), nullable=True),
    Column('project_id', String(64), nullable=True),
    Column('status', String(30), nullable=False, server_default='completed'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_payments_user_date', 'user_id', 'date'),
)

budgets = Table(
    'budgets',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('category', String(100), nullable=False),
    Column('amount', Float, nullable=False),
    Column('period', String(20), nullable=False, server_default='monthly'),  # monthly, quarterly, yearly
    Column('start_date', Date, nullable=True),
    Column('notes', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Company settings, one row per user
profiles = Table(
    'profiles',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('full_name', String(200), nullable=True),
    Column('company', String(200), nullable=True),
    Column('phone', String(50), nullable=True),
    Column('address', Text, nullable=True),
    Column('default_terms', Text, nullable=True),
    Column('contractor_notification_email', String(200), nullable=True),
    Column('logo_url', Text, nullable=True),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)

# Pending approval artifacts; nothing leaves the system until approved
email_drafts = Table(
    'email_drafts',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('persona', String(30), nullable=False),
    Column('recipients', JSON, nullable=False),
    Column('subject', Text, nullable=False),
    Column('body', Text, nullable=False),
    Column('client_id', String(64), nullable=True),
    Column('status', String(20), nullable=False, server_default='pending', index=True),  # pending, sending, sent, discarded
    Column('provider_message_id', String(200), nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('sent_at', DateTime(timezone=True), nullable=True),
)

email_connections = Table(
    'email_connections',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, unique=True, index=True),
    Column('provider', String(30), nullable=False, server_default='gmail'),
    Column('email_address', String(200), nullable=False),
    Column('access_token', Text, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
)
