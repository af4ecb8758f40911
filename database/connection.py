from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from database.base import Base
from core.config import settings


def is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    database = url.database or ""
    return database in ("", ":memory:") or url.query.get("mode") == "memory"


def build_engine(database_url: str, echo: bool = False):
    """Create an engine. SQLite enforces foreign keys; only an in-memory
    database shares a single connection, file databases keep a connection
    per session."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    options = {"connect_args": {"check_same_thread": False}}
    if is_memory_sqlite(database_url):
        options["poolclass"] = StaticPool

    engine = create_engine(database_url, echo=echo, **options)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


# Create database engine
engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create all tables
def create_tables(bind=None):
    from models import (  # noqa: F401  registers every mapped table on Base.metadata
        user, vendor, product, coupon, delivery, order, payment, notification
    )
    Base.metadata.create_all(bind=bind or engine)

# Dependency to get database session
def get_db() -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
