from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator, Iterator
import logging
import redis
from .config import settings

logger = logging.getLogger(__name__)

_database_url = settings.get_database_url

if _database_url.startswith("sqlite"):
    engine = create_engine(
        _database_url,
        connect_args={"check_same_thread": False},
    )
else:
    # PostgreSQL with connection pool settings
    engine = create_engine(
        _database_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # Recycle connections after 30 minutes
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Connections are opened lazily on first command
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

# Database dependency
def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Redis dependency
def get_redis():
    """Get Redis client."""
    return redis_client

@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a unit of work: commit when the block succeeds, roll back otherwise.

    Every multi-row mutation (registration, booking creation and
    cancellation, doctor profile update, specialty rename) goes through here so that either
    all of its writes land or none do.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise

# Database initialization
def init_db():
    """Initialize database tables."""
    # Register every model on Base.metadata before create_all
    from .. import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
