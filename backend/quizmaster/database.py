from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DATABASE_URL


def _engine_options(url: str) -> dict:
    """SQLite needs thread sharing for the threadpool; in-memory also needs one shared connection."""
    if not url.startswith("sqlite"):
        return {"pool_pre_ping": True}
    options = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


# Create the SQLAlchemy engine that talks to the database.
engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# SessionLocal is a factory for DB sessions; each request gets its own session.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base is the parent class for all ORM models.
Base = declarative_base()


@contextmanager
def get_session():
    """Yield a database session and make sure it closes after use."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_db():
    """FastAPI dependency wrapper around get_session()."""
    with get_session() as db:
        yield db
