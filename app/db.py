from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy.engine import Engine
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create the engine for DATABASE_URL (SQLite for local/tests, PostgreSQL in production)."""
    if database_url.startswith("sqlite"):
        # FastAPI runs sync dependencies in a threadpool
        return create_engine(database_url, echo=False, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,  # Allow burst connections during webhook retries
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,
        pool_timeout=30,
    )


engine = build_engine(settings.DATABASE_URL)


def get_session():
    with Session(engine) as session:
        yield session


def create_db_and_tables():
    import app.models  # noqa: F401 - register tables with SQLModel.metadata

    SQLModel.metadata.create_all(engine)
