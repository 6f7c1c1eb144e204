"""Engine, session factory and declarative base for the Tool Intake service."""

from typing import Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


DEFAULT_DATABASE_URL = "sqlite:///./toolbox_intake.db"

# The pipeline runs blocking sessions from async handlers and the worker;
# async driver names in DATABASE_URL are mapped to their sync equivalent.
SYNC_DRIVERS = {
    "postgres": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "postgresql+asyncpg": "postgresql+psycopg",
    "postgresql+psycopg_async": "postgresql+psycopg",
    "sqlite+aiosqlite": "sqlite",
}


def get_database_url(raw_url: Optional[str] = None) -> str:
    """Normalize ``raw_url`` to a URL with a synchronous driver."""
    url = make_url(raw_url or DEFAULT_DATABASE_URL)
    driver = SYNC_DRIVERS.get(url.drivername)
    if driver:
        url = url.set(drivername=driver)
    return url.render_as_string(hide_password=False)


def create_db_engine(raw_url: Optional[str] = None) -> Engine:
    """SQLite shares one connection across threads (dev and tests); Postgres pools."""
    database_url = get_database_url(raw_url)

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_database(engine: Engine) -> None:
    """Create missing tables; migrations remain the source of truth in production."""
    from . import audit_models, models  # noqa: F401

    Base.metadata.create_all(bind=engine)
