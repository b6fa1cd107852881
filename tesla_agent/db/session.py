"""Engine and session factory for the SQLite store."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def make_engine(db_path: str) -> Engine:
    """Create an engine for the SQLite file at *db_path*.

    Sessions are used from worker threads (``asyncio.to_thread``), so
    the connection is not pinned to the creating thread.
    """
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    """Return a session factory bound to *engine*."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
