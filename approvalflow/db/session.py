"""Engine and session factory.

The engine is bound lazily so importing the package never opens a
connection or requires a database driver.
"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from approvalflow.core.config import get_settings

SessionLocal = sessionmaker(autoflush=False)

_engine: Optional[Engine] = None


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, enabling cross-thread use for SQLite."""
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def init_engine(database_url: Optional[str] = None) -> Engine:
    """Create the process-wide engine and bind ``SessionLocal`` to it."""
    global _engine
    if _engine is None:
        _engine = build_engine(database_url or get_settings().database_url)
        SessionLocal.configure(bind=_engine)
    return _engine
