from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from ballotbox.core.settings import get_settings
from ballotbox.errors import TransactionFailure


class Base(DeclarativeBase):
    pass


def build_engine(url: str, **kwargs) -> Engine:
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        # check_same_thread=False is required for SQLite when using threads (Uvicorn reload)
        connect_args.setdefault("check_same_thread", False)
    return create_engine(url, connect_args=connect_args, **kwargs)


engine = build_engine(get_settings().database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Optional[Engine] = None) -> None:
    from ballotbox import db_models  # noqa: F401  (registers the tables)

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one transaction on ``db``.

    Commits when the block completes, rolls back on any exception. Storage
    errors are re-raised as ``TransactionFailure`` so callers can retry;
    domain errors propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionFailure(exc.__class__.__name__) from exc
    except BaseException:
        db.rollback()
        raise
