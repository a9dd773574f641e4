import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from engine_errors import StorageUnavailable
from settings import settings

logger = logging.getLogger(__name__)


def load_db_url() -> str:
    db_url = settings.database_url
    if not db_url:
        raise RuntimeError('DATABASE_URL missing in backend/.env')
    return db_url


def make_engine(db_url: str):
    if db_url.startswith("sqlite"):
        # In-memory SQLite must share one connection across the request threadpool.
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in db_url or db_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(db_url, **kwargs)
    return create_engine(db_url, pool_pre_ping=True)


engine = make_engine(load_db_url())
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit the session's unit of work, or roll all of it back.

    Integrity violations propagate unchanged so callers can interpret them
    (for instance as a duplicate). Any other driver-level failure is reported
    as ``StorageUnavailable``.
    """
    try:
        yield db
        db.commit()
    except IntegrityError:
        db.rollback()
        raise
    except DBAPIError as exc:
        db.rollback()
        logger.error("Storage failure, transaction rolled back: %s", exc)
        raise StorageUnavailable() from exc
    except Exception:
        db.rollback()
        raise
