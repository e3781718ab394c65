import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import StorageError


Base = declarative_base()


class Database:
    """Owns the engine, the session factory and the single-writer lock."""

    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        # Every compound read-modify-write goes through this lock (see transaction()).
        self.write_lock = threading.RLock()

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def initialize(self, create_all: bool = True) -> None:
        if self.engine is not None:
            return
        if self.url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in self.url or self.url in ("sqlite://", "sqlite+pysqlite://"):
                # One shared connection so every session sees the same in-memory database
                kwargs["poolclass"] = StaticPool
        else:
            kwargs = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10, "pool_recycle": 3600}
        self.engine = create_engine(self.url, future=True, **kwargs)
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            future=True,
            info={"write_lock": self.write_lock},
        )
        if create_all:
            from .models import models  # noqa: F401  register tables

            Base.metadata.create_all(self.engine)

    def teardown(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._session_factory = None

    def session(self) -> Session:
        if self._session_factory is None:
            raise StorageError("Database is not initialized")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        db = self.session()
        try:
            yield db
        finally:
            db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a block as one unit: commit on success, roll back on any error.

    Storage failures surface as StorageError; core errors raised inside the
    block propagate unchanged after the rollback.
    """
    lock = db.info.get("write_lock")
    if lock is not None:
        lock.acquire()
    try:
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Storage operation failed: {e}") from e
        except BaseException:
            db.rollback()
            raise
    finally:
        if lock is not None:
            lock.release()


def get_db(request: Request):
    db = request.app.state.runtime.database.session()
    try:
        yield db
    finally:
        db.close()
