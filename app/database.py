"""
Persistence handle.

The engine and session factory live on an explicitly constructed Database
object that the application opens at startup and disposes at shutdown.
Request handlers receive sessions through get_db, which reads the handle
from app.state; nothing here is a process-wide connection.
"""
import logging
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    def __init__(self, url: str):
        self.url = url
        self.engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def open(self) -> "Database":
        if self.engine is not None:
            return self
        if self.is_sqlite:
            kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in self.url or self.url == "sqlite://":
                # One shared connection, otherwise every checkout sees an empty database
                kwargs["poolclass"] = StaticPool
            self.engine = create_engine(self.url, **kwargs)
            _serialize_sqlite_writers(self.engine)
        else:
            self.engine = create_engine(self.url, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info(f"Database engine opened ({self.engine.dialect.name})")
        return self

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database engine disposed")
        self.engine = None
        self._session_factory = None

    def create_all(self) -> None:
        """Registers all domain models and emits the schema."""
        import app.models  # noqa: F401  (model registration)
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        return self._session_factory()

    def ping(self) -> None:
        with self.session() as session:
            session.execute(text("SELECT 1"))


def _serialize_sqlite_writers(engine: Engine) -> None:
    """
    pysqlite defers BEGIN until the first write and does not understand
    SAVEPOINT; take over transaction control and start every transaction
    with BEGIN IMMEDIATE so read-modify-write cycles hold the write lock.
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_db(request: Request) -> Iterator[Session]:
    """
    Session Provider: Provides a database session per request.
    Transaction management is handled explicitly in the Service Layer.
    """
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
