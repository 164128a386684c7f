from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL


def make_engine(url=DATABASE_URL, **kwargs):
    """Create an engine; SQLite connections get foreign keys switched on."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    new_engine = create_engine(url, **kwargs)

    if new_engine.dialect.name == "sqlite":
        @event.listens_for(new_engine, "connect")
        def _on_connect(dbapi_connection, connection_record):
            # pysqlite must not issue its own BEGIN
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(new_engine, "begin")
        def _on_begin(conn):
            # SQLite has no row locks; take the write lock up front instead
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return new_engine


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency to get a DB session for a single request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    from . import models  # noqa: F401  registers the tables on Base

    Base.metadata.create_all(bind=bind or engine)
