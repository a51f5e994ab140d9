"""Database session factory and configuration.

Provides database connectivity and session management for the order
communications backend. SQLite is the default store; any SQLAlchemy URL works.

The engine and session factory are built by the application factory from
the Settings it was given and kept on app.state; get_db hands out one
session per request from there.
"""

from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from models.base import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine with settings appropriate for the backend.

    Pool settings only apply to server databases (not SQLite). SQLite
    connections get foreign key enforcement so cascading order deletion
    removes communications.
    """
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,  # Set to True for SQL query logging
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10

    engine = create_engine(database_url, **engine_kwargs)

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )


def init_db(bind: Engine) -> None:
    """Create all tables from model metadata.

    Schema migrations are not managed by this service; tables are created
    on startup if they do not exist yet.
    """
    import models  # noqa: F401  (registers all mappers)

    Base.metadata.create_all(bind=bind)


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency for FastAPI endpoints.

    Usage:
        @app.get("/orders/{order_id}/communications")
        def list_communications(db: Session = Depends(get_db)):
            ...
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
