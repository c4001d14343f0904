# app/core/database.py
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings

Base = declarative_base()


def create_db_engine(url: Optional[str] = None) -> Engine:
    """
    Build the relational store engine.

    PostgreSQL connections carry a server-side statement timeout so that no
    reference-store call blocks longer than STORE_TIMEOUT_SECONDS.
    """
    url = url or settings.DATABASE_URL

    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=settings.DATABASE_ECHO,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
    return create_engine(
        url,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
        connect_args={"options": f"-c statement_timeout={timeout_ms}"},
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    # Rows handed back by the stores are read after their session closes
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def init_db(url: Optional[str] = None) -> sessionmaker:
    """Create the engine, session factory and tables"""
    global engine, SessionLocal

    # Register models on Base.metadata
    from app.models import achievement_reference, student  # noqa: F401

    engine = create_db_engine(url)
    SessionLocal = create_session_factory(engine)
    Base.metadata.create_all(bind=engine)
    return SessionLocal


def close_db() -> None:
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None

