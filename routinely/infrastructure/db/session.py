"""
Database session management (SQLAlchemy)
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from routinely.config import get_settings


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


# Singleton engine and session factory
_engine = None
_SessionLocal = None


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite connections are shared across threads."""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def get_engine() -> Engine:
    """Get or create SQLAlchemy engine (singleton)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.get_sqlalchemy_url())
    return _engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_session_factory() -> sessionmaker:
    """Get or create session factory (singleton)"""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = create_session_factory(get_engine())
    return _SessionLocal


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist yet."""
    from routinely.infrastructure.db import models  # noqa: F401 - registers tables

    Base.metadata.create_all(engine)
