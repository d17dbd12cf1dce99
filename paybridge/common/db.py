"""Database bootstrap helpers."""

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, sessionmaker


# JSONB on postgres, plain JSON everywhere else (sqlite in tests).
JSONData = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def make_session_factory(dsn: str, **engine_kwargs) -> sessionmaker:
    """Single engine per process; `expire_on_commit=False` keeps rows readable after commit."""

    engine = create_engine(dsn, pool_pre_ping=True, **engine_kwargs)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
