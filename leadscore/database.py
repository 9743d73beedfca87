"""
Database engine + session factory.

SQLite for local dev and tests, Postgres in production. Every store opens its
own short-lived session through get_session().
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadscore.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def normalize_database_url(raw: str) -> str:
    # Railway injects postgres:// but SQLAlchemy 2.x requires postgresql://
    return raw.replace('postgres://', 'postgresql://', 1)


def engine_options(url: str) -> dict:
    # SQLite needs different engine kwargs than Postgres
    if url.startswith('sqlite'):
        return {'connect_args': {'check_same_thread': False}}
    return {'pool_pre_ping': True, 'pool_size': 5, 'max_overflow': 10}


url = normalize_database_url(DATABASE_URL)
engine = create_engine(url, **engine_options(url))
SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()
