# db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from config import DATABASE_URL, DB_ECHO


def make_engine(url: str = DATABASE_URL, echo: bool = DB_ECHO):
    connect_args = {}
    if url.startswith("sqlite"):
        # Concurrent plays wait on the write lock instead of failing
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, echo=echo, connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    """FastAPI dependency yielding one session per request."""
    with SessionLocal() as db:
        yield db
