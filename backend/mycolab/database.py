from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import get_settings


def make_engine(url: str):
    if url.startswith("sqlite"):
        sqlite_args = {"check_same_thread": False, "timeout": 30}
    else:
        sqlite_args = {}
    return create_engine(url, connect_args=sqlite_args)


settings = get_settings()
DATABASE_URL = settings.database_url

# no engine in local-only mode; callers fall back to the in-memory store
engine = None if settings.local_only else make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    if engine is None:
        yield None
        return
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
