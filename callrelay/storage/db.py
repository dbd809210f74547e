from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from callrelay import settings

Base = declarative_base()


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(engine):
    # rows are handed out of the session, so keep their attributes loaded
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


# Choose DB from env; default to local SQLite for dev
engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)
