# mpbot/database.py
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mpbot.models import Base


def make_engine(database_url: str, echo: bool = False):
    """Build a SQLAlchemy engine (sync) for the configured URL."""
    if database_url.startswith("sqlite"):
        in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
        kwargs = {"connect_args": {"check_same_thread": False}}
        if in_memory:
            # one shared connection, otherwise each session sees an empty db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, future=True, **kwargs)
        if not in_memory:
            with engine.connect() as conn:
                conn.execute(text("PRAGMA journal_mode=WAL"))
                conn.execute(text("PRAGMA busy_timeout=5000"))
        return engine
    return create_engine(database_url, echo=echo, pool_pre_ping=True, future=True)


def make_session_factory(engine):
    # create tables if not present
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
