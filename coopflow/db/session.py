from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from coopflow.core.config import get_settings
from coopflow.db.base import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine for the given URL."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables known to the metadata."""
    # Import models so they register with Base.metadata
    import coopflow.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


settings = get_settings()
engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)
