from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from tablekit.config import settings


class Base(DeclarativeBase):
    pass


def _engine_options(url: str) -> dict:
    options: dict = {"pool_pre_ping": True}
    if url.startswith("sqlite"):
        # TestClient serves requests from a worker thread.
        options["connect_args"] = {"check_same_thread": False}
    return options


def get_engine():
    return create_engine(settings.database_url, **_engine_options(settings.database_url))


SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)


def get_db():
    """Request-scoped session for table rendering and action dispatch.

    The dispatcher commits or rolls back itself; this dependency only
    guarantees the session is closed once the response is sent.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
