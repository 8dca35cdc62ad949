"""
SQLAlchemy engine + session factory.
Import *get_db* as a FastAPI dependency in route handlers.
"""
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from playedit.core.config import settings
from playedit.db.models import Base


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # One connection may be used from FastAPI's threadpool workers
        return {"connect_args": {"check_same_thread": False}}
    return {
        # Health-check connections before handing them to the app
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(
    settings.DATABASE_URL,
    # Log every SQL statement in dev; silence in production
    echo=settings.is_dev and settings.LOG_LEVEL == "DEBUG",
    **_engine_kwargs(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Avoid lazy-load errors after commit
)


def init_db() -> None:
    """
    Create any missing tables for local development.
    Deployed databases are migrated with `alembic upgrade head`.
    """
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a scoped DB session.

    Usage:
        @router.get("/items")
        def list_items(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
