# backend/stayinbox/db/session.py

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stayinbox.core.config import get_settings
from stayinbox.db.base import Base


engine = create_engine(get_settings().DATABASE_URL, future=True, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def init_db(bind=None) -> None:
    """
    Create all tables once at application start.
    Every domain model must be registered on the metadata before create_all.
    """
    import stayinbox.domain.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
