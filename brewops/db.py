from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from brewops.config import settings

engine = create_engine(
    settings.database_url_normalized,
    echo=settings.database_echo,
    pool_pre_ping=True,
    pool_recycle=300,
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        # Nothing a failed request wrote may survive it.
        db.rollback()
        raise
    finally:
        db.close()
