"""Database session helpers."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from caselens.db.engine import build_engine
from caselens.db.init_db import ensure_db


def get_session(db_url: Optional[str] = None) -> Session:
    """Build a session bound to the project engine, creating missing tables."""
    engine = build_engine(db_url)
    ensure_db(engine)
    SessionLocal = sessionmaker(bind=engine)
    return SessionLocal()
