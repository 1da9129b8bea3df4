# src/caselens/db/engine.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import os

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from caselens.config.settings import settings


@dataclass(frozen=True)
class DBPingResult:
    ok: bool
    detail: str


def _ensure_parent_dir(url: str) -> None:
    # duckdb:///relative/path.duckdb -> make sure the directory exists
    if not url.startswith("duckdb:///"):
        return
    path = url[len("duckdb:///"):]
    if not path or path.startswith(":memory:"):
        return
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def build_engine(db_url: Optional[str] = None) -> Engine:
    """
    Build a SQLAlchemy Engine.

    Why allow db_url override?
    - tests need temp DBs
    - CLI should default to settings.db_url
    """
    url = db_url or os.getenv("DATABASE_URL") or settings.db_url
    if url.startswith("postgresql"):
        return create_engine(url, future=True, pool_pre_ping=True)
    _ensure_parent_dir(url)
    return create_engine(url, future=True)


def ping_db(engine: Engine) -> DBPingResult:
    """
    Lightweight DB connectivity check.
    Must NEVER raise (the status command prints whatever comes back).
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("select 1")).scalar_one()
        return DBPingResult(ok=True, detail="ok")
    except Exception as e:
        return DBPingResult(ok=False, detail=f"{type(e).__name__}: {e}")
