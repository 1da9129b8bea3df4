from __future__ import annotations

from sqlalchemy.engine import Engine

from caselens.db.schema import Base


def init_db(engine: Engine) -> None:
    """
    Reset schema: drop everything, then create it again.

    DuckDB + SQLAlchemy can behave oddly with transactional DDL when dropping/creating
    tables and implicit indexes in a single managed transaction. The safest approach:
    - open a plain connection
    - drop_all
    - create_all
    - commit explicitly
    """
    with engine.connect() as conn:
        Base.metadata.drop_all(bind=conn)
        Base.metadata.create_all(bind=conn)
        conn.commit()


def ensure_db(engine: Engine) -> None:
    """Create missing tables, leaving existing data alone."""
    with engine.connect() as conn:
        Base.metadata.create_all(bind=conn, checkfirst=True)
        conn.commit()
