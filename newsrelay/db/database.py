from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from newsrelay.db.models import Base


def create_db_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    # sqlite will not create the parent directory on its own
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, future=True)


def init_db(engine: Engine) -> None:
    """
    Create tables (idempotent) and verify connectivity.
    """
    Base.metadata.create_all(engine)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
