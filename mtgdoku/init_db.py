import os

from sqlmodel import create_engine, SQLModel
from . import models  # noqa: F401  registers the puzzle table
from .crud import PuzzleStore, ensure_today
from .logging_utils import get_logger
from .migrations import run_migrations

logger = get_logger("mtgdoku.init_db")

DEFAULT_DATABASE_URL = "sqlite:///./mtgdoku.db"


def create_db_engine(url=None):
    url = url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    if url.startswith("sqlite"):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )


def init_db(url=None):
    engine = create_db_engine(url)
    SQLModel.metadata.create_all(engine)
    run_migrations(engine)
    logger.info("db_initialized", extra={"url": engine.url.render_as_string(hide_password=True)})
    return engine


if __name__ == '__main__':
    ensure_today(PuzzleStore(init_db()))
