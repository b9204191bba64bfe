"""
Schema migrations for the puzzle database.
Each migration runs once; applied names are recorded in the ``migration`` table.
"""

from sqlmodel import SQLModel, Field, text, Session, select
from sqlalchemy import inspect
from typing import Callable, Optional, Union
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class Migration(SQLModel, table=True):
    """Track applied migrations"""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    applied_at: datetime


def ensure_migration_table(engine):
    Migration.__table__.create(engine, checkfirst=True)


def has_migration_been_applied(engine, migration_name: str) -> bool:
    ensure_migration_table(engine)
    with Session(engine) as session:
        result = session.exec(
            select(Migration).where(Migration.name == migration_name)
        ).first()
        return result is not None


def apply_migration(engine, migration_name: str, migration: Union[str, Callable]):
    """Apply a migration (SQL text, or a callable taking a session) and record it"""
    if has_migration_been_applied(engine, migration_name):
        logger.info(f"Migration {migration_name} already applied, skipping")
        return

    logger.info(f"Applying migration: {migration_name}")

    with Session(engine) as session:
        try:
            if callable(migration):
                migration(session)
            else:
                for statement in migration.strip().split(';'):
                    statement = statement.strip()
                    if statement:
                        session.execute(text(statement))

            session.add(Migration(name=migration_name, applied_at=datetime.now(timezone.utc)))
            session.commit()
            logger.info(f"Migration {migration_name} applied successfully")
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to apply migration {migration_name}: {e}")
            raise


def _add_puzzle_columns(session: Session):
    # databases created before boards carried a degraded flag / update stamp
    existing = {col["name"] for col in inspect(session.connection()).get_columns("puzzle")}
    if "degraded" not in existing:
        session.execute(text("ALTER TABLE puzzle ADD COLUMN degraded BOOLEAN NOT NULL DEFAULT FALSE"))
    if "updated_at" not in existing:
        session.execute(text("ALTER TABLE puzzle ADD COLUMN updated_at TIMESTAMP"))


def run_migrations(engine):
    """Run all pending migrations"""
    apply_migration(engine, "001_puzzle_flags", _add_puzzle_columns)

    migration_002 = """
    -- Index for listing recent puzzles
    CREATE INDEX IF NOT EXISTS idx_puzzle_created_at ON puzzle(created_at)
    """
    apply_migration(engine, "002_puzzle_created_at_index", migration_002)

    logger.info("All migrations completed")
