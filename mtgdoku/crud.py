import json
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from . import game, models
from .cache import MemoryCache, cache_board, get_cached_board
from .criteria import CATALOG, Criterion, InvalidCriterion
from .logging_utils import get_logger

logger = get_logger("mtgdoku.crud")

# dialects with a native INSERT .. ON CONFLICT
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class StoreUnavailable(RuntimeError):
    """The puzzle table could not be read or written."""


def _decode(raw: Optional[str]):
    try:
        return json.loads(raw) if raw else None
    except ValueError:
        return None


def board_from_record(record) -> Optional[game.Board]:
    """Build a Board from a raw record, or None if the record is unusable."""
    if not game.is_valid_record(record):
        return None
    try:
        return game.Board(
            row_criteria=tuple(Criterion.from_dict(c) for c in record["rowCriteria"]),
            col_criteria=tuple(Criterion.from_dict(c) for c in record["colCriteria"]),
            degraded=bool(record.get("degraded", False)),
        )
    except InvalidCriterion:
        # legacy or hand-edited codes the catalog no longer understands
        return None


class PuzzleStore:
    """Date-keyed persistence of daily boards.

    One row per date. ``put`` is an upsert so writing the same date again
    simply replaces the stored board. ``put_if_unchanged`` only writes when
    the row still looks the way the caller last saw it, so concurrent
    writers agree on whichever board landed first.
    """

    def __init__(self, engine):
        self.engine = engine
        self._locks_guard = threading.Lock()
        # date -> [lock, number of holders or waiters]
        self._locks = {}

    @contextmanager
    def lock_for(self, date: str):
        with self._locks_guard:
            entry = self._locks.get(date)
            if entry is None:
                entry = self._locks[date] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[date]

    @staticmethod
    def current_date() -> str:
        return game.today_str()

    def load(self, date: str) -> Optional[dict]:
        """Return the raw stored record for ``date`` without validating it."""
        try:
            with Session(self.engine) as session:
                row = session.get(models.Puzzle, date)
                if row is None:
                    return None
                return {
                    "rowCriteria": _decode(row.row_criteria),
                    "colCriteria": _decode(row.col_criteria),
                    "degraded": bool(row.degraded),
                    # stored text, for compare-and-set in put_if_unchanged
                    "raw": (row.row_criteria, row.col_criteria),
                }
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"failed to load puzzle for {date}") from exc

    def get(self, date: str) -> Optional[game.Board]:
        return board_from_record(self.load(date))

    @staticmethod
    def _values(date: str, board: game.Board) -> dict:
        now = datetime.now(timezone.utc)
        return {
            "date": date,
            "row_criteria": json.dumps([c.to_dict() for c in board.row_criteria]),
            "col_criteria": json.dumps([c.to_dict() for c in board.col_criteria]),
            "degraded": board.degraded,
            "created_at": now,
            "updated_at": now,
        }

    def put(self, date: str, board: game.Board) -> None:
        values = self._values(date, board)
        try:
            with Session(self.engine) as session:
                insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
                if insert is not None:
                    stmt = insert(models.Puzzle.__table__).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["date"],
                        set_={
                            "row_criteria": stmt.excluded.row_criteria,
                            "col_criteria": stmt.excluded.col_criteria,
                            "degraded": stmt.excluded.degraded,
                            "updated_at": stmt.excluded.updated_at,
                        },
                    )
                    session.execute(stmt)
                else:
                    session.merge(models.Puzzle(**values))
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"failed to save puzzle for {date}") from exc

    def _insert_if_absent(self, session: Session, values: dict) -> None:
        insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if insert is not None:
            stmt = insert(models.Puzzle.__table__).values(**values)
            session.execute(stmt.on_conflict_do_nothing(index_elements=["date"]))
            session.commit()
            return
        try:
            session.add(models.Puzzle(**values))
            session.commit()
        except IntegrityError:
            # someone else inserted this date first
            session.rollback()

    def put_if_unchanged(self, date: str, board: game.Board, previous: Optional[dict]) -> None:
        """Write ``board`` only if the row still matches ``previous`` (None: no row).

        Losing the race is not an error; callers re-read the stored board.
        """
        values = self._values(date, board)
        try:
            with Session(self.engine) as session:
                if previous is None:
                    self._insert_if_absent(session, values)
                    return
                old_rows, old_cols = previous["raw"]
                table = models.Puzzle.__table__
                session.execute(
                    update(table)
                    .where(table.c.date == date)
                    .where(table.c.row_criteria == old_rows)
                    .where(table.c.col_criteria == old_cols)
                    .values(
                        row_criteria=values["row_criteria"],
                        col_criteria=values["col_criteria"],
                        degraded=values["degraded"],
                        updated_at=values["updated_at"],
                    )
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"failed to save puzzle for {date}") from exc


def get_or_create_board(store: PuzzleStore, date: str, cache: Optional[MemoryCache] = None,
                        catalog: Sequence[Criterion] = CATALOG) -> game.Board:
    """Return the board for ``date``, generating and persisting one if needed.

    ``date`` must already be a ``YYYY-MM-DD`` string (see ``game.resolve_date``).
    Generation for a date is serialized by a per-date lock within a process.
    Across processes the first write wins: the board returned (and cached) is
    always the one read back from the store.
    """
    if cache is not None:
        board = get_cached_board(cache, date)
        if board is not None:
            return board

    with store.lock_for(date):
        record = store.load(date)
        board = board_from_record(record)
        if board is None:
            reason = "missing" if record is None else "invalid"
            generated = game.generate_board(catalog)
            store.put_if_unchanged(date, generated, record)
            board = store.get(date)
            if board is None:
                raise StoreUnavailable(f"puzzle for {date} not readable after save")
            if board == generated:
                logger.info("puzzle_regenerated", extra={"date": date, "reason": reason, "degraded": board.degraded})
            else:
                logger.info("puzzle_written_elsewhere", extra={"date": date, "reason": reason, "degraded": board.degraded})

    if cache is not None:
        cache_board(cache, date, board)
    return board


def ensure_today(store: PuzzleStore, cache: Optional[MemoryCache] = None) -> game.Board:
    """Make sure a valid board exists for today (UTC) before serving traffic."""
    today = store.current_date()
    board = get_or_create_board(store, today, cache)
    logger.info("puzzle_ready", extra={"date": today, "degraded": board.degraded})
    return board
