import datetime
import random
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from .criteria import CATALOG, COLOR, COST, TYPE, YEAR, Criterion, TypeContains
from .logging_utils import get_logger

logger = get_logger("mtgdoku.game")

MAX_ATTEMPTS = 10
BOARD_SIZE = 3
# an instant or a sorcery can't also be another card type
EXCLUSIVE_TYPES = frozenset({"instant", "sorcery"})
DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


@dataclass(frozen=True)
class Board:
    row_criteria: Tuple[Criterion, ...]
    col_criteria: Tuple[Criterion, ...]
    # set when the generator gave up and skipped the compatibility check
    degraded: bool = False

    def to_dict(self) -> dict:
        return {
            "rowCriteria": [c.to_dict() for c in self.row_criteria],
            "colCriteria": [c.to_dict() for c in self.col_criteria],
            "degraded": self.degraded,
        }


def _is_exclusive_type(crit: Criterion) -> bool:
    return isinstance(crit.rule, TypeContains) and crit.rule.word in EXCLUSIVE_TYPES


def compatible(a: Criterion, b: Criterion) -> bool:
    """Return True if a single card could satisfy both criteria at once."""
    if a.category != b.category:
        return True
    if a.category == COLOR:
        return True  # multicolor cards
    if a.category in (COST, YEAR):
        return False  # a card has one mana value and one release year
    if a.category == TYPE:
        return not (_is_exclusive_type(a) or _is_exclusive_type(b))
    return True


def _pick_columns(rows: Sequence[Criterion], candidates: Sequence[Criterion]) -> List[Criterion]:
    cols: List[Criterion] = []
    for candidate in candidates:
        if all(compatible(candidate, row) for row in rows):
            cols.append(candidate)
            if len(cols) == BOARD_SIZE:
                break
    return cols


def generate_board(catalog: Sequence[Criterion] = CATALOG, max_attempts: int = MAX_ATTEMPTS,
                   rng: Optional[random.Random] = None) -> Board:
    """Pick 3 row and 3 column criteria with every row/column pair compatible.

    Each attempt shuffles the whole catalog, takes the first three entries as
    rows and scans the rest for columns that fit all three rows. After
    ``max_attempts`` failures the board is built from the next shuffle with no
    check at all and flagged ``degraded``; some cell may then have no answer.
    """
    rng = rng or random
    pool = list(catalog)
    if len(pool) < 2 * BOARD_SIZE:
        raise ValueError(f"catalog needs at least {2 * BOARD_SIZE} criteria, got {len(pool)}")

    for attempt in range(1, max_attempts + 1):
        shuffled = rng.sample(pool, len(pool))
        rows = shuffled[:BOARD_SIZE]
        cols = _pick_columns(rows, shuffled[BOARD_SIZE:])
        if len(cols) == BOARD_SIZE:
            logger.info("board_generated", extra={"attempts": attempt, "degraded": False})
            return Board(tuple(rows), tuple(cols))

    shuffled = rng.sample(pool, len(pool))
    logger.warning("board_generation_fallback", extra={"attempts": max_attempts, "degraded": True})
    return Board(
        tuple(shuffled[:BOARD_SIZE]),
        tuple(shuffled[BOARD_SIZE:2 * BOARD_SIZE]),
        degraded=True,
    )


def _valid_criteria(items: Any) -> bool:
    if not isinstance(items, list) or len(items) != BOARD_SIZE:
        return False
    for c in items:
        if not isinstance(c, dict):
            return False
        name, code = c.get("name"), c.get("code")
        if not (isinstance(name, str) and name and isinstance(code, str) and code):
            return False
    return True


def is_valid_record(record: Any) -> bool:
    """True if a stored record has 3 row and 3 column criteria, each with a name and code."""
    if not isinstance(record, dict):
        return False
    return _valid_criteria(record.get("rowCriteria")) and _valid_criteria(record.get("colCriteria"))


def today_str() -> str:
    return datetime.datetime.now(datetime.timezone.utc).date().isoformat()


def resolve_date(date: Optional[str]) -> str:
    # anything that isn't YYYY-MM-DD means "today"
    if date and DATE_RE.match(date):
        return date
    return today_str()


def recent_dates(today: str, days: int) -> List[str]:
    start = datetime.date.fromisoformat(today)
    return [(start - datetime.timedelta(days=i)).isoformat() for i in range(days)]
