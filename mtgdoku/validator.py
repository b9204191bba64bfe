"""
Card validation for grid guesses.

Cards come pre-fetched from the client's card search; nothing here touches
the network. A guess for a cell is correct when the card matches the cell's
row criterion and its column criterion.
"""

import datetime
import operator
import re
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from .criteria import Color, CostCompare, Criterion, TypeContains, YearRange


_OPS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "=": operator.eq,
}
_YEAR_RE = re.compile(r'(\d{4})')


@dataclass(frozen=True)
class Card:
    name: str
    colors: Sequence[str] = ()
    type_line: str = ""
    cost: Optional[float] = None
    released_at: Union[datetime.date, str, None] = None


@dataclass(frozen=True)
class GuessResult:
    row_match: bool
    col_match: bool

    @property
    def valid(self) -> bool:
        return self.row_match and self.col_match


def release_year(card: Card) -> Optional[int]:
    released = card.released_at
    if released is None:
        return None
    if isinstance(released, datetime.date):
        return released.year
    m = _YEAR_RE.search(str(released))
    return int(m.group(1)) if m else None


def satisfies(card: Card, criterion: Criterion) -> bool:
    rule = criterion.rule
    if isinstance(rule, Color):
        return rule.letter in {c.upper() for c in (card.colors or ())}
    if isinstance(rule, TypeContains):
        return rule.word in (card.type_line or "").lower()
    if isinstance(rule, CostCompare):
        cost = card.cost if card.cost is not None else 0
        return _OPS[rule.op](cost, rule.value)
    if isinstance(rule, YearRange):
        year = release_year(card)
        if year is None:
            return False
        return all(_OPS[op](year, value) for op, value in rule.bounds())
    raise TypeError(f"unsupported rule: {rule!r}")


def check_guess(card: Card, row: Criterion, col: Criterion) -> GuessResult:
    return GuessResult(row_match=satisfies(card, row), col_match=satisfies(card, col))
