"""
Criteria catalog for the daily grid.

Each criterion carries a display name and a compact code (the same codes the
frontend and Scryfall understand, e.g. ``c:u`` or ``year>=2010 year<=2019``).
Codes are parsed once into small rule objects so the compatibility checks and
the card validator work from the same representation.
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union


COLOR = "color"
TYPE = "type"
COST = "cost"
YEAR = "year"
CATEGORIES = (COLOR, TYPE, COST, YEAR)

_COMPARISON = re.compile(r'^(<=|>=|<|>|=)?(\d+)$')


class InvalidCriterion(ValueError):
    """Raised when a criterion code cannot be parsed into a rule."""


@dataclass(frozen=True)
class Color:
    letter: str
    category = COLOR


@dataclass(frozen=True)
class TypeContains:
    word: str
    category = TYPE


@dataclass(frozen=True)
class CostCompare:
    op: str
    value: int
    category = COST


@dataclass(frozen=True)
class YearRange:
    # either bound may be missing, e.g. "year<2000" only has an upper bound
    low_op: Optional[str] = None
    low: Optional[int] = None
    high_op: Optional[str] = None
    high: Optional[int] = None
    category = YEAR

    def bounds(self) -> List[Tuple[str, int]]:
        out = []
        if self.low_op is not None:
            out.append((self.low_op, self.low))
        if self.high_op is not None:
            out.append((self.high_op, self.high))
        return out


Rule = Union[Color, TypeContains, CostCompare, YearRange]


def category_of(code: str) -> str:
    """Return the category a code belongs to, based on its prefix."""
    code = (code or "").strip().lower()
    if code.startswith("c:"):
        return COLOR
    if code.startswith("type:"):
        return TYPE
    if code.startswith("mv"):
        return COST
    if code.startswith("year"):
        return YEAR
    raise InvalidCriterion(f"unknown criterion code: {code!r}")


def _comparison(text: str, prefix: str) -> Tuple[str, int]:
    m = _COMPARISON.match(text[len(prefix):])
    if not m:
        raise InvalidCriterion(f"malformed comparison: {text!r}")
    return m.group(1) or "=", int(m.group(2))


def _parse_year(code: str) -> YearRange:
    parts = code.split()
    if not 1 <= len(parts) <= 2:
        raise InvalidCriterion(f"year code takes one or two comparisons: {code!r}")
    low_op = low = high_op = high = None
    for part in parts:
        if not part.startswith("year"):
            raise InvalidCriterion(f"malformed year comparison: {part!r}")
        op, value = _comparison(part, "year")
        if op == "=":
            # exact year: both bounds pinned
            if low_op is not None or high_op is not None:
                raise InvalidCriterion(f"exact year mixed with other bounds: {code!r}")
            low_op, low, high_op, high = ">=", value, "<=", value
        elif op in (">", ">="):
            if low_op is not None:
                raise InvalidCriterion(f"duplicate lower bound: {code!r}")
            low_op, low = op, value
        else:
            if high_op is not None:
                raise InvalidCriterion(f"duplicate upper bound: {code!r}")
            high_op, high = op, value
    return YearRange(low_op=low_op, low=low, high_op=high_op, high=high)


def parse_rule(code: str) -> Rule:
    """Parse a criterion code into its rule variant."""
    norm = (code or "").strip().lower()
    category = category_of(norm)
    if category == COLOR:
        letter = norm[2:].strip()
        if len(letter) != 1 or letter not in "wubrg":
            raise InvalidCriterion(f"unknown color: {code!r}")
        return Color(letter.upper())
    if category == TYPE:
        word = norm[5:].strip()
        if not word:
            raise InvalidCriterion(f"empty type: {code!r}")
        return TypeContains(word)
    if category == COST:
        if " " in norm:
            raise InvalidCriterion(f"cost code takes a single comparison: {code!r}")
        op, value = _comparison(norm, "mv")
        return CostCompare(op, value)
    return _parse_year(norm)


@dataclass(frozen=True)
class Criterion:
    name: str
    code: str
    rule: Rule = field(compare=False, repr=False, default=None)  # type: ignore[assignment]

    def __post_init__(self):
        if self.rule is None:
            object.__setattr__(self, "rule", parse_rule(self.code))

    @property
    def category(self) -> str:
        return self.rule.category

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "code": self.code}

    @classmethod
    def from_dict(cls, data: dict) -> "Criterion":
        return cls(name=data["name"], code=data["code"])


def _build(entries: Iterable[Tuple[str, str]]) -> Tuple[Criterion, ...]:
    return tuple(Criterion(name, code) for name, code in entries)


COLORS = _build([
    ("White Cards", "c:w"),
    ("Blue Cards", "c:u"),
    ("Black Cards", "c:b"),
    ("Red Cards", "c:r"),
    ("Green Cards", "c:g"),
])

TYPES = _build([
    ("Creatures", "type:creature"),
    ("Instants", "type:instant"),
    ("Sorceries", "type:sorcery"),
    ("Enchantments", "type:enchantment"),
    ("Artifacts", "type:artifact"),
])

COSTS = _build([
    ("Mana Value <= 2", "mv<=2"),
    ("Mana Value 3", "mv=3"),
    ("Mana Value 4", "mv=4"),
    ("Mana Value >= 5", "mv>=5"),
])

YEARS = _build([
    ("Released Pre-2000", "year<2000"),
    ("Released 2000-2009", "year>=2000 year<=2009"),
    ("Released 2010-2019", "year>=2010 year<=2019"),
    ("Released 2020+", "year>=2020"),
])

CATALOG: Tuple[Criterion, ...] = COLORS + TYPES + COSTS + YEARS


def by_category(catalog: Iterable[Criterion] = CATALOG) -> "OrderedDict[str, List[Criterion]]":
    groups: "OrderedDict[str, List[Criterion]]" = OrderedDict((c, []) for c in CATEGORIES)
    for crit in catalog:
        groups[crit.category].append(crit)
    return groups
