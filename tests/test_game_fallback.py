import logging
import random

import pytest

from mtgdoku import game
from mtgdoku.criteria import COSTS, YEARS

# with only cost and year criteria no three rows leave three compatible columns
IMPOSSIBLE = COSTS + YEARS[:2]


def test_fallback_returns_unchecked_degraded_board(caplog):
    with caplog.at_level(logging.INFO, logger="mtgdoku.game"):
        board = game.generate_board(IMPOSSIBLE, rng=random.Random(7))
    assert board.degraded
    assert len(board.row_criteria) == 3 and len(board.col_criteria) == 3
    assert set(board.row_criteria + board.col_criteria) == set(IMPOSSIBLE)
    fallback = [r for r in caplog.records if r.getMessage() == "board_generation_fallback"]
    assert fallback and fallback[0].levelno == logging.WARNING
    assert fallback[0].attempts == game.MAX_ATTEMPTS
    assert not any(r.getMessage() == "board_generated" for r in caplog.records)


def test_attempt_bound_is_configurable():
    calls = []

    class CountingRandom(random.Random):
        def sample(self, population, k, **kwargs):
            calls.append(k)
            return super().sample(population, k, **kwargs)

    game.generate_board(IMPOSSIBLE, max_attempts=3, rng=CountingRandom(1))
    # three failed attempts plus the fallback shuffle
    assert len(calls) == 4


def test_degraded_flag_is_exposed():
    board = game.generate_board(IMPOSSIBLE, max_attempts=1, rng=random.Random(2))
    assert board.to_dict()["degraded"] is True


def test_catalog_too_small():
    with pytest.raises(ValueError):
        game.generate_board(COSTS)
