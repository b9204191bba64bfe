import sys
from pathlib import Path
import pytest

# Ensure project root is on sys.path so tests can import the `mtgdoku` package
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


@pytest.fixture
def engine(tmp_path):
	from sqlmodel import SQLModel, create_engine
	from mtgdoku import models  # noqa: F401

	db = tmp_path / 'puzzles.db'
	eng = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
	SQLModel.metadata.create_all(eng)
	return eng


@pytest.fixture
def store(engine):
	from mtgdoku.crud import PuzzleStore
	return PuzzleStore(engine)
