import json

from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine

from mtgdoku.main import app
from mtgdoku import game, models
from mtgdoku.cache import MemoryCache
from mtgdoku.criteria import CATALOG
from mtgdoku.crud import PuzzleStore


def setup_app(engine, cache=True):
    app.state.store = PuzzleStore(engine)
    app.state.cache = MemoryCache() if cache else None
    return TestClient(app)


def test_health(engine):
    client = setup_app(engine)
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json().get('status') == 'ok'
    assert r.headers.get('X-Request-ID')


def test_same_date_returns_identical_board(engine):
    client = setup_app(engine)
    r1 = client.get('/api/board', params={"date": "2026-02-18"})
    r2 = client.get('/api/board', params={"date": "2026-02-18"})
    assert r1.status_code == 200 and r2.status_code == 200
    d1, d2 = r1.json(), r2.json()
    assert d1['date'] == '2026-02-18'
    assert len(d1['rowCriteria']) == 3 and len(d1['colCriteria']) == 3
    assert json.dumps(d1['rowCriteria']) == json.dumps(d2['rowCriteria'])
    assert json.dumps(d1['colCriteria']) == json.dumps(d2['colCriteria'])
    assert d1['degraded'] is False


def test_board_survives_cold_cache(engine):
    first = setup_app(engine).get('/api/board', params={"date": "2026-02-19"}).json()
    # a new process would start with an empty cache
    second = setup_app(engine, cache=False).get('/api/board', params={"date": "2026-02-19"}).json()
    assert first == second


def test_malformed_or_missing_date_means_today(engine):
    client = setup_app(engine)
    today = game.today_str()
    assert client.get('/api/board').json()['date'] == today
    assert client.get('/api/board', params={"date": "18/02/2026"}).json()['date'] == today


def test_invalid_stored_board_is_replaced(engine):
    with Session(engine) as s:
        s.add(models.Puzzle(date='2026-03-03', row_criteria='[]', col_criteria='[]'))
        s.commit()
    client = setup_app(engine)
    data = client.get('/api/board', params={"date": "2026-03-03"}).json()
    assert len(data['rowCriteria']) == 3 and len(data['colCriteria']) == 3
    assert client.get('/api/board', params={"date": "2026-03-03"}).json() == data


def test_recent_boards(engine):
    client = setup_app(engine)
    r = client.get('/api/recent', params={"days": 3})
    assert r.status_code == 200
    boards = r.json()['boards']
    assert [b['date'] for b in boards] == game.recent_dates(game.today_str(), 3)
    assert client.get('/api/recent', params={"days": 0}).status_code == 422
    assert client.get('/api/recent', params={"days": 30}).status_code == 422


def test_criteria_listing(engine):
    client = setup_app(engine)
    data = client.get('/api/criteria').json()
    assert list(data) == ['color', 'type', 'cost', 'year']
    assert {"name": "Blue Cards", "code": "c:u"} in data['color']


def _seed_guess_board(store):
    by_code = {c.code: c for c in CATALOG}
    board = game.Board(
        row_criteria=tuple(by_code[c] for c in ('c:u', 'c:r', 'c:g')),
        col_criteria=tuple(by_code[c] for c in ('type:creature', 'mv<=2', 'year>=2010 year<=2019')),
    )
    store.put('2026-04-04', board)


SNAPCASTER = {
    "name": "Snapcaster Mage",
    "colors": ["u"],
    "type_line": "Creature — Human Wizard",
    "cmc": 2,
    "released_at": "2011-09-30",
}


def test_guess_validation(engine):
    client = setup_app(engine)
    _seed_guess_board(app.state.store)

    ok = client.post('/api/guess', json={"date": "2026-04-04", "row": 0, "col": 0, "card": SNAPCASTER})
    assert ok.status_code == 200
    assert ok.json() == {"valid": True, "rowMatch": True, "colMatch": True, "date": "2026-04-04"}

    # released in 2011
    assert client.post('/api/guess', json={"date": "2026-04-04", "row": 0, "col": 2, "card": SNAPCASTER}).json()['valid']

    wrong_row = client.post('/api/guess', json={"date": "2026-04-04", "row": 1, "col": 1, "card": SNAPCASTER}).json()
    assert wrong_row['valid'] is False
    assert wrong_row['rowMatch'] is False and wrong_row['colMatch'] is True


def test_guess_rejects_bad_cell(engine):
    client = setup_app(engine)
    r = client.post('/api/guess', json={"row": 3, "col": 0, "card": {"name": "X"}})
    assert r.status_code == 422
    assert r.json()['message'] == 'Input validation failed'


def test_store_failure_is_a_service_error(tmp_path):
    # tables never created
    engine = create_engine(f'sqlite:///{tmp_path / "broken.db"}', connect_args={"check_same_thread": False})
    client = setup_app(engine, cache=False)
    r = client.get('/api/board', params={"date": "2026-05-05"})
    assert r.status_code == 503
    assert r.json() == {"error": "Failed to load board"}


def test_cache_stats(engine):
    client = setup_app(engine)
    client.get('/api/board', params={"date": "2026-06-06"})
    client.get('/api/board', params={"date": "2026-06-06"})
    stats = client.get('/api/cache/stats').json()['cache_stats']
    assert stats['hits'] >= 1 and stats['sets'] >= 1
