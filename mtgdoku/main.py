from fastapi import FastAPI, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

import time
from starlette.middleware.base import BaseHTTPMiddleware
from . import crud, game
from .cache import MemoryCache
from .criteria import CATALOG, by_category
from .crud import PuzzleStore, StoreUnavailable
from .deps import get_cache, get_store
from .logging_utils import setup_logging, get_logger, request_id_ctx
from .validator import Card, check_guess
import logging
import uuid


setup_logging(logging.INFO)
logger = get_logger("mtgdoku")
app = FastAPI(title="MTGDoku")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Cross-Origin-Opener-Policy', 'same-origin')
        return response

app.add_middleware(SecurityHeadersMiddleware)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        start = time.time()
        client = request.client.host if request.client else "-"
        ua = request.headers.get("user-agent", "-")
        response = None
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        except Exception:
            logger.exception(
                "request_error",
                extra={"path": str(request.url), "method": request.method},
            )
            raise
        finally:
            duration_ms = int((time.time() - start) * 1000)
            status = getattr(response, "status_code", 500)
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "duration_ms": duration_ms,
                    "client": client,
                    "user_agent": ua,
                },
            )
            request_id_ctx.reset(token)


app.add_middleware(RequestLoggingMiddleware)

# GitHub Pages frontend and local development
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https://[\w-]+\.github\.io$",
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5000",
        "http://127.0.0.1:5000",
    ],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "X-Request-ID"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("validation_error", extra={"method": request.method, "url": str(request.url), "errors": jsonable_encoder(exc.errors())})
    return JSONResponse(
        status_code=422,
        content={
            "detail": jsonable_encoder(exc.errors()),
            "message": "Input validation failed"
        }
    )


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    # never hand out a board that was not persisted
    logger.error("store_unavailable", exc_info=exc, extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(status_code=503, content={"error": "Failed to load board"})


@app.on_event("startup")
def on_startup():
    from .init_db import init_db

    engine = init_db()
    app.state.store = PuzzleStore(engine)
    app.state.cache = MemoryCache()
    crud.ensure_today(app.state.store, app.state.cache)


def _board_payload(date: str, board: game.Board) -> dict:
    return {**board.to_dict(), "date": date}


@app.get("/health", include_in_schema=False)
def health():
    return JSONResponse({"status": "ok"})


@app.get("/api/cache/stats", include_in_schema=False)
def cache_stats(cache: Optional[MemoryCache] = Depends(get_cache)):
    stats = cache.get_stats() if cache is not None else {}
    return JSONResponse({"cache_stats": stats, "status": "ok"})


@app.get("/api/board")
def get_board(date: str = "", store: PuzzleStore = Depends(get_store),
              cache: Optional[MemoryCache] = Depends(get_cache)):
    """Board for ``date`` (YYYY-MM-DD) or today in UTC. The same date always gets the same board."""
    actual_date = game.resolve_date(date)
    board = crud.get_or_create_board(store, actual_date, cache)
    return _board_payload(actual_date, board)


@app.get("/api/recent")
def recent_boards(days: int = Query(4, ge=1, le=7), store: PuzzleStore = Depends(get_store),
                  cache: Optional[MemoryCache] = Depends(get_cache)):
    """Today's board followed by the boards of the previous days."""
    dates = game.recent_dates(store.current_date(), days)
    return {"boards": [_board_payload(d, crud.get_or_create_board(store, d, cache)) for d in dates]}


@app.get("/api/criteria")
def list_criteria():
    return {
        category: [c.to_dict() for c in items]
        for category, items in by_category(CATALOG).items()
    }


class CardPayload(BaseModel):
    # field names follow Scryfall's card objects
    name: str = Field(..., min_length=1, max_length=200)
    colors: List[str] = Field(default_factory=list)
    type_line: str = ""
    cmc: Optional[float] = Field(None, ge=0)
    released_at: Optional[str] = None

    @field_validator('colors')
    @classmethod
    def normalize_colors(cls, v):
        return [c.strip().upper() for c in v if c and c.strip()]


class GuessRequest(BaseModel):
    date: str = ""
    row: int = Field(..., ge=0, le=2)
    col: int = Field(..., ge=0, le=2)
    card: CardPayload


@app.post("/api/guess")
def submit_guess(body: GuessRequest, store: PuzzleStore = Depends(get_store),
                 cache: Optional[MemoryCache] = Depends(get_cache)):
    actual_date = game.resolve_date(body.date)
    board = crud.get_or_create_board(store, actual_date, cache)
    card = Card(
        name=body.card.name,
        colors=tuple(body.card.colors),
        type_line=body.card.type_line,
        cost=body.card.cmc,
        released_at=body.card.released_at,
    )
    result = check_guess(card, board.row_criteria[body.row], board.col_criteria[body.col])
    return {
        "valid": result.valid,
        "rowMatch": result.row_match,
        "colMatch": result.col_match,
        "date": actual_date,
    }
