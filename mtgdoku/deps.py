from fastapi import Request
from .cache import MemoryCache
from .crud import PuzzleStore, StoreUnavailable


def get_store(request: Request) -> PuzzleStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreUnavailable("puzzle store is not initialized")
    return store


def get_cache(request: Request) -> MemoryCache:
    # a missing cache just means every lookup goes to the store
    return getattr(request.app.state, "cache", None)
