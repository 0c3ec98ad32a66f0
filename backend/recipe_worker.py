"""Batch recipe suggestions off the calling thread.

The worker answers batches (one palette, many target colors) and keeps a
small cache of prepared palettes plus a cache of finished suggestions. The
dispatcher numbers requests, runs them on a background thread and drops any
response that has been superseded by a newer request: last request wins.
When the background thread does not answer within the timeout, the batch is
computed in the foreground one target at a time.
"""
import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from color_metric import ColorInput
from mixing_model import MixingModel, get_model
from recipe_search import Paint, RecipeSuggester, RecipeSuggestion, SuggestOptions
from suggestion_cache import (
    DEFAULT_PALETTE_CACHE_SIZE, DEFAULT_SUGGESTION_CACHE_SIZE,
    BoundedCache, SuggestionCache, options_key, palette_key,
)


logger = logging.getLogger(__name__)

DEFAULT_WORKER_TIMEOUT = 5.0


@dataclass
class RecipeRequest:
    id: int
    palette: List[Paint]
    colors: List[ColorInput]
    options: Optional[SuggestOptions] = None


@dataclass
class RecipeResponse:
    id: int
    suggestions: List[Optional[RecipeSuggestion]] = field(default_factory=list)


class RecipeWorker:
    """Answers recipe batches, reusing prepared palettes and past suggestions."""

    def __init__(
        self,
        model: Optional[MixingModel] = None,
        suggestion_cache_size: int = DEFAULT_SUGGESTION_CACHE_SIZE,
        palette_cache_size: int = DEFAULT_PALETTE_CACHE_SIZE,
    ):
        self.model = model or get_model()
        self.suggestion_cache = SuggestionCache(suggestion_cache_size)
        self.palette_cache = BoundedCache(palette_cache_size)
        self._lock = threading.Lock()

    def get_suggester(self, palette: Sequence[Paint], options: Optional[SuggestOptions] = None) -> RecipeSuggester:
        options = (options or SuggestOptions()).normalized()
        key = (palette_key(palette, self.model.name), options_key(options))
        with self._lock:
            suggester = self.palette_cache.get(key)
            if suggester is None:
                logger.debug(f"Preparing palette of {len(palette)} paints")
                suggester = RecipeSuggester(palette, options, self.model, cache=self.suggestion_cache)
                self.palette_cache.set(key, suggester)
        return suggester

    def handle(self, request: RecipeRequest) -> RecipeResponse:
        logger.info(f"Handling recipe request {request.id}: {len(request.colors)} colors, {len(request.palette)} paints")
        suggester = self.get_suggester(request.palette, request.options)
        suggestions = [suggester(color) for color in request.colors]
        return RecipeResponse(id=request.id, suggestions=suggestions)


class RecipeDispatcher:
    """Runs recipe batches on a background thread, newest request wins."""

    def __init__(
        self,
        worker: Optional[RecipeWorker] = None,
        timeout: float = DEFAULT_WORKER_TIMEOUT,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.worker = worker or RecipeWorker()
        self.timeout = timeout
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="recipe-worker")
        self._ids = itertools.count(1)
        self._latest_id = 0
        self._pending: Dict[int, Tuple[RecipeRequest, Optional[Future]]] = {}
        self._lock = threading.Lock()

    @property
    def latest_id(self) -> int:
        return self._latest_id

    def is_stale(self, request_id: int) -> bool:
        return request_id != self._latest_id

    def submit(
        self,
        palette: Sequence[Paint],
        colors: Sequence[ColorInput],
        options: Optional[SuggestOptions] = None,
    ) -> int:
        """Queue a batch and return its request id. Older pending batches are superseded."""
        with self._lock:
            request_id = next(self._ids)
            self._latest_id = request_id
            for stale_id, (_, stale_future) in list(self._pending.items()):
                if stale_future is not None:
                    stale_future.cancel()
                del self._pending[stale_id]
                logger.info(f"Recipe request {stale_id} superseded by {request_id}")

            request = RecipeRequest(id=request_id, palette=list(palette), colors=list(colors), options=options)
            try:
                future = self._executor.submit(self.worker.handle, request)
            except RuntimeError as e:
                # Executor shut down; collect() will compute in the foreground
                logger.warning(f"Background worker unavailable for request {request_id}: {e}")
                future = None
            self._pending[request_id] = (request, future)
        return request_id

    def collect(self, request_id: int, timeout: Optional[float] = None) -> Optional[RecipeResponse]:
        """Wait for a batch. Returns None if the request was superseded."""
        with self._lock:
            entry = self._pending.get(request_id)
        if entry is None or self.is_stale(request_id):
            logger.info(f"Dropping stale recipe request {request_id}")
            return None

        request, future = entry
        response = None
        try:
            if future is not None:
                try:
                    response = future.result(timeout=self.timeout if timeout is None else timeout)
                except FutureTimeoutError:
                    logger.warning(f"Recipe request {request_id} timed out, computing in foreground")
            if response is None:
                suggestions = list(self.iter_foreground(
                    request.palette, request.colors, request.options, request_id=request_id,
                ))
                response = RecipeResponse(id=request_id, suggestions=suggestions)
        finally:
            with self._lock:
                self._pending.pop(request_id, None)

        if self.is_stale(request_id):
            logger.info(f"Dropping stale recipe request {request_id}")
            return None
        return response

    def run(
        self,
        palette: Sequence[Paint],
        colors: Sequence[ColorInput],
        options: Optional[SuggestOptions] = None,
        timeout: Optional[float] = None,
    ) -> Optional[RecipeResponse]:
        return self.collect(self.submit(palette, colors, options), timeout=timeout)

    def iter_foreground(
        self,
        palette: Sequence[Paint],
        colors: Sequence[ColorInput],
        options: Optional[SuggestOptions] = None,
        request_id: Optional[int] = None,
    ) -> Iterator[Optional[RecipeSuggestion]]:
        """Suggest one target at a time so the caller can yield between targets.

        Stops early once ``request_id`` has been superseded.
        """
        suggester = self.worker.get_suggester(palette, options)
        for color in colors:
            if request_id is not None and self.is_stale(request_id):
                return
            yield suggester(color)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
