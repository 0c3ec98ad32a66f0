import threading
from collections import OrderedDict
from typing import Any, Hashable, Iterable, Tuple

from color_metric import normalize_rgb_string


DEFAULT_SUGGESTION_CACHE_SIZE = 250
DEFAULT_PALETTE_CACHE_SIZE = 8

# Default for get() that a cached None can never be mistaken for
MISSING = object()


class BoundedCache:
    """Fixed-size mapping that evicts the least recently inserted key.

    Reads do not refresh an entry and re-setting an existing key keeps its
    original insertion slot. ``None`` is a valid cached value, so use
    ``key in cache`` to tell a cached "no suggestion" apart from a miss.
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._entries.get(key, MISSING)
        return default if value is MISSING else value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = value
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class SuggestionCache(BoundedCache):
    """Suggestion results keyed by (palette, options, target)."""

    def __init__(self, max_size: int = DEFAULT_SUGGESTION_CACHE_SIZE):
        super().__init__(max_size)


def palette_key(paints: Iterable[Any], model_name: str = "") -> Tuple:
    """Key a palette by its colors and recipe markers (labels do not affect mixing)."""
    return (model_name,) + tuple(
        (normalize_rgb_string(paint.rgb), bool(getattr(paint, 'recipe', None)))
        for paint in paints
    )


def options_key(options: Any) -> Tuple:
    return (
        options.max_colors,
        options.max_total_parts,
        options.large_palette_threshold,
        options.max_candidate_paints,
        options.tie_tolerance,
    )


def suggestion_key(palette: Tuple, options: Tuple, target: Any) -> Tuple:
    return (palette, options, normalize_rgb_string(target))
