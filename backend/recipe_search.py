"""Paint recipe search.

Finds the integer-part mixture of up to three base paints whose pigment-model
blend is perceptually closest (CIE94) to a target color.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from color_metric import (
    ColorInput, Lab, RGB,
    delta_e94, format_rgb, match_percentage, parse_rgb, rgb_to_lab,
)
from mixing_model import Latent, MixingModel, get_model
from suggestion_cache import MISSING, SuggestionCache, options_key, palette_key, suggestion_key


logger = logging.getLogger(__name__)

DEFAULT_MAX_COLORS = 3
DEFAULT_MAX_TOTAL_PARTS = 10
# Palettes larger than this are pruned to the MAX_CANDIDATE_PAINTS closest paints
LARGE_PALETTE_THRESHOLD = 25
MAX_CANDIDATE_PAINTS = 12
# Differences closer than this are treated as ties
TIE_TOLERANCE = 1e-6


@dataclass(frozen=True)
class Paint:
    """A palette entry. ``recipe`` marks a paint that is itself a mixture."""
    label: str
    rgb: RGB
    recipe: Optional[Any] = None

    def __post_init__(self):
        object.__setattr__(self, 'rgb', parse_rgb(self.rgb))

    @property
    def rgb_string(self) -> str:
        return format_rgb(self.rgb)

    @property
    def is_recipe(self) -> bool:
        return bool(self.recipe)

    @classmethod
    def from_dict(cls, data: Dict) -> "Paint":
        rgb = data.get('rgb', data.get('rgbString', data.get('hex')))
        if rgb is None:
            raise ValueError(f"Paint has no color: {data!r}")
        return cls(label=str(data.get('label') or ''), rgb=rgb, recipe=data.get('recipe'))


@dataclass(frozen=True)
class Ingredient:
    index: int
    parts: int


@dataclass(frozen=True)
class RecipeSuggestion:
    ingredients: Tuple[Ingredient, ...]
    result_rgb: str
    delta_e: float
    match_pct: float

    @property
    def total_parts(self) -> int:
        return sum(ingredient.parts for ingredient in self.ingredients)

    def to_dict(self) -> Dict:
        return {
            'ingredients': [{'index': i.index, 'parts': i.parts} for i in self.ingredients],
            'result_rgb': self.result_rgb,
            'delta_e': self.delta_e,
            'match_pct': self.match_pct,
        }


@dataclass(frozen=True)
class SuggestOptions:
    """Search budget and policy constants.

    Out-of-range values are clamped rather than rejected: ``max_colors`` is
    floored at 0 (0 disables the search) and ``max_total_parts`` at 1.
    """
    max_colors: int = DEFAULT_MAX_COLORS
    max_total_parts: int = DEFAULT_MAX_TOTAL_PARTS
    large_palette_threshold: int = LARGE_PALETTE_THRESHOLD
    max_candidate_paints: int = MAX_CANDIDATE_PAINTS
    tie_tolerance: float = TIE_TOLERANCE

    def normalized(self) -> "SuggestOptions":
        return SuggestOptions(
            max_colors=_floor_option(self.max_colors, DEFAULT_MAX_COLORS, 0),
            max_total_parts=_floor_option(self.max_total_parts, DEFAULT_MAX_TOTAL_PARTS, 1),
            large_palette_threshold=_floor_option(self.large_palette_threshold, LARGE_PALETTE_THRESHOLD, 0),
            max_candidate_paints=_floor_option(self.max_candidate_paints, MAX_CANDIDATE_PAINTS, 1),
            tie_tolerance=max(0.0, float(self.tie_tolerance)),
        )


def _floor_option(value: Any, default: int, minimum: int) -> int:
    if value is None:
        return default
    value = float(value)
    if not math.isfinite(value):
        return default
    return max(minimum, int(math.floor(value)))


@dataclass(frozen=True)
class PreparedPalette:
    """Per-paint Lab coordinates and latent vectors, computed once per palette."""
    paints: Tuple[Paint, ...]
    labs: Tuple[Lab, ...]
    latents: Tuple[Optional[Latent], ...]
    model: MixingModel = field(compare=False)

    def __len__(self) -> int:
        return len(self.paints)

    @property
    def mixable_indices(self) -> List[int]:
        return [index for index, latent in enumerate(self.latents) if latent is not None]


@dataclass
class _Candidate:
    ingredients: Tuple[Ingredient, ...]
    result_rgb: RGB
    delta_e: float
    match_pct: float
    total_parts: int


def prepare_palette(paints: Sequence[Paint], model: Optional[MixingModel] = None) -> PreparedPalette:
    """Pre-convert a palette for repeated searching.

    Recipe-marked paints and paints the mixing model cannot represent get no
    latent vector and never take part in a mixture, but keep their index.
    """
    model = model or get_model()
    paints = tuple(paints)
    labs = tuple(rgb_to_lab(paint.rgb) for paint in paints)
    latents = tuple(
        None if paint.is_recipe else model.rgb_to_latent(paint.rgb)
        for paint in paints
    )
    unmixable = sum(1 for latent in latents if latent is None)
    if unmixable:
        logger.debug(f"Prepared palette of {len(paints)} paints, {unmixable} not mixable")
    return PreparedPalette(paints=paints, labs=labs, latents=latents, model=model)


def _candidate_indices(prepared: PreparedPalette, target_lab: Lab, options: SuggestOptions) -> List[int]:
    """Indices worth combining, in ascending palette order.

    Recipe-marked paints are dropped before ranking so they never take a
    candidate slot; paints the model cannot represent are dropped after.
    """
    indices = [i for i in range(len(prepared)) if not prepared.paints[i].is_recipe]
    if len(indices) > options.large_palette_threshold:
        ranked = sorted(indices, key=lambda i: (delta_e94(prepared.labs[i], target_lab), i))
        indices = sorted(ranked[:options.max_candidate_paints])
    return [i for i in indices if prepared.latents[i] is not None]


def _evaluate(
    ingredients: Tuple[Ingredient, ...],
    prepared: PreparedPalette,
    target_lab: Lab,
    lab_cache: Dict[RGB, Lab],
) -> _Candidate:
    total_parts = sum(ingredient.parts for ingredient in ingredients)
    latents = [prepared.latents[ingredient.index] for ingredient in ingredients]
    weights = [ingredient.parts / total_parts for ingredient in ingredients]
    result_rgb = prepared.model.latent_to_rgb(prepared.model.mix(latents, weights))

    result_lab = lab_cache.get(result_rgb)
    if result_lab is None:
        result_lab = rgb_to_lab(result_rgb)
        lab_cache[result_rgb] = result_lab

    delta_e = delta_e94(result_lab, target_lab)
    return _Candidate(
        ingredients=ingredients,
        result_rgb=result_rgb,
        delta_e=delta_e,
        match_pct=match_percentage(delta_e),
        total_parts=total_parts,
    )


def _pick_best(best: Optional[_Candidate], candidate: _Candidate, tolerance: float) -> _Candidate:
    """Lower difference wins; near-ties go to fewer paints, then fewer parts."""
    if best is None:
        return candidate

    gap = candidate.delta_e - best.delta_e
    if gap < -tolerance:
        return candidate
    if abs(gap) <= tolerance:
        if len(candidate.ingredients) < len(best.ingredients):
            return candidate
        if (len(candidate.ingredients) == len(best.ingredients)
                and candidate.total_parts < best.total_parts):
            return candidate
    return best


def suggest(
    prepared: PreparedPalette,
    target_rgb: ColorInput,
    options: Optional[SuggestOptions] = None,
) -> Optional[RecipeSuggestion]:
    """Find the best 1-, 2- or 3-paint recipe for a target color.

    Args:
        prepared: Palette from prepare_palette
        target_rgb: Target color (any form accepted by parse_rgb)
        options: Search budget; defaults to 3 colors and 10 total parts

    Returns:
        The best RecipeSuggestion, or None when the palette is empty, nothing
        is mixable or max_colors is 0
    """
    if not len(prepared):
        return None

    options = (options or SuggestOptions()).normalized()
    max_colors = options.max_colors
    max_total_parts = options.max_total_parts
    tolerance = options.tie_tolerance

    target_lab = rgb_to_lab(target_rgb)
    active = _candidate_indices(prepared, target_lab, options)
    if not active:
        return None

    lab_cache: Dict[RGB, Lab] = {}
    best: Optional[_Candidate] = None
    n = len(active)

    # Single paints
    if max_colors >= 1:
        for index in active:
            candidate = _evaluate((Ingredient(index, 1),), prepared, target_lab, lab_cache)
            best = _pick_best(best, candidate, tolerance)

    # Pairs
    if max_colors >= 2:
        for a in range(n):
            for b in range(a + 1, n):
                index_a, index_b = active[a], active[b]
                for total_parts in range(2, max_total_parts + 1):
                    for parts_a in range(1, total_parts):
                        ingredients = (
                            Ingredient(index_a, parts_a),
                            Ingredient(index_b, total_parts - parts_a),
                        )
                        candidate = _evaluate(ingredients, prepared, target_lab, lab_cache)
                        best = _pick_best(best, candidate, tolerance)

    # Triples
    if max_colors >= 3:
        for a in range(n):
            for b in range(a + 1, n):
                for c in range(b + 1, n):
                    index_a, index_b, index_c = active[a], active[b], active[c]
                    for total_parts in range(3, max_total_parts + 1):
                        for parts_a in range(1, total_parts - 1):
                            for parts_b in range(1, total_parts - parts_a):
                                ingredients = (
                                    Ingredient(index_a, parts_a),
                                    Ingredient(index_b, parts_b),
                                    Ingredient(index_c, total_parts - parts_a - parts_b),
                                )
                                candidate = _evaluate(ingredients, prepared, target_lab, lab_cache)
                                best = _pick_best(best, candidate, tolerance)

    if best is None:
        return None

    return RecipeSuggestion(
        ingredients=best.ingredients,
        result_rgb=format_rgb(best.result_rgb),
        delta_e=best.delta_e,
        match_pct=best.match_pct,
    )


class RecipeSuggester:
    """Suggests recipes against one fixed palette.

    The palette is prepared once. An injected SuggestionCache memoizes
    results per (palette, options, target); it never changes a result.
    """

    def __init__(
        self,
        paints: Sequence[Paint],
        options: Optional[SuggestOptions] = None,
        model: Optional[MixingModel] = None,
        cache: Optional[SuggestionCache] = None,
    ):
        self.options = (options or SuggestOptions()).normalized()
        self.prepared = prepare_palette(paints, model)
        self.cache = cache
        self._key_prefix = (
            palette_key(self.prepared.paints, self.prepared.model.name),
            options_key(self.options),
        )

    def __call__(self, target_rgb: ColorInput) -> Optional[RecipeSuggestion]:
        if self.cache is None:
            return suggest(self.prepared, target_rgb, self.options)

        key = suggestion_key(self._key_prefix[0], self._key_prefix[1], target_rgb)
        cached = self.cache.get(key, MISSING)
        if cached is not MISSING:
            return cached
        result = suggest(self.prepared, target_rgb, self.options)
        self.cache.set(key, result)
        return result


def suggest_recipe(
    paints: Sequence[Paint],
    target_rgb: ColorInput,
    options: Optional[SuggestOptions] = None,
    model: Optional[MixingModel] = None,
) -> Optional[RecipeSuggestion]:
    """One-shot search: prepare the palette and suggest a single recipe."""
    if not paints:
        return None
    return suggest(prepare_palette(paints, model), target_rgb, options)


def estimate_evaluations(paints: Sequence[Paint], options: Optional[SuggestOptions] = None) -> int:
    """Upper bound on the mixtures suggest() evaluates for one target."""
    options = (options or SuggestOptions()).normalized()
    n = sum(1 for paint in paints if not paint.is_recipe)
    if n > options.large_palette_threshold:
        n = min(n, options.max_candidate_paints)

    # Splits of up to P parts: C(P, 2) for pairs, C(P, 3) for triples
    parts = options.max_total_parts
    total = 0
    if options.max_colors >= 1:
        total += n
    if options.max_colors >= 2:
        total += math.comb(n, 2) * math.comb(parts, 2)
    if options.max_colors >= 3:
        total += math.comb(n, 3) * math.comb(parts, 3)
    return total


def base_palette(paints: Sequence[Paint]) -> Tuple[List[int], List[Paint]]:
    """Drop recipe-marked paints, remembering the original index of each kept paint."""
    indices = [index for index, paint in enumerate(paints) if not paint.is_recipe]
    return indices, [paints[index] for index in indices]


def format_ingredient_list(ingredients: Sequence[Ingredient], paints: Sequence[Paint]) -> str:
    """Render ingredients as e.g. "2 parts White + 1 part Black".

    An index outside the palette or an empty label renders as "Paint <n>"
    (1-based); Paint.from_dict stores a missing label as the empty string.
    """
    rendered = []
    for ingredient in ingredients:
        label = None
        if 0 <= ingredient.index < len(paints):
            label = paints[ingredient.index].label
        label = label or f"Paint {ingredient.index + 1}"
        part_label = 'part' if ingredient.parts == 1 else 'parts'
        rendered.append(f"{ingredient.parts} {part_label} {label}")
    return ' + '.join(rendered)
