from fastapi import FastAPI, Form, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
import json
import logging
from typing import List, Optional

from color_metric import is_low_match, parse_rgb
from config import load_settings
from mixing_model import get_model
from recipe_search import Paint, SuggestOptions, estimate_evaluations, format_ingredient_list
from recipe_worker import RecipeRequest, RecipeWorker

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = load_settings()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

worker = RecipeWorker(
    get_model(settings.mixing_model),
    suggestion_cache_size=settings.suggestion_cache_size,
    palette_cache_size=settings.palette_cache_size,
)

MAX_COLORS_LIMIT = 3
MAX_TOTAL_PARTS_LIMIT = 30
MAX_TARGETS_PER_REQUEST = 100


def parse_palette(palette: str) -> List[Paint]:
    """Parse the palette form field (JSON list of {label, rgb, recipe?})."""
    try:
        raw = json.loads(palette)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"palette is not valid JSON: {e}")
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="palette must be a JSON list")
    try:
        return [Paint.from_dict(entry) for entry in raw]
    except (AttributeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid paint: {e}")


def parse_colors(colors: str) -> List[str]:
    """Parse the colors form field (JSON list of RGB strings)."""
    try:
        raw = json.loads(colors)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail=f"colors is not valid JSON: {e}")
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="colors must be a JSON list")
    if len(raw) > MAX_TARGETS_PER_REQUEST:
        raise HTTPException(status_code=400, detail=f"At most {MAX_TARGETS_PER_REQUEST} colors per request")
    for color in raw:
        try:
            parse_rgb(color)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return raw


@app.get("/api/health")
async def health():
    return {"status": "ok", "mixing_model": worker.model.name}


@app.post("/api/paint/recipes/suggest")
async def suggest_recipes(
    palette: str = Form(...),  # JSON string of [{label, rgb, recipe?}, ...]
    colors: str = Form(...),   # JSON string of ["rgb(r, g, b)", ...]
    max_colors: Optional[int] = Form(None),
    max_total_parts: Optional[int] = Form(None),
    request_id: int = Form(0)  # Echoed back so the client can drop stale responses
):
    """Suggest a paint recipe for each target color."""
    if max_colors is None:
        max_colors = min(settings.max_colors, MAX_COLORS_LIMIT)
    if max_total_parts is None:
        max_total_parts = min(settings.max_total_parts, MAX_TOTAL_PARTS_LIMIT)

    # Validate inputs; values below the minimum are clamped by the search
    if max_colors > MAX_COLORS_LIMIT:
        logger.error(f"Invalid max_colors: {max_colors}")
        raise HTTPException(status_code=400, detail=f"max_colors must be at most {MAX_COLORS_LIMIT}")
    if max_total_parts > MAX_TOTAL_PARTS_LIMIT:
        logger.error(f"Invalid max_total_parts: {max_total_parts}")
        raise HTTPException(status_code=400, detail=f"max_total_parts must be at most {MAX_TOTAL_PARTS_LIMIT}")

    paints = parse_palette(palette)
    targets = parse_colors(colors)
    options = SuggestOptions(max_colors=max_colors, max_total_parts=max_total_parts)

    evaluations = estimate_evaluations(paints, options) * len(targets)
    if evaluations > settings.max_evaluations:
        logger.error(f"Recipe request {request_id} too expensive: ~{evaluations} mixtures "
                     f"(limit {settings.max_evaluations})")
        raise HTTPException(
            status_code=400,
            detail="Request too large: use fewer colors, fewer paints or a smaller max_total_parts",
        )
    logger.info(f"Recipe request {request_id}: {len(targets)} colors, {len(paints)} paints, "
                f"max_colors={max_colors}, max_total_parts={max_total_parts}")

    request = RecipeRequest(
        id=request_id,
        palette=paints,
        colors=targets,
        options=options,
    )
    response = await run_in_threadpool(worker.handle, request)

    suggestions = []
    low_match = []
    for suggestion in response.suggestions:
        if suggestion is None:
            suggestions.append(None)
            low_match.append(None)
            continue
        entry = suggestion.to_dict()
        entry["recipe_text"] = format_ingredient_list(suggestion.ingredients, paints)
        suggestions.append(entry)
        low_match.append(is_low_match(suggestion.match_pct))

    return {
        "request_id": response.id,
        "suggestions": suggestions,
        "low_match": low_match,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
