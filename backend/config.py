import os
from dataclasses import dataclass, field
from typing import List


def _env_list(name: str, default: str) -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


@dataclass
class Settings:
    """Service settings, read from the environment."""
    # CORS - default includes common local frontend ports
    cors_origins: List[str] = field(default_factory=lambda: _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:3001,http://localhost:3002,http://localhost:3003",
    ))
    max_colors: int = field(default_factory=lambda: int(os.getenv("RECIPE_MAX_COLORS", "3")))
    max_total_parts: int = field(default_factory=lambda: int(os.getenv("RECIPE_MAX_TOTAL_PARTS", "10")))
    mixing_model: str = field(default_factory=lambda: os.getenv("RECIPE_MIXING_MODEL", "mixbox"))
    suggestion_cache_size: int = field(default_factory=lambda: int(os.getenv("RECIPE_SUGGESTION_CACHE_SIZE", "250")))
    palette_cache_size: int = field(default_factory=lambda: int(os.getenv("RECIPE_PALETTE_CACHE_SIZE", "8")))
    # Upper bound on mixtures evaluated per request (palette x options x colors)
    max_evaluations: int = field(default_factory=lambda: int(os.getenv("RECIPE_MAX_EVALUATIONS", "1000000")))


def load_settings() -> Settings:
    return Settings()
