import re
import cv2
import numpy as np
from typing import Sequence, Tuple, Union


RGB = Tuple[int, int, int]
Lab = Tuple[float, float, float]
ColorInput = Union[str, Sequence[float]]

# CIE94 graphic-arts constants
K_L = 1.0
K_1 = 0.045
K_2 = 0.015

# Suggestions below this match percentage are flagged as "best possible match"
LOW_MATCH_THRESHOLD = 60.0

_RGB_FUNC_RE = re.compile(
    r'^rgba?\(\s*([-+]?\d*\.?\d+)\s*,\s*([-+]?\d*\.?\d+)\s*,\s*([-+]?\d*\.?\d+)\s*(?:,\s*[-+]?\d*\.?\d+\s*)?\)$',
    re.IGNORECASE,
)
_HEX_RE = re.compile(r'^#?([0-9a-f]{3}|[0-9a-f]{6})$', re.IGNORECASE)


def _clamp_channel(value: float) -> int:
    return int(round(min(255.0, max(0.0, float(value)))))


def parse_rgb(value: ColorInput) -> RGB:
    """Parse an RGB color into an (r, g, b) triple of 0-255 ints.

    Args:
        value: "rgb(r, g, b)" / "rgba(r, g, b, a)" string, "#rgb" / "#rrggbb"
            hex string, or a sequence of three numbers

    Returns:
        Tuple of three ints, rounded and clamped to 0-255

    Raises:
        ValueError: if the value is not a recognizable color
    """
    if isinstance(value, str):
        text = value.strip()
        match = _RGB_FUNC_RE.match(text)
        if match:
            return tuple(_clamp_channel(float(c)) for c in match.groups())
        match = _HEX_RE.match(text)
        if match:
            hex_clean = match.group(1)
            if len(hex_clean) == 3:
                hex_clean = ''.join(c * 2 for c in hex_clean)
            return tuple(int(hex_clean[i:i+2], 16) for i in (0, 2, 4))
        raise ValueError(f"Unrecognized color: {value!r}")

    try:
        channels = [float(c) for c in value]
    except (TypeError, ValueError):
        raise ValueError(f"Unrecognized color: {value!r}")
    if len(channels) != 3 or not all(np.isfinite(channels)):
        raise ValueError(f"RGB color needs three finite channels, got {value!r}")
    return tuple(_clamp_channel(c) for c in channels)


def format_rgb(rgb: Sequence[float]) -> str:
    """Format an (r, g, b) triple as the canonical "rgb(r, g, b)" string."""
    r, g, b = (_clamp_channel(c) for c in rgb)
    return f"rgb({r}, {g}, {b})"


def normalize_rgb_string(value: ColorInput) -> str:
    """Parse any supported color input and return its canonical string."""
    return format_rgb(parse_rgb(value))


def rgb_to_lab(rgb: ColorInput) -> Lab:
    """Convert sRGB (D65) to CIE Lab (L in 0-100, a/b unscaled)."""
    rgb_array = np.array([[parse_rgb(rgb)]], dtype=np.float32) / 255.0
    lab_array = cv2.cvtColor(rgb_array, cv2.COLOR_RGB2LAB)
    return tuple(float(v) for v in lab_array[0, 0])


def delta_e94(lab1: Sequence[float], lab2: Sequence[float]) -> float:
    """CIE94 color difference, using lab1 as the reference color.

    Chroma and hue terms are weighted by the reference chroma, so the result
    is not strictly symmetric. It is a ranking score, not a geometric distance.
    """
    L1, a1, b1 = (float(v) for v in lab1)
    L2, a2, b2 = (float(v) for v in lab2)

    delta_l = L1 - L2
    c1 = np.hypot(a1, b1)
    c2 = np.hypot(a2, b2)
    delta_c = c1 - c2
    delta_a = a1 - a2
    delta_b = b1 - b2
    # Rounding can push the hue term slightly negative
    delta_h_sq = max(0.0, delta_a ** 2 + delta_b ** 2 - delta_c ** 2)

    s_c = 1.0 + K_1 * c1
    s_h = 1.0 + K_2 * c1

    return float(np.sqrt(
        (delta_l / K_L) ** 2
        + (delta_c / s_c) ** 2
        + delta_h_sq / (s_h ** 2)
    ))


def match_percentage(delta_e: float) -> float:
    """Map a color difference onto a 0-100 match score: clamp(100 - delta, 0, 100)."""
    return min(100.0, max(0.0, 100.0 - delta_e))


def is_low_match(match_pct: float, threshold: float = LOW_MATCH_THRESHOLD) -> bool:
    return match_pct < threshold
