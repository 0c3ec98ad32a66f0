"""Pigment mixing models.

A mixing model maps RGB colors into a latent space in which a weighted sum
approximates blending the physical paints, and maps the blend back to RGB.
The recipe search only talks to the small interface below, so the real
pigment model can be swapped for a deterministic one in tests.
"""
import mixbox
from typing import Dict, Optional, Protocol, Sequence, Tuple

from color_metric import ColorInput, RGB, parse_rgb


Latent = Tuple[float, ...]


class MixingModel(Protocol):
    name: str
    # rgb_to_latent returns None when the model cannot represent the color

    def rgb_to_latent(self, rgb: ColorInput) -> Optional[Latent]:
        ...

    def mix(self, latents: Sequence[Latent], weights: Sequence[float]) -> Latent:
        ...

    def latent_to_rgb(self, latent: Sequence[float]) -> RGB:
        ...


def weighted_sum(latents: Sequence[Sequence[float]], weights: Sequence[float]) -> Latent:
    """Sum latent vectors scaled by their weights, in ingredient order."""
    if len(latents) != len(weights):
        raise ValueError("latents and weights must have the same length")
    if not latents:
        raise ValueError("cannot mix an empty list of latents")
    size = len(latents[0])
    mixed = [0.0] * size
    for latent, weight in zip(latents, weights):
        for i in range(size):
            mixed[i] += latent[i] * weight
    return tuple(mixed)


class MixboxModel:
    """Kubelka-Munk based pigment mixing via the Mixbox latent space."""

    name = "mixbox"

    def rgb_to_latent(self, rgb: ColorInput) -> Optional[Latent]:
        latent = mixbox.rgb_to_latent(parse_rgb(rgb))
        if latent is None:
            return None
        return tuple(float(v) for v in latent)

    def mix(self, latents: Sequence[Latent], weights: Sequence[float]) -> Latent:
        return weighted_sum(latents, weights)

    def latent_to_rgb(self, latent: Sequence[float]) -> RGB:
        r, g, b = mixbox.latent_to_rgb(list(latent))
        return parse_rgb((r, g, b))


class LinearRgbModel:
    """Naive RGB averaging: the latent vector is the RGB triple itself."""

    name = "linear"

    def rgb_to_latent(self, rgb: ColorInput) -> Optional[Latent]:
        return tuple(float(c) for c in parse_rgb(rgb))

    def mix(self, latents: Sequence[Latent], weights: Sequence[float]) -> Latent:
        return weighted_sum(latents, weights)

    def latent_to_rgb(self, latent: Sequence[float]) -> RGB:
        return parse_rgb(latent)


_MODELS: Dict[str, MixingModel] = {
    MixboxModel.name: MixboxModel(),
    LinearRgbModel.name: LinearRgbModel(),
}

DEFAULT_MODEL_NAME = MixboxModel.name


def get_model(name: str = DEFAULT_MODEL_NAME) -> MixingModel:
    """Look up a mixing model by name ("mixbox" or "linear")."""
    model = _MODELS.get(name.strip().lower())
    if model is None:
        raise ValueError(f"Unknown mixing model '{name}'. Available: {', '.join(sorted(_MODELS))}")
    return model
