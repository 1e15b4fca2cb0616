# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Diffusion utilities — seeded noise, guidance, and schedule builders.

Shared helpers used across schedulers and pipelines:

- ``BoxMullerGenerator``        — seeded standard-normal stream.
- ``randn_tensor``              — generate scaled normal noise as a tensor.
- ``generate_latent_sample``    — the initial [1, 4, H/8, W/8] latent.
- ``perform_guidance``          — classifier-free guidance combination.
- ``get_beta_schedule``         — public API for building β schedules.
"""
from __future__ import annotations

import math
from typing import Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from sdsampler.errors import ConfigurationError
from sdsampler.tensor import add_tensors, multiply_by_float, subtract_tensors

LATENT_CHANNELS = 4
LATENT_SCALE = 8


# ═════════════════════════════════════════════════════════════════════
#  Noise generation
# ═════════════════════════════════════════════════════════════════════

class UniformSource(Protocol):
    """Anything that yields uniform(0, 1) float64 samples."""

    def random(self, size: int) -> np.ndarray:
        ...


class PCG64Source:
    """Uniform source backed by NumPy's PCG64 bit generator.

    The algorithm is pinned (not ``default_rng``) so a seed always maps to
    the same stream.
    """

    def __init__(self, seed: int):
        self.seed = int(seed)
        self._rng = np.random.Generator(np.random.PCG64(self.seed))

    def random(self, size: int) -> np.ndarray:
        return self._rng.random(size, dtype=np.float64)


class BoxMullerGenerator:
    """Seeded standard-normal generator using the Box–Muller transform.

    Each element consumes two consecutive uniforms ``(u1, u2)``::

        z = sqrt(-2 ln(1 - u1)) * cos(2π u2)

    ``1 - u1`` keeps the logarithm finite since the source yields values
    in [0, 1).  The generator is a single stream: successive calls continue
    where the previous one stopped.

    Args:
        seed:   Seed for the default :class:`PCG64Source`.
        source: Explicit uniform source; overrides ``seed``.
    """

    def __init__(self, seed: Optional[int] = None,
                 source: Optional[UniformSource] = None):
        if source is None:
            if seed is None:
                raise ConfigurationError("BoxMullerGenerator needs a seed or a source")
            source = PCG64Source(seed)
        self.seed = seed
        self.source = source

    def standard_normal(self, shape: Sequence[int]) -> np.ndarray:
        shape = tuple(int(s) for s in shape)
        n = int(np.prod(shape)) if shape else 1
        u = np.asarray(self.source.random(2 * n), dtype=np.float64).reshape(n, 2)
        radius = np.sqrt(-2.0 * np.log(1.0 - u[:, 0]))
        theta = 2.0 * math.pi * u[:, 1]
        return (radius * np.cos(theta)).astype(np.float32).reshape(shape)


def randn_tensor(
    shape: Union[Tuple[int, ...], Sequence[int]],
    seed: Optional[int] = None,
    scale: float = 1.0,
    generator: Optional[BoxMullerGenerator] = None,
) -> np.ndarray:
    """Generate a float32 tensor of N(0, scale²) noise.

    Args:
        shape:     Shape of the output tensor.
        seed:      Seed used when no ``generator`` is given.
        scale:     Multiplier applied to every standard-normal draw.
        generator: Stream to draw from (continues its state).

    Returns:
        ``float32(z) * float32(scale)`` elementwise.
    """
    if generator is None:
        generator = BoxMullerGenerator(seed)
    return generator.standard_normal(shape) * np.float32(scale)


def generate_latent_sample(
    height: int,
    width: int,
    seed: Optional[int] = None,
    scale: float = 1.0,
    generator: Optional[BoxMullerGenerator] = None,
) -> np.ndarray:
    """Initial latent of shape [1, 4, height/8, width/8]."""
    if height % LATENT_SCALE or width % LATENT_SCALE:
        raise ConfigurationError(
            f"height and width must be multiples of {LATENT_SCALE}, "
            f"got {height}x{width}"
        )
    shape = (1, LATENT_CHANNELS, height // LATENT_SCALE, width // LATENT_SCALE)
    return randn_tensor(shape, seed=seed, scale=scale, generator=generator)


# ═════════════════════════════════════════════════════════════════════
#  Classifier-Free Guidance
# ═════════════════════════════════════════════════════════════════════

def perform_guidance(
    noise_pred_uncond: np.ndarray,
    noise_pred_text: np.ndarray,
    guidance_scale: float = 7.5,
) -> np.ndarray:
    """Combine unconditional and conditional noise predictions::

        guided = uncond + guidance_scale * (cond - uncond)

    A scale of 0 returns ``uncond``, a scale of 1 returns ``cond``.
    """
    if noise_pred_uncond.shape != noise_pred_text.shape:
        raise ValueError(
            f"Guidance inputs differ in shape: {noise_pred_uncond.shape} "
            f"vs {noise_pred_text.shape}"
        )
    if guidance_scale == 0.0:
        return np.array(noise_pred_uncond, dtype=np.float32)
    if guidance_scale == 1.0:
        return np.array(noise_pred_text, dtype=np.float32)
    delta = subtract_tensors(noise_pred_text, noise_pred_uncond)
    return add_tensors(noise_pred_uncond, multiply_by_float(delta, guidance_scale))


# ═════════════════════════════════════════════════════════════════════
#  Beta-schedule builder (public API)
# ═════════════════════════════════════════════════════════════════════

def get_beta_schedule(
    schedule: str,
    num_timesteps: int = 1000,
    beta_start: float = 0.00085,
    beta_end: float = 0.012,
) -> np.ndarray:
    """Construct a beta noise schedule.

    Args:
        schedule:       One of ``'linear'``, ``'scaled_linear'``,
                        ``'squaredcos_cap_v2'``.
        num_timesteps:  Number of diffusion timesteps.
        beta_start:     Starting beta value (for linear / scaled_linear).
        beta_end:       Ending beta value.

    Returns:
        1-D float32 numpy array of length ``num_timesteps``.
    """
    if schedule == 'linear':
        return np.linspace(beta_start, beta_end, num_timesteps,
                           dtype=np.float32)
    elif schedule == 'scaled_linear':
        return (np.linspace(beta_start ** 0.5, beta_end ** 0.5,
                            num_timesteps, dtype=np.float32) ** 2)
    elif schedule == 'squaredcos_cap_v2':
        steps = np.arange(num_timesteps + 1, dtype=np.float64) / num_timesteps
        alpha_bar = np.cos((steps + 0.008) / 1.008 * math.pi / 2) ** 2
        alpha_bar = alpha_bar / alpha_bar[0]
        betas = 1 - alpha_bar[1:] / alpha_bar[:-1]
        return np.clip(betas, 0.0, 0.999).astype(np.float32)
    else:
        raise ConfigurationError(f"Unknown beta schedule: {schedule!r}")


# ═════════════════════════════════════════════════════════════════════
#  Exports
# ═════════════════════════════════════════════════════════════════════

__all__ = [
    'UniformSource',
    'PCG64Source',
    'BoxMullerGenerator',
    'randn_tensor',
    'generate_latent_sample',
    'perform_guidance',
    'get_beta_schedule',
    'LATENT_CHANNELS',
    'LATENT_SCALE',
]
