# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""
SDSampler — the sampling core of a Stable Diffusion text-to-image pipeline.

NumPy implementation of the denoising loop: schedulers, seeded latent
noise, classifier-free guidance, and prompt conditioning.  Tokenizer,
text encoder, denoiser, and decoder are external engines supplied by
the caller.

Usage::

    from sdsampler import GenerationConfig, DiffuserConfig
    from sdsampler.diffusion import SessionEngines, StableDiffusionPipeline

    engines = SessionEngines.from_sessions(tok, clip, unet, vae)
    with StableDiffusionPipeline(engines) as pipe:
        result = pipe("a red apple", GenerationConfig(seed=42))
"""
from __future__ import annotations

__version__ = "0.1.0"
__author__ = "Pictofeed, LLC"

# ── Errors ──
from .errors import (
    SamplerError,
    ConfigurationError,
    SequenceStateError,
    ExternalEngineError,
)

# ── Configuration ──
from .config import (
    DiffuserType,
    DiffuserConfig,
    GenerationConfig,
    PipelineConfig,
)

# ── Sub-packages ──
from . import utils
from . import diffusion

__all__ = [
    "__version__",
    "__author__",

    # Errors
    'SamplerError', 'ConfigurationError',
    'SequenceStateError', 'ExternalEngineError',

    # Configuration
    'DiffuserType', 'DiffuserConfig', 'GenerationConfig', 'PipelineConfig',

    # Sub-packages
    'utils', 'diffusion',
]
