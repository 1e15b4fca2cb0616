# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""sdsampler.diffusion — Schedulers, conditioning, engines, and pipelines.

Provides the Stable Diffusion sampling loop around externally supplied
inference engines: noise schedulers (LMS, Euler ancestral), seeded
Box–Muller latent noise, prompt conditioning, and the generation
pipeline.

Usage::

    from sdsampler.diffusion import (
        LMSDiscreteScheduler,
        EulerAncestralDiscreteScheduler,
        get_scheduler,
        InferenceEngines,
        SessionEngines,
        StableDiffusionPipeline,
    )
"""
from __future__ import annotations

# ── Utilities ──
from .utils import (
    BoxMullerGenerator,
    PCG64Source,
    randn_tensor,
    generate_latent_sample,
    perform_guidance,
    get_beta_schedule,
)

# ── Schedulers ──
from .schedulers import (
    SchedulerBase,
    LMSDiscreteScheduler,
    EulerAncestralDiscreteScheduler,
    register_scheduler,
    list_schedulers,
    get_scheduler,
)

# ── Engines ──
from .engines import (
    InferenceEngines,
    SessionEngines,
    engine_stage,
)

# ── Conditioning ──
from .conditioning import TextConditioner

# ── Pipelines ──
from .pipelines import (
    DiffusionPipeline,
    StableDiffusionPipeline,
    GenerationResult,
    GenerationStatus,
    PipelineState,
)

__all__ = [
    # Utilities
    'BoxMullerGenerator',
    'PCG64Source',
    'randn_tensor',
    'generate_latent_sample',
    'perform_guidance',
    'get_beta_schedule',
    # Schedulers
    'SchedulerBase',
    'LMSDiscreteScheduler',
    'EulerAncestralDiscreteScheduler',
    'register_scheduler',
    'list_schedulers',
    'get_scheduler',
    # Engines
    'InferenceEngines',
    'SessionEngines',
    'engine_stage',
    # Conditioning
    'TextConditioner',
    # Pipelines
    'DiffusionPipeline',
    'StableDiffusionPipeline',
    'GenerationResult',
    'GenerationStatus',
    'PipelineState',
]
