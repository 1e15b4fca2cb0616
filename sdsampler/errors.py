# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Exception types raised by the sampling core.

Every failure is fatal to the generation in progress; nothing here is
retried.  Cancellation is reported through the pipeline result, not as an
exception.
"""
from __future__ import annotations


class SamplerError(Exception):
    """Base class for all sdsampler errors."""


class ConfigurationError(SamplerError, ValueError):
    """Invalid configuration: unknown scheduler tag, bad image size, etc."""


class SequenceStateError(SamplerError, RuntimeError):
    """A scheduler was driven out of order.

    Raised when ``step`` / ``scale_model_input`` is called before
    ``set_timesteps``, with a timestep other than the next scheduled one,
    or after the schedule has been exhausted.
    """


class ExternalEngineError(SamplerError, RuntimeError):
    """An external inference engine failed.

    ``stage`` names the engine call that failed (``tokenize``, ``encode``,
    ``denoise`` or ``decode``).  The engine's own exception, if any, is
    chained as ``__cause__``.
    """

    STAGES = ('tokenize', 'encode', 'denoise', 'decode')

    def __init__(self, stage: str, message: str):
        if stage not in self.STAGES:
            raise ValueError(f"Unknown engine stage: {stage!r}")
        self.stage = stage
        super().__init__(f"[{stage}] {message}")


__all__ = [
    'SamplerError',
    'ConfigurationError',
    'SequenceStateError',
    'ExternalEngineError',
]
