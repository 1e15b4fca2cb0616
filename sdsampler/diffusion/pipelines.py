# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Diffusion pipelines — end-to-end text-to-image sampling.

- **DiffusionPipeline** — base class with shared logic (noise init,
  decoding, progress bar).
- **StableDiffusionPipeline** — latent-diffusion sampling loop driving
  external tokenizer / text encoder / denoiser / decoder engines with
  classifier-free guidance.

A generation moves through the states of :class:`PipelineState`::

    INITIALIZING → DENOISING → DECODING → DONE

It can be cancelled cooperatively between timesteps; in that case the
decoder is never called and the result carries
``GenerationStatus.CANCELLED`` instead of an image.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import numpy as np
from tqdm.auto import tqdm

from sdsampler.config import DiffuserConfig, GenerationConfig
from sdsampler.errors import ExternalEngineError
from sdsampler.tensor import duplicate, multiply_by_float, split_tensor
from sdsampler.utils.logging import setup_logger
from sdsampler.diffusion.conditioning import TextConditioner
from sdsampler.diffusion.engines import InferenceEngines, engine_stage
from sdsampler.diffusion.schedulers import SchedulerBase, get_scheduler
from sdsampler.diffusion.utils import (
    BoxMullerGenerator,
    generate_latent_sample,
    perform_guidance,
)

logger = setup_logger(__name__)

StepCallback = Callable[[int, int, np.ndarray], None]


class PipelineState(enum.Enum):
    INITIALIZING = 'initializing'
    DENOISING = 'denoising'
    DECODING = 'decoding'
    DONE = 'done'


class GenerationStatus(enum.Enum):
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'


class CancelEvent(Protocol):
    def is_set(self) -> bool:
        ...


@dataclass
class GenerationResult:
    """Outcome of one ``run_inference`` call.

    ``image`` is the decoder output for completed generations and ``None``
    for cancelled ones.  ``state`` is where the generation stopped.
    """

    status: GenerationStatus
    state: PipelineState
    image: Optional[np.ndarray]
    steps_completed: int
    timesteps: np.ndarray

    @property
    def cancelled(self) -> bool:
        return self.status is GenerationStatus.CANCELLED


# ═════════════════════════════════════════════════════════════════════
#  DiffusionPipeline — base class
# ═════════════════════════════════════════════════════════════════════

class DiffusionPipeline:
    """Base class for diffusion generation pipelines.

    Provides:
    - ``prepare_latents`` — seeded initial noise scaled for the scheduler.
    - ``decode_latents`` — undo the latent scaling and run the decoder.
    - ``progress_bar`` — tqdm bar over the denoising loop.
    """

    engines: InferenceEngines
    vae_scaling_factor: float = 0.18215

    def prepare_latents(self, config: GenerationConfig,
                        scheduler: SchedulerBase,
                        generator: BoxMullerGenerator) -> np.ndarray:
        """Create initial noise latents of shape [1, 4, H/8, W/8]."""
        return generate_latent_sample(
            config.height, config.width,
            scale=scheduler.init_noise_sigma, generator=generator)

    def decode_latents(self, latents: np.ndarray,
                       config: GenerationConfig) -> np.ndarray:
        """Scale latents by 1 / vae_scaling_factor and decode them."""
        latents = multiply_by_float(latents, 1.0 / self.vae_scaling_factor)
        with engine_stage('decode'):
            image = self.engines.decoder(latents)
        image = np.array(image, dtype=np.float32, copy=True)

        expected = (1, 3, config.height, config.width)
        if image.shape != expected:
            raise ExternalEngineError(
                'decode', f"decoder returned shape {image.shape}, expected {expected}")
        return image

    def progress_bar(self, total: int, desc: str = '', disable: bool = False):
        return tqdm(total=total, desc=desc, disable=disable)

    def run_inference(self, *args, **kwargs):
        raise NotImplementedError("Subclasses must implement run_inference")

    def __call__(self, *args, **kwargs):
        return self.run_inference(*args, **kwargs)


# ═════════════════════════════════════════════════════════════════════
#  StableDiffusionPipeline
# ═════════════════════════════════════════════════════════════════════

class StableDiffusionPipeline(DiffusionPipeline):
    """Stable Diffusion latent-diffusion sampling loop.

    1. Encode prompt → paired text embeddings.
    2. Initialise seeded latent noise.
    3. Iterative denoising with classifier-free guidance.
    4. Decode latents.

    Every call builds its own scheduler, noise generator, latents, and
    embeddings, so concurrent calls share nothing mutable; only the
    engines are shared.

    Args:
        engines:         The external engines.  Released by :meth:`close`
                         or on leaving a ``with`` block.
        diffuser_config: Default scheduler configuration.
    """

    def __init__(self, engines: InferenceEngines,
                 diffuser_config: Optional[DiffuserConfig] = None):
        self.engines = engines
        self.diffuser_config = diffuser_config or DiffuserConfig()
        self.conditioner = TextConditioner(engines.tokenizer, engines.text_encoder)

    def run_inference(
        self,
        prompt: str,
        config: Optional[GenerationConfig] = None,
        diffuser_config: Optional[DiffuserConfig] = None,
        cancel_event: Optional[CancelEvent] = None,
        callback: Optional[StepCallback] = None,
    ) -> GenerationResult:
        """Generate one image for ``prompt``.

        Args:
            prompt:          Text prompt.
            config:          Size, steps, guidance, seed.
            diffuser_config: Overrides the pipeline's scheduler config.
            cancel_event:    Checked before every step; when set, the loop
                             stops and a cancelled result is returned.
            callback:        ``callback(step, timestep, latents)`` after
                             every completed step.

        Returns:
            :class:`GenerationResult`; ``image`` is [1, 3, H, W] as produced
            by the decoder.

        Raises:
            ConfigurationError: Bad configuration or over-long prompt.
            ExternalEngineError: Any engine failure, tagged with its stage.
        """
        if self.engines.closed:
            raise RuntimeError("Pipeline engines have been released")
        config = config or GenerationConfig()
        diffuser_config = diffuser_config or self.diffuser_config

        state = PipelineState.INITIALIZING
        generator = BoxMullerGenerator(config.seed)
        scheduler = get_scheduler(diffuser_config, generator)
        timesteps = scheduler.set_timesteps(config.num_inference_steps)
        logger.info(
            "generate | scheduler=%s steps=%d size=%dx%d guidance=%.2f seed=%d",
            diffuser_config.diffuser_type, len(timesteps), config.width,
            config.height, config.guidance_scale, config.seed)

        text_embeddings = self.conditioner.assemble(prompt)
        latents = self.prepare_latents(config, scheduler, generator)

        latent_shape = config.latent_shape
        batch_shape = (2,) + latent_shape[1:]

        state = PipelineState.DENOISING
        with self.progress_bar(total=len(timesteps), desc='denoise',
                               disable=not config.show_progress) as bar:
            for i, t in enumerate(timesteps):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("cancelled | after %d/%d steps", i, len(timesteps))
                    return GenerationResult(
                        status=GenerationStatus.CANCELLED, state=state,
                        image=None, steps_completed=i, timesteps=timesteps)

                # [1, 4, h, w] -> [2, 4, h, w]: uncond / cond branches
                latent_model_input = duplicate(latents, batch_shape)
                latent_model_input = scheduler.scale_model_input(latent_model_input, t)

                with engine_stage('denoise'):
                    noise_pred = self.engines.denoiser(
                        text_embeddings, latent_model_input, np.int64(t))
                noise_pred = np.asarray(noise_pred, dtype=np.float32)
                if noise_pred.shape != batch_shape:
                    raise ExternalEngineError(
                        'denoise',
                        f"denoiser returned shape {noise_pred.shape}, expected {batch_shape}")

                noise_pred_uncond, noise_pred_text = split_tensor(noise_pred, latent_shape)
                noise_pred = perform_guidance(
                    noise_pred_uncond, noise_pred_text, config.guidance_scale)

                latents = scheduler.step(noise_pred, t, latents)
                logger.debug("step %d | t=%d min=%.5f max=%.5f",
                             i, t, latents.min(), latents.max())

                bar.update()
                if callback is not None:
                    callback(i + 1, int(t), latents)

        state = PipelineState.DECODING
        image = self.decode_latents(latents, config)

        state = PipelineState.DONE
        logger.info("done | image=%s", image.shape)
        return GenerationResult(
            status=GenerationStatus.COMPLETED, state=state, image=image,
            steps_completed=len(timesteps), timesteps=timesteps)

    def close(self) -> None:
        self.engines.close()

    def __enter__(self) -> 'StableDiffusionPipeline':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ═════════════════════════════════════════════════════════════════════
#  Exports
# ═════════════════════════════════════════════════════════════════════

__all__ = [
    'PipelineState',
    'GenerationStatus',
    'GenerationResult',
    'CancelEvent',
    'DiffusionPipeline',
    'StableDiffusionPipeline',
]
