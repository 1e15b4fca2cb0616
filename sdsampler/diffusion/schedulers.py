# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Noise schedulers for latent diffusion sampling.

Both schedulers integrate the probability-flow of a model trained on a
discrete β schedule, expressed in sigma space
(σ_t = sqrt((1 − ᾱ_t) / ᾱ_t)):

- **LMSDiscreteScheduler** — linear multi-step (Adams–Bashforth style)
  integration over a bounded history of derivatives.
- **EulerAncestralDiscreteScheduler** — Euler step to σ_down followed by
  fresh noise of scale σ_up (ancestral sampling).

Schedulers are picked by tag through :func:`get_scheduler`; new schemes
subclass :class:`SchedulerBase` and call :func:`register_scheduler`.

A scheduler instance belongs to exactly one generation.  The call order
is fixed::

    timesteps = scheduler.set_timesteps(n)
    for t in timesteps:
        model_input = scheduler.scale_model_input(latents, t)
        ...
        latents = scheduler.step(noise_pred, t, latents)
"""
from __future__ import annotations

import abc
import math
from typing import Dict, List, Optional, Type

import numpy as np
from scipy import integrate

from sdsampler.config import DiffuserConfig, DiffuserType
from sdsampler.errors import ConfigurationError, SequenceStateError
from sdsampler.tensor import divide_by_float, sum_tensors
from sdsampler.utils.logging import setup_logger
from sdsampler.diffusion.utils import BoxMullerGenerator, get_beta_schedule

logger = setup_logger(__name__)


# ═════════════════════════════════════════════════════════════════════
#  SchedulerBase
# ═════════════════════════════════════════════════════════════════════

class SchedulerBase(abc.ABC):
    """Common contract and sigma bookkeeping for discrete schedulers.

    Args:
        config:    Noise schedule and prediction type.  Defaults to
                   :class:`DiffuserConfig` (Stable Diffusion v1 values).
        generator: Noise stream for schemes that inject noise.
    """

    def __init__(self, config: Optional[DiffuserConfig] = None,
                 generator: Optional[BoxMullerGenerator] = None):
        self.config = config or DiffuserConfig()
        self.num_train_timesteps = self.config.num_train_timesteps
        self.prediction_type = self.config.prediction_type
        self.generator = generator

        if self.config.trained_betas is not None:
            self.betas = np.asarray(self.config.trained_betas, dtype=np.float32)
        else:
            self.betas = get_beta_schedule(
                self.config.beta_schedule, self.num_train_timesteps,
                self.config.beta_start, self.config.beta_end)
        self.alphas = 1.0 - self.betas
        self.alphas_cumprod = np.cumprod(self.alphas).astype(np.float32)

        # sigma = sqrt((1 - alpha_bar) / alpha_bar), indexed by training timestep
        self.sigmas_full = np.sqrt(
            (1.0 - self.alphas_cumprod) / self.alphas_cumprod
        ).astype(np.float32)

        self.timesteps: Optional[np.ndarray] = None
        self.sigmas: Optional[np.ndarray] = None
        self.num_inference_steps: Optional[int] = None
        self._step_index: Optional[int] = None

    # ---- schedule ----

    def set_timesteps(self, num_inference_steps: int) -> np.ndarray:
        """Build the timestep and sigma schedule.

        The training range is subsampled evenly and reversed, latest
        timestep first.  Sigmas are interpolated at the exact (float)
        positions and get a terminal 0.0 appended.  Restarts the sequence
        and clears any scheme state.

        Returns:
            A copy of the int64 timestep schedule, strictly decreasing.
        """
        n = int(num_inference_steps)
        if n < 1 or n > self.num_train_timesteps:
            raise ConfigurationError(
                f"num_inference_steps must be in [1, {self.num_train_timesteps}], "
                f"got {num_inference_steps}"
            )
        schedule = np.linspace(0, self.num_train_timesteps - 1, n,
                               dtype=np.float64)[::-1].copy()
        sigmas = np.interp(schedule, np.arange(self.num_train_timesteps),
                           self.sigmas_full)

        self.timesteps = schedule.astype(np.int64)
        self.sigmas = np.append(sigmas, 0.0).astype(np.float32)
        self.num_inference_steps = n
        self._step_index = 0
        self._reset_state()
        logger.debug("set_timesteps | n=%d first=%d last=%d sigma_max=%.4f",
                     n, self.timesteps[0], self.timesteps[-1], self.sigmas[0])
        return self.timesteps.copy()

    @property
    def init_noise_sigma(self) -> float:
        """Standard deviation of the initial noise (largest training sigma)."""
        return float(self.sigmas_full.max())

    @property
    def step_index(self) -> Optional[int]:
        """Index of the next timestep to be stepped, None before scheduling."""
        return self._step_index

    def _check_timestep(self, timestep, op: str) -> int:
        if self.timesteps is None:
            raise SequenceStateError(f"{op}() called before set_timesteps()")
        if self._step_index >= len(self.timesteps):
            raise SequenceStateError(
                f"{op}() called after the last of {len(self.timesteps)} timesteps"
            )
        expected = int(self.timesteps[self._step_index])
        if float(timestep) != expected:
            raise SequenceStateError(
                f"{op}() got timestep {timestep!r} but the next scheduled "
                f"timestep is {expected} (step {self._step_index})"
            )
        return self._step_index

    # ---- per-step API ----

    def scale_model_input(self, sample: np.ndarray, timestep: int) -> np.ndarray:
        """Divide the latent by sqrt(σ² + 1) before it is fed to the denoiser."""
        idx = self._check_timestep(timestep, 'scale_model_input')
        sigma = self.sigmas[idx]
        return divide_by_float(sample, np.sqrt(sigma ** 2 + 1))

    def step(self, model_output: np.ndarray, timestep: int,
             sample: np.ndarray) -> np.ndarray:
        """Advance the latent by one timestep and return the new latent."""
        if model_output.shape != sample.shape:
            raise ValueError(
                f"model_output shape {model_output.shape} does not match "
                f"sample shape {sample.shape}"
            )
        idx = self._check_timestep(timestep, 'step')
        prev = self._step(model_output, sample, idx)
        self._step_index += 1
        return prev.astype(np.float32)

    def _predict_original_sample(self, model_output: np.ndarray,
                                 sample: np.ndarray,
                                 sigma: np.float32) -> np.ndarray:
        if self.prediction_type == 'epsilon':
            return sample - sigma * model_output
        elif self.prediction_type == 'v_prediction':
            return model_output * (-sigma / np.sqrt(sigma ** 2 + 1)) + \
                   sample / (sigma ** 2 + 1)
        raise ConfigurationError(f"Unknown prediction type: {self.prediction_type!r}")

    def _reset_state(self):
        pass

    @abc.abstractmethod
    def _step(self, model_output: np.ndarray, sample: np.ndarray,
              step_index: int) -> np.ndarray:
        ...


# ═════════════════════════════════════════════════════════════════════
#  LMSDiscreteScheduler
# ═════════════════════════════════════════════════════════════════════

class LMSDiscreteScheduler(SchedulerBase):
    """Linear multi-step scheduler for discrete sigma schedules.

    Keeps the last ``order`` ODE derivatives and combines them with
    coefficients obtained by integrating the Lagrange basis polynomials
    through the previous sigmas over [σ_i, σ_{i+1}].  The first steps run
    at lower order until enough history is available.

    Args:
        config:    Noise schedule configuration.
        generator: Unused; accepted so every scheduler shares one signature.
        order:     Maximum multistep order.
    """

    def __init__(self, config: Optional[DiffuserConfig] = None,
                 generator: Optional[BoxMullerGenerator] = None,
                 order: int = 4):
        super().__init__(config, generator)
        if order < 1:
            raise ConfigurationError(f"LMS order must be >= 1, got {order}")
        self.order = order
        self._derivatives: List[np.ndarray] = []

    def _reset_state(self):
        self._derivatives = []

    def get_lms_coefficient(self, order: int, t: int, current_order: int) -> float:
        """Integrate the ``current_order``-th Lagrange basis polynomial."""
        sigmas = self.sigmas.astype(np.float64)

        def lms_derivative(tau):
            prod = 1.0
            for k in range(order):
                if current_order == k:
                    continue
                prod *= (tau - sigmas[t - k]) / \
                        (sigmas[t - current_order] - sigmas[t - k])
            return prod

        return integrate.quad(lms_derivative, sigmas[t], sigmas[t + 1],
                              epsrel=1e-4)[0]

    def _step(self, model_output, sample, step_index):
        sigma = self.sigmas[step_index]
        pred_original = self._predict_original_sample(model_output, sample, sigma)

        derivative = ((sample - pred_original) / sigma).astype(np.float32)
        self._derivatives.append(derivative)
        if len(self._derivatives) > self.order:
            self._derivatives.pop(0)

        order = min(step_index + 1, self.order)
        coeffs = [self.get_lms_coefficient(order, step_index, k)
                  for k in range(order)]

        update = sum_tensors(
            np.float32(coeff) * d
            for coeff, d in zip(coeffs, reversed(self._derivatives))
        )
        return sample + update


# ═════════════════════════════════════════════════════════════════════
#  EulerAncestralDiscreteScheduler
# ═════════════════════════════════════════════════════════════════════

class EulerAncestralDiscreteScheduler(SchedulerBase):
    """Ancestral Euler sampler.

    Each step moves deterministically from σ_i down to σ_down and then
    re-injects fresh Gaussian noise of scale σ_up so that the marginal
    noise level lands on σ_{i+1}.

    Args:
        config:    Noise schedule configuration.
        generator: Noise stream for the injected noise.  A stream seeded
                   with 0 is used when omitted.
    """

    def __init__(self, config: Optional[DiffuserConfig] = None,
                 generator: Optional[BoxMullerGenerator] = None):
        super().__init__(config, generator or BoxMullerGenerator(0))

    def _step(self, model_output, sample, step_index):
        sigma_from = float(self.sigmas[step_index])
        sigma_to = float(self.sigmas[step_index + 1])
        pred_original = self._predict_original_sample(
            model_output, sample, self.sigmas[step_index])

        sigma_up = math.sqrt(
            sigma_to ** 2 * (sigma_from ** 2 - sigma_to ** 2) / sigma_from ** 2)
        sigma_down = math.sqrt(max(sigma_to ** 2 - sigma_up ** 2, 0.0))

        derivative = (sample - pred_original) / np.float32(sigma_from)
        dt = np.float32(sigma_down - sigma_from)
        prev = sample + derivative * dt

        noise = self.generator.standard_normal(sample.shape)
        return prev + noise * np.float32(sigma_up)


# ═════════════════════════════════════════════════════════════════════
#  Registry
# ═════════════════════════════════════════════════════════════════════

_SCHEDULER_REGISTRY: Dict[str, Type[SchedulerBase]] = {
    DiffuserType.LMS.value: LMSDiscreteScheduler,
    DiffuserType.EULER_ANCESTRAL.value: EulerAncestralDiscreteScheduler,
}


def register_scheduler(tag: str, scheduler_cls: Type[SchedulerBase]) -> None:
    """Make ``scheduler_cls`` selectable as ``DiffuserConfig(diffuser_type=tag)``."""
    if not (isinstance(scheduler_cls, type) and issubclass(scheduler_cls, SchedulerBase)):
        raise ConfigurationError(
            f"{scheduler_cls!r} does not implement SchedulerBase"
        )
    _SCHEDULER_REGISTRY[str(tag)] = scheduler_cls
    logger.debug("Registered scheduler: %s -> %s", tag, scheduler_cls.__name__)


def list_schedulers() -> Dict[str, Type[SchedulerBase]]:
    """All registered tags and their scheduler classes."""
    return _SCHEDULER_REGISTRY.copy()


def get_scheduler(config: Optional[DiffuserConfig] = None,
                  generator: Optional[BoxMullerGenerator] = None) -> SchedulerBase:
    """Construct a fresh scheduler for ``config.diffuser_type``.

    Raises:
        ConfigurationError: If the tag is not registered.
    """
    config = config or DiffuserConfig()
    tag = str(config.diffuser_type)
    if tag not in _SCHEDULER_REGISTRY:
        raise ConfigurationError(
            f"Unknown scheduler {tag!r}. "
            f"Registered schedulers: {sorted(_SCHEDULER_REGISTRY)}"
        )
    return _SCHEDULER_REGISTRY[tag](config, generator)


# ═════════════════════════════════════════════════════════════════════
#  Public exports
# ═════════════════════════════════════════════════════════════════════

__all__ = [
    'SchedulerBase',
    'LMSDiscreteScheduler',
    'EulerAncestralDiscreteScheduler',
    'register_scheduler',
    'list_schedulers',
    'get_scheduler',
]
