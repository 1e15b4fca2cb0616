# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Configuration objects for a generation.

Two dataclasses mirror the two things a caller chooses:

- :class:`DiffuserConfig`   — which integration scheme to use and the
  noise schedule it was trained with.
- :class:`GenerationConfig` — image size, step count, guidance, seed.

:class:`PipelineConfig` bundles both and can be read from YAML::

    generation:
      height: 512
      width: 512
      num_inference_steps: 20
      guidance_scale: 7.5
      seed: 42
    diffuser:
      diffuser_type: linear-multistep
"""
from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import ConfigurationError

BETA_SCHEDULES = ('linear', 'scaled_linear', 'squaredcos_cap_v2')
PREDICTION_TYPES = ('epsilon', 'v_prediction')


class DiffuserType(str, enum.Enum):
    """Scheduler tags shipped with sdsampler."""
    LMS = 'linear-multistep'
    EULER_ANCESTRAL = 'euler-ancestral'

    def __str__(self) -> str:
        return self.value


def _from_mapping(cls, data: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown {cls.__name__} keys: {unknown}. Valid keys: {sorted(known)}"
        )
    return cls(**data)


class _ConfigMixin:

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False,
                         sort_keys=False, indent=2)


@dataclass
class DiffuserConfig(_ConfigMixin):
    r"""Scheduler selection and training noise schedule."""

    diffuser_type: str = field(
        default=DiffuserType.LMS.value,
        metadata={"help": "Scheduler tag, e.g. 'linear-multistep' or 'euler-ancestral'."},
    )
    num_train_timesteps: int = field(
        default=1000,
        metadata={"help": "Number of diffusion steps the model was trained with."},
    )
    beta_start: float = field(
        default=0.00085,
        metadata={"help": "First beta of the training noise schedule."},
    )
    beta_end: float = field(
        default=0.012,
        metadata={"help": "Last beta of the training noise schedule."},
    )
    beta_schedule: str = field(
        default='scaled_linear',
        metadata={"help": f"One of {BETA_SCHEDULES}."},
    )
    trained_betas: Optional[List[float]] = field(
        default=None,
        metadata={"help": "Explicit betas; overrides beta_start/end/schedule."},
    )
    prediction_type: str = field(
        default='epsilon',
        metadata={"help": f"What the denoiser predicts, one of {PREDICTION_TYPES}."},
    )

    def __post_init__(self):
        if isinstance(self.diffuser_type, DiffuserType):
            self.diffuser_type = self.diffuser_type.value
        if not isinstance(self.diffuser_type, str) or not self.diffuser_type:
            raise ConfigurationError(
                f"diffuser_type must be a non-empty string, got {self.diffuser_type!r}"
            )
        if self.num_train_timesteps < 1:
            raise ConfigurationError(
                f"num_train_timesteps must be positive, got {self.num_train_timesteps}"
            )
        if self.beta_schedule not in BETA_SCHEDULES:
            raise ConfigurationError(
                f"Unknown beta schedule: {self.beta_schedule!r}. "
                f"Expected one of {BETA_SCHEDULES}"
            )
        if self.prediction_type not in PREDICTION_TYPES:
            raise ConfigurationError(
                f"Unknown prediction type: {self.prediction_type!r}. "
                f"Expected one of {PREDICTION_TYPES}"
            )
        if self.trained_betas is not None:
            self.trained_betas = [float(b) for b in self.trained_betas]
            if len(self.trained_betas) != self.num_train_timesteps:
                raise ConfigurationError(
                    f"trained_betas has {len(self.trained_betas)} entries, "
                    f"expected num_train_timesteps={self.num_train_timesteps}"
                )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiffuserConfig':
        return _from_mapping(cls, data)


@dataclass
class GenerationConfig(_ConfigMixin):
    r"""Per-generation parameters."""

    height: int = field(
        default=512,
        metadata={"help": "Output image height in pixels (multiple of 8)."},
    )
    width: int = field(
        default=512,
        metadata={"help": "Output image width in pixels (multiple of 8)."},
    )
    num_inference_steps: int = field(
        default=20,
        metadata={"help": "Number of denoising steps."},
    )
    guidance_scale: float = field(
        default=7.5,
        metadata={"help": "Classifier-free guidance weight."},
    )
    seed: int = field(
        default=42,
        metadata={"help": "Seed for the latent and ancestral noise generator."},
    )
    show_progress: bool = field(
        default=True,
        metadata={"help": "Show a progress bar over the denoising loop."},
    )

    def __post_init__(self):
        for name in ('height', 'width'):
            value = getattr(self, name)
            if value <= 0 or value % 8 != 0:
                raise ConfigurationError(
                    f"{name} must be a positive multiple of 8, got {value}"
                )
        if self.num_inference_steps < 1:
            raise ConfigurationError(
                f"num_inference_steps must be >= 1, got {self.num_inference_steps}"
            )
        if self.seed < 0:
            raise ConfigurationError(f"seed must be non-negative, got {self.seed}")

    @property
    def latent_shape(self) -> tuple:
        """Shape of the batch-of-one latent, [1, 4, H/8, W/8]."""
        return (1, 4, self.height // 8, self.width // 8)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GenerationConfig':
        return _from_mapping(cls, data)


@dataclass
class PipelineConfig(_ConfigMixin):
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    diffuser: DiffuserConfig = field(default_factory=DiffuserConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        data = dict(data or {})
        unknown = sorted(set(data) - {'generation', 'diffuser'})
        if unknown:
            raise ConfigurationError(f"Unknown config sections: {unknown}")
        return cls(
            generation=GenerationConfig.from_dict(data.get('generation') or {}),
            diffuser=DiffuserConfig.from_dict(data.get('diffuser') or {}),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'PipelineConfig':
        with open(path, 'r', encoding='utf-8') as fh:
            data = yaml.safe_load(fh)
        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(
                f"{path}: expected a mapping at the top level, got {type(data).__name__}"
            )
        return cls.from_dict(data or {})


__all__ = [
    'DiffuserType',
    'DiffuserConfig',
    'GenerationConfig',
    'PipelineConfig',
    'BETA_SCHEDULES',
    'PREDICTION_TYPES',
]
