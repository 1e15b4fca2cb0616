# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Configuration validation, YAML loading, and logger setup."""
import logging

import pytest

from sdsampler import (
    ConfigurationError,
    DiffuserConfig,
    DiffuserType,
    GenerationConfig,
    PipelineConfig,
)
from sdsampler.utils.logging import setup_logger


def test_defaults():
    gen = GenerationConfig()
    assert (gen.height, gen.width) == (512, 512)
    assert gen.num_inference_steps == 20
    assert gen.guidance_scale == 7.5
    assert gen.latent_shape == (1, 4, 64, 64)

    diff = DiffuserConfig()
    assert diff.diffuser_type == 'linear-multistep'
    assert diff.num_train_timesteps == 1000


def test_diffuser_type_enum_normalized():
    cfg = DiffuserConfig(diffuser_type=DiffuserType.EULER_ANCESTRAL)
    assert cfg.diffuser_type == 'euler-ancestral'
    assert str(DiffuserType.LMS) == 'linear-multistep'


@pytest.mark.parametrize('kwargs', [
    {'height': 100},
    {'width': 0},
    {'num_inference_steps': 0},
    {'seed': -1},
])
def test_generation_config_invalid(kwargs):
    with pytest.raises(ConfigurationError):
        GenerationConfig(**kwargs)


@pytest.mark.parametrize('kwargs', [
    {'diffuser_type': ''},
    {'num_train_timesteps': 0},
    {'beta_schedule': 'cosine'},
    {'prediction_type': 'sample'},
    {'trained_betas': [0.1, 0.2]},
])
def test_diffuser_config_invalid(kwargs):
    with pytest.raises(ConfigurationError):
        DiffuserConfig(**kwargs)


def test_configuration_error_is_value_error():
    with pytest.raises(ValueError):
        GenerationConfig(height=7)


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigurationError, match='steps'):
        GenerationConfig.from_dict({'steps': 20})
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_dict({'model': {}})


def test_from_yaml(tmp_path):
    path = tmp_path / 'sampler.yaml'
    path.write_text(
        "generation:\n"
        "  height: 768\n"
        "  width: 512\n"
        "  num_inference_steps: 30\n"
        "  seed: 7\n"
        "diffuser:\n"
        "  diffuser_type: euler-ancestral\n"
    )
    cfg = PipelineConfig.from_yaml(path)
    assert cfg.generation.height == 768
    assert cfg.generation.num_inference_steps == 30
    assert cfg.generation.guidance_scale == 7.5
    assert cfg.diffuser.diffuser_type == 'euler-ancestral'


def test_from_yaml_empty_file(tmp_path):
    path = tmp_path / 'empty.yaml'
    path.write_text("")
    cfg = PipelineConfig.from_yaml(path)
    assert cfg.generation == GenerationConfig()


def test_from_yaml_requires_mapping(tmp_path):
    path = tmp_path / 'list.yaml'
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError):
        PipelineConfig.from_yaml(path)


def test_str_is_yaml():
    text = str(GenerationConfig(seed=3))
    assert 'height: 512' in text
    assert 'seed: 3' in text


def test_setup_logger_is_idempotent():
    logger = setup_logger('sdsampler.test_once')
    setup_logger('sdsampler.test_once')
    assert len(logger.handlers) == 1


def test_setup_logger_env_level(monkeypatch):
    monkeypatch.setenv('SDSAMPLER_LOG_LEVEL', 'debug')
    assert setup_logger('sdsampler.test_env').level == logging.DEBUG
    assert setup_logger('sdsampler.test_env', level='WARNING').level == logging.WARNING
