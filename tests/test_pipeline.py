# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""End-to-end generation with stub engines: arithmetic chain, cancellation, failures."""
import threading

import numpy as np
import pytest

from sdsampler import (
    ConfigurationError,
    DiffuserConfig,
    ExternalEngineError,
    GenerationConfig,
)
from sdsampler.diffusion import (
    BoxMullerGenerator,
    GenerationStatus,
    LMSDiscreteScheduler,
    PipelineState,
    StableDiffusionPipeline,
    generate_latent_sample,
)
from sdsampler.tensor import multiply_by_float


def test_red_apple_zero_noise(engines):
    config = GenerationConfig(height=512, width=512, num_inference_steps=20,
                              guidance_scale=7.5, seed=42, show_progress=False)
    pipe = StableDiffusionPipeline(
        engines, DiffuserConfig(diffuser_type='linear-multistep'))
    result = pipe.run_inference("a red apple", config)

    assert result.status is GenerationStatus.COMPLETED
    assert result.state is PipelineState.DONE
    assert result.steps_completed == 20
    assert result.image.shape == (1, 3, 512, 512)
    assert engines.tokenizer.prompts == ["a red apple"]

    # zero noise predictions leave the initial latent untouched, so the
    # decoder sees the seeded noise times 1 / 0.18215
    initial = generate_latent_sample(
        512, 512, generator=BoxMullerGenerator(42),
        scale=LMSDiscreteScheduler().init_noise_sigma)
    assert len(engines.decoder.inputs) == 1
    decoded_input = engines.decoder.inputs[0]
    assert decoded_input.shape == (1, 4, 64, 64)
    assert np.array_equal(decoded_input, multiply_by_float(initial, 1.0 / 0.18215))


def test_denoiser_receives_paired_batch(engines, small_config):
    pipe = StableDiffusionPipeline(engines)
    result = pipe("a red apple", small_config)

    calls = engines.denoiser.calls
    assert len(calls) == small_config.num_inference_steps
    for (hidden_shape, sample, timestep), t in zip(calls, result.timesteps):
        assert hidden_shape == (2, 77, 768)
        assert sample.shape == (2, 4, 8, 8)
        assert np.array_equal(sample[0], sample[1])
        assert isinstance(timestep, np.int64)
        assert timestep == t


def test_callback_sees_every_step(engines, small_config):
    seen = []
    pipe = StableDiffusionPipeline(engines)
    result = pipe.run_inference(
        "a red apple", small_config,
        callback=lambda step, t, latents: seen.append((step, t, latents.shape)))
    assert [s for s, _, _ in seen] == list(range(1, 9))
    assert [t for _, t, _ in seen] == list(result.timesteps)
    assert all(shape == (1, 4, 8, 8) for _, _, shape in seen)


def test_cancel_after_step_five(engines, cancel_event):
    config = GenerationConfig(height=64, width=64, num_inference_steps=20,
                              seed=42, show_progress=False)

    def on_step(step, t, latents):
        if step == 5:
            cancel_event.set()

    pipe = StableDiffusionPipeline(engines)
    result = pipe.run_inference("a red apple", config,
                                cancel_event=cancel_event, callback=on_step)

    assert result.status is GenerationStatus.CANCELLED
    assert result.cancelled
    assert result.image is None
    assert result.steps_completed == 5
    assert result.state is PipelineState.DENOISING
    assert len(engines.denoiser.calls) == 5
    assert engines.decoder.inputs == []


def test_cancel_before_first_step(engines, small_config, cancel_event):
    cancel_event.set()
    result = StableDiffusionPipeline(engines).run_inference(
        "a red apple", small_config, cancel_event=cancel_event)
    assert result.cancelled
    assert result.steps_completed == 0
    assert engines.denoiser.calls == []


def test_same_seed_same_result(engines, small_config):
    def noisy_denoiser(encoder_hidden_states, sample, timestep):
        return 0.05 * sample + 0.01 * encoder_hidden_states.mean()

    engines.denoiser = noisy_denoiser
    diffuser = DiffuserConfig(diffuser_type='euler-ancestral')
    pipe = StableDiffusionPipeline(engines, diffuser)
    pipe.run_inference("a red apple", small_config)
    pipe.run_inference("a red apple", small_config)
    other = GenerationConfig(height=64, width=64, num_inference_steps=8,
                             seed=7, show_progress=False)
    pipe.run_inference("a red apple", other)

    first, second, third = engines.decoder.inputs
    assert np.array_equal(first, second)
    assert not np.array_equal(first, third)


def test_concurrent_generations_are_independent(engines, small_config):
    expected = StableDiffusionPipeline(engines).run_inference(
        "a red apple", small_config)
    reference = engines.decoder.inputs[-1]

    pipe = StableDiffusionPipeline(engines)
    results = []
    threads = [
        threading.Thread(target=lambda: results.append(
            pipe.run_inference("a red apple", small_config)))
        for _ in range(3)
    ]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert len(results) == 3
    assert all(r.status is GenerationStatus.COMPLETED for r in results)
    assert all(np.array_equal(r.timesteps, expected.timesteps) for r in results)
    for latents in engines.decoder.inputs[1:]:
        assert np.array_equal(latents, reference)


def test_unknown_scheduler_fails_before_engines(engines, small_config):
    pipe = StableDiffusionPipeline(engines)
    with pytest.raises(ConfigurationError):
        pipe.run_inference("a red apple", small_config,
                           diffuser_config=DiffuserConfig(diffuser_type='heun'))
    assert engines.tokenizer.prompts == []


def test_denoiser_failure(engines, small_config):
    def broken(encoder_hidden_states, sample, timestep):
        raise RuntimeError("CUDA error: device-side assert triggered")

    engines.denoiser = broken
    with pytest.raises(ExternalEngineError) as info:
        StableDiffusionPipeline(engines).run_inference("a red apple", small_config)
    assert info.value.stage == 'denoise'
    assert engines.decoder.inputs == []


def test_denoiser_wrong_shape(engines, small_config):
    engines.denoiser = lambda hidden, sample, t: np.zeros((1, 4, 8, 8), np.float32)
    with pytest.raises(ExternalEngineError) as info:
        StableDiffusionPipeline(engines).run_inference("a red apple", small_config)
    assert info.value.stage == 'denoise'


def test_decoder_failure(engines, small_config):
    def broken(latent_sample):
        raise ValueError("bad latent")

    engines.decoder = broken
    with pytest.raises(ExternalEngineError) as info:
        StableDiffusionPipeline(engines).run_inference("a red apple", small_config)
    assert info.value.stage == 'decode'
    assert isinstance(info.value.__cause__, ValueError)


def test_decoder_wrong_shape(engines, small_config):
    engines.decoder = lambda latent_sample: np.zeros((1, 3, 8, 8), np.float32)
    with pytest.raises(ExternalEngineError) as info:
        StableDiffusionPipeline(engines).run_inference("a red apple", small_config)
    assert info.value.stage == 'decode'


def test_decoder_output_not_clipped(engines, small_config):
    engines.decoder = lambda latent_sample: np.full((1, 3, 64, 64), 3.0, np.float32)
    result = StableDiffusionPipeline(engines).run_inference("a red apple", small_config)
    assert result.image.max() == 3.0


def test_pipeline_releases_engines(engines, small_config):
    with StableDiffusionPipeline(engines) as pipe:
        pipe.run_inference("a red apple", small_config)
    assert engines.closed
    assert engines.tokenizer.closed == 1
    assert engines.decoder.closed == 1
    with pytest.raises(RuntimeError):
        pipe.run_inference("a red apple", small_config)


def test_pipeline_releases_engines_on_failure(engines, small_config):
    engines.denoiser.calls = None  # any append now fails inside the engine
    with pytest.raises(ExternalEngineError):
        with StableDiffusionPipeline(engines) as pipe:
            pipe.run_inference("a red apple", small_config)
    assert engines.closed
    assert engines.decoder.closed == 1
