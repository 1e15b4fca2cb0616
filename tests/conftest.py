# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Shared fixtures: deterministic stand-ins for the external engines."""
import threading

import numpy as np
import pytest

from sdsampler.config import GenerationConfig
from sdsampler.diffusion import InferenceEngines

# "a red apple" under the CLIP vocabulary: <start> a red apple <end>
APPLE_IDS = [49406, 320, 736, 3055, 49407]


class StubTokenizer:
    def __init__(self, ids=None):
        self.ids = list(APPLE_IDS if ids is None else ids)
        self.prompts = []
        self.closed = 0

    def __call__(self, text):
        self.prompts.append(text)
        return np.array(self.ids, dtype=np.int64)

    def close(self):
        self.closed += 1


class StubTextEncoder:
    """Every embedding row is filled with its token id."""

    def __init__(self):
        self.calls = []
        self.closed = 0

    def __call__(self, input_ids):
        self.calls.append(np.array(input_ids))
        ids = np.asarray(input_ids, dtype=np.float32)
        return np.repeat(ids[..., None], 768, axis=-1)

    def close(self):
        self.closed += 1


class ZeroDenoiser:
    def __init__(self):
        self.calls = []
        self.closed = 0

    def __call__(self, encoder_hidden_states, sample, timestep):
        self.calls.append((encoder_hidden_states.shape, sample.copy(), timestep))
        return np.zeros_like(sample)

    def close(self):
        self.closed += 1


class RecordingDecoder:
    def __init__(self):
        self.inputs = []
        self.closed = 0

    def __call__(self, latent_sample):
        self.inputs.append(latent_sample.copy())
        _, _, h, w = latent_sample.shape
        return np.zeros((1, 3, h * 8, w * 8), dtype=np.float32)

    def close(self):
        self.closed += 1


@pytest.fixture
def engines():
    return InferenceEngines(
        tokenizer=StubTokenizer(),
        text_encoder=StubTextEncoder(),
        denoiser=ZeroDenoiser(),
        decoder=RecordingDecoder(),
    )


@pytest.fixture
def small_config():
    return GenerationConfig(height=64, width=64, num_inference_steps=8,
                            seed=42, show_progress=False)


@pytest.fixture
def cancel_event():
    return threading.Event()
