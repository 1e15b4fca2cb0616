# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""Text conditioning — prompt → paired (unconditional, conditional) embeddings.

The denoiser is run on a batch of two: slot 0 sees the embedding of an
all-blank token sequence, slot 1 the embedding of the prompt.  This module
builds that [2, 77, 768] tensor.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np

from sdsampler.errors import ConfigurationError, ExternalEngineError
from sdsampler.tensor import create_tensor
from sdsampler.utils.logging import setup_logger
from sdsampler.diffusion.engines import TextEncoder, Tokenizer, engine_stage

logger = setup_logger(__name__)

MODEL_MAX_LENGTH = 77
EMBEDDING_DIM = 768
BLANK_TOKEN_ID = 49407


class TextConditioner:
    """Tokenize and encode prompts for classifier-free guidance.

    Args:
        tokenizer:      External tokenizer engine.
        text_encoder:   External text encoder engine.
        max_length:     Fixed token sequence length.
        embedding_dim:  Width of one token embedding.
        blank_token_id: Id used for padding and for the unconditional input.
    """

    def __init__(
        self,
        tokenizer: Tokenizer,
        text_encoder: TextEncoder,
        max_length: int = MODEL_MAX_LENGTH,
        embedding_dim: int = EMBEDDING_DIM,
        blank_token_id: int = BLANK_TOKEN_ID,
    ):
        self.tokenizer = tokenizer
        self.text_encoder = text_encoder
        self.max_length = max_length
        self.embedding_dim = embedding_dim
        self.blank_token_id = blank_token_id

    def tokenize(self, prompt: str) -> np.ndarray:
        """Token ids for ``prompt``, right-padded with the blank id.

        Raises:
            ConfigurationError: If the tokenizer returns more than
                ``max_length`` ids.  Nothing is truncated.
        """
        with engine_stage('tokenize'):
            raw_ids = self.tokenizer(prompt)
            ids = [int(i) for i in np.asarray(raw_ids).ravel()]
        logger.debug("tokenize | n=%d ids=%s", len(ids), ids)

        if len(ids) > self.max_length:
            raise ConfigurationError(
                f"Prompt tokenizes to {len(ids)} ids, more than the "
                f"{self.max_length} the text encoder accepts"
            )
        ids.extend([self.blank_token_id] * (self.max_length - len(ids)))
        return np.asarray(ids, dtype=np.int32)

    def create_uncond_input(self) -> np.ndarray:
        return np.full(self.max_length, self.blank_token_id, dtype=np.int32)

    def encode(self, token_ids: Sequence[int]) -> np.ndarray:
        """Run the text encoder on one token sequence → [1, 77, 768]."""
        input_ids = create_tensor(token_ids, (1, self.max_length), dtype=np.int32)
        with engine_stage('encode'):
            hidden = self.text_encoder(input_ids)
        hidden = np.asarray(hidden, dtype=np.float32)

        expected = (1, self.max_length, self.embedding_dim)
        if hidden.size != int(np.prod(expected)):
            raise ExternalEngineError(
                'encode',
                f"text encoder returned shape {hidden.shape}, expected {expected}",
            )
        return hidden.reshape(expected)

    def assemble(self, prompt: str) -> np.ndarray:
        """Build the [2, 77, 768] embedding: blank in slot 0, prompt in slot 1."""
        text_embeddings = self.encode(self.tokenize(prompt))
        uncond_embeddings = self.encode(self.create_uncond_input())

        embeddings = np.empty((2, self.max_length, self.embedding_dim),
                              dtype=np.float32)
        embeddings[0] = uncond_embeddings[0]
        embeddings[1] = text_embeddings[0]
        return embeddings


__all__ = [
    'TextConditioner',
    'MODEL_MAX_LENGTH',
    'EMBEDDING_DIM',
    'BLANK_TOKEN_ID',
]
