# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝

"""External inference engines — contracts, lifetime, and session adapter.

The sampling core treats the four neural networks as opaque callables:

===============  ==========================================================
Engine           Contract
===============  ==========================================================
tokenizer        ``str -> sequence of int`` (may be shorter than 77)
text_encoder     ``int32 [1, 77] -> float32 [1, 77, 768]``
denoiser         ``([2, 77, 768], [2, 4, H/8, W/8], int64 t) -> [2, 4, H/8, W/8]``
decoder          ``[1, 4, H/8, W/8] -> [1, 3, H, W]``
===============  ==========================================================

:class:`InferenceEngines` groups them and releases them exactly once,
on every exit path, when used as a context manager.
:class:`SessionEngines` wraps already-loaded sessions that expose an
ONNX-Runtime-shaped ``run(output_names, input_feed)`` method.
"""
from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence

import numpy as np

from sdsampler.errors import ExternalEngineError
from sdsampler.utils.logging import setup_logger

logger = setup_logger(__name__)


# ═════════════════════════════════════════════════════════════════════
#  Engine protocols
# ═════════════════════════════════════════════════════════════════════

class Tokenizer(Protocol):
    def __call__(self, text: str) -> Sequence[int]:
        ...


class TextEncoder(Protocol):
    def __call__(self, input_ids: np.ndarray) -> np.ndarray:
        ...


class Denoiser(Protocol):
    def __call__(self, encoder_hidden_states: np.ndarray, sample: np.ndarray,
                 timestep: np.int64) -> np.ndarray:
        ...


class Decoder(Protocol):
    def __call__(self, latent_sample: np.ndarray) -> np.ndarray:
        ...


class Session(Protocol):
    def run(self, output_names: Optional[List[str]],
            input_feed: Dict[str, Any]) -> List[Any]:
        ...


@contextlib.contextmanager
def engine_stage(stage: str) -> Iterator[None]:
    """Re-raise any engine failure as :class:`ExternalEngineError`.

    The original exception is chained as ``__cause__``.
    """
    try:
        yield
    except ExternalEngineError:
        raise
    except Exception as exc:
        logger.error("%s failed | %s: %s", stage, type(exc).__name__, exc)
        raise ExternalEngineError(stage, f"{type(exc).__name__}: {exc}") from exc


# ═════════════════════════════════════════════════════════════════════
#  InferenceEngines
# ═════════════════════════════════════════════════════════════════════

@dataclass
class InferenceEngines:
    """The four engines used by one pipeline.

    Engines that expose ``close()`` are released by :meth:`close`.  Every
    engine is closed even if an earlier one fails to close; the first
    failure is re-raised afterwards.
    """

    tokenizer: Tokenizer
    text_encoder: TextEncoder
    denoiser: Denoiser
    decoder: Decoder
    closed: bool = field(default=False, init=False)

    def __iter__(self):
        return iter((self.tokenizer, self.text_encoder,
                     self.denoiser, self.decoder))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        first_error: Optional[BaseException] = None
        seen = set()
        for engine in self:
            if id(engine) in seen:
                continue
            seen.add(id(engine))
            close = getattr(engine, 'close', None)
            if close is None:
                continue
            try:
                close()
            except Exception as exc:
                logger.error("Failed to release %s: %s", type(engine).__name__, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def __enter__(self) -> 'InferenceEngines':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# ═════════════════════════════════════════════════════════════════════
#  Session adapters
# ═════════════════════════════════════════════════════════════════════

class _SessionEngine:
    """Base for engines backed by a ``run(output_names, input_feed)`` session."""

    def __init__(self, session: Session):
        self.session = session

    def _run_first(self, feed: Dict[str, Any]):
        outputs = self.session.run(None, feed)
        return outputs[0]

    def close(self) -> None:
        close = getattr(self.session, 'close', None)
        if close is not None:
            close()


class SessionTokenizer(_SessionEngine):

    def __call__(self, text: str) -> np.ndarray:
        ids = self._run_first({'string_input': np.array([text], dtype=object)})
        return np.asarray(ids, dtype=np.int64).ravel()


class SessionTextEncoder(_SessionEngine):

    def __call__(self, input_ids: np.ndarray) -> np.ndarray:
        hidden = self._run_first({'input_ids': np.asarray(input_ids, dtype=np.int32)})
        return np.asarray(hidden, dtype=np.float32)


class SessionDenoiser(_SessionEngine):

    def __call__(self, encoder_hidden_states, sample, timestep) -> np.ndarray:
        noise = self._run_first({
            'encoder_hidden_states': np.asarray(encoder_hidden_states, dtype=np.float32),
            'sample': np.asarray(sample, dtype=np.float32),
            'timestep': np.array([timestep], dtype=np.int64),
        })
        return np.asarray(noise, dtype=np.float32)


class SessionDecoder(_SessionEngine):

    def __call__(self, latent_sample: np.ndarray) -> np.ndarray:
        image = self._run_first({'latent_sample': np.asarray(latent_sample, dtype=np.float32)})
        return np.array(image, dtype=np.float32, copy=True)


class SessionEngines:
    """Build :class:`InferenceEngines` from pre-loaded sessions."""

    @staticmethod
    def from_sessions(tokenizer: Session, text_encoder: Session,
                      unet: Session, vae_decoder: Session) -> InferenceEngines:
        return InferenceEngines(
            tokenizer=SessionTokenizer(tokenizer),
            text_encoder=SessionTextEncoder(text_encoder),
            denoiser=SessionDenoiser(unet),
            decoder=SessionDecoder(vae_decoder),
        )


__all__ = [
    'Tokenizer',
    'TextEncoder',
    'Denoiser',
    'Decoder',
    'Session',
    'engine_stage',
    'InferenceEngines',
    'SessionTokenizer',
    'SessionTextEncoder',
    'SessionDenoiser',
    'SessionDecoder',
    'SessionEngines',
]
