# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Logger factory shared by every sdsampler module.

Usage::

    from sdsampler.utils.logging import setup_logger

    logger = setup_logger(__name__)
    logger.info("denoise | step=3/20 t=842")

The level defaults to ``INFO`` and can be overridden globally with the
``SDSAMPLER_LOG_LEVEL`` environment variable (``DEBUG`` shows per-step
latent statistics).
"""
from __future__ import annotations

import logging
import os
from typing import Optional, Union

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LEVEL_ENV_VAR = 'SDSAMPLER_LOG_LEVEL'


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.environ.get(LEVEL_ENV_VAR, 'INFO')
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def setup_logger(name: Optional[str] = None,
                 level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Return a logger with a single stream handler attached.

    Safe to call repeatedly for the same name: the handler is installed
    once and only the level is refreshed.

    Args:
        name:  Logger name (typically ``__name__``).
        level: Logging level or level name.  ``None`` reads
               ``SDSAMPLER_LOG_LEVEL`` and falls back to ``INFO``.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    if not any(getattr(h, '_sdsampler', False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._sdsampler = True
        logger.addHandler(handler)
        logger.propagate = False

    return logger


__all__ = ['setup_logger', 'LOG_FORMAT', 'LEVEL_ENV_VAR']
