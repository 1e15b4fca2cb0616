# ╔══════════════════════════════════════════════════════════════════════╗
# ║  SDSampler — Stable Diffusion Sampling Core                          ║
# ║  Copyright © 2026 Pictofeed, LLC. All rights reserved.               ║
# ╚══════════════════════════════════════════════════════════════════════╝
"""Tensor primitives used by the sampling loop.

Tensors are plain :class:`numpy.ndarray` objects.  Every helper returns a
new float32 array and leaves its inputs untouched, so a latent handed to
an engine can never be modified behind the caller's back.
"""
from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import numpy as np

Dimensions = Sequence[int]


def _check_dims(tensor: np.ndarray, dimensions: Dimensions, what: str):
    if tuple(tensor.shape) != tuple(dimensions):
        raise ValueError(
            f"{what}: expected shape {tuple(dimensions)}, got {tuple(tensor.shape)}"
        )


def create_tensor(data, dimensions: Dimensions,
                  dtype: np.dtype = np.float32) -> np.ndarray:
    """Build a tensor of ``dimensions`` from a flat (or nested) buffer."""
    arr = np.asarray(data, dtype=dtype)
    if arr.size != int(np.prod(dimensions)):
        raise ValueError(
            f"Cannot build tensor of shape {tuple(dimensions)} "
            f"from {arr.size} elements"
        )
    return arr.reshape(tuple(dimensions)).copy()


def duplicate(tensor: np.ndarray, dimensions: Dimensions) -> np.ndarray:
    """Stack two copies of a batch-of-one tensor: [1, ...] → [2, ...].

    ``dimensions`` is the expected output shape and is checked.
    """
    if tensor.shape[0] != 1:
        raise ValueError(f"duplicate expects batch size 1, got {tensor.shape[0]}")
    out = np.concatenate([tensor, tensor], axis=0).astype(np.float32)
    _check_dims(out, dimensions, 'duplicate')
    return out


def split_tensor(tensor: np.ndarray,
                 dimensions: Dimensions) -> Tuple[np.ndarray, np.ndarray]:
    """Split a batch-of-two tensor into its two halves.

    Returns ``(first, second)`` as independent copies, each of shape
    ``dimensions``.
    """
    if tensor.shape[0] != 2:
        raise ValueError(f"split_tensor expects batch size 2, got {tensor.shape[0]}")
    first = np.array(tensor[0:1], dtype=np.float32)
    second = np.array(tensor[1:2], dtype=np.float32)
    _check_dims(first, dimensions, 'split_tensor')
    return first, second


def multiply_by_float(tensor: np.ndarray, value: float) -> np.ndarray:
    return (tensor * np.float32(value)).astype(np.float32)


def divide_by_float(tensor: np.ndarray, value: float) -> np.ndarray:
    return (tensor / np.float32(value)).astype(np.float32)


def add_tensors(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {a.shape} vs {b.shape}")
    return (a + b).astype(np.float32)


def subtract_tensors(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    if a.shape != b.shape:
        raise ValueError(f"Shape mismatch: {a.shape} vs {b.shape}")
    return (a - b).astype(np.float32)


def sum_tensors(tensors: Iterable[np.ndarray]) -> np.ndarray:
    """Elementwise sum of one or more same-shaped tensors."""
    tensors = list(tensors)
    if not tensors:
        raise ValueError("sum_tensors needs at least one tensor")
    out = np.array(tensors[0], dtype=np.float32)
    for t in tensors[1:]:
        if t.shape != out.shape:
            raise ValueError(f"Shape mismatch: {out.shape} vs {t.shape}")
        out += t
    return out


__all__ = [
    'create_tensor',
    'duplicate',
    'split_tensor',
    'multiply_by_float',
    'divide_by_float',
    'add_tensors',
    'subtract_tensors',
    'sum_tensors',
]
