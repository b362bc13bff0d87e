"""Rendering primitives for the interactive explorer."""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np
import tensorflow as tf

from .view import ViewParameters, ViewState

HORIZON = 2.0
CHUNKS_PER_WORKER = 4


@tf.function
def _escape_step(zs: tf.Tensor, cs: tf.Tensor, ns: tf.Tensor, active: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor]:
    """Perform a single Mandelbrot iteration for points that have not escaped."""

    zs_new = zs * zs + cs
    zs = tf.where(active, zs_new, zs)
    ns = ns + tf.cast(active, tf.int32)
    az = tf.abs(zs)
    horizon = tf.cast(HORIZON, az.dtype)
    new_active = tf.logical_and(active, az < horizon)
    return zs, ns, new_active


@tf.function(
    input_signature=[
        tf.TensorSpec(shape=[None], dtype=tf.complex128),
        tf.TensorSpec(shape=[], dtype=tf.int32),
    ]
)
def _escape_counts(cs: tf.Tensor, max_iterations: tf.Tensor) -> tf.Tensor:
    """Count the iterations each point survives, starting from ``z = 0``."""

    i = tf.constant(0, dtype=tf.int32)
    zs = tf.zeros_like(cs)
    ns = tf.zeros(tf.shape(cs), dtype=tf.int32)
    active = tf.ones(tf.shape(cs), dtype=tf.bool)

    def cond(i: tf.Tensor, zs: tf.Tensor, ns: tf.Tensor, active: tf.Tensor) -> tf.Tensor:
        return tf.logical_and(tf.less(i, max_iterations), tf.reduce_any(active))

    def body(i: tf.Tensor, zs: tf.Tensor, ns: tf.Tensor, active: tf.Tensor) -> tuple[tf.Tensor, tf.Tensor, tf.Tensor, tf.Tensor]:
        zs, ns, active = _escape_step(zs, cs, ns, active)
        return i + 1, zs, ns, active

    _, _, ns, _ = tf.while_loop(cond, body, (i, zs, ns, active))
    return ns


def escape_ratios(points: np.ndarray, max_iterations: int) -> np.ndarray:
    """Return ``iterations / max_iterations`` for every point in ``points``."""

    cs = np.ascontiguousarray(points, dtype=np.complex128).reshape(-1)
    if cs.size == 0:
        return np.zeros(0, dtype=np.float64)
    ns = _escape_counts(tf.convert_to_tensor(cs), tf.constant(max_iterations, dtype=tf.int32))
    return ns.numpy().astype(np.float64) / np.float64(max_iterations)


def escape_ratio(c: complex, max_iterations: int) -> float:
    return float(escape_ratios(np.array([c], dtype=np.complex128), max_iterations)[0])


def pixel_coordinates(params: ViewParameters, start: int, stop: int) -> np.ndarray:
    """Map the row-major pixel indices ``start..stop`` to points in the plane."""

    index = np.arange(start, stop, dtype=np.int64)
    width = np.float64(params.width)
    height = np.float64(params.height)
    ratio = width / height
    zoom = np.float64(params.zoom)

    x = (index % params.width).astype(np.float64)
    y = (index // params.width).astype(np.float64)

    points = np.empty(index.shape, dtype=np.complex128)
    points.real = (x / width - 0.5) * ratio * zoom + np.float64(params.offset.real)
    points.imag = (y / height - 0.5) * zoom + np.float64(params.offset.imag)
    return points


def pixel_to_complex(params: ViewParameters, x: int, y: int) -> complex:
    index = int(x) + int(y) * params.width
    return complex(pixel_coordinates(params, index, index + 1)[0])


def split_range(total: int, parts: int) -> list[tuple[int, int]]:
    """Partition ``0..total`` into at most ``parts`` contiguous, non-empty ranges."""

    if total <= 0:
        return []
    parts = max(1, min(int(parts), total))
    base, extra = divmod(total, parts)
    bounds = []
    start = 0
    for k in range(parts):
        stop = start + base + (1 if k < extra else 0)
        bounds.append((start, stop))
        start = stop
    return bounds


def _pixel_view(buffer) -> np.ndarray:
    if isinstance(buffer, np.ndarray):
        if buffer.dtype != np.uint8 or not buffer.flags.c_contiguous:
            raise ValueError("Output buffer must be a C-contiguous uint8 array.")
        return buffer.reshape(-1)
    return np.frombuffer(buffer, dtype=np.uint8)


def rasterize(values: np.ndarray, buffer) -> None:
    """Write ``values`` into ``buffer`` as greyscale RGBA8 pixels."""

    pixels = _pixel_view(buffer)
    if pixels.size != values.size * 4:
        raise ValueError(
            f"Output buffer holds {pixels.size} bytes, expected {values.size * 4}."
        )
    if not pixels.flags.writeable:
        raise ValueError("Output buffer is read-only.")
    grey = np.rint(values * 255.0).astype(np.uint8)
    rgba = pixels.reshape(-1, 4)
    rgba[:, :3] = grey[:, np.newaxis]
    rgba[:, 3] = 255


class RenderEngine:
    """Keep an escape-time cache in step with a :class:`ViewState`.

    ``draw`` recomputes the cache only when the view changed since the last
    recompute, and rasterizes the cache into the caller's buffer every time.
    """

    def __init__(self, view: ViewState, *, workers: Optional[int] = None, device: Optional[str] = None) -> None:
        self.view = view
        self.workers = max(1, int(workers if workers is not None else (os.cpu_count() or 1)))
        self.device = device if device is not None else "/CPU:0"
        self.recompute_count = 0
        self._cache = np.zeros(0, dtype=np.float64)

    @property
    def cache(self) -> np.ndarray:
        view = self._cache.view()
        view.flags.writeable = False
        return view

    def draw(self, buffer) -> None:
        if self.view.changed:
            self.update()
        rasterize(self._cache, buffer)

    def frame(self) -> np.ndarray:
        """Draw into a new ``(height, width, 4)`` array and return it."""

        params = self.view.snapshot()
        image = np.zeros((params.height, params.width, 4), dtype=np.uint8)
        self.draw(image)
        return image

    def update(self) -> None:
        """Recompute every cached ratio from the current view."""

        params = self.view.snapshot()
        if self.view.resized or self._cache.size != params.pixel_count:
            self._cache = np.zeros(params.pixel_count, dtype=np.float64)

        bounds = split_range(params.pixel_count, self.workers * CHUNKS_PER_WORKER)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            # consume the iterator so worker exceptions propagate
            list(pool.map(lambda span: self._fill(params, *span), bounds))

        self.recompute_count += 1
        self.view._mark_rendered()

    def _fill(self, params: ViewParameters, start: int, stop: int) -> None:
        with tf.device(self.device):
            points = pixel_coordinates(params, start, stop)
            self._cache[start:stop] = escape_ratios(points, params.max_iterations)
