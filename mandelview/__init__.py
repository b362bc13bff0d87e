"""Public API for the interactive Mandelbrot explorer."""

from .renderer import (
    RenderEngine,
    escape_ratio,
    escape_ratios,
    pixel_coordinates,
    pixel_to_complex,
    rasterize,
    split_range,
)
from .view import (
    KEY_BINDINGS,
    Command,
    ViewParameters,
    ViewState,
    apply_command,
)

__all__ = [
    "Command",
    "KEY_BINDINGS",
    "RenderEngine",
    "ViewParameters",
    "ViewState",
    "apply_command",
    "escape_ratio",
    "escape_ratios",
    "pixel_coordinates",
    "pixel_to_complex",
    "rasterize",
    "split_range",
]
