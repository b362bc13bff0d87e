"""View state for the interactive explorer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

PAN_STEP = 0.05

_IMAGE_FIELDS = frozenset({"max_iterations", "zoom", "offset", "width", "height"})


class Command(Enum):
    """Discrete input commands understood by the explorer."""

    PAN_UP = "pan-up"
    PAN_DOWN = "pan-down"
    PAN_LEFT = "pan-left"
    PAN_RIGHT = "pan-right"
    ZOOM_IN = "zoom-in"
    ZOOM_OUT = "zoom-out"
    QUIT = "quit"


KEY_BINDINGS = {
    "w": Command.PAN_UP,
    "a": Command.PAN_LEFT,
    "s": Command.PAN_DOWN,
    "d": Command.PAN_RIGHT,
    "r": Command.ZOOM_IN,
    "f": Command.ZOOM_OUT,
    "q": Command.QUIT,
    "escape": Command.QUIT,
}


@dataclass(frozen=True)
class ViewParameters:
    """Immutable snapshot of the fields a render depends on."""

    max_iterations: int
    zoom: float
    offset: complex
    width: int
    height: int

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass
class ViewState:
    """Current zoom, center and viewport of the explorer.

    Every mutation of zoom, offset or viewport, whether through the methods
    below or by assignment, marks the view as changed. Resizing also marks it
    as resized so the render cache is reallocated. ``max_iterations`` is fixed
    once constructed. Only the render engine clears the flags, after it has
    recomputed the cache.
    """

    max_iterations: int = 200
    zoom: float = 3.0
    offset: complex = complex(-0.5, 0.0)
    width: int = 800
    height: int = 800
    _changed: bool = field(default=True, init=False, repr=False)
    _resized: bool = field(default=True, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        if not self.zoom > 0:
            raise ValueError("zoom must be strictly positive.")
        _check_size(self.width, self.height)
        self.offset = complex(self.offset)
        object.__setattr__(self, "_ready", True)

    def __setattr__(self, name: str, value) -> None:
        if not self.__dict__.get("_ready") or name not in _IMAGE_FIELDS:
            object.__setattr__(self, name, value)
            return
        if name == "max_iterations":
            raise AttributeError("max_iterations is fixed at construction.")
        if name == "zoom" and not value > 0:
            raise ValueError("zoom must be strictly positive.")
        if name == "offset":
            value = complex(value)
        if name in ("width", "height"):
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}.")
            value = int(value)
            object.__setattr__(self, "_resized", True)
        object.__setattr__(self, name, value)
        object.__setattr__(self, "_changed", True)

    @property
    def changed(self) -> bool:
        return self._changed

    @property
    def resized(self) -> bool:
        return self._resized

    def pan(self, direction: str) -> None:
        step = PAN_STEP * self.zoom
        if direction == "left":
            self.offset = complex(self.offset.real - step, self.offset.imag)
        elif direction == "right":
            self.offset = complex(self.offset.real + step, self.offset.imag)
        elif direction == "up":
            self.offset = complex(self.offset.real, self.offset.imag - step)
        elif direction == "down":
            self.offset = complex(self.offset.real, self.offset.imag + step)
        else:
            raise ValueError(f"Unknown pan direction '{direction}'.")

    def zoom_in(self) -> None:
        self.zoom /= 2.0

    def zoom_out(self) -> None:
        self.zoom *= 2.0

    def resize(self, width: int, height: int) -> None:
        _check_size(width, height)
        self.width = int(width)
        self.height = int(height)

    def snapshot(self) -> ViewParameters:
        return ViewParameters(
            max_iterations=self.max_iterations,
            zoom=self.zoom,
            offset=self.offset,
            width=self.width,
            height=self.height,
        )

    def _mark_rendered(self) -> None:
        """Clear the dirty flags after a recompute."""

        self._changed = False
        self._resized = False


def _check_size(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Viewport must be positive, got {width}x{height}.")


_PAN_DIRECTIONS = {
    Command.PAN_UP: "up",
    Command.PAN_DOWN: "down",
    Command.PAN_LEFT: "left",
    Command.PAN_RIGHT: "right",
}


def apply_command(view: ViewState, command: Command) -> None:
    """Apply ``command`` to ``view``. ``Command.QUIT`` is left to the caller."""

    if command in _PAN_DIRECTIONS:
        view.pan(_PAN_DIRECTIONS[command])
    elif command is Command.ZOOM_IN:
        view.zoom_in()
    elif command is Command.ZOOM_OUT:
        view.zoom_out()
    elif command is not Command.QUIT:
        raise ValueError(f"Unsupported command {command!r}.")
