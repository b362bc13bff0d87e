import os
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

_VERBOSE_FLAGS = {"--verbose", "-v"}
_cli_verbose = any(arg in _VERBOSE_FLAGS for arg in sys.argv[1:])
_env_log_level = os.environ.get("TF_CPP_MIN_LOG_LEVEL")
_suppress_messages = (not _cli_verbose) and _env_log_level != "0"

if _suppress_messages and _env_log_level is None:
    os.environ["TF_CPP_MIN_LOG_LEVEL"] = "3"

if _suppress_messages:
    warnings.filterwarnings(
        "ignore",
        message=r"Protobuf gencode version .* is exactly one major version older than the runtime version .*",
        category=UserWarning,
        module="google.protobuf",
    )

VERBOSE = _cli_verbose


def log(message, *args, **kwargs):
    if VERBOSE:
        print(message, *args, **kwargs)


import tensorflow as tf
import numpy as np

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

import PIL.Image
import imageio

from mandelview import KEY_BINDINGS, Command, RenderEngine, ViewState, apply_command

from argparse import ArgumentParser

Step = Union[Command, tuple[int, int]]


def detect_device() -> str:
    """Place the kernel on the first visible GPU, falling back to the CPU."""

    gpus = tf.config.list_physical_devices('GPU')
    if not gpus:
        log("No GPU found, using CPU")
        return '/CPU:0'
    try:
        for gpu in gpus:
            tf.config.experimental.set_memory_growth(gpu, True)
    except RuntimeError as e:
        log(e)
        return '/CPU:0'
    log("GPU found, using %s" % gpus[0].name)
    return '/GPU:0'


@dataclass
class OutputConfig:
    modes: tuple[str, ...]
    gif_path: Path | None
    image_path: Path | None
    frame_dir: Path | None
    image_format: str


def build_parser():
    parser = ArgumentParser(description='Explore the Mandelbrot set by panning and zooming.')

    parser.add_argument('--max-iterations', type=int,
                        dest='max_iterations', help='escape-time iteration bound',
                        metavar='MAX_ITERATIONS', default=200)

    parser.add_argument('--width', type=int,
                        dest='width', help='viewport width in pixels',
                        metavar='WIDTH', default=800)

    parser.add_argument('--height', type=int,
                        dest='height', help='viewport height in pixels',
                        metavar='HEIGHT', default=800)

    parser.add_argument('--zoom', type=float,
                        dest='zoom', help='initial height of the view in the complex plane; smaller is closer',
                        metavar='ZOOM', default=3.0)

    parser.add_argument('--re', type=float,
                        dest='re', help='real part of the initial view center',
                        metavar='RE', default=-0.5)

    parser.add_argument('--im', type=float,
                        dest='im', help='imaginary part of the initial view center',
                        metavar='IM', default=0.0)

    parser.add_argument('--workers', type=int, default=None,
                        help='number of threads used per recompute. Default: number of CPUs.')

    parser.add_argument('--device', type=str, default=None,
                        help='TensorFlow device for the kernel (e.g. "/CPU:0"). Default: first GPU if available.')

    parser.add_argument('--keys', type=str, dest='keys', default='', metavar='SCRIPT',
                        help='Headless input script: key runs (w/a/s/d pan, r/f zoom, q stops) and WxH resize steps, '
                             'separated by spaces. Example: "dd rr 640x480 f".')

    parser.add_argument('--mode', dest='modes', action='append', metavar='MODE',
                        help='Output modes for headless runs. May be repeated. Choices: image, gif, frames.')

    parser.add_argument('--output', dest='output', type=str,
                        help='Destination for single-file outputs (gif/image) or container directory when both are requested.')

    parser.add_argument('--frame-dir', dest='frame_dir', type=str,
                        help='Directory in which to store the frame sequence.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format for image-based outputs. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--interactive', action='store_true',
                        help='Open a window and explore with the keyboard instead of running a script.')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow and hardware diagnostics.')

    return parser


def parse_script(script: str) -> list[Step]:
    """Turn a key script such as ``"dd r 640x480"`` into explorer steps.

    A ``q`` ends the script; nothing after it is returned.
    """

    steps: list[Step] = []
    for token in script.split():
        width, sep, height = token.lower().partition('x')
        if sep and width.isdigit() and height.isdigit():
            size = (int(width), int(height))
            if size[0] <= 0 or size[1] <= 0:
                raise ValueError(f"Resize step '{token}' must be positive.")
            steps.append(size)
            continue
        for key in token.lower():
            command = KEY_BINDINGS.get(key)
            if command is None:
                raise ValueError(f"Unknown key '{key}' in script token '{token}'.")
            if command is Command.QUIT:
                return steps
            steps.append(command)
    return steps


def _normalize_path(path_str: str) -> str:
    return os.path.normpath(os.path.abspath(os.path.expanduser(path_str)))


def resolve_output_config(opt, parser: ArgumentParser, steps: list[Step]) -> OutputConfig:
    valid_modes = {"image", "gif", "frames"}
    modes: list[str] = []
    for mode in opt.modes or ["image"]:
        if mode not in valid_modes:
            parser.error(f"Unknown output mode '{mode}'. Valid choices: {', '.join(sorted(valid_modes))}.")
        if mode not in modes:
            modes.append(mode)

    modes_tuple = tuple(modes)
    modes_set = set(modes_tuple)

    if "gif" in modes_set and any(isinstance(step, tuple) for step in steps):
        parser.error("--mode gif cannot be combined with resize steps; GIF frames must share one size.")

    image_format = (getattr(opt, "format", "png") or "png").lower().lstrip(".")
    if not image_format:
        image_format = "png"

    frame_dir_path: Path | None = None
    if "frames" in modes_set:
        frame_dir_path = Path(_normalize_path(opt.frame_dir or "frames"))
    elif opt.frame_dir:
        parser.error("--frame-dir requires the frames mode.")

    file_modes = [mode for mode in modes_tuple if mode in {"gif", "image"}]
    output_arg = getattr(opt, "output", None)
    gif_path: Path | None = None
    image_path: Path | None = None

    if not file_modes:
        if output_arg:
            parser.error("--output is only valid when gif or image modes are requested.")
    elif len(file_modes) == 1:
        mode = file_modes[0]
        expected_suffix = ".gif" if mode == "gif" else f".{image_format}"
        if output_arg:
            output_path = Path(output_arg).expanduser()
            if output_path.exists() and output_path.is_dir():
                parser.error("--output must point to a file, not a directory, when a single file mode is active.")
            if output_path.suffix:
                if output_path.suffix.lower() != expected_suffix.lower():
                    parser.error(f"--output extension {output_path.suffix} does not match {expected_suffix}.")
            else:
                output_path = output_path.with_suffix(expected_suffix)
        else:
            output_path = Path("movie.gif" if mode == "gif" else f"frame_final.{image_format}")
        if mode == "gif":
            gif_path = output_path.resolve()
        else:
            image_path = output_path.resolve()
    else:
        base_dir = Path(output_arg).expanduser() if output_arg else Path.cwd()
        if base_dir.exists() and not base_dir.is_dir():
            parser.error("--output must be a directory when both gif and image modes are active.")
        gif_path = (base_dir / "movie.gif").resolve()
        image_path = (base_dir / f"frame_final.{image_format}").resolve()

    return OutputConfig(
        modes=modes_tuple,
        gif_path=gif_path,
        image_path=image_path,
        frame_dir=frame_dir_path,
        image_format=image_format,
    )


def _pil_format_name(ext: str) -> str:
    upper = ext.upper()
    if upper == "JPG":
        return "JPEG"
    if upper == "TIF":
        return "TIFF"
    return upper


def write_single_image(image: PIL.Image.Image, output_path: Path, image_format: str) -> None:
    """Write a single image to ``output_path`` using the provided format."""

    pil_format = _pil_format_name(image_format)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if pil_format == "JPEG":
        image = image.convert("RGB")
    image.save(str(output_path), format=pil_format)


def write_frame_sequence(image: PIL.Image.Image, frame_dir: Path, index: int, digits: int, image_format: str) -> Path:
    """Persist a frame in a numbered sequence inside ``frame_dir``."""

    frame_path = frame_dir / f"frame{index:0{digits}d}.{image_format}"
    write_single_image(image, frame_path, image_format)
    return frame_path


@dataclass
class OutputWriters:
    config: OutputConfig
    frame_digits: int

    def __post_init__(self) -> None:
        self._gif_writer: Any = None
        if "gif" in self.config.modes and self.config.gif_path is not None:
            self.config.gif_path.parent.mkdir(parents=True, exist_ok=True)
            self._gif_writer = imageio.get_writer(str(self.config.gif_path), mode='I', duration=0.1, loop=0)

    def write_frame(self, frame_index: int, frame_array: np.ndarray) -> None:
        if self._gif_writer is not None:
            self._gif_writer.append_data(frame_array[..., :3])
        if "frames" in self.config.modes and self.config.frame_dir is not None:
            write_frame_sequence(
                PIL.Image.fromarray(frame_array),
                self.config.frame_dir,
                frame_index,
                self.frame_digits,
                self.config.image_format,
            )

    def finalize(self, final_frame: np.ndarray | None) -> None:
        if "image" in self.config.modes and self.config.image_path is not None and final_frame is not None:
            write_single_image(PIL.Image.fromarray(final_frame), self.config.image_path, self.config.image_format)

    def close(self) -> None:
        if self._gif_writer is not None:
            self._gif_writer.close()
            self._gif_writer = None


def run_script(engine: RenderEngine, steps: list[Step], writers: OutputWriters) -> np.ndarray:
    """Draw the initial view and one frame per step; return the last frame."""

    total = len(steps) + 1
    frame = engine.frame()
    writers.write_frame(0, frame)
    for i, step in enumerate(steps, start=1):
        print("frame {0} out of {1}".format(i, total), end='\r')
        if isinstance(step, tuple):
            engine.view.resize(*step)
            log(f"Resized to {step[0]}x{step[1]}")
        else:
            apply_command(engine.view, step)
        frame = engine.frame()
        writers.write_frame(i, frame)
    return frame


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    global VERBOSE
    VERBOSE = bool(opt.verbose)

    log("TensorFlow version: %s" % tf.__version__)

    try:
        steps = parse_script(opt.keys)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        view = ViewState(
            max_iterations=opt.max_iterations,
            zoom=opt.zoom,
            offset=complex(opt.re, opt.im),
            width=opt.width,
            height=opt.height,
        )
    except ValueError as exc:
        parser.error(str(exc))

    device = opt.device if opt.device else detect_device()
    engine = RenderEngine(view, workers=opt.workers, device=device)

    if opt.interactive:
        if opt.keys or opt.modes:
            parser.error("--interactive cannot be combined with --keys or --mode.")
        from mandelview.window import run_window

        run_window(engine, log=log)
        return

    output_config = resolve_output_config(opt, parser, steps)
    frame_digits = max(3, len(str(len(steps))))
    writers = OutputWriters(output_config, frame_digits=frame_digits)

    final_frame = None
    try:
        final_frame = run_script(engine, steps, writers)
    finally:
        writers.close()

    writers.finalize(final_frame)
    log("Rendered %d frame(s) with %d recompute(s)" % (len(steps) + 1, engine.recompute_count))


if __name__ == '__main__':
    main()
