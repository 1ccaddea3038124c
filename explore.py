import logging
import os
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

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

# Kernel runtime
import tensorflow as tf
import numpy as np

if _suppress_messages:
    tf.get_logger().setLevel("ERROR")
    for handler in tf.get_logger().handlers:
        handler.setLevel("ERROR")

# Output writers
import PIL.Image
import imageio

from fractalfield import FieldError, RasterEngine, install_crash_hook, setup_logging

from argparse import ArgumentParser

logger = logging.getLogger("fractalfield.explore")

STEP_CHOICES = ("up", "down", "left", "right", "in", "out", "update")


@dataclass
class OutputConfig:
    modes: tuple[str, ...]
    gif_path: Path | None
    image_path: Path | None
    frame_dir: Path | None
    image_format: str


def select_device(use_gpu: bool) -> str:
    """Pick the TensorFlow device the kernel runs on."""

    if not use_gpu:
        return '/CPU:0'
    gpus = tf.config.list_physical_devices('GPU')
    if not gpus:
        logger.info("No GPU found, using CPU")
        return '/CPU:0'
    try:
        for gpu in gpus:
            tf.config.experimental.set_memory_growth(gpu, True)
    except RuntimeError as e:
        logger.warning("Could not configure %s (%s), using CPU", gpus[0].name, e)
        return '/CPU:0'
    logger.info("GPU found, using %s", gpus[0].name)
    return '/GPU:0'


def build_parser():
    parser = ArgumentParser(description='Pan and zoom through the Mandelbrot set, recording a frame after every step.')

    parser.add_argument('--width', type=int,
                        dest='width', help='number of pixel columns in the field',
                        metavar='WIDTH', default=320)

    parser.add_argument('--height', type=int,
                        dest='height', help='number of pixel rows in the field',
                        metavar='HEIGHT', default=240)

    parser.add_argument('--x-center', type=float,
                        dest='x_center', help='real part of the initial view center',
                        metavar='X_CENTER', default=0.0)

    parser.add_argument('--y-center', type=float,
                        dest='y_center', help='imaginary part of the initial view center',
                        metavar='Y_CENTER', default=0.0)

    parser.add_argument('--zoom', type=float,
                        dest='zoom', help='initial zoom factor (> 0)',
                        metavar='ZOOM', default=1.0)

    parser.add_argument('--step', dest='steps', action='append', metavar='STEP', choices=STEP_CHOICES,
                        help='Transform to apply, may be repeated. Choices: %s.' % ', '.join(STEP_CHOICES))

    parser.add_argument('--move-divisor', type=int,
                        dest='move_divisor', help='pan offset is the field dimension divided by this value',
                        metavar='DIVISOR', default=50)

    parser.add_argument('--mode', dest='modes', action='append', metavar='MODE',
                        help='Output modes to generate. May be repeated. Choices: gif, image, frames.')

    parser.add_argument('--output', dest='output', type=str,
                        help='Destination for single-file outputs (gif/image) or container directory when both are requested.')

    parser.add_argument('--frame-dir', dest='frame_dir', type=str,
                        help='Directory in which to store the frame sequence.')

    parser.add_argument('--format', type=str,
                        dest='format', help='file format for image-based outputs. Can be any extension supported by Pillow. Default: "png".',
                        metavar='FORMAT', default='png')

    parser.add_argument('--strip-rows', type=int, dest='strip_rows', default=64, metavar='ROWS',
                        help='number of rows the kernel evaluates per batch')

    parser.add_argument('--gpu', action='store_true',
                        help='Run the kernel on the first GPU when one is available.')

    parser.add_argument('--log-file', dest='log_file', type=str,
                        help='Also write the log to this file.')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging, including TensorFlow diagnostics and operation timings.')

    return parser


def resolve_output_config(opt, parser: ArgumentParser) -> OutputConfig:
    valid_modes = {"gif", "image", "frames"}
    modes = list(opt.modes or []) or ["image"]

    normalized_modes: list[str] = []
    for mode in modes:
        if mode not in valid_modes:
            parser.error(f"Unknown output mode '{mode}'. Valid choices: {', '.join(sorted(valid_modes))}.")
        if mode not in normalized_modes:
            normalized_modes.append(mode)

    modes_tuple = tuple(normalized_modes)
    modes_set = set(modes_tuple)

    frame_dir_path: Path | None = None
    if "frames" in modes_set:
        frame_dir_path = Path(opt.frame_dir or "./frames").expanduser().resolve()
    elif opt.frame_dir is not None:
        parser.error("--frame-dir is only valid with the frames mode.")

    image_format = (opt.format or "png").lower().lstrip(".") or "png"

    file_modes = [mode for mode in modes_tuple if mode in {"gif", "image"}]
    gif_path: Path | None = None
    image_path: Path | None = None

    if not file_modes:
        if opt.output:
            parser.error("--output is only valid when gif or image modes are requested.")
    elif len(file_modes) == 1:
        mode = file_modes[0]
        if opt.output:
            output_path = Path(opt.output).expanduser()
            if str(opt.output).endswith(tuple(filter(None, {os.sep, os.altsep}))):
                parser.error("--output must be a file path when a single file-based mode is selected.")
            if output_path.exists() and output_path.is_dir():
                parser.error("--output must point to a file, not a directory, when a single file mode is active.")
            expected_suffix = ".gif" if mode == "gif" else f".{image_format}"
            if output_path.suffix:
                if output_path.suffix.lower() != expected_suffix.lower():
                    parser.error(f"--output extension {output_path.suffix} does not match the {mode} mode ({expected_suffix}).")
            else:
                output_path = output_path.with_suffix(expected_suffix)
            if mode == "gif":
                gif_path = output_path.resolve()
            else:
                image_path = output_path.resolve()
        elif mode == "gif":
            gif_path = Path("explore.gif").resolve()
        else:
            image_path = Path(f"frame_final.{image_format}").resolve()
    else:
        base_dir = Path(opt.output).expanduser() if opt.output else Path.cwd()
        if base_dir.exists() and not base_dir.is_dir():
            parser.error("--output must be a directory when both gif and image modes are active.")
        gif_path = (base_dir / "explore.gif").resolve()
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

    output_path.parent.mkdir(parents=True, exist_ok=True)
    image.save(str(output_path), format=_pil_format_name(image_format))


def write_frame_sequence(
    image: PIL.Image.Image,
    frame_dir: Path,
    index: int,
    digits: int,
    image_format: str,
) -> Path:
    """Persist a frame in a numbered sequence inside ``frame_dir``."""

    frame_path = frame_dir / f"frame{index:0{digits}d}.{image_format}"
    frame_dir.mkdir(parents=True, exist_ok=True)
    image.save(str(frame_path), format=_pil_format_name(image_format))
    return frame_path


@dataclass
class OutputWriters:
    config: OutputConfig
    frame_digits: int

    def __post_init__(self) -> None:
        self._gif_writer: Any = None
        self._last_frame: Optional[np.ndarray] = None
        if "gif" in self.config.modes and self.config.gif_path is not None:
            self.config.gif_path.parent.mkdir(parents=True, exist_ok=True)
            self._gif_writer = imageio.get_writer(str(self.config.gif_path), mode='I', duration=0.1, loop=0)

    def write(self, frame_index: int, frame_array: np.ndarray) -> None:
        if self._gif_writer is not None:
            self._gif_writer.append_data(frame_array)
        if "frames" in self.config.modes and self.config.frame_dir is not None:
            write_frame_sequence(
                PIL.Image.fromarray(frame_array),
                self.config.frame_dir,
                frame_index,
                self.frame_digits,
                self.config.image_format,
            )
        self._last_frame = frame_array

    def finalize(self) -> None:
        if "image" in self.config.modes and self.config.image_path is not None and self._last_frame is not None:
            write_single_image(PIL.Image.fromarray(self._last_frame), self.config.image_path, self.config.image_format)

    def close(self) -> None:
        if self._gif_writer is not None:
            self._gif_writer.close()
            self._gif_writer = None


def apply_step(engine: RasterEngine, step: str, move_divisor: int) -> Optional[float]:
    """Apply one scripted step; return the coordinate or zoom factor it changed, if any."""

    vertical = engine.height // move_divisor
    horizontal = engine.width // move_divisor
    if step == "up":
        return engine.pan_vertical(-vertical)
    if step == "down":
        return engine.pan_vertical(vertical)
    if step == "left":
        return engine.pan_horizontal(-horizontal)
    if step == "right":
        return engine.pan_horizontal(horizontal)
    if step == "in":
        return engine.zoom_in()
    if step == "out":
        return engine.zoom_out()
    if step == "update":
        engine.update()
        return None
    raise ValueError(f"unknown step {step!r}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    opt = parser.parse_args(argv)

    if opt.move_divisor < 1:
        parser.error("--move-divisor must be at least 1.")
    if opt.strip_rows < 1:
        parser.error("--strip-rows must be at least 1.")

    output_config = resolve_output_config(opt, parser)

    setup_logging(logging.DEBUG if opt.verbose else logging.WARNING, opt.log_file)
    install_crash_hook()
    logger.debug("TensorFlow version: %s", tf.__version__)

    device = select_device(bool(opt.gpu))
    steps = opt.steps or []

    frame_digits = max(3, len(str(len(steps))))
    writers = OutputWriters(output_config, frame_digits=frame_digits)
    try:
        with RasterEngine(
            opt.width,
            opt.height,
            opt.x_center,
            opt.y_center,
            opt.zoom,
            device=device,
            strip_rows=opt.strip_rows,
        ) as engine:
            writers.write(0, engine.to_rgb())
            for i, step in enumerate(steps, start=1):
                value = apply_step(engine, step, opt.move_divisor)
                if value is None:
                    logger.info("step %d/%d %s", i, len(steps), step)
                else:
                    logger.info("step %d/%d %s -> %.12g", i, len(steps), step, value)
                writers.write(i, engine.to_rgb())
    except FieldError as e:
        logger.error("%s", e)
        return 1
    finally:
        writers.close()

    writers.finalize()
    return 0


if __name__ == '__main__':
    sys.exit(main())
