from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import replace
from typing import Sequence

import cv2
import numpy as np

from style_engine.application.inference_engine import InferenceEngine, OutputImage
from style_engine.config import load_engine_settings
from style_engine.config.log_config import apply_log_config
from style_engine.core.errors import InferenceError, SetupError
from style_engine.core.image_size import ImageSize
from style_engine.enums import ExecutionMode


def _read_rgb(path: str) -> np.ndarray:
    image = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise FileNotFoundError(f"Cannot read image: {path}")
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def _write_rgb(path: str, output: OutputImage) -> None:
    if not cv2.imwrite(path, cv2.cvtColor(output.pixels, cv2.COLOR_RGB2BGR)):
        raise OSError(f"Cannot write image: {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Apply a style image to a content image.")
    parser.add_argument("content", help="content image path")
    parser.add_argument("style", help="style image path")
    parser.add_argument("-o", "--output", default="stylized.png", help="output image path")
    parser.add_argument("--config", default=None, help="engine YAML (defaults to the packaged engine.yaml)")
    parser.add_argument("--model", default=None, help="override model.location")
    parser.add_argument("--width", type=int, default=None, help="output width (defaults to size.width from the config)")
    parser.add_argument("--height", type=int, default=None, help="output height (defaults to size.height from the config)")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in ExecutionMode],
        default=None,
        help="override execution.mode from the config",
    )
    parser.add_argument("--frames", type=int, default=1, help="frames to feed in background mode")
    parser.add_argument("--timeout", type=float, default=60.0, help="seconds to wait for background output")
    return parser


def _run_background(engine: InferenceEngine, content: np.ndarray, frames: int, timeout_s: float) -> OutputImage | None:
    engine.start_worker()
    last: OutputImage | None = None
    delivered = 0
    deadline = time.monotonic() + timeout_s
    try:
        for _ in range(max(1, frames)):
            engine.set_input(content)
            while time.monotonic() < deadline:
                output = engine.poll()
                if output is not None:
                    last = output
                    delivered += 1
                    break
                time.sleep(0.005)
    finally:
        engine.stop_worker()
    logging.info("[style] %d/%d frame(s) delivered, stats %s", delivered, frames, engine.stats().as_dict())
    return last


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="[style] %(message)s")
    apply_log_config()
    args = build_parser().parse_args(argv)

    try:
        settings = load_engine_settings(args.config)
        if args.model:
            settings = replace(settings, model_location=args.model)
        size = ImageSize(
            settings.logical_size.width if args.width is None else args.width,
            settings.logical_size.height if args.height is None else args.height,
        )
        content = _read_rgb(args.content)
        style = _read_rgb(args.style)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("[style] %s", exc)
        return 2

    try:
        engine = InferenceEngine.setup(size.width, size.height, settings.model_location, settings=settings)
    except SetupError as exc:
        logging.error("[style] Setup failed: %s", exc)
        return 1

    with engine:
        engine.set_style(style)
        try:
            mode = ExecutionMode(args.mode) if args.mode else settings.mode
            if mode == ExecutionMode.BACKGROUND:
                output = _run_background(engine, content, args.frames, args.timeout)
            else:
                engine.set_input(content)
                output = engine.update()
        except InferenceError as exc:
            logging.error("[style] Inference failed: %s", exc)
            return 1
        if output is None:
            logging.error("[style] No output produced (last error: %s)", engine.last_error)
            return 1
        try:
            _write_rgb(args.output, output)
        except (OSError, cv2.error) as exc:
            logging.error("[style] %s", exc)
            return 1
        logging.info("[style] Wrote %s (%s, %.1f ms)", args.output, output.size, output.inference_ms)
    return 0


if __name__ == "__main__":
    sys.exit(main())
