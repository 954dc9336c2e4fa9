from __future__ import annotations

import itertools
import time
from dataclasses import dataclass
from threading import Condition, Event, Thread
from typing import Any, Callable, Mapping

import numpy as np

from logger.filtered_logger import (
    LogChannel,
    debug as log_debug,
    info as log_info,
    warning as log_warning,
)
from style_engine.application.binding_resolver import (
    Binding,
    BindingAttempt,
    BindingCandidates,
    BindingResolver,
)
from style_engine.application.performance_tracker import PerformanceTracker
from style_engine.application.size_negotiator import SizeNegotiator
from style_engine.config.settings import EngineSettings
from style_engine.core.errors import EngineStateError, InferenceError, SetupError
from style_engine.core.image_size import STYLE_SIZE, ImageSize
from style_engine.core.style_model import StyleModel
from style_engine.core.tensor_buffer import TensorBuffer
from style_engine.enums import EngineState, ModelBackend
from style_engine.infrastructure.gpu_memory import configure_gpu_memory
from style_engine.infrastructure.image_codec import ImageCodec
from style_engine.infrastructure.model_loader import load_style_model

ModelLoaderFn = Callable[[str, ModelBackend, Mapping[str, Any]], StyleModel]


@dataclass(frozen=True, slots=True)
class OutputImage:
    """A completed, read-only RGB result as handed out by :meth:`InferenceEngine.poll`."""

    pixels: np.ndarray
    cycle_id: int
    inference_ms: float

    @property
    def size(self) -> ImageSize:
        return ImageSize(int(self.pixels.shape[1]), int(self.pixels.shape[0]))


@dataclass(frozen=True, slots=True)
class EngineStats:
    cycles_completed: int
    cycles_failed: int
    cycles_discarded: int
    inputs_staged: int
    inputs_dropped: int
    last_inference_ms: float | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "cycles_completed": self.cycles_completed,
            "cycles_failed": self.cycles_failed,
            "cycles_discarded": self.cycles_discarded,
            "inputs_staged": self.inputs_staged,
            "inputs_dropped": self.inputs_dropped,
            "last_inference_ms": self.last_inference_ms,
        }


@dataclass(frozen=True, slots=True)
class _CycleWork:
    cycle_id: int
    generation: int
    content: TensorBuffer
    style: TensorBuffer


class InferenceEngine:
    """Runs a style model on the freshest staged frame, blocking or on one background worker.

    Staging is latest-wins: ``set_input`` replaces any unconsumed frame, there
    is no queue. The consumer (caller in blocking mode, worker otherwise)
    snapshots the staged input/style references when a cycle starts; the
    producer only ever swaps references, so the snapshot stays stable while the
    model reads it. Results are picked up with the non-blocking :meth:`poll`.

    Usage:
        engine = InferenceEngine.setup(640, 480, "models/style.onnx")
        engine.set_style(style_pixels)
        engine.start_worker()
        while running:
            engine.set_input(frame)
            output = engine.poll()
    """

    def __init__(
        self,
        model: StyleModel,
        binding: Binding,
        negotiator: SizeNegotiator,
        codec: ImageCodec | None = None,
        *,
        style_size: ImageSize = STYLE_SIZE,
        idle_wait_s: float = 0.05,
        stop_timeout_s: float = 2.0,
    ) -> None:
        self._model = model
        self._binding = binding
        self._negotiator = negotiator
        self._codec = codec or ImageCodec()
        self._style_size = style_size
        self._idle_wait_s = idle_wait_s
        self._stop_timeout_s = stop_timeout_s
        self._tracker = PerformanceTracker()

        self._cond = Condition()
        self._staged_input: TensorBuffer | None = None
        self._staged_style: TensorBuffer | None = None
        self._pending_output: OutputImage | None = None
        self._latest_output: OutputImage | None = None
        self._in_flight = False
        self._failed_pair: tuple[TensorBuffer, TensorBuffer] | None = None
        self._last_error: InferenceError | None = None
        self._generation = 0
        self._cycle_ids = itertools.count(1)
        self._worker: Thread | None = None
        self._stop_event = Event()
        self._closed = False

        self._cycles_completed = 0
        self._cycles_failed = 0
        self._cycles_discarded = 0
        self._inputs_staged = 0
        self._inputs_dropped = 0
        self._last_inference_ms: float | None = None

    # ------------------------------------------------------------------
    # Construction / teardown
    # ------------------------------------------------------------------

    @classmethod
    def setup(
        cls,
        width: int,
        height: int,
        model_location: str,
        candidates: BindingCandidates | None = None,
        *,
        settings: EngineSettings | None = None,
        model_loader: ModelLoaderFn = load_style_model,
        codec: ImageCodec | None = None,
        on_rejected: Callable[[BindingAttempt], None] | None = None,
    ) -> "InferenceEngine":
        """Load the model, negotiate its slot binding and return a ready engine.

        Raises:
            SetupError: GPU required but missing, model unloadable, or no binding accepted.
        """
        settings = settings or EngineSettings()
        if settings.gpu_memory_fraction is not None or settings.gpu_required:
            configure_gpu_memory(settings.gpu_memory_fraction, settings.gpu_required)
        negotiator = SizeNegotiator(width, height, settings.alignment)

        model = model_loader(model_location, settings.backend, {"providers": settings.providers})
        resolver = BindingResolver(candidates or settings.candidates, on_rejected=on_rejected)
        try:
            binding = resolver.resolve(model)
        except SetupError:
            model.close()
            raise

        engine = cls(
            model,
            binding,
            negotiator,
            codec or ImageCodec(settings.device),
            style_size=settings.style_size,
            idle_wait_s=settings.idle_wait_s,
            stop_timeout_s=settings.stop_timeout_s,
        )
        log_info(
            LogChannel.ENGINE,
            f"Style transfer setup completed: {negotiator.logical_size} (model {negotiator.model_size}), binding {binding}",
        )
        return engine

    def close(self) -> None:
        """Stop the worker, drop staged data and release the model. Safe to call twice.

        Blocks until an in-flight cycle leaves the model; its result is discarded.
        """
        if self._closed:
            return
        self.stop_worker()
        with self._cond:
            self._closed = True
            self._staged_input = None
            self._staged_style = None
            self._pending_output = None
            self._cond.notify_all()
            if self._in_flight:
                log_info(LogChannel.ENGINE, "Waiting for the in-flight cycle before releasing the model")
            self._cond.wait_for(lambda: not self._in_flight)
        self._model.close()
        log_info(LogChannel.ENGINE, "Inference engine closed")

    def __enter__(self) -> "InferenceEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def set_input(self, pixels: Any) -> None:
        """Stage a content frame at the model size, replacing any unconsumed one.

        Raises:
            UnsupportedPixelFormat: not an 8-bit RGB/RGBA image; the staged frame is unchanged.
        """
        self._ensure_open()
        buffer = self._codec.to_tensor(pixels, self._negotiator.model_size)
        with self._cond:
            if self._staged_input is not None:
                self._inputs_dropped += 1
                log_debug(LogChannel.ENGINE, "Dropping unconsumed input frame")
            self._staged_input = buffer
            self._inputs_staged += 1
            self._cond.notify_all()

    def set_style(self, pixels: Any) -> None:
        """Stage the style image at the style size. Does not start a cycle by itself."""
        self._ensure_open()
        buffer = self._codec.to_tensor(pixels, self._style_size)
        with self._cond:
            self._staged_style = buffer
            self._cond.notify_all()
        log_info(LogChannel.ENGINE, f"Style image set ({buffer.size})")

    def set_size(self, width: int, height: int) -> None:
        """Change the logical size; the output buffer follows at the next completed cycle."""
        with self._cond:
            deferred = self._negotiator.set_size(width, height, in_flight=self._in_flight)
        if deferred:
            log_debug(LogChannel.ENGINE, "Size change deferred until the in-flight cycle completes")

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def run_blocking(self) -> None:
        """Run one cycle on the calling thread; the result becomes available through :meth:`poll`.

        Raises:
            EngineStateError: nothing staged, worker running, or a cycle already in flight.
            InferenceError: no style staged or the model failed; the input stays staged.
        """
        self._ensure_open()
        with self._cond:
            if self._worker is not None:
                raise EngineStateError("run_blocking() is unavailable while the background worker runs")
            if self._in_flight:
                raise EngineStateError("an inference cycle is already in flight")
            if self._staged_input is None:
                raise EngineStateError("no input staged; call set_input() first")
            if self._staged_style is None:
                raise InferenceError("no style image staged; call set_style() first")
            work = self._begin_cycle_locked()
        self._run_cycle(work)

    def start_worker(self) -> None:
        """Start the background worker. No-op when it already runs."""
        self._ensure_open()
        with self._cond:
            if self._worker is not None:
                return
            self._stop_event = Event()
            worker = Thread(
                target=self._worker_loop,
                args=(self._stop_event,),
                name="style-engine-worker",
                daemon=True,
            )
            self._worker = worker
        worker.start()
        log_info(LogChannel.ENGINE, "Background worker started")

    def stop_worker(self, timeout_s: float | None = None) -> None:
        """Stop the background worker; an in-flight result is discarded, never published."""
        with self._cond:
            worker = self._worker
            if worker is None:
                return
            self._worker = None
            self._stop_event.set()
            self._generation += 1
            self._cond.notify_all()
        worker.join(timeout=self._stop_timeout_s if timeout_s is None else timeout_s)
        if worker.is_alive():
            log_warning(LogChannel.ENGINE, "Worker still finishing an inference; its result will be discarded")
        else:
            log_info(LogChannel.ENGINE, "Background worker stopped")

    def is_worker_running(self) -> bool:
        with self._cond:
            return self._worker is not None

    def poll(self) -> OutputImage | None:
        """Return the unread result, or None. Never blocks on inference."""
        with self._cond:
            output = self._pending_output
            if output is None:
                return None
            self._pending_output = None
            self._latest_output = output
            return output

    def update(self) -> OutputImage | None:
        """Frame-loop helper: run a blocking cycle when no worker runs, then poll."""
        with self._cond:
            runnable = self._worker is None and not self._in_flight and self._staged_input is not None
        if runnable:
            self.run_blocking()
        return self.poll()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        with self._cond:
            if self._in_flight:
                return EngineState.RUNNING
            if self._staged_input is not None:
                return EngineState.INPUT_STAGED
            if self._pending_output is not None:
                return EngineState.OUTPUT_READY
            return EngineState.IDLE

    @property
    def binding(self) -> Binding:
        return self._binding

    @property
    def model(self) -> StyleModel:
        return self._model

    @property
    def logical_size(self) -> ImageSize:
        return self._negotiator.logical_size

    @property
    def model_size(self) -> ImageSize:
        return self._negotiator.model_size

    @property
    def style_size(self) -> ImageSize:
        return self._style_size

    @property
    def latest_output(self) -> OutputImage | None:
        """The most recently polled result."""
        with self._cond:
            return self._latest_output

    @property
    def last_error(self) -> InferenceError | None:
        with self._cond:
            return self._last_error

    def cycle_timings(self, cycle_id: int) -> dict[str, float]:
        return self._tracker.get_summary(cycle_id)

    def stats(self) -> EngineStats:
        with self._cond:
            return EngineStats(
                cycles_completed=self._cycles_completed,
                cycles_failed=self._cycles_failed,
                cycles_discarded=self._cycles_discarded,
                inputs_staged=self._inputs_staged,
                inputs_dropped=self._inputs_dropped,
                last_inference_ms=self._last_inference_ms,
            )

    # ------------------------------------------------------------------
    # Cycle internals
    # ------------------------------------------------------------------

    def _worker_loop(self, stop_event: Event) -> None:
        log_debug(LogChannel.ENGINE, "Worker loop entered")
        while not stop_event.is_set():
            with self._cond:
                while not stop_event.is_set() and not self._ready_for_work_locked():
                    self._cond.wait(timeout=self._idle_wait_s)
                if stop_event.is_set():
                    break
                work = self._begin_cycle_locked()
            try:
                self._run_cycle(work)
            except InferenceError:
                # already recorded in last_error; wait for fresh input or style
                continue
        log_debug(LogChannel.ENGINE, "Worker loop exited")

    def _ready_for_work_locked(self) -> bool:
        if self._closed or self._in_flight:
            return False
        if self._staged_input is None or self._staged_style is None:
            return False
        failed = self._failed_pair
        # a failed pair is retried only once the caller re-stages input or style
        if failed is not None and failed[0] is self._staged_input and failed[1] is self._staged_style:
            return False
        return True

    def _begin_cycle_locked(self) -> _CycleWork:
        assert self._staged_input is not None and self._staged_style is not None
        work = _CycleWork(
            cycle_id=next(self._cycle_ids),
            generation=self._generation,
            content=self._staged_input,
            style=self._staged_style,
        )
        self._staged_input = None
        self._in_flight = True
        log_debug(LogChannel.ENGINE, f"Cycle {work.cycle_id} started at {work.content.size}")
        return work

    def _run_cycle(self, work: _CycleWork) -> OutputImage | None:
        """Shared cycle for the blocking and background paths: infer, reconcile size, publish."""
        started = time.perf_counter()
        try:
            with self._tracker.stage(work.cycle_id, "infer"):
                result = self._model.infer(work.content, work.style)
            inference_ms = (time.perf_counter() - started) * 1000.0
            with self._tracker.stage(work.cycle_id, "decode"):
                pixels = self._codec.from_tensor(result, self._negotiator.delivery_size())
        except InferenceError as exc:
            self._fail_cycle(work, exc)
            raise
        except Exception as exc:
            error = InferenceError(f"inference cycle {work.cycle_id} failed: {exc}")
            self._fail_cycle(work, error)
            raise error from exc
        pixels.setflags(write=False)
        return self._publish(work, OutputImage(pixels=pixels, cycle_id=work.cycle_id, inference_ms=inference_ms))

    def _publish(self, work: _CycleWork, output: OutputImage) -> OutputImage | None:
        with self._cond:
            self._in_flight = False
            self._cond.notify_all()
            if work.generation != self._generation or self._closed:
                self._cycles_discarded += 1
                log_debug(LogChannel.ENGINE, f"Discarding cycle {work.cycle_id} finished after shutdown")
                return None
            self._pending_output = output
            self._failed_pair = None
            self._cycles_completed += 1
            self._last_inference_ms = output.inference_ms
        log_debug(LogChannel.ENGINE, f"Cycle {work.cycle_id} output ready at {output.size} ({output.inference_ms:.1f} ms)")
        return output

    def _fail_cycle(self, work: _CycleWork, error: InferenceError) -> None:
        with self._cond:
            self._in_flight = False
            self._cycles_failed += 1
            self._last_error = error
            self._failed_pair = (work.content, work.style)
            if self._staged_input is None and not self._closed:
                self._staged_input = work.content
            self._cond.notify_all()
        log_warning(LogChannel.ENGINE, f"Cycle {work.cycle_id} failed: {error}")

    def _ensure_open(self) -> None:
        if self._closed:
            raise EngineStateError("inference engine is closed")
