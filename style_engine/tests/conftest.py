from __future__ import annotations

import time
from threading import Event
from typing import Any, Callable, Iterable, Iterator

import numpy as np
import pytest

from style_engine.application.binding_resolver import Binding
from style_engine.application.inference_engine import InferenceEngine
from style_engine.application.size_negotiator import SizeNegotiator
from style_engine.core.errors import BindingRejected
from style_engine.core.style_model import StyleModel
from style_engine.core.tensor_buffer import TensorBuffer
from style_engine.infrastructure.image_codec import ImageCodec


class FakeStyleModel(StyleModel):
    """In-memory model: echoes the content tensor back as the stylized output.

    ``gate`` holds ``infer`` until the test sets it, ``fail_with`` makes it raise.
    """

    def __init__(self, accepted: Iterable[tuple[str, str, str]] | None = None) -> None:
        self.accepted = set(accepted) if accepted is not None else None
        self.configure_calls: list[tuple[str, str, str]] = []
        self.infer_calls: list[tuple[TensorBuffer, TensorBuffer]] = []
        self.started = Event()
        self.gate: Event | None = None
        self.fail_with: Exception | None = None
        self.closed = False
        self.inferring = False
        self.closed_while_inferring = False

    @property
    def location(self) -> str:
        return "memory://fake-style-model"

    def configure(self, content_slot: str, style_slot: str, output_slot: str) -> None:
        triple = (content_slot, style_slot, output_slot)
        self.configure_calls.append(triple)
        if self.accepted is not None and triple not in self.accepted:
            raise BindingRejected(f"unknown slots {triple}")

    def infer(self, content: TensorBuffer, style: TensorBuffer) -> TensorBuffer:
        self.infer_calls.append((content, style))
        self.inferring = True
        try:
            self.started.set()
            if self.gate is not None:
                self.gate.wait(timeout=5.0)
            if self.fail_with is not None:
                raise self.fail_with
            return content
        finally:
            self.inferring = False

    def close(self) -> None:
        self.closed_while_inferring = self.inferring
        self.closed = True


def solid_pixels(width: int, height: int, value: int, channels: int = 3) -> np.ndarray:
    return np.full((height, width, channels), value, dtype=np.uint8)


def wait_for(predicate: Callable[[], Any], timeout_s: float = 5.0) -> Any:
    """Poll ``predicate`` until it returns something truthy or the timeout expires."""
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(0.005)
    return predicate()


@pytest.fixture
def fake_model_cls() -> type[FakeStyleModel]:
    return FakeStyleModel


@pytest.fixture
def pixels() -> Callable[..., np.ndarray]:
    return solid_pixels


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    return wait_for


@pytest.fixture
def make_engine() -> Iterator[Callable[..., InferenceEngine]]:
    engines: list[InferenceEngine] = []

    def _make(
        width: int = 64,
        height: int = 48,
        model: StyleModel | None = None,
        stop_timeout_s: float = 2.0,
    ) -> InferenceEngine:
        engine = InferenceEngine(
            model or FakeStyleModel(),
            Binding("content", "style", "output"),
            SizeNegotiator(width, height),
            ImageCodec(),
            idle_wait_s=0.01,
            stop_timeout_s=stop_timeout_s,
        )
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        model = engine.model
        if isinstance(model, FakeStyleModel) and model.gate is not None:
            model.gate.set()
        engine.close()
