from enum import Enum


class EngineState(Enum):
    """Observable stages of the inference engine, derived from its staged slots."""

    IDLE = "IDLE"
    INPUT_STAGED = "INPUT_STAGED"
    RUNNING = "RUNNING"
    OUTPUT_READY = "OUTPUT_READY"


class ExecutionMode(str, Enum):
    """Where the model runs: on the caller thread or on the background worker."""

    BLOCKING = "blocking"
    BACKGROUND = "background"


class ModelBackend(str, Enum):
    """Model runtimes the loader knows how to open."""

    AUTO = "auto"
    ONNX = "onnx"
    TENSORRT = "tensorrt"
