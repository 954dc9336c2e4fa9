import threading
from enum import Enum

from env_utils import parse_bool_env


class LogChannel(Enum):
    GLOBAL = "GLOBAL"
    ENGINE = "ENGINE"
    BINDING = "BINDING"
    CODEC = "CODEC"


class LogLevel(Enum):
    INFO = "INFO"
    WARNING = "WARN"
    ERROR = "ERROR"
    DEBUG = "DEBUG"


class FilteredLogger:
    def __init__(self):
        self.global_debug = parse_bool_env('STYLE_ENGINE_DEBUG', '0')
        self.engine_debug = parse_bool_env('ENGINE_DEBUG_LOGS', '0')
        self.binding_debug = parse_bool_env('BINDING_DEBUG_LOGS', '0')
        self.codec_debug = parse_bool_env('CODEC_DEBUG_LOGS', '0')
        # worker and caller threads print concurrently
        self._lock = threading.Lock()

    def configure(self, *, global_debug=None, engine_debug=None, binding_debug=None, codec_debug=None):
        if global_debug is not None:
            self.global_debug = global_debug
        if engine_debug is not None:
            self.engine_debug = engine_debug
        if binding_debug is not None:
            self.binding_debug = binding_debug
        if codec_debug is not None:
            self.codec_debug = codec_debug

    def should_log_debug(self, channel):
        if channel == LogChannel.GLOBAL:
            return self.global_debug or self.engine_debug or self.binding_debug or self.codec_debug
        if channel == LogChannel.ENGINE:
            return self.global_debug or self.engine_debug
        if channel == LogChannel.BINDING:
            return self.global_debug or self.binding_debug
        if channel == LogChannel.CODEC:
            return self.global_debug or self.codec_debug
        return False

    def _print(self, level, channel, message):
        prefix = f"[{level.value}]"
        channel_tag = f"[{channel.value}]"
        with self._lock:
            for line in str(message).splitlines():
                print(f"{prefix} {channel_tag} {line}", flush=True)

    def info(self, channel, message):
        self._print(LogLevel.INFO, channel, message)

    def warning(self, channel, message):
        self._print(LogLevel.WARNING, channel, message)

    def error(self, channel, message):
        self._print(LogLevel.ERROR, channel, message)

    def debug(self, channel, message):
        if not self.should_log_debug(channel):
            return
        self._print(LogLevel.DEBUG, channel, message)


_shared_logger = FilteredLogger()


def configure_logger(**kwargs):
    _shared_logger.configure(**kwargs)


def info(channel, message):
    _shared_logger.info(channel, message)


def warning(channel, message):
    _shared_logger.warning(channel, message)


def error(channel, message):
    _shared_logger.error(channel, message)


def debug(channel, message):
    _shared_logger.debug(channel, message)
