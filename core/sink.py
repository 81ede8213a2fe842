"""Event sink abstraction

A sink receives decoded inputs from the device streams. Each decode ends with
exactly one ``sync()``, which marks a frame boundary for the backend.
Report-stream and vendor-poll completions arrive on different worker threads,
so inputs are staged per thread and a frame is handed to the backend whole.
"""
import abc
import logging
import threading

from core.state import SinkState

LOG = logging.getLogger("horibridge.sink")


class EventSink(abc.ABC):
    def __init__(self):
        self.state = SinkState()
        self._lock = threading.Lock()
        self._local = threading.local()

    def _staged(self):
        frame = getattr(self._local, "frame", None)
        if frame is None:
            frame = self._local.frame = []
        return frame

    def open(self):
        pass

    def close(self):
        pass

    def bind_device(self, phys, version):
        """Called with the USB path and bcdDevice of each newly attached stick."""
        pass

    def report_axis(self, name, value):
        self._staged().append(("axis", name, int(value)))

    def report_button(self, name, pressed):
        self._staged().append(("button", name, bool(pressed)))

    def sync(self):
        frame = self._staged()
        self._local.frame = []
        with self._lock:
            for kind, name, value in frame:
                if kind == "axis":
                    self.state.axes[name] = value
                    self._emit_axis(name, value)
                else:
                    self.state.buttons[name] = value
                    self._emit_button(name, value)
            self.state.frames += 1
            self._flush()

    @abc.abstractmethod
    def _emit_axis(self, name, value):
        raise NotImplementedError

    @abc.abstractmethod
    def _emit_button(self, name, pressed):
        raise NotImplementedError

    @abc.abstractmethod
    def _flush(self):
        raise NotImplementedError


class LogSink(EventSink):
    """Dry-run sink: logs each frame instead of driving a virtual device."""

    def __init__(self):
        super().__init__()
        self._frame = []

    def _emit_axis(self, name, value):
        self._frame.append(f"{name}={value}")

    def _emit_button(self, name, pressed):
        self._frame.append(f"{name}={int(pressed)}")

    def _flush(self):
        LOG.debug("frame %d: %s", self.state.frames, " ".join(self._frame))
        self._frame = []
