"""vJoy output wrapper using direct ctypes calls to vJoy DLL

``VJoyOutput`` is an event sink: each synced frame is routed through a
``Mapper`` into a VJoyCommand and handed to a writer thread that pushes the
latest command to the vJoy device at a fixed rate.
"""
import ctypes
import logging
import sys
import threading
from queue import Empty, Full, Queue

from core.sink import EventSink
from core.state import VJoyCommand
from mapper import Mapper

LOG = logging.getLogger("horibridge.vjoy")

VJOY_DLL_PATH = r"C:\Program Files\vJoy\x64\vJoyInterface.dll"


def load_vjoy_dll(path=VJOY_DLL_PATH):
    if sys.platform != "win32":
        return None
    try:
        dll = ctypes.CDLL(path)
    except OSError as e:
        LOG.error("Failed to load vJoy DLL: %s — vJoy may not be installed or path may be wrong", e)
        return None
    dll.AcquireVJD.argtypes = [ctypes.c_uint]
    dll.AcquireVJD.restype = ctypes.c_bool
    dll.RelinquishVJD.argtypes = [ctypes.c_uint]
    dll.RelinquishVJD.restype = ctypes.c_bool
    dll.UpdateVJD.argtypes = [ctypes.c_uint, ctypes.POINTER(JOYSTICK_POSITION)]
    dll.UpdateVJD.restype = ctypes.c_bool
    dll.GetVJDStatus.argtypes = [ctypes.c_uint]
    dll.GetVJDStatus.restype = ctypes.c_uint
    LOG.info("vJoy DLL loaded successfully")
    return dll


class JOYSTICK_POSITION(ctypes.Structure):
    """vJoy joystick position structure matching vJoy SDK"""
    _fields_ = [
        ("bDevice", ctypes.c_ubyte),
        ("wThrottle", ctypes.c_ulong),
        ("wRudder", ctypes.c_ulong),
        ("wAileron", ctypes.c_ulong),
        ("wAxisX", ctypes.c_long),
        ("wAxisY", ctypes.c_long),
        ("wAxisZ", ctypes.c_long),
        ("wAxisXRot", ctypes.c_long),
        ("wAxisYRot", ctypes.c_long),
        ("wAxisZRot", ctypes.c_long),
        ("wSlider", ctypes.c_long),
        ("wDial", ctypes.c_long),
        ("wWheel", ctypes.c_long),
        ("wAxisVX", ctypes.c_long),
        ("wAxisVY", ctypes.c_long),
        ("wAxisVZ", ctypes.c_long),
        ("wAxisVBRX", ctypes.c_long),
        ("wAxisVBRY", ctypes.c_long),
        ("wAxisVBRZ", ctypes.c_long),
        ("lButtons", ctypes.c_ulong),
        ("bHats", ctypes.c_ulong),
        ("bHatsEx1", ctypes.c_ubyte),
        ("bHatsEx2", ctypes.c_ubyte),
        ("bHatsEx3", ctypes.c_ubyte),
    ]


# Map axis names to JOYSTICK_POSITION field names
AXIS_MAP = {
    "AXIS_X": "wAxisX",
    "AXIS_Y": "wAxisY",
    "AXIS_Z": "wAxisZ",
    "AXIS_RX": "wAxisXRot",
    "AXIS_RY": "wAxisYRot",
    "AXIS_RZ": "wAxisZRot",
    "AXIS_RUDDER": "wRudder",
    "AXIS_THROTTLE": "wThrottle",
    "AXIS_AILERON": "wAileron",
    "AXIS_SLIDER": "wSlider",
    "AXIS_DIAL": "wDial",
    "AXIS_WHEEL": "wWheel",
}

STATUS_NAMES = {0: "FREE", 1: "TAKEN", 2: "BUSY", 3: "MISS", 4: "UNKNOWN"}


class VJoyOutput(EventSink):
    def __init__(self, device_id: int = 1, hz: int = 120, mapper: Mapper = None, dll=None):
        super().__init__()
        self.device_id = device_id
        self.hz = hz
        self.mapper = mapper or Mapper.default()
        self._dll = dll
        self._q = Queue(maxsize=4)
        self._t = None
        self._stop = threading.Event()
        self._pos = JOYSTICK_POSITION()
        self._pos.bDevice = device_id
        self._acquired = False

    def open(self):
        if self._dll is None:
            self._dll = load_vjoy_dll()
        if self._dll is None:
            LOG.warning("vJoy not available — running in dry-run mode")
        elif self._dll.AcquireVJD(self.device_id):
            self._acquired = True
            LOG.info("vJoy device %d acquired", self.device_id)
        else:
            LOG.warning("Failed to acquire vJoy device %d — make sure vJoy Monitor is running", self.device_id)
            status = self._dll.GetVJDStatus(self.device_id)
            status_name = STATUS_NAMES.get(status, f"UNKNOWN({status})")
            LOG.warning("Device %d status: %s (close vJoy config tools if BUSY)", self.device_id, status_name)
        self._stop.clear()
        self._t = threading.Thread(target=self._loop, name="VJoyOutput", daemon=True)
        self._t.start()

    def close(self):
        self._stop.set()
        if self._t:
            self._t.join(timeout=1.0)
            self._t = None
        if self._acquired:
            self._dll.RelinquishVJD(self.device_id)
            self._acquired = False
            LOG.info("vJoy device %d released", self.device_id)

    def _emit_axis(self, name, value):
        pass

    def _emit_button(self, name, pressed):
        pass

    def _flush(self):
        # runs under the sink lock, so state is a consistent snapshot
        self.apply(self.mapper.map_state(self.state))

    def apply(self, cmd: VJoyCommand):
        # keep only the latest command
        try:
            self._q.put_nowait(cmd)
        except Full:
            try:
                self._q.get_nowait()
            except Empty:
                pass
            try:
                self._q.put_nowait(cmd)
            except Full:
                LOG.debug("vjoy queue full, dropping command")

    def _to_vjoy_axis(self, val: float) -> int:
        # map -1..1 to 0..0x8000
        iv = int((val + 1.0) / 2.0 * 0x8000)
        return max(0, min(0x8000, iv))

    def _apply_to_device(self, cmd: VJoyCommand):
        for name, v in cmd.axes.items():
            field_name = AXIS_MAP.get(name)
            if field_name:
                setattr(self._pos, field_name, self._to_vjoy_axis(v))
            else:
                LOG.debug("unknown vjoy axis %s", name)

        # lButtons is a bitmask, button 1 is bit 0
        buttons_value = 0
        for bid, state in cmd.buttons.items():
            if state and 1 <= bid <= 32:
                buttons_value |= 1 << (bid - 1)
        self._pos.lButtons = buttons_value

        if not self._acquired:
            LOG.debug("vjoy dry-run: axes=%s buttons=0x%x", cmd.axes, buttons_value)
            return
        if not self._dll.UpdateVJD(self.device_id, ctypes.byref(self._pos)):
            LOG.warning("vJoy UpdateVJD failed")

    def _loop(self):
        period = 1.0 / float(self.hz)
        while not self._stop.is_set():
            try:
                cmd = self._q.get(timeout=period)
            except Empty:
                continue
            try:
                self._apply_to_device(cmd)
            except Exception:
                LOG.exception("failed to write to vJoy device")
