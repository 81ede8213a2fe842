"""uinput output using python-evdev

Creates a virtual joystick that advertises exactly the inputs the flightstick
produces and forwards every decoded frame to it.
"""
import logging

try:
    from evdev import AbsInfo, UInput, UInputError, ecodes
except Exception:
    AbsInfo = UInput = UInputError = ecodes = None

from core import events
from core.errors import OutputUnavailable
from core.sink import EventSink
from devices.hori import HORI_NAME, HORI_PRODUCT_ID, HORI_VENDOR_ID

LOG = logging.getLogger("horibridge.uinput")


def capabilities():
    """Build the evdev capability dict for the virtual device."""
    keys = [ecodes.ecodes[name] for name in events.BUTTONS]
    absinfo = []
    for name, (lo, hi) in events.AXIS_RANGES.items():
        absinfo.append((ecodes.ecodes[name], AbsInfo(value=0, min=lo, max=hi, fuzz=0, flat=0, resolution=0)))
    return {ecodes.EV_KEY: keys, ecodes.EV_ABS: absinfo}


class UInputSink(EventSink):
    def __init__(self, name=HORI_NAME, vendor=HORI_VENDOR_ID, product=HORI_PRODUCT_ID,
                 version=1, phys="horibridge/input0"):
        super().__init__()
        self.name = name
        self.vendor = vendor
        self.product = product
        self.version = version
        self.phys = phys
        self._ui = None

    def open(self):
        if UInput is None:
            raise OutputUnavailable("python-evdev is not installed — uinput output unavailable")
        try:
            self._ui = UInput(
                capabilities(),
                name=self.name,
                vendor=self.vendor,
                product=self.product,
                version=self.version,
                bustype=ecodes.BUS_USB,
                phys=self.phys,
            )
        except (OSError, UInputError) as e:
            raise OutputUnavailable(f"cannot create uinput device: {e}") from e
        LOG.info("uinput device created: %s (%s, %s)", self.name, self._ui.device.path, self.phys)

    def bind_device(self, phys, version):
        """Take over the physical path and version of the attached stick.

        The virtual device is recreated when either changes, since uinput
        fixes both at creation time.
        """
        if (phys, version) == (self.phys, self.version):
            return
        self.phys, self.version = phys, version
        with self._lock:
            if self._ui is None:
                return
            self._ui.close()
            self._ui = None
            self.open()

    def close(self):
        if self._ui is not None:
            self._ui.close()
            self._ui = None
            LOG.info("uinput device closed")

    def _emit_axis(self, name, value):
        if self._ui is not None:
            self._ui.write(ecodes.EV_ABS, ecodes.ecodes[name], value)

    def _emit_button(self, name, pressed):
        if self._ui is not None:
            self._ui.write(ecodes.EV_KEY, ecodes.ecodes[name], int(pressed))

    def _flush(self):
        if self._ui is not None:
            self._ui.syn()
