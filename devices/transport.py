"""Asynchronous USB transfers on top of pyusb

pyusb only offers blocking calls, so every transfer slot gets a daemon worker
thread. ``submit`` arms the slot and returns at once; the worker performs the
I/O and invokes ``transfer.complete(transfer)`` from its own thread. The
callback may resubmit the same transfer, which re-arms the slot for the next
loop of the worker instead of recursing.

``kill`` blocks until the slot is idle and its callback has returned. While a
kill is pending the in-flight transfer completes with ENOENT and any
resubmission from the callback is refused with EPERM, so nothing fires once
``kill`` returns.
"""
import errno
import logging
import threading

import usb.core
import usb.util

from core.errors import SubmitError

LOG = logging.getLogger("horibridge.transport")

CONTROL = "control"
INTERRUPT = "interrupt"


class Transfer:
    """A reusable request slot (control or interrupt IN)."""

    def __init__(self, kind, length, complete, endpoint=0, request_type=0,
                 request=0, value=0, index=0, timeout_ms=100, name=None):
        self.kind = kind
        self.length = length
        self.buffer = bytearray(length)
        self.complete = complete
        self.endpoint = endpoint
        self.request_type = request_type
        self.request = request
        self.value = value
        self.index = index
        self.timeout_ms = timeout_ms
        self.name = name or kind
        self.status = 0
        self.actual_length = 0

    @property
    def data(self):
        return bytes(self.buffer[:self.actual_length])

    def __repr__(self):
        return f"<Transfer {self.name} status={self.status} len={self.actual_length}>"


class _Slot:
    def __init__(self, transfer):
        self.transfer = transfer
        self.armed = False  # submitted, completion not yet delivered
        self.busy = False  # worker owns the transfer (I/O or callback)
        self.cancel = False
        self.rejecting = 0
        self.stopping = False
        self.thread = None


class UsbTransport:
    """Runs Transfer slots against a pyusb ``usb.core.Device``."""

    def __init__(self, device, interrupt_poll_ms=100):
        self._dev = device
        self._interrupt_poll_ms = interrupt_poll_ms
        self._cond = threading.Condition()
        self._slots = {}
        self._released = False
        self.alive = True

    def submit(self, transfer):
        with self._cond:
            if self._released or not self.alive:
                raise SubmitError(errno.ENODEV, f"{transfer.name}: device is gone")
            slot = self._slots.get(id(transfer))
            if slot is None:
                slot = self._slots[id(transfer)] = _Slot(transfer)
            if slot.rejecting:
                raise SubmitError(errno.EPERM, f"{transfer.name}: transfer is being killed")
            if slot.armed:
                raise SubmitError(errno.EBUSY, f"{transfer.name}: already submitted")
            transfer.status = 0
            transfer.actual_length = 0
            slot.armed = True
            if slot.thread is None:
                slot.thread = threading.Thread(
                    target=self._run, args=(slot,), name=f"hori-{transfer.name}", daemon=True
                )
                slot.thread.start()
            self._cond.notify_all()

    def kill(self, transfer):
        """Cancel ``transfer`` and wait until its worker is quiet."""
        with self._cond:
            slot = self._slots.get(id(transfer))
            if slot is None:
                return
            if slot.thread is threading.current_thread():
                raise RuntimeError("kill() called from the transfer's own completion")
            slot.rejecting += 1
            slot.cancel = True
            self._cond.notify_all()
            try:
                while slot.armed or slot.busy:
                    self._cond.wait()
            finally:
                slot.rejecting -= 1
                slot.cancel = False

    def release(self):
        """Kill every transfer, stop the workers and let go of the device."""
        for slot in list(self._slots.values()):
            self.kill(slot.transfer)
        with self._cond:
            self._released = True
            for slot in self._slots.values():
                slot.stopping = True
            self._cond.notify_all()
        for slot in self._slots.values():
            if slot.thread is not None and slot.thread is not threading.current_thread():
                slot.thread.join(timeout=1.0)
        if self._dev is not None:
            try:
                usb.util.dispose_resources(self._dev)
            except usb.core.USBError as e:
                LOG.debug("dispose_resources failed: %s", e)
        LOG.debug("transport released")

    def _run(self, slot):
        transfer = slot.transfer
        while True:
            with self._cond:
                while not slot.armed and not slot.stopping:
                    self._cond.wait()
                if not slot.armed:
                    return
                slot.busy = True
            status, data = self._perform(slot)
            with self._cond:
                if slot.cancel:
                    status, data = errno.ENOENT, b""
                n = min(len(data), len(transfer.buffer))
                transfer.buffer[:n] = data[:n]
                transfer.actual_length = n
                transfer.status = status
                if status in (errno.ENODEV, errno.ESHUTDOWN):
                    self.alive = False
                slot.armed = False
            try:
                transfer.complete(transfer)
            except Exception:
                LOG.exception("completion handler for %s failed", transfer.name)
            with self._cond:
                slot.busy = False
                self._cond.notify_all()

    def _perform(self, slot):
        transfer = slot.transfer
        if slot.cancel:
            return errno.ENOENT, b""
        try:
            if transfer.kind == CONTROL:
                data = self._dev.ctrl_transfer(
                    transfer.request_type, transfer.request, transfer.value,
                    transfer.index, transfer.length, timeout=transfer.timeout_ms,
                )
                return 0, bytes(data)
            # interrupt IN: wait for data until cancelled
            while not slot.cancel:
                try:
                    data = self._dev.read(
                        transfer.endpoint, transfer.length, timeout=self._interrupt_poll_ms
                    )
                except usb.core.USBTimeoutError:
                    continue
                return 0, bytes(data)
            return errno.ENOENT, b""
        except usb.core.USBError as e:
            code = e.errno or errno.EIO
            LOG.debug("%s: USB error %s (%s)", transfer.name, code, e)
            return code, b""
