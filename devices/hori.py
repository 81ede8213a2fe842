"""Hori/Namco flightstick session

The stick reports through two channels at once:

- an interrupt IN endpoint delivering an 8-byte report (six axes and two
  pressure buttons), kept alive by ``ReportStream``;
- two vendor control requests (0x00 and 0x01) returning 2-byte bit records,
  polled in strict alternation by ``VendorPollCycle``.

``HoriSession`` starts, stops, suspends and resumes both under one lock.
Completion handlers never take that lock; they rely on the transport's kill
semantics instead.
"""
import enum
import errno
import logging
import threading

import usb.core
import usb.util

from core import decoder
from core.errors import (
    DeviceNotFound,
    Disposition,
    HoriIOError,
    QUIET_SUBMIT_ERRORS,
    SubmitError,
    advances,
    classify,
    errno_name,
    should_resubmit,
)
from devices.transport import CONTROL, INTERRUPT, Transfer

LOG = logging.getLogger("horibridge.hori")

HORI_VENDOR_ID = 0x06d3
HORI_PRODUCT_ID = 0x0f10
HORI_NAME = "Mitsubishi Hori/Namco Flightstick"

HORI_POLL_VR0 = 0x00
HORI_POLL_VR1 = 0x01

# IN | vendor | endpoint recipient
VENDOR_REQUEST_TYPE = (
    usb.util.CTRL_IN | usb.util.CTRL_TYPE_VENDOR | usb.util.CTRL_RECIPIENT_ENDPOINT
)
VENDOR_VALUE = 0
VENDOR_INDEX = 1


def log_submit_error(name, err):
    """Log a failed submission unless it only means we are shutting down."""
    if err.errno in QUIET_SUBMIT_ERRORS:
        LOG.debug("%s: submit refused during teardown (%s)", name, errno_name(err.errno))
        return
    LOG.error("%s: submit failed with result: %s (%s)", name, err.errno, errno_name(err.errno))


def _emit(sink, items):
    try:
        for kind, name, value in items:
            if kind == "axis":
                sink.report_axis(name, value)
            else:
                sink.report_button(name, value)
        sink.sync()
    except Exception:
        LOG.exception("event sink failed")


class PollState(enum.Enum):
    A = HORI_POLL_VR0
    B = HORI_POLL_VR1

    @property
    def other(self):
        return PollState.B if self is PollState.A else PollState.A


class VendorPollCycle:
    """Alternates vendor requests A and B on a single control slot.

    Completion of one request is the only thing that submits the other, so
    exactly one of them is ever in flight.
    """

    def __init__(self, transport, sink, timeout_ms=100):
        self._transport = transport
        self._sink = sink
        self.record_a = bytearray(decoder.RECORD_SIZE)
        self.record_b = bytearray(decoder.RECORD_SIZE)
        self.transfer = Transfer(
            CONTROL,
            decoder.RECORD_SIZE,
            self._complete,
            request_type=VENDOR_REQUEST_TYPE,
            value=VENDOR_VALUE,
            index=VENDOR_INDEX,
            timeout_ms=timeout_ms,
            name="vendor",
        )
        self.state = PollState.A
        self.stats = {PollState.A: 0, PollState.B: 0}
        self.mode_select = 0

    def start(self):
        """(Re)start the cycle from record A."""
        self.state = PollState.A
        self._submit()

    def stop(self):
        self._transport.kill(self.transfer)

    def _submit(self):
        buf = self.record_a if self.state is PollState.A else self.record_b
        self.transfer.request = self.state.value
        self.transfer.buffer = buf
        self.transfer.length = len(buf)
        try:
            self._transport.submit(self.transfer)
        except SubmitError as e:
            log_submit_error(f"vendor poll {self.state.name}", e)

    def _complete(self, transfer):
        state = self.state
        disposition = classify(transfer.status)
        if disposition is Disposition.SHUTDOWN:
            LOG.debug("vendor poll %s shutting down with status: %s",
                      state.name, errno_name(transfer.status))
            return
        if disposition is Disposition.IGNORE:
            LOG.debug("vendor poll %s timed out, retrying", state.name)
        elif disposition is Disposition.STALL:
            LOG.debug("vendor poll %s stalled, skipping", state.name)
        elif disposition is Disposition.UNEXPECTED:
            LOG.error("vendor poll %s: nonzero status received: %s (%s)",
                      state.name, transfer.status, errno_name(transfer.status))
        elif transfer.actual_length < decoder.RECORD_SIZE:
            LOG.warning("vendor poll %s: short record (%d bytes)", state.name, transfer.actual_length)
        else:
            self.stats[state] += 1
            self._publish(state)
        if advances(disposition):
            self.state = state.other
        self._submit()

    def _publish(self, state):
        if state is PollState.A:
            items = decoder.record_a_events(decoder.decode_record_a(self.record_a))
        else:
            rec = decoder.decode_record_b(self.record_b)
            if rec.mode_select != self.mode_select:
                LOG.debug("mode select %d -> %d", self.mode_select, rec.mode_select)
                self.mode_select = rec.mode_select
            items = decoder.record_b_events(rec)
        _emit(self._sink, items)


class ReportStream:
    """Keeps the interrupt IN report read armed forever."""

    def __init__(self, transport, sink, endpoint, max_packet=decoder.REPORT_SIZE):
        self._transport = transport
        self._sink = sink
        self.transfer = Transfer(
            INTERRUPT,
            max(max_packet, decoder.REPORT_SIZE),
            self._complete,
            endpoint=endpoint,
            name="report",
        )
        self.reports = 0

    def start(self):
        """Submit the first read; raises SubmitError on failure."""
        self._transport.submit(self.transfer)

    def stop(self):
        self._transport.kill(self.transfer)

    def _complete(self, transfer):
        disposition = classify(transfer.status)
        if disposition is Disposition.SUCCESS:
            if transfer.actual_length == decoder.REPORT_SIZE:
                self.reports += 1
                rep = decoder.decode_report(transfer.data)
                _emit(self._sink, decoder.report_events(rep))
            else:
                LOG.warning("report: unexpected length %d: %s",
                            transfer.actual_length, decoder.hexdump(transfer.data))
        elif disposition is Disposition.UNEXPECTED:
            LOG.error("report: nonzero status received: %s (%s)",
                      transfer.status, errno_name(transfer.status))
        else:
            LOG.debug("report: status %s (%s)", errno_name(transfer.status), disposition.value)
        if not should_resubmit(disposition):
            return
        try:
            self._transport.submit(transfer)
        except SubmitError as e:
            log_submit_error("report", e)


class HoriSession:
    """Lifecycle of one attached flightstick.

    Every transition holds ``_lock`` for its whole duration. ``pre_reset``
    is the exception: it keeps the lock until the matching ``post_reset``.
    """

    def __init__(self, transport, sink, endpoint, max_packet=decoder.REPORT_SIZE,
                 control_timeout_ms=100):
        self.transport = transport
        self.sink = sink
        self.reports = ReportStream(transport, sink, endpoint, max_packet)
        self.polls = VendorPollCycle(transport, sink, timeout_ms=control_timeout_ms)
        self.active = False
        self._lock = threading.Lock()

    def open(self):
        with self._lock:
            if self.active:
                LOG.debug("open: already active")
                return
            try:
                self.reports.start()
            except SubmitError as e:
                LOG.error("open: report submit failed, error: %s (%s)", e.errno, errno_name(e.errno))
                raise HoriIOError(f"could not start report stream: {errno_name(e.errno)}") from e
            self.active = True
            self.polls.start()
            LOG.info("%s streams started", HORI_NAME)

    def close(self):
        with self._lock:
            self._kill()
            if self.active:
                LOG.info("%s streams stopped", HORI_NAME)
            self.active = False

    def suspend(self):
        with self._lock:
            if self.active:
                self._kill()

    def resume(self):
        with self._lock:
            self._restart()

    def reset_resume(self):
        self.resume()

    def pre_reset(self):
        self._lock.acquire()
        try:
            self._kill()
        except BaseException:
            self._lock.release()
            raise

    def post_reset(self):
        try:
            self._restart()
        finally:
            self._lock.release()

    def detach(self):
        """Hot-unplug: stop the streams and let go of the transport."""
        self.close()
        self.transport.release()

    def _kill(self):
        self.reports.stop()
        self.polls.stop()

    def _restart(self):
        if not self.active:
            return
        # a poll still in flight would land in the wrong scratch buffer
        self._kill()
        failure = None
        try:
            self.reports.start()
        except SubmitError as e:
            LOG.error("resume: report submit failed, error: %s (%s)", e.errno, errno_name(e.errno))
            failure = e
        # always restart from record A; whatever B was doing is discarded
        self.polls.start()
        if failure is not None:
            raise HoriIOError(f"could not restart report stream: {errno_name(failure.errno)}") from failure


def device_phys(dev, interface=0):
    """Physical path of ``dev`` in the kernel's usb-<bus>-<ports>/input<N> form."""
    ports = dev.port_numbers
    path = ".".join(str(p) for p in ports) if ports else str(dev.address)
    return f"usb-{dev.bus}-{path}/input{interface}"


def find_flightstick(vendor_id=HORI_VENDOR_ID, product_id=HORI_PRODUCT_ID, interface=0):
    """Find and claim the flightstick.

    Returns ``(device, endpoint_address, max_packet_size)`` for the interrupt
    IN endpoint of ``interface``.
    """
    dev = usb.core.find(idVendor=vendor_id, idProduct=product_id)
    if dev is None:
        raise DeviceNotFound(f"USB device {vendor_id:04x}:{product_id:04x} not found")

    try:
        if dev.is_kernel_driver_active(interface):
            dev.detach_kernel_driver(interface)
            LOG.debug("Detached kernel driver from interface %d", interface)
    except NotImplementedError:
        # not supported by every backend (e.g. on Windows)
        pass

    try:
        dev.set_configuration()
    except usb.core.USBError as e:
        if e.errno != errno.EBUSY:
            raise
    cfg = dev.get_active_configuration()
    intf = cfg[(interface, 0)]

    ep = usb.util.find_descriptor(
        intf,
        custom_match=lambda e: (
            usb.util.endpoint_direction(e.bEndpointAddress) == usb.util.ENDPOINT_IN
            and usb.util.endpoint_type(e.bmAttributes) == usb.util.ENDPOINT_TYPE_INTR
        ),
    )
    if ep is None:
        raise DeviceNotFound("Could not find interrupt IN endpoint")

    LOG.info("Found %s %04x:%04x (EP IN=0x%02x, maxp=%d)",
             HORI_NAME, vendor_id, product_id, ep.bEndpointAddress, ep.wMaxPacketSize)
    return dev, ep.bEndpointAddress, ep.wMaxPacketSize
