import errno
import logging
from types import SimpleNamespace

import pytest

from core.errors import HoriIOError
from devices.hori import HORI_POLL_VR0, HORI_POLL_VR1, PollState, VENDOR_REQUEST_TYPE, device_phys

REPORT = bytes([10, 20, 30, 40, 50, 60, 0xFF, 0x00])
IDLE = b"\xff\xff"


def vendor_requests(transport):
    return [req for name, req in transport.submitted if name == "vendor"]


def test_vendor_request_wire_format(session):
    t = session.polls.transfer
    assert VENDOR_REQUEST_TYPE == 0xC2
    assert (t.value, t.index, t.length) == (0, 1, 2)
    assert t.timeout_ms == 100


def test_open_starts_report_then_record_a(session, transport):
    session.open()
    assert session.active is True
    assert transport.submitted == [("report", 0), ("vendor", HORI_POLL_VR0)]
    assert session.polls.state is PollState.A


def test_open_twice_is_noop(session, transport):
    session.open()
    session.open()
    assert len(transport.submitted) == 2


def test_open_failure_raises_and_stays_inactive(session, transport):
    transport.fail_next["report"] = errno.ENOMEM
    with pytest.raises(HoriIOError):
        session.open()
    assert session.active is False
    assert transport.in_flight == {}


def test_vendor_polls_alternate_strictly(session, transport):
    session.open()
    for _ in range(6):
        vendor = [t for t in transport.in_flight.values() if t.name == "vendor"]
        assert len(vendor) == 1
        assert transport.complete("vendor", payload=IDLE)
    assert vendor_requests(transport) == [0, 1, 0, 1, 0, 1, 0]
    assert session.polls.stats == {PollState.A: 3, PollState.B: 3}


def test_record_a_buffer_is_scratch_area(session, transport):
    session.open()
    transport.complete("vendor", payload=b"\xfe\xbf")
    assert session.polls.record_a == bytearray(b"\xfe\xbf")
    assert session.polls.transfer.buffer is session.polls.record_b


def test_record_a_completion_emits_one_frame(session, transport, sink):
    session.open()
    transport.complete("vendor", payload=b"\xfe\xbf")  # fire-c and trigger
    assert sink.syncs() == 1
    assert sink.state.buttons["BTN_TRIGGER_HAPPY1"] is True
    assert sink.state.buttons["BTN_TRIGGER"] is True
    assert sink.state.buttons["BTN_THUMB"] is False
    assert len([e for e in sink.events if e[0] == "button"]) == 10


def test_record_b_completion_emits_buttons_and_pad_axes(session, transport, sink):
    session.open()
    transport.complete("vendor", payload=IDLE)
    transport.complete("vendor", payload=bytes([0xDF, 0x6F]))  # pad3 middle, pad2 top + left
    assert sink.syncs() == 2
    assert sink.state.buttons["BTN_C"] is True
    assert sink.state.buttons["BTN_X"] is False
    assert sink.state.axes["ABS_Z"] == -1
    assert sink.state.axes["ABS_RZ"] == -1


def test_vendor_stall_skips_to_other_record(session, transport, sink):
    session.open()
    transport.complete("vendor", status=errno.EPIPE)
    assert sink.syncs() == 0
    assert vendor_requests(transport) == [HORI_POLL_VR0, HORI_POLL_VR1]


def test_vendor_unexpected_error_logs_and_continues(session, transport, sink, caplog):
    session.open()
    with caplog.at_level(logging.ERROR, logger="horibridge.hori"):
        transport.complete("vendor", status=errno.EPROTO)
    assert "nonzero status" in caplog.text
    assert sink.syncs() == 0
    assert vendor_requests(transport) == [0, 1]


def test_vendor_timeout_retries_same_record(session, transport, sink):
    session.open()
    transport.complete("vendor", status=errno.ETIMEDOUT)
    assert vendor_requests(transport) == [0, 0]
    assert session.polls.state is PollState.A
    assert sink.syncs() == 0


def test_vendor_shutdown_stops_cycle_quietly(session, transport, caplog):
    session.open()
    with caplog.at_level(logging.WARNING):
        transport.complete("vendor", status=errno.ESHUTDOWN)
    assert transport.pending("vendor") is None
    assert caplog.records == []


def test_vendor_short_record_is_dropped(session, transport, sink):
    session.open()
    transport.complete("vendor", payload=b"\x00")
    assert sink.syncs() == 0
    assert vendor_requests(transport) == [0, 1]


def test_vendor_submit_failure_is_logged(session, transport, caplog):
    session.open()
    transport.fail_next["vendor"] = errno.ENOMEM
    with caplog.at_level(logging.ERROR, logger="horibridge.hori"):
        transport.complete("vendor", payload=IDLE)
    assert "ENOMEM" in caplog.text


def test_report_scenario(session, transport, sink):
    session.open()
    transport.complete("report", payload=REPORT)
    assert sink.events == [
        ("axis", "ABS_X", 10),
        ("axis", "ABS_Y", 20),
        ("axis", "ABS_RUDDER", 30),
        ("axis", "ABS_RX", 40),
        ("axis", "ABS_RY", 50),
        ("axis", "ABS_THROTTLE", 60),
        ("button", "BTN_A", False),
        ("button", "BTN_B", True),
        ("sync",),
    ]
    assert transport.pending("report") is not None


def test_report_wrong_length_warns_and_resubmits(session, transport, sink, caplog):
    session.open()
    with caplog.at_level(logging.WARNING, logger="horibridge.hori"):
        transport.complete("report", payload=REPORT[:5])
    assert "unexpected length 5" in caplog.text
    assert sink.events == []
    assert transport.pending("report") is not None


@pytest.mark.parametrize("status", [errno.EPIPE, errno.EPROTO, errno.ETIMEDOUT])
def test_report_stream_survives_faults(session, transport, status):
    session.open()
    transport.complete("report", status=status)
    assert transport.pending("report") is not None


def test_report_stream_stops_on_shutdown(session, transport):
    session.open()
    transport.complete("report", status=errno.ENODEV)
    assert transport.pending("report") is None


def test_report_and_vendor_streams_are_independent(session, transport, sink):
    session.open()
    transport.complete("report", payload=REPORT)
    transport.complete("vendor", payload=IDLE)
    transport.complete("report", payload=REPORT)
    assert sink.syncs() == 3
    assert vendor_requests(transport) == [0, 1]


def test_sink_failure_does_not_stop_stream(session, transport, sink, caplog):
    def boom():
        raise RuntimeError("sink gone")

    sink.sync = boom
    session.open()
    with caplog.at_level(logging.ERROR, logger="horibridge.hori"):
        transport.complete("report", payload=REPORT)
    assert "event sink failed" in caplog.text
    assert transport.pending("report") is not None


def test_close_kills_in_flight_transfers(session, transport, sink):
    session.open()
    report = transport.pending("report")
    vendor = transport.pending("vendor")
    session.close()
    assert session.active is False
    assert transport.in_flight == {}
    assert report.status == errno.ENOENT
    assert vendor.status == errno.ENOENT
    assert sink.events == []


def test_close_is_idempotent_and_safe_unopened(session, transport):
    session.close()
    session.close()
    session.open()
    session.close()
    session.close()
    assert session.active is False


def test_suspend_keeps_active_and_resume_restarts_at_a(session, transport):
    session.open()
    transport.complete("vendor", payload=IDLE)
    assert session.polls.state is PollState.B

    session.suspend()
    assert session.active is True
    assert transport.in_flight == {}

    session.resume()
    assert transport.pending("report") is not None
    assert transport.pending("vendor").request == HORI_POLL_VR0
    assert session.polls.state is PollState.A


def test_suspend_resume_when_inactive_do_nothing(session, transport):
    session.suspend()
    session.resume()
    assert transport.submitted == []


def test_resume_failure_still_restarts_vendor_cycle(session, transport):
    session.open()
    session.suspend()
    transport.fail_next["report"] = errno.ENOMEM
    with pytest.raises(HoriIOError):
        session.resume()
    assert transport.pending("vendor").request == HORI_POLL_VR0


def test_reset_resume_is_resume(session, transport):
    session.open()
    session.suspend()
    session.reset_resume()
    assert transport.pending("report") is not None


def test_pre_reset_holds_lock_until_post_reset(session, transport):
    session.open()
    session.pre_reset()
    assert session._lock.locked()
    assert transport.in_flight == {}
    session.post_reset()
    assert not session._lock.locked()
    assert transport.pending("vendor").request == HORI_POLL_VR0
    assert transport.pending("report") is not None


def test_post_reset_releases_lock_on_failure(session, transport):
    session.open()
    session.pre_reset()
    transport.fail_next["report"] = errno.EIO
    with pytest.raises(HoriIOError):
        session.post_reset()
    assert not session._lock.locked()


def test_detach_closes_and_releases(session, transport):
    session.open()
    session.detach()
    assert session.active is False
    assert transport.released is True


def test_resume_while_running_discards_in_flight_record_b(session, transport, sink):
    session.open()
    transport.complete("vendor", payload=IDLE)
    assert transport.pending("vendor").request == HORI_POLL_VR1

    session.resume()
    vendor = transport.pending("vendor")
    assert vendor.request == HORI_POLL_VR0
    assert vendor.buffer is session.polls.record_a
    assert transport.pending("report") is not None
    assert sink.syncs() == 1

    # the next completion is a genuine record A
    transport.complete("vendor", payload=b"\xff\xdf")
    assert sink.state.buttons["BTN_THUMB"] is True
    assert "BTN_C" not in sink.state.buttons
    assert vendor_requests(transport) == [0, 1, 0, 1]


def test_device_phys_uses_bus_and_port_path():
    dev = SimpleNamespace(bus=1, port_numbers=(2, 3), address=9)
    assert device_phys(dev) == "usb-1-2.3/input0"
    dev = SimpleNamespace(bus=1, port_numbers=None, address=9)
    assert device_phys(dev, interface=1) == "usb-1-9/input1"
