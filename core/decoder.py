"""Bit-field decoding for the flightstick's vendor records and interrupt report

Vendor records are two bytes, fields packed LSB-first. Every flag is
active-low on the wire; the inversion happens here and nowhere else, so
everything returned by this module is active-high.

    record A (request 0x00)
      byte 0: fire-c, D, hat, ST, pad1 top, pad1 right, pad1 bottom, pad1 left
      byte 1: 5 reserved, launch, trigger, reserved
    record B (request 0x01)
      byte 0: 4 reserved, pad3 right, pad3 middle, pad3 left, reserved
      byte 1: mode select (2 bits), reserved, SW-1,
              pad2 top, pad2 right, pad2 bottom, pad2 left

The 8-byte interrupt report carries six raw axes followed by two pressure
bytes, which are thresholded into buttons.
"""
from core import events
from core.state import RecordA, RecordB, Report

RECORD_SIZE = 2
REPORT_SIZE = 8
PRESSURE_THRESHOLD = 0xC0


def _active(byte, bit):
    return not (byte >> bit) & 1


def _check_length(raw, size, what):
    if len(raw) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(raw)}")


def decode_record_a(raw) -> RecordA:
    _check_length(raw, RECORD_SIZE, "record A")
    b0, b1 = raw[0], raw[1]
    return RecordA(
        buttons=tuple(_active(b0, bit) for bit in range(0, 4)),
        pad1=tuple(_active(b0, bit) for bit in range(4, 8)),
        launch=_active(b1, 5),
        trigger=_active(b1, 6),
    )


def decode_record_b(raw) -> RecordB:
    _check_length(raw, RECORD_SIZE, "record B")
    b0, b1 = raw[0], raw[1]
    return RecordB(
        pad3=tuple(_active(b0, bit) for bit in range(4, 7)),
        sw1=_active(b1, 3),
        mode_select=b1 & 0x03,
        pad2=tuple(_active(b1, bit) for bit in range(4, 8)),
    )


def decode_pad_axis(low, high) -> int:
    """Collapse two opposite, already active-high directions into -1/0/+1.

    When both are asserted the high side (right, bottom) wins.
    """
    if high:
        return 1
    if low:
        return -1
    return 0


def decode_report(raw) -> Report:
    _check_length(raw, REPORT_SIZE, "report")
    return Report(
        axes=tuple(raw[0:6]),
        button_a=raw[6] < PRESSURE_THRESHOLD,
        button_b=raw[7] < PRESSURE_THRESHOLD,
    )


def record_a_events(rec: RecordA):
    """Yield ('button', id, pressed) for every input record A carries."""
    for name, pressed in zip(events.RECORD_A_BUTTONS, rec.buttons):
        yield "button", name, pressed
    for name, pressed in zip(events.PAD1_BUTTONS, rec.pad1):
        yield "button", name, pressed
    yield "button", events.LAUNCH_BUTTON, rec.launch
    yield "button", events.TRIGGER_BUTTON, rec.trigger


def record_b_events(rec: RecordB):
    # mode_select is intentionally not surfaced
    for name, pressed in zip(events.PAD3_BUTTONS, rec.pad3):
        yield "button", name, pressed
    yield "button", events.SW1_BUTTON, rec.sw1
    top, right, bottom, left = rec.pad2
    yield "axis", events.PAD2_HORIZONTAL_AXIS, decode_pad_axis(left, right)
    yield "axis", events.PAD2_VERTICAL_AXIS, decode_pad_axis(top, bottom)


def report_events(rep: Report):
    for name, value in zip(events.REPORT_AXES, rep.axes):
        yield "axis", name, value
    a, b = events.REPORT_BUTTONS
    yield "button", a, rep.button_a
    yield "button", b, rep.button_b


def hexdump(data) -> str:
    return " ".join(f"{b:02X}" for b in data)
