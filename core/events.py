"""Logical input identifiers emitted by the flightstick.

Identifiers reuse the Linux input event code names so the uinput sink can
resolve them directly; other sinks treat them as opaque strings.
"""

# Record A: four primary buttons then pad-1 (top, right, bottom, left)
RECORD_A_BUTTONS = (
    "BTN_TRIGGER_HAPPY1",  # fire-c
    "BTN_TRIGGER_HAPPY2",  # button D
    "BTN_TRIGGER_HAPPY3",  # hat press
    "BTN_TRIGGER_HAPPY4",  # button ST
)
PAD1_BUTTONS = (
    "BTN_TRIGGER_HAPPY5",
    "BTN_TRIGGER_HAPPY6",
    "BTN_TRIGGER_HAPPY7",
    "BTN_TRIGGER_HAPPY8",
)
LAUNCH_BUTTON = "BTN_THUMB"
TRIGGER_BUTTON = "BTN_TRIGGER"

# Record B: pad-3 (right, middle, left) and SW-1
PAD3_BUTTONS = ("BTN_THUMB2", "BTN_C", "BTN_X")
SW1_BUTTON = "BTN_Y"

# Pad-2 collapsed into two ternary axes
PAD2_HORIZONTAL_AXIS = "ABS_Z"
PAD2_VERTICAL_AXIS = "ABS_RZ"

# Interrupt report
REPORT_AXES = ("ABS_X", "ABS_Y", "ABS_RUDDER", "ABS_RX", "ABS_RY", "ABS_THROTTLE")
REPORT_BUTTONS = ("BTN_A", "BTN_B")

BUTTONS = (
    RECORD_A_BUTTONS
    + PAD1_BUTTONS
    + (LAUNCH_BUTTON, TRIGGER_BUTTON)
    + PAD3_BUTTONS
    + (SW1_BUTTON,)
    + REPORT_BUTTONS
)

# axis id -> (minimum, maximum)
AXIS_RANGES = {name: (0, 255) for name in REPORT_AXES}
AXIS_RANGES[PAD2_HORIZONTAL_AXIS] = (-1, 1)
AXIS_RANGES[PAD2_VERTICAL_AXIS] = (-1, 1)

AXES = tuple(AXIS_RANGES)
