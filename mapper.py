"""Mapping engine: load YAML profiles and map sink state -> VJoyCommand

A profile is a list of bindings from logical input ids to vJoy targets:

    bindings:
      - input: ABS_X
        target: axis:AXIS_X
        props: {invert: true, scale: 1.0}
      - input: BTN_TRIGGER
        target: button:1
"""
import logging

import yaml

from core import events
from core.errors import ConfigError
from core.state import SinkState, VJoyCommand

LOG = logging.getLogger("horibridge.mapper")

_DEFAULT_AXES = {
    "ABS_X": "AXIS_X",
    "ABS_Y": "AXIS_Y",
    "ABS_RUDDER": "AXIS_RUDDER",
    "ABS_RX": "AXIS_RX",
    "ABS_RY": "AXIS_RY",
    "ABS_THROTTLE": "AXIS_THROTTLE",
    "ABS_Z": "AXIS_Z",
    "ABS_RZ": "AXIS_RZ",
}


def default_profile() -> dict:
    bindings = [{"input": src, "target": f"axis:{dst}"} for src, dst in _DEFAULT_AXES.items()]
    bindings += [
        {"input": name, "target": f"button:{i}"} for i, name in enumerate(events.BUTTONS, start=1)
    ]
    return {"bindings": bindings}


def normalize_axis(name, value) -> float:
    """Scale a raw axis value into -1..1 using its advertised range."""
    lo, hi = events.AXIS_RANGES[name]
    return (value - lo) / float(hi - lo) * 2.0 - 1.0


class Mapper:
    def __init__(self, profile: dict):
        self.profile = profile or {}
        self._axes = []  # (input, vjoy axis, props)
        self._buttons = []  # (input, vjoy button id, props)
        for b in self.profile.get("bindings", []):
            self._add_binding(b)
        LOG.debug("profile loaded: %d axis, %d button bindings", len(self._axes), len(self._buttons))

    def _add_binding(self, b):
        src = b.get("input")
        tgt = b.get("target")
        props = b.get("props") or {}
        if not src or not tgt:
            raise ConfigError(f"incomplete binding: {b}")
        kind, _, dest = tgt.partition(":")
        if kind == "axis":
            if src not in events.AXIS_RANGES:
                raise ConfigError(f"binding {b}: {src} is not an axis")
            self._axes.append((src, dest, props))
        elif kind == "button":
            if src not in events.BUTTONS:
                raise ConfigError(f"binding {b}: {src} is not a button")
            try:
                self._buttons.append((src, int(dest), props))
            except ValueError:
                raise ConfigError(f"binding {b}: bad button id {dest!r}") from None
        else:
            raise ConfigError(f"binding {b}: unsupported target {tgt!r}")

    @classmethod
    def load_profile(cls, path: str):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: profile must be a mapping")
        return cls(data)

    @classmethod
    def default(cls):
        return cls(default_profile())

    def map_state(self, state: SinkState) -> VJoyCommand:
        cmd = VJoyCommand()
        for src, axis_name, props in self._axes:
            if src not in state.axes:
                continue
            val = normalize_axis(src, state.axes[src])
            if props.get("invert"):
                val = -val
            val = val * float(props.get("scale", 1.0))
            cmd.axes[axis_name] = max(-1.0, min(1.0, val))
        for src, btn_id, props in self._buttons:
            if src not in state.buttons:
                continue
            st = state.buttons[src]
            if props.get("invert"):
                st = not st
            cmd.buttons[btn_id] = st
        return cmd
