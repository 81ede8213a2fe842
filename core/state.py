"""State models and lightweight DTOs"""
from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class RecordA:
    """Vendor request 0x00. Every flag is already active-high."""
    buttons: Tuple[bool, bool, bool, bool]  # fire-c, D, hat press, ST
    pad1: Tuple[bool, bool, bool, bool]  # top, right, bottom, left
    launch: bool
    trigger: bool


@dataclass(frozen=True)
class RecordB:
    """Vendor request 0x01. Every flag is already active-high."""
    pad3: Tuple[bool, bool, bool]  # right, middle, left
    sw1: bool
    mode_select: int  # 0 none, M2=1, M1=2, M3=3
    pad2: Tuple[bool, bool, bool, bool]  # top, right, bottom, left


@dataclass(frozen=True)
class Report:
    axes: Tuple[int, int, int, int, int, int]  # X, Y, RUDDER, RX, RY, THROTTLE
    button_a: bool
    button_b: bool


@dataclass
class SinkState:
    axes: Dict[str, int] = field(default_factory=dict)  # logical id -> value
    buttons: Dict[str, bool] = field(default_factory=dict)  # logical id -> pressed
    frames: int = 0


@dataclass
class VJoyCommand:
    axes: Dict[str, float] = field(default_factory=dict)  # axis name -> -1..1
    buttons: Dict[int, bool] = field(default_factory=dict)  # button id -> state
