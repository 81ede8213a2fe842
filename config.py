"""Runtime configuration loaded from YAML"""
import copy
import logging
import sys

import yaml

from core.errors import ConfigError
from devices.hori import HORI_PRODUCT_ID, HORI_VENDOR_ID

LOG = logging.getLogger("horibridge.config")

BACKENDS = ("uinput", "vjoy", "log")
VJOY_MAX_DEVICES = 16


def default_backend(platform=sys.platform):
    """vJoy on Windows, uinput everywhere else."""
    return "vjoy" if platform == "win32" else "uinput"


DEFAULTS = {
    "device": {"vendor_id": HORI_VENDOR_ID, "product_id": HORI_PRODUCT_ID, "interface": 0},
    "usb": {"control_timeout_ms": 100, "interrupt_poll_ms": 100},
    "output": {"backend": default_backend(), "vjoy_id": 1, "hz": 120, "profile": None},
    "reconnect_interval": 1.0,
}


def _merge(base, override, path=""):
    for key, value in override.items():
        where = f"{path}{key}"
        if key not in base:
            raise ConfigError(f"unknown config key: {where}")
        if isinstance(base[key], dict):
            if not isinstance(value, dict):
                raise ConfigError(f"{where} must be a mapping")
            _merge(base[key], value, where + ".")
        else:
            base[key] = value


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def validate(cfg):
    backend = cfg["output"]["backend"]
    if backend not in BACKENDS:
        raise ConfigError(f"output.backend must be one of {', '.join(BACKENDS)}, got {backend!r}")
    for key in ("vendor_id", "product_id", "interface"):
        if not isinstance(cfg["device"][key], int):
            raise ConfigError(f"device.{key} must be an integer")
    for key in ("control_timeout_ms", "interrupt_poll_ms"):
        if not isinstance(cfg["usb"][key], int) or cfg["usb"][key] <= 0:
            raise ConfigError(f"usb.{key} must be a positive integer")
    out = cfg["output"]
    if not _is_int(out["hz"]) or out["hz"] <= 0:
        raise ConfigError("output.hz must be a positive integer")
    if not _is_int(out["vjoy_id"]) or not 1 <= out["vjoy_id"] <= VJOY_MAX_DEVICES:
        raise ConfigError(f"output.vjoy_id must be an integer between 1 and {VJOY_MAX_DEVICES}")
    if out["profile"] is not None and not isinstance(out["profile"], str):
        raise ConfigError("output.profile must be a file path")
    interval = cfg["reconnect_interval"]
    if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
        raise ConfigError("reconnect_interval must be a positive number")
    return cfg


def load_config(path=None) -> dict:
    cfg = copy.deepcopy(DEFAULTS)
    if path is None:
        return cfg
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: config must be a mapping")
    _merge(cfg, data)
    LOG.debug("config loaded from %s", path)
    return validate(cfg)
