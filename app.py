"""Entry point for horibridge

Finds the Hori flightstick, starts its streams and feeds a virtual input
device. Reattaches when the stick is unplugged and plugged back in.
"""
import argparse
import logging
import signal
import threading

from config import load_config, validate
from core.errors import ConfigError, DeviceNotFound, HoriIOError, OutputUnavailable
from core.sink import LogSink
from devices.hori import HoriSession, device_phys, find_flightstick
from devices.transport import UsbTransport
from mapper import Mapper

LOG = logging.getLogger("horibridge")

DEBUG_MODULES = {
    "hori": "horibridge.hori",
    "transport": "horibridge.transport",
    "uinput": "horibridge.uinput",
    "vjoy": "horibridge.vjoy",
    "mapper": "horibridge.mapper",
    "sink": "horibridge.sink",
}


def build_sink(cfg):
    out = cfg["output"]
    if out["backend"] == "uinput":
        from evinput.output import UInputSink
        return UInputSink()
    if out["backend"] == "vjoy":
        from vjoy.output import VJoyOutput
        mapper = Mapper.load_profile(out["profile"]) if out["profile"] else Mapper.default()
        return VJoyOutput(out["vjoy_id"], hz=out["hz"], mapper=mapper)
    return LogSink()


def attach(cfg, sink):
    """Claim the stick and open a session; raises DeviceNotFound."""
    dev_cfg, usb_cfg = cfg["device"], cfg["usb"]
    device, endpoint, max_packet = find_flightstick(
        dev_cfg["vendor_id"], dev_cfg["product_id"], dev_cfg["interface"]
    )
    sink.bind_device(device_phys(device, dev_cfg["interface"]), device.bcdDevice)
    transport = UsbTransport(device, interrupt_poll_ms=usb_cfg["interrupt_poll_ms"])
    session = HoriSession(
        transport, sink, endpoint, max_packet, control_timeout_ms=usb_cfg["control_timeout_ms"]
    )
    try:
        session.open()
    except HoriIOError:
        transport.release()
        raise
    return session


def run(cfg, stop_event):
    sink = build_sink(cfg)
    sink.open()
    interval = cfg["reconnect_interval"]
    session = None
    waiting_logged = False
    try:
        while not stop_event.is_set():
            if session is None:
                try:
                    session = attach(cfg, sink)
                    waiting_logged = False
                    LOG.info("horibridge running — press Ctrl+C to stop")
                except DeviceNotFound as e:
                    if not waiting_logged:
                        LOG.warning("%s — waiting for device", e)
                        waiting_logged = True
                except HoriIOError as e:
                    LOG.error("could not start device: %s", e)
            elif not session.transport.alive:
                LOG.warning("flightstick disconnected")
                session.detach()
                session = None
                continue
            stop_event.wait(interval)
    finally:
        if session is not None:
            session.detach()
        sink.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="horibridge: Hori flightstick → virtual joystick")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--backend", choices=["uinput", "vjoy", "log"], help="output backend")
    parser.add_argument("--vjoy-id", type=int, help="vJoy device id")
    parser.add_argument("--profile", help="YAML vJoy mapping profile")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Logging level (default: INFO)")
    parser.add_argument("--log-format", default="%(levelname)s:%(name)s:%(message)s",
                        help="Logging format string")
    parser.add_argument("--debug-modules", nargs="*", default=[],
                        help="Modules to set to DEBUG level (e.g. 'hori', 'transport', 'uinput')")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format=args.log_format)
    for module in args.debug_modules:
        logger_name = DEBUG_MODULES.get(module, f"horibridge.{module}")
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

    try:
        cfg = load_config(args.config)
        if args.backend:
            cfg["output"]["backend"] = args.backend
        if args.vjoy_id is not None:
            cfg["output"]["vjoy_id"] = args.vjoy_id
        if args.profile:
            cfg["output"]["profile"] = args.profile
        validate(cfg)
    except (OSError, ConfigError) as e:
        parser.error(str(e))

    stop_event = threading.Event()

    def on_signal(signum, frame):
        LOG.info("shutdown requested")
        stop_event.set()

    signal.signal(signal.SIGTERM, on_signal)
    try:
        run(cfg, stop_event)
    except OutputUnavailable as e:
        LOG.error("%s output unavailable: %s", cfg["output"]["backend"], e)
        return 1
    except KeyboardInterrupt:
        LOG.info("shutdown requested")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
