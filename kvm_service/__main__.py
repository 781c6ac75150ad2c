"""
kvm_service/__main__.py
Entry point for the KVM screen service.
Usage:
    python -m kvm_service [--no-gui] [--port 22020] [--kvm-dir /kvmapp/kvm]
"""

import argparse
import logging
import os
import signal
import sys
import time
from pathlib import Path

from .config import ServiceConfig
from .server import KVMService

log = logging.getLogger("kvm_service")


def parse_args(argv=None):
    ap = argparse.ArgumentParser(description="KVM Screen Service")
    ap.add_argument("--host",     help="Bind address")
    ap.add_argument("--port",     type=int,   help="Control/notification port")
    ap.add_argument("--kvm-dir",  help="Directory holding the device width/height and config files")
    ap.add_argument("--source",   choices=("file", "mss"), help="Where physical resolution is read from")
    ap.add_argument("--monitor",  type=int,   help="mss monitor index (with --source mss)")
    ap.add_argument("--interval", type=float, help="Resolution poll interval in seconds")
    ap.add_argument("--config",   help="Path to a JSON settings file")
    ap.add_argument("--save",     action="store_true", help="Persist the effective settings and continue")
    ap.add_argument("--log-level", default="INFO",
                    choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    ap.add_argument("--no-gui",   action="store_true", help="Run headless (no manager window)")
    return ap.parse_args(argv)


def build_config(args) -> ServiceConfig:
    path = Path(args.config) if args.config else None
    config = ServiceConfig.load(path)
    overrides = {
        "host":              args.host,
        "port":              args.port,
        "kvm_dir":           args.kvm_dir,
        "resolution_source": args.source,
        "monitor_index":     args.monitor,
        "poll_interval":     args.interval,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.save:
        config.save(path)
    return config


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    svc = KVMService(build_config(args))

    # Graceful shutdown on Ctrl-C / SIGTERM
    def _shutdown(signum, frame):
        log.info("Shutting down (signal %d) …", signum)
        svc.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT,  _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    log.info("Starting KVM screen service …")
    svc.start()

    if args.no_gui or not os.environ.get("DISPLAY"):
        log.info("Running in headless mode (no GUI). Press Ctrl-C to stop.")
        try:
            while svc.running:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
    else:
        # PyQt6 manager window on the main thread
        from .manager_gui import run_manager_gui
        run_manager_gui(svc)

    svc.stop()
    log.info("Service stopped cleanly.")


if __name__ == "__main__":
    main()
