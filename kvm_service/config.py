"""
kvm_service/config.py
Persistent service settings — stored in ~/.kvm-screen-service/config.json
"""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional

log = logging.getLogger(__name__)

CONFIG_DIR  = Path.home() / ".kvm-screen-service"
CONFIG_FILE = CONFIG_DIR / "config.json"


@dataclass
class ServiceConfig:
    # Network
    host:              str   = "0.0.0.0"
    port:              int   = 22020

    # Device
    kvm_dir:           str   = "/kvmapp/kvm"
    resolution_source: str   = "file"      # "file" | "mss"
    monitor_index:     int   = 1           # mss only

    # Monitor
    poll_interval:     float = 1.0
    delivery_timeout:  float = 3.0

    def save(self, path: Optional[Path] = None):
        path = path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            json.dump(asdict(self), f, indent=4)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ServiceConfig":
        path = path or CONFIG_FILE
        if not path.exists():
            return cls()
        try:
            with path.open() as f:
                data = json.load(f)
            valid = {k: v for k, v in data.items()
                     if k in cls.__dataclass_fields__}
            return cls(**valid)
        except Exception as e:
            log.warning("Ignoring unreadable config %s: %s", path, e)
            return cls()
