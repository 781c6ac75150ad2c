"""
kvm_service/device_config.py
Write stream settings into the files the capture pipeline consumes.
"""

import logging
from pathlib import Path
from typing import Dict, Union

from .resolution_source import DEFAULT_KVM_DIR

log = logging.getLogger(__name__)

# Update-surface slot → file name under the KVM directory
SCREEN_FILES: Dict[str, str] = {
    "type":       "type",
    "fps":        "fps",
    "quality":    "qlty",
    "resolution": "res",
    "gop":        "gop",
}

GOP_MIN     = 1
GOP_MAX     = 100
GOP_DEFAULT = 30


def normalize_value(key: str, value: int) -> int:
    """Boundary rules applied before a value reaches the device or ScreenConfig."""
    if key == "gop" and not (GOP_MIN <= value <= GOP_MAX):
        return GOP_DEFAULT
    return value


def encode_value(key: str, value: int) -> str:
    """Text written into the slot file."""
    if key == "type":
        return "mjpeg" if value == 0 else "h264"
    return str(value)


class DeviceConfigWriter:

    def __init__(self, kvm_dir: Union[str, Path] = DEFAULT_KVM_DIR):
        self._kvm_dir = Path(kvm_dir)

    def path_for(self, key: str) -> Path:
        name = SCREEN_FILES.get(key)
        if name is None:
            raise KeyError(f"invalid argument {key}")
        return self._kvm_dir / name

    def write(self, key: str, value: int) -> None:
        """Raises KeyError for an unknown slot and OSError when the write fails."""
        path = self.path_for(key)
        data = encode_value(key, value)
        try:
            path.write_text(data)
        except OSError as e:
            log.error("write kvm %s failed: %s", path, e)
            raise
        log.debug("wrote %s = %s", path, data)
