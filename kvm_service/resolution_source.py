"""
kvm_service/resolution_source.py
Read the physical output resolution reported by the capture pipeline.

FileResolutionSource reads the width/height files the KVM pipeline keeps
up to date.  MssResolutionSource asks mss for the primary monitor size,
which is handy when running the service on a plain desktop.
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

try:
    import mss
    HAS_MSS = True
except ImportError:
    HAS_MSS = False

log = logging.getLogger(__name__)

DEFAULT_KVM_DIR = Path("/kvmapp/kvm")
FALLBACK_WIDTH  = 1920
FALLBACK_HEIGHT = 1080


def _read_positive_int(path: Path) -> Optional[int]:
    try:
        value = int(path.read_text().strip())
    except (OSError, ValueError):
        return None
    return value if value > 0 else None


class ResolutionSource:
    """Anything with read() -> (width, height)."""

    def read(self) -> Tuple[int, int]:
        raise NotImplementedError


class FileResolutionSource(ResolutionSource):

    def __init__(self, kvm_dir: Union[str, Path] = DEFAULT_KVM_DIR):
        self._kvm_dir     = Path(kvm_dir)
        self._width_file  = self._kvm_dir / "width"
        self._height_file = self._kvm_dir / "height"

    def read(self) -> Tuple[int, int]:
        """Each dimension falls back on its own when missing or unparseable."""
        width  = _read_positive_int(self._width_file)
        height = _read_positive_int(self._height_file)
        if width is None:
            log.debug("No usable width in %s, using %d", self._width_file, FALLBACK_WIDTH)
            width = FALLBACK_WIDTH
        if height is None:
            log.debug("No usable height in %s, using %d", self._height_file, FALLBACK_HEIGHT)
            height = FALLBACK_HEIGHT
        return width, height


class MssResolutionSource(ResolutionSource):
    """
    Usage:
        src = MssResolutionSource(monitor_index=1)
        w, h = src.read()
    """

    def __init__(self, monitor_index: int = 1):
        if not HAS_MSS:
            raise RuntimeError("mss is not installed — run: pip install mss")
        self._monitor_index = monitor_index

    def read(self) -> Tuple[int, int]:
        try:
            with mss.mss() as sct:
                monitors = sct.monitors   # index 0 = all, 1+ = individual
                if self._monitor_index >= len(monitors):
                    mon = monitors[1] if len(monitors) > 1 else monitors[0]
                else:
                    mon = monitors[self._monitor_index]
                width, height = mon["width"], mon["height"]
        except Exception as e:
            log.debug("mss monitor query failed: %s", e)
            return FALLBACK_WIDTH, FALLBACK_HEIGHT
        return (width if width > 0 else FALLBACK_WIDTH,
                height if height > 0 else FALLBACK_HEIGHT)
