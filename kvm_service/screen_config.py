"""
kvm_service/screen_config.py
Desired stream parameters for the capture device plus the static tables
used to sanitize them.
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

log = logging.getLogger(__name__)

# Height → width. Height 0 means "auto".
RESOLUTION_MAP: Dict[int, int] = {
    1080: 1920,   # 16:9
    960:  1280,   # 4:3
    900:  1600,   # 16:9
    864:  1152,   # 4:3
    800:  1280,   # 16:10
    720:  1280,   # 16:9
    768:  1024,   # 4:3
    600:  800,    # 4:3
    480:  640,    # 4:3
    0:    0,      # auto
}

VALID_QUALITY  = frozenset({100, 80, 60, 50})
VALID_BIT_RATE = frozenset({5000, 3000, 2000, 1000})

DEFAULT_WIDTH    = 1920
DEFAULT_HEIGHT   = 1080
DEFAULT_QUALITY  = 80
DEFAULT_BIT_RATE = 3000
DEFAULT_FPS      = 30
DEFAULT_GOP      = 30

FPS_MIN = 10
FPS_MAX = 60

# quality values above this are bit rates (kbps)
QUALITY_CEILING = 100


def clamp_fps(fps: int) -> int:
    return max(FPS_MIN, min(int(fps), FPS_MAX))


class ScreenConfig:
    """
    Configured stream parameters.

    ``width``/``height`` of 0/0 selects auto mode: the advertised resolution
    is derived from the physical resolution the device reports.  All reads
    and writes go through one lock so the width/height pair never tears.
    """

    def __init__(self):
        self._lock     = threading.Lock()
        self._width    = 0
        self._height   = 0
        self._fps      = DEFAULT_FPS
        self._quality  = DEFAULT_QUALITY
        self._bit_rate = DEFAULT_BIT_RATE
        self._gop      = DEFAULT_GOP

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def resolution(self) -> Tuple[int, int]:
        with self._lock:
            return self._width, self._height

    @property
    def width(self) -> int:
        return self.resolution[0]

    @property
    def height(self) -> int:
        return self.resolution[1]

    @property
    def is_auto(self) -> bool:
        w, h = self.resolution
        return w == 0 and h == 0

    @property
    def fps(self) -> int:
        with self._lock:
            return self._fps

    @property
    def quality(self) -> int:
        with self._lock:
            return self._quality

    @property
    def bit_rate(self) -> int:
        with self._lock:
            return self._bit_rate

    @property
    def gop(self) -> int:
        with self._lock:
            return self._gop

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "width":    self._width,
                "height":   self._height,
                "fps":      self._fps,
                "quality":  self._quality,
                "bit_rate": self._bit_rate,
                "gop":      self._gop,
            }

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, key: str, value: int) -> None:
        """Apply one named field update. Unknown keys are ignored."""
        value = int(value)
        with self._lock:
            if key == "resolution":
                width = RESOLUTION_MAP.get(value)
                if width is None:
                    log.debug("Ignoring unknown resolution height %d", value)
                    return
                self._width, self._height = width, value
            elif key == "quality":
                if value > QUALITY_CEILING:
                    self._bit_rate = value & 0xFFFF
                else:
                    self._quality = value & 0xFFFF
            elif key == "fps":
                self._fps = clamp_fps(value)
            elif key == "gop":
                self._gop = value & 0xFF

    def pin_if_auto(self, width: int, height: int) -> bool:
        """
        Replace auto mode with a concrete resolution.
        Returns False (and changes nothing) when not in auto mode.
        """
        with self._lock:
            if self._width != 0 or self._height != 0:
                return False
            self._width, self._height = int(width), int(height)
            return True

    def sanitize(self) -> None:
        """Reset every field outside its valid set to the default."""
        with self._lock:
            if self._height not in RESOLUTION_MAP:
                self._width, self._height = DEFAULT_WIDTH, DEFAULT_HEIGHT
            if self._quality not in VALID_QUALITY:
                self._quality = DEFAULT_QUALITY
            if self._bit_rate not in VALID_BIT_RATE:
                self._bit_rate = DEFAULT_BIT_RATE

    def __repr__(self) -> str:
        s = self.snapshot()
        return (f"ScreenConfig({s['width']}x{s['height']} fps={s['fps']} "
                f"quality={s['quality']} bit_rate={s['bit_rate']} gop={s['gop']})")


def changed_settings(snapshot: dict, resolution: int, fps: int,
                     quality: int, gop: int) -> List[Tuple[str, int]]:
    """
    (key, value) updates for the fields that differ from ``snapshot``.
    ``resolution`` is a height (0 = auto); a ``quality`` above
    QUALITY_CEILING is compared against the bit rate.
    """
    updates = []
    if resolution != snapshot["height"]:
        updates.append(("resolution", resolution))
    if fps != snapshot["fps"]:
        updates.append(("fps", fps))
    current = snapshot["bit_rate"] if quality > QUALITY_CEILING else snapshot["quality"]
    if quality != current:
        updates.append(("quality", quality))
    if gop != snapshot["gop"]:
        updates.append(("gop", gop))
    return updates


# ──────────────────────────────────────────────────────────────────────
# Process-wide instance
# ──────────────────────────────────────────────────────────────────────

_instance: Optional[ScreenConfig] = None
_instance_lock = threading.Lock()


def get_screen_config() -> ScreenConfig:
    """Return the shared ScreenConfig, creating it exactly once."""
    global _instance
    if _instance is None:
        with _instance_lock:
            if _instance is None:
                _instance = ScreenConfig()
    return _instance
