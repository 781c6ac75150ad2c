"""
kvm_service/resolution.py
Map an observed output resolution to the nearest standard resolution by
aspect ratio.
"""

from typing import NamedTuple, Tuple

DEFAULT_RESOLUTION: Tuple[int, int] = (1920, 1080)


class Candidate(NamedTuple):
    ratio:    float
    width:    int
    height:   int
    priority: int   # lower number wins


CANDIDATES: Tuple[Candidate, ...] = (
    Candidate(16.0 / 9.0,  1920, 1080, 1),
    Candidate(16.0 / 9.0,  1600, 900,  2),
    Candidate(16.0 / 9.0,  1280, 720,  3),
    Candidate(4.0 / 3.0,   1280, 960,  1),
    Candidate(4.0 / 3.0,   1024, 768,  2),
    Candidate(4.0 / 3.0,   800,  600,  3),
    Candidate(4.0 / 3.0,   640,  480,  4),
    Candidate(16.0 / 10.0, 1280, 800,  2),
    Candidate(3.0 / 2.0,   1152, 864,  3),
)


def _rank(c: Candidate, ratio: float, width: int, height: int) -> tuple:
    fits = c.width <= width and c.height <= height
    return (abs(ratio - c.ratio), not fits, c.priority, -(c.width * c.height))


def select_optimal_resolution(width: int, height: int) -> Tuple[int, int]:
    """
    Return the standard (width, height) closest in aspect ratio to the input.

    Equal distances are settled by, in order: a candidate that fits inside
    the observed resolution, the lower priority number, the larger area.
    The ranking is a total order over the table so its layout never matters.
    Fit comes before priority, so 1600x900, 1280x720 and 1366x768 select a
    candidate no larger than themselves rather than 1920x1080.
    """
    if width == 0 or height == 0:
        return DEFAULT_RESOLUTION

    ratio = width / height
    best = min(CANDIDATES, key=lambda c: _rank(c, ratio, width, height))
    return best.width, best.height
