"""
test_screen_config.py — ScreenConfig field updates, sanitize and the shared instance.

Run from the repo root:
    python -m pytest tests/test_screen_config.py -v
"""

from __future__ import annotations

import threading

import pytest

from kvm_service import screen_config as sc
from kvm_service.screen_config import (
    RESOLUTION_MAP, ScreenConfig, changed_settings, get_screen_config,
)


class TestDefaults:
    def test_fresh_config_is_auto(self) -> None:
        cfg = ScreenConfig()
        assert cfg.resolution == (0, 0)
        assert cfg.is_auto

    def test_default_values(self) -> None:
        assert ScreenConfig().snapshot() == {
            "width": 0, "height": 0, "fps": 30,
            "quality": 80, "bit_rate": 3000, "gop": 30,
        }


class TestSetResolution:
    @pytest.mark.parametrize("height", sorted(RESOLUTION_MAP))
    def test_known_heights_set_pair(self, height: int) -> None:
        cfg = ScreenConfig()
        cfg.set("resolution", height)
        assert cfg.resolution == (RESOLUTION_MAP[height], height)

    @pytest.mark.parametrize("height", [1, 719, 721, 1079, 1440, 2160, -1080, 66616])
    def test_unknown_heights_ignored(self, height: int) -> None:
        cfg = ScreenConfig()
        cfg.set("resolution", 900)
        cfg.set("resolution", height)
        assert cfg.resolution == (1600, 900)

    def test_zero_returns_to_auto(self) -> None:
        cfg = ScreenConfig()
        cfg.set("resolution", 720)
        cfg.set("resolution", 0)
        assert cfg.is_auto


class TestSetQuality:
    @pytest.mark.parametrize("value", [101, 1000, 3000, 5000, 65535])
    def test_above_hundred_is_bit_rate(self, value: int) -> None:
        cfg = ScreenConfig()
        cfg.set("quality", value)
        assert cfg.bit_rate == value
        assert cfg.quality == 80

    @pytest.mark.parametrize("value", [0, 50, 60, 99, 100])
    def test_up_to_hundred_is_quality(self, value: int) -> None:
        cfg = ScreenConfig()
        cfg.set("quality", value)
        assert cfg.quality == value
        assert cfg.bit_rate == 3000


class TestSetOther:
    @pytest.mark.parametrize("given,stored", [(1, 10), (10, 10), (25, 25), (60, 60), (144, 60)])
    def test_fps_clamped(self, given: int, stored: int) -> None:
        cfg = ScreenConfig()
        cfg.set("fps", given)
        assert cfg.fps == stored

    def test_gop_truncated_to_byte(self) -> None:
        cfg = ScreenConfig()
        cfg.set("gop", 300)
        assert cfg.gop == 300 & 0xFF

    def test_unknown_key_noop(self) -> None:
        cfg = ScreenConfig()
        before = cfg.snapshot()
        cfg.set("type", 1)
        cfg.set("brightness", 50)
        assert cfg.snapshot() == before


class TestPinIfAuto:
    def test_pins_when_auto(self) -> None:
        cfg = ScreenConfig()
        assert cfg.pin_if_auto(1280, 720)
        assert cfg.resolution == (1280, 720)

    def test_refuses_when_pinned(self) -> None:
        cfg = ScreenConfig()
        cfg.set("resolution", 900)
        assert not cfg.pin_if_auto(1280, 720)
        assert cfg.resolution == (1600, 900)


class TestSanitize:
    def test_valid_config_untouched(self) -> None:
        cfg = ScreenConfig()
        cfg.set("resolution", 768)
        cfg.set("quality", 60)
        cfg.set("quality", 2000)
        before = cfg.snapshot()
        cfg.sanitize()
        assert cfg.snapshot() == before

    def test_invalid_fields_reset_individually(self) -> None:
        cfg = ScreenConfig()
        cfg.set("quality", 70)
        cfg.set("fps", 45)
        cfg.sanitize()
        assert cfg.quality == 80
        assert cfg.bit_rate == 3000
        assert cfg.fps == 45

    def test_invalid_bit_rate_reset(self) -> None:
        cfg = ScreenConfig()
        cfg.set("quality", 4000)
        cfg.sanitize()
        assert cfg.bit_rate == 3000

    def test_invalid_resolution_reset(self) -> None:
        cfg = ScreenConfig()
        cfg.pin_if_auto(1366, 768 + 1)
        cfg.sanitize()
        assert cfg.resolution == (1920, 1080)

    def test_idempotent(self) -> None:
        cfg = ScreenConfig()
        cfg.set("quality", 70)
        cfg.sanitize()
        once = cfg.snapshot()
        cfg.sanitize()
        assert cfg.snapshot() == once

    def test_concurrent_with_set(self) -> None:
        cfg = ScreenConfig()
        stop = threading.Event()

        def _sanitizer() -> None:
            while not stop.is_set():
                cfg.sanitize()

        t = threading.Thread(target=_sanitizer)
        t.start()
        try:
            for height in (1080, 720, 600, 480) * 50:
                cfg.set("resolution", height)
                w, h = cfg.resolution
                assert RESOLUTION_MAP[h] == w
        finally:
            stop.set()
            t.join()


class TestChangedSettings:
    def test_unchanged_form_sends_nothing(self) -> None:
        cfg = ScreenConfig()
        assert changed_settings(cfg.snapshot(), resolution=0, fps=30, quality=80, gop=30) == []

    def test_only_edited_field_is_sent(self) -> None:
        cfg = ScreenConfig()
        # another client pinned 1600x900 and switched to bit-rate mode
        cfg.set("quality", 2000)
        cfg.set("resolution", 900)
        # form state: operator changed fps only, quality combo still shows 80 %
        updates = changed_settings(cfg.snapshot(), resolution=900, fps=45, quality=80, gop=30)
        assert updates == [("fps", 45)]

    def test_bit_rate_compared_against_bit_rate(self) -> None:
        cfg = ScreenConfig()
        assert changed_settings(cfg.snapshot(), 0, 30, 3000, 30) == []
        assert changed_settings(cfg.snapshot(), 0, 30, 5000, 30) == [("quality", 5000)]

    def test_back_to_auto(self) -> None:
        cfg = ScreenConfig()
        cfg.set("resolution", 720)
        assert changed_settings(cfg.snapshot(), 0, 30, 80, 30) == [("resolution", 0)]

    def test_all_fields(self) -> None:
        updates = changed_settings(ScreenConfig().snapshot(), 1080, 60, 50, 10)
        assert [k for k, _ in updates] == ["resolution", "fps", "quality", "gop"]


class TestSharedInstance:
    def test_created_once_under_concurrency(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sc, "_instance", None)
        barrier = threading.Barrier(16)
        seen = []

        def _get() -> None:
            barrier.wait()
            seen.append(get_screen_config())

        threads = [threading.Thread(target=_get) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len({id(c) for c in seen}) == 1
        assert seen[0].is_auto
