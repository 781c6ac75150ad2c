"""
kvm_service/rpc_handler.py
Handles JSON RPC requests from clients on the control channel.
"""

import logging
from typing import TYPE_CHECKING

from .device_config import SCREEN_FILES, normalize_value
from .screen_config import RESOLUTION_MAP

if TYPE_CHECKING:
    from .server import KVMService

log = logging.getLogger(__name__)


class RPCHandler:
    """
    Dispatches incoming JSON RPC messages and returns response dicts.
    Each public handle_* method corresponds to a message type.
    """

    def __init__(self, service: "KVMService"):
        self._svc = service

    def dispatch(self, msg: dict) -> dict:
        t = msg.get("type", "")
        if not isinstance(t, str):
            return {"ok": False, "error": "Invalid RPC type"}
        handler = getattr(self, f"handle_{t.replace('-', '_')}", None)
        if handler is None:
            return {"ok": False, "error": f"Unknown RPC type: {t}"}
        try:
            return handler(msg)
        except Exception as e:
            log.exception("RPC handler error for '%s'", t)
            return {"ok": False, "error": str(e)}

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def handle_ping(self, msg: dict) -> dict:
        return {"ok": True, "type": "pong"}

    def handle_get_resolution(self, msg: dict) -> dict:
        w, h = self._svc.resolution_monitor.current
        return {"ok": True, "width": w, "height": h}

    # ------------------------------------------------------------------
    # Screen configuration
    # ------------------------------------------------------------------

    def handle_get_screen(self, msg: dict) -> dict:
        """Configured resolution vs. a fresh physical reading."""
        configured_w, configured_h = self._svc.screen.resolution
        actual_w, actual_h = self._svc.resolution_source.read()
        return {
            "ok":               True,
            "configuredWidth":  configured_w,
            "configuredHeight": configured_h,
            "actualWidth":      actual_w,
            "actualHeight":     actual_h,
            "isAutoMode":       configured_w == 0 and configured_h == 0,
        }

    def handle_get_screen_config(self, msg: dict) -> dict:
        return {"ok": True, "config": self._svc.screen.snapshot()}

    def handle_set_screen(self, msg: dict) -> dict:
        """
        msg keys:
            key   – one of type / fps / quality / resolution / gop
            value – integer

        The device file is written first; ScreenConfig only changes once
        that write has succeeded.
        """
        key   = msg.get("key")
        value = msg.get("value")

        if key not in SCREEN_FILES:
            return {"ok": False, "error": "invalid arguments"}
        if isinstance(value, bool) or not isinstance(value, int):
            return {"ok": False, "error": "invalid arguments"}

        if key == "resolution" and value not in RESOLUTION_MAP:
            # stale client state; nothing to change
            log.debug("Ignoring unknown resolution height %d", value)
            return {"ok": True}

        value = normalize_value(key, value)
        try:
            self._svc.device_config.write(key, value)
        except OSError:
            return {"ok": False, "error": "update screen failed"}

        self._svc.screen.set(key, value)
        log.debug("update screen: %s=%s", key, value)
        return {"ok": True}

    # ------------------------------------------------------------------
    # Service management
    # ------------------------------------------------------------------

    def handle_get_service_status(self, msg: dict) -> dict:
        w, h = self._svc.resolution_monitor.current
        return {
            "ok":          True,
            "monitoring":  self._svc.resolution_monitor.is_monitoring,
            "subscribers": self._svc.resolution_monitor.subscriber_count,
            "width":       w,
            "height":      h,
        }
