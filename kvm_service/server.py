"""
kvm_service/server.py
Core KVM screen service: one TCP listener thread plus a thread per client.

Every connected client is a resolution subscriber for as long as its
control connection stays open.
"""

import json
import logging
import socket
import struct
import threading
from typing import Optional, Set

from shared.protocol import recv_line, send_json, send_line

from .config import ServiceConfig
from .device_config import DeviceConfigWriter
from .notification import JsonLineSink
from .resolution_monitor import ResolutionMonitor
from .resolution_source import FileResolutionSource, MssResolutionSource, ResolutionSource
from .rpc_handler import RPCHandler
from .screen_config import ScreenConfig, get_screen_config

log = logging.getLogger(__name__)

HANDSHAKE_TIMEOUT = 8.0


def make_resolution_source(config: ServiceConfig) -> ResolutionSource:
    if config.resolution_source == "mss":
        return MssResolutionSource(monitor_index=config.monitor_index)
    if config.resolution_source != "file":
        raise ValueError(f"Unknown resolution source: {config.resolution_source}")
    return FileResolutionSource(config.kvm_dir)


# ──────────────────────────────────────────────────────────────────────
# Session — one client
# ──────────────────────────────────────────────────────────────────────

class ClientSession:
    def __init__(self, service: "KVMService", conn: socket.socket, addr=None):
        self._svc        = service
        self._conn       = conn
        self._addr       = addr
        self._running    = False
        self._send_lock  = threading.Lock()
        self._set_send_deadline(service.config.delivery_timeout)

    def __repr__(self) -> str:
        return f"<ClientSession {self._addr}>"

    @property
    def running(self) -> bool:
        return self._running

    def _set_send_deadline(self, seconds: float):
        """Bound blocking sends without touching the recv side of the socket."""
        sec  = int(seconds)
        usec = int((seconds - sec) * 1_000_000)
        try:
            self._conn.setsockopt(
                socket.SOL_SOCKET, socket.SO_SNDTIMEO, struct.pack("ll", sec, usec)
            )
        except (OSError, AttributeError) as e:
            log.debug("SO_SNDTIMEO not applied: %s", e)

    def send_line(self, text: str):
        """
        Push one line (resolution_change etc.) between RPC responses.
        A failed send may leave half a line on the stream, so the session
        is closed before the error propagates.
        """
        with self._send_lock:
            try:
                send_line(self._conn, text)
            except OSError:
                self.close()
                raise

    def _reply(self, obj: dict):
        with self._send_lock:
            send_json(self._conn, obj)

    def run(self):
        """Block on the control channel until the client disconnects."""
        self._running = True

        # ── Hello handshake ──────────────────────────────────────────
        try:
            self._conn.settimeout(HANDSHAKE_TIMEOUT)
            hello_line = recv_line(self._conn)
            self._conn.settimeout(None)
            hello = json.loads(hello_line) if hello_line else {}
        except Exception as e:
            log.warning("Handshake recv failed: %s", e)
            self._cleanup()
            return

        if not isinstance(hello, dict) or hello.get("type") != "hello":
            log.warning("Expected hello from %s", self._addr)
            try:
                self._reply({"ok": False, "error": "expected hello"})
            except OSError:
                pass
            self._cleanup()
            return

        # Subscribe before building the reply; pushes wait on the send lock
        # so the hello reply is always the first line the client reads.
        monitor = self._svc.resolution_monitor
        try:
            with self._send_lock:
                monitor.add_subscriber(self)
                send_json(self._conn, self._svc.hello_payload())
        except OSError as e:
            log.info("Client %s dropped during handshake: %s", self._addr, e)
            monitor.remove_subscriber(self)
            self._cleanup()
            return
        log.info("Handshake complete with %s (agent=%s)", self._addr, hello.get("agent", "?"))

        try:
            while self._running:
                line = recv_line(self._conn)
                if not line:
                    break
                try:
                    msg = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if not isinstance(msg, dict):
                    continue
                self._reply(self._svc.rpc.dispatch(msg))
        except (ConnectionError, ValueError, OSError) as e:
            log.info("Client disconnected: %s", e)
        finally:
            monitor.remove_subscriber(self)
            self._cleanup()

    def close(self):
        self._running = False
        try:
            self._conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def _cleanup(self):
        self._running = False
        self._svc._forget_session(self)
        try:
            self._conn.close()
        except OSError:
            pass


# ──────────────────────────────────────────────────────────────────────
# KVMService — main entry object
# ──────────────────────────────────────────────────────────────────────

class KVMService:

    def __init__(
        self,
        config:            Optional[ServiceConfig]   = None,
        screen:            Optional[ScreenConfig]     = None,
        resolution_source: Optional[ResolutionSource] = None,
        device_config:     Optional[DeviceConfigWriter] = None,
    ):
        self.config = config or ServiceConfig()
        self.host   = self.config.host
        self.port   = self.config.port

        self.screen            = screen or get_screen_config()
        self.resolution_source = resolution_source or make_resolution_source(self.config)
        self.device_config     = device_config or DeviceConfigWriter(self.config.kvm_dir)
        self.resolution_monitor = ResolutionMonitor(
            source        = self.resolution_source,
            screen        = self.screen,
            sink          = JsonLineSink(timeout=self.config.delivery_timeout),
            poll_interval = self.config.poll_interval,
        )
        self.rpc = RPCHandler(self)

        self._running  = False
        self._server: Optional[socket.socket] = None
        self._sessions: Set[ClientSession] = set()
        self._session_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def client_count(self) -> int:
        with self._session_lock:
            return len(self._sessions)

    # ------------------------------------------------------------------
    # Public start / stop
    # ------------------------------------------------------------------

    def start(self):
        self.screen.sanitize()
        self._server = self._make_server(self.host, self.port)
        # port 0 → whatever the OS picked
        self.port = self._server.getsockname()[1]
        self._running = True
        threading.Thread(
            target=self._accept_loop, daemon=True, name="Listener-rpc"
        ).start()
        log.info("KVM screen service started on %s:%d (%r)", self.host, self.port, self.screen)

    def stop(self):
        if not self._running:
            return
        self._running = False
        if self._server:
            try:
                self._server.close()
            except OSError:
                pass
        with self._session_lock:
            sessions = list(self._sessions)
        for sess in sessions:
            sess.close()
        self.resolution_monitor.shutdown()
        log.info("KVM screen service stopped")

    # ------------------------------------------------------------------
    # Accept loop
    # ------------------------------------------------------------------

    def _accept_loop(self):
        srv = self._server
        with srv:
            while self._running:
                try:
                    conn, addr = srv.accept()
                except OSError:
                    break
                log.info("Connection from %s", addr)
                sess = ClientSession(self, conn, addr)
                with self._session_lock:
                    self._sessions.add(sess)
                threading.Thread(target=sess.run, daemon=True, name="ClientSession").start()

    def _forget_session(self, sess: ClientSession):
        with self._session_lock:
            self._sessions.discard(sess)

    def hello_payload(self) -> dict:
        """Handshake reply: what the client should display right now."""
        configured_w, configured_h = self.screen.resolution
        actual = self.resolution_monitor.current
        if actual[0] <= 0 or actual[1] <= 0:
            actual = self.resolution_source.read()
        if configured_w == 0 and configured_h == 0:
            width, height = actual
        else:
            width, height = configured_w, configured_h
        return {
            "ok":           True,
            "type":         "hello",
            "agent":        "KVM",
            "version":      "1.0",
            "width":        width,
            "height":       height,
            "actualWidth":  actual[0],
            "actualHeight": actual[1],
            "isAutoMode":   configured_w == 0 and configured_h == 0,
            "fps":          self.screen.fps,
            "hostname":     socket.gethostname(),
        }

    @staticmethod
    def _make_server(host: str, port: int) -> socket.socket:
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        srv.bind((host, port))
        srv.listen(8)
        return srv
