"""
kvm_service/resolution_monitor.py
Poll the capture pipeline's physical resolution and push changes to every
connected subscriber.

The poll thread only runs while at least one subscriber is registered:
the first add_subscriber() starts it, the last remove_subscriber() asks
it to stop.
"""

import logging
import threading
from typing import Callable, List, Optional, Tuple

from shared.protocol import encode_json, resolution_change_message

from .notification import NotificationSink
from .resolution import select_optimal_resolution
from .resolution_source import ResolutionSource
from .screen_config import ScreenConfig

log = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


class ResolutionMonitor:
    """
    Idle → Monitoring on the first subscriber, back to Idle when the last
    one leaves or stop() is called.

    Two locks: ``_lock`` guards the last observed resolution and the
    monitoring flag, ``_subs_lock`` guards the subscriber registry.  When
    both are needed ``_subs_lock`` is taken first.
    """

    def __init__(
        self,
        source:        ResolutionSource,
        screen:        ScreenConfig,
        sink:          NotificationSink,
        poll_interval: float = POLL_INTERVAL,
        selector:      Callable[[int, int], Tuple[int, int]] = select_optimal_resolution,
    ):
        self._source   = source
        self._screen   = screen
        self._sink     = sink
        self._interval = poll_interval
        self._select   = selector

        self._lock        = threading.Lock()
        self._last_width  = 0
        self._last_height = 0
        self._monitoring  = False
        self._stop_token: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        self._subs_lock   = threading.Lock()
        self._subscribers = set()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def current(self) -> Tuple[int, int]:
        """Last observed physical resolution, (0, 0) before the first read."""
        with self._lock:
            return self._last_width, self._last_height

    @property
    def is_monitoring(self) -> bool:
        with self._lock:
            return self._monitoring

    @property
    def subscriber_count(self) -> int:
        with self._subs_lock:
            return len(self._subscribers)

    def subscribers(self) -> List:
        with self._subs_lock:
            return list(self._subscribers)

    # ------------------------------------------------------------------
    # Subscriber registry
    # ------------------------------------------------------------------

    def add_subscriber(self, handle) -> None:
        with self._subs_lock:
            self._subscribers.add(handle)
            if len(self._subscribers) == 1:
                self._start()

    def remove_subscriber(self, handle) -> None:
        with self._subs_lock:
            self._subscribers.discard(handle)
            if not self._subscribers:
                self.stop()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _start(self) -> None:
        with self._lock:
            if self._monitoring:
                # A loop that has not yet seen its stop request keeps running.
                if self._stop_token is not None:
                    self._stop_token.clear()
                return
            token = threading.Event()
            self._stop_token = token
            self._monitoring = True
        log.debug("Starting resolution monitoring")
        # Seed before returning so a change right after subscribing is seen
        seeded = self._try_seed()
        thread = threading.Thread(
            target=self._loop, args=(token, seeded), daemon=True, name="ResolutionMonitor"
        )
        with self._lock:
            self._thread = thread
        thread.start()

    def stop(self) -> None:
        """Ask the poll loop to exit at its next wake-up. Never blocks."""
        with self._lock:
            if self._monitoring and self._stop_token is not None:
                self._stop_token.set()

    def shutdown(self, timeout: float = 3.0) -> None:
        """Stop and wait for the poll thread (service teardown)."""
        self.stop()
        with self._lock:
            thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _try_seed(self) -> bool:
        try:
            self.seed()
            return True
        except Exception as e:
            log.warning("ResolutionMonitor error: %s", e)
            return False

    def _loop(self, token: threading.Event, seeded: bool) -> None:
        try:
            while True:
                token.wait(self._interval)
                with self._lock:
                    if token.is_set():
                        self._monitoring = False
                        self._stop_token = None
                        log.debug("Stopped resolution monitoring")
                        return
                # Without a baseline the first successful read only seeds.
                if not seeded:
                    seeded = self._try_seed()
                    continue
                try:
                    self.check_once()
                except Exception as e:
                    log.warning("ResolutionMonitor error: %s", e)
        finally:
            with self._lock:
                if self._stop_token is token:
                    self._monitoring = False
                    self._stop_token = None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def seed(self) -> Tuple[int, int]:
        """Record the current physical resolution without notifying anyone."""
        width, height = self._source.read()
        with self._lock:
            self._last_width, self._last_height = width, height
        return width, height

    def check_once(self) -> Optional[Tuple[int, int]]:
        """
        One tick. Returns the broadcast resolution, or None when the
        physical resolution did not change.
        """
        width, height = self._source.read()
        with self._lock:
            old = (self._last_width, self._last_height)
            if (width, height) == old:
                return None
            self._last_width, self._last_height = width, height

        log.info("Resolution changed: %sx%s → %sx%s", old[0], old[1], width, height)

        advertised = (width, height)
        if self._screen.is_auto:
            optimal = self._select(width, height)
            if self._screen.pin_if_auto(*optimal):
                log.debug("Auto mode, using optimal resolution %dx%d", *optimal)
                advertised = optimal

        self.broadcast(*advertised)
        return advertised

    def broadcast(self, width: int, height: int) -> int:
        """Send a resolution_change to every subscriber. Returns deliveries that succeeded."""
        with self._subs_lock:
            targets = list(self._subscribers)
        if not targets:
            return 0

        text = encode_json(resolution_change_message(width, height))
        delivered = 0
        for sub in targets:
            try:
                self._sink.deliver(sub, text)
                delivered += 1
            except Exception as e:
                log.debug("Failed to send resolution change to %r: %s", sub, e)
        return delivered
