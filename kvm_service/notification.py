"""
kvm_service/notification.py
Deliver one text message to one subscriber.
"""

import logging
import socket
from typing import Callable

from shared.protocol import send_line

log = logging.getLogger(__name__)

DELIVERY_TIMEOUT = 3.0


class NotificationSink:
    """Sends text to a single subscriber; raises on failure."""

    def deliver(self, subscriber, text: str) -> None:
        raise NotImplementedError


class JsonLineSink(NotificationSink):
    """
    Subscribers are connected sockets, or objects exposing ``send_line``
    such as a ClientSession that serializes its own writes and carries its
    own send deadline.

    A bare socket gets its timeout swapped for the duration of the send, so
    no other thread may be reading from it. Service connections always go
    through a session.
    """

    def __init__(self, timeout: float = DELIVERY_TIMEOUT):
        self._timeout = timeout

    def deliver(self, subscriber, text: str) -> None:
        push = getattr(subscriber, "send_line", None)
        if push is not None:
            push(text)
            return
        conn: socket.socket = subscriber
        previous = conn.gettimeout()
        conn.settimeout(self._timeout)
        try:
            send_line(conn, text)
        finally:
            conn.settimeout(previous)


class CallbackSink(NotificationSink):
    """Subscribers are callables taking the message text."""

    def deliver(self, subscriber: Callable[[str], None], text: str) -> None:
        subscriber(text)
