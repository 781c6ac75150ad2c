"""
shared/protocol.py
Low-level socket primitives used by the service and its clients.
"""

import socket
import json

MAX_LINE = 65536


def encode_json(obj: dict) -> str:
    """Compact JSON text for one wire message (no trailing newline)."""
    return json.dumps(obj, separators=(",", ":"))


def send_line(conn: socket.socket, text: str) -> None:
    """Send one text line; the newline is appended here."""
    conn.sendall((text + "\n").encode("utf-8"))


def send_json(conn: socket.socket, obj: dict) -> None:
    """Serialize dict → JSON + newline and send atomically."""
    send_line(conn, encode_json(obj))


def recv_line(conn: socket.socket, max_bytes: int = MAX_LINE) -> bytes:
    """
    Read bytes from socket until '\\n' found.
    Returns b"" when the peer closed before sending anything.
    Raises ConnectionError on disconnect mid-line, ValueError on oversized line.
    """
    buf = bytearray()
    while True:
        b = conn.recv(1)
        if not b:
            if buf:
                raise ConnectionError("Remote end disconnected mid-line")
            return b""
        if b == b"\n":
            return bytes(buf)
        buf += b
        if len(buf) > max_bytes:
            raise ValueError(f"recv_line exceeded {max_bytes} bytes without newline")


def resolution_change_message(width: int, height: int) -> dict:
    """Push message sent to every subscriber when the advertised resolution changes."""
    return {"type": "resolution_change", "width": int(width), "height": int(height)}
