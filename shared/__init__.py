"""
shared/__init__.py
"""
from .protocol import (
    send_json, send_line, recv_line, encode_json, resolution_change_message, MAX_LINE,
)
__all__ = [
    "send_json", "send_line", "recv_line", "encode_json",
    "resolution_change_message", "MAX_LINE",
]
