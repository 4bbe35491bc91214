"""Networking helpers for tests."""
from __future__ import annotations

import socket


def open_port() -> int:
    """Return a currently unused TCP port on this host.

    Source: https://stackoverflow.com/questions/2838244
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('', 0))
        s.listen(1)
        return s.getsockname()[1]
