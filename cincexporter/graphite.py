from __future__ import annotations

import logging
import socket
from typing import Optional

from .util import now_ts

log = logging.getLogger(__name__)

class GraphiteClient:
    """Plaintext-protocol sender: one ``<name> <value> <timestamp>`` line per send."""

    def __init__(self, host: str, port: int = 2003, timeout_s: float = 5.0):
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self._sock: Optional[socket.socket] = None

    def connect(self) -> None:
        self.close()
        self._sock = socket.create_connection((self.host, self.port), timeout=self.timeout_s)
        log.info("Connected to Graphite at %s:%s", self.host, self.port)

    def send(self, name: str, value: str, timestamp: Optional[float] = None) -> None:
        if self._sock is None:
            self.connect()
        ts = int(timestamp if timestamp is not None else now_ts())
        line = f"{name} {value} {ts}\n"
        try:
            self._sock.sendall(line.encode("utf-8"))
        except OSError:
            # drop the broken connection; the next send reconnects
            self.close()
            raise

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None

class LoggingSink:
    """Dry-run stand-in for GraphiteClient."""

    def connect(self) -> None:
        log.info("Dry run: metrics will only be logged")

    def send(self, name: str, value: str, timestamp: Optional[float] = None) -> None:
        log.debug("dry run, not sent: %s %s", name, value)

    def close(self) -> None:
        pass
