from __future__ import annotations

import os
import re
import socket
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

def hostname() -> str:
    try:
        return socket.gethostname()
    except Exception:
        return "unknown-host"

def short_hostname(name: Optional[str] = None) -> str:
    """First label of a host name: ``cinc01.example.com`` -> ``cinc01``."""
    return (name or hostname()).split(".")[0]

def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    return v.strip()

def as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "on")
    return bool(value)

def env_bool(name: str, default: bool=False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return as_bool(v)

_UNSAFE = re.compile(r"[^A-Za-z0-9_.\-]")

def metric_segment(value: str) -> str:
    # graphite plaintext is whitespace-delimited
    return _UNSAFE.sub("_", str(value).strip())

@dataclass(frozen=True)
class Node:
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    environment: str = ""

    @property
    def last_seen(self) -> Optional[datetime]:
        # never updated since registration
        return self.updated_at if self.updated_at is not None else self.created_at

@dataclass(frozen=True)
class Recognized:
    service: str
    state: int   # 1 running/connected | 0 down

@dataclass(frozen=True)
class Unrecognized:
    line: str = ""

ServiceState = Union[Recognized, Unrecognized]

@dataclass(frozen=True)
class MetricPoint:
    name: str
    value: str

def now_ts() -> float:
    return time.time()
