from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from .util import MetricPoint, Node, metric_segment

log = logging.getLogger(__name__)

@dataclass(frozen=True)
class MetricNaming:
    prefix: str
    host_label: str = ""
    window_minutes: int = 60

    def _join(self, *parts: str) -> str:
        return ".".join(p for p in (self.prefix, *parts) if p)

    def not_in_sync(self, node_name: str) -> str:
        return self._join("notinsync", metric_segment(node_name))

    def registered(self) -> str:
        return self._join("nodes", "registered")

    def stale_count(self) -> str:
        return self._join("nodes", f"last_updated_{self.window_minutes}_minutes_ago")

    def serving(self, service: str) -> str:
        host = metric_segment(self.host_label) if self.host_label else ""
        return self._join("serving", host, metric_segment(service))

def node_points(nodes: Sequence[Node], stale: Sequence[Node], naming: MetricNaming) -> List[MetricPoint]:
    log.info("Registered nodes count: %d", len(nodes))
    log.info("Not in sync node count: %d", len(stale))
    points: List[MetricPoint] = []
    for n in stale:
        log.warning("Node %s was last updated more than %d minutes ago", n.name, naming.window_minutes)
        points.append(MetricPoint(naming.not_in_sync(n.name), "1"))
    points.append(MetricPoint(naming.registered(), str(len(nodes))))
    points.append(MetricPoint(naming.stale_count(), str(len(stale))))
    return points

def service_points(statuses: Dict[str, int], naming: MetricNaming) -> List[MetricPoint]:
    return [MetricPoint(naming.serving(svc), str(int(state))) for svc, state in statuses.items()]

def emit(points: Iterable[MetricPoint], sink) -> Tuple[int, int]:
    """Send each point through ``sink.send(name, value)``.

    Returns: (sent_count, failed_count)
    """
    sent = 0
    failed = 0
    for p in points:
        try:
            sink.send(p.name, p.value)
        except OSError as e:
            failed += 1
            log.error("failed to send metric %s %s: %s", p.name, p.value, e)
            continue
        sent += 1
        log.info("sent metric: %s %s", p.name, p.value)
    return sent, failed
