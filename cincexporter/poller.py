from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .emitter import MetricNaming, emit, node_points, service_points
from .nodes import NodeStore, classify_nodes
from .status import StatusCommandError, collect_service_status
from .util import Node

log = logging.getLogger(__name__)

@dataclass
class CycleReport:
    sent: int = 0
    failed: int = 0
    errors: int = 0

    @property
    def ok(self) -> bool:
        return self.errors == 0 and self.failed == 0

class Poller:
    """Runs one cycle at a time on the calling thread.

    A failure in the node data set or the service data set is logged and
    skips only that data set. Database and Graphite calls block with no
    cycle-level timeout, so a hung database stalls the poller until it
    answers.
    """

    def __init__(self, config: Config, store: NodeStore, sink):
        self.config = config
        self.store = store
        self.sink = sink
        self.naming = MetricNaming(
            prefix=config.prefix,
            host_label=config.host_label,
            window_minutes=config.stale_after_minutes,
        )
        self.window = timedelta(minutes=config.stale_after_minutes)
        self._running = False

    def load_nodes(self) -> Tuple[List[Node], List[Node]]:
        if self.config.stale_source == "database":
            return self.store.fetch_nodes(), self.store.fetch_stale_nodes(self.window)
        snapshot = self.store.fetch_nodes()
        return classify_nodes(snapshot, self.window, self.store.database_now())

    def run_cycle(self) -> CycleReport:
        report = CycleReport()

        try:
            nodes, stale = self.load_nodes()
        except SQLAlchemyError as e:
            report.errors += 1
            log.error("Error querying nodes from the database, skipping node metrics: %s", e)
        except Exception as e:
            report.errors += 1
            log.error("Error classifying nodes, skipping node metrics: %s", e, exc_info=True)
        else:
            sent, failed = emit(node_points(nodes, stale, self.naming), self.sink)
            report.sent += sent
            report.failed += failed
            log.info("Nodes metrics have been sent")

        statuses: Optional[Dict[str, int]] = None
        try:
            statuses = collect_service_status(self.config.status_command)
        except StatusCommandError as e:
            report.errors += 1
            log.error("Skipping service metrics: %s", e)
        if statuses is not None:
            sent, failed = emit(service_points(statuses, self.naming), self.sink)
            report.sent += sent
            report.failed += failed

        log.info(
            "Cycle done: sent=%d failed=%d errors=%d",
            report.sent, report.failed, report.errors,
        )
        return report

    def run_forever(self) -> None:
        self._running = True
        while self._running:
            started = time.monotonic()
            try:
                self.run_cycle()
            except Exception as e:
                log.error("Error in polling cycle: %s", e, exc_info=True)
            elapsed = time.monotonic() - started
            self._sleep(max(0.0, self.config.interval_s - elapsed))

    def _sleep(self, seconds: float) -> None:
        # short slices so stop() takes effect promptly
        deadline = time.monotonic() + seconds
        while self._running:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(min(1.0, remaining))

    def stop(self) -> None:
        self._running = False

    def close(self) -> None:
        try:
            self.sink.close()
        finally:
            self.store.close()
