from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import Column, DateTime, MetaData, String, Table, create_engine, func, select
from sqlalchemy.engine import Engine

from .util import Node

metadata = MetaData()

# Owned by the CINC server; read-only here. Timestamps are stored
# without a zone, in UTC.
nodes_table = Table(
    "nodes",
    metadata,
    Column("name", String, primary_key=True),
    Column("created_at", DateTime),
    Column("updated_at", DateTime),
    Column("environment", String),
)

def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def classify_nodes(
    nodes: Sequence[Node],
    window: timedelta,
    now: datetime,
) -> Tuple[List[Node], List[Node]]:
    """Split a node snapshot into (all, stale).

    A node is stale when it was last updated at or before ``now - window``.
    Naive timestamps are read as UTC so they compare with the aware
    ``current_timestamp`` PostgreSQL returns. Nodes without any timestamp
    cannot be placed and are never stale.
    """
    cutoff = as_utc(now) - window
    all_nodes = list(nodes)
    stale = [n for n in all_nodes if n.last_seen is not None and as_utc(n.last_seen) <= cutoff]
    return all_nodes, stale

def _row_to_node(row) -> Node:
    return Node(
        name=str(row.name),
        created_at=row.created_at,
        updated_at=row.updated_at,
        environment=str(row.environment or ""),
    )

class NodeStore:
    """Read-only access to the nodes relation."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, url: str) -> "NodeStore":
        return cls(create_engine(url, pool_pre_ping=True))

    def ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(select(1)).scalar_one()

    def database_now(self) -> datetime:
        with self.engine.connect() as conn:
            return conn.execute(select(func.current_timestamp())).scalar_one()

    def fetch_nodes(self) -> List[Node]:
        stmt = select(
            nodes_table.c.name,
            nodes_table.c.created_at,
            nodes_table.c.updated_at,
            nodes_table.c.environment,
        )
        with self.engine.connect() as conn:
            return [_row_to_node(r) for r in conn.execute(stmt)]

    def fetch_stale_nodes(self, window: timedelta, now: Optional[datetime] = None) -> List[Node]:
        if now is None:
            now = self.database_now()
        # the columns hold naive UTC
        cutoff = as_utc(now).replace(tzinfo=None) - window
        stmt = select(
            nodes_table.c.name,
            nodes_table.c.created_at,
            nodes_table.c.updated_at,
            nodes_table.c.environment,
        ).where(nodes_table.c.updated_at <= cutoff)
        with self.engine.connect() as conn:
            return [_row_to_node(r) for r in conn.execute(stmt)]

    def close(self) -> None:
        self.engine.dispose()
