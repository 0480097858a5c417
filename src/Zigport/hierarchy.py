"""Dependency-ordered import of endpoint types, endpoints, clusters, commands and attributes.

The configuration tree is turned into a graph of ``WriteTask`` nodes. Every
node performs one store write that produces an identifier; its children run only
after that identifier exists and receive the ids of all their ancestors:

    endpoint type ─┬─ endpoint ...
                   └─ cluster ─┬─ command ...
                               └─ attribute ...

Siblings run concurrently. ``TaskGraphRunner`` bounds how many writes are in
flight at once; a node holds its slot only for its own write.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

import structlog

from Zigport.document import (
    AttributeEntry,
    ClusterEntry,
    CommandEntry,
    EndpointRecord,
    EndpointTypeRecord,
)
from Zigport.metrics import inc_counter, timed
from Zigport.store import Store

log = structlog.get_logger()

Ancestry = tuple[int, ...]


@dataclass
class WriteTask:
    """One write in the import graph.

    ``write`` receives the ids produced by every ancestor (root first) and
    returns the id its children will see.
    """

    kind: str
    write: Callable[[Ancestry], Awaitable[int]]
    children: list[WriteTask] = field(default_factory=list)

    def count(self) -> int:
        return 1 + sum(c.count() for c in self.children)


class TaskGraphRunner:
    """Execute WriteTask graphs parent-before-child with bounded fan-out.

    There is no cancellation: when one write fails the failure propagates to the
    caller while writes already in flight elsewhere in the graph run to completion.
    """

    def __init__(self, max_concurrency: int = 16):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._max_concurrency = max_concurrency

    async def run(self, roots: Sequence[WriteTask]) -> None:
        slots = asyncio.Semaphore(self._max_concurrency)
        await self._run_level(roots, (), slots)

    async def _run_level(
        self, tasks: Sequence[WriteTask], ancestry: Ancestry, slots: asyncio.Semaphore
    ) -> None:
        if not tasks:
            return
        await asyncio.gather(*(self._run_node(t, ancestry, slots) for t in tasks))

    async def _run_node(
        self, task: WriteTask, ancestry: Ancestry, slots: asyncio.Semaphore
    ) -> None:
        async with slots:
            produced = await task.write(ancestry)
        inc_counter(f"import.records.{task.kind}")
        await self._run_level(task.children, ancestry + (produced,), slots)


def group_endpoints(endpoints: Sequence[EndpointRecord] | None) -> dict[int, list[EndpointRecord]]:
    """Group endpoints by endpointTypeIndex, keeping their relative order."""
    grouped: dict[int, list[EndpointRecord]] = {}
    for ep in endpoints or ():
        grouped.setdefault(ep.endpoint_type_index, []).append(ep)
    return grouped


class HierarchyImporter:
    def __init__(self, store: Store, *, max_concurrency: int = 16):
        self._store = store
        self._runner = TaskGraphRunner(max_concurrency)

    def build_graph(
        self,
        session_id: int,
        package_id: int | None,
        endpoint_types: Sequence[EndpointTypeRecord] | None,
        endpoints: Sequence[EndpointRecord] | None = None,
    ) -> list[WriteTask]:
        grouped = group_endpoints(endpoints)
        endpoint_types = list(endpoint_types or ())
        orphaned = sorted(i for i in grouped if not 0 <= i < len(endpoint_types))
        if orphaned:
            log.warning("import.endpoints.orphaned", endpoint_type_indexes=orphaned)
        return [
            self._endpoint_type_task(session_id, package_id, record, grouped.get(index, []))
            for index, record in enumerate(endpoint_types)
        ]

    async def import_hierarchy(
        self,
        session_id: int,
        package_id: int | None,
        endpoint_types: Sequence[EndpointTypeRecord] | None,
        endpoints: Sequence[EndpointRecord] | None = None,
    ) -> None:
        roots = self.build_graph(session_id, package_id, endpoint_types, endpoints)
        if not roots:
            return
        total = sum(r.count() for r in roots)
        log.info("import.hierarchy.start", endpoint_types=len(roots), writes=total)
        with timed("import.hierarchy.ms") as t:
            await self._runner.run(roots)
        log.info("import.hierarchy.done", writes=total, elapsed_ms=t["elapsed_ms"])

    def _endpoint_type_task(
        self,
        session_id: int,
        package_id: int | None,
        record: EndpointTypeRecord,
        endpoints: list[EndpointRecord],
    ) -> WriteTask:
        async def write(ancestry: Ancestry) -> int:
            return await self._store.import_endpoint_type(session_id, package_id, record)

        children = [self._endpoint_task(session_id, ep) for ep in endpoints]
        children += [self._cluster_task(package_id, c) for c in record.clusters]
        return WriteTask("endpoint_type", write, children)

    def _endpoint_task(self, session_id: int, endpoint: EndpointRecord) -> WriteTask:
        async def write(ancestry: Ancestry) -> int:
            (endpoint_type_id,) = ancestry
            return await self._store.import_endpoint(session_id, endpoint, endpoint_type_id)

        return WriteTask("endpoint", write)

    def _cluster_task(self, package_id: int | None, cluster: ClusterEntry) -> WriteTask:
        async def write(ancestry: Ancestry) -> int:
            (endpoint_type_id,) = ancestry
            return await self._store.import_cluster(package_id, endpoint_type_id, cluster)

        children = [self._command_task(package_id, c) for c in cluster.commands or ()]
        children += [self._attribute_task(package_id, a) for a in cluster.attributes or ()]
        return WriteTask("cluster", write, children)

    def _command_task(self, package_id: int | None, command: CommandEntry) -> WriteTask:
        async def write(ancestry: Ancestry) -> int:
            endpoint_type_id, endpoint_type_cluster_id = ancestry
            return await self._store.import_command(
                package_id, endpoint_type_id, endpoint_type_cluster_id, command
            )

        return WriteTask("command", write)

    def _attribute_task(self, package_id: int | None, attribute: AttributeEntry) -> WriteTask:
        async def write(ancestry: Ancestry) -> int:
            endpoint_type_id, endpoint_type_cluster_id = ancestry
            return await self._store.import_attribute(
                package_id, endpoint_type_id, endpoint_type_cluster_id, attribute
            )

        return WriteTask("attribute", write)
