import asyncio
import itertools
import random

import pytest
from hypothesis import given, settings as hyp_settings, strategies as st

from Zigport.document import EndpointRecord, EndpointTypeRecord
from Zigport.hierarchy import HierarchyImporter, TaskGraphRunner, WriteTask, group_endpoints
from Zigport.metrics import get_counter


class _RecordingStore:
    """Hands out ids and records every write, checking parents exist first."""

    def __init__(self, *, jitter: random.Random | None = None):
        self._ids = itertools.count(1)
        self._jitter = jitter
        self.written: dict[int, tuple] = {}
        self.events: list[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _write(self, kind, *parents, payload=None) -> int:
        for p in parents:
            assert p in self.written, f"{kind} written before its parent {p}"
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._jitter is not None:
                await asyncio.sleep(self._jitter.random() / 1000)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        new_id = next(self._ids)
        self.written[new_id] = (kind, parents, payload)
        self.events.append((kind, new_id, parents))
        return new_id

    async def import_endpoint_type(self, session_id, package_id, record):
        return await self._write("endpoint_type", payload=record.name)

    async def import_endpoint(self, session_id, endpoint, endpoint_type_id):
        return await self._write("endpoint", endpoint_type_id, payload=endpoint.endpoint_id)

    async def import_cluster(self, package_id, endpoint_type_id, cluster):
        return await self._write("cluster", endpoint_type_id, payload=cluster.code)

    async def import_command(self, package_id, endpoint_type_id, endpoint_type_cluster_id, command):
        return await self._write(
            "command", endpoint_type_id, endpoint_type_cluster_id, payload=command.code
        )

    async def import_attribute(
        self, package_id, endpoint_type_id, endpoint_type_cluster_id, attribute
    ):
        return await self._write(
            "attribute", endpoint_type_id, endpoint_type_cluster_id, payload=attribute.code
        )

    def kinds(self):
        return [k for k, _, _ in self.events]


def _endpoint_type(name, clusters):
    return EndpointTypeRecord.model_validate({"name": name, "clusters": clusters})


def _cluster(code, commands=None, attributes=None):
    data = {"code": code, "side": "server"}
    if commands is not None:
        data["commands"] = [{"code": c, "source": "client"} for c in commands]
    if attributes is not None:
        data["attributes"] = [{"code": a, "side": "server"} for a in attributes]
    return data


def _endpoint(index, endpoint_id):
    return EndpointRecord.model_validate({"endpointTypeIndex": index, "endpointId": endpoint_id})


def test_group_endpoints_keeps_relative_order():
    eps = [_endpoint(1, 10), _endpoint(0, 11), _endpoint(1, 12), _endpoint(0, 13)]
    grouped = group_endpoints(eps)
    assert [e.endpoint_id for e in grouped[0]] == [11, 13]
    assert [e.endpoint_id for e in grouped[1]] == [10, 12]
    assert group_endpoints(None) == {}


@pytest.mark.asyncio
async def test_children_receive_full_ancestry():
    store = _RecordingStore()
    types = [_endpoint_type("root", [_cluster(6, commands=[1], attributes=[0, 0x4000])])]
    await HierarchyImporter(store).import_hierarchy(1, 1, types, [_endpoint(0, 1)])

    (et_id,) = [i for k, i, _ in store.events if k == "endpoint_type"]
    (cl_id,) = [i for k, i, _ in store.events if k == "cluster"]
    for kind, _, parents in store.events:
        if kind in ("endpoint", "cluster"):
            assert parents == (et_id,)
        if kind in ("command", "attribute"):
            assert parents == (et_id, cl_id)
    assert sorted(store.kinds()) == sorted(
        ["endpoint_type", "endpoint", "cluster", "command", "attribute", "attribute"]
    )
    assert get_counter("import.records.attribute") == 2


@pytest.mark.asyncio
async def test_missing_commands_and_attributes_mean_empty():
    store = _RecordingStore()
    await HierarchyImporter(store).import_hierarchy(
        1, None, [_endpoint_type("bare", [_cluster(6)])], None
    )
    assert store.kinds() == ["endpoint_type", "cluster"]


@pytest.mark.asyncio
async def test_nothing_to_import():
    store = _RecordingStore()
    await HierarchyImporter(store).import_hierarchy(1, 1, None, None)
    await HierarchyImporter(store).import_hierarchy(1, 1, [], [])
    assert store.events == []


@pytest.mark.asyncio
async def test_endpoints_pointing_at_missing_types_are_skipped():
    store = _RecordingStore()
    await HierarchyImporter(store).import_hierarchy(
        1, 1, [_endpoint_type("only", [])], [_endpoint(0, 1), _endpoint(5, 2)]
    )
    endpoints = [store.written[i][2] for k, i, _ in store.events if k == "endpoint"]
    assert endpoints == [1]


@pytest.mark.asyncio
async def test_runner_bounds_concurrent_writes():
    store = _RecordingStore(jitter=random.Random(3))
    types = [
        _endpoint_type(f"t{i}", [_cluster(c, commands=[0, 1], attributes=[0, 1, 2]) for c in range(4)])
        for i in range(5)
    ]
    await HierarchyImporter(store, max_concurrency=3).import_hierarchy(1, 1, types, None)
    assert store.max_in_flight <= 3
    assert len(store.events) == 5 * (1 + 4 * (1 + 2 + 3))


@pytest.mark.asyncio
async def test_failure_propagates_without_cancelling_siblings():
    written: list[str] = []

    def ok(label, delay):
        async def write(ancestry):
            await asyncio.sleep(delay)
            written.append(label)
            return len(written)

        return write

    async def boom(ancestry):
        raise RuntimeError("write rejected")

    roots = [
        WriteTask("endpoint_type", boom, [WriteTask("cluster", ok("never", 0))]),
        WriteTask("endpoint_type", ok("slow-sibling", 0.01)),
    ]
    with pytest.raises(RuntimeError, match="write rejected"):
        await TaskGraphRunner(4).run(roots)
    # gather() without cancellation lets the in-flight sibling finish
    await asyncio.sleep(0.05)
    assert written == ["slow-sibling"]


def test_runner_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        TaskGraphRunner(0)


_trees = st.lists(
    st.tuples(
        st.lists(
            st.tuples(
                st.one_of(st.none(), st.lists(st.integers(0, 0xFF), max_size=3)),
                st.one_of(st.none(), st.lists(st.integers(0, 0xFFFF), max_size=4)),
            ),
            max_size=4,
        ),
        st.integers(0, 3),
    ),
    max_size=4,
)


@hyp_settings(max_examples=40, deadline=None)
@given(trees=_trees, seed=st.integers(0, 2**16), max_concurrency=st.integers(1, 8))
def test_every_write_follows_its_parent(trees, seed, max_concurrency):
    types = []
    endpoints = []
    expected = 0
    for index, (clusters, endpoint_count) in enumerate(trees):
        types.append(
            _endpoint_type(
                f"type-{index}",
                [_cluster(code, cmds, attrs) for code, (cmds, attrs) in enumerate(clusters)],
            )
        )
        endpoints += [_endpoint(index, n) for n in range(endpoint_count)]
        expected += 1 + endpoint_count
        expected += sum(1 + len(cmds or ()) + len(attrs or ()) for cmds, attrs in clusters)

    store = _RecordingStore(jitter=random.Random(seed))
    asyncio.run(
        HierarchyImporter(store, max_concurrency=max_concurrency).import_hierarchy(
            1, 1, types, endpoints
        )
    )

    assert len(store.events) == expected
    position = {new_id: n for n, (_, new_id, _) in enumerate(store.events)}
    for kind, new_id, parents in store.events:
        for p in parents:
            assert position[p] < position[new_id]
        if kind in ("command", "attribute"):
            assert store.written[parents[0]][0] == "endpoint_type"
            assert store.written[parents[1]][0] == "cluster"
    assert store.max_in_flight <= max_concurrency
