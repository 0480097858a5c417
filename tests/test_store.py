import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from Zigport import repos
from Zigport.db import create_engine_for
from Zigport.document import KeyValuePair
from Zigport.errors import StoreFailure
from Zigport.metrics import get_counter
from Zigport.store import SqlStore


@pytest.mark.asyncio
async def test_sqlite_store_serializes_operations(store):
    assert store._lock is not None


@pytest.mark.asyncio
async def test_package_lookups(store, db):
    async with db() as s:
        a = await repos.insert_package(s, path="/a", package_type="zcl-properties", version="1")
        b = await repos.insert_package(s, path="/b", package_type="zcl-properties", version=None)
        await repos.insert_package(s, path="/c", package_type="gen-templates-json", version="1")
        a_id, b_id = a.id, b.id

    assert await store.get_package_id_by_path_type_version("/a", "zcl-properties", "1") == a_id
    assert await store.get_package_id_by_path_type_version("/b", "zcl-properties", None) == b_id
    assert await store.get_package_id_by_path_type_version("/a", "zcl-properties", "2") is None
    found = await store.get_packages_by_type("zcl-properties")
    assert [p.id for p in found] == [a_id, b_id]
    assert found[0].path == "/a"


@pytest.mark.asyncio
async def test_concurrent_session_writes(store, db):
    sid = await store.create_blank_session()
    pairs = [KeyValuePair(key=f"k{i}", value=i) for i in range(20)]
    await asyncio.gather(
        *(store.update_session_key_value(sid, kv.key, kv.value) for kv in pairs)
    )
    await store.update_session_key_value(sid, "k3", "three")
    await asyncio.gather(store.insert_session_package(sid, 1), store.insert_session_package(sid, 1))

    async with db() as s:
        kvs = await repos.get_session_key_values(s, sid)
        linked = await repos.get_session_package_ids(s, sid)
        session = await repos.get_session(s, sid)
    assert len(kvs) == 20
    assert kvs["k3"] == "three"
    assert kvs["k7"] == "7"
    assert linked == [1]
    assert session.dirty is True


@pytest.mark.asyncio
async def test_missing_session_becomes_store_failure(store):
    with pytest.raises(StoreFailure) as ei:
        await store.set_session_clean(12345)
    assert ei.value.context == {"operation": "set_session_clean"}
    assert isinstance(ei.value.__cause__, LookupError)
    assert get_counter("store.failure") == 1


@pytest.mark.asyncio
async def test_structured_values_are_stored_as_json(store, db):
    sid = await store.create_blank_session()
    await store.update_session_key_value(sid, "ids", [1, 2])
    await store.update_session_key_value(sid, "flags", {"on": True})
    await store.update_session_key_value(sid, "empty", None)
    async with db() as s:
        kvs = await repos.get_session_key_values(s, sid)
    assert kvs == {"empty": None, "flags": '{"on": true}', "ids": "[1, 2]"}


@pytest.mark.asyncio
async def test_session_exists(store):
    sid = await store.create_blank_session()
    assert await store.session_exists(sid) is True
    assert await store.session_exists(sid + 1) is False


@pytest.mark.asyncio
async def test_sqlalchemy_errors_become_store_failure():
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")
    try:
        bare = SqlStore(async_sessionmaker(engine, expire_on_commit=False))
        with pytest.raises(StoreFailure) as ei:
            await bare.create_blank_session()
    finally:
        await engine.dispose()
    assert ei.value.kind == "store_failure"
    assert ei.value.context["operation"] == "create_blank_session"
    assert get_counter("store.failure") == 1
