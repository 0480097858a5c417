"""Store client contract used by the import pipeline and the atomic type cache.

``Store`` is the seam the core depends on; ``SqlStore`` implements it over
SQLAlchemy async sessions. Each operation runs in its own short session that is
committed on success, so concurrently issued operations never share an
``AsyncSession``. On SQLite every operation is serialized through an in-process
lock because all sessions share one connection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from Zigport import repos
from Zigport.db import get_sessionmaker, session_scope
from Zigport.document import (
    AttributeEntry,
    ClusterEntry,
    CommandEntry,
    EndpointRecord,
    EndpointTypeRecord,
)
from Zigport.errors import StoreFailure
from Zigport.metrics import inc_counter
from Zigport.repos import AtomicType

T = TypeVar("T")

log = structlog.get_logger()


class InstalledPackage(Protocol):
    id: int
    path: str
    type: str
    version: str | None


class Store(Protocol):
    async def get_package_id_by_path_type_version(
        self, path: str, package_type: str, version: str | None
    ) -> int | None: ...

    async def get_packages_by_type(self, package_type: str) -> Sequence[InstalledPackage]: ...

    async def create_blank_session(self) -> int: ...

    async def session_exists(self, session_id: int) -> bool: ...

    async def update_session_key_value(self, session_id: int, key: str, value: Any) -> None: ...

    async def insert_session_package(self, session_id: int, package_id: int) -> None: ...

    async def set_session_clean(self, session_id: int) -> None: ...

    async def import_endpoint_type(
        self, session_id: int, package_id: int | None, record: EndpointTypeRecord
    ) -> int: ...

    async def import_endpoint(
        self, session_id: int, endpoint: EndpointRecord, endpoint_type_id: int
    ) -> int: ...

    async def import_cluster(
        self, package_id: int | None, endpoint_type_id: int, cluster: ClusterEntry
    ) -> int: ...

    async def import_command(
        self,
        package_id: int | None,
        endpoint_type_id: int,
        endpoint_type_cluster_id: int,
        command: CommandEntry,
    ) -> int: ...

    async def import_attribute(
        self,
        package_id: int | None,
        endpoint_type_id: int,
        endpoint_type_cluster_id: int,
        attribute: AttributeEntry,
    ) -> int: ...

    async def select_all_atomics(self, package_ids: Sequence[int]) -> list[AtomicType]: ...

    async def select_atomic_by_name(
        self, package_ids: Sequence[int], name: str
    ) -> AtomicType | None: ...

    async def select_atomic_by_id(self, atomic_id: int) -> AtomicType | None: ...


class SqlStore:
    """SQLAlchemy-backed ``Store``."""

    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession] | None = None,
        *,
        serialize: bool | None = None,
    ):
        self._sm = sessionmaker or get_sessionmaker()
        if serialize is None:
            bind = self._sm.kw.get("bind")
            serialize = bind is not None and bind.dialect.name == "sqlite"
        self._lock: asyncio.Lock | None = asyncio.Lock() if serialize else None

    @asynccontextmanager
    async def _serialized(self):
        if self._lock is None:
            yield
            return
        async with self._lock:
            yield

    async def _run(self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with self._serialized():
                async with session_scope(self._sm) as s:
                    result = await fn(s)
        except (SQLAlchemyError, LookupError) as exc:
            inc_counter("store.failure")
            log.error("store.operation.failed", operation=operation, error=str(exc))
            raise StoreFailure(f"Store operation {operation} failed: {exc}", operation=operation) from exc
        return result

    # Packages

    async def get_package_id_by_path_type_version(
        self, path: str, package_type: str, version: str | None
    ) -> int | None:
        return await self._run(
            "get_package_id_by_path_type_version",
            lambda s: repos.get_package_id_by_path_type_version(s, path, package_type, version),
        )

    async def get_packages_by_type(self, package_type: str):
        return await self._run(
            "get_packages_by_type", lambda s: repos.get_packages_by_type(s, package_type)
        )

    # Sessions

    async def create_blank_session(self) -> int:
        async def _create(s: AsyncSession) -> int:
            obj = await repos.create_blank_session(s)
            return obj.id

        return await self._run("create_blank_session", _create)

    async def session_exists(self, session_id: int) -> bool:
        async def _exists(s: AsyncSession) -> bool:
            return await repos.get_session(s, session_id) is not None

        return await self._run("session_exists", _exists)

    async def update_session_key_value(self, session_id: int, key: str, value: Any) -> None:
        await self._run(
            "update_session_key_value",
            lambda s: repos.update_session_key_value(s, session_id, key, value),
        )

    async def insert_session_package(self, session_id: int, package_id: int) -> None:
        await self._run(
            "insert_session_package",
            lambda s: repos.insert_session_package(s, session_id, package_id),
        )

    async def set_session_clean(self, session_id: int) -> None:
        await self._run("set_session_clean", lambda s: repos.set_session_clean(s, session_id))

    # Imported configuration

    async def import_endpoint_type(
        self, session_id: int, package_id: int | None, record: EndpointTypeRecord
    ) -> int:
        return await self._run(
            "import_endpoint_type",
            lambda s: repos.import_endpoint_type(s, session_id, package_id, record),
        )

    async def import_endpoint(
        self, session_id: int, endpoint: EndpointRecord, endpoint_type_id: int
    ) -> int:
        return await self._run(
            "import_endpoint",
            lambda s: repos.import_endpoint(s, session_id, endpoint, endpoint_type_id),
        )

    async def import_cluster(
        self, package_id: int | None, endpoint_type_id: int, cluster: ClusterEntry
    ) -> int:
        return await self._run(
            "import_cluster",
            lambda s: repos.import_cluster_for_endpoint_type(s, package_id, endpoint_type_id, cluster),
        )

    async def import_command(
        self,
        package_id: int | None,
        endpoint_type_id: int,
        endpoint_type_cluster_id: int,
        command: CommandEntry,
    ) -> int:
        return await self._run(
            "import_command",
            lambda s: repos.import_command_for_endpoint_type(
                s, package_id, endpoint_type_id, endpoint_type_cluster_id, command
            ),
        )

    async def import_attribute(
        self,
        package_id: int | None,
        endpoint_type_id: int,
        endpoint_type_cluster_id: int,
        attribute: AttributeEntry,
    ) -> int:
        return await self._run(
            "import_attribute",
            lambda s: repos.import_attribute_for_endpoint_type(
                s, package_id, endpoint_type_id, endpoint_type_cluster_id, attribute
            ),
        )

    # Atomic types

    async def select_all_atomics(self, package_ids: Sequence[int]) -> list[AtomicType]:
        return await self._run(
            "select_all_atomics", lambda s: repos.select_all_atomics(s, package_ids)
        )

    async def select_atomic_by_name(
        self, package_ids: Sequence[int], name: str
    ) -> AtomicType | None:
        return await self._run(
            "select_atomic_by_name", lambda s: repos.select_atomic_by_name(s, package_ids, name)
        )

    async def select_atomic_by_id(self, atomic_id: int) -> AtomicType | None:
        return await self._run(
            "select_atomic_by_id", lambda s: repos.select_atomic_by_id(s, atomic_id)
        )
