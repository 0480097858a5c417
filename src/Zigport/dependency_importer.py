"""Writes optional package links and session key-value metadata."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from Zigport.document import KeyValuePair
from Zigport.import_plan import ImportPlan
from Zigport.metrics import inc_counter
from Zigport.store import Store

log = structlog.get_logger()


class DependencyImporter:
    """Fan-out writer for the session's secondary data.

    All writes are issued at once. The first failure propagates; writes that
    were already issued are left to finish and are not undone.
    """

    def __init__(self, store: Store):
        self._store = store

    async def import_optional_packages(self, plan: ImportPlan) -> None:
        if plan.session_id is None:
            raise ValueError("ImportPlan has no session_id")
        if not plan.optional_ids:
            return
        package_ids = list(dict.fromkeys(plan.optional_ids))
        log.info("import.optional_packages", count=len(package_ids))
        await asyncio.gather(
            *(self._store.insert_session_package(plan.session_id, pid) for pid in package_ids)
        )
        inc_counter("import.session_packages", len(package_ids))

    async def import_key_values(
        self, session_id: int, key_value_pairs: Sequence[KeyValuePair] | None
    ) -> int:
        if not key_value_pairs:
            return session_id
        # Repeated keys collapse to their last value, as sequential overwrites would
        latest = {kv.key: kv.value for kv in key_value_pairs}
        log.info("import.key_values", count=len(latest))
        await asyncio.gather(
            *(
                self._store.update_session_key_value(session_id, key, value)
                for key, value in latest.items()
            )
        )
        inc_counter("import.key_values", len(latest))
        return session_id

    async def import_dependencies(
        self, plan: ImportPlan, key_value_pairs: Sequence[KeyValuePair] | None = None
    ) -> None:
        await asyncio.gather(
            self.import_optional_packages(plan),
            self.import_key_values(plan.session_id, key_value_pairs),
        )
