"""Merge a parsed project document into a session.

Stages run strictly in order:

A. resolve every declared package (concurrently), classify the results and
   check that a merge target exists; a blank session is created only once
   this succeeds;
B. link optional packages, then import key-value metadata and the endpoint
   hierarchy concurrently;
C. mark the session clean.

Failures detected in stage A therefore never leave rows behind. Skipped
generation template packages are logged by the resolver; the result always
carries empty ``errors`` and ``warnings``. A store failure during stage B can
leave a partial merge; writes already issued are not rolled back.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from Zigport.config import Settings, load_settings
from Zigport.dependency_importer import DependencyImporter
from Zigport.document import NormalizedDocument, read_document
from Zigport.errors import ImportFailure, StoreFailure
from Zigport.hierarchy import HierarchyImporter
from Zigport.import_plan import ImportPlan, classify_packages
from Zigport.metrics import inc_counter, observe_histogram
from Zigport.package_resolver import PackageResolver
from Zigport.store import Store

log = structlog.get_logger()


@dataclass
class ImportResult:
    session_id: int
    package_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "packageIds": list(self.package_ids),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class ImportOrchestrator:
    def __init__(
        self,
        store: Store,
        *,
        resolver: PackageResolver | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or load_settings()
        self._store = store
        self._resolver = resolver or PackageResolver(
            store, user_data_dir=self._settings.user_data_dir
        )
        self._dependencies = DependencyImporter(store)
        self._hierarchy = HierarchyImporter(
            store, max_concurrency=self._settings.import_max_concurrency
        )

    async def run_import(
        self, document: NormalizedDocument, existing_session_id: int | None = None
    ) -> ImportResult:
        started = time.perf_counter()

        log.info(
            "import.stage.start",
            stage="resolve",
            packages=len(document.packages),
            existing_session_id=existing_session_id,
        )
        resolved = await self._resolver.resolve_all(document.packages, document.file_path)
        plan = classify_packages(None, resolved)

        session_id = existing_session_id
        if session_id is None:
            session_id = await self._store.create_blank_session()
            inc_counter("import.sessions.created")
        elif not await self._store.session_exists(session_id):
            raise StoreFailure(
                f"Session {session_id} does not exist.", operation="session_exists"
            )
        plan.session_id = session_id

        bind_contextvars(session_id=session_id)
        try:
            await self._write(plan, document)
        except ImportFailure as exc:
            inc_counter("import.failed")
            log.error("import.failed", kind=exc.kind, error=exc.message)
            raise
        finally:
            unbind_contextvars("session_id")

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        observe_histogram("import.duration_ms", elapsed_ms)
        inc_counter("import.completed")
        log.info(
            "import.completed",
            session_id=session_id,
            packages=len(plan.all_package_ids()),
            duration_ms=elapsed_ms,
        )
        return ImportResult(session_id=session_id, package_ids=plan.all_package_ids())

    async def _write(self, plan: ImportPlan, document: NormalizedDocument) -> None:
        assert plan.session_id is not None
        log.info(
            "import.stage.start",
            stage="dependencies",
            package_id=plan.package_id,
            optional=len(plan.optional_ids),
        )
        await self._dependencies.import_optional_packages(plan)
        await asyncio.gather(
            self._dependencies.import_key_values(plan.session_id, document.key_value_pairs),
            self._hierarchy.import_hierarchy(
                plan.session_id, plan.package_id, document.endpoint_types, document.endpoints
            ),
        )
        log.info("import.stage.start", stage="finalize")
        await self._store.set_session_clean(plan.session_id)


async def import_file(
    store: Store,
    path: str | Path,
    *,
    existing_session_id: int | None = None,
    settings: Settings | None = None,
) -> ImportResult:
    """Read, validate and import the document at ``path``."""
    settings = settings or load_settings()
    document = read_document(path, supported_feature_level=settings.feature_level)
    orchestrator = ImportOrchestrator(store, settings=settings)
    return await orchestrator.run_import(document, existing_session_id)
