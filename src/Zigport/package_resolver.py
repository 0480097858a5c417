"""Best-effort resolution of declared package references to installed packages.

A document names its packages by path, type and version, but the machine that
opens it rarely has them installed at exactly the same place. Resolution tries
an exact match first and then escalates through progressively looser
heuristics:

1. exact (absolute path, type, version) match;
2. the only installed package of the type;
3. the only installed package of the type and version;
4. among several type+version matches, the first whose path exists on disk,
   else the first one.

Running out of candidates at step 2 or 3 is fatal, except for the
``gen-templates-json`` type which the session can live without.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from Zigport.document import PackageRef
from Zigport.errors import ResolutionFailure
from Zigport.metrics import inc_counter
from Zigport.models import PackageType
from Zigport.paths import create_absolute_path, package_path_exists
from Zigport.store import InstalledPackage, Store

log = structlog.get_logger()

SURVIVABLE_PACKAGE_TYPES = frozenset({PackageType.gen_templates_json.value})


@dataclass(frozen=True)
class ResolvedPackage:
    package_id: int
    package_type: str


class PackageResolver:
    """Resolve ``PackageRef`` entries against the packages loaded in a store."""

    def __init__(
        self,
        store: Store,
        *,
        path_exists: Callable[[str], bool] = package_path_exists,
        user_data_dir: str | None = None,
    ):
        self._store = store
        self._path_exists = path_exists
        self._user_data_dir = user_data_dir

    def absolute_path(self, ref: PackageRef, document_path: str | None) -> str:
        if ref.path_relativity is None:
            return ref.path
        return create_absolute_path(
            ref.path, ref.path_relativity, document_path, user_data_dir=self._user_data_dir
        )

    async def resolve(
        self, ref: PackageRef, document_path: str | None = None
    ) -> ResolvedPackage | None:
        abs_path = self.absolute_path(ref, document_path)
        package_id = await self._store.get_package_id_by_path_type_version(
            abs_path, ref.type, ref.version
        )
        if package_id is not None:
            inc_counter("resolver.exact")
            return ResolvedPackage(package_id=package_id, package_type=ref.type)

        log.info(
            "package.resolve.no_exact_match",
            path=abs_path,
            package_type=ref.type,
            version=ref.version,
        )
        packages = list(await self._store.get_packages_by_type(ref.type))
        if not packages:
            return self._nothing_found(
                ref, stage="type", message=f"No packages of type {ref.type} found in the database."
            )
        if len(packages) == 1:
            log.info("package.resolve.only_of_type", package_type=ref.type, package_id=packages[0].id)
            inc_counter("resolver.only_of_type")
            return ResolvedPackage(package_id=packages[0].id, package_type=ref.type)

        matching = [p for p in packages if p.version == ref.version]
        if not matching:
            return self._nothing_found(
                ref,
                stage="version",
                candidate_count=len(packages),
                message=(
                    f"No packages of type {ref.type} that match version {ref.version} "
                    "found in the database."
                ),
            )
        if len(matching) == 1:
            log.info(
                "package.resolve.only_of_version",
                package_type=ref.type,
                version=ref.version,
                package_id=matching[0].id,
            )
            inc_counter("resolver.only_of_version")
            return ResolvedPackage(package_id=matching[0].id, package_type=ref.type)

        chosen = self._best_bet(matching)
        inc_counter("resolver.best_bet")
        return ResolvedPackage(package_id=chosen.id, package_type=ref.type)

    async def resolve_all(
        self, refs: Sequence[PackageRef], document_path: str | None = None
    ) -> list[ResolvedPackage | None]:
        """Resolve every ref concurrently, preserving declaration order in the result."""
        return list(await asyncio.gather(*(self.resolve(r, document_path) for r in refs)))

    def _best_bet(self, candidates: list[InstalledPackage]) -> InstalledPackage:
        existing = [p for p in candidates if self._path_exists(p.path)]
        if len(existing) == 1:
            log.warning("package.resolve.best_bet", reason="only_existing", package_id=existing[0].id)
            return existing[0]
        if existing:
            log.warning(
                "package.resolve.best_bet",
                reason="first_existing",
                existing=len(existing),
                package_id=existing[0].id,
            )
            return existing[0]
        log.warning(
            "package.resolve.best_bet",
            reason="none_exist",
            candidates=len(candidates),
            package_id=candidates[0].id,
        )
        return candidates[0]

    def _nothing_found(
        self, ref: PackageRef, *, stage: str, message: str, candidate_count: int = 0
    ) -> None:
        if ref.type in SURVIVABLE_PACKAGE_TYPES:
            log.info("package.resolve.skipped", package_type=ref.type, stage=stage, reason=message)
            inc_counter("resolver.skipped")
            return None
        inc_counter("resolver.failed")
        raise ResolutionFailure(
            message,
            package_type=ref.type,
            version=ref.version,
            candidate_count=candidate_count,
            stage=stage,
        )
