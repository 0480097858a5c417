"""Classification of resolved packages into an import plan."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from Zigport.errors import ResolutionFailure
from Zigport.models import PackageType
from Zigport.package_resolver import ResolvedPackage


@dataclass
class ImportPlan:
    """Resolved packages of one import, grouped by role.

    ``package_id`` is the primary ZCL properties package; ``other_ids`` holds
    generation template packages and ``optional_ids`` everything else, both in
    declaration order.
    """

    session_id: int | None
    package_id: int | None = None
    other_ids: list[int] = field(default_factory=list)
    optional_ids: list[int] = field(default_factory=list)

    def all_package_ids(self) -> list[int]:
        ids = [] if self.package_id is None else [self.package_id]
        return ids + self.other_ids + self.optional_ids


def classify_packages(
    session_id: int | None, resolved: Iterable[ResolvedPackage | None]
) -> ImportPlan:
    """Build an ImportPlan. Unresolved (None) entries are dropped.

    Raises ResolutionFailure unless exactly one primary package resolved.
    """
    plan = ImportPlan(session_id=session_id)
    primaries: list[int] = []
    for pkg in resolved:
        if pkg is None:
            continue
        if pkg.package_type == PackageType.zcl_properties.value:
            primaries.append(pkg.package_id)
        elif pkg.package_type == PackageType.gen_templates_json.value:
            plan.other_ids.append(pkg.package_id)
        else:
            plan.optional_ids.append(pkg.package_id)

    if len(primaries) != 1:
        raise ResolutionFailure(
            f"Expected exactly one {PackageType.zcl_properties.value} package, "
            f"found {len(primaries)}.",
            package_type=PackageType.zcl_properties.value,
            version=None,
            candidate_count=len(primaries),
            stage="primary",
        )
    plan.package_id = primaries[0]
    return plan
