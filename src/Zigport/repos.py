# repos.py

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from Zigport import models
from Zigport.document import (
    AttributeEntry,
    ClusterEntry,
    CommandEntry,
    EndpointRecord,
    EndpointTypeRecord,
)


async def _flush_retry(s: AsyncSession, attempts: int = 5, delay: float = 0.2) -> None:
    """Retry session.flush() on transient SQLite 'database is locked' errors.

    Exponential backoff: delay * 2^i between attempts.
    """
    for i in range(attempts):
        try:
            await s.flush()
            return
        except OperationalError as e:  # pragma: no cover - timing dependent
            msg = str(e).lower()
            if "database is locked" in msg or "database is busy" in msg:
                if i == attempts - 1:
                    raise
                await asyncio.sleep(delay * (2**i))
                continue
            raise


def _mfg_clause(column, mfg_code: int | None):
    if mfg_code is None:
        return column.is_(None)
    return column == mfg_code


# -----------------------------
# Packages
# -----------------------------


async def get_package_id_by_path_type_version(
    s: AsyncSession, path: str, package_type: str, version: str | None
) -> int | None:
    stmt = select(models.Package.id).where(
        models.Package.path == path,
        models.Package.type == package_type,
    )
    if version is None:
        stmt = stmt.where(models.Package.version.is_(None))
    else:
        stmt = stmt.where(models.Package.version == version)
    q = await s.execute(stmt.order_by(models.Package.id).limit(1))
    return q.scalar_one_or_none()


async def get_packages_by_type(s: AsyncSession, package_type: str) -> list[models.Package]:
    q = await s.execute(
        select(models.Package)
        .where(models.Package.type == package_type)
        .order_by(models.Package.id)
    )
    return list(q.scalars().all())


async def insert_package(
    s: AsyncSession,
    *,
    path: str,
    package_type: str,
    version: str | None = None,
    description: str | None = None,
) -> models.Package:
    obj = models.Package(path=path, type=package_type, version=version, description=description)
    s.add(obj)
    await _flush_retry(s)
    return obj


# -----------------------------
# Sessions
# -----------------------------


async def create_blank_session(s: AsyncSession) -> models.UserSession:
    obj = models.UserSession(dirty=True)
    s.add(obj)
    await _flush_retry(s)
    return obj


async def get_session(s: AsyncSession, session_id: int) -> models.UserSession | None:
    return await s.get(models.UserSession, session_id)


async def update_session_key_value(
    s: AsyncSession, session_id: int, key: str, value: object
) -> None:
    """Insert or overwrite a session key.

    Scalars are stored as text and JSON arrays or objects as their JSON encoding.
    """
    if value is None or isinstance(value, str):
        text = value
    elif isinstance(value, (list, dict)):
        text = json.dumps(value)
    else:
        text = str(value)
    q = await s.execute(
        select(models.SessionKeyValue).where(
            models.SessionKeyValue.session_ref == session_id,
            models.SessionKeyValue.key == key,
        )
    )
    obj = q.scalar_one_or_none()
    if obj:
        obj.value = text
    else:
        s.add(models.SessionKeyValue(session_ref=session_id, key=key, value=text))
    await _flush_retry(s)


async def get_session_key_values(s: AsyncSession, session_id: int) -> dict[str, str | None]:
    q = await s.execute(
        select(models.SessionKeyValue)
        .where(models.SessionKeyValue.session_ref == session_id)
        .order_by(models.SessionKeyValue.key)
    )
    return {kv.key: kv.value for kv in q.scalars().all()}


async def insert_session_package(
    s: AsyncSession, session_id: int, package_id: int, *, required: bool = False
) -> None:
    """Link a package to a session. Linking an already linked package is a no-op."""
    q = await s.execute(
        select(models.SessionPackage).where(
            models.SessionPackage.session_ref == session_id,
            models.SessionPackage.package_ref == package_id,
        )
    )
    if q.scalar_one_or_none() is not None:
        return
    s.add(
        models.SessionPackage(
            session_ref=session_id, package_ref=package_id, required=required, enabled=True
        )
    )
    await _flush_retry(s)


async def get_session_package_ids(s: AsyncSession, session_id: int) -> list[int]:
    q = await s.execute(
        select(models.SessionPackage.package_ref)
        .where(models.SessionPackage.session_ref == session_id)
        .order_by(models.SessionPackage.package_ref)
    )
    return list(q.scalars().all())


async def set_session_clean(s: AsyncSession, session_id: int) -> None:
    obj = await s.get(models.UserSession, session_id)
    if obj is None:
        raise LookupError(f"session {session_id} does not exist")
    obj.dirty = False
    await _flush_retry(s)


# -----------------------------
# Imported configuration
# -----------------------------


async def import_endpoint_type(
    s: AsyncSession, session_id: int, package_id: int | None, record: EndpointTypeRecord
) -> int:
    obj = models.EndpointType(
        session_ref=session_id,
        package_ref=package_id,
        name=record.name,
        device_type_name=record.device_type_name,
        device_type_code=record.device_type_code,
        device_type_profile_id=record.device_type_profile_id,
    )
    s.add(obj)
    await _flush_retry(s)
    return obj.id


async def import_endpoint(
    s: AsyncSession, session_id: int, endpoint: EndpointRecord, endpoint_type_id: int
) -> int:
    obj = models.Endpoint(
        session_ref=session_id,
        endpoint_type_ref=endpoint_type_id,
        endpoint_identifier=endpoint.endpoint_id,
        profile_id=endpoint.profile_id,
        network_identifier=endpoint.network_id,
        endpoint_version=endpoint.endpoint_version,
        device_identifier=endpoint.device_identifier,
    )
    s.add(obj)
    await _flush_retry(s)
    return obj.id


async def _find_cluster_ref(
    s: AsyncSession, package_id: int | None, code: int, mfg_code: int | None
) -> int | None:
    if package_id is None:
        return None
    q = await s.execute(
        select(models.Cluster.id)
        .where(
            models.Cluster.package_ref == package_id,
            models.Cluster.code == code,
            _mfg_clause(models.Cluster.manufacturer_code, mfg_code),
        )
        .order_by(models.Cluster.id)
        .limit(1)
    )
    return q.scalar_one_or_none()


async def import_cluster_for_endpoint_type(
    s: AsyncSession, package_id: int | None, endpoint_type_id: int, cluster: ClusterEntry
) -> int:
    cluster_ref = await _find_cluster_ref(s, package_id, cluster.code, cluster.mfg_code)
    obj = models.EndpointTypeCluster(
        endpoint_type_ref=endpoint_type_id,
        cluster_ref=cluster_ref,
        code=cluster.code,
        manufacturer_code=cluster.mfg_code,
        side=cluster.side,
        enabled=cluster.enabled,
    )
    s.add(obj)
    await _flush_retry(s)
    return obj.id


async def _endpoint_cluster_definition(s: AsyncSession, endpoint_type_cluster_id: int) -> int | None:
    q = await s.execute(
        select(models.EndpointTypeCluster.cluster_ref).where(
            models.EndpointTypeCluster.id == endpoint_type_cluster_id
        )
    )
    return q.scalar_one_or_none()


async def import_command_for_endpoint_type(
    s: AsyncSession,
    package_id: int | None,
    endpoint_type_id: int,
    endpoint_type_cluster_id: int,
    command: CommandEntry,
) -> int:
    command_ref = None
    if package_id is not None:
        cluster_ref = await _endpoint_cluster_definition(s, endpoint_type_cluster_id)
        stmt = select(models.Command.id).where(
            models.Command.package_ref == package_id,
            models.Command.code == command.code,
            _mfg_clause(models.Command.manufacturer_code, command.mfg_code),
            or_(models.Command.cluster_ref == cluster_ref, models.Command.cluster_ref.is_(None)),
        )
        if command.source is not None:
            stmt = stmt.where(models.Command.source == command.source)
        q = await s.execute(stmt.order_by(models.Command.id).limit(1))
        command_ref = q.scalar_one_or_none()
    obj = models.EndpointTypeCommand(
        endpoint_type_ref=endpoint_type_id,
        endpoint_type_cluster_ref=endpoint_type_cluster_id,
        command_ref=command_ref,
        code=command.code,
        manufacturer_code=command.mfg_code,
        source=command.source,
        incoming=command.incoming,
        outgoing=command.outgoing,
    )
    s.add(obj)
    await _flush_retry(s)
    return obj.id


async def import_attribute_for_endpoint_type(
    s: AsyncSession,
    package_id: int | None,
    endpoint_type_id: int,
    endpoint_type_cluster_id: int,
    attribute: AttributeEntry,
) -> int:
    attribute_ref = None
    if package_id is not None:
        cluster_ref = await _endpoint_cluster_definition(s, endpoint_type_cluster_id)
        stmt = select(models.Attribute.id).where(
            models.Attribute.package_ref == package_id,
            models.Attribute.code == attribute.code,
            _mfg_clause(models.Attribute.manufacturer_code, attribute.mfg_code),
            or_(
                models.Attribute.cluster_ref == cluster_ref,
                models.Attribute.cluster_ref.is_(None),
            ),
        )
        if attribute.side is not None:
            stmt = stmt.where(models.Attribute.side == attribute.side)
        q = await s.execute(stmt.order_by(models.Attribute.id).limit(1))
        attribute_ref = q.scalar_one_or_none()
    default_value = attribute.default_value
    obj = models.EndpointTypeAttribute(
        endpoint_type_ref=endpoint_type_id,
        endpoint_type_cluster_ref=endpoint_type_cluster_id,
        attribute_ref=attribute_ref,
        code=attribute.code,
        manufacturer_code=attribute.mfg_code,
        included=attribute.included,
        storage_option=attribute.storage_option,
        singleton=attribute.singleton,
        bounded=attribute.bounded,
        default_value=None if default_value is None else str(default_value),
        include_reportable=attribute.reportable,
        min_interval=attribute.min_interval,
        max_interval=attribute.max_interval,
        reportable_change=attribute.reportable_change,
    )
    s.add(obj)
    await _flush_retry(s)
    return obj.id


# -----------------------------
# Atomic types
# -----------------------------


@dataclass(frozen=True)
class AtomicType:
    """Detached descriptor of one ATOMIC row."""

    id: int
    atomic_id: int
    name: str
    description: str | None
    size: int | None
    is_discrete: bool
    is_string: bool
    is_long: bool
    is_char: bool
    is_signed: bool


def atomic_from_row(row: models.Atomic) -> AtomicType:
    return AtomicType(
        id=row.id,
        atomic_id=row.atomic_identifier,
        name=row.name,
        description=row.description,
        size=row.atomic_size,
        is_discrete=bool(row.is_discrete),
        is_string=bool(row.is_string),
        is_long=bool(row.is_long),
        is_char=bool(row.is_char),
        is_signed=bool(row.is_signed),
    )


async def select_all_atomics(s: AsyncSession, package_ids: Sequence[int]) -> list[AtomicType]:
    q = await s.execute(
        select(models.Atomic)
        .where(models.Atomic.package_ref.in_(list(package_ids)))
        .order_by(models.Atomic.atomic_identifier, models.Atomic.id)
    )
    return [atomic_from_row(r) for r in q.scalars().all()]


async def select_atomic_by_name(
    s: AsyncSession, package_ids: Sequence[int], name: str
) -> AtomicType | None:
    q = await s.execute(
        select(models.Atomic)
        .where(
            models.Atomic.package_ref.in_(list(package_ids)),
            func.upper(models.Atomic.name) == name.upper(),
        )
        .order_by(models.Atomic.atomic_identifier, models.Atomic.id)
        .limit(1)
    )
    row = q.scalar_one_or_none()
    return atomic_from_row(row) if row is not None else None


async def select_atomic_by_id(s: AsyncSession, atomic_id: int) -> AtomicType | None:
    row = await s.get(models.Atomic, atomic_id)
    return atomic_from_row(row) if row is not None else None
