# models.py

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from Zigport.db import Base


class PackageType(str, enum.Enum):
    zcl_properties = "zcl-properties"
    gen_templates_json = "gen-templates-json"
    gen_single_template = "gen-template"
    zcl_xml_standalone = "zcl-xml-standalone"


class PathRelativity(str, enum.Enum):
    absolute = "absolute"
    relative_to_zap = "relativeToZap"
    relative_to_home = "relativeToHome"
    relative_to_user_data = "relativeToUserData"


class SessionKey(str, enum.Enum):
    file_path = "filePath"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------------
# Installed packages and ZCL definitions
# -----------------------------


class Package(Base):
    __tablename__ = "packages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(1024), index=True)
    type: Mapped[str] = mapped_column(String(64), index=True)
    version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    __table_args__ = (Index("ix_packages_path_type_version", "path", "type", "version"),)


class Cluster(Base):
    __tablename__ = "clusters"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_ref: Mapped[int] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"), index=True
    )
    code: Mapped[int] = mapped_column(Integer)
    manufacturer_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(String(200))

    __table_args__ = (Index("ix_clusters_package_code", "package_ref", "code"),)


class Attribute(Base):
    __tablename__ = "attributes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_ref: Mapped[int] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"), index=True
    )
    # NULL for global attributes shared by every cluster
    cluster_ref: Mapped[int | None] = mapped_column(
        ForeignKey("clusters.id", ondelete="CASCADE"), nullable=True, index=True
    )
    code: Mapped[int] = mapped_column(Integer)
    manufacturer_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    side: Mapped[str] = mapped_column(String(16))  # client|server
    name: Mapped[str] = mapped_column(String(200))


class Command(Base):
    __tablename__ = "commands"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_ref: Mapped[int] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"), index=True
    )
    cluster_ref: Mapped[int | None] = mapped_column(
        ForeignKey("clusters.id", ondelete="CASCADE"), nullable=True, index=True
    )
    code: Mapped[int] = mapped_column(Integer)
    manufacturer_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[str] = mapped_column(String(16))  # client|server
    name: Mapped[str] = mapped_column(String(200))


class Atomic(Base):
    __tablename__ = "atomics"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_ref: Mapped[int] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"), index=True
    )
    atomic_identifier: Mapped[int] = mapped_column(Integer)
    name: Mapped[str] = mapped_column(String(64))
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    atomic_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_discrete: Mapped[bool] = mapped_column(Boolean, default=False)
    is_string: Mapped[bool] = mapped_column(Boolean, default=False)
    is_long: Mapped[bool] = mapped_column(Boolean, default=False)
    is_char: Mapped[bool] = mapped_column(Boolean, default=False)
    is_signed: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (Index("ix_atomics_package_identifier", "package_ref", "atomic_identifier"),)


# -----------------------------
# Editing sessions
# -----------------------------


class UserSession(Base):
    __tablename__ = "sessions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_key: Mapped[str] = mapped_column(
        String(36), unique=True, default=lambda: str(uuid.uuid4())
    )
    dirty: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class SessionKeyValue(Base):
    __tablename__ = "session_key_values"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_ref: Mapped[int] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), index=True
    )
    key: Mapped[str] = mapped_column(String(200))
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("session_ref", "key", name="ux_session_key_values_key"),)


class SessionPackage(Base):
    __tablename__ = "session_packages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_ref: Mapped[int] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), index=True
    )
    package_ref: Mapped[int] = mapped_column(ForeignKey("packages.id", ondelete="CASCADE"))
    required: Mapped[bool] = mapped_column(Boolean, default=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        UniqueConstraint("session_ref", "package_ref", name="ux_session_packages_pair"),
    )


# -----------------------------
# Imported configuration
# -----------------------------


class EndpointType(Base):
    __tablename__ = "endpoint_types"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_ref: Mapped[int] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), index=True
    )
    package_ref: Mapped[int | None] = mapped_column(
        ForeignKey("packages.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    device_type_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    device_type_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    device_type_profile_id: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Endpoint(Base):
    __tablename__ = "endpoints"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_ref: Mapped[int] = mapped_column(
        ForeignKey("sessions.id", ondelete="CASCADE"), index=True
    )
    endpoint_type_ref: Mapped[int] = mapped_column(
        ForeignKey("endpoint_types.id", ondelete="CASCADE"), index=True
    )
    endpoint_identifier: Mapped[int | None] = mapped_column(Integer, nullable=True)
    profile_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    network_identifier: Mapped[int | None] = mapped_column(Integer, nullable=True)
    endpoint_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    device_identifier: Mapped[int | None] = mapped_column(Integer, nullable=True)


class EndpointTypeCluster(Base):
    __tablename__ = "endpoint_type_clusters"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    endpoint_type_ref: Mapped[int] = mapped_column(
        ForeignKey("endpoint_types.id", ondelete="CASCADE"), index=True
    )
    # NULL when the primary package has no matching cluster definition
    cluster_ref: Mapped[int | None] = mapped_column(
        ForeignKey("clusters.id", ondelete="SET NULL"), nullable=True
    )
    code: Mapped[int] = mapped_column(Integer)
    manufacturer_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    side: Mapped[str | None] = mapped_column(String(16), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)


class EndpointTypeAttribute(Base):
    __tablename__ = "endpoint_type_attributes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    endpoint_type_ref: Mapped[int] = mapped_column(
        ForeignKey("endpoint_types.id", ondelete="CASCADE"), index=True
    )
    endpoint_type_cluster_ref: Mapped[int] = mapped_column(
        ForeignKey("endpoint_type_clusters.id", ondelete="CASCADE"), index=True
    )
    attribute_ref: Mapped[int | None] = mapped_column(
        ForeignKey("attributes.id", ondelete="SET NULL"), nullable=True
    )
    code: Mapped[int] = mapped_column(Integer)
    manufacturer_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    included: Mapped[bool] = mapped_column(Boolean, default=True)
    storage_option: Mapped[str | None] = mapped_column(String(32), nullable=True)
    singleton: Mapped[bool] = mapped_column(Boolean, default=False)
    bounded: Mapped[bool] = mapped_column(Boolean, default=False)
    default_value: Mapped[str | None] = mapped_column(String(200), nullable=True)
    include_reportable: Mapped[bool] = mapped_column(Boolean, default=False)
    min_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reportable_change: Mapped[int | None] = mapped_column(Integer, nullable=True)


class EndpointTypeCommand(Base):
    __tablename__ = "endpoint_type_commands"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    endpoint_type_ref: Mapped[int] = mapped_column(
        ForeignKey("endpoint_types.id", ondelete="CASCADE"), index=True
    )
    endpoint_type_cluster_ref: Mapped[int] = mapped_column(
        ForeignKey("endpoint_type_clusters.id", ondelete="CASCADE"), index=True
    )
    command_ref: Mapped[int | None] = mapped_column(
        ForeignKey("commands.id", ondelete="SET NULL"), nullable=True
    )
    code: Mapped[int] = mapped_column(Integer)
    manufacturer_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[str | None] = mapped_column(String(16), nullable=True)
    incoming: Mapped[bool] = mapped_column(Boolean, default=False)
    outgoing: Mapped[bool] = mapped_column(Boolean, default=False)
