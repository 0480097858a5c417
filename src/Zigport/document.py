"""Project document schema and loader.

A project document is the JSON file the editor saves: declared packages,
endpoint types with their cluster configuration, endpoints, and free-form
session key-value pairs. This module validates that shape with pydantic,
applies the feature-level compatibility check and normalizes the result for
the import orchestrator.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import structlog
from pydantic import BaseModel, BeforeValidator, Field, ValidationError

from Zigport.config import load_settings
from Zigport.errors import DocumentFormatError, VersionIncompatibility
from Zigport.models import SessionKey

log = structlog.get_logger()

MIN_FEATURE_LEVEL = 0


def _parse_code(v: Any) -> Any:
    """Accept ZCL codes as integers or as decimal/hex strings ("0x0006")."""
    if isinstance(v, str):
        text = v.strip()
        try:
            if text.lower().startswith("0x"):
                return int(text, 16)
            return int(text, 10)
        except ValueError as exc:
            raise ValueError(f"invalid code: {v!r}") from exc
    return v


ZclCode = Annotated[int, BeforeValidator(_parse_code)]


class PackageRef(BaseModel):
    path: str
    path_relativity: str | None = Field(default=None, alias="pathRelativity")
    type: str
    version: str | None = None

    model_config = dict(populate_by_name=True, extra="allow")


class KeyValuePair(BaseModel):
    key: str
    value: Any = None


class CommandEntry(BaseModel):
    name: str | None = None
    code: ZclCode
    mfg_code: ZclCode | None = Field(default=None, alias="mfgCode")
    source: str | None = None
    incoming: bool = False
    outgoing: bool = False

    model_config = dict(populate_by_name=True, extra="allow")


class AttributeEntry(BaseModel):
    name: str | None = None
    code: ZclCode
    mfg_code: ZclCode | None = Field(default=None, alias="mfgCode")
    side: str | None = None
    type: str | None = None
    included: bool = True
    storage_option: str | None = Field(default=None, alias="storageOption")
    singleton: bool = False
    bounded: bool = False
    default_value: str | int | float | None = Field(default=None, alias="defaultValue")
    reportable: bool = False
    min_interval: int | None = Field(default=None, alias="minInterval")
    max_interval: int | None = Field(default=None, alias="maxInterval")
    reportable_change: int | None = Field(default=None, alias="reportableChange")

    model_config = dict(populate_by_name=True, extra="allow")


class ClusterEntry(BaseModel):
    name: str | None = None
    code: ZclCode
    mfg_code: ZclCode | None = Field(default=None, alias="mfgCode")
    side: str | None = None
    enabled: bool = True
    # None means the key was absent; importers treat it as an empty list
    commands: list[CommandEntry] | None = None
    attributes: list[AttributeEntry] | None = None

    model_config = dict(populate_by_name=True, extra="allow")


class EndpointTypeRecord(BaseModel):
    name: str | None = None
    device_type_name: str | None = Field(default=None, alias="deviceTypeName")
    device_type_code: ZclCode | None = Field(default=None, alias="deviceTypeCode")
    device_type_profile_id: ZclCode | None = Field(default=None, alias="deviceTypeProfileId")
    clusters: list[ClusterEntry] = Field(default_factory=list)

    model_config = dict(populate_by_name=True, extra="allow")


class EndpointRecord(BaseModel):
    endpoint_type_index: int = Field(alias="endpointTypeIndex")
    endpoint_type_name: str | None = Field(default=None, alias="endpointTypeName")
    endpoint_id: int | None = Field(default=None, alias="endpointId")
    profile_id: ZclCode | None = Field(default=None, alias="profileId")
    network_id: int | None = Field(default=None, alias="networkId")
    endpoint_version: int | None = Field(default=None, alias="endpointVersion")
    device_identifier: ZclCode | None = Field(default=None, alias="deviceIdentifier")

    model_config = dict(populate_by_name=True, extra="allow")


class ProjectDocument(BaseModel):
    """Top-level document shape. Unknown top-level keys (authoring metadata) are ignored."""

    feature_level: int = Field(default=MIN_FEATURE_LEVEL, alias="featureLevel")
    packages: list[PackageRef] = Field(default_factory=list, alias="package")
    key_value_pairs: list[KeyValuePair] | None = Field(default=None, alias="keyValuePairs")
    endpoint_types: list[EndpointTypeRecord] | None = Field(default=None, alias="endpointTypes")
    endpoints: list[EndpointRecord] | None = None

    model_config = dict(populate_by_name=True, extra="ignore")


class NormalizedDocument(ProjectDocument):
    """A validated document tied to the file it was read from.

    ``key_value_pairs`` always exists and ends with the ``filePath`` provenance pair.
    """

    file_path: str | None = None
    key_value_pairs: list[KeyValuePair] = Field(default_factory=list, alias="keyValuePairs")


def check_feature_level(declared: int, supported: int) -> None:
    """Raise VersionIncompatibility unless MIN_FEATURE_LEVEL <= declared <= supported."""
    if declared < MIN_FEATURE_LEVEL or declared > supported:
        raise VersionIncompatibility(
            f"File requires feature level {declared}, we only support "
            f"{MIN_FEATURE_LEVEL}..{supported}. Please upgrade.",
            declared=declared,
            supported=supported,
        )


def parse_document(
    raw_text: str,
    file_path: str | None = None,
    *,
    supported_feature_level: int | None = None,
) -> NormalizedDocument:
    """Parse and normalize a raw project document.

    Args:
        raw_text: JSON text of the document.
        file_path: Where the document was read from; recorded as the ``filePath``
            session key and used to resolve ``relativeToZap`` package paths.
        supported_feature_level: Override for ``settings.feature_level``.

    Raises:
        DocumentFormatError: Not JSON, or not the recognized top-level shape.
        VersionIncompatibility: Declared feature level unsupported.
    """
    try:
        raw = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise DocumentFormatError(f"Document is not valid JSON: {exc}", reason="json") from exc
    if not isinstance(raw, dict):
        raise DocumentFormatError(
            "Document must be a JSON object at the top level", reason="shape"
        )

    # Feature level is checked before the full schema so that documents from a
    # newer format report the version problem rather than a shape error.
    declared = raw.get("featureLevel", MIN_FEATURE_LEVEL)
    if declared is None:
        declared = MIN_FEATURE_LEVEL
    if not isinstance(declared, int) or isinstance(declared, bool):
        raise DocumentFormatError(
            f"featureLevel must be an integer, got {declared!r}", reason="shape"
        )
    if supported_feature_level is None:
        supported_feature_level = load_settings().feature_level
    check_feature_level(declared, supported_feature_level)
    raw = {**raw, "featureLevel": declared}

    try:
        doc = ProjectDocument.model_validate(raw)
    except ValidationError as exc:
        raise DocumentFormatError(
            f"Document does not match the project schema: {exc.error_count()} error(s)\n{exc}",
            reason="shape",
        ) from exc

    key_value_pairs = list(doc.key_value_pairs or [])
    key_value_pairs.append(KeyValuePair(key=SessionKey.file_path.value, value=file_path))

    log.info(
        "document.parsed",
        file_path=file_path,
        feature_level=doc.feature_level,
        packages=len(doc.packages),
        endpoint_types=len(doc.endpoint_types or []),
        endpoints=len(doc.endpoints or []),
    )
    return NormalizedDocument(
        feature_level=doc.feature_level,
        packages=doc.packages,
        key_value_pairs=key_value_pairs,
        endpoint_types=doc.endpoint_types,
        endpoints=doc.endpoints,
        file_path=file_path,
    )


def read_document(path: Path | str, *, supported_feature_level: int | None = None) -> NormalizedDocument:
    """Read a project document from disk and parse it."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DocumentFormatError(f"Failed to read document {path}: {exc}", reason="io") from exc
    return parse_document(
        text, str(path.resolve()), supported_feature_level=supported_feature_level
    )
