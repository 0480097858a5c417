import json

import pytest

from Zigport.document import check_feature_level, parse_document, read_document
from Zigport.errors import DocumentFormatError, VersionIncompatibility


def _doc(**fields):
    base = {
        "creator": "zap",
        "writeTime": "2026-01-01T00:00:00Z",
        "package": [
            {
                "pathRelativity": "relativeToZap",
                "path": "../zcl/zcl.properties",
                "type": "zcl-properties",
                "version": "ZCL Test Data",
            }
        ],
    }
    base.update(fields)
    return json.dumps(base)


def test_missing_feature_level_defaults_to_zero():
    doc = parse_document(_doc(), "/work/device.zap", supported_feature_level=45)
    assert doc.feature_level == 0
    assert doc.packages[0].path_relativity == "relativeToZap"


def test_file_path_pair_is_appended():
    doc = parse_document(
        _doc(keyValuePairs=[{"key": "commandDiscovery", "value": "1"}]),
        "/work/device.zap",
        supported_feature_level=45,
    )
    assert [(kv.key, kv.value) for kv in doc.key_value_pairs] == [
        ("commandDiscovery", "1"),
        ("filePath", "/work/device.zap"),
    ]
    assert doc.file_path == "/work/device.zap"


def test_structured_key_values_are_kept():
    doc = parse_document(
        _doc(keyValuePairs=[{"key": "extensions", "value": {"a": [1, 2]}}]),
        None,
        supported_feature_level=45,
    )
    assert doc.key_value_pairs[0].value == {"a": [1, 2]}


def test_file_path_pair_created_when_absent():
    doc = parse_document(_doc(), None, supported_feature_level=45)
    assert [(kv.key, kv.value) for kv in doc.key_value_pairs] == [("filePath", None)]


@pytest.mark.parametrize("level", [46, 100, -1])
def test_feature_level_out_of_range(level):
    with pytest.raises(VersionIncompatibility) as ei:
        parse_document(_doc(featureLevel=level), "/x.zap", supported_feature_level=45)
    assert ei.value.context == {"declared": level, "supported": 45}
    assert f"feature level {level}" in ei.value.message


def test_feature_level_at_the_limit_is_accepted():
    assert parse_document(_doc(featureLevel=45), None, supported_feature_level=45).feature_level == 45
    check_feature_level(0, 0)


def test_version_is_checked_before_shape():
    with pytest.raises(VersionIncompatibility):
        parse_document(
            json.dumps({"featureLevel": 99, "package": "not a list"}), None, supported_feature_level=45
        )


def test_codes_accept_hex_strings():
    doc = parse_document(
        _doc(
            endpointTypes=[
                {
                    "name": "Anonymous Endpoint Type",
                    "deviceTypeCode": "0x0100",
                    "clusters": [
                        {
                            "name": "On/off",
                            "code": "0x0006",
                            "mfgCode": None,
                            "side": "server",
                            "attributes": [{"code": 0, "side": "server", "defaultValue": "0x00"}],
                        }
                    ],
                }
            ],
            endpoints=[{"endpointTypeIndex": 0, "endpointId": 1, "profileId": "0x0104"}],
        ),
        None,
        supported_feature_level=45,
    )
    et = doc.endpoint_types[0]
    assert et.device_type_code == 0x0100
    assert et.clusters[0].code == 6
    assert et.clusters[0].commands is None
    assert et.clusters[0].attributes[0].default_value == "0x00"
    assert doc.endpoints[0].profile_id == 0x0104


@pytest.mark.parametrize(
    "raw, reason",
    [
        ("{not json", "json"),
        ("[1, 2]", "shape"),
        (json.dumps({"featureLevel": "new"}), "shape"),
        (json.dumps({"package": [{"path": "/p"}]}), "shape"),
        (json.dumps({"endpointTypes": [{"clusters": [{"code": "0xZZ"}]}]}), "shape"),
    ],
)
def test_malformed_documents(raw, reason):
    with pytest.raises(DocumentFormatError) as ei:
        parse_document(raw, None, supported_feature_level=45)
    assert ei.value.context["reason"] == reason
    assert ei.value.kind == "document_format"


def test_read_document_records_absolute_path(tmp_path, monkeypatch):
    path = tmp_path / "device.zap"
    path.write_text(_doc(featureLevel=12), encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    doc = read_document("device.zap", supported_feature_level=45)
    assert doc.file_path == str(path.resolve())
    assert doc.key_value_pairs[-1].value == str(path.resolve())


def test_read_document_missing_file(tmp_path):
    with pytest.raises(DocumentFormatError) as ei:
        read_document(tmp_path / "absent.zap")
    assert ei.value.context["reason"] == "io"


def test_supported_level_comes_from_settings(monkeypatch):
    monkeypatch.setenv("ZIGPORT_FEATURE_LEVEL", "10")
    with pytest.raises(VersionIncompatibility) as ei:
        parse_document(_doc(featureLevel=11), None)
    assert ei.value.context["supported"] == 10
