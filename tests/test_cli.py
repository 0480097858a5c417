import asyncio
import json

import pytest
from click.testing import CliRunner
from sqlalchemy.ext.asyncio import async_sessionmaker

from Zigport import models, repos
from Zigport.cli import cli
from Zigport.db import create_engine_for, session_scope
from Zigport.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    yield
    # The CLI points handlers at the runner's streams, which close afterwards
    setup_logging(None)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.sqlite3'}"


def _seed(db_url):
    async def _run():
        engine = create_engine_for(db_url)
        try:
            async with session_scope(async_sessionmaker(engine, expire_on_commit=False)) as s:
                pkg = await repos.insert_package(
                    s, path="/a.xml", package_type="zcl-properties", version="1.0"
                )
                s.add_all(
                    [
                        models.Atomic(package_ref=pkg.id, atomic_identifier=0x21, name="uint16", atomic_size=2),
                        models.Atomic(package_ref=pkg.id, atomic_identifier=0x20, name="uint8", atomic_size=1),
                    ]
                )
                return pkg.id
        finally:
            await engine.dispose()

    return asyncio.run(_run())


def _invoke(db_url, *args):
    runner = CliRunner()
    return runner.invoke(cli, ["--database-url", db_url, *args], catch_exceptions=False)


def test_init_import_and_list_atomics(db_url, tmp_path):
    res = _invoke(db_url, "init-db")
    assert res.exit_code == 0, res.output
    package_id = _seed(db_url)

    doc = tmp_path / "device.zap"
    doc.write_text(
        json.dumps(
            {
                "featureLevel": 12,
                "package": [{"path": "/a.xml", "type": "zcl-properties", "version": "1.0"}],
                "endpointTypes": [{"clusters": [{"code": 6}]}],
                "endpoints": [{"endpointTypeIndex": 0, "endpointId": 1}],
            }
        ),
        encoding="utf-8",
    )
    res = _invoke(db_url, "import", str(doc))
    assert res.exit_code == 0, res.output
    payload = json.loads(res.output.strip().splitlines()[-1])
    assert payload["errors"] == []
    assert payload["packageIds"] == [package_id]

    res = _invoke(db_url, "import", str(doc), "--session-id", str(payload["sessionId"]))
    assert res.exit_code == 0, res.output

    res = _invoke(db_url, "atomics", str(package_id))
    assert res.exit_code == 0, res.output
    names = [a["name"] for a in json.loads(res.output.strip().splitlines()[-1])]
    assert names == ["uint8", "uint16"]

    res = _invoke(db_url, "atomics", str(package_id), "--name", "UINT16")
    assert json.loads(res.output.strip().splitlines()[-1])["atomic_id"] == 0x21

    res = _invoke(db_url, "atomics", str(package_id), "--name", "float")
    assert res.exit_code == 1


def test_import_failure_exits_with_kind(db_url, tmp_path):
    assert _invoke(db_url, "init-db").exit_code == 0
    doc = tmp_path / "orphan.zap"
    doc.write_text(
        json.dumps({"package": [{"path": "/none.xml", "type": "zcl-properties", "version": "1"}]}),
        encoding="utf-8",
    )
    res = _invoke(db_url, "import", str(doc))
    assert res.exit_code == 1
    assert '"kind": "resolution_failure"' in res.output
