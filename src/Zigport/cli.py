"""Command line entry point.

Examples:
  zigport init-db
  zigport import project.zap --session-id 3
  zigport atomics 1 --name uint8
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from sqlalchemy.ext.asyncio import async_sessionmaker

from Zigport.atomic_cache import AtomicTypeCache
from Zigport.config import Settings, load_settings
from Zigport.db import create_engine_for, init_schema
from Zigport.errors import ImportFailure
from Zigport.importer import import_file
from Zigport.logging import redact_settings, setup_logging
from Zigport.store import SqlStore

T = TypeVar("T")


def _run_with_store(settings: Settings, fn: Callable[[SqlStore], Awaitable[T]]) -> T:
    async def _run() -> T:
        engine = create_engine_for(settings.database_url)
        try:
            store = SqlStore(async_sessionmaker(engine, expire_on_commit=False))
            return await fn(store)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


@click.group()
@click.option(
    "--database-url",
    default=None,
    help="Override the database URL from config.toml / ZIGPORT_DATABASE_URL.",
)
@click.pass_context
def cli(ctx: click.Context, database_url: str | None) -> None:
    overrides = {"database_url": database_url} if database_url else {}
    settings = load_settings(**overrides)
    setup_logging(settings)
    ctx.obj = settings


@cli.command("init-db")
@click.pass_obj
def init_db(settings: Settings) -> None:
    """Create all tables in the configured database."""

    async def _run() -> None:
        engine = create_engine_for(settings.database_url)
        try:
            await init_schema(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    click.echo(json.dumps({"initialized": redact_settings(settings)["database_url"]}))


@cli.command("import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--session-id", type=int, default=None, help="Merge into this existing session.")
@click.pass_obj
def import_cmd(settings: Settings, file: Path, session_id: int | None) -> None:
    """Import a project document into a new or existing session."""
    try:
        result = _run_with_store(
            settings,
            lambda store: import_file(
                store, file, existing_session_id=session_id, settings=settings
            ),
        )
    except ImportFailure as exc:
        click.echo(json.dumps(exc.to_dict(), default=str), err=True)
        sys.exit(1)
    click.echo(json.dumps(result.to_dict()))


@cli.command("atomics")
@click.argument("package_id", type=int)
@click.option("--name", default=None, help="Look up a single atomic type by name.")
@click.pass_obj
def atomics(settings: Settings, package_id: int, name: str | None) -> None:
    """List the atomic types of a package, or look one up by name."""

    async def _query(store: SqlStore):
        cache = AtomicTypeCache(store, enabled=settings.atomic_cache_enabled)
        if name is None:
            return await cache.get_all(package_id)
        return await cache.get_by_name(package_id, name)

    try:
        found = _run_with_store(settings, _query)
    except ImportFailure as exc:
        click.echo(json.dumps(exc.to_dict(), default=str), err=True)
        sys.exit(1)
    if name is not None and found is None:
        click.echo(f"No atomic type named {name!r} in package {package_id}", err=True)
        sys.exit(1)
    if isinstance(found, list):
        click.echo(json.dumps([dataclasses.asdict(a) for a in found]))
    else:
        click.echo(json.dumps(dataclasses.asdict(found)))


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
