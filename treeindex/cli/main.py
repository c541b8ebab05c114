"""Treeindex CLI: inspect and edit a records file from the command line."""

from __future__ import annotations

import json
from pathlib import Path

import click

from treeindex.client import Forest
from treeindex.models import Record

DEFAULT_FILE = "records.json"


def _parse_id(value: str) -> str | int:
    """Command-line ids are strings; all-digit ones become ints."""
    if value.lstrip("-").isdigit():
        return int(value)
    return value


def _get_forest(path: str) -> Forest:
    if not Path(path).exists():
        raise click.ClickException(
            f"No records file at {path}. Run 'treeindex init' first."
        )
    return Forest.from_file(path)


def _format_record(record: Record) -> str:
    line = f"{record.id}  parent={record.parent}"
    if record.payload:
        line += f"  {json.dumps(record.payload, ensure_ascii=False)}"
    return line


def _echo_records(records: list[Record], empty: str) -> None:
    if not records:
        click.echo(empty)
        return
    for r in records:
        click.echo(f"  {_format_record(r)}")


def _echo_diagnostics(forest: Forest) -> None:
    for d in forest.diagnostics:
        click.echo(f"  WARNING: {d.message}", err=True)


@click.group()
@click.option("--file", "records_file", default=DEFAULT_FILE, help="Path to the records file.")
@click.pass_context
def cli(ctx: click.Context, records_file: str) -> None:
    """Treeindex CLI. Query and reshape a forest of records."""
    ctx.ensure_object(dict)
    ctx.obj["file"] = records_file


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create an empty records file."""
    path = ctx.obj["file"]
    if Path(path).exists():
        click.echo(f"Records file already exists at {path}")
        return
    Forest().save(path)
    click.echo(f"Initialized records file at {path}")


@cli.command()
@click.argument("id")
@click.pass_context
def show(ctx: click.Context, id: str) -> None:
    """Show a single record."""
    forest = _get_forest(ctx.obj["file"])
    record = forest.get(_parse_id(id))
    if record is None:
        raise click.ClickException(f"Record {id} not found")
    click.echo(_format_record(record))


@cli.command()
@click.argument("id")
@click.pass_context
def children(ctx: click.Context, id: str) -> None:
    """List the direct children of a record."""
    forest = _get_forest(ctx.obj["file"])
    _echo_records(forest.children(_parse_id(id)), "No children.")


@cli.command()
@click.argument("id")
@click.pass_context
def descendants(ctx: click.Context, id: str) -> None:
    """List every record below a record, depth-first."""
    forest = _get_forest(ctx.obj["file"])
    _echo_records(forest.descendants(_parse_id(id)), "No descendants.")
    _echo_diagnostics(forest)


@cli.command()
@click.argument("id")
@click.pass_context
def ancestors(ctx: click.Context, id: str) -> None:
    """List the parent chain of a record, nearest first."""
    forest = _get_forest(ctx.obj["file"])
    _echo_records(forest.ancestors(_parse_id(id)), "No ancestors.")
    _echo_diagnostics(forest)


@cli.command()
@click.argument("id")
@click.pass_context
def path(ctx: click.Context, id: str) -> None:
    """Print the materialized path of a record, root first."""
    forest = _get_forest(ctx.obj["file"])
    ids = forest.path(_parse_id(id))
    if not ids:
        raise click.ClickException(f"Record {id} not found")
    click.echo("/".join(str(i) for i in ids))


@cli.command()
@click.pass_context
def roots(ctx: click.Context) -> None:
    """List records without a resolvable parent."""
    forest = _get_forest(ctx.obj["file"])
    _echo_records(forest.roots(), "No records.")


@cli.command()
@click.pass_context
def tree(ctx: click.Context) -> None:
    """Print the whole forest as an indented tree."""
    forest = _get_forest(ctx.obj["file"])
    roots = forest.roots()
    if not roots:
        click.echo("No records.")
        return
    for root in roots:
        click.echo(_format_record(root))
        base = forest.level(root.id)
        for r in forest.descendants(root.id):
            indent = "  " * (forest.level(r.id) - base)
            click.echo(f"{indent}{_format_record(r)}")
    _echo_diagnostics(forest)


@cli.command()
@click.argument("id")
@click.option("--parent", default=None, help="Parent record id.")
@click.option("--props", default=None, help="JSON payload fields.")
@click.pass_context
def add(ctx: click.Context, id: str, parent: str | None, props: str | None) -> None:
    """Add a record."""
    forest = _get_forest(ctx.obj["file"])
    payload = json.loads(props) if props else {}
    record = {
        **payload,
        "id": _parse_id(id),
        "parent": _parse_id(parent) if parent is not None else None,
    }
    if not forest.add(record):
        raise click.ClickException(f"Record {id} already exists")
    forest.save()
    click.echo(f"Added: {_format_record(forest.get(record['id']))}")


@cli.command()
@click.argument("id")
@click.pass_context
def remove(ctx: click.Context, id: str) -> None:
    """Remove a record and all of its descendants."""
    forest = _get_forest(ctx.obj["file"])
    before = len(forest)
    if not forest.remove(_parse_id(id)):
        raise click.ClickException(f"Record {id} not found")
    forest.save()
    click.echo(f"Removed {before - len(forest)} record(s)")


@cli.command()
@click.argument("id")
@click.option("--parent", default=None, help="New parent id; omit to make it a root.")
@click.pass_context
def move(ctx: click.Context, id: str, parent: str | None) -> None:
    """Move a record (and its subtree) under a new parent."""
    forest = _get_forest(ctx.obj["file"])
    record_id = _parse_id(id)
    if not forest.move(record_id, _parse_id(parent) if parent is not None else None):
        raise click.ClickException(f"Record {id} not found")
    forest.save()
    click.echo(f"Moved: {'/'.join(str(i) for i in forest.path(record_id))}")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show forest statistics."""
    forest = _get_forest(ctx.obj["file"])
    s = forest.stats()
    click.echo(f"Records: {s.record_count}  Roots: {s.root_count}")
    click.echo(f"Dangling parents: {s.dangling_count}  Max depth: {s.max_depth}")


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate internal consistency of the forest."""
    forest = _get_forest(ctx.obj["file"])
    result = forest.validate()
    if result.valid:
        click.echo("Forest is valid.")
    else:
        click.echo("Validation errors:")
        for err in result.errors:
            click.echo(f"  ERROR: {err}")
    for warn in result.warnings:
        click.echo(f"  WARNING: {warn}")


@cli.command()
@click.option(
    "--file", "records_file", default=None, help="Records file (overrides TREEINDEX_RECORDS_PATH)."
)
def mcp(records_file: str | None) -> None:
    """Start the MCP server for AI agent integration."""
    import os

    if records_file:
        os.environ["TREEINDEX_RECORDS_PATH"] = records_file
    from treeindex.mcp.server import run_server

    run_server()


if __name__ == "__main__":
    cli()
