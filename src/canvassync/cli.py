"""canvassync CLI — inspect, normalize and serve canvas documents.

Commands:
    canvassync init              write canvassync.toml
    canvassync new NAME          create an empty NAME.canvas
    canvassync fmt PATH          normalize a canvas file in place
    canvassync check PATH        report dangling edges and duplicate ids
    canvassync show PATH         table of nodes and edges
    canvassync serve             run a session over stdin/stdout (JSON lines)
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any

import click

from canvassync.config import CanvasConfig, init_config, load_config
from canvassync.converter import dump_document, normalize, to_internal
from canvassync.document import create_canvas, read_canvas, write_canvas
from canvassync.errors import ParseError, ReferentialInconsistency
from canvassync.store import DocumentStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> CanvasConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _read(path: str) -> dict[str, Any]:
    try:
        return read_canvas(path)
    except ParseError as exc:
        raise click.ClickException(f"{path}: {exc}") from exc
    except OSError as exc:
        raise click.ClickException(f"{path}: {exc.strerror or exc}") from exc


def _defaults(cfg: CanvasConfig) -> dict[str, float]:
    return {"default_width": cfg.canvas.default_width, "default_height": cfg.canvas.default_height}


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="canvassync")
def cli() -> None:
    """canvassync — canvas document synchronization."""


@cli.command()
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(root: str) -> None:
    """Create canvassync.toml in the current project."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("canvassync.toml already exists — skipping init")


@cli.command()
@click.argument("name")
def new(name: str) -> None:
    """Create an empty canvas file."""
    cfg = _load_cfg()
    try:
        path = create_canvas(Path(name), indent=cfg.sync.indent)
    except (ValueError, FileExistsError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created {path}")


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--check", "check_only", is_flag=True, help="Exit 1 if the file is not normalized")
def fmt(path: str, check_only: bool) -> None:
    """Normalize a canvas (fill default sizes and edge sides)."""
    cfg = _load_cfg()
    persisted = _read(path)
    original = Path(path).read_text(encoding="utf-8")
    normalized = normalize(persisted, **_defaults(cfg))
    if dump_document(normalized, cfg.sync.indent) == original:
        click.echo(f"{path}: already normalized")
        return
    if check_only:
        click.echo(f"{path}: would be reformatted")
        raise SystemExit(1)
    write_canvas(path, normalized, cfg.sync.indent)
    click.echo(f"{path}: normalized ({len(normalized['nodes'])} nodes, {len(normalized['edges'])} edges)")


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
def check(path: str) -> None:
    """Report edges pointing at missing nodes and duplicate ids."""
    persisted = _read(path)
    store = DocumentStore()
    store.replace(*to_internal(persisted))

    problems = 0
    for kind, items in (("node", store.nodes), ("edge", store.edges)):
        for item_id, count in Counter(i.id for i in items).items():
            if count > 1:
                click.echo(f"duplicate {kind} id: {item_id} (x{count})")
                problems += 1
    try:
        store.ensure_consistent()
    except ReferentialInconsistency as exc:
        for edge in store.dangling_edges():
            click.echo(f"dangling edge: {edge.id} ({edge.source} -> {edge.target})")
        problems += len(exc.edge_ids)

    if problems:
        click.echo(f"{path}: {problems} problem(s)", err=True)
        raise SystemExit(1)
    click.echo(f"{path}: ok ({len(store.nodes)} nodes, {len(store.edges)} edges)")


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
def show(path: str) -> None:
    """Print the nodes and edges of a canvas."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    nodes, edges = to_internal(_read(path))
    console = Console()

    table = Table(title=f"{Path(path).name} — nodes", show_header=True, header_style="bold")
    table.add_column("Id", style="dim", no_wrap=True)
    table.add_column("Type")
    table.add_column("Position", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Label")
    for n in nodes:
        w, h = n.data.get("width"), n.data.get("height")
        size = f"{w:g}×{h:g}" if w is not None and h is not None else "[dim]default[/dim]"
        label = n.label.splitlines()[0] if n.label else ""
        table.add_row(n.id, n.type, f"{n.position.x:g},{n.position.y:g}", size, escape(label[:60]))
    console.print(table)

    if edges:
        etable = Table(title="edges", show_header=True, header_style="bold")
        etable.add_column("Id", style="dim", no_wrap=True)
        etable.add_column("From")
        etable.add_column("To")
        etable.add_column("Label")
        for e in edges:
            etable.add_row(
                e.id,
                f"{e.source}:{e.data.get('fromSide') or 'right'}",
                f"{e.target}:{e.data.get('toSide') or 'left'}",
                escape(e.data.get("label") or ""),
            )
        console.print(etable)


@cli.command()
def serve() -> None:
    """Run a canvas session over stdin/stdout (one JSON message per line)."""
    from canvassync.session import run_server

    cfg = _load_cfg()
    logging.basicConfig(
        level=getattr(logging, cfg.log.level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    run_server(cfg.root)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
