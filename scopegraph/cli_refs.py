"""Entity reference commands: link, unlink, list, related, mentions."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from .config_manager import load_reference_config
from .mentions import link_mentions
from .models import DIRECTIONS, ENTITY_TYPES, EntityReference, ReferenceInput
from .storage import ProjectManager, ReferenceStore

console = Console()

refs_app = typer.Typer(help="🔗 Entity reference graph (tasks, sessions, tickets, knowledge...)")


def _open_current_store(pm: ProjectManager) -> ReferenceStore:
    project = pm.get_current_project()
    if not project:
        raise typer.BadParameter("No project loaded. Use 'sg project create <name>' or 'sg project load <name>'.")
    project_dir = pm.project_dir(project)
    if not project_dir.exists():
        raise typer.BadParameter(f"Loaded project '{project}' does not exist in memory.")
    settings = load_reference_config()
    return ReferenceStore(
        project_dir,
        timeout=float(settings["timeout"]),
        created_by=str(settings["created_by"]),
    )


def _parse_entity(value: str) -> Tuple[str, str]:
    """Split ``type:id`` into its parts."""
    entity_type, sep, entity_id = value.partition(":")
    if not sep or not entity_id:
        raise typer.BadParameter(f"Expected TYPE:ID, got '{value}'.")
    if entity_type not in ENTITY_TYPES:
        raise typer.BadParameter(
            f"Unknown entity type '{entity_type}'. Choose from: {', '.join(ENTITY_TYPES)}."
        )
    return entity_type, entity_id


def _parse_metadata(pairs: List[str]) -> Optional[dict]:
    metadata = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Metadata must be KEY=VALUE, got '{pair}'.")
        metadata[key] = value
    return metadata or None


def _render_references(refs: List[EntityReference], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Source")
    table.add_column("Relationship", style="yellow")
    table.add_column("Target")
    table.add_column("By", style="dim")
    for ref in refs:
        table.add_row(
            ref.id,
            f"{ref.source_type}:{ref.source_id}",
            ref.relationship,
            f"{ref.target_type}:{ref.target_id}",
            ref.created_by or "",
        )
    console.print(table)


@refs_app.command("link")
def link(
    source: str = typer.Argument(..., help="Source entity as TYPE:ID (e.g. task:T-12)."),
    target: str = typer.Argument(..., help="Target entity as TYPE:ID."),
    relationship: str = typer.Option("related_to", "--rel", "-r", help="Relationship type."),
    meta: List[str] = typer.Option([], "--meta", "-m", help="Metadata KEY=VALUE (repeatable)."),
    created_by: Optional[str] = typer.Option(None, "--by", help="Creator recorded on the reference."),
):
    """Create a reference between two entities (no-op if it already exists)."""
    source_type, source_id = _parse_entity(source)
    target_type, target_id = _parse_entity(target)
    try:
        item = ReferenceInput(
            source_type=source_type,
            source_id=source_id,
            target_type=target_type,
            target_id=target_id,
            relationship=relationship,
            metadata=_parse_metadata(meta),
            created_by=created_by,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    pm = ProjectManager()
    with _open_current_store(pm) as store:
        ref = store.create_reference(
            item.source_type, item.source_id, item.target_type, item.target_id,
            item.relationship, metadata=item.metadata, created_by=item.created_by,
        )
    typer.echo(f"{ref.id}  {ref}")


@refs_app.command("unlink")
def unlink(
    source: Optional[str] = typer.Argument(None, help="Source entity as TYPE:ID."),
    target: Optional[str] = typer.Argument(None, help="Target entity as TYPE:ID."),
    relationship: str = typer.Option("related_to", "--rel", "-r", help="Relationship type."),
    reference_id: Optional[str] = typer.Option(None, "--id", help="Delete by reference id instead."),
):
    """Delete a reference by id or by exact link."""
    pm = ProjectManager()
    if reference_id:
        with _open_current_store(pm) as store:
            removed = store.delete_reference(reference_id)
        label = reference_id
    else:
        if not source or not target:
            raise typer.BadParameter("Give SOURCE and TARGET, or --id.")
        source_type, source_id = _parse_entity(source)
        target_type, target_id = _parse_entity(target)
        with _open_current_store(pm) as store:
            removed = store.delete_reference_by_link(
                source_type, source_id, target_type, target_id, relationship,
            )
        label = f"{source} -{relationship}-> {target}"

    if not removed:
        typer.echo(f"No reference found for {label}.")
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {label}.")


@refs_app.command("list")
def list_refs(
    entity: Optional[str] = typer.Argument(None, help="Anchor entity as TYPE:ID (omit to list all)."),
    direction: str = typer.Option("both", "--direction", "-d", help="forward, reverse or both."),
    relationship: List[str] = typer.Option([], "--rel", "-r", help="Filter by relationship (repeatable)."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum rows (capped at 500)."),
    offset: int = typer.Option(0, "--offset", help="Rows to skip."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
):
    """List references, newest first."""
    if direction not in DIRECTIONS:
        raise typer.BadParameter(f"Direction must be one of: {', '.join(DIRECTIONS)}.")
    entity_type, entity_id = _parse_entity(entity) if entity else (None, None)
    if limit is None:
        limit = int(load_reference_config()["default_limit"])

    pm = ProjectManager()
    with _open_current_store(pm) as store:
        refs = store.query(
            entity_type=entity_type,
            entity_id=entity_id,
            direction=direction,
            relationship=relationship or None,
            limit=limit,
            offset=offset,
        )
        total = store.count(
            entity_type=entity_type,
            entity_id=entity_id,
            direction=direction,
            relationship=relationship or None,
        )

    if as_json:
        typer.echo(json.dumps([ref.to_dict() for ref in refs], indent=2))
        return
    if not refs:
        typer.echo("No references found.")
        return
    _render_references(refs, f"References ({len(refs)} of {total})")


@refs_app.command("related")
def related(
    entity: str = typer.Argument(..., help="Entity as TYPE:ID."),
    depth: int = typer.Option(1, "--depth", "-d", min=1, help="Maximum hops to traverse."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
):
    """Show every reference reachable from an entity within DEPTH hops."""
    entity_type, entity_id = _parse_entity(entity)
    pm = ProjectManager()
    with _open_current_store(pm) as store:
        refs = store.get_related_entities(entity_type, entity_id, max_depth=depth)

    if as_json:
        typer.echo(json.dumps([ref.to_dict() for ref in refs], indent=2))
        return
    if not refs:
        typer.echo(f"Nothing related to {entity}.")
        return
    _render_references(refs, f"Related to {entity} (depth {depth})")


@refs_app.command("mentions")
def mentions(
    entity: str = typer.Argument(..., help="Entity whose text contains [[type:id]] mentions."),
    text: Optional[str] = typer.Argument(None, help="Text to scan."),
    file: Optional[Path] = typer.Option(None, "--file", "-f", exists=True, dir_okay=False, help="Read text from a file."),
    created_by: Optional[str] = typer.Option(None, "--by", help="Creator recorded on new references."),
):
    """Link an entity to everything its text mentions as [[type:id]]."""
    source_type, source_id = _parse_entity(entity)
    if file is not None:
        text = file.read_text(encoding="utf-8")
    if not text:
        raise typer.BadParameter("Provide TEXT or --file.")

    pm = ProjectManager()
    with _open_current_store(pm) as store:
        created = link_mentions(store, source_type, source_id, text, created_by=created_by)

    typer.echo(f"Linked {len(created)} new mention(s) from {entity}.")
    for ref in created:
        typer.echo(f"  {ref}")
