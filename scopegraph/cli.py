"""Typer-based CLI for ScopeGraph change-impact analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .cli_refs import refs_app
from .config_manager import DEFAULT_CONFIGS, load_full_config, load_section, reset_section, set_value
from .graph_export import export_dot, generate_er_diagram, generate_flowchart_diagram
from .knowledge import ProjectKnowledge
from .models import ChangeInput, ImpactReport
from .orchestrator import ImpactOrchestrator
from .scope_detector import ScopeDetectorConfig
from .storage import ProjectManager
from .validation import ValidationGenerator, ValidationGeneratorConfig

console = Console()

app = typer.Typer(
    help="🎯 ScopeGraph: change-impact scope and data-flow analysis.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
project_app = typer.Typer(help="📁 Project memory management")
config_app = typer.Typer(help="⚙️  View and edit configuration")

app.add_typer(refs_app, name="refs")
app.add_typer(project_app, name="project")
app.add_typer(config_app, name="config")

DIAGRAM_CHOICES = ("none", "flowchart", "er", "dot")

_LEVEL_STYLES = {"direct": "red", "indirect": "yellow", "cascade": "green"}
_SEVERITY_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "green"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"ScopeGraph v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """ScopeGraph: find what a change touches before you make it."""
    _configure_logging(verbose)


# ===================================================================
# analyze
# ===================================================================

@app.command("analyze")
def analyze(
    description: str = typer.Argument(..., help="Natural-language description of the change."),
    knowledge: Optional[Path] = typer.Option(
        None, "--knowledge", "-k", exists=True, dir_okay=False,
        help="Project knowledge JSON (modules, links, specs, imports, flows).",
    ),
    modules: List[str] = typer.Option([], "--module", "-m", help="Explicit target module id (repeatable)."),
    files: List[str] = typer.Option([], "--file", "-f", help="Explicit target file (repeatable)."),
    spec_id: Optional[str] = typer.Option(None, "--spec", help="Spec the change implements."),
    change_type: Optional[str] = typer.Option(None, "--type", "-t", help="feature, bugfix, refactor, migration or deletion."),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", "-d", min=0, help="Traversal depth bound."),
    no_indirect: bool = typer.Option(False, "--no-indirect", help="Only report depth-1 (direct) dependents."),
    no_imports: bool = typer.Option(False, "--no-imports", help="Skip file import expansion."),
    no_flows: bool = typer.Option(False, "--no-flows", help="Skip data-flow entity expansion."),
    diagram: str = typer.Option("none", "--diagram", help="none, flowchart, er or dot."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the diagram to this file."),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON."),
):
    """Detect the scope of a change and classify the data flows it affects."""
    if diagram not in DIAGRAM_CHOICES:
        raise typer.BadParameter(f"Diagram must be one of: {', '.join(DIAGRAM_CHOICES)}.")
    if diagram == "dot" and output is None:
        raise typer.BadParameter("--diagram dot requires --output.")

    try:
        change = ChangeInput(
            description=description,
            target_modules=modules,
            target_files=files,
            spec_id=spec_id,
            change_type=change_type,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    detector_config = ScopeDetectorConfig.from_config(
        max_depth=max_depth,
        include_indirect=False if no_indirect else None,
        expand_imports=False if no_imports else None,
        expand_data_flows=False if no_flows else None,
    )
    project_knowledge = None
    if knowledge is not None:
        try:
            project_knowledge = ProjectKnowledge.load(knowledge)
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid knowledge file {knowledge}: {exc}") from exc

    orchestrator = ImpactOrchestrator(
        project_knowledge,
        config=detector_config,
        validation_generator=ValidationGenerator(ValidationGeneratorConfig.from_config()),
    )
    report = orchestrator.analyze(change)

    if as_json:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _render_report(report)

    if diagram == "none":
        return
    if diagram == "dot":
        export_dot(report.graph, output)
        typer.echo(f"DOT graph written to {output}")
        return

    rendered = (
        generate_flowchart_diagram(report.graph)
        if diagram == "flowchart"
        else generate_er_diagram(report.graph)
    )
    if output is not None:
        output.write_text(rendered.code + "\n", encoding="utf-8")
        typer.echo(f"Mermaid {rendered.type} written to {output}")
    else:
        typer.echo(rendered.code)


def _render_report(report: ImpactReport) -> None:
    parsed, scope = report.parsed, report.scope
    console.print(
        f"[bold]Change type:[/bold] {parsed.change_type}  "
        f"[bold]Confidence:[/bold] {parsed.confidence:.2f}  "
        f"[bold]Depth:[/bold] {scope.expansion_depth}"
    )
    console.print(f"[bold]Primary modules:[/bold] {', '.join(scope.primary_modules) or '-'}")
    console.print(f"[bold]Primary files:[/bold] {', '.join(scope.primary_files) or '-'}")
    console.print(f"[bold]Entities:[/bold] {', '.join(scope.affected_entities) or '-'}")

    if scope.dependent_modules:
        table = Table(title="Dependent modules", show_header=True, header_style="bold cyan")
        table.add_column("Module")
        table.add_column("Level")
        table.add_column("Path", style="dim")
        table.add_column("Reason")
        for dep in scope.dependent_modules:
            style = _LEVEL_STYLES[dep.impact_level]
            table.add_row(
                dep.module_name,
                f"[{style}]{dep.impact_level}[/{style}]",
                " > ".join(dep.dependency_path),
                dep.reason,
            )
        console.print(table)

    if scope.affected_files:
        table = Table(title="Affected files", show_header=True, header_style="bold cyan")
        table.add_column("File")
        table.add_column("Level")
        table.add_column("Module", style="dim")
        table.add_column("Reason")
        for scoped in scope.affected_files:
            style = _LEVEL_STYLES[scoped.impact_level]
            table.add_row(
                scoped.file_path,
                f"[{style}]{scoped.impact_level}[/{style}]",
                scoped.module_id or "",
                scoped.reason,
            )
        console.print(table)

    if report.flows:
        table = Table(title="Data flows", show_header=True, header_style="bold cyan")
        table.add_column("Flow")
        table.add_column("Entities")
        table.add_column("Type")
        table.add_column("Strength")
        table.add_column("Level")
        table.add_column("Validate")
        for flow in report.flows:
            style = _LEVEL_STYLES[flow.impact_level]
            table.add_row(
                f"{flow.source} → {flow.target}",
                ", ".join(flow.entities),
                flow.flow_type,
                flow.strength,
                f"[{style}]{flow.impact_level}[/{style}]",
                "✓" if flow.validation_required else "",
            )
        console.print(table)

        tests = [test for flow in report.flows for test in flow.suggested_tests]
        if tests:
            console.print("[bold]Suggested tests:[/bold]")
            for test in dict.fromkeys(tests):
                console.print(f"  • {test}")

    if report.risks:
        table = Table(title="Risks", show_header=True, header_style="bold cyan")
        table.add_column("Rule")
        table.add_column("Risk")
        table.add_column("Severity")
        table.add_column("Blocking")
        table.add_column("Mitigation")
        for risk in report.risks:
            style = _SEVERITY_STYLES[risk.severity]
            table.add_row(
                risk.rule_id,
                risk.name,
                f"[{style}]{risk.severity}[/{style}]",
                "✓" if risk.is_blocking else "",
                risk.mitigation,
            )
        console.print(table)

    if report.validations:
        console.print("[bold]Validation checklist:[/bold]")
        for item in report.validations:
            marker = "[red]■[/red]" if item.is_blocking else "□"
            command = f"  [dim]$ {item.verify_command}[/dim]" if item.verify_command else ""
            console.print(f"  {marker} {escape(f'[{item.category}] {item.title}')}{command}")

    stats = report.statistics
    console.print(
        f"[bold]Flows:[/bold] {stats.get('total', 0)}  "
        f"[bold]Need validation:[/bold] {stats.get('requires_validation', 0)}  "
        f"[bold]Criticality:[/bold] {report.graph.metadata.criticality_score:.2f}  "
        f"[bold]Blocking risks:[/bold] {len(report.blocking_risks)}"
    )


# ===================================================================
# project
# ===================================================================

@project_app.command("create")
def create_project(project_name: str = typer.Argument(..., help="Name of the project memory.")):
    """Create a project memory and make it active."""
    pm = ProjectManager()
    pm.create_or_get_project(project_name)
    pm.set_current_project(project_name)
    typer.echo(f"Created and loaded project '{project_name}'.")


@project_app.command("list")
def list_projects():
    """List all persisted project memories."""
    pm = ProjectManager()
    projects = pm.list_projects()
    current = pm.get_current_project()

    if not projects:
        typer.echo("No projects yet.")
        raise typer.Exit(code=0)

    for p in projects:
        marker = "*" if p == current else " "
        typer.echo(f"{marker} {p}")


@project_app.command("load")
def load_project(project_name: str = typer.Argument(..., help="Name of project memory to load.")):
    """Switch active project memory."""
    pm = ProjectManager()
    if project_name not in pm.list_projects():
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    pm.set_current_project(project_name)
    typer.echo(f"Loaded project '{project_name}'.")


@project_app.command("unload")
def unload_project():
    """Unload active project memory without deleting anything."""
    pm = ProjectManager()
    pm.unload_project()
    typer.echo("Unloaded active project.")


@project_app.command("delete")
def delete_project(project_name: str = typer.Argument(..., help="Project memory to delete.")):
    """Delete a project memory and its reference graph."""
    pm = ProjectManager()
    deleted = pm.delete_project(project_name)
    if not deleted:
        raise typer.BadParameter(f"Project '{project_name}' not found.")
    if pm.get_current_project() == project_name:
        pm.unload_project()
    typer.echo(f"Deleted project '{project_name}'.")


# ===================================================================
# config
# ===================================================================

@config_app.command("show")
def show_config(
    section: Optional[str] = typer.Argument(None, help="Only show this section (scope or references)."),
):
    """Show effective configuration (file values merged over defaults)."""
    sections = [section] if section else list(DEFAULT_CONFIGS)
    unknown = [s for s in sections if s not in DEFAULT_CONFIGS]
    if unknown:
        raise typer.BadParameter(f"Unknown section '{unknown[0]}'. Choose from: {', '.join(DEFAULT_CONFIGS)}.")

    stored = load_full_config()
    table = Table(title="Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Key")
    table.add_column("Value")
    table.add_column("Source", style="dim")
    for name in sections:
        for key, value in load_section(name).items():
            source = "file" if key in stored.get(name, {}) else "default"
            table.add_row(f"{name}.{key}", str(value), source)
    console.print(table)


@config_app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Setting as SECTION.KEY (e.g. scope.max_depth)."),
    value: str = typer.Argument(..., help="New value."),
):
    """Persist one setting to config.toml."""
    section, sep, name = key.partition(".")
    if not sep or not name:
        raise typer.BadParameter("Key must look like SECTION.KEY.")
    try:
        saved = set_value(section, name, value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if not saved:
        typer.echo("Failed to write config file.")
        raise typer.Exit(code=1)
    typer.echo(f"Set {section}.{name} = {value}")


@config_app.command("reset")
def reset_config(section: str = typer.Argument(..., help="Section to reset to defaults.")):
    """Remove a section from config.toml."""
    if section not in DEFAULT_CONFIGS:
        raise typer.BadParameter(f"Unknown section '{section}'. Choose from: {', '.join(DEFAULT_CONFIGS)}.")
    if not reset_section(section):
        typer.echo("Failed to write config file.")
        raise typer.Exit(code=1)
    typer.echo(f"Reset [{section}] to defaults.")


if __name__ == "__main__":
    app()
