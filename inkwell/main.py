"""
Inkwell CLI Application.

A headless driver for the Inkwell workshop. A project is a directory
holding ``manuscript.json``.

Commands:
    init       - Initialize a new project
    status     - Display the manuscript dashboard
    chapter    - Add a chapter (with its opening beat)
    beat       - Add a beat to a chapter
    draft      - Write a beat's draft from text or a file
    character  - Add a character
    location   - Add a location
    lore       - Add a lore entry
    delete     - Banish a chapter, character, location or lore entry
    settings   - Edit the world settings
    import     - Extract structure from a plain-text manuscript
    scan       - Run a deep consistency scan
    visualize  - Generate a portrait or scene image
    chat       - Ask Inkwell a question
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from inkwell.core.analysis import EntityKind
from inkwell.core.state import Manuscript
from inkwell.logging_config import setup_logging
from inkwell.services.workshop import Workshop

console = Console()

app = typer.Typer(
    name="inkwell",
    help="AI co-writer for drafting chapters, beats and worlds",
    add_completion=False,
)

MANUSCRIPT_FILENAME = "manuscript.json"

ProjectDir = typer.Option(
    None,
    "--project",
    "-p",
    help="Project directory (defaults to current directory)",
)


def get_manuscript_path(project_dir: Path | None = None) -> Path:
    return (project_dir or Path.cwd()) / MANUSCRIPT_FILENAME


def open_workshop(project_dir: Path | None) -> tuple[Workshop, Path]:
    """Load the project's manuscript into a workshop, or exit if none exists."""
    path = get_manuscript_path(project_dir)
    if not path.exists():
        console.print("[red]No Inkwell project found. Run 'init' first.[/]")
        raise typer.Exit(1)
    return Workshop(Manuscript.load(path)), path


def resolve_chapter(workshop: Workshop, number: int):
    chapters = workshop.manuscript.chapters
    if not 1 <= number <= len(chapters):
        console.print(f"[red]No chapter {number}. There are {len(chapters)}.[/]")
        raise typer.Exit(1)
    return chapters[number - 1]


def create_dashboard(manuscript: Manuscript) -> Panel:
    """Create a rich dashboard panel showing manuscript stats."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Label", style="dim")
    table.add_column("Value", style="bold cyan")

    beats = sum(len(c.beats) for c in manuscript.chapters)
    done = sum(1 for c in manuscript.chapters for b in c.beats if b.completed)

    table.add_row("📝 Words", f"{manuscript.word_count():,}")
    table.add_row("📖 Chapters", str(len(manuscript.chapters)))
    table.add_row("🎯 Beats", f"{done}/{beats} complete")
    table.add_row("👥 Characters", str(len(manuscript.characters)))
    table.add_row("🗺 Locations", str(len(manuscript.locations)))
    table.add_row("📜 Lore", f"{len(manuscript.lore)} entries")
    table.add_row("🎭 Genre", manuscript.settings.genre)
    table.add_row("🎨 Tone", f"{manuscript.settings.tone} / {manuscript.settings.prose_style}")
    table.add_row("🔍 Criticism", f"{manuscript.settings.criticism_level}%")

    return Panel(
        table,
        title="[bold magenta]🖋 Inkwell Dashboard[/]",
        border_style="magenta",
    )


def show_outline(manuscript: Manuscript) -> None:
    """Display chapters and their beats."""
    if not manuscript.chapters:
        console.print("[dim]No chapters yet. Use 'chapter' to add one.[/]")
        return

    table = Table(title="Story Architecture", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=6)
    table.add_column("Beat", style="bold")
    table.add_column("Goal", max_width=40)
    table.add_column("Words", justify="right")

    for ci, chapter in enumerate(manuscript.chapters, 1):
        table.add_row(f"{ci}", f"[magenta]{chapter.title}[/]", f"[dim]{chapter.id}[/]", "")
        for bi, beat in enumerate(chapter.beats, 1):
            mark = "✓ " if beat.completed else ""
            table.add_row(
                f"{ci}.{bi}",
                f"{mark}{beat.title}",
                beat.description,
                str(len((beat.draft or "").split())),
            )

    console.print(table)


def show_roster(manuscript: Manuscript) -> None:
    """Display characters and locations."""
    if manuscript.characters:
        table = Table(title="The Cast", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="bold")
        table.add_column("Role")
        table.add_column("Description", max_width=40)
        for char in manuscript.characters:
            table.add_row(
                char.id,
                char.name,
                char.role,
                char.description[:40] + "..." if len(char.description) > 40 else char.description,
            )
        console.print(table)

    if manuscript.locations:
        table = Table(title="The Map", show_header=True, header_style="bold cyan")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="bold")
        table.add_column("Atmosphere")
        table.add_column("Description", max_width=40)
        for loc in manuscript.locations:
            table.add_row(
                loc.id,
                loc.name,
                loc.atmosphere,
                loc.description[:40] + "..." if len(loc.description) > 40 else loc.description,
            )
        console.print(table)


def offer_suggestion(workshop: Workshop) -> None:
    """Ask whether to inscribe a pending incidental suggestion."""
    suggestion = workshop.suggestion
    if suggestion is None:
        return
    console.print(Panel(
        suggestion.description or "[dim]No description[/]",
        title=f"[bold]New {suggestion.kind.value}? {suggestion.name}[/]",
        border_style="cyan",
    ))
    if Confirm.ask("Inscribe?", default=False):
        entity = workshop.accept_suggestion()
        console.print(f"[green]✓[/] Inscribed {entity.name}")
    else:
        workshop.reject_suggestion()


@app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
) -> None:
    setup_logging(log_level)


@app.command()
def init(project_dir: Optional[Path] = typer.Argument(
    None,
    help="Directory to initialize (defaults to current directory)",
)) -> None:
    """Initialize a new Inkwell project."""
    path = get_manuscript_path(project_dir)

    if path.exists():
        console.print("[yellow]⚠ Project already initialized.[/]")
        if not Confirm.ask("Reinitialize?", default=False):
            raise typer.Exit()

    workshop = Workshop(Manuscript())
    workshop.add_chapter()
    workshop.manuscript.save(path)

    console.print(f"[green]✓[/] Created {path}")
    console.print("\nNext steps:")
    console.print("  1. Copy [cyan].env.example[/] to [cyan].env[/] and configure your model service")
    console.print("  2. Run [cyan]inkwell draft 1 1 --file scene.txt[/] to start writing")


@app.command()
def status(project_dir: Optional[Path] = ProjectDir) -> None:
    """Display the manuscript dashboard."""
    workshop, _ = open_workshop(project_dir)
    console.print()
    console.print(create_dashboard(workshop.manuscript))
    show_outline(workshop.manuscript)
    show_roster(workshop.manuscript)


@app.command()
def chapter(
    title: Optional[str] = typer.Argument(None, help="Chapter title"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Add a chapter with an opening beat."""
    workshop, path = open_workshop(project_dir)
    new_chapter = workshop.add_chapter()
    if title:
        workshop.edit_chapter(new_chapter.id, title=title)
    workshop.manuscript.save(path)
    console.print(f"[green]✓[/] Added chapter {len(workshop.manuscript.chapters)}: {new_chapter.title}")


@app.command()
def beat(
    chapter_number: int = typer.Argument(..., help="Chapter number (1-based)"),
    description: str = typer.Argument(..., help="What happens in this beat"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Beat title (generated if omitted)"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Add a beat to a chapter."""
    workshop, path = open_workshop(project_dir)
    target = resolve_chapter(workshop, chapter_number)
    new_beat = workshop.add_beat(target.id, title=title or "Untitled Beat", description=description)
    if not title:
        with workshop, console.status("Naming the beat..."):
            workshop.name_beat(target.id, new_beat.id)
            workshop.settle()
    workshop.manuscript.save(path)
    console.print(f"[green]✓[/] Added beat: {new_beat.title}")


@app.command()
def draft(
    chapter_number: int = typer.Argument(..., help="Chapter number (1-based)"),
    beat_number: int = typer.Argument(..., help="Beat number within the chapter (1-based)"),
    text: Optional[str] = typer.Argument(None, help="Draft text"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read the draft from a file"),
    verify: bool = typer.Option(False, "--verify", help="Check whether the draft achieves the beat"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Replace a beat's draft."""
    workshop, path = open_workshop(project_dir)
    target = resolve_chapter(workshop, chapter_number)
    if not 1 <= beat_number <= len(target.beats):
        console.print(f"[red]No beat {beat_number} in chapter {chapter_number}.[/]")
        raise typer.Exit(1)
    target_beat = target.beats[beat_number - 1]

    if file is not None:
        text = file.read_text(encoding="utf-8")
    if text is None:
        console.print("[red]Provide draft text or --file.[/]")
        raise typer.Exit(1)

    with workshop, console.status("Inkwell is reading between the lines..."):
        workshop.update_beat_draft(target.id, target_beat.id, text)
        if verify:
            workshop.verify_beat(target.id, target_beat.id)
        workshop.settle()

    console.print(f"[green]✓[/] Saved {len(text.split())} words to {target_beat.title}")
    if verify:
        verdict = "[green]achieved[/]" if target_beat.completed else "[yellow]not yet achieved[/]"
        console.print(f"Beat goal {verdict}")
    offer_suggestion(workshop)
    workshop.manuscript.save(path)


@app.command()
def character(
    name: str = typer.Argument(..., help="Character name"),
    role: str = typer.Option("Protagonist", "--role", "-r"),
    description: str = typer.Option("", "--description", "-d"),
    trait: Optional[list[str]] = typer.Option(None, "--trait", help="Repeatable"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Add a character."""
    workshop, path = open_workshop(project_dir)
    workshop.add_character(name=name, role=role, description=description, traits=trait or [])
    workshop.manuscript.save(path)
    console.print(f"[green]✓[/] Added {name}")


@app.command()
def location(
    name: str = typer.Argument(..., help="Location name"),
    atmosphere: str = typer.Option("Vivid", "--atmosphere", "-a"),
    description: str = typer.Option("", "--description", "-d"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Add a location."""
    workshop, path = open_workshop(project_dir)
    workshop.add_location(name=name, atmosphere=atmosphere, description=description)
    workshop.manuscript.save(path)
    console.print(f"[green]✓[/] Added {name}")


@app.command()
def lore(
    category: str = typer.Argument(..., help="Lore category (e.g. Magic, History)"),
    content: str = typer.Argument(..., help="The fact itself"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Add a lore entry."""
    workshop, path = open_workshop(project_dir)
    workshop.add_lore(category, content)
    workshop.manuscript.save(path)
    console.print(f"[green]✓[/] Recorded [{category}] lore")


@app.command()
def delete(
    kind: EntityKind = typer.Argument(..., help="chapter, character, location or lore"),
    entity_id: str = typer.Argument(..., help="Entity id"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Banish an entity."""
    workshop, path = open_workshop(project_dir)
    if not workshop.delete_entity(kind, entity_id):
        console.print(f"[yellow]No {kind.value} with id {entity_id}.[/]")
        raise typer.Exit(1)
    workshop.manuscript.save(path)
    console.print(f"[green]✓[/] Banished {entity_id}")


@app.command()
def settings(
    genre: Optional[str] = typer.Option(None),
    tone: Optional[str] = typer.Option(None),
    prose_style: Optional[str] = typer.Option(None),
    language: Optional[str] = typer.Option(None),
    fantasy_level: Optional[int] = typer.Option(None, min=0, max=100),
    tech_level: Optional[int] = typer.Option(None, min=0, max=100),
    criticism_level: Optional[int] = typer.Option(None, min=0, max=100),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Show or edit the world settings."""
    workshop, path = open_workshop(project_dir)
    changes = {
        name: value
        for name, value in {
            "genre": genre,
            "tone": tone,
            "prose_style": prose_style,
            "language": language,
            "fantasy_level": fantasy_level,
            "tech_level": tech_level,
            "criticism_level": criticism_level,
        }.items()
        if value is not None
    }
    if changes:
        workshop.edit_settings(**changes)
        workshop.manuscript.save(path)

    world = workshop.manuscript.settings
    console.print(Panel(
        world.to_context_string(),
        title="[bold]World Settings[/]",
        border_style="cyan",
    ))
    console.print(f'[italic]"{world.critic_voice()}"[/]')


@app.command("import")
def import_(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Plain-text manuscript"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Extract chapters, beats, characters and locations from a text file."""
    workshop, path = open_workshop(project_dir)
    before = len(workshop.manuscript.all_ids())
    with workshop, console.status("Extracting structure..."):
        workshop.import_file(file)
        workshop.settle()

    if len(workshop.manuscript.all_ids()) == before:
        console.print("[yellow]Nothing was imported.[/]")
    workshop.manuscript.save(path)
    show_outline(workshop.manuscript)


@app.command()
def scan(
    interactive: bool = typer.Option(True, "--interactive/--no-interactive", help="Offer to inscribe proposals"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Run a deep consistency scan of the manuscript."""
    workshop, path = open_workshop(project_dir)
    with workshop, console.status("Scanning workshop for inconsistencies..."):
        workshop.run_analysis()
        workshop.settle()

    analysis = workshop.analysis
    if analysis is None:
        console.print("[red]The scan could not be completed.[/]")
        raise typer.Exit(1)

    console.print(Panel(analysis.consistency, title="[bold]Manuscript Consistency[/]", border_style="magenta"))
    for suggestion in analysis.suggestions:
        console.print(f"  • {suggestion}")

    if not interactive:
        return

    for i, proposal in enumerate(analysis.proposed_characters):
        if Confirm.ask(f"Inscribe character [bold]{proposal.name}[/] ({proposal.rationale})?", default=False):
            workshop.inscribe_character(i)
    for i, proposal in enumerate(analysis.proposed_locations):
        if Confirm.ask(f"Inscribe location [bold]{proposal.name}[/] ({proposal.rationale})?", default=False):
            workshop.inscribe_location(i)
    for i, proposal in enumerate(analysis.proposed_lore):
        if Confirm.ask(f"Inscribe [{proposal.category}] lore: {proposal.content}?", default=False):
            workshop.inscribe_lore(i)
    for i, proposal in enumerate(analysis.suggested_beats):
        if Confirm.ask(f"Add beat [bold]{proposal.title}[/] ({proposal.rationale})?", default=False):
            if workshop.inscribe_beat(i) is None:
                console.print("[yellow]That chapter no longer exists.[/]")

    workshop.manuscript.save(path)


@app.command()
def visualize(
    kind: EntityKind = typer.Argument(..., help="character or location"),
    entity_id: str = typer.Argument(..., help="Entity id"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Generate a portrait (character) or scene (location)."""
    workshop, path = open_workshop(project_dir)
    if kind == EntityKind.CHARACTER:
        entity = workshop.manuscript.get_character(entity_id)
    elif kind == EntityKind.LOCATION:
        entity = workshop.manuscript.get_location(entity_id)
    else:
        console.print(f"[red]Cannot visualize a {kind.value}.[/]")
        raise typer.Exit(1)
    if entity is None:
        console.print(f"[yellow]No {kind.value} with id {entity_id}.[/]")
        raise typer.Exit(1)

    before = entity.image_url
    with workshop, console.status("Inkwell is imagining..."):
        workshop.visualize(kind, entity_id)
        workshop.settle()

    if entity.image_url == before:
        console.print("[red]The image could not be completed.[/]")
        raise typer.Exit(1)
    workshop.manuscript.save(path)
    console.print("[green]✓[/] Image stored")


@app.command()
def chat(
    message: str = typer.Argument(..., help="Your question for Inkwell"),
    project_dir: Optional[Path] = ProjectDir,
) -> None:
    """Ask Inkwell about your world or manuscript."""
    workshop, _ = open_workshop(project_dir)
    with workshop, console.status("Consulting the muse..."):
        reply = workshop.chat(message)
    if reply is None:
        console.print("[red]Inkwell could not answer right now.[/]")
        raise typer.Exit(1)
    console.print(Panel(reply, title="[bold magenta]Inkwell[/]", border_style="magenta"))


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
