"""Command-line interface for the image database."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterator

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import DEFAULT_CONFIG_FILE, ConfigManager, parse_value
from .core import actions
from .core.database import ImageDatabase
from .core.errors import ConfigError, ImageDbError
from .utils.logging_setup import log_operation, setup_logging

console = Console(soft_wrap=True)
logger = logging.getLogger(__name__)


@dataclass
class CliState:
    manager: ConfigManager
    show_json: bool = False


def fail(message: str) -> None:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise click.exceptions.Exit(1)


@contextmanager
def open_database(state: CliState) -> Iterator[ImageDatabase]:
    """Load config, yield a database handle and save it on the way out."""
    try:
        config = state.manager.load()
        problems = config.validate()
        if problems:
            raise ConfigError("Invalid configuration: " + "; ".join(problems))
        if state.show_json:
            config = replace(config, show_json=True)
        with ImageDatabase(config) as db:
            yield db
    except ImageDbError as e:
        fail(e.message)


@click.group(name="imagedb")
@click.version_option(__version__, prog_name="imagedb")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to configuration file"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False),
    help="Also write JSON logs to this directory"
)
@click.option("--show-json", is_flag=True, help="Write uncompressed JSON copies of data files")
@click.pass_context
def cli(ctx, config_path, verbose, log_dir, show_json):
    """Index images by perceptual hash and find similar ones."""
    setup_logging(
        level="DEBUG" if verbose else "INFO",
        log_dir=Path(log_dir) if log_dir else None,
    )
    log_operation(logger, ctx.invoked_subcommand or "cli", config=config_path)
    ctx.obj = CliState(manager=ConfigManager(Path(config_path)), show_json=show_json)


@cli.command(name="init")
@click.pass_obj
def init_command(state: CliState):
    """Create the image folder, database and usage files."""
    with open_database(state) as db:
        folder = actions.init(db)
        if not state.manager.config_path.exists():
            state.manager.save()
    console.print(f"[green]✓ Initialized image database in {escape(str(folder))}[/green]")


@cli.command(name="add")
@click.argument("file", type=click.Path())
@click.pass_obj
def add_command(state: CliState, file):
    """Move FILE into the image folder and index it."""
    with open_database(state) as db:
        dest = actions.add_image(file, db)
    console.print(escape(str(dest)))


@cli.command(name="index")
@click.argument("directory", type=click.Path())
@click.pass_obj
def index_command(state: CliState, directory):
    """Move every file in DIRECTORY into the image folder and index it."""
    with open_database(state) as db:
        added = actions.index_directory(directory, db)
    console.print(f"[green]✓ Indexed {len(added)} files[/green]")


@cli.command(name="insert")
@click.argument("file", type=click.Path())
@click.option("--yes", "-y", is_flag=True, help="Add without asking")
@click.pass_obj
def insert_command(state: CliState, file, yes):
    """Show the closest match for FILE and offer to add it."""
    with open_database(state) as db:
        result = actions.insert_file(file, db)
        console.print(f"Closest distance: {result.lookup.distance}, {escape(str(result.lookup.db_path))}")
        if yes or click.confirm("Add file?"):
            console.print(escape(result.accept(db)))


@cli.command(name="insert-dir")
@click.argument("directory", type=click.Path())
@click.argument("tolerance", type=int)
@click.argument("auto_deny", type=int, required=False, default=actions.DEFAULT_AUTO_DENY)
@click.option("--yes", "-y", is_flag=True, help="Add undecided files without asking")
@click.option("--peek", is_flag=True, help="Only report what would happen")
@click.pass_obj
def insert_dir_command(state: CliState, directory, tolerance, auto_deny, yes, peek):
    """
    Add files from DIRECTORY that are at least TOLERANCE from every stored image.

    Files within AUTO_DENY are skipped; files in between are confirmed one by one.
    """
    counts = {"added": 0, "skipped": 0, "undecided": 0}
    with open_database(state) as db:
        for result in actions.insert_directory(directory, tolerance, db, auto_deny, peek=peek):
            if result.inserted is None and not peek:
                console.print(
                    f"{escape(result.file)}: closest {result.lookup.distance}, "
                    f"{escape(str(result.lookup.db_path))}"
                )
                if yes or click.confirm("Add file?"):
                    result.accept(db)
            if result.inserted is True:
                counts["added"] += 1
            elif result.inserted is False:
                counts["skipped"] += 1
            else:
                counts["undecided"] += 1

    table = Table(title="Would insert" if peek else "Inserted")
    table.add_column("Outcome")
    table.add_column("Files", justify="right")
    for outcome, count in counts.items():
        table.add_row(outcome, str(count))
    console.print(table)


@cli.command(name="lookup")
@click.argument("file", type=click.Path())
@click.argument("tolerance", type=int, required=False, default=0)
@click.pass_obj
def lookup_command(state: CliState, file, tolerance):
    """List stored images within TOLERANCE of FILE."""
    with open_database(state) as db:
        console.print(f"Looking up similar entries with tolerance = {tolerance}:")
        report = actions.lookup(file, db, tolerance)

    if report.matches:
        table = Table()
        table.add_column("Path")
        table.add_column("Distance", justify="right")
        for path, distance in report.matches:
            table.add_row(escape(path), str(distance))
        console.print(table)
    elif report.closest is not None:
        console.print("There were no images within the tolerance, closest match:")
        console.print(f"Distance: {report.closest.distance}, {escape(report.closest.db_path)}")
    else:
        console.print("The tree is empty.")


@cli.command(name="remove")
@click.argument("file", type=click.Path())
@click.pass_obj
def remove_command(state: CliState, file):
    """Remove FILE from the database."""
    with open_database(state) as db:
        removed = actions.remove_image(file, db)
    if removed:
        console.print(f"Removed file \"{escape(file)}\"")
    else:
        console.print("File was not present in database.")


@cli.command(name="use")
@click.argument("file", type=click.Path())
@click.pass_obj
def use_command(state: CliState, file):
    """Mark FILE as used, indexing it first if needed."""
    with open_database(state) as db:
        result = actions.use(file, db)
    if result.newly_used:
        console.print(f"Marked {escape(result.path)} as used.")
    else:
        console.print("File has already been used.")


@cli.command(name="use-all")
@click.argument("directory", type=click.Path())
@click.pass_obj
def use_all_command(state: CliState, directory):
    """Mark every file in DIRECTORY as used."""
    with open_database(state) as db:
        results = actions.use_all(directory, db)
    newly = sum(1 for r in results if r.newly_used)
    console.print(f"[green]✓ Marked {newly} of {len(results)} files as used[/green]")


@cli.command(name="remove-use")
@click.argument("file", type=click.Path())
@click.pass_obj
def remove_use_command(state: CliState, file):
    """Unmark FILE as used."""
    with open_database(state) as db:
        removed = actions.remove_use(file, db)
    console.print("Removed file from used." if removed else "File is not used.")


@cli.command(name="show-used")
@click.pass_obj
def show_used_command(state: CliState):
    """List images marked as used."""
    with open_database(state) as db:
        used = actions.show_used(db)
    if not used:
        console.print("No files are used.")
    for path in used:
        console.print(escape(path))


@cli.command(name="choose")
@click.pass_obj
def choose_command(state: CliState):
    """Pick an unused image and mark it used."""
    with open_database(state) as db:
        chosen = actions.choose(db)
    if chosen is None:
        console.print("There are no unused images.")
    else:
        console.print("Chosen image:")
        console.print(escape(chosen))


@cli.command(name="backup")
@click.argument("which", type=click.Choice(actions.BACKUP_TARGETS))
@click.pass_obj
def backup_command(state: CliState, which):
    """Back up the usage file or the database."""
    with open_database(state) as db:
        output = actions.backup(db, which)
    console.print(f"Saved to: {escape(str(output))}")


@cli.command(name="show-json")
@click.pass_obj
def show_json_command(state: CliState):
    """Print the database tree as JSON."""
    with open_database(state) as db:
        text = actions.show_json(db)
    click.echo(text)


@cli.group(name="config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command(name="show")
@click.pass_obj
def config_show(state: CliState):
    """Display the current configuration."""
    try:
        state.manager.display()
    except ImageDbError as e:
        fail(e.message)


@config_group.command(name="set")
@click.argument("parameter")
@click.argument("value")
@click.pass_obj
def config_set(state: CliState, parameter, value):
    """Set a configuration parameter."""
    try:
        config = state.manager.update(**{parameter: parse_value(parameter, value)})
    except ImageDbError as e:
        fail(e.message)
        return

    problems = config.validate()
    if problems:
        for problem in problems:
            console.print(f"  • {escape(problem)}")
        fail("Configuration has validation errors")
    state.manager.save(config)
    console.print(f"[green]✓ Set {escape(parameter)} = {escape(value)}[/green]")


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
