import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console

from .models import Project
from .storage import ProjectStore

logger = logging.getLogger(__name__)

console = Console()


@contextmanager
def open_store(db_file: Path | None) -> Iterator[ProjectStore]:
    """Open the project store for one command and close it when the command ends."""
    try:
        store = ProjectStore(db_file)
    except Exception as e:
        logger.error(f"Could not open project store {db_file}: {e}", exc_info=True)
        typer.secho(f"Error opening project store: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    try:
        yield store
    finally:
        store.close()


def load_project_or_exit(store: ProjectStore, project_id: str) -> Project:
    project = store.get(project_id)
    if project is None:
        typer.secho(f"Project '{project_id}' not found.", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    return project


def echo_progress(message: str, step: int, total: int) -> None:
    console.print(f"[dim]\\[{step}/{total}][/dim] {message}")
