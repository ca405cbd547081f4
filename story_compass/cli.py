import logging
import os

import typer

from .commands.graph import graph_app
from .commands.project import project_app

logger = logging.getLogger(__name__)


app = typer.Typer(
    help="Story Compass CLI: versioned character-relationship graphs for generated novels.",
    add_completion=True,
    no_args_is_help=True,
)

app.add_typer(project_app, name="project", help="Manage novel projects and their material.")
app.add_typer(graph_app, name="graph", help="Build, query and audit the relationship graph.")


@app.callback()
def main_callback(ctx: typer.Context):
    log_level_str = os.getenv("COMPASS_LOG_LEVEL", "INFO").upper()
    numeric_level = getattr(logging, log_level_str, logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.debug(f"CLI main_callback: invoked subcommand {ctx.invoked_subcommand}")


def main(argv: list[str] | None = None):
    app(args=argv)


if __name__ == "__main__":
    main()
