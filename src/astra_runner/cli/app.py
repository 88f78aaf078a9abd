"""CLI entrypoint for :mod:`astra_runner`.

Exposes the runner CLI with:

- `run`     - resolve, execute and report a single package.
- `batch`   - run a list of jobs sequentially or in parallel.
- `version` - print the runner version.
"""

from __future__ import annotations

import typer

from astra_runner import __version__
from astra_runner.cli.batch import batch_command
from astra_runner.cli.run import run_command

app = typer.Typer(
    help=(
        "Astra Runner: run versioned packages for CI pipelines.\n\n"
        "Resolve a package coordinate to a concrete version, run it as an external process "
        "or an in-process plugin, and write JSON, JUnit and HTML reports.\n\n"
        "## Quick Start\n\n"
        "### 1. Run a single package\n"
        "```bash\n"
        "astra-runner run example:echo --version 1.0.0 --arg name=Astra \\\n"
        "    --store-root artifacts/ --reports-dir reports/\n"
        "```\n\n"
        "### 2. Run the newest 1.x release as a plugin\n"
        "```bash\n"
        "astra-runner run example:hello --version '1.+' --mode plugin\n"
        "```\n\n"
        "### 3. Run a batch of jobs, two at a time\n"
        "```bash\n"
        "astra-runner batch --jobs jobs.json --parallel --max-parallel 2 --format json\n"
        "```\n"
    ),
    no_args_is_help=True,
    rich_markup_mode="markdown",
)

app.command("run")(run_command)
app.command("batch")(batch_command)


@app.command("version")
def version_command() -> None:
    """Print the runner version."""
    typer.echo(__version__)


def main() -> None:
    """Entrypoint used by console scripts and `python -m astra_runner`."""
    app()


__all__ = ["app", "main"]
