"""
Command line tools for the MS Games platform.

Checks branch names and the compose topology, prints the service start order,
mints development tokens and runs the backend.
"""
import logging
import sys

import click

from msgames.config import get_settings
from msgames.utils.errors import AuthError
from msgames.workflow.branches import BranchNameError, merge_target, parse_branch
from msgames.workflow.compose import ComposeError, check_topology, load_compose, start_order

logger = logging.getLogger(__name__)

DEFAULT_COMPOSE_FILE = "docker-compose.yml"


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose):
    """MS Games platform tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)],
    )


@main.command()
@click.argument("name")
@click.option("--project", "-p", "projects", multiple=True, help="Known project name (repeatable).")
def branch(name, projects):
    """Check NAME against the branch naming convention."""
    try:
        parsed = parse_branch(name, projects or None)
    except BranchNameError as e:
        click.echo(f"invalid: {e}", err=True)
        sys.exit(1)

    click.echo(f"{parsed.name}: {parsed.kind.value} branch")
    for field in ("project", "section", "issue_id", "description"):
        value = getattr(parsed, field)
        if value:
            click.echo(f"  {field}: {value}")
    try:
        click.echo(f"  merges into: {merge_target(parsed)}")
    except BranchNameError as e:
        click.echo(f"  {e}")


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False), default=DEFAULT_COMPOSE_FILE)
def compose(path):
    """Check the compose topology in PATH."""
    try:
        violations = check_topology(load_compose(path))
    except ComposeError as e:
        click.echo(f"error: {e}", err=True)
        sys.exit(1)

    if not violations:
        click.echo(f"{path}: topology OK")
        return
    for violation in violations:
        click.echo(str(violation))
    click.echo(f"{len(violations)} problem(s) found in {path}", err=True)
    sys.exit(1)


@main.command("start-order")
@click.argument("path", type=click.Path(exists=True, dir_okay=False), default=DEFAULT_COMPOSE_FILE)
def start_order_command(path):
    """Print the services in PATH in the order they start."""
    try:
        order = start_order(load_compose(path))
    except ComposeError as e:
        click.echo(f"error: {e}", err=True)
        sys.exit(1)
    for position, name in enumerate(order, start=1):
        click.echo(f"{position}. {name}")


@main.command()
@click.argument("subject")
def token(subject):
    """Print a development bearer token for SUBJECT."""
    from msgames.logic.auth import create_token

    try:
        click.echo(create_token(subject))
    except AuthError as e:
        click.echo(f"error: {e.message} (set JWT_SECRET)", err=True)
        sys.exit(1)


@main.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, default=None, help="Defaults to $PORT or 8000.")
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(host, port, reload):
    """Run the beergame backend with uvicorn."""
    import uvicorn

    port = port or get_settings().port
    uvicorn.run("main:app", host=host, port=port, reload=reload, log_level="info")


if __name__ == "__main__":
    main()
