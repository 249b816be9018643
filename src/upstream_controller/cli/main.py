import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from . import handlers
from ..config import load_settings
from ..errors import ConfigError, FatalControllerError
from ..logging import setup_logging

log = logging.getLogger(__name__)


def _settings(ctx, **overrides):
    try:
        settings = load_settings(ctx.obj["CONFIG_PATH"], {**ctx.obj["OVERRIDES"], **overrides})
    except ConfigError as e:
        Console(stderr=True).print(f"[red]Configuration error: {e}[/red]")
        ctx.exit(2)
    setup_logging(settings.log_level)
    return settings


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to a YAML config file.",
)
@click.option(
    "--nginx-server",
    type=str,
    default=None,
    help="Nginx server for managing backends. (ip:port)",
)
@click.option("--log-level", type=str, default=None, help="Logging level, e.g. INFO or DEBUG.")
@click.pass_context
def main(ctx, config_path, nginx_server, log_level) -> None:
    """Keep nginx upstream groups in sync with Kubernetes Endpoints."""
    ctx.ensure_object(dict)
    ctx.obj["CONFIG_PATH"] = config_path
    ctx.obj["OVERRIDES"] = {"nginx_server": nginx_server, "log_level": log_level}


@main.command(help="Run the controller loop.")
@click.option(
    "--api-server",
    type=str,
    default=None,
    help="Kubernetes API server for watching endpoints. (ip:port)",
)
@click.option("--namespace", type=str, default=None, help="Only watch endpoints in this namespace.")
@click.option(
    "--use-kubeconfig",
    is_flag=True,
    help="Use in-cluster config or kubeconfig instead of --api-server.",
)
@click.option("--dry-run", is_flag=True, help="Log changes without applying them.")
@click.pass_context
def run(ctx, api_server, namespace, use_kubeconfig, dry_run) -> None:
    """Run the controller loop."""
    settings = _settings(
        ctx,
        api_server=api_server,
        namespace=namespace,
        use_kubeconfig=use_kubeconfig or None,
        dry_run=dry_run or None,
    )
    try:
        handlers.run_controller(settings)
    except KeyboardInterrupt:
        log.info("Shutting down upstream controller.")
    except ConfigError as e:
        log.critical("Configuration error: %s", e)
        sys.exit(2)
    except FatalControllerError as e:
        log.critical("Fatal error, exiting: %s", e)
        sys.exit(1)


@main.command(help="Show the upstream groups configured in nginx.")
@click.pass_context
def status(ctx) -> None:
    """Show the upstream groups configured in nginx."""
    settings = _settings(ctx)
    if not handlers.show_status(settings):
        ctx.exit(1)


@main.command(help="Show what a cycle would change for a service.")
@click.argument("service", type=str)
@click.option(
    "--address",
    "addresses",
    multiple=True,
    help="Endpoint IP of the service; repeat for each address.",
)
@click.pass_context
def diff(ctx, service: str, addresses) -> None:
    """Show what a cycle would change for a service."""
    settings = _settings(ctx)
    if not handlers.show_diff(settings, service, addresses):
        ctx.exit(1)


if __name__ == "__main__":
    main()
