"""
This module contains the handler functions for the CLI commands.
"""
import logging
from typing import Sequence

from rich.console import Console
from rich.table import Table

from ..config import Settings
from ..controller.admin import NginxAdminClient
from ..controller.differ import compute_diff
from ..controller.kube import build_core_v1_api
from ..controller.loop import LoopController
from ..controller.reconciler import Reconciler
from ..controller.watch import WatchConsumer
from ..errors import StatusQueryError
from ..models import backend_server

log = logging.getLogger(__name__)


def run_controller(settings: Settings) -> None:
    """Run the reconciliation loop until a fatal error occurs."""
    core_v1 = build_core_v1_api(settings.api_server, settings.use_kubeconfig)
    consumer = WatchConsumer(
        core_v1,
        namespace=settings.namespace,
        reconnect_initial_s=settings.backoff.reconnect_initial_seconds,
        reconnect_max_s=settings.backoff.reconnect_max_seconds,
        max_reconnect_attempts=settings.backoff.max_reconnect_attempts,
    )
    admin = NginxAdminClient.from_address(settings.nginx_server, settings.admin_timeout_seconds)
    reconciler = Reconciler(admin, policy=settings.policy, dry_run=settings.dry_run)
    controller = LoopController(consumer, admin, reconciler, backoff=settings.backoff)

    log.info(
        "Syncing endpoints from %s into nginx at %s%s.",
        settings.namespace or "all namespaces",
        settings.nginx_server,
        " (dry run)" if settings.dry_run else "",
    )
    try:
        controller.run_forever()
    finally:
        consumer.close()
        admin.close()


def show_status(settings: Settings) -> bool:
    """Print the upstream groups known to nginx. Returns False on failure."""
    console = Console()
    with NginxAdminClient.from_address(settings.nginx_server, settings.admin_timeout_seconds) as admin:
        try:
            groups = admin.status()
        except StatusQueryError as e:
            console.print(f"[red]Error querying nginx status: {e}[/red]")
            return False

    if not groups:
        console.print(f"No upstream groups found on [cyan]{settings.nginx_server}[/cyan].")
        return True

    table = Table(title=f"Upstreams on [bold]{settings.nginx_server}[/bold]")
    table.add_column("Upstream", style="cyan")
    table.add_column("ID", style="magenta", justify="right")
    table.add_column("Server", style="green")
    for name in sorted(groups):
        backends = groups[name]
        if not backends:
            table.add_row(name, "-", "[dim]no backends[/dim]")
        for backend in backends:
            table.add_row(name, str(backend.id), backend.server)
    console.print(table)
    return True


def show_diff(settings: Settings, service: str, addresses: Sequence[str]) -> bool:
    """Print what a cycle would change for ``service`` given its endpoint addresses."""
    console = Console()
    with NginxAdminClient.from_address(settings.nginx_server, settings.admin_timeout_seconds) as admin:
        try:
            groups = admin.status()
        except StatusQueryError as e:
            console.print(f"[red]Error querying nginx status: {e}[/red]")
            return False

    if service not in groups:
        console.print(f"[yellow]No matching upstream for service {service}.[/yellow]")
        return True

    diff = compute_diff({backend_server(ip) for ip in addresses}, groups[service])
    if diff.empty:
        console.print(f"[green]Upstream {service} is in sync.[/green]")
        return True
    for server in sorted(diff.to_add):
        console.print(f"[green]+ {server}[/green]")
    for backend in diff.to_remove:
        console.print(f"[red]- {backend.server} (id {backend.id})[/red]")
    return True
