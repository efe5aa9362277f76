"""
CLI for the service CA controller.

Runs the controller, bootstraps the service CA on its own, checks the
cert-manager installation and prints the effective configuration.
"""

import asyncio
import signal
import sys
from typing import Any, Dict, Optional, Set

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .. import __version__
from ..certs import TrustAnchorBootstrapper
from ..config import ControllerConfig, load_config
from ..controllers import ControllerManager
from ..exceptions import ConfigurationError, PreconditionError, ServiceCAError
from ..logger import LogConfig, get_logger, setup_logging
from ..metrics import ReconcileMetrics
from ..store import ObjectStore

console = Console()
logger = get_logger(__name__)


def build_store(config: ControllerConfig, metrics: Optional[ReconcileMetrics] = None) -> ObjectStore:
    """Connect to the cluster."""
    from ..store.kubernetes import KubernetesObjectStore

    return KubernetesObjectStore.from_kubeconfig(config.manager.kubeconfig, metrics=metrics)


def _overrides(options: Dict[str, Any]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if options.get("trust_namespace"):
        overrides["trust_namespace"] = options["trust_namespace"]

    observability = {}
    if options.get("log_level"):
        observability["log_level"] = options["log_level"]
    if options.get("log_format"):
        observability["log_format"] = options["log_format"]
    if observability:
        overrides["observability"] = observability

    if options.get("kubeconfig"):
        overrides["manager"] = {"kubeconfig": options["kubeconfig"]}
    return overrides


def _load(ctx: click.Context) -> ControllerConfig:
    options = ctx.obj or {}
    try:
        config = load_config(options.get("config_file"), **_overrides(options))
    except ConfigurationError as e:
        _fail("Error loading configuration", e)

    observability = config.observability
    setup_logging(
        LogConfig(
            service_name=observability.service_name,
            service_version=__version__,
            level=observability.log_level,
            format_type=observability.log_format,
        )
    )
    return config


async def _prepare(store: ObjectStore, config: ControllerConfig, bootstrap: bool = True) -> None:
    bootstrapper = TrustAnchorBootstrapper(store, config)
    await bootstrapper.check_issuance_capability()
    if bootstrap:
        await bootstrapper.ensure_trust_anchor()


async def _run(store: ObjectStore, config: ControllerConfig, metrics: Optional[ReconcileMetrics]) -> None:
    await _prepare(store, config)

    manager = ControllerManager(store, config, metrics=metrics)
    _install_signal_handlers(manager)
    try:
        await manager.start()
    finally:
        await manager.stop()
        _remove_signal_handlers()


_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(manager: ControllerManager) -> Set[asyncio.Task]:
    """Stop ``manager`` on SIGINT or SIGTERM; returns the set holding pending stop tasks."""
    loop = asyncio.get_running_loop()
    stopping: Set[asyncio.Task] = set()

    def signal_handler(signum: signal.Signals) -> None:
        logger.info("Received signal", signal=signum.name)
        task = loop.create_task(manager.stop())
        stopping.add(task)
        task.add_done_callback(stopping.discard)

    for signum in _SHUTDOWN_SIGNALS:
        loop.add_signal_handler(signum, signal_handler, signum)
    return stopping


def _remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for signum in _SHUTDOWN_SIGNALS:
        loop.remove_signal_handler(signum)


def _fail(message: str, error: Exception) -> None:
    console.print(f"[red]{message}: {escape(str(error))}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="service-ca-controller")
@click.option("--config", "-c", "config_file", type=click.Path(), help="Configuration file path")
@click.option("--trust-namespace", help="Namespace holding the service CA")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level",
)
@click.option("--log-format", type=click.Choice(["json", "console"]), help="Log format")
@click.option("--kubeconfig", type=click.Path(), help="Path to a kubeconfig file")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[str],
    trust_namespace: Optional[str],
    log_level: Optional[str],
    log_format: Optional[str],
    kubeconfig: Optional[str],
):
    """Service CA controller - serving certificates for Kubernetes Services"""
    ctx.ensure_object(dict)
    ctx.obj.update(
        config_file=config_file,
        trust_namespace=trust_namespace,
        log_level=log_level,
        log_format=log_format,
        kubeconfig=kubeconfig,
    )


@cli.command()
@click.pass_context
def run(ctx: click.Context):
    """Run the controller."""
    config = _load(ctx)

    metrics = ReconcileMetrics() if config.observability.metrics_enabled else None
    try:
        store = build_store(config, metrics)
    except Exception as e:
        _fail("Error connecting to cluster", e)

    console.print("[green]Starting service CA controller[/green]")
    console.print(f"[blue]Trust namespace:[/blue] {config.trust_namespace}")
    console.print(f"[blue]Workers:[/blue] {config.manager.workers}")

    if metrics is not None:
        metrics.serve(config.observability.metrics_port)

    try:
        asyncio.run(_run(store, config, metrics))
    except PreconditionError as e:
        _fail("Precondition failed", e)
    except ServiceCAError as e:
        _fail("Error running controller", e)


@cli.command()
@click.pass_context
def bootstrap(ctx: click.Context):
    """Create the service CA objects and exit."""
    config = _load(ctx)
    try:
        store = build_store(config)
    except Exception as e:
        _fail("Error connecting to cluster", e)

    try:
        asyncio.run(_prepare(store, config))
    except PreconditionError as e:
        _fail("Precondition failed", e)
    except ServiceCAError as e:
        _fail("Error bootstrapping service CA", e)

    console.print(f"[green]✓[/green] Service CA ready in namespace {config.trust_namespace}")


@cli.command()
@click.pass_context
def check(ctx: click.Context):
    """Check that cert-manager is installed."""
    config = _load(ctx)
    try:
        store = build_store(config)
    except Exception as e:
        _fail("Error connecting to cluster", e)

    try:
        asyncio.run(_prepare(store, config, bootstrap=False))
    except PreconditionError as e:
        _fail("Precondition failed", e)
    except ServiceCAError as e:
        _fail("Error checking cluster", e)

    console.print(f"[green]✓[/green] Found CRD {config.issuance_crd}")


@cli.command("config")
@click.option("--table", "as_table", is_flag=True, help="Show the main settings as a table")
@click.pass_context
def show_config(ctx: click.Context, as_table: bool):
    """Print the effective configuration."""
    config = _load(ctx)
    if not as_table:
        click.echo(config.to_yaml())
        return

    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Trust namespace", config.trust_namespace)
    table.add_row("Cluster domain", config.cluster_domain)
    table.add_row("Certificate naming", config.certificate.naming.value)
    table.add_row("Duration", config.certificate.duration_string)
    table.add_row("Renew before", config.certificate.renew_before_string)
    table.add_row("Cluster issuer", config.names.cluster_issuer)
    table.add_row("Workers", str(config.manager.workers))
    console.print(table)


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
