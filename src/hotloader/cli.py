"""hotloader CLI entry point."""

import asyncio
import contextlib
import logging
import signal
from typing import Any

import click
from click.core import ParameterSource
from rich.console import Console
from rich.logging import RichHandler

from hotloader import __version__
from hotloader.build.runner import BuildRunner
from hotloader.config import HotLoaderConfig, load_config_file, split_paths
from hotloader.controller import ReloadController
from hotloader.errors import ConfigError, PathError
from hotloader.supervisor import ProcessSupervisor
from hotloader.watch.registrar import add_recursive
from hotloader.watch.watcher import DirectoryWatcher

# Logs go to stderr so they don't mix into the application's stdout
console = Console(stderr=True)

logger = logging.getLogger(__name__)

# CLI parameter name -> HotLoaderConfig field
_CONFIG_FIELDS = {
    "watch": "watch_paths",
    "build": "source",
    "exec_path": "output",
    "gopath": "gopath",
    "poll": "use_polling",
    "poll_interval": "poll_interval",
    "build_timeout": "build_timeout",
    "debounce": "debounce",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def build_config(ctx: click.Context, config_file: str | None) -> HotLoaderConfig:
    """Merge the config file with flags given on the command line."""
    values: dict[str, Any] = load_config_file(config_file) if config_file else {}

    for param, field_name in _CONFIG_FIELDS.items():
        if ctx.get_parameter_source(param) == ParameterSource.DEFAULT:
            continue
        value = ctx.params[param]
        if param == "watch":
            value = [p for entry in value for p in split_paths(entry)]
        values[field_name] = value

    return HotLoaderConfig.from_mapping(values)


async def serve(config: HotLoaderConfig) -> None:
    """Watch, build and reload until SIGINT or SIGTERM.

    Raises:
        PathError: If one of the watch roots cannot be watched.
    """
    logger.warning(f"Starting hotloader {__version__}; build: {config.source}")

    watcher = DirectoryWatcher(
        use_polling=config.use_polling,
        poll_interval=config.poll_interval,
    )
    supervisor = ProcessSupervisor()
    try:
        for root in config.resolved_watch_paths():
            add_recursive(watcher, root)

        builder = BuildRunner(
            deps_command=config.deps_command,
            build_command=config.build_command,
            timeout=config.build_timeout,
        )
        controller = ReloadController(config, watcher, builder, supervisor)

        stop = asyncio.Event()
        runner = asyncio.create_task(controller.run(stop))

        def request_stop() -> None:
            logger.warning("Shutting down")
            stop.set()
            # Also interrupts a build in progress
            runner.cancel()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, request_stop)

        try:
            with contextlib.suppress(asyncio.CancelledError):
                await runner
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
    finally:
        await supervisor.shutdown()
        watcher.close()


@click.command()
@click.option(
    "-w",
    "--watch",
    multiple=True,
    help="Comma separated list of directories to watch (repeatable)",
)
@click.option("-b", "--build", help="Source to build (defaults to the first watched directory)")
@click.option(
    "-e",
    "--exec",
    "exec_path",
    default="/tmp/hl_build",
    show_default=True,
    help="Path to the built executable",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    help="TOML configuration file",
)
@click.option("--gopath", is_flag=True, help="Resolve watch paths inside $GOPATH/src")
@click.option("--poll", is_flag=True, help="Poll for changes instead of using OS notifications")
@click.option("--poll-interval", type=float, default=1.0, show_default=True, help="Polling interval in seconds")
@click.option("--build-timeout", type=float, help="Kill a build step after this many seconds")
@click.option("--debounce", type=float, default=0.0, show_default=True, help="Fold changes within this many seconds into one build")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.version_option(__version__, prog_name="hotloader")
@click.pass_context
def cli(
    ctx: click.Context,
    watch: tuple[str, ...],
    build: str | None,
    exec_path: str,
    config_file: str | None,
    gopath: bool,
    poll: bool,
    poll_interval: float,
    build_timeout: float | None,
    debounce: float,
    verbose: bool,
) -> None:
    """Rebuild and restart an application whenever its sources change."""
    setup_logging(verbose)

    try:
        config = build_config(ctx, config_file)
    except ConfigError as e:
        raise click.UsageError(str(e), ctx) from e

    try:
        asyncio.run(serve(config))
    except PathError as e:
        logger.error(f"Start; {e}")
        raise SystemExit(1) from e


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
