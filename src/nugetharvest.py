"""nugetharvest - download a NuGet package and its transitive dependencies.

    Returns:
        int: Exit code
"""
from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from typing import Any, Optional

from args import parse_args
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import Constants, ExitCodes
from harvest_config import ConfigError, HarvestConfig
from registry.base import RegistryClient
from registry.errors import ServiceIndexError
from registry.nuget import NuGetClient
from traversal.downloader import DownloadOrchestrator
from traversal.expander import DependencyExpander
from traversal.models import TraversalReport
from traversal.scheduler import BoundedScheduler, build_root
from traversal.storage import ArtifactStore
from traversal.visited import VisitedSet

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.LOG_LEVEL_ENV] = str(args.LOG_LEVEL).upper()
    configure_logging()

    if getattr(args, "QUIET", False):
        root = logging.getLogger()
        if root.level < logging.WARNING:
            root.setLevel(logging.WARNING)

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def build_scheduler(config: HarvestConfig, client: RegistryClient, store: ArtifactStore) -> BoundedScheduler:
    """Wire the traversal components for one run."""
    visited = VisitedSet()
    downloader = DownloadOrchestrator(client, store)
    expander = DependencyExpander(client, store, visited, config.platforms)
    return BoundedScheduler(
        client,
        downloader,
        expander,
        visited,
        max_parallelism=config.max_parallelism,
        search_frameworks=config.search_frameworks,
        take=config.take,
    )


async def harvest(
    config: HarvestConfig,
    client: Optional[RegistryClient] = None,
    install_signal_handlers: bool = False,
) -> TraversalReport:
    """Resolve and download ``config.package_id`` with its dependency closure.

    Raises:
        OSError: If the download directory cannot be created.
        ServiceIndexError: If the registry is unreachable.
    """
    store = ArtifactStore(config.output_dir)
    store.ensure_directory()

    if client is None:
        async with NuGetClient(config.source, timeout=config.timeout) as nuget:
            # Fail fast on an unreachable feed instead of once per package
            await nuget.service_index()
            return await _run_traversal(config, nuget, store, install_signal_handlers)
    return await _run_traversal(config, client, store, install_signal_handlers)


async def _run_traversal(
    config: HarvestConfig, client: RegistryClient, store: ArtifactStore, install_signal_handlers: bool
) -> TraversalReport:
    scheduler = build_scheduler(config, client, store)
    if install_signal_handlers:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, scheduler.cancel)
            except (NotImplementedError, RuntimeError):
                # Windows event loops; KeyboardInterrupt still ends the run
                pass
    return await scheduler.run(build_root(config.package_id, config.exact_match))


def main(argv=None) -> int:
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug("CLI start", extra=extra_context(event="function_entry", component="cli", action="main"))

    try:
        config = HarvestConfig.from_args(args)
    except ConfigError as e:
        logger.error("%s", e)
        return ExitCodes.FILE_ERROR.value

    if not config.package_id:
        logger.error("The --package-id option is required. Run --help for more information")
        return ExitCodes.FILE_ERROR.value

    try:
        report = asyncio.run(harvest(config, install_signal_handlers=True))
    except ServiceIndexError as e:
        logger.error("%s", e)
        return ExitCodes.CONNECTION_ERROR.value
    except OSError as e:
        logger.error("Cannot use download directory %s: %s", config.output_dir, e)
        return ExitCodes.FILE_ERROR.value
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return ExitCodes.INTERRUPTED.value

    if report.failed:
        logger.warning("%d package(s) failed: %s", report.failed_count, ", ".join(report.failed))
    print(f"{report.handled} packages handled!")
    if report.cancelled:
        return ExitCodes.INTERRUPTED.value
    return ExitCodes.SUCCESS.value


if __name__ == "__main__":
    sys.exit(main())
