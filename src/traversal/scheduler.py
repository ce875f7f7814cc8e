"""Bounded worker pool driving the resolve-download-expand traversal."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

import aiohttp

from common.logging_utils import Timer, extra_context, indent, is_debug_enabled
from constants import Constants
from registry.base import RegistryClient
from registry.errors import PackageNotFoundError, RegistryError
from versioning.models import InvalidVersionError
from versioning.parser import normalize_version, versions_equal

from .downloader import DownloadOrchestrator, DownloadOutcome
from .expander import DependencyExpander
from .models import IdentityKey, SearchResult, TraversalReport, WorkItem, WorkState
from .visited import VisitedSet

logger = logging.getLogger(__name__)

# Per-item failures; anything else is a bug and stops the run
_ITEM_ERRORS = (RegistryError, aiohttp.ClientError, asyncio.TimeoutError, OSError, InvalidVersionError)


def filter_matches(results: Iterable[SearchResult], query: str, exact_match: bool) -> List[SearchResult]:
    """Apply the case-insensitive exact or prefix filter to root search results."""
    wanted = query.strip().casefold()
    if exact_match:
        return [r for r in results if r.package_id.casefold() == wanted]
    return [r for r in results if r.package_id.casefold().startswith(wanted)]


class BoundedScheduler:
    """Traverse the dependency graph with at most ``max_parallelism`` items in flight.

    Workers share one queue. Expanding a package pushes its children back on
    the queue, so fan-out never grows the call stack. The visited set's
    claim() decides which worker owns each (id, version); it always happens
    before the item is downloaded or expanded.
    """

    def __init__(
        self,
        client: RegistryClient,
        downloader: DownloadOrchestrator,
        expander: DependencyExpander,
        visited: VisitedSet,
        *,
        max_parallelism: int = Constants.MAX_PARALLELISM,
        search_frameworks: Optional[Sequence[str]] = None,
        take: int = Constants.SEARCH_TAKE,
    ):
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")
        self.client = client
        self.downloader = downloader
        self.expander = expander
        self.visited = visited
        self.max_parallelism = max_parallelism
        self.search_frameworks = list(
            Constants.SEARCH_FRAMEWORKS if search_frameworks is None else search_frameworks
        )
        self.take = take
        self.report = TraversalReport()
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        """Stop claiming new work; in-flight items finish their current step."""
        if not self._cancelled.is_set():
            logger.warning("Cancellation requested, finishing in-flight packages")
        self._cancelled.set()
        self.downloader.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self, root: WorkItem) -> TraversalReport:
        """Process ``root`` and everything reachable from it; return the report."""
        queue: "asyncio.Queue[WorkItem]" = asyncio.Queue()
        queue.put_nowait(root)

        workers = [
            asyncio.create_task(self._worker(queue), name=f"harvest-worker-{i}")
            for i in range(self.max_parallelism)
        ]
        drained = asyncio.create_task(queue.join())
        try:
            with Timer() as t:
                await asyncio.wait([drained, *workers], return_when=asyncio.FIRST_COMPLETED)
            # A worker only exits early by raising; surface that instead of hanging
            for worker in workers:
                if worker.done() and not worker.cancelled() and worker.exception() is not None:
                    raise worker.exception()
        finally:
            drained.cancel()
            for worker in workers:
                worker.cancel()
            await asyncio.gather(drained, *workers, return_exceptions=True)

        self.report.cancelled = self.cancelled
        if is_debug_enabled(logger):
            logger.debug(
                "Traversal finished",
                extra=extra_context(
                    event="traversal",
                    component="scheduler",
                    outcome="cancelled" if self.cancelled else "complete",
                    count=self.report.handled,
                    duration_ms=t.duration_ms(),
                ),
            )
        return self.report

    async def _worker(self, queue: "asyncio.Queue[WorkItem]") -> None:
        while True:
            item = await queue.get()
            try:
                if self.cancelled:
                    item.state = WorkState.REJECTED
                    self.report.rejected += 1
                else:
                    await self._process(item, queue)
            finally:
                queue.task_done()

    async def _process(self, item: WorkItem, queue: "asyncio.Queue[WorkItem]") -> None:
        if item.is_root_query:
            await self._resolve_root(item, queue)
            return

        try:
            version = item.required_version
            if version is None:
                version = await self._latest_version(item.package_id)
            key = IdentityKey.of(item.package_id, version)
        except _ITEM_ERRORS as exc:
            self._fail(item, item.package_id, "resolving", exc)
            return

        if not self.visited.claim(key):
            item.state = WorkState.REJECTED
            self.report.rejected += 1
            if is_debug_enabled(logger):
                logger.debug(
                    "Already claimed",
                    extra=extra_context(event="claim", component="scheduler", outcome="rejected", target=str(key)),
                )
            return
        item.state = WorkState.CLAIMED

        label = f"{item.package_id}.{version}"
        try:
            version = await self._confirm_version(item, version)
        except _ITEM_ERRORS as exc:
            self._fail(item, label, "resolving", exc)
            return
        item.state = WorkState.RESOLVED

        if self.cancelled:
            self._skip(item, label)
            return
        outcome = await self.downloader.fetch(item.package_id, version, item.depth)
        if outcome is DownloadOutcome.SKIPPED:
            self._skip(item, label)
            return
        if outcome is DownloadOutcome.FAILED:
            # Nothing to read dependencies from; the subtree is skipped
            item.state = WorkState.FAILED
            self.report.failed.append(label)
            return
        if outcome is DownloadOutcome.DOWNLOADED:
            self.report.downloaded += 1
        else:
            self.report.already_present += 1

        if self.cancelled:
            item.state = WorkState.DONE
            self.report.handled += 1
            return

        try:
            children = await self.expander.expand(item.package_id, version, item.depth)
        except _ITEM_ERRORS as exc:
            self._fail(item, label, "reading dependencies of", exc)
            return
        item.state = WorkState.EXPANDED

        for child in children:
            queue.put_nowait(child)
        item.state = WorkState.DONE
        self.report.handled += 1

    async def _resolve_root(self, item: WorkItem, queue: "asyncio.Queue[WorkItem]") -> None:
        """Search for the root query and enqueue the latest version of every match."""
        try:
            results = await self.client.search(item.package_id, self.search_frameworks, 0, self.take)
        except _ITEM_ERRORS as exc:
            self._fail(item, item.package_id, "searching for", exc)
            return

        matches = filter_matches(results, item.package_id, item.exact_match)
        if not matches:
            self._fail(item, item.package_id, "searching for", PackageNotFoundError("no matching package"))
            return

        logger.info("%s%d package(s) matching %s", indent(item.depth), len(matches), item.package_id)
        item.state = WorkState.RESOLVED
        for match in matches:
            latest = match.latest_version
            if latest is None:
                logger.warning("Search result %s has no versions, skipping", match.package_id)
                continue
            queue.put_nowait(
                WorkItem(
                    package_id=match.package_id,
                    required_version=latest,
                    exact_match=True,
                    depth=item.depth,
                    confirmed=True,
                )
            )
        item.state = WorkState.DONE

    async def _latest_version(self, package_id: str) -> str:
        versions = await self.client.get_versions(package_id)
        if not versions:
            raise PackageNotFoundError(f"{package_id} has no published versions")
        return versions[-1]

    async def _confirm_version(self, item: WorkItem, version: str) -> str:
        """Return the normalized version once the registry is known to list it."""
        if item.confirmed:
            return normalize_version(version)
        versions = await self.client.get_versions(item.package_id)
        if not any(versions_equal(v, version) for v in versions):
            raise PackageNotFoundError(f"version {version} is not published")
        return normalize_version(version)

    def _skip(self, item: WorkItem, label: str) -> None:
        item.state = WorkState.REJECTED
        self.report.rejected += 1
        if is_debug_enabled(logger):
            logger.debug(
                "Skipped after cancellation",
                extra=extra_context(event="download", component="scheduler", outcome="skipped", target=label),
            )

    def _fail(self, item: WorkItem, label: str, action: str, exc: BaseException) -> None:
        item.state = WorkState.FAILED
        self.report.failed.append(label)
        logger.error(
            "Error %s %s: %s",
            action,
            label,
            exc,
            extra=extra_context(event="resolve", component="scheduler", outcome="error", target=label),
        )


def build_root(package_id: str, exact_match: bool) -> WorkItem:
    """Work item for the user's query."""
    return WorkItem(package_id=package_id.strip(), exact_match=exact_match, depth=0)
