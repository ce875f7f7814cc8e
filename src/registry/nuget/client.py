"""NuGet V3 registry client: search, version listing and package download over aiohttp."""
from __future__ import annotations

import asyncio
import io
import logging
import os
import urllib.parse
from typing import Any, BinaryIO, Dict, List, Optional, Sequence

import aiohttp

from common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from constants import Constants
from registry.errors import PackageNotFoundError, RegistryError, ServiceIndexError
from traversal.models import DependencyGroup, SearchResult

from .nuspec import dependency_groups_from_package

logger = logging.getLogger(__name__)

HEADERS_JSON = {"Accept": "application/json"}


def _find_resource(service_index: Dict[str, Any], resource_types: Sequence[str]) -> Optional[str]:
    """Return the ``@id`` of the first resource matching one of ``resource_types`` (in preference order)."""
    resources = service_index.get("resources", [])
    for wanted in resource_types:
        for resource in resources:
            if resource.get("@type") == wanted and resource.get("@id"):
                return resource["@id"]
    return None


def _parse_search_payload(payload: Dict[str, Any]) -> List[SearchResult]:
    """Turn a SearchQueryService response into SearchResults."""
    results: List[SearchResult] = []
    for entry in payload.get("data", []) or []:
        package_id = entry.get("id")
        if not package_id:
            continue
        versions = [v.get("version") for v in entry.get("versions", []) or [] if v.get("version")]
        if not versions and entry.get("version"):
            versions = [entry["version"]]
        results.append(SearchResult(package_id=package_id, versions=versions))
    return results


class NuGetClient:
    """Async client for a NuGet V3 feed.

    One session is shared by every caller. The service index is fetched
    once and reused.
    """

    def __init__(
        self,
        service_index_url: str = Constants.REGISTRY_URL_NUGET_V3,
        timeout: int = Constants.REQUEST_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.service_index_url = service_index_url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self._service_index: Optional[Dict[str, Any]] = None
        self._index_lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=100)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": Constants.USER_AGENT},
            )
            self._owns_session = True

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "NuGetClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def _get_json(self, url: str, params: Optional[List[tuple]] = None) -> Dict[str, Any]:
        if self._session is None:
            await self.start()
        assert self._session is not None
        with Timer() as t:
            async with self._session.get(url, params=params, headers=HEADERS_JSON) as response:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP response",
                        extra=extra_context(
                            event="http_response",
                            component="client",
                            action="GET",
                            status_code=response.status,
                            duration_ms=t.duration_ms(),
                            target=safe_url(str(response.url)),
                            package_manager="nuget",
                        ),
                    )
                if response.status == 404:
                    raise PackageNotFoundError("Not found", status=404, url=safe_url(url))
                if response.status != 200:
                    raise RegistryError(
                        f"Unexpected HTTP status {response.status}", status=response.status, url=safe_url(url)
                    )
                try:
                    return await response.json(content_type=None)
                except ValueError as exc:
                    raise RegistryError(f"Invalid JSON from {safe_url(url)}: {exc}") from exc

    async def service_index(self) -> Dict[str, Any]:
        """Fetch and cache the V3 service index."""
        async with self._index_lock:
            if self._service_index is None:
                try:
                    self._service_index = await self._get_json(self.service_index_url)
                except (RegistryError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    raise ServiceIndexError(
                        f"Cannot load service index {safe_url(self.service_index_url)}: {exc}"
                    ) from exc
            return self._service_index

    async def _resource(self, resource_types: Sequence[str]) -> str:
        index = await self.service_index()
        url = _find_resource(index, resource_types)
        if not url:
            raise ServiceIndexError(f"Service index has no {resource_types[0]} resource")
        return url

    async def _package_base(self) -> str:
        base = await self._resource([Constants.PACKAGE_BASE_RESOURCE_TYPE])
        return base if base.endswith("/") else base + "/"

    async def search(
        self, query: str, frameworks: Sequence[str], skip: int = 0, take: int = Constants.SEARCH_TAKE
    ) -> List[SearchResult]:
        """Search the feed for stable packages supporting one of ``frameworks``."""
        url = await self._resource(Constants.SEARCH_RESOURCE_TYPES)
        params = [
            ("q", query),
            ("skip", str(skip)),
            ("take", str(take)),
            ("prerelease", "false"),
            ("semVerLevel", "2.0.0"),
        ]
        params.extend(("supportedFramework", fw) for fw in frameworks)
        payload = await self._get_json(url, params=params)
        results = _parse_search_payload(payload)
        logger.debug("Search for %r returned %d result(s)", query, len(results))
        return results

    async def get_versions(self, package_id: str) -> List[str]:
        """All versions listed in the flat container, oldest first."""
        base = await self._package_base()
        encoded_id = urllib.parse.quote(package_id.lower(), safe="")
        payload = await self._get_json(f"{base}{encoded_id}/index.json")
        return [v for v in payload.get("versions", []) if v]

    async def artifact_url(self, package_id: str, version: str) -> str:
        base = await self._package_base()
        lower_id = urllib.parse.quote(package_id.lower(), safe="")
        lower_version = urllib.parse.quote(version.lower(), safe="")
        return f"{base}{lower_id}/{lower_version}/{lower_id}.{lower_version}{Constants.PACKAGE_EXTENSION}"

    async def stream_artifact(self, package_id: str, version: str, sink: BinaryIO) -> None:
        """Stream the .nupkg into ``sink`` in chunks."""
        url = await self.artifact_url(package_id, version)
        if self._session is None:
            await self.start()
        assert self._session is not None
        with Timer() as t:
            async with self._session.get(url) as response:
                if response.status == 404:
                    raise PackageNotFoundError(
                        f"{package_id} {version} not found", status=404, url=safe_url(url)
                    )
                if response.status != 200:
                    raise RegistryError(
                        f"Unexpected HTTP status {response.status}", status=response.status, url=safe_url(url)
                    )
                size = 0
                async for chunk in response.content.iter_chunked(Constants.DOWNLOAD_CHUNK_SIZE):
                    sink.write(chunk)
                    size += len(chunk)
        if is_debug_enabled(logger):
            logger.debug(
                "Package streamed",
                extra=extra_context(
                    event="download",
                    component="client",
                    target=f"{package_id}.{version}",
                    bytes=size,
                    duration_ms=t.duration_ms(),
                    package_manager="nuget",
                ),
            )

    async def get_dependency_groups(
        self, package_id: str, version: str, artifact_path: Optional[str] = None
    ) -> List[DependencyGroup]:
        """Dependency groups from the package nuspec.

        Uses the local artifact when present, otherwise downloads it into memory.
        Unzipping and parsing run in a worker thread.
        """
        if artifact_path and os.path.isfile(artifact_path):
            return await asyncio.to_thread(dependency_groups_from_package, artifact_path)
        buffer = io.BytesIO()
        await self.stream_artifact(package_id, version, buffer)
        buffer.seek(0)
        return await asyncio.to_thread(dependency_groups_from_package, buffer)
