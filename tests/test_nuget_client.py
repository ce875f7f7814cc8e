"""Tests for the NuGet V3 client."""

import asyncio
import io
import json
import threading
import zipfile

import pytest

from registry.errors import PackageNotFoundError, RegistryError, ServiceIndexError
from registry.nuget import client as client_module
from registry.nuget.client import NuGetClient, _find_resource, _parse_search_payload

INDEX_URL = "https://feed.example/v3/index.json"
SEARCH_URL = "https://search.example/query"
BASE_URL = "https://flat.example/v3-flatcontainer/"

SERVICE_INDEX = {
    "version": "3.0.0",
    "resources": [
        {"@id": "https://search.example/legacy", "@type": "SearchQueryService"},
        {"@id": SEARCH_URL, "@type": "SearchQueryService/3.5.0"},
        {"@id": BASE_URL, "@type": "PackageBaseAddress/3.0.0"},
    ],
}


class _DummyContent:
    """Async chunk iterator over a body."""

    def __init__(self, body: bytes):
        self._body = body

    async def iter_chunked(self, size: int):
        for start in range(0, len(self._body), size):
            yield self._body[start:start + size]


class _DummyResponse:
    def __init__(self, status=200, payload=None, body=b""):
        self.status = status
        self.url = ""
        self._payload = payload
        self.content = _DummyContent(body)

    async def json(self, content_type=None):
        if isinstance(self._payload, str):
            return json.loads(self._payload)
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _DummySession:
    """Routes GET calls by URL and records them."""

    def __init__(self, routes):
        self._routes = routes
        self.calls = []

    def get(self, url, params=None, headers=None):
        self.calls.append((url, params))
        response = self._routes.get(url, _DummyResponse(status=404))
        response.url = url
        return response

    async def close(self):
        pass


def _client(routes):
    session = _DummySession({INDEX_URL: _DummyResponse(payload=SERVICE_INDEX), **routes})
    return NuGetClient(INDEX_URL, session=session), session


class TestHelpers:
    """Test pure helpers."""

    def test_find_resource_prefers_first_listed_type(self):
        assert _find_resource(SERVICE_INDEX, ["SearchQueryService/3.5.0", "SearchQueryService"]) == SEARCH_URL

    def test_find_resource_missing(self):
        assert _find_resource({"resources": []}, ["PackageBaseAddress/3.0.0"]) is None

    def test_parse_search_payload(self):
        payload = {
            "data": [
                {"id": "Sample.Lib", "version": "2.0.0",
                 "versions": [{"version": "1.0.0"}, {"version": "2.0.0"}]},
                {"id": "Only.Version", "version": "0.9.0"},
                {"version": "1.0.0"},
            ]
        }

        results = _parse_search_payload(payload)

        assert [(r.package_id, r.versions) for r in results] == [
            ("Sample.Lib", ["1.0.0", "2.0.0"]),
            ("Only.Version", ["0.9.0"]),
        ]
        assert results[0].latest_version == "2.0.0"


class TestNuGetClient:
    """Test HTTP interactions against a dummy session."""

    def test_search_sends_frameworks_and_paging(self):
        client, session = _client({
            SEARCH_URL: _DummyResponse(payload={"data": [{"id": "A", "versions": [{"version": "1.0.0"}]}]}),
        })

        results = asyncio.run(client.search("a", ["net48", "net6.0"], 0, 50))

        assert results[0].package_id == "A"
        url, params = session.calls[-1]
        assert url == SEARCH_URL
        assert ("q", "a") in params
        assert ("take", "50") in params
        assert ("supportedFramework", "net48") in params
        assert ("supportedFramework", "net6.0") in params

    def test_service_index_is_fetched_once(self):
        client, session = _client({
            SEARCH_URL: _DummyResponse(payload={"data": []}),
            BASE_URL + "a/index.json": _DummyResponse(payload={"versions": ["1.0.0"]}),
        })

        async def _run():
            await client.search("a", [], 0, 10)
            await client.get_versions("A")

        asyncio.run(_run())

        assert [url for url, _ in session.calls].count(INDEX_URL) == 1

    def test_get_versions_lowercases_id(self):
        client, session = _client({
            BASE_URL + "newtonsoft.json/index.json": _DummyResponse(payload={"versions": ["12.0.1", "13.0.1"]}),
        })

        assert asyncio.run(client.get_versions("Newtonsoft.Json")) == ["12.0.1", "13.0.1"]

    def test_get_versions_unknown_package(self):
        client, _ = _client({})
        with pytest.raises(PackageNotFoundError):
            asyncio.run(client.get_versions("missing"))

    def test_stream_artifact_writes_all_chunks(self):
        body = b"x" * 200_000
        client, session = _client({
            BASE_URL + "sample.lib/2.0.0-beta/sample.lib.2.0.0-beta.nupkg": _DummyResponse(body=body),
        })
        sink = io.BytesIO()

        asyncio.run(client.stream_artifact("Sample.Lib", "2.0.0-Beta", sink))

        assert sink.getvalue() == body

    def test_stream_artifact_server_error(self):
        client, _ = _client({
            BASE_URL + "a/1.0.0/a.1.0.0.nupkg": _DummyResponse(status=500),
        })
        with pytest.raises(RegistryError) as excinfo:
            asyncio.run(client.stream_artifact("a", "1.0.0", io.BytesIO()))
        assert excinfo.value.status == 500

    def test_missing_resource_raises_service_index_error(self):
        session = _DummySession({INDEX_URL: _DummyResponse(payload={"resources": []})})
        client = NuGetClient(INDEX_URL, session=session)
        with pytest.raises(ServiceIndexError):
            asyncio.run(client.get_versions("a"))

    def test_unreachable_service_index(self):
        client = NuGetClient(INDEX_URL, session=_DummySession({}))
        with pytest.raises(ServiceIndexError):
            asyncio.run(client.service_index())

    def test_dependency_groups_from_local_artifact(self, tmp_path):
        nuspec = (
            '<package><metadata><dependencies><group targetFramework="netstandard2.0">'
            '<dependency id="Dep" version="1.2" /></group></dependencies></metadata></package>'
        )
        path = tmp_path / "a.1.0.0.nupkg"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("a.nuspec", nuspec)
        client, session = _client({})

        groups = asyncio.run(client.get_dependency_groups("a", "1.0.0", str(path)))

        assert groups[0].target_platform == ".NETStandard"
        assert groups[0].packages[0].min_version == "1.2.0"
        assert session.calls == []

    def test_dependency_groups_streams_when_no_local_artifact(self):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("a.nuspec", "<package><metadata><dependencies /></metadata></package>")
        client, session = _client({
            BASE_URL + "a/1.0.0/a.1.0.0.nupkg": _DummyResponse(body=buffer.getvalue()),
        })

        assert asyncio.run(client.get_dependency_groups("a", "1.0.0")) == []
        assert session.calls[-1][0].endswith("a.1.0.0.nupkg")

    def test_manifest_read_does_not_block_other_workers(self, tmp_path, monkeypatch):
        path = tmp_path / "a.1.0.0.nupkg"
        path.write_bytes(b"PK")
        started = threading.Event()
        release = threading.Event()
        released_in_time = []

        def slow_read(source):
            started.set()
            released_in_time.append(release.wait(timeout=5))
            return []

        monkeypatch.setattr(client_module, "dependency_groups_from_package", slow_read)
        client, _ = _client({})

        async def other_worker():
            while not started.is_set():
                await asyncio.sleep(0.01)
            # The read is still waiting in its thread here
            await asyncio.sleep(0.01)
            release.set()

        async def _run():
            groups, _ = await asyncio.gather(
                client.get_dependency_groups("a", "1.0.0", str(path)),
                other_worker(),
            )
            return groups

        assert asyncio.run(_run()) == []
        assert released_in_time == [True]
