"""Unit tests for ResourceFetcher: httpx.MockTransport, both fetch policies."""

from __future__ import annotations

import httpx
import pytest

from hlte_worker.fetcher import ResourceFetcher, extension_for
from hlte_worker.types import FetchStatus, Role
from tests.unit.conftest import mock_client

URI = "https://example.com/page"


class _Recorder:
    """Answers every request from a {(method, url): response} table and logs the order."""

    def __init__(self, responses: dict[tuple[str, str], httpx.Response]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, str(request.url))
        self.calls.append(key)
        return self.responses[key]


async def _collect(outcome) -> bytes:
    return b"".join([chunk async for chunk in outcome.body])


class TestExtensionFor:
    @pytest.mark.parametrize(
        ("content_type", "ext"),
        [
            ("text/html", "html"),
            ("text/html; charset=utf-8", "html"),
            ("image/PNG", "png"),
            ("application/pdf;q=1", "pdf"),
            ("image/svg+xml", "svg+xml"),
        ],
    )
    def test_subtype(self, content_type, ext):
        assert extension_for(content_type) == ext

    @pytest.mark.parametrize(
        "content_type",
        [None, "", "text", "text/", "text/x/../../../escaped", "text/..", "image/png\\evil", "image/ png"],
    )
    def test_unusable_content_type_raises(self, content_type):
        with pytest.raises(ValueError):
            extension_for(content_type)


class TestProbeFirst:
    async def test_head_then_get(self):
        rec = _Recorder(
            {
                ("HEAD", URI): httpx.Response(200),
                ("GET", URI): httpx.Response(200, headers={"Content-Type": "text/html"}, content=b"<p>hi</p>"),
            }
        )
        fetcher = ResourceFetcher(client=mock_client(rec))

        async with fetcher.fetch(URI, Role.PRIMARY, probe_before_fetch=True) as outcome:
            assert outcome.status is FetchStatus.FETCHED
            assert outcome.status_code == 200
            assert outcome.content_type == "text/html"
            assert await _collect(outcome) == b"<p>hi</p>"

        assert rec.calls == [("HEAD", URI), ("GET", URI)]

    async def test_head_rejection_skips_get(self, caplog):
        rec = _Recorder({("HEAD", URI): httpx.Response(404)})
        fetcher = ResourceFetcher(client=mock_client(rec))

        with caplog.at_level("WARNING"):
            async with fetcher.fetch(URI, Role.PRIMARY, probe_before_fetch=True) as outcome:
                assert outcome.status is FetchStatus.REJECTED
                assert outcome.status_code == 404
                assert outcome.body is None

        assert rec.calls == [("HEAD", URI)]
        assert "HEAD" in caplog.text and "404" in caplog.text

    async def test_get_rejection_after_successful_head(self):
        rec = _Recorder(
            {
                ("HEAD", URI): httpx.Response(200),
                ("GET", URI): httpx.Response(503),
            }
        )
        fetcher = ResourceFetcher(client=mock_client(rec))

        async with fetcher.fetch(URI, Role.SECONDARY, probe_before_fetch=True) as outcome:
            assert outcome.status is FetchStatus.REJECTED
            assert outcome.status_code == 503

    async def test_on_dispatch_fires_after_head_even_when_rejected(self):
        rec = _Recorder({("HEAD", URI): httpx.Response(410)})
        fetcher = ResourceFetcher(client=mock_client(rec))
        fired: list[int] = []

        async with fetcher.fetch(
            URI, Role.PRIMARY, probe_before_fetch=True, on_dispatch=lambda: fired.append(len(rec.calls))
        ):
            pass

        assert fired == [1]


class TestDirectGet:
    async def test_no_head_request(self):
        rec = _Recorder(
            {("GET", URI): httpx.Response(200, headers={"Content-Type": "image/png"}, content=b"\x89PNG")}
        )
        fetcher = ResourceFetcher(client=mock_client(rec))

        async with fetcher.fetch(URI, Role.PRIMARY, probe_before_fetch=False) as outcome:
            assert outcome.status is FetchStatus.FETCHED
            assert await _collect(outcome) == b"\x89PNG"

        assert rec.calls == [("GET", URI)]

    async def test_non_200_success_is_rejected(self):
        rec = _Recorder({("GET", URI): httpx.Response(204)})
        fetcher = ResourceFetcher(client=mock_client(rec))

        async with fetcher.fetch(URI, Role.PRIMARY, probe_before_fetch=False) as outcome:
            assert outcome.status is FetchStatus.REJECTED
            assert outcome.status_code == 204

    async def test_on_dispatch_fires_before_get(self):
        rec = _Recorder({("GET", URI): httpx.Response(404)})
        fetcher = ResourceFetcher(client=mock_client(rec))
        fired: list[int] = []

        async with fetcher.fetch(
            URI, Role.PRIMARY, probe_before_fetch=False, on_dispatch=lambda: fired.append(len(rec.calls))
        ):
            pass

        assert fired == [0]


class TestSkipAndFailures:
    @pytest.mark.parametrize("uri", [None, ""])
    async def test_empty_uri_skipped_without_request(self, uri):
        rec = _Recorder({})
        fetcher = ResourceFetcher(client=mock_client(rec))
        fired: list[bool] = []

        async with fetcher.fetch(
            uri, Role.SECONDARY, probe_before_fetch=True, on_dispatch=lambda: fired.append(True)
        ) as outcome:
            assert outcome.status is FetchStatus.SKIPPED

        assert rec.calls == []
        assert fired == []

    async def test_transport_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = ResourceFetcher(client=mock_client(handler))

        with pytest.raises(httpx.ConnectError):
            async with fetcher.fetch(URI, Role.PRIMARY, probe_before_fetch=False):
                pass

    async def test_headers_are_lowercased(self):
        rec = _Recorder(
            {("GET", URI): httpx.Response(200, headers={"Content-Type": "text/plain", "ETag": '"v1"'}, content=b"x")}
        )
        fetcher = ResourceFetcher(client=mock_client(rec))

        async with fetcher.fetch(URI, Role.PRIMARY, probe_before_fetch=False) as outcome:
            assert outcome.headers["etag"] == '"v1"'
            assert outcome.headers["content-type"] == "text/plain"

    async def test_aclose_leaves_injected_client_open(self):
        client = mock_client(_Recorder({}))
        fetcher = ResourceFetcher(client=client)
        await fetcher.aclose()
        assert not client.is_closed
        await client.aclose()
