"""
Tests for RegistryHTTP: timeouts, retries, auth and status passthrough.
"""
from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from containerhub.registry.errors import NetworkUnavailable, NotFound
from containerhub.registry.http import USER_AGENT, RegistryHTTP, create_client
from containerhub.settings import Settings, SourceConfig


def _request(settings, source, handler, method="GET", path="/v2/"):
    async def main():
        async with create_client(settings, httpx.MockTransport(handler)) as client:
            http = RegistryHTTP(source, client, retries=settings.http_retry)
            return await http.request(method, path)
    return asyncio.run(main())


class TestRegistryHTTP:

    def setup_method(self):
        self.source = SourceConfig(name="default", url="http://registry.test/")
        self.settings = Settings(sources=(self.source,))
        self.seen = []

    def test_status_returned_untouched(self):
        def handler(request):
            self.seen.append(request)
            return httpx.Response(404)

        response = _request(self.settings, self.source, handler, path="/v2/x/tags/list")
        assert response.status_code == 404
        assert str(self.seen[0].url) == "http://registry.test/v2/x/tags/list"
        assert self.seen[0].headers["User-Agent"] == USER_AGENT

    def test_absolute_url_used_as_is(self):
        http = RegistryHTTP(self.source, client=None)
        assert http.url("https://other/v2/") == "https://other/v2/"
        assert http.url("/v2/_catalog") == "http://registry.test/v2/_catalog"

    def test_timeout_maps_to_network_unavailable(self):
        def handler(request):
            self.seen.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(NetworkUnavailable) as exc_info:
            _request(self.settings, self.source, handler)
        assert exc_info.value.timed_out
        assert exc_info.value.status == 0
        assert len(self.seen) == 1

    def test_connection_error_maps_to_network_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkUnavailable) as exc_info:
            _request(self.settings, self.source, handler)
        assert not exc_info.value.timed_out

    def test_timeouts_retried(self):
        settings = Settings(sources=(self.source,), http_retry=2)

        def handler(request):
            self.seen.append(request)
            if len(self.seen) < 3:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200)

        response = _request(settings, self.source, handler)
        assert response.status_code == 200
        assert len(self.seen) == 3

    def test_connection_errors_not_retried(self):
        settings = Settings(sources=(self.source,), http_retry=2)

        def handler(request):
            self.seen.append(request)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkUnavailable):
            _request(settings, self.source, handler)
        assert len(self.seen) == 1

    def test_basic_auth_sent(self):
        source = SourceConfig(name="default", url="http://registry.test", username="alice", password="pw")

        def handler(request):
            self.seen.append(request)
            return httpx.Response(200)

        _request(Settings(sources=(source,)), source, handler)
        expected = "Basic " + base64.b64encode(b"alice:pw").decode()
        assert self.seen[0].headers["Authorization"] == expected

    def test_error_builds_taxonomy_error(self):
        request = httpx.Request("GET", "http://registry.test/v2/x/manifests/latest")
        response = httpx.Response(404, request=request)
        error = RegistryHTTP.error(response, "Manifest request failed")
        assert isinstance(error, NotFound)
        assert "HTTP 404" in str(error)
        assert error.url == "http://registry.test/v2/x/manifests/latest"
