"""
Unit Tests for the vector index client
"""

import json

import httpx
import pytest

from engagement_core.app.config import VectorIndexSettings, reset_config
from engagement_core.infrastructure.clients import HttpVectorIndex, create_vector_index
from engagement_core.services import TransientInfraError

SETTINGS = VectorIndexSettings(url="http://index.local/", api_key="k3y", namespace="recipes")


def index_with(handler) -> HttpVectorIndex:
    client = httpx.AsyncClient(
        base_url="http://index.local",
        headers={"Authorization": "Bearer k3y"},
        transport=httpx.MockTransport(handler),
    )
    return HttpVectorIndex(SETTINGS, client=client)


@pytest.mark.asyncio
async def test_upsert_puts_metadata():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    index = index_with(handler)
    await index.upsert_metadata("v1", {"status": "active"})
    await index.close()

    [request] = seen
    assert request.method == "PUT"
    assert request.url.path == "/namespaces/recipes/vectors/v1/metadata"
    assert json.loads(request.content) == {"metadata": {"status": "active"}}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_server_errors_are_transient(status):
    index = index_with(lambda request: httpx.Response(status))

    with pytest.raises(TransientInfraError):
        await index.upsert_metadata("v1", {})


@pytest.mark.asyncio
async def test_network_errors_are_transient():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientInfraError):
        await index_with(handler).upsert_metadata("v1", {})


@pytest.mark.asyncio
async def test_client_errors_propagate():
    index = index_with(lambda request: httpx.Response(404))

    with pytest.raises(httpx.HTTPStatusError):
        await index.upsert_metadata("v1", {})


def test_disabled_without_url():
    assert create_vector_index() is None


def test_enabled_from_environment(monkeypatch):
    monkeypatch.setenv("VECTOR_URL", "http://index.local")
    reset_config()

    assert isinstance(create_vector_index(), HttpVectorIndex)
