import pytest


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.json()["database"] == "connected"


@pytest.mark.asyncio
async def test_unknown_path_renders_not_found_page(client):
    r = await client.get("/no/such/page")
    assert r.status_code == 404
    assert "Page not found" in r.text
