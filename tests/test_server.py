"""
Tests for the aiohttp drop server.

Tests cover:
- Create / retrieve / revoke routes
- Admission errors surfaced as JSON with codes
- Generic versus distinct failure reasons
- Body size limit and store lifecycle
"""
import asyncio
import time
from contextlib import asynccontextmanager

import orjson
import pytest
from aiohttp.test_utils import TestClient, TestServer

from burnenv.config import BurnConfig
from burnenv.server import STORE_KEY, create_app
from burnenv.store import EphemeralStore


class FakeClock:
    def __init__(self):
        self.now = time.time()

    def __call__(self) -> float:
        return self.now


def _payload(**overrides) -> dict:
    data = {
        "ciphertext": "Y2lwaGVydGV4dC13aXRoLXRhZw==",
        "salt": "c2FsdHNhbHRzYWx0c2FsdA==",
        "iv": "bm9uY2Vub25jZTEy",
        "kdf": {"algorithm": "argon2id", "time": 3, "memory": 65536, "threads": 4},
        "expiry": int(time.time()) + 600,
        "max_views": 1,
    }
    data.update(overrides)
    return data


@asynccontextmanager
async def drop_client(config=None, store=None):
    app = create_app(config or BurnConfig(base_url="https://burn.example"), store=store)
    async with TestClient(TestServer(app)) as client:
        yield client


async def _create(client, **overrides) -> str:
    resp = await client.post("/v1/drop", data=orjson.dumps(_payload(**overrides)))
    assert resp.status == 201
    return (await resp.json())["id"]


class TestCreate:
    """POST /v1/drop."""

    @pytest.mark.asyncio
    async def test_create(self):
        async with drop_client() as client:
            resp = await client.post("/v1/drop", data=orjson.dumps(_payload()))
            assert resp.status == 201
            data = await resp.json()
            assert len(data["id"]) == 32
            assert data["link"] == f"https://burn.example/v1/drop/{data['id']}"

    @pytest.mark.asyncio
    async def test_ids_are_unique(self):
        async with drop_client() as client:
            ids = {await _create(client) for _ in range(20)}
            assert len(ids) == 20

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with drop_client() as client:
            resp = await client.post("/v1/drop", data=b"{oops")
            assert resp.status == 400
            data = await resp.json()
            assert data["code"] == "invalid_json"

    @pytest.mark.asyncio
    async def test_missing_body(self):
        async with drop_client() as client:
            resp = await client.post("/v1/drop")
            assert resp.status == 400
            assert (await resp.json())["code"] == "missing_body"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides,status,code", [
        ({"ciphertext": ""}, 400, "missing_ciphertext"),
        ({"iv": ""}, 400, "missing_iv"),
        ({"salt": "A" * 80}, 400, "salt_too_long"),
        ({"expiry": 1}, 400, "expiry_in_past"),
        ({"max_views": 0}, 400, "max_views_too_low"),
        ({"max_views": 1000}, 400, "max_views_too_high"),
    ])
    async def test_rejections(self, overrides, status, code):
        store = EphemeralStore()
        async with drop_client(store=store) as client:
            resp = await client.post("/v1/drop", data=orjson.dumps(_payload(**overrides)))
            assert resp.status == status
            data = await resp.json()
            assert data["code"] == code
            assert data["error"]
        assert len(store) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"expiry": str(int(time.time()) + 600)},
        {"max_views": True},
        {"expiry": time.time() + 600.5},
    ])
    async def test_wrong_types_not_stored(self, overrides):
        """Coercible values are refused, so the stored blob stays well-typed."""
        store = EphemeralStore()
        async with drop_client(store=store) as client:
            resp = await client.post("/v1/drop", data=orjson.dumps(_payload(**overrides)))
            assert resp.status == 400
            assert (await resp.json())["code"] == "invalid_payload"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_missing_kdf(self):
        payload = _payload()
        del payload["kdf"]
        store = EphemeralStore()
        async with drop_client(store=store) as client:
            resp = await client.post("/v1/drop", data=orjson.dumps(payload))
            assert resp.status == 400
            assert (await resp.json())["code"] == "missing_kdf"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_ciphertext_too_large(self):
        config = BurnConfig(max_body_bytes=4 * 1024 * 1024)
        async with drop_client(config) as client:
            payload = _payload(ciphertext="A" * (2 * 1024 * 1024 + 4))
            resp = await client.post("/v1/drop", data=orjson.dumps(payload))
            assert resp.status == 413
            assert (await resp.json())["code"] == "ciphertext_too_large"

    @pytest.mark.asyncio
    async def test_body_too_large(self):
        config = BurnConfig(max_body_bytes=4096)
        async with drop_client(config) as client:
            payload = _payload(ciphertext="A" * 8192)
            resp = await client.post("/v1/drop", data=orjson.dumps(payload))
            assert resp.status == 413
            assert (await resp.json())["code"] == "body_too_large"


class TestRetrieve:
    """GET /v1/drop/{id}."""

    @pytest.mark.asyncio
    async def test_returns_blob_unchanged(self):
        async with drop_client() as client:
            raw = orjson.dumps(_payload(max_views=2))
            resp = await client.post("/v1/drop", data=raw)
            drop_id = (await resp.json())["id"]
            resp = await client.get(f"/v1/drop/{drop_id}")
            assert resp.status == 200
            assert resp.content_type == "application/json"
            assert resp.headers["Cache-Control"] == "no-store"
            assert await resp.read() == raw

    @pytest.mark.asyncio
    async def test_burn_after_views(self):
        async with drop_client() as client:
            drop_id = await _create(client, max_views=2)
            assert (await client.get(f"/v1/drop/{drop_id}")).status == 200
            assert (await client.get(f"/v1/drop/{drop_id}")).status == 200
            resp = await client.get(f"/v1/drop/{drop_id}")
            assert resp.status == 404
            assert (await resp.json())["error"] == "Secret not found or expired"

    @pytest.mark.asyncio
    async def test_head_does_not_burn(self):
        async with drop_client() as client:
            drop_id = await _create(client)
            resp = await client.head(f"/v1/drop/{drop_id}")
            assert resp.status == 405
            assert (await client.get(f"/v1/drop/{drop_id}")).status == 200

    @pytest.mark.asyncio
    async def test_concurrent_single_view(self):
        async with drop_client() as client:
            drop_id = await _create(client)
            responses = await asyncio.gather(
                *(client.get(f"/v1/drop/{drop_id}") for _ in range(20))
            )
            statuses = [r.status for r in responses]
            assert statuses.count(200) == 1
            assert statuses.count(404) == 19

    @pytest.mark.asyncio
    async def test_generic_failures(self):
        """Expired, burned and unknown all look the same by default."""
        clock = FakeClock()
        async with drop_client(store=EphemeralStore(clock=clock)) as client:
            burned = await _create(client)
            await client.get(f"/v1/drop/{burned}")
            expired = await _create(client, max_views=3)
            clock.now += 3600

            bodies = []
            for drop_id in (burned, expired, "0" * 32):
                resp = await client.get(f"/v1/drop/{drop_id}")
                assert resp.status == 404
                bodies.append(await resp.json())
            assert bodies[0] == bodies[1] == bodies[2]

    @pytest.mark.asyncio
    async def test_distinct_reasons(self):
        clock = FakeClock()
        config = BurnConfig(expose_reasons=True)
        async with drop_client(config, store=EphemeralStore(clock=clock)) as client:
            expired = await _create(client, max_views=3)
            clock.now += 3600
            resp = await client.get(f"/v1/drop/{expired}")
            assert resp.status == 410
            assert "expired" in (await resp.json())["error"]

            resp = await client.get(f"/v1/drop/{'f' * 32}")
            assert resp.status == 404
            assert "not found" in (await resp.json())["error"]

    @pytest.mark.asyncio
    async def test_exhausted_reason(self):
        store = EphemeralStore()
        config = BurnConfig(expose_reasons=True)
        store.put("zero", b"{}", max_views=0, expiry=time.time() + 60)
        async with drop_client(config, store=store) as client:
            resp = await client.get("/v1/drop/zero")
            assert resp.status == 410
            assert "max views" in (await resp.json())["error"]


class TestRevoke:
    """DELETE /v1/drop/{id}."""

    @pytest.mark.asyncio
    async def test_revoke(self):
        async with drop_client() as client:
            drop_id = await _create(client, max_views=5)
            resp = await client.delete(f"/v1/drop/{drop_id}")
            assert resp.status == 200
            assert await resp.json() == {"status": "revoked"}
            assert (await client.get(f"/v1/drop/{drop_id}")).status == 404

    @pytest.mark.asyncio
    async def test_revoke_twice(self):
        async with drop_client() as client:
            drop_id = await _create(client)
            assert (await client.delete(f"/v1/drop/{drop_id}")).status == 200
            resp = await client.delete(f"/v1/drop/{drop_id}")
            assert resp.status == 404
            assert (await resp.json())["error"] == "not found"


class TestApplication:
    """Health endpoint and store lifecycle."""

    @pytest.mark.asyncio
    async def test_healthz(self):
        async with drop_client() as client:
            resp = await client.get("/healthz")
            assert resp.status == 200
            assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_sweeper_bound_to_app(self):
        store = EphemeralStore(sweep_interval=3600)
        async with drop_client(store=store) as client:
            assert client.app[STORE_KEY] is store
            assert store.running
        assert not store.running

    def test_empty_store_is_used(self):
        """An empty store passed in is not swapped for a new one."""
        store = EphemeralStore()
        app = create_app(store=store)
        assert app[STORE_KEY] is store
