import asyncio

import fakeredis
from fakeredis import aioredis as fake_aioredis
from fastapi.testclient import TestClient

from agents.code_explainer_agent import CodeExplainerAgent
from api_server.main import create_app
from tests.fakes import FakeChatModel, make_settings
from utils.rate_limit import RateLimitConfig, RedisRateLimitStore


def make_store() -> RedisRateLimitStore:
    client = fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return RedisRateLimitStore("redis://unused", redis_client=client)


def test_counts_hits_within_window():
    async def scenario():
        store = make_store()
        await store.connect()
        hits = [await store.hit("10.0.0.1", 900) for _ in range(3)]
        other = await store.hit("10.0.0.2", 900)
        await store.close()
        return hits, other

    hits, other = asyncio.run(scenario())

    assert [hit.count for hit in hits] == [1, 2, 3]
    assert other.count == 1
    for hit in hits:
        assert 899 < hit.reset_in <= 900
        assert abs(hit.window_start - (hit.reset_at - 900)) < 1e-6
    # Later hits do not push the window forward
    assert hits[2].reset_in <= hits[0].reset_in


def test_new_window_after_expiry():
    async def scenario():
        store = make_store()
        await store.connect()
        await store.hit("10.0.0.1", 1)
        await store.hit("10.0.0.1", 1)
        await asyncio.sleep(1.1)
        hit = await store.hit("10.0.0.1", 1)
        await store.close()
        return hit

    assert asyncio.run(scenario()).count == 1


def test_concurrent_hits_are_counted_once_each():
    async def scenario():
        store = make_store()
        await store.connect()
        hits = await asyncio.gather(*(store.hit("10.0.0.1", 900) for _ in range(50)))
        await store.close()
        return sorted(hit.count for hit in hits)

    assert asyncio.run(scenario()) == list(range(1, 51))


def test_reset_forgets_client():
    async def scenario():
        store = make_store()
        await store.connect()
        await store.hit("10.0.0.1", 900)
        await store.hit("10.0.0.1", 900)
        await store.reset("10.0.0.1")
        hit = await store.hit("10.0.0.1", 900)
        await store.close()
        return hit

    assert asyncio.run(scenario()).count == 1


def test_gateway_rejects_with_shared_store():
    settings = make_settings(rate_limit_max_requests=2)
    model = FakeChatModel()
    app = create_app(
        settings=settings,
        explainer=CodeExplainerAgent(settings, llm_model=model),
        rate_limit_store=make_store(),
    )

    with TestClient(app) as client:
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/health").status_code == 200
        response = client.post("/api/explain-code", json={"code": "print('hi')"})

    assert response.status_code == 429
    assert response.text == RateLimitConfig.MESSAGE
    assert response.headers["Retry-After"] == "900"
    assert model.calls == []
