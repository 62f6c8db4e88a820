from fastapi.testclient import TestClient

from agents.code_explainer_agent import CodeExplainerAgent
from api_server.main import create_app
from tests.fakes import FakeChatModel, make_settings
from utils.rate_limit import InMemoryRateLimitStore


def test_security_headers_on_every_response(client):
    for response in (
        client.get("/api/health"),
        client.post("/api/explain-code", json={}),
        client.get("/missing"),
    ):
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert "default-src 'self'" in response.headers["Content-Security-Policy"]


def test_rate_limited_responses_are_hardened_too():
    settings = make_settings(rate_limit_max_requests=1)
    app = create_app(settings=settings, rate_limit_store=InMemoryRateLimitStore())

    with TestClient(app) as client:
        client.get("/api/health")
        response = client.get("/api/health")

    assert response.status_code == 429
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_response_time_header(client):
    response = client.get("/api/health")

    assert response.headers["X-Response-Time"].endswith("ms")


def test_oversized_body_is_rejected():
    settings = make_settings(max_body_bytes=100)
    model = FakeChatModel()
    app = create_app(
        settings=settings,
        explainer=CodeExplainerAgent(settings, llm_model=model),
        rate_limit_store=InMemoryRateLimitStore(),
    )

    with TestClient(app) as client:
        response = client.post("/api/explain-code", json={"code": "x" * 200})

    assert response.status_code == 413
    assert response.json() == {"error": "Payload too large"}
    assert model.calls == []


def test_oversized_chunked_body_is_rejected():
    settings = make_settings(max_body_bytes=100)
    model = FakeChatModel()
    app = create_app(
        settings=settings,
        explainer=CodeExplainerAgent(settings, llm_model=model),
        rate_limit_store=InMemoryRateLimitStore(),
    )

    def chunked_body():
        yield b'{"code": "'
        for _ in range(50):
            yield b"x" * 100
        yield b'", "language": "python"}'

    with TestClient(app) as client:
        response = client.post(
            "/api/explain-code",
            content=chunked_body(),
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 413
    assert response.json() == {"error": "Payload too large"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert model.calls == []


def test_small_chunked_body_is_accepted():
    model = FakeChatModel()
    settings = make_settings(max_body_bytes=1000)
    app = create_app(
        settings=settings,
        explainer=CodeExplainerAgent(settings, llm_model=model),
        rate_limit_store=InMemoryRateLimitStore(),
    )

    def chunked_body():
        yield b'{"code": "print(1)",'
        yield b' "language": "python"}'

    with TestClient(app) as client:
        response = client.post(
            "/api/explain-code",
            content=chunked_body(),
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 200
    assert len(model.calls) == 1


def test_cors_allows_configured_frontend(client):
    response = client.options(
        "/api/explain-code",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert response.headers["access-control-allow-credentials"] == "true"


def test_cors_ignores_other_origins(client):
    response = client.get("/api/health", headers={"Origin": "http://evil.example"})

    assert "access-control-allow-origin" not in response.headers


def test_unknown_route_returns_json_404(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.json() == {"error": "Not found"}


def test_wrong_method_returns_json_405(client):
    response = client.get("/api/explain-code")

    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}
